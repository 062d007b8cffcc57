"""Versioned artifact service — creation, revisions, review flow, tombstones."""

import pytest

from qagate.core.exceptions import (
    ImmutableRevisionError,
    InvalidTransitionError,
    NotFoundError,
    StatusPreconditionError,
    ValidationError,
)
from qagate.models import db
from qagate.models.approval import ApprovalRecord
from qagate.services import approval_service, artifact_service as svc, project_service

from .conftest import case_content


def _create_case(project, title="Login works", **content_overrides):
    return svc.create_test_case(project.id, title, case_content(**content_overrides), "author")


# ═════════════════════════════════════════════════════════════════════════════
# Creation & content validation
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateArtifact:

    def test_create_case_starts_at_rev_1_draft(self, project):
        rev = _create_case(project)
        assert rev.rev == 1
        assert rev.status == "DRAFT"
        assert rev.reason == "initial creation"
        assert rev.content["steps"] == ["Open checkout", "Pay with card"]
        assert rev.artifact.project_id == project.id

    def test_unknown_project(self):
        with pytest.raises(NotFoundError):
            svc.create_test_case(9999, "x", case_content(), "author")

    def test_unknown_kind(self, project):
        with pytest.raises(ValidationError):
            svc.create_artifact("suite", project.id, "author", {"title": "x"})

    def test_blank_title_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            svc.create_test_case(project.id, "   ", case_content(), "author")
        assert "title" in exc.value.details

    def test_missing_steps_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            _create_case(project, steps=[])
        assert "steps" in exc.value.details

    def test_blank_step_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            _create_case(project, steps=["Open page", "  "])
        assert "index 1" in exc.value.details["steps"]

    def test_blank_expected_result_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            _create_case(project, expected_result="")
        assert "expected_result" in exc.value.details

    def test_invalid_priority_rejected(self, project):
        with pytest.raises(ValidationError):
            _create_case(project, priority="URGENT")

    def test_scenario_with_unknown_case_revision(self, project):
        with pytest.raises(ValidationError):
            svc.create_test_scenario(project.id, "S", [{"case_revision_id": 4242}], "author")

    def test_scenario_items_ordered(self, project):
        a = _create_case(project, "A")
        b = _create_case(project, "B")
        rev = svc.create_test_scenario(
            project.id, "S",
            [{"case_revision_id": a.id, "order": 2}, {"case_revision_id": b.id, "order": 1}],
            "author",
        )
        assert [i.case_revision_id for i in rev.items] == [b.id, a.id]

    def test_list_rejects_bad_include_rule(self, scope):
        with pytest.raises(ValidationError):
            svc.create_test_scenario_list(
                scope.project.id, "L",
                [{"scenario_revision_id": scope.scenario.id, "include_rule": "SOME"}],
                "author",
            )

    def test_list_default_include_rule_full(self, scope):
        rev = svc.create_test_scenario_list(
            scope.project.id, "L", [{"scenario_revision_id": scope.scenario.id}], "author",
        )
        assert rev.items[0].include_rule == "FULL"


# ═════════════════════════════════════════════════════════════════════════════
# Revision creation: monotonicity and single draft in flight
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateRevision:

    def test_requires_latest_approved(self, project):
        rev1 = _create_case(project)
        with pytest.raises(StatusPreconditionError) as exc:
            svc.create_revision("case", rev1.case_id, "author")
        assert exc.value.current_status == "DRAFT"
        assert exc.value.expected_status == ["APPROVED"]

    @pytest.mark.parametrize("walk", ["in_review", "deprecated"])
    def test_non_approved_latest_blocks(self, project, walk):
        rev1 = _create_case(project)
        svc.submit_for_review("case", rev1.id, "author")
        if walk == "deprecated":
            svc.deprecate_revision("case", rev1.id)
        with pytest.raises(StatusPreconditionError):
            svc.create_revision("case", rev1.case_id, "author")

    def test_revision_numbers_are_gapless(self, project, approve):
        rev = approve("case", _create_case(project))
        case_id = rev.case_id
        for _ in range(3):
            rev = approve("case", svc.create_revision("case", case_id, "author", reason="update"))
        history = svc.get_revision_history("case", case_id)
        assert history["total"] == 4
        assert [r["rev"] for r in history["items"]] == [4, 3, 2, 1]
        assert svc.get_latest_revision("case", case_id).rev == 4

    def test_new_revision_carries_content_forward(self, project, approve):
        rev1 = approve("case", _create_case(project, "Original"))
        rev2 = svc.create_revision("case", rev1.case_id, "editor", {"title": "Amended"})
        assert rev2.rev == 2
        assert rev2.status == "DRAFT"
        assert rev2.title == "Amended"
        assert rev2.content == rev1.content
        assert rev2.created_by == "editor"

    def test_unknown_artifact(self):
        with pytest.raises(NotFoundError):
            svc.create_revision("case", 12345, "author")

    def test_deleted_artifact_refuses_revision(self, project, approve):
        rev1 = approve("case", _create_case(project))
        svc.delete_artifact("case", rev1.case_id)
        with pytest.raises(StatusPreconditionError) as exc:
            svc.create_revision("case", rev1.case_id, "author")
        assert exc.value.current_status == "DELETED"

    def test_delete_twice(self, project):
        rev1 = _create_case(project)
        svc.delete_artifact("case", rev1.case_id)
        with pytest.raises(StatusPreconditionError):
            svc.delete_artifact("case", rev1.case_id)

    def test_scenario_revision_copies_items(self, scope):
        rev2 = svc.create_revision("scenario", scope.scenario.scenario_id, "author")
        assert [i.case_revision_id for i in rev2.items] == [scope.case_a.id, scope.case_b.id]
        assert [i.optional_flag for i in rev2.items] == [False, True]


# ═════════════════════════════════════════════════════════════════════════════
# Draft editing & review flow
# ═════════════════════════════════════════════════════════════════════════════


class TestReviewFlow:

    def test_update_draft(self, project):
        rev = _create_case(project)
        svc.update_draft("case", rev.id, {"title": "Renamed"})
        assert svc.get_revision("case", rev.id).title == "Renamed"

    def test_rejected_update_leaves_draft_untouched(self, project):
        rev = _create_case(project, title="Original")
        with pytest.raises(ValidationError):
            svc.update_draft("case", rev.id, {"title": "Renamed", "content": case_content(steps=[])})
        # An unrelated commit must not flush a partial edit.
        project_service.create_project("Other")
        db.session.expire_all()
        stored = svc.get_revision("case", rev.id)
        assert stored.title == "Original"
        assert stored.content["steps"] == case_content()["steps"]

    def test_rejected_scenario_items_leave_draft_untouched(self, project):
        case = _create_case(project)
        scenario = svc.create_test_scenario(project.id, "Checkout", [{"case_revision_id": case.id}], "author")
        with pytest.raises(ValidationError):
            svc.update_draft("scenario", scenario.id,
                             {"title": "Renamed", "items": [{"case_revision_id": 9999}]})
        project_service.create_project("Other")
        db.session.expire_all()
        stored = svc.get_revision("scenario", scenario.id)
        assert stored.title == "Checkout"
        assert [i.case_revision_id for i in stored.items] == [case.id]

    @pytest.mark.parametrize("target", ["IN_REVIEW", "APPROVED", "DEPRECATED"])
    def test_update_non_draft_is_immutable(self, project, approve, target):
        rev = _create_case(project)
        if target == "IN_REVIEW":
            svc.submit_for_review("case", rev.id)
        elif target == "APPROVED":
            approve("case", rev)
        else:
            svc.deprecate_revision("case", rev.id)
        with pytest.raises(ImmutableRevisionError) as exc:
            svc.update_draft("case", rev.id, {"title": "Nope"})
        assert exc.value.status == target

    def test_submit_requires_draft(self, project):
        rev = _create_case(project)
        svc.submit_for_review("case", rev.id, "author")
        with pytest.raises(ImmutableRevisionError):
            svc.submit_for_review("case", rev.id, "author")

    def test_approve_records_approval(self, project):
        rev = _create_case(project)
        svc.submit_for_review("case", rev.id)
        svc.approve_revision("case", rev.id, "qa-lead", comment="LGTM")
        assert rev.status == "APPROVED"
        assert rev.approved_by == "qa-lead"
        assert rev.approved_at is not None
        history = approval_service.list_for_object("CASE_REVISION", rev.id)
        assert len(history) == 1
        assert history[0]["decision"] == "APPROVED"
        assert history[0]["comment"] == "LGTM"

    def test_approve_requires_in_review(self, project):
        rev = _create_case(project)
        with pytest.raises(StatusPreconditionError) as exc:
            svc.approve_revision("case", rev.id, "qa-lead")
        assert exc.value.expected_status == ["IN_REVIEW"]

    def test_reject_requires_comment(self, project):
        rev = _create_case(project)
        svc.submit_for_review("case", rev.id)
        with pytest.raises(ValidationError):
            svc.reject_revision("case", rev.id, "qa-lead", "  ")
        assert svc.get_revision("case", rev.id).status == "IN_REVIEW"

    def test_reject_deprecates_and_records(self, project):
        rev = _create_case(project)
        svc.submit_for_review("case", rev.id)
        svc.reject_revision("case", rev.id, "qa-lead", "Missing negative path")
        assert rev.status == "DEPRECATED"
        record = ApprovalRecord.query.filter_by(object_id=rev.id).one()
        assert record.decision == "REJECTED"

    def test_return_to_draft(self, project):
        rev = _create_case(project)
        svc.submit_for_review("case", rev.id)
        svc.return_to_draft("case", rev.id)
        assert rev.status == "DRAFT"

    def test_deprecate_from_deprecated_is_invalid(self, project):
        rev = _create_case(project)
        svc.deprecate_revision("case", rev.id)
        with pytest.raises(InvalidTransitionError):
            svc.deprecate_revision("case", rev.id)

    def test_reopen_blocked_under_strict_policy(self, project):
        rev = _create_case(project)
        svc.deprecate_revision("case", rev.id)
        with pytest.raises(InvalidTransitionError):
            svc.reopen_revision("case", rev.id)

    def test_reopen_allowed_under_permissive_policy(self, app, project):
        rev = _create_case(project)
        svc.deprecate_revision("case", rev.id)
        app.config["REVISION_TRANSITION_POLICY"] = "permissive"
        try:
            svc.reopen_revision("case", rev.id)
        finally:
            app.config["REVISION_TRANSITION_POLICY"] = "strict"
        assert rev.status == "DRAFT"

    def test_available_transitions(self, project):
        rev = _create_case(project)
        assert svc.available_transitions("case", rev.id) == ["IN_REVIEW", "DEPRECATED"]

    def test_unknown_revision(self):
        with pytest.raises(NotFoundError):
            svc.submit_for_review("list", 777)
