"""Revision lifecycle rules — transition tables and status predicates.

Every (from, to) pair of the four revision statuses is asserted against
both the strict and the permissive table.
"""

import itertools

import pytest

from qagate.core.exceptions import InvalidTransitionError
from qagate.services import revision_lifecycle as rl

DRAFT, IN_REVIEW, APPROVED, DEPRECATED = "DRAFT", "IN_REVIEW", "APPROVED", "DEPRECATED"
STATUSES = (DRAFT, IN_REVIEW, APPROVED, DEPRECATED)

STRICT_ALLOWED = {
    (DRAFT, IN_REVIEW), (DRAFT, DEPRECATED),
    (IN_REVIEW, APPROVED), (IN_REVIEW, DEPRECATED), (IN_REVIEW, DRAFT),
    (APPROVED, DEPRECATED),
}
PERMISSIVE_ALLOWED = STRICT_ALLOWED | {(DEPRECATED, DRAFT)}


# ═════════════════════════════════════════════════════════════════════════════
# Transition tables
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("from_status,to_status", list(itertools.product(STATUSES, STATUSES)))
def test_strict_table_all_pairs(from_status, to_status):
    expected = (from_status, to_status) in STRICT_ALLOWED
    assert rl.can_transition_to(from_status, to_status, "strict") is expected


@pytest.mark.parametrize("from_status,to_status", list(itertools.product(STATUSES, STATUSES)))
def test_permissive_table_all_pairs(from_status, to_status):
    expected = (from_status, to_status) in PERMISSIVE_ALLOWED
    assert rl.can_transition_to(from_status, to_status, "permissive") is expected


class TestTransitionRules:

    @pytest.mark.parametrize("status", STATUSES)
    def test_self_transition_never_allowed(self, status):
        assert rl.can_transition_to(status, status, "strict") is False
        assert rl.can_transition_to(status, status, "permissive") is False

    def test_unknown_status_is_rejected(self):
        assert rl.can_transition_to("ARCHIVED", DRAFT) is False
        assert rl.can_transition_to(DRAFT, "ARCHIVED") is False

    def test_policy_defaults_to_app_config(self, app):
        assert app.config["REVISION_TRANSITION_POLICY"] == "strict"
        assert rl.can_transition_to(DEPRECATED, DRAFT) is False

    def test_policy_follows_app_config_change(self, app):
        app.config["REVISION_TRANSITION_POLICY"] = "permissive"
        try:
            assert rl.can_transition_to(DEPRECATED, DRAFT) is True
        finally:
            app.config["REVISION_TRANSITION_POLICY"] = "strict"

    def test_unknown_policy_raises(self):
        with pytest.raises(ValueError):
            rl.can_transition_to(DRAFT, IN_REVIEW, "lenient")

    def test_available_transitions_in_canonical_order(self):
        assert rl.available_transitions(IN_REVIEW, "strict") == [DRAFT, APPROVED, DEPRECATED]
        assert rl.available_transitions(DEPRECATED, "strict") == []
        assert rl.available_transitions(DEPRECATED, "permissive") == [DRAFT]

    def test_require_transition_raises_with_edge(self):
        with pytest.raises(InvalidTransitionError) as exc:
            rl.require_transition(APPROVED, DRAFT, "TestCaseRevision")
        assert exc.value.from_status == APPROVED
        assert exc.value.to_status == DRAFT
        assert exc.value.resource == "TestCaseRevision"

    def test_require_transition_passes_for_allowed_edge(self):
        rl.require_transition(DRAFT, IN_REVIEW)


# ═════════════════════════════════════════════════════════════════════════════
# Predicates
# ═════════════════════════════════════════════════════════════════════════════


class TestPredicates:

    @pytest.mark.parametrize("status,editable", [
        (DRAFT, True), (IN_REVIEW, False), (APPROVED, False), (DEPRECATED, False),
    ])
    def test_is_editable(self, status, editable):
        assert rl.is_editable(status) is editable

    @pytest.mark.parametrize("status,approvable", [
        (DRAFT, False), (IN_REVIEW, True), (APPROVED, False), (DEPRECATED, False),
    ])
    def test_is_approvable(self, status, approvable):
        assert rl.is_approvable(status) is approvable

    @pytest.mark.parametrize("status,final", [
        (DRAFT, False), (IN_REVIEW, False), (APPROVED, True), (DEPRECATED, True),
    ])
    def test_is_final_status(self, status, final):
        assert rl.is_final_status(status) is final
