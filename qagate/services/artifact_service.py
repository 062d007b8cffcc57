"""
Versioned artifact service — test cases, test scenarios, test-scenario lists.

All three kinds share one lifecycle (see ``revision_lifecycle``):

    create            → stable id + revision 1 in DRAFT
    create_revision   → rev N+1 in DRAFT, only when rev N is APPROVED
    update_draft      → content edits, DRAFT only
    submit_for_review → DRAFT → IN_REVIEW
    approve_revision  → IN_REVIEW → APPROVED (+ approval record)
    reject_revision   → IN_REVIEW → DEPRECATED (+ rejection record)
    return_to_draft   → IN_REVIEW → DRAFT
    deprecate         → any → DEPRECATED where the table allows
    reopen            → DEPRECATED → DRAFT (permissive policy only)
    delete_artifact   → tombstone; no further revisions

``kind`` is one of ``"case"``, ``"scenario"``, ``"list"``.  Every
operation commits its own unit of work and raises a
``qagate.core.exceptions`` type on failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from qagate.core.exceptions import (
    ImmutableRevisionError,
    NotFoundError,
    StatusPreconditionError,
    ValidationError,
)
from qagate.models import db
from qagate.models.approval import (
    DECISION_REJECTED,
    OBJECT_CASE_REVISION,
    OBJECT_LIST_REVISION,
    OBJECT_SCENARIO_REVISION,
)
from qagate.models.artifact import (
    CASE_PRIORITIES,
    DEFAULT_REVISION_REASON,
    INCLUDE_RULE_FULL,
    INCLUDE_RULES,
    REVISION_APPROVED,
    REVISION_DEPRECATED,
    REVISION_DRAFT,
    REVISION_IN_REVIEW,
    TestCase,
    TestCaseRevision,
    TestScenario,
    TestScenarioItem,
    TestScenarioList,
    TestScenarioListItem,
    TestScenarioListRevision,
    TestScenarioRevision,
)
from qagate.models.project import Project
from qagate.services import approval_service, revision_lifecycle
from qagate.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

CASE = "case"
SCENARIO = "scenario"
LIST = "list"


@dataclass(frozen=True)
class ArtifactKind:
    name: str
    label: str
    model: type
    revision_model: type
    stable_fk: str
    approval_object_type: str

    @property
    def revision_label(self) -> str:
        return f"{self.label}Revision"

    def stable_column(self):
        return getattr(self.revision_model, self.stable_fk)


_KINDS = {
    CASE: ArtifactKind(CASE, "TestCase", TestCase, TestCaseRevision,
                       "case_id", OBJECT_CASE_REVISION),
    SCENARIO: ArtifactKind(SCENARIO, "TestScenario", TestScenario, TestScenarioRevision,
                           "scenario_id", OBJECT_SCENARIO_REVISION),
    LIST: ArtifactKind(LIST, "TestScenarioList", TestScenarioList, TestScenarioListRevision,
                       "list_id", OBJECT_LIST_REVISION),
}

ARTIFACT_KINDS = tuple(_KINDS)


# ── Lookups ──────────────────────────────────────────────────────────────


def get_kind(kind: str) -> ArtifactKind:
    try:
        return _KINDS[kind]
    except KeyError:
        raise ValidationError(
            f"Unknown artifact kind '{kind}'",
            details={"kind": f"must be one of: {', '.join(ARTIFACT_KINDS)}"},
        ) from None


def _get_artifact(k: ArtifactKind, stable_id: int):
    artifact = db.session.get(k.model, stable_id)
    if artifact is None:
        raise NotFoundError(k.label, stable_id)
    return artifact


def _get_revision(k: ArtifactKind, revision_id: int):
    revision = db.session.get(k.revision_model, revision_id)
    if revision is None:
        raise NotFoundError(k.revision_label, revision_id)
    return revision


def _latest_revision(k: ArtifactKind, stable_id: int):
    stmt = (
        select(k.revision_model)
        .where(k.stable_column() == stable_id)
        .order_by(k.revision_model.rev.desc())
        .limit(1)
    )
    return db.session.execute(stmt).scalars().first()


def _require_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


# ── Content validation ───────────────────────────────────────────────────


def _clean_title(title) -> str:
    title = (title or "").strip() if isinstance(title, str) else ""
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    if len(title) > 500:
        raise ValidationError("title is too long", details={"title": "max 500 characters"})
    return title


def validate_case_content(content: dict | None) -> dict:
    """Validate and normalise a test-case content payload.

    Required: ``steps`` (non-empty list of non-blank strings) and
    ``expected_result``.  Optional: priority, tags, environment,
    preconditions, test_data, notes.
    """
    if not isinstance(content, dict):
        raise ValidationError("content must be an object", details={"content": "invalid"})

    errors: dict[str, str] = {}
    steps = content.get("steps")
    if not isinstance(steps, list) or not steps:
        errors["steps"] = "at least one step is required"
    else:
        blank = [i for i, s in enumerate(steps) if not isinstance(s, str) or not s.strip()]
        if blank:
            errors["steps"] = f"steps must be non-empty text (invalid at index {blank[0]})"

    expected = content.get("expected_result")
    if not isinstance(expected, str) or not expected.strip():
        errors["expected_result"] = "required"

    priority = content.get("priority")
    if priority is not None and priority not in CASE_PRIORITIES:
        errors["priority"] = f"must be one of: {', '.join(sorted(CASE_PRIORITIES))}"

    tags = content.get("tags")
    if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
        errors["tags"] = "must be a list of strings"

    if errors:
        raise ValidationError("Invalid test case content", details=errors)

    normalised = {
        "steps": [s.strip() for s in steps],
        "expected_result": expected.strip(),
        "tags": list(tags or []),
    }
    for key in ("priority", "environment", "preconditions", "test_data", "notes"):
        if content.get(key) is not None:
            normalised[key] = content[key]
    return normalised


def _build_scenario_items(project_id: int, items) -> list[TestScenarioItem]:
    if not isinstance(items, list):
        raise ValidationError("items must be a list", details={"items": "invalid"})
    built = []
    for index, raw in enumerate(items):
        case_revision_id = (raw or {}).get("case_revision_id")
        case_revision = db.session.get(TestCaseRevision, case_revision_id) if case_revision_id else None
        if case_revision is None:
            raise ValidationError(
                "Scenario item references an unknown test case revision",
                details={f"items[{index}].case_revision_id": f"not found: {case_revision_id}"},
            )
        if case_revision.artifact.project_id != project_id:
            raise ValidationError(
                "Scenario item references a test case of another project",
                details={f"items[{index}].case_revision_id": "project mismatch"},
            )
        built.append(TestScenarioItem(
            case_revision_id=case_revision_id,
            order=raw.get("order", index + 1),
            optional_flag=bool(raw.get("optional_flag", False)),
            note=raw.get("note"),
        ))
    return sorted(built, key=lambda i: i.order)


def _build_list_items(project_id: int, items) -> list[TestScenarioListItem]:
    if not isinstance(items, list):
        raise ValidationError("items must be a list", details={"items": "invalid"})
    built = []
    for index, raw in enumerate(items):
        scenario_revision_id = (raw or {}).get("scenario_revision_id")
        scenario_revision = (
            db.session.get(TestScenarioRevision, scenario_revision_id) if scenario_revision_id else None
        )
        if scenario_revision is None:
            raise ValidationError(
                "List item references an unknown test scenario revision",
                details={f"items[{index}].scenario_revision_id": f"not found: {scenario_revision_id}"},
            )
        if scenario_revision.artifact.project_id != project_id:
            raise ValidationError(
                "List item references a scenario of another project",
                details={f"items[{index}].scenario_revision_id": "project mismatch"},
            )
        include_rule = raw.get("include_rule") or INCLUDE_RULE_FULL
        if include_rule not in INCLUDE_RULES:
            raise ValidationError(
                f"Invalid include_rule '{include_rule}'",
                details={f"items[{index}].include_rule": "must be FULL or REQUIRED_ONLY"},
            )
        built.append(TestScenarioListItem(
            scenario_revision_id=scenario_revision_id,
            order=raw.get("order", index + 1),
            include_rule=include_rule,
            note=raw.get("note"),
        ))
    return sorted(built, key=lambda i: i.order)


def _apply_payload(k: ArtifactKind, revision, project_id: int, payload: dict) -> None:
    """Write title/content/items from ``payload`` onto a DRAFT revision.

    Every field is validated before any is assigned, so a rejected payload
    leaves the revision untouched.
    """
    changes = {}
    if "title" in payload:
        changes["title"] = _clean_title(payload["title"])
    if k.name == CASE:
        if "content" in payload:
            changes["content"] = validate_case_content(payload["content"])
    else:
        if "description" in payload:
            changes["description"] = payload["description"]
        if "items" in payload:
            builder = _build_scenario_items if k.name == SCENARIO else _build_list_items
            changes["items"] = builder(project_id, payload["items"])
    for attr, value in changes.items():
        setattr(revision, attr, value)


def _copy_forward(k: ArtifactKind, source) -> dict:
    """Payload that reproduces ``source`` content on a new revision."""
    payload = {"title": source.title}
    if k.name == CASE:
        payload["content"] = dict(source.content or {})
    elif k.name == SCENARIO:
        payload["description"] = source.description
        payload["items"] = [
            {"case_revision_id": i.case_revision_id, "order": i.order,
             "optional_flag": i.optional_flag, "note": i.note}
            for i in source.items
        ]
    else:
        payload["description"] = source.description
        payload["items"] = [
            {"scenario_revision_id": i.scenario_revision_id, "order": i.order,
             "include_rule": i.include_rule, "note": i.note}
            for i in source.items
        ]
    return payload


def _set_status(k: ArtifactKind, revision, expected: str, new_status: str, **values) -> None:
    """Compare-and-swap status write keyed on the expected current status."""
    stmt = (
        update(k.revision_model)
        .where(k.revision_model.id == revision.id, k.revision_model.status == expected)
        .values(status=new_status, **values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount == 0:
        db.session.rollback()
        current = db.session.get(k.revision_model, revision.id)
        raise StatusPreconditionError(
            k.revision_label, revision.id, current.status if current else None, expected,
        )
    db.session.refresh(revision)


def _log_status(k: ArtifactKind, revision, from_status: str, actor: str | None) -> None:
    logger.info(
        "%s id=%s rev=%s: %s → %s",
        k.revision_label, revision.id, revision.rev, from_status, revision.status,
        extra={
            "event_type": "revision_status_changed",
            "artifact_kind": k.name,
            "revision_id": revision.id,
            "from_status": from_status,
            "to_status": revision.status,
            "actor": actor,
        },
    )


# ═════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════


def create_artifact(
    kind: str,
    project_id: int,
    created_by: str,
    payload: dict,
    reason: str | None = None,
    now=None,
):
    """Create a stable identity plus revision 1 (DRAFT) in one commit."""
    k = get_kind(kind)
    _require_project(project_id)
    if not (created_by or "").strip():
        raise ValidationError("created_by is required", details={"created_by": "required"})
    if "title" not in payload:
        raise ValidationError("title is required", details={"title": "required"})
    if k.name == CASE and "content" not in payload:
        raise ValidationError("content is required", details={"content": "required"})

    now = now or utcnow()
    artifact = k.model(project_id=project_id, created_at=now)
    revision = k.revision_model(
        rev=1,
        status=REVISION_DRAFT,
        title="",
        reason=reason or DEFAULT_REVISION_REASON,
        created_by=created_by,
        created_at=now,
    )
    _apply_payload(k, revision, project_id, payload)
    artifact.revisions.append(revision)
    db.session.add(artifact)
    db.session.commit()

    logger.info(
        "%s id=%s created with rev=1", k.label, artifact.id,
        extra={"event_type": "artifact_created", "project_id": project_id,
               "artifact_kind": k.name, "revision_id": revision.id, "actor": created_by},
    )
    return revision


def create_test_case(project_id, title, content, created_by, reason=None, now=None):
    return create_artifact(CASE, project_id, created_by,
                           {"title": title, "content": content}, reason=reason, now=now)


def create_test_scenario(project_id, title, items, created_by, description=None, reason=None, now=None):
    return create_artifact(SCENARIO, project_id, created_by,
                           {"title": title, "items": items, "description": description},
                           reason=reason, now=now)


def create_test_scenario_list(project_id, title, items, created_by, description=None, reason=None, now=None):
    return create_artifact(LIST, project_id, created_by,
                           {"title": title, "items": items, "description": description},
                           reason=reason, now=now)


def create_revision(
    kind: str,
    stable_id: int,
    created_by: str,
    payload: dict | None = None,
    reason: str | None = None,
    now=None,
):
    """Create revision N+1 (DRAFT).

    The latest revision must be APPROVED; this keeps at most one revision
    in flight per lineage.  Content not given in ``payload`` is carried
    forward from the latest revision.

    Raises:
        NotFoundError: unknown stable id.
        StatusPreconditionError: artifact deleted, or latest not APPROVED.
    """
    k = get_kind(kind)
    artifact = _get_artifact(k, stable_id)
    if artifact.is_deleted:
        raise StatusPreconditionError(k.label, stable_id, "DELETED", "ACTIVE")
    if not (created_by or "").strip():
        raise ValidationError("created_by is required", details={"created_by": "required"})

    latest = _latest_revision(k, stable_id)
    if latest is None or latest.status != REVISION_APPROVED:
        raise StatusPreconditionError(
            k.revision_label,
            latest.id if latest else None,
            latest.status if latest else None,
            REVISION_APPROVED,
        )

    now = now or utcnow()
    merged = _copy_forward(k, latest)
    merged.update(payload or {})
    revision = k.revision_model(
        rev=latest.rev + 1,
        status=REVISION_DRAFT,
        title="",
        reason=reason,
        created_by=created_by,
        created_at=now,
    )
    setattr(revision, k.stable_fk, stable_id)
    _apply_payload(k, revision, artifact.project_id, merged)
    db.session.add(revision)
    try:
        db.session.commit()
    except IntegrityError:
        # Another writer took rev N+1 first; its DRAFT is now the latest.
        db.session.rollback()
        raise StatusPreconditionError(
            k.revision_label, latest.id, REVISION_DRAFT, REVISION_APPROVED,
        ) from None

    logger.info(
        "%s id=%s: created rev=%s", k.label, stable_id, revision.rev,
        extra={"event_type": "revision_created", "artifact_kind": k.name,
               "revision_id": revision.id, "actor": created_by},
    )
    return revision


# ═════════════════════════════════════════════════════════════════════════
# Draft editing & status transitions
# ═════════════════════════════════════════════════════════════════════════


def update_draft(kind: str, revision_id: int, payload: dict):
    """Edit title/content/items of a DRAFT revision."""
    k = get_kind(kind)
    revision = _get_revision(k, revision_id)
    if not revision_lifecycle.is_editable(revision.status):
        raise ImmutableRevisionError(k.revision_label, revision.id, revision.status)
    _apply_payload(k, revision, revision.artifact.project_id, payload)
    db.session.commit()
    return revision


def submit_for_review(kind: str, revision_id: int, submitted_by: str | None = None):
    k = get_kind(kind)
    revision = _get_revision(k, revision_id)
    if revision.status != REVISION_DRAFT:
        raise ImmutableRevisionError(k.revision_label, revision.id, revision.status)
    revision_lifecycle.require_transition(REVISION_DRAFT, REVISION_IN_REVIEW, k.revision_label)

    _set_status(k, revision, REVISION_DRAFT, REVISION_IN_REVIEW)
    db.session.commit()
    _log_status(k, revision, REVISION_DRAFT, submitted_by)
    return revision


def approve_revision(kind: str, revision_id: int, approver_id: str, comment: str | None = None, now=None):
    """IN_REVIEW → APPROVED, recording the decision on the approval trail."""
    k = get_kind(kind)
    revision = _get_revision(k, revision_id)
    if not revision_lifecycle.is_approvable(revision.status):
        raise StatusPreconditionError(k.revision_label, revision.id, revision.status, REVISION_IN_REVIEW)
    revision_lifecycle.require_transition(revision.status, REVISION_APPROVED, k.revision_label)

    now = now or utcnow()
    _set_status(k, revision, REVISION_IN_REVIEW, REVISION_APPROVED,
                approved_by=approver_id, approved_at=now)
    approval_service.record_decision(k.approval_object_type, revision.id, approver_id,
                                     comment=comment, now=now)
    db.session.commit()
    _log_status(k, revision, REVISION_IN_REVIEW, approver_id)
    return revision


def reject_revision(kind: str, revision_id: int, approver_id: str, comment: str, now=None):
    """IN_REVIEW → DEPRECATED; a rejection comment is mandatory."""
    k = get_kind(kind)
    revision = _get_revision(k, revision_id)
    if not revision_lifecycle.is_approvable(revision.status):
        raise StatusPreconditionError(k.revision_label, revision.id, revision.status, REVISION_IN_REVIEW)
    if not (comment or "").strip():
        raise ValidationError("A comment is required when rejecting",
                              details={"comment": "required for rejection"})
    revision_lifecycle.require_transition(revision.status, REVISION_DEPRECATED, k.revision_label)

    _set_status(k, revision, REVISION_IN_REVIEW, REVISION_DEPRECATED)
    approval_service.record_decision(k.approval_object_type, revision.id, approver_id,
                                     decision=DECISION_REJECTED, comment=comment, now=now)
    db.session.commit()
    _log_status(k, revision, REVISION_IN_REVIEW, approver_id)
    return revision


def return_to_draft(kind: str, revision_id: int, actor: str | None = None):
    """IN_REVIEW → DRAFT so the author can keep editing."""
    k = get_kind(kind)
    revision = _get_revision(k, revision_id)
    if revision.status != REVISION_IN_REVIEW:
        raise StatusPreconditionError(k.revision_label, revision.id, revision.status, REVISION_IN_REVIEW)
    revision_lifecycle.require_transition(REVISION_IN_REVIEW, REVISION_DRAFT, k.revision_label)

    _set_status(k, revision, REVISION_IN_REVIEW, REVISION_DRAFT)
    db.session.commit()
    _log_status(k, revision, REVISION_IN_REVIEW, actor)
    return revision


def deprecate_revision(kind: str, revision_id: int, actor: str | None = None):
    k = get_kind(kind)
    revision = _get_revision(k, revision_id)
    from_status = revision.status
    revision_lifecycle.require_transition(from_status, REVISION_DEPRECATED, k.revision_label)

    _set_status(k, revision, from_status, REVISION_DEPRECATED)
    db.session.commit()
    _log_status(k, revision, from_status, actor)
    return revision


def reopen_revision(kind: str, revision_id: int, actor: str | None = None):
    """DEPRECATED → DRAFT on the latest revision; permissive policy only."""
    k = get_kind(kind)
    revision = _get_revision(k, revision_id)
    if revision.status != REVISION_DEPRECATED:
        raise StatusPreconditionError(k.revision_label, revision.id, revision.status, REVISION_DEPRECATED)
    revision_lifecycle.require_transition(REVISION_DEPRECATED, REVISION_DRAFT, k.revision_label)
    latest = _latest_revision(k, revision.stable_id)
    if latest.id != revision.id:
        raise ValidationError(
            "Only the latest revision can be reopened",
            details={"revision_id": f"latest is rev {latest.rev}"},
        )

    _set_status(k, revision, REVISION_DEPRECATED, REVISION_DRAFT)
    db.session.commit()
    _log_status(k, revision, REVISION_DEPRECATED, actor)
    return revision


def delete_artifact(kind: str, stable_id: int, now=None):
    """Tombstone an artifact; its history stays readable."""
    k = get_kind(kind)
    artifact = _get_artifact(k, stable_id)
    if artifact.is_deleted:
        raise StatusPreconditionError(k.label, stable_id, "DELETED", "ACTIVE")
    artifact.soft_delete(now)
    db.session.commit()
    logger.info("%s id=%s deleted", k.label, stable_id,
                extra={"event_type": "artifact_deleted", "artifact_kind": k.name})
    return artifact


# ═════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════


def get_revision(kind: str, revision_id: int):
    return _get_revision(get_kind(kind), revision_id)


def get_latest_revision(kind: str, stable_id: int):
    k = get_kind(kind)
    _get_artifact(k, stable_id)
    return _latest_revision(k, stable_id)


def get_artifact(kind: str, stable_id: int) -> dict:
    k = get_kind(kind)
    artifact = _get_artifact(k, stable_id)
    latest = _latest_revision(k, stable_id)
    d = artifact.to_dict()
    d["kind"] = k.name
    d["latest_revision"] = latest.to_dict() if latest else None
    return d


def get_revision_history(kind: str, stable_id: int, limit: int = 50, offset: int = 0) -> dict:
    """Revisions newest first, with the total count for paging."""
    k = get_kind(kind)
    _get_artifact(k, stable_id)
    total = db.session.execute(
        select(func.count()).select_from(k.revision_model).where(k.stable_column() == stable_id)
    ).scalar_one()
    stmt = (
        select(k.revision_model)
        .where(k.stable_column() == stable_id)
        .order_by(k.revision_model.rev.desc())
        .limit(limit)
        .offset(offset)
    )
    items = db.session.execute(stmt).scalars().all()
    return {"items": [r.to_dict() for r in items], "total": total}


def available_transitions(kind: str, revision_id: int) -> list[str]:
    revision = get_revision(kind, revision_id)
    return revision_lifecycle.available_transitions(revision.status)
