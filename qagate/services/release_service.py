"""
Release lifecycle service.

State machine (RELEASE_TRANSITIONS in ``qagate.models.release``):

    PLANNING ─► EXECUTING ─► GATE_CHECK ─► APPROVED_FOR_RELEASE ─► RELEASED
        │          ▲  │          ▲  │              │  ▲
        │          └──┘          └──┘              └──┘ (back edges)
        └──────────────────────────────────────────────► RELEASED

Orchestration rules:
    set_baseline      PLANNING / EXECUTING only; first baseline in
                      PLANNING advances to EXECUTING (same commit)
    evaluate_gate     EXECUTING / GATE_CHECK only; EXECUTING → GATE_CHECK
    approve_release   GATE_CHECK only; blocked by any unwaived CRITICAL
                      violation; records an approval, → APPROVED_FOR_RELEASE

Every status write is a compare-and-swap keyed on the expected current
status, so of two concurrent approvals only one can succeed; the loser
gets a StatusPreconditionError naming the status it actually found.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update

from qagate.core.exceptions import (
    GateViolationError,
    InvalidTransitionError,
    NotFoundError,
    StatusPreconditionError,
    ValidationError,
)
from qagate.models import db
from qagate.models.approval import OBJECT_RELEASE
from qagate.models.artifact import TestScenarioListRevision
from qagate.models.project import Project
from qagate.models.release import (
    APPROVABLE_STATUSES,
    BASELINE_ALLOWED_STATUSES,
    EVALUATABLE_STATUSES,
    RELEASE_APPROVED,
    RELEASE_EXECUTING,
    RELEASE_GATE_CHECK,
    RELEASE_PLANNING,
    RELEASE_STATUSES,
    RELEASE_TRANSITIONS,
    Release,
    ReleaseBaseline,
)
from qagate.services import approval_service, gate_evaluator
from qagate.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


# ── Pure rules ───────────────────────────────────────────────────────────


def can_transition_release(from_status: str, to_status: str) -> bool:
    if from_status == to_status:
        return False
    return to_status in RELEASE_TRANSITIONS.get(from_status, frozenset())


def is_approvable(status: str) -> bool:
    return status in APPROVABLE_STATUSES


def is_evaluatable(status: str) -> bool:
    return status in EVALUATABLE_STATUSES


# ── Private helpers ──────────────────────────────────────────────────────


def get_release(release_id: int) -> Release:
    release = db.session.get(Release, release_id)
    if release is None:
        raise NotFoundError("Release", release_id)
    return release


def _swap_status(release: Release, expected: str, new_status: str, now=None) -> None:
    """Conditional status update; raises if ``expected`` no longer holds.

    Flushes only; the caller commits.
    """
    if not can_transition_release(expected, new_status):
        raise InvalidTransitionError("Release", expected, new_status)
    stmt = (
        update(Release)
        .where(Release.id == release.id, Release.status == expected)
        .values(status=new_status, updated_at=now or utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount == 0:
        db.session.rollback()
        current = db.session.get(Release, release.id)
        raise StatusPreconditionError(
            "Release", release.id, current.status if current else None, expected,
        )
    db.session.refresh(release)
    logger.info(
        "Release %s: %s → %s", release.id, expected, new_status,
        extra={"event_type": "release_status_changed", "release_id": release.id,
               "from_status": expected, "to_status": new_status},
    )


def _require_status(release: Release, allowed) -> None:
    if release.status not in allowed:
        raise StatusPreconditionError("Release", release.id, release.status, list(allowed))


# ═════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════


def create_release(
    project_id: int,
    name: str,
    description: str | None = None,
    build_ref: str | None = None,
    now=None,
) -> Release:
    if db.session.get(Project, project_id) is None:
        raise NotFoundError("Project", project_id)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if len(name) > 200:
        raise ValidationError("name is too long", details={"name": "max 200 characters"})

    now = now or utcnow()
    release = Release(
        project_id=project_id,
        name=name,
        description=description,
        build_ref=build_ref,
        status=RELEASE_PLANNING,
        created_at=now,
        updated_at=now,
    )
    db.session.add(release)
    db.session.commit()
    logger.info("Release %s created: %s", release.id, name,
                extra={"event_type": "release_created", "release_id": release.id,
                       "project_id": project_id})
    return release


def list_releases(project_id: int, status: str | None = None) -> list[dict]:
    if db.session.get(Project, project_id) is None:
        raise NotFoundError("Project", project_id)
    stmt = select(Release).where(Release.project_id == project_id)
    if status:
        stmt = stmt.where(Release.status == status)
    stmt = stmt.order_by(Release.created_at.desc(), Release.id.desc())
    return [r.to_dict() for r in db.session.execute(stmt).scalars().all()]


# ═════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═════════════════════════════════════════════════════════════════════════


def set_baseline(release_id: int, source_list_revision_id: int, created_by: str, now=None) -> ReleaseBaseline:
    """Attach a list revision as required scope.

    The first baseline created while PLANNING advances the release to
    EXECUTING in the same commit; later baselines leave status alone.
    """
    release = get_release(release_id)
    _require_status(release, BASELINE_ALLOWED_STATUSES)
    if not (created_by or "").strip():
        raise ValidationError("created_by is required", details={"created_by": "required"})

    list_revision = db.session.get(TestScenarioListRevision, source_list_revision_id)
    if list_revision is None:
        raise NotFoundError("TestScenarioListRevision", source_list_revision_id)
    if list_revision.artifact.project_id != release.project_id:
        raise ValidationError(
            "Baseline list revision belongs to another project",
            details={"source_list_revision_id": "project mismatch"},
        )

    now = now or utcnow()
    from_status = release.status
    baseline = ReleaseBaseline(
        release_id=release.id,
        source_list_revision_id=source_list_revision_id,
        created_by=created_by,
        created_at=now,
    )
    db.session.add(baseline)
    db.session.flush()
    if from_status == RELEASE_PLANNING:
        _swap_status(release, RELEASE_PLANNING, RELEASE_EXECUTING, now=now)
    db.session.commit()

    logger.info(
        "Baseline %s set on release %s (list revision %s)",
        baseline.id, release.id, source_list_revision_id,
        extra={"event_type": "baseline_set", "release_id": release.id, "actor": created_by},
    )
    return baseline


def evaluate_gate(release_id: int, conditions=None, now=None) -> gate_evaluator.GateEvaluationResult:
    """Evaluate the gate; the first evaluation moves EXECUTING → GATE_CHECK."""
    release = get_release(release_id)
    if not is_evaluatable(release.status):
        raise StatusPreconditionError("Release", release.id, release.status, list(EVALUATABLE_STATUSES))

    result = gate_evaluator.evaluate(release.id, conditions, now=now)
    if release.status == RELEASE_EXECUTING:
        _swap_status(release, RELEASE_EXECUTING, RELEASE_GATE_CHECK, now=now)
        db.session.commit()
    return result


def approve_release(
    release_id: int,
    approver_id: str,
    comment: str | None = None,
    now=None,
) -> tuple[Release, gate_evaluator.GateEvaluationResult]:
    """Approve a release sitting in GATE_CHECK.

    The gate is always evaluated against the default conditions; callers
    cannot narrow the set that approval checks.

    Raises:
        StatusPreconditionError: release not in GATE_CHECK (including a
            concurrent approval that got there first).
        GateViolationError: unwaived CRITICAL violations remain; carries
            the full violation list.
    """
    release = get_release(release_id)
    if not is_approvable(release.status):
        raise StatusPreconditionError("Release", release.id, release.status, list(APPROVABLE_STATUSES))
    if not (approver_id or "").strip():
        raise ValidationError("approver_id is required", details={"approver_id": "required"})

    now = now or utcnow()
    result = gate_evaluator.evaluate(release.id, gate_evaluator.DEFAULT_GATE_CONDITIONS, now=now)
    if not result.passed:
        logger.warning(
            "Approval of release %s blocked by %d violation(s)",
            release.id, len(result.blocking_violations),
            extra={"event_type": "release_approval_blocked", "release_id": release.id,
                   "actor": approver_id},
        )
        raise GateViolationError(release.id, result.violations)

    _swap_status(release, RELEASE_GATE_CHECK, RELEASE_APPROVED, now=now)
    approval_service.record_decision(OBJECT_RELEASE, release.id, approver_id, comment=comment, now=now)
    db.session.commit()

    logger.info(
        "Release %s approved by %s", release.id, approver_id,
        extra={"event_type": "release_approved", "release_id": release.id, "actor": approver_id},
    )
    return release, result


def transition_release(release_id: int, to_status: str, now=None) -> Release:
    """Manual table-checked move (send back, mark released, ...)."""
    release = get_release(release_id)
    if to_status not in RELEASE_STATUSES:
        raise ValidationError(
            f"Unknown release status '{to_status}'",
            details={"status": f"must be one of: {', '.join(RELEASE_STATUSES)}"},
        )
    if to_status == RELEASE_APPROVED:
        raise ValidationError(
            "Use release approval to move a release to APPROVED_FOR_RELEASE",
            details={"status": "approval required"},
        )
    if to_status == RELEASE_GATE_CHECK and release.status == RELEASE_EXECUTING:
        raise ValidationError(
            "Evaluate the release gate to move a release to GATE_CHECK",
            details={"status": "gate evaluation required"},
        )
    _swap_status(release, release.status, to_status, now=now)
    db.session.commit()
    return release
