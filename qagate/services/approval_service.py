"""
Approval collaborator — append-only decision trail.

Revision approval, revision rejection and release approval all record
their decision here.  Records are never updated or deleted; callers own
the surrounding transaction (this module flushes, it does not commit).
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from qagate.core.exceptions import ValidationError
from qagate.models import db
from qagate.models.approval import (
    DECISION_APPROVED,
    DECISION_REJECTED,
    VALID_DECISIONS,
    VALID_OBJECT_TYPES,
    ApprovalRecord,
)
from qagate.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


def record_decision(
    object_type: str,
    object_id: int,
    approver_id: str,
    decision: str = DECISION_APPROVED,
    comment: str | None = None,
    step: int = 1,
    evidence_links: list | None = None,
    now=None,
) -> ApprovalRecord:
    """Append an ApprovalRecord for (object_type, object_id).

    Raises:
        ValidationError: unknown object type / decision, missing approver,
            or a rejection without a comment.
    """
    if object_type not in VALID_OBJECT_TYPES:
        raise ValidationError(
            f"Invalid object_type '{object_type}'",
            details={"object_type": f"must be one of: {', '.join(sorted(VALID_OBJECT_TYPES))}"},
        )
    if decision not in VALID_DECISIONS:
        raise ValidationError(
            f"Invalid decision '{decision}'",
            details={"decision": "must be APPROVED or REJECTED"},
        )
    if not (approver_id or "").strip():
        raise ValidationError("approver_id is required", details={"approver_id": "required"})
    if decision == DECISION_REJECTED and not (comment or "").strip():
        raise ValidationError(
            "A comment is required when rejecting",
            details={"comment": "required for rejection"},
        )

    record = ApprovalRecord(
        object_type=object_type,
        object_id=object_id,
        step=step,
        decision=decision,
        approver_id=approver_id,
        comment=comment,
        evidence_links=evidence_links or [],
        created_at=now or utcnow(),
    )
    db.session.add(record)
    db.session.flush()

    logger.info(
        "Approval recorded: %s %s id=%s by %s",
        decision, object_type, object_id, approver_id,
        extra={"event_type": "approval_recorded", "actor": approver_id},
    )
    return record


def list_for_object(object_type: str, object_id: int) -> list[dict]:
    """Full decision history for one object, oldest first."""
    stmt = (
        select(ApprovalRecord)
        .where(
            ApprovalRecord.object_type == object_type,
            ApprovalRecord.object_id == object_id,
        )
        .order_by(ApprovalRecord.created_at.asc(), ApprovalRecord.id.asc())
    )
    return [r.to_dict() for r in db.session.execute(stmt).scalars().all()]


def latest_decision(object_type: str, object_id: int) -> ApprovalRecord | None:
    stmt = (
        select(ApprovalRecord)
        .where(
            ApprovalRecord.object_type == object_type,
            ApprovalRecord.object_id == object_id,
        )
        .order_by(ApprovalRecord.id.desc())
        .limit(1)
    )
    return db.session.execute(stmt).scalars().first()
