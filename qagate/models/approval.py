"""
ApprovalRecord — append-only approval trail.

Every approve / reject decision on a revision, a release or a waiver
creates a new record; records are never updated or deleted.

Polymorphic FK pattern:
    object_type + object_id together identify the approved object.
"""

from qagate.models import db
from qagate.utils.timeutil import iso, utcnow

# ── Constants ─────────────────────────────────────────────────────────────────

OBJECT_CASE_REVISION = "CASE_REVISION"
OBJECT_SCENARIO_REVISION = "SCENARIO_REVISION"
OBJECT_LIST_REVISION = "LIST_REVISION"
OBJECT_RELEASE = "RELEASE"
OBJECT_WAIVER = "WAIVER"

VALID_OBJECT_TYPES = frozenset({
    OBJECT_CASE_REVISION,
    OBJECT_SCENARIO_REVISION,
    OBJECT_LIST_REVISION,
    OBJECT_RELEASE,
    OBJECT_WAIVER,
})

DECISION_APPROVED = "APPROVED"
DECISION_REJECTED = "REJECTED"
VALID_DECISIONS = frozenset({DECISION_APPROVED, DECISION_REJECTED})


class ApprovalRecord(db.Model):
    """
    Immutable approval decision for any approvable object.

    Business rules:
    - Records are NEVER deleted or updated — append-only log.
    - The most recent record for (object_type, object_id) is the current
      decision.
    - A REJECTED decision carries a non-empty comment.
    """

    __tablename__ = "approval_records"
    __table_args__ = (
        db.Index("ix_approval_records_object", "object_type", "object_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    object_type = db.Column(
        db.String(30),
        nullable=False,
        comment="CASE_REVISION | SCENARIO_REVISION | LIST_REVISION | RELEASE | WAIVER",
    )
    object_id = db.Column(db.Integer, nullable=False)
    step = db.Column(db.Integer, nullable=False, default=1)
    decision = db.Column(db.String(20), nullable=False)
    approver_id = db.Column(db.String(200), nullable=False)
    comment = db.Column(db.Text, nullable=True)
    evidence_links = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "object_type": self.object_type,
            "object_id": self.object_id,
            "step": self.step,
            "decision": self.decision,
            "approver_id": self.approver_id,
            "comment": self.comment,
            "evidence_links": self.evidence_links or [],
            "created_at": iso(self.created_at),
        }
