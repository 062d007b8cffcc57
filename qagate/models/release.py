"""
Release, baseline and waiver models.

Release lifecycle:
    PLANNING → EXECUTING → GATE_CHECK → APPROVED_FOR_RELEASE → RELEASED

A release accumulates immutable baselines (each freezing a test-scenario
list revision as required scope).  Waivers are time-bounded exceptions
that suppress the blocking effect of gate violations on that release.
"""

from types import MappingProxyType

from qagate.models import db
from qagate.utils.timeutil import as_utc, iso, utcnow

# ── Release status ───────────────────────────────────────────────────────

RELEASE_PLANNING = "PLANNING"
RELEASE_EXECUTING = "EXECUTING"
RELEASE_GATE_CHECK = "GATE_CHECK"
RELEASE_APPROVED = "APPROVED_FOR_RELEASE"
RELEASE_RELEASED = "RELEASED"

RELEASE_STATUSES = (
    RELEASE_PLANNING,
    RELEASE_EXECUTING,
    RELEASE_GATE_CHECK,
    RELEASE_APPROVED,
    RELEASE_RELEASED,
)

RELEASE_TRANSITIONS = MappingProxyType({
    RELEASE_PLANNING: frozenset({RELEASE_EXECUTING, RELEASE_RELEASED}),
    RELEASE_EXECUTING: frozenset({RELEASE_GATE_CHECK, RELEASE_PLANNING}),
    RELEASE_GATE_CHECK: frozenset({RELEASE_APPROVED, RELEASE_EXECUTING}),
    RELEASE_APPROVED: frozenset({RELEASE_RELEASED, RELEASE_GATE_CHECK}),
    RELEASE_RELEASED: frozenset(),
})

BASELINE_ALLOWED_STATUSES = (RELEASE_PLANNING, RELEASE_EXECUTING)
EVALUATABLE_STATUSES = (RELEASE_EXECUTING, RELEASE_GATE_CHECK)
APPROVABLE_STATUSES = (RELEASE_GATE_CHECK,)

# ── Waiver target types ──────────────────────────────────────────────────

WAIVER_FAIL_RESULT = "FAIL_RESULT"
WAIVER_UNAPPROVED_REVISION = "UNAPPROVED_REVISION"
WAIVER_UNEXECUTED_TEST = "UNEXECUTED_TEST"
WAIVER_OTHER = "OTHER"

WAIVER_TARGET_TYPES = frozenset({
    WAIVER_FAIL_RESULT,
    WAIVER_UNAPPROVED_REVISION,
    WAIVER_UNEXECUTED_TEST,
    WAIVER_OTHER,
})


class Release(db.Model):
    __tablename__ = "releases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), nullable=False, default=RELEASE_PLANNING, index=True)
    build_ref = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    baselines = db.relationship(
        "ReleaseBaseline", backref="release", lazy="dynamic",
        order_by="ReleaseBaseline.id", cascade="all, delete-orphan",
    )
    waivers = db.relationship(
        "Waiver", backref="release", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self, include_baselines=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "build_ref": self.build_ref,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_baselines:
            d["baselines"] = [b.to_dict() for b in self.baselines]
        return d

    def __repr__(self):
        return f"<Release {self.id}: {self.name} [{self.status}]>"


class ReleaseBaseline(db.Model):
    """Immutable release → test-scenario-list-revision scope record."""

    __tablename__ = "release_baselines"

    id = db.Column(db.Integer, primary_key=True)
    release_id = db.Column(
        db.Integer, db.ForeignKey("releases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    source_list_revision_id = db.Column(
        db.Integer, db.ForeignKey("test_scenario_list_revisions.id"), nullable=False, index=True,
    )
    created_by = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "release_id": self.release_id,
            "source_list_revision_id": self.source_list_revision_id,
            "created_by": self.created_by,
            "created_at": iso(self.created_at),
        }


class Waiver(db.Model):
    """Time-bounded exception; valid strictly while ``now < expires_at``."""

    __tablename__ = "waivers"
    __table_args__ = (
        db.Index("ix_waivers_lookup", "release_id", "target_type", "target_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    release_id = db.Column(
        db.Integer, db.ForeignKey("releases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    target_type = db.Column(db.String(30), nullable=False)
    target_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.Text, nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    issuer_id = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def is_expired(self, now=None):
        """Expired at or after ``expires_at`` (no grace period)."""
        now = as_utc(now) or utcnow()
        return now >= as_utc(self.expires_at)

    def to_dict(self):
        return {
            "id": self.id,
            "release_id": self.release_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "reason": self.reason,
            "expires_at": iso(self.expires_at),
            "issuer_id": self.issuer_id,
            "created_at": iso(self.created_at),
        }
