"""
Test execution result models.

Hierarchy under a release:

    TestRunGroup ──< TestRun ──< TestRunItem ──< TestResult

Results are append-only; the most recent result (by ``executed_at``,
then ``id``) is the one the release gate consults.
"""

from types import MappingProxyType

from qagate.models import db
from qagate.utils.timeutil import iso, utcnow

# ── Constants ────────────────────────────────────────────────────────────

GROUP_NOT_STARTED = "NOT_STARTED"
GROUP_IN_PROGRESS = "IN_PROGRESS"
GROUP_COMPLETED = "COMPLETED"

RUN_ASSIGNED = "ASSIGNED"
RUN_IN_PROGRESS = "IN_PROGRESS"
RUN_COMPLETED = "COMPLETED"

RUN_TRANSITIONS = MappingProxyType({
    RUN_ASSIGNED: frozenset({RUN_IN_PROGRESS}),
    RUN_IN_PROGRESS: frozenset({RUN_COMPLETED, RUN_ASSIGNED}),
    RUN_COMPLETED: frozenset(),
})

RESULT_PASS = "PASS"
RESULT_FAIL = "FAIL"
RESULT_BLOCKED = "BLOCKED"
RESULT_SKIPPED = "SKIPPED"
RESULT_STATUSES = frozenset({RESULT_PASS, RESULT_FAIL, RESULT_BLOCKED, RESULT_SKIPPED})

BUG_SEVERITIES = frozenset({"CRITICAL", "HIGH", "MEDIUM", "LOW"})
BLOCKING_BUG_SEVERITIES = frozenset({"CRITICAL", "HIGH"})


class TestRunGroup(db.Model):
    """A batch of runs under one release.

    ``status`` follows its runs: NOT_STARTED until a run starts, COMPLETED
    once every run is completed, IN_PROGRESS otherwise.
    """

    __test__ = False  # not a pytest class
    __tablename__ = "test_run_groups"

    id = db.Column(db.Integer, primary_key=True)
    release_id = db.Column(
        db.Integer, db.ForeignKey("releases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    purpose = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=GROUP_NOT_STARTED)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    runs = db.relationship(
        "TestRun", backref="run_group", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "release_id": self.release_id,
            "name": self.name,
            "purpose": self.purpose,
            "status": self.status,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class TestRun(db.Model):
    __test__ = False  # not a pytest class
    __tablename__ = "test_runs"

    id = db.Column(db.Integer, primary_key=True)
    run_group_id = db.Column(
        db.Integer, db.ForeignKey("test_run_groups.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    assignee_id = db.Column(db.String(200), nullable=False)
    source_list_revision_id = db.Column(
        db.Integer, db.ForeignKey("test_scenario_list_revisions.id"), nullable=False,
    )
    build_ref = db.Column(db.String(200), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=RUN_ASSIGNED)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    items = db.relationship(
        "TestRunItem", backref="run", lazy="select",
        order_by="TestRunItem.order", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "run_group_id": self.run_group_id,
            "assignee_id": self.assignee_id,
            "source_list_revision_id": self.source_list_revision_id,
            "build_ref": self.build_ref,
            "status": self.status,
            "item_count": len(self.items),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class TestRunItem(db.Model):
    """One case revision to execute, expanded from the run's list revision."""

    __test__ = False  # not a pytest class
    __tablename__ = "test_run_items"

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(
        db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    case_revision_id = db.Column(
        db.Integer, db.ForeignKey("test_case_revisions.id"), nullable=False, index=True,
    )
    origin_scenario_revision_id = db.Column(
        db.Integer, db.ForeignKey("test_scenario_revisions.id"), nullable=True,
    )
    order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    case_revision = db.relationship("TestCaseRevision")
    results = db.relationship(
        "TestResult", backref="run_item", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "run_id": self.run_id,
            "case_revision_id": self.case_revision_id,
            "origin_scenario_revision_id": self.origin_scenario_revision_id,
            "order": self.order,
        }


class TestResult(db.Model):
    """Append-only execution outcome.

    ``bug_links`` is a list of ``{"url", "title", "severity"}`` dicts;
    ``evidence`` is free-form (screenshots, logs, CI artifact links).
    """

    __test__ = False  # not a pytest class
    __tablename__ = "test_results"
    __table_args__ = (
        db.Index("ix_test_results_item_time", "run_item_id", "executed_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    run_item_id = db.Column(
        db.Integer, db.ForeignKey("test_run_items.id", ondelete="CASCADE"), nullable=False,
    )
    status = db.Column(db.String(20), nullable=False)
    evidence = db.Column(db.JSON, nullable=True)
    bug_links = db.Column(db.JSON, nullable=True)
    executed_by = db.Column(db.String(200), nullable=False)
    executed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "run_item_id": self.run_item_id,
            "status": self.status,
            "evidence": self.evidence or {},
            "bug_links": self.bug_links or [],
            "executed_by": self.executed_by,
            "executed_at": iso(self.executed_at),
        }
