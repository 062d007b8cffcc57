"""
Versioned QA artifact models.

Three artifact kinds share one lifecycle:

    TestCase          ──< TestCaseRevision           (steps, expected result ...)
    TestScenario      ──< TestScenarioRevision       ──< TestScenarioItem
    TestScenarioList  ──< TestScenarioListRevision   ──< TestScenarioListItem

The stable tables hold the permanent identity and the soft-delete
tombstone.  Revision rows are numbered 1..N per stable id with no gaps;
the highest number is the latest revision.  A revision's content never
changes once it leaves DRAFT; only ``status`` (and the approval stamp)
moves afterwards.
"""

from types import MappingProxyType

from qagate.models import db
from qagate.models.soft_delete import SoftDeleteMixin
from qagate.utils.timeutil import iso, utcnow

# ── Revision status ──────────────────────────────────────────────────────

REVISION_DRAFT = "DRAFT"
REVISION_IN_REVIEW = "IN_REVIEW"
REVISION_APPROVED = "APPROVED"
REVISION_DEPRECATED = "DEPRECATED"

REVISION_STATUSES = (
    REVISION_DRAFT,
    REVISION_IN_REVIEW,
    REVISION_APPROVED,
    REVISION_DEPRECATED,
)

# Statuses counted as "unapproved changes" by the release gate
UNAPPROVED_REVISION_STATUSES = frozenset({REVISION_IN_REVIEW, REVISION_DEPRECATED})

STRICT_REVISION_TRANSITIONS = MappingProxyType({
    REVISION_DRAFT: frozenset({REVISION_IN_REVIEW, REVISION_DEPRECATED}),
    REVISION_IN_REVIEW: frozenset({REVISION_APPROVED, REVISION_DEPRECATED, REVISION_DRAFT}),
    REVISION_APPROVED: frozenset({REVISION_DEPRECATED}),
    REVISION_DEPRECATED: frozenset(),
})

PERMISSIVE_REVISION_TRANSITIONS = MappingProxyType({
    **STRICT_REVISION_TRANSITIONS,
    REVISION_DEPRECATED: frozenset({REVISION_DRAFT}),
})

# ── Content enumerations ─────────────────────────────────────────────────

CASE_PRIORITIES = frozenset({"LOW", "MEDIUM", "HIGH", "CRITICAL"})

INCLUDE_RULE_FULL = "FULL"
INCLUDE_RULE_REQUIRED_ONLY = "REQUIRED_ONLY"
INCLUDE_RULES = frozenset({INCLUDE_RULE_FULL, INCLUDE_RULE_REQUIRED_ONLY})

DEFAULT_REVISION_REASON = "initial creation"


class _RevisionColumns:
    """Columns shared by the three revision tables."""

    id = db.Column(db.Integer, primary_key=True)
    rev = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=REVISION_DRAFT, index=True)
    title = db.Column(db.String(500), nullable=False)
    reason = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    approved_by = db.Column(db.String(200), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def _base_dict(self):
        return {
            "id": self.id,
            "rev": self.rev,
            "status": self.status,
            "title": self.title,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": iso(self.created_at),
            "approved_by": self.approved_by,
            "approved_at": iso(self.approved_at),
        }


# ═════════════════════════════════════════════════════════════════════════
# Test case
# ═════════════════════════════════════════════════════════════════════════


class TestCase(SoftDeleteMixin, db.Model):
    __test__ = False  # not a pytest class
    __tablename__ = "test_cases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    revisions = db.relationship(
        "TestCaseRevision", backref="artifact", lazy="dynamic",
        order_by="TestCaseRevision.rev", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "created_at": iso(self.created_at),
            "deleted_at": iso(self.deleted_at),
        }


class TestCaseRevision(_RevisionColumns, db.Model):
    """One version of a test case.

    ``content`` holds: steps (list[str]), expected_result, priority,
    tags, environment, preconditions, test_data, notes.
    """

    __test__ = False  # not a pytest class
    __tablename__ = "test_case_revisions"
    __table_args__ = (
        db.UniqueConstraint("case_id", "rev", name="uq_test_case_revision_rev"),
    )

    case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    content = db.Column(db.JSON, nullable=False, default=dict)

    @property
    def stable_id(self):
        return self.case_id

    def to_dict(self):
        d = self._base_dict()
        d["case_id"] = self.case_id
        d["content"] = self.content or {}
        return d


# ═════════════════════════════════════════════════════════════════════════
# Test scenario
# ═════════════════════════════════════════════════════════════════════════


class TestScenario(SoftDeleteMixin, db.Model):
    __test__ = False  # not a pytest class
    __tablename__ = "test_scenarios"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    revisions = db.relationship(
        "TestScenarioRevision", backref="artifact", lazy="dynamic",
        order_by="TestScenarioRevision.rev", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "created_at": iso(self.created_at),
            "deleted_at": iso(self.deleted_at),
        }


class TestScenarioRevision(_RevisionColumns, db.Model):
    __test__ = False  # not a pytest class
    __tablename__ = "test_scenario_revisions"
    __table_args__ = (
        db.UniqueConstraint("scenario_id", "rev", name="uq_test_scenario_revision_rev"),
    )

    scenario_id = db.Column(
        db.Integer, db.ForeignKey("test_scenarios.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    description = db.Column(db.Text, nullable=True)

    items = db.relationship(
        "TestScenarioItem", backref="scenario_revision", lazy="select",
        order_by="TestScenarioItem.order", cascade="all, delete-orphan",
    )

    @property
    def stable_id(self):
        return self.scenario_id

    def to_dict(self):
        d = self._base_dict()
        d["scenario_id"] = self.scenario_id
        d["description"] = self.description
        d["items"] = [i.to_dict() for i in self.items]
        return d


class TestScenarioItem(db.Model):
    """Ordered reference from a scenario revision to a case revision."""

    __test__ = False  # not a pytest class
    __tablename__ = "test_scenario_items"

    id = db.Column(db.Integer, primary_key=True)
    scenario_revision_id = db.Column(
        db.Integer, db.ForeignKey("test_scenario_revisions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    case_revision_id = db.Column(
        db.Integer, db.ForeignKey("test_case_revisions.id"), nullable=False, index=True,
    )
    order = db.Column(db.Integer, nullable=False, default=0)
    optional_flag = db.Column(db.Boolean, nullable=False, default=False)
    note = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "case_revision_id": self.case_revision_id,
            "order": self.order,
            "optional_flag": self.optional_flag,
            "note": self.note,
        }


# ═════════════════════════════════════════════════════════════════════════
# Test scenario list
# ═════════════════════════════════════════════════════════════════════════


class TestScenarioList(SoftDeleteMixin, db.Model):
    __test__ = False  # not a pytest class
    __tablename__ = "test_scenario_lists"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    revisions = db.relationship(
        "TestScenarioListRevision", backref="artifact", lazy="dynamic",
        order_by="TestScenarioListRevision.rev", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "created_at": iso(self.created_at),
            "deleted_at": iso(self.deleted_at),
        }


class TestScenarioListRevision(_RevisionColumns, db.Model):
    __test__ = False  # not a pytest class
    __tablename__ = "test_scenario_list_revisions"
    __table_args__ = (
        db.UniqueConstraint("list_id", "rev", name="uq_test_scenario_list_revision_rev"),
    )

    list_id = db.Column(
        db.Integer, db.ForeignKey("test_scenario_lists.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    description = db.Column(db.Text, nullable=True)

    items = db.relationship(
        "TestScenarioListItem", backref="list_revision", lazy="select",
        order_by="TestScenarioListItem.order", cascade="all, delete-orphan",
    )

    @property
    def stable_id(self):
        return self.list_id

    def to_dict(self):
        d = self._base_dict()
        d["list_id"] = self.list_id
        d["description"] = self.description
        d["items"] = [i.to_dict() for i in self.items]
        return d


class TestScenarioListItem(db.Model):
    """Ordered reference from a list revision to a scenario revision."""

    __test__ = False  # not a pytest class
    __tablename__ = "test_scenario_list_items"

    id = db.Column(db.Integer, primary_key=True)
    list_revision_id = db.Column(
        db.Integer, db.ForeignKey("test_scenario_list_revisions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    scenario_revision_id = db.Column(
        db.Integer, db.ForeignKey("test_scenario_revisions.id"), nullable=False, index=True,
    )
    order = db.Column(db.Integer, nullable=False, default=0)
    include_rule = db.Column(db.String(20), nullable=False, default=INCLUDE_RULE_FULL)
    note = db.Column(db.Text, nullable=True)

    scenario_revision = db.relationship("TestScenarioRevision", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "scenario_revision_id": self.scenario_revision_id,
            "order": self.order,
            "include_rule": self.include_rule,
            "note": self.note,
        }
