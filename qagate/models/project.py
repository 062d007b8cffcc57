"""
Project & requirement models.

A Project scopes releases, artifacts and requirements.  Requirement
coverage is derived from ``RequirementMapping`` rows that link a
requirement to a specific test-case revision.
"""

from qagate.models import db
from qagate.utils.timeutil import iso, utcnow


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    requirements = db.relationship(
        "Requirement", backref="project", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class Requirement(db.Model):
    """A project requirement imported from an external tracker."""

    __tablename__ = "requirements"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    external_id = db.Column(db.String(100), nullable=True)
    title = db.Column(db.String(500), nullable=False)
    source = db.Column(db.String(50), nullable=True)  # jira | github | manual ...
    url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    mappings = db.relationship(
        "RequirementMapping", backref="requirement", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "external_id": self.external_id,
            "title": self.title,
            "source": self.source,
            "url": self.url,
            "created_at": iso(self.created_at),
        }


class RequirementMapping(db.Model):
    """Requirement → test-case-revision coverage link."""

    __tablename__ = "requirement_mappings"
    __table_args__ = (
        db.UniqueConstraint("requirement_id", "case_revision_id", name="uq_req_mapping_target"),
    )

    id = db.Column(db.Integer, primary_key=True)
    requirement_id = db.Column(
        db.Integer, db.ForeignKey("requirements.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    case_revision_id = db.Column(
        db.Integer, db.ForeignKey("test_case_revisions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "requirement_id": self.requirement_id,
            "case_revision_id": self.case_revision_id,
            "created_at": iso(self.created_at),
        }
