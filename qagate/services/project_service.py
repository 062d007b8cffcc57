"""Project, requirement and requirement-mapping maintenance."""

from __future__ import annotations

import logging

from sqlalchemy import select

from qagate.core.exceptions import NotFoundError, ValidationError
from qagate.models import db
from qagate.models.artifact import TestCaseRevision
from qagate.models.project import Project, Requirement, RequirementMapping

logger = logging.getLogger(__name__)


def create_project(name: str, description: str | None = None) -> Project:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    project = Project(name=name, description=description or "")
    db.session.add(project)
    db.session.commit()
    logger.info("Project %s created: %s", project.id, name,
                extra={"event_type": "project_created", "project_id": project.id})
    return project


def get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def create_requirement(
    project_id: int,
    title: str,
    external_id: str | None = None,
    source: str | None = None,
    url: str | None = None,
) -> Requirement:
    get_project(project_id)
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    requirement = Requirement(
        project_id=project_id, title=title, external_id=external_id, source=source, url=url,
    )
    db.session.add(requirement)
    db.session.commit()
    return requirement


def list_requirements(project_id: int) -> list[dict]:
    get_project(project_id)
    stmt = select(Requirement).where(Requirement.project_id == project_id).order_by(Requirement.id)
    return [r.to_dict() for r in db.session.execute(stmt).scalars().all()]


def map_requirement(requirement_id: int, case_revision_id: int) -> RequirementMapping:
    """Link a requirement to a test-case revision; idempotent per pair."""
    requirement = db.session.get(Requirement, requirement_id)
    if requirement is None:
        raise NotFoundError("Requirement", requirement_id)
    case_revision = db.session.get(TestCaseRevision, case_revision_id)
    if case_revision is None:
        raise NotFoundError("TestCaseRevision", case_revision_id)
    if case_revision.artifact.project_id != requirement.project_id:
        raise ValidationError(
            "Requirement and test case belong to different projects",
            details={"case_revision_id": "project mismatch"},
        )

    existing = db.session.execute(
        select(RequirementMapping).where(
            RequirementMapping.requirement_id == requirement_id,
            RequirementMapping.case_revision_id == case_revision_id,
        )
    ).scalars().first()
    if existing is not None:
        return existing

    mapping = RequirementMapping(requirement_id=requirement_id, case_revision_id=case_revision_id)
    db.session.add(mapping)
    db.session.commit()
    return mapping
