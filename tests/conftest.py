"""
Shared pytest fixtures for the QA Release Gate test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project: Pre-created Project
    - approve: helper that walks a revision DRAFT → IN_REVIEW → APPROVED
    - scope: project with two approved test cases, one approved scenario
             and one approved test-scenario list referencing them
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from qagate import create_app
from qagate.models import db as _db
from qagate.services import artifact_service, project_service

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    return project_service.create_project("Checkout Service", "Payments and checkout")


def _approve(kind, revision, approver="qa-lead"):
    artifact_service.submit_for_review(kind, revision.id, "author")
    return artifact_service.approve_revision(kind, revision.id, approver)


@pytest.fixture()
def approve():
    """Return a callable that approves a DRAFT revision of ``kind``."""
    return _approve


def case_content(**overrides):
    content = {
        "steps": ["Open checkout", "Pay with card"],
        "expected_result": "Order is confirmed",
        "priority": "HIGH",
        "tags": ["checkout"],
    }
    content.update(overrides)
    return content


@pytest.fixture()
def scope(project):
    """Approved case ×2 → approved scenario → approved list, in one project."""
    case_a = _approve("case", artifact_service.create_test_case(
        project.id, "Pay by card", case_content(), "author"))
    case_b = _approve("case", artifact_service.create_test_case(
        project.id, "Pay by voucher", case_content(priority="MEDIUM"), "author"))
    scenario = _approve("scenario", artifact_service.create_test_scenario(
        project.id, "Checkout happy path",
        [{"case_revision_id": case_a.id}, {"case_revision_id": case_b.id, "optional_flag": True}],
        "author",
    ))
    scenario_list = _approve("list", artifact_service.create_test_scenario_list(
        project.id, "Release regression",
        [{"scenario_revision_id": scenario.id}],
        "author",
    ))
    return SimpleNamespace(
        project=project,
        case_a=case_a,
        case_b=case_b,
        scenario=scenario,
        list=scenario_list,
    )
