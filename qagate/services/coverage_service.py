"""
Coverage & signal aggregator — read-side facts about a release.

Each check is independently callable (reporting surfaces use them
directly) and free of side effects.  The gate evaluator combines them.

    calculate_coverage            requirement coverage of the baselined scope
    check_all_tests_pass          latest result of every run item is PASS
    check_no_critical_bugs        no CRITICAL/HIGH bug link on any result
    check_all_approvals_complete  every baselined list revision is APPROVED
    check_no_unapproved_changes   no IN_REVIEW/DEPRECATED revision in project

Result aggregation runs as one flat "latest result per run item" query
(window function) instead of walking run groups → runs → items → results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import and_, func, or_, select

from qagate.core.exceptions import NotFoundError
from qagate.models import db
from qagate.models.artifact import (
    REVISION_APPROVED,
    UNAPPROVED_REVISION_STATUSES,
    TestCase,
    TestCaseRevision,
    TestScenario,
    TestScenarioItem,
    TestScenarioList,
    TestScenarioListItem,
    TestScenarioListRevision,
    TestScenarioRevision,
)
from qagate.models.execution import (
    BLOCKING_BUG_SEVERITIES,
    RESULT_PASS,
    TestResult,
    TestRun,
    TestRunGroup,
    TestRunItem,
)
from qagate.models.project import Requirement, RequirementMapping
from qagate.models.release import Release, ReleaseBaseline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunItemOutcome:
    """Latest outcome of one run item; ``status`` is None when unexecuted."""

    run_item_id: int
    result_id: int | None
    status: str | None

    @property
    def passed(self) -> bool:
        return self.status == RESULT_PASS


def _get_release(release_id: int) -> Release:
    release = db.session.get(Release, release_id)
    if release is None:
        raise NotFoundError("Release", release_id)
    return release


# ── Scope ────────────────────────────────────────────────────────────────


def in_scope_case_revision_ids(release_id: int) -> set[int]:
    """Distinct case revisions reachable from the release's baselines.

    baseline → list revision → list items → scenario revision → scenario
    items → case revision.
    """
    _get_release(release_id)
    stmt = (
        select(TestScenarioItem.case_revision_id)
        .join(
            TestScenarioListItem,
            TestScenarioListItem.scenario_revision_id == TestScenarioItem.scenario_revision_id,
        )
        .join(
            ReleaseBaseline,
            ReleaseBaseline.source_list_revision_id == TestScenarioListItem.list_revision_id,
        )
        .where(ReleaseBaseline.release_id == release_id)
        .distinct()
    )
    return set(db.session.execute(stmt).scalars().all())


# ── Coverage ─────────────────────────────────────────────────────────────


def _coverage_counts(release: Release) -> tuple[int, int, set[int]]:
    total = db.session.execute(
        select(func.count(Requirement.id)).where(Requirement.project_id == release.project_id)
    ).scalar_one()
    case_revision_ids = in_scope_case_revision_ids(release.id)
    if not total or not case_revision_ids:
        return 0, total, case_revision_ids

    covered = db.session.execute(
        select(func.count(func.distinct(RequirementMapping.requirement_id)))
        .join(Requirement, Requirement.id == RequirementMapping.requirement_id)
        .where(
            Requirement.project_id == release.project_id,
            RequirementMapping.case_revision_id.in_(sorted(case_revision_ids)),
        )
    ).scalar_one()
    return covered, total, case_revision_ids


def calculate_coverage(release_id: int) -> float:
    """Covered requirements ÷ project requirements × 100.

    A project with zero requirements is 100.0 (vacuous pass).
    """
    release = _get_release(release_id)
    covered, total, _ = _coverage_counts(release)
    if total == 0:
        return 100.0
    return covered / total * 100.0


def coverage_summary(release_id: int) -> dict:
    """Ad-hoc coverage breakdown for reporting."""
    release = _get_release(release_id)
    covered, total, case_revision_ids = _coverage_counts(release)
    coverage = 100.0 if total == 0 else covered / total * 100.0
    return {
        "release_id": release.id,
        "coverage": round(coverage, 2),
        "covered_requirements": covered,
        "total_requirements": total,
        "in_scope_case_revisions": len(case_revision_ids),
    }


# ── Results ──────────────────────────────────────────────────────────────


def _latest_result_subquery(release_id: int):
    """Latest result per run item under the release (rn == 1)."""
    ranked = (
        select(
            TestResult.run_item_id.label("run_item_id"),
            TestResult.id.label("result_id"),
            TestResult.status.label("status"),
            func.row_number().over(
                partition_by=TestResult.run_item_id,
                order_by=(TestResult.executed_at.desc(), TestResult.id.desc()),
            ).label("rn"),
        )
        .join(TestRunItem, TestRunItem.id == TestResult.run_item_id)
        .join(TestRun, TestRun.id == TestRunItem.run_id)
        .join(TestRunGroup, TestRunGroup.id == TestRun.run_group_id)
        .where(TestRunGroup.release_id == release_id)
        .subquery()
    )
    return ranked


def _outcome_query(release_id: int):
    latest = _latest_result_subquery(release_id)
    stmt = (
        select(TestRunItem.id, latest.c.result_id, latest.c.status)
        .join(TestRun, TestRun.id == TestRunItem.run_id)
        .join(TestRunGroup, TestRunGroup.id == TestRun.run_group_id)
        .outerjoin(latest, and_(latest.c.run_item_id == TestRunItem.id, latest.c.rn == 1))
        .where(TestRunGroup.release_id == release_id)
    )
    return stmt, latest


def latest_outcomes(release_id: int) -> list[RunItemOutcome]:
    """Latest outcome for every run item of the release, in item order."""
    _get_release(release_id)
    stmt, _ = _outcome_query(release_id)
    rows = db.session.execute(stmt.order_by(TestRunItem.id)).all()
    return [RunItemOutcome(run_item_id=r[0], result_id=r[1], status=r[2]) for r in rows]


def check_all_tests_pass(release_id: int) -> bool:
    """Every run item's latest result is PASS; unexecuted counts as failing.

    Stops at the first failing item.  A release with no run items passes.
    """
    _get_release(release_id)
    stmt, latest = _outcome_query(release_id)
    first_failing = db.session.execute(
        stmt.where(or_(latest.c.status.is_(None), latest.c.status != RESULT_PASS)).limit(1)
    ).first()
    return first_failing is None


def failing_outcomes(release_id: int) -> tuple[list[int], list[int]]:
    """``(failed_result_ids, unexecuted_run_item_ids)`` for violation details."""
    failed, unexecuted = [], []
    for outcome in latest_outcomes(release_id):
        if outcome.status is None:
            unexecuted.append(outcome.run_item_id)
        elif not outcome.passed:
            failed.append(outcome.result_id)
    return failed, unexecuted


# ── Bugs ─────────────────────────────────────────────────────────────────


def _is_blocking_bug(link) -> bool:
    severity = (link or {}).get("severity") if isinstance(link, dict) else None
    return bool(severity) and str(severity).upper() in BLOCKING_BUG_SEVERITIES


def _results_with_bug_links(release_id: int):
    stmt = (
        select(TestResult.id, TestResult.bug_links)
        .join(TestRunItem, TestRunItem.id == TestResult.run_item_id)
        .join(TestRun, TestRun.id == TestRunItem.run_id)
        .join(TestRunGroup, TestRunGroup.id == TestRun.run_group_id)
        .where(TestRunGroup.release_id == release_id, TestResult.bug_links.isnot(None))
        .order_by(TestResult.id)
    )
    return db.session.execute(stmt)


def check_no_critical_bugs(release_id: int) -> bool:
    """No recorded result carries a CRITICAL or HIGH bug link."""
    _get_release(release_id)
    for _result_id, bug_links in _results_with_bug_links(release_id):
        if any(_is_blocking_bug(link) for link in bug_links or []):
            return False
    return True


def critical_bug_result_ids(release_id: int) -> list[int]:
    _get_release(release_id)
    return [
        result_id
        for result_id, bug_links in _results_with_bug_links(release_id)
        if any(_is_blocking_bug(link) for link in bug_links or [])
    ]


# ── Approvals ────────────────────────────────────────────────────────────


def unapproved_baseline_list_revision_ids(release_id: int) -> list[int]:
    _get_release(release_id)
    stmt = (
        select(TestScenarioListRevision.id)
        .join(ReleaseBaseline, ReleaseBaseline.source_list_revision_id == TestScenarioListRevision.id)
        .where(
            ReleaseBaseline.release_id == release_id,
            TestScenarioListRevision.status != REVISION_APPROVED,
        )
        .distinct()
        .order_by(TestScenarioListRevision.id)
    )
    return list(db.session.execute(stmt).scalars().all())


def check_all_approvals_complete(release_id: int) -> bool:
    """Every baseline points at an APPROVED list revision."""
    return not unapproved_baseline_list_revision_ids(release_id)


# ── Unapproved changes ───────────────────────────────────────────────────

_REVISION_SOURCES = (
    ("case", TestCaseRevision, TestCase, TestCaseRevision.case_id),
    ("scenario", TestScenarioRevision, TestScenario, TestScenarioRevision.scenario_id),
    ("list", TestScenarioListRevision, TestScenarioList, TestScenarioListRevision.list_id),
)


def unapproved_revision_ids(project_id: int) -> dict[str, list[int]]:
    """IN_REVIEW / DEPRECATED revision ids in the project, by artifact kind."""
    found = {}
    for kind, revision_model, stable_model, stable_fk in _REVISION_SOURCES:
        stmt = (
            select(revision_model.id)
            .join(stable_model, stable_model.id == stable_fk)
            .where(
                stable_model.project_id == project_id,
                revision_model.status.in_(UNAPPROVED_REVISION_STATUSES),
            )
            .order_by(revision_model.id)
        )
        found[kind] = list(db.session.execute(stmt).scalars().all())
    return found


def count_unapproved_revisions(project_id: int) -> int:
    total = 0
    for _kind, revision_model, stable_model, stable_fk in _REVISION_SOURCES:
        total += db.session.execute(
            select(func.count(revision_model.id))
            .join(stable_model, stable_model.id == stable_fk)
            .where(
                stable_model.project_id == project_id,
                revision_model.status.in_(UNAPPROVED_REVISION_STATUSES),
            )
        ).scalar_one()
    return total


def check_no_unapproved_changes(release_id: int) -> bool:
    release = _get_release(release_id)
    return count_unapproved_revisions(release.project_id) == 0
