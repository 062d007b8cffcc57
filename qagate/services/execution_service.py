"""
Test execution service — write side of the result store.

Tests are executed outside this system; this module records what
happened so the release gate can read it.

    create_run_group   group runs of one release (e.g. "Regression cycle 1")
    create_test_run    expand a list revision into ordered run items
    start_run / complete_run
    record_result      append a result; the first result starts the run
    get_run_progress   totals by latest result
    get_run_detail     run, items with their latest result, and totals

Run status machine: ASSIGNED → IN_PROGRESS → COMPLETED, with
IN_PROGRESS → ASSIGNED for re-assignment.  A run group's status is
recomputed from its runs after every run status change.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from qagate.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    StatusPreconditionError,
    ValidationError,
)
from qagate.models import db
from qagate.models.artifact import INCLUDE_RULE_REQUIRED_ONLY, TestScenarioListRevision
from qagate.models.execution import (
    BUG_SEVERITIES,
    GROUP_COMPLETED,
    GROUP_IN_PROGRESS,
    GROUP_NOT_STARTED,
    RESULT_BLOCKED,
    RESULT_FAIL,
    RESULT_PASS,
    RESULT_SKIPPED,
    RESULT_STATUSES,
    RUN_ASSIGNED,
    RUN_COMPLETED,
    RUN_IN_PROGRESS,
    RUN_TRANSITIONS,
    TestResult,
    TestRun,
    TestRunGroup,
    TestRunItem,
)
from qagate.models.release import RELEASE_RELEASED, Release
from qagate.utils.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)


def _get(model, pk, label):
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(label, pk)
    return obj


def _move_run(run: TestRun, to_status: str) -> None:
    if to_status not in RUN_TRANSITIONS.get(run.status, frozenset()):
        raise InvalidTransitionError("TestRun", run.status, to_status)
    run.status = to_status
    _sync_group_status(run.run_group)


def _sync_group_status(group: TestRunGroup) -> None:
    statuses = [run.status for run in group.runs]
    if statuses and all(s == RUN_COMPLETED for s in statuses):
        group.status = GROUP_COMPLETED
    elif any(s != RUN_ASSIGNED for s in statuses):
        group.status = GROUP_IN_PROGRESS
    else:
        group.status = GROUP_NOT_STARTED


# ── Run groups & runs ────────────────────────────────────────────────────


def create_run_group(release_id: int, name: str, purpose: str | None = None) -> TestRunGroup:
    release = _get(Release, release_id, "Release")
    if release.status == RELEASE_RELEASED:
        raise StatusPreconditionError("Release", release.id, release.status,
                                      ["PLANNING", "EXECUTING", "GATE_CHECK", "APPROVED_FOR_RELEASE"])
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    group = TestRunGroup(release_id=release.id, name=name, purpose=purpose)
    db.session.add(group)
    db.session.commit()
    logger.info("Run group %s created on release %s", group.id, release.id,
                extra={"event_type": "run_group_created", "release_id": release.id})
    return group


def list_run_groups(release_id: int) -> list[dict]:
    release = _get(Release, release_id, "Release")
    groups = db.session.execute(
        select(TestRunGroup).where(TestRunGroup.release_id == release.id).order_by(TestRunGroup.id)
    ).scalars().all()
    return [g.to_dict() for g in groups]


def list_runs(run_group_id: int) -> list[dict]:
    """Runs of a group, each with its progress totals."""
    group = _get(TestRunGroup, run_group_id, "TestRunGroup")
    return [
        {**run.to_dict(), "progress": get_run_progress(run.id)}
        for run in group.runs.order_by(TestRun.id)
    ]


def expand_list_revision(list_revision: TestScenarioListRevision) -> list[tuple[int, int]]:
    """Ordered ``(case_revision_id, scenario_revision_id)`` pairs to execute.

    REQUIRED_ONLY list items skip optional scenario items.
    """
    pairs = []
    for list_item in list_revision.items:
        scenario_revision = list_item.scenario_revision
        for scenario_item in scenario_revision.items:
            if list_item.include_rule == INCLUDE_RULE_REQUIRED_ONLY and scenario_item.optional_flag:
                continue
            pairs.append((scenario_item.case_revision_id, scenario_revision.id))
    return pairs


def create_test_run(
    run_group_id: int,
    assignee_id: str,
    source_list_revision_id: int,
    build_ref: str | None = None,
) -> TestRun:
    group = _get(TestRunGroup, run_group_id, "TestRunGroup")
    list_revision = _get(TestScenarioListRevision, source_list_revision_id, "TestScenarioListRevision")
    if not (assignee_id or "").strip():
        raise ValidationError("assignee_id is required", details={"assignee_id": "required"})

    run = TestRun(
        run_group_id=group.id,
        assignee_id=assignee_id,
        source_list_revision_id=list_revision.id,
        build_ref=build_ref,
        status=RUN_ASSIGNED,
    )
    run.items = [
        TestRunItem(case_revision_id=case_rev_id, origin_scenario_revision_id=scenario_rev_id, order=i)
        for i, (case_rev_id, scenario_rev_id) in enumerate(expand_list_revision(list_revision), start=1)
    ]
    db.session.add(run)
    _sync_group_status(group)
    db.session.commit()
    logger.info("Test run %s created with %d item(s)", run.id, len(run.items),
                extra={"event_type": "test_run_created", "release_id": group.release_id,
                       "actor": assignee_id})
    return run


def start_run(run_id: int) -> TestRun:
    run = _get(TestRun, run_id, "TestRun")
    if run.status != RUN_ASSIGNED:
        raise StatusPreconditionError("TestRun", run.id, run.status, RUN_ASSIGNED)
    _move_run(run, RUN_IN_PROGRESS)
    db.session.commit()
    return run


def reassign_run(run_id: int, assignee_id: str) -> TestRun:
    """Hand a run to someone else; an IN_PROGRESS run goes back to ASSIGNED."""
    run = _get(TestRun, run_id, "TestRun")
    if not (assignee_id or "").strip():
        raise ValidationError("assignee_id is required", details={"assignee_id": "required"})
    if run.status == RUN_COMPLETED:
        raise StatusPreconditionError("TestRun", run.id, run.status, [RUN_ASSIGNED, RUN_IN_PROGRESS])
    if run.status == RUN_IN_PROGRESS:
        _move_run(run, RUN_ASSIGNED)
    run.assignee_id = assignee_id
    db.session.commit()
    logger.info("Test run %s reassigned", run.id,
                extra={"event_type": "test_run_reassigned", "actor": assignee_id})
    return run


def complete_run(run_id: int, force: bool = False) -> dict:
    """IN_PROGRESS → COMPLETED.

    Without ``force`` every item needs at least one result.
    """
    run = _get(TestRun, run_id, "TestRun")
    if run.status != RUN_IN_PROGRESS:
        raise StatusPreconditionError("TestRun", run.id, run.status, RUN_IN_PROGRESS)
    progress = get_run_progress(run.id)
    if not force and progress["executed"] < progress["total"]:
        raise ValidationError(
            f"{progress['total'] - progress['executed']} item(s) have no result",
            details={"items": "all items need a result unless force=true"},
        )
    _move_run(run, RUN_COMPLETED)
    db.session.commit()
    progress["status"] = run.status
    return progress


# ── Results ──────────────────────────────────────────────────────────────


def _validate_bug_links(bug_links) -> list[dict]:
    if bug_links is None:
        return []
    if not isinstance(bug_links, list):
        raise ValidationError("bug_links must be a list", details={"bug_links": "invalid"})
    cleaned = []
    for index, link in enumerate(bug_links):
        if not isinstance(link, dict) or not (link.get("url") or "").strip():
            raise ValidationError("Each bug link needs a url",
                                  details={f"bug_links[{index}].url": "required"})
        severity = link.get("severity")
        if severity is not None:
            severity = str(severity).upper()
            if severity not in BUG_SEVERITIES:
                raise ValidationError(
                    f"Invalid bug severity '{link.get('severity')}'",
                    details={f"bug_links[{index}].severity":
                             f"must be one of: {', '.join(sorted(BUG_SEVERITIES))}"},
                )
        cleaned.append({"url": link["url"].strip(), "title": link.get("title"), "severity": severity})
    return cleaned


def record_result(
    run_item_id: int,
    status: str,
    executed_by: str,
    evidence: dict | None = None,
    bug_links: list | None = None,
    executed_at=None,
) -> TestResult:
    """Append a result; moves an ASSIGNED run to IN_PROGRESS."""
    item = _get(TestRunItem, run_item_id, "TestRunItem")
    run = item.run
    if not isinstance(status, str) or status not in RESULT_STATUSES:
        raise ValidationError(
            f"Invalid result status '{status}'",
            details={"status": f"must be one of: {', '.join(sorted(RESULT_STATUSES))}"},
        )
    if not (executed_by or "").strip():
        raise ValidationError("executed_by is required", details={"executed_by": "required"})
    if run.status == RUN_COMPLETED:
        raise StatusPreconditionError("TestRun", run.id, run.status, [RUN_ASSIGNED, RUN_IN_PROGRESS])

    result = TestResult(
        run_item_id=item.id,
        status=status,
        evidence=evidence or {},
        bug_links=_validate_bug_links(bug_links),
        executed_by=executed_by,
        executed_at=as_utc(executed_at) or utcnow(),
    )
    db.session.add(result)
    if run.status == RUN_ASSIGNED:
        _move_run(run, RUN_IN_PROGRESS)
    db.session.commit()
    return result


def get_run_item(run_id: int, item_id: int) -> TestRunItem:
    """Look up an item through its run; an item of another run is not found."""
    run = _get(TestRun, run_id, "TestRun")
    item = db.session.get(TestRunItem, item_id)
    if item is None or item.run_id != run.id:
        raise NotFoundError("TestRunItem", item_id)
    return item


def _latest_result(item_id: int) -> TestResult | None:
    return db.session.execute(
        select(TestResult)
        .where(TestResult.run_item_id == item_id)
        .order_by(TestResult.executed_at.desc(), TestResult.id.desc())
        .limit(1)
    ).scalar()


def _progress(run: TestRun, latest: dict) -> dict:
    counts = {RESULT_PASS: 0, RESULT_FAIL: 0, RESULT_BLOCKED: 0, RESULT_SKIPPED: 0}
    for result in latest.values():
        if result is not None:
            counts[result.status] += 1
    return {
        "run_id": run.id,
        "status": run.status,
        "total": len(run.items),
        "executed": sum(1 for result in latest.values() if result is not None),
        "passed": counts[RESULT_PASS],
        "failed": counts[RESULT_FAIL],
        "blocked": counts[RESULT_BLOCKED],
        "skipped": counts[RESULT_SKIPPED],
    }


def get_run_progress(run_id: int) -> dict:
    """Counts by each item's latest result."""
    run = _get(TestRun, run_id, "TestRun")
    return _progress(run, {item.id: _latest_result(item.id) for item in run.items})


def get_run_detail(run_id: int) -> dict:
    """Run, its items each with the case title and latest result, and totals."""
    run = _get(TestRun, run_id, "TestRun")
    latest = {item.id: _latest_result(item.id) for item in run.items}
    items = []
    for item in run.items:
        result = latest[item.id]
        items.append({
            **item.to_dict(),
            "case_title": item.case_revision.title,
            "latest_result": result.to_dict() if result else None,
        })
    return {"run": run.to_dict(), "items": items, "summary": _progress(run, latest)}
