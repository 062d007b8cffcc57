"""
Release gate evaluator.

Runs a list of gate conditions against a release, classifies failures
into violations and resolves waivers for them.

    result = evaluate(release_id)                 # default conditions
    result = evaluate(release_id, [GateCondition(
        ConditionType.MIN_TEST_COVERAGE, "Coverage", required=True, threshold=90)])
    result.passed      # False iff an unwaived CRITICAL violation exists

Severity mapping: a failed required condition is CRITICAL, a failed
optional one is WARNING, except NO_UNAPPROVED_CHANGES which drops to INFO
when optional.  Only CRITICAL blocks, and only while unwaived.

Waiver lookup is keyed by the violated condition: each condition maps to
the waiver target types that can suppress it, with OTHER always tried as
the release-wide fallback.  Per-target waivers (e.g. one FAIL_RESULT
waiver per failing result) suppress a violation only when every affected
target is covered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from flask import current_app, has_app_context

from qagate.core.exceptions import NotFoundError, ValidationError
from qagate.models import db
from qagate.models.release import (
    WAIVER_FAIL_RESULT,
    WAIVER_OTHER,
    WAIVER_UNAPPROVED_REVISION,
    WAIVER_UNEXECUTED_TEST,
    Release,
)
from qagate.services import coverage_service, waiver_service
from qagate.utils.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_COVERAGE_THRESHOLD = 80.0


# ═════════════════════════════════════════════════════════════════════════════
# Enums & Data Classes
# ═════════════════════════════════════════════════════════════════════════════

class ConditionType(str, Enum):
    MIN_TEST_COVERAGE = "MIN_TEST_COVERAGE"
    ALL_TESTS_PASS = "ALL_TESTS_PASS"
    NO_CRITICAL_BUGS = "NO_CRITICAL_BUGS"
    ALL_APPROVALS_COMPLETE = "ALL_APPROVALS_COMPLETE"
    NO_UNAPPROVED_CHANGES = "NO_UNAPPROVED_CHANGES"


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


@dataclass(frozen=True)
class GateCondition:
    type: ConditionType
    name: str
    required: bool = True
    threshold: float | None = None
    description: str | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "name": self.name,
            "required": self.required,
            "threshold": self.threshold,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GateCondition":
        if not isinstance(data, dict):
            raise ValidationError("Each gate condition must be an object",
                                  details={"conditions": "expected a list of objects"})
        try:
            ctype = ConditionType(data.get("type"))
        except ValueError:
            raise ValidationError(
                f"Unknown gate condition type '{data.get('type')}'",
                details={"type": f"must be one of: {', '.join(t.value for t in ConditionType)}"},
            ) from None
        threshold = data.get("threshold")
        if threshold is not None:
            if isinstance(threshold, bool):
                raise ValidationError("threshold must be numeric", details={"threshold": "invalid"})
            try:
                threshold = float(threshold)
            except (TypeError, ValueError):
                raise ValidationError("threshold must be numeric",
                                      details={"threshold": "invalid"}) from None
        required = data.get("required", True)
        if not isinstance(required, bool):
            raise ValidationError("required must be a boolean", details={"required": "invalid"})
        return cls(
            type=ctype,
            name=data.get("name") or ctype.value,
            required=required,
            threshold=threshold,
            description=data.get("description"),
        )


def conditions_from_payload(raw) -> list[GateCondition] | None:
    """Parse a request's ``conditions`` value; ``None`` means the defaults."""
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValidationError("conditions must be a list",
                              details={"conditions": "expected a list of objects"})
    return [GateCondition.from_dict(item) for item in raw]


@dataclass
class GateViolation:
    """One failed condition.

    ``waiver_targets`` maps waiver target type → ids of the affected
    objects that a per-target waiver may cover.
    """
    condition_type: ConditionType
    severity: Severity
    message: str
    details: dict = field(default_factory=dict)
    suggested_action: str | None = None
    has_waiver: bool = False
    waiver_id: int | None = None
    waiver_targets: dict = field(default_factory=dict)

    @property
    def is_blocking(self) -> bool:
        return self.severity == Severity.CRITICAL and not self.has_waiver

    def to_dict(self) -> dict:
        return {
            "condition_type": self.condition_type.value,
            "severity": self.severity.value,
            "message": self.message,
            "details": self.details,
            "suggested_action": self.suggested_action,
            "has_waiver": self.has_waiver,
            "waiver_id": self.waiver_id,
            "is_blocking": self.is_blocking,
        }


@dataclass
class GateEvaluationResult:
    release_id: int
    conditions: list[GateCondition]
    violations: list[GateViolation]
    evaluated_at: object

    @property
    def passed(self) -> bool:
        return not any(v.is_blocking for v in self.violations)

    @property
    def blocking_violations(self) -> list[GateViolation]:
        return [v for v in self.violations if v.is_blocking]

    def to_dict(self) -> dict:
        return {
            "release_id": self.release_id,
            "passed": self.passed,
            "conditions": [c.to_dict() for c in self.conditions],
            "violations": [v.to_dict() for v in self.violations],
            "evaluated_at": self.evaluated_at.isoformat(),
        }


DEFAULT_GATE_CONDITIONS: tuple[GateCondition, ...] = (
    GateCondition(ConditionType.ALL_TESTS_PASS, "All tests pass", required=True,
                  description="Every run item's latest result is PASS"),
    GateCondition(ConditionType.ALL_APPROVALS_COMPLETE, "All approvals complete", required=True,
                  description="Every baselined test-scenario list revision is approved"),
    GateCondition(ConditionType.MIN_TEST_COVERAGE, "Minimum test coverage", required=True,
                  threshold=DEFAULT_COVERAGE_THRESHOLD,
                  description="Requirement coverage of the baselined scope"),
    GateCondition(ConditionType.NO_CRITICAL_BUGS, "No critical bugs", required=True,
                  description="No CRITICAL or HIGH bug linked to any result"),
    GateCondition(ConditionType.NO_UNAPPROVED_CHANGES, "No unapproved changes", required=False,
                  description="No revision in review or deprecated in the project"),
)

# Waiver target types that can suppress each condition, tried in order
WAIVER_TARGET_TYPES_BY_CONDITION = {
    ConditionType.ALL_TESTS_PASS: (WAIVER_FAIL_RESULT, WAIVER_UNEXECUTED_TEST, WAIVER_OTHER),
    ConditionType.NO_CRITICAL_BUGS: (WAIVER_FAIL_RESULT, WAIVER_OTHER),
    ConditionType.ALL_APPROVALS_COMPLETE: (WAIVER_UNAPPROVED_REVISION, WAIVER_OTHER),
    ConditionType.NO_UNAPPROVED_CHANGES: (WAIVER_UNAPPROVED_REVISION, WAIVER_OTHER),
    ConditionType.MIN_TEST_COVERAGE: (WAIVER_OTHER,),
}


# ═════════════════════════════════════════════════════════════════════════════
# Condition checks
# ═════════════════════════════════════════════════════════════════════════════


def _severity(condition: GateCondition) -> Severity:
    if condition.required:
        return Severity.CRITICAL
    if condition.type == ConditionType.NO_UNAPPROVED_CHANGES:
        return Severity.INFO
    return Severity.WARNING


def _default_threshold() -> float:
    if has_app_context():
        return float(current_app.config.get("GATE_DEFAULT_COVERAGE_THRESHOLD", DEFAULT_COVERAGE_THRESHOLD))
    return DEFAULT_COVERAGE_THRESHOLD


def _fmt(value: float) -> str:
    return f"{value:g}"


def _check_coverage(release: Release, condition: GateCondition) -> GateViolation | None:
    threshold = condition.threshold if condition.threshold is not None else _default_threshold()
    coverage = coverage_service.calculate_coverage(release.id)
    if coverage >= threshold:
        return None
    return GateViolation(
        condition_type=condition.type,
        severity=_severity(condition),
        message=f"Requirement coverage insufficient ({coverage:.1f}% < {_fmt(threshold)}%)",
        details={"expected": threshold, "actual": coverage},
        suggested_action="Add requirement mappings to test cases in the baselined scope",
    )


def _check_tests(release: Release, condition: GateCondition) -> GateViolation | None:
    if coverage_service.check_all_tests_pass(release.id):
        return None
    failed, unexecuted = coverage_service.failing_outcomes(release.id)
    parts = []
    if failed:
        parts.append(f"{len(failed)} failing")
    if unexecuted:
        parts.append(f"{len(unexecuted)} not executed")
    return GateViolation(
        condition_type=condition.type,
        severity=_severity(condition),
        message=f"Not all tests passed ({', '.join(parts)})",
        details={
            "expected": 0,
            "actual": len(failed) + len(unexecuted),
            "affected_ids": sorted(failed + unexecuted),
            "failed_result_ids": failed,
            "unexecuted_run_item_ids": unexecuted,
        },
        suggested_action="Run all tests and fix failures",
        waiver_targets={WAIVER_FAIL_RESULT: failed, WAIVER_UNEXECUTED_TEST: unexecuted},
    )


def _check_bugs(release: Release, condition: GateCondition) -> GateViolation | None:
    if coverage_service.check_no_critical_bugs(release.id):
        return None
    result_ids = coverage_service.critical_bug_result_ids(release.id)
    return GateViolation(
        condition_type=condition.type,
        severity=_severity(condition),
        message=f"Critical or high severity bugs reported on {len(result_ids)} result(s)",
        details={"expected": 0, "actual": len(result_ids), "affected_ids": result_ids},
        suggested_action="Fix critical bugs or issue a waiver",
        waiver_targets={WAIVER_FAIL_RESULT: result_ids},
    )


def _check_approvals(release: Release, condition: GateCondition) -> GateViolation | None:
    if coverage_service.check_all_approvals_complete(release.id):
        return None
    pending = coverage_service.unapproved_baseline_list_revision_ids(release.id)
    return GateViolation(
        condition_type=condition.type,
        severity=_severity(condition),
        message=f"{len(pending)} baselined test-scenario list revision(s) not approved",
        details={"expected": 0, "actual": len(pending), "affected_ids": pending},
        suggested_action="Complete approval of the baselined test-scenario lists",
        waiver_targets={WAIVER_UNAPPROVED_REVISION: pending},
    )


def _check_unapproved_changes(release: Release, condition: GateCondition) -> GateViolation | None:
    if coverage_service.check_no_unapproved_changes(release.id):
        return None
    by_kind = coverage_service.unapproved_revision_ids(release.project_id)
    count = sum(len(ids) for ids in by_kind.values())
    return GateViolation(
        condition_type=condition.type,
        severity=_severity(condition),
        message=f"{count} revision(s) in review or deprecated",
        details={"expected": 0, "actual": count, "affected_revisions": by_kind},
        suggested_action="Approve or remove pending revisions",
    )


_CHECKS = {
    ConditionType.MIN_TEST_COVERAGE: _check_coverage,
    ConditionType.ALL_TESTS_PASS: _check_tests,
    ConditionType.NO_CRITICAL_BUGS: _check_bugs,
    ConditionType.ALL_APPROVALS_COMPLETE: _check_approvals,
    ConditionType.NO_UNAPPROVED_CHANGES: _check_unapproved_changes,
}


# ═════════════════════════════════════════════════════════════════════════════
# Waivers
# ═════════════════════════════════════════════════════════════════════════════


def _covering_waiver(release_id: int, violation: GateViolation, now):
    """Return the waiver that suppresses ``violation``, or None."""
    target_types = WAIVER_TARGET_TYPES_BY_CONDITION.get(violation.condition_type, (WAIVER_OTHER,))

    for target_type in target_types:
        waiver = waiver_service.find_valid_waiver_for_target(release_id, target_type, None, now=now)
        if waiver is not None:
            return waiver

    affected = [(t, i) for t, ids in violation.waiver_targets.items() for i in ids]
    if not affected:
        return None
    first = None
    for target_type, target_id in affected:
        waiver = waiver_service.find_valid_waiver_for_target(release_id, target_type, target_id, now=now)
        if waiver is None:
            return None
        first = first or waiver
    return first


def attach_waivers(release_id: int, violations: list[GateViolation], now=None) -> list[GateViolation]:
    """Set ``has_waiver``/``waiver_id`` on each violation in place."""
    now = as_utc(now) or utcnow()
    for violation in violations:
        waiver = _covering_waiver(release_id, violation, now)
        violation.has_waiver = waiver is not None
        violation.waiver_id = waiver.id if waiver is not None else None
    return violations


# ═════════════════════════════════════════════════════════════════════════════
# Evaluation
# ═════════════════════════════════════════════════════════════════════════════


def evaluate(release_id: int, conditions=None, now=None) -> GateEvaluationResult:
    """Evaluate ``conditions`` (default: DEFAULT_GATE_CONDITIONS) for a release.

    Read-only: release status side effects belong to
    ``release_service.evaluate_gate``.
    """
    release = db.session.get(Release, release_id)
    if release is None:
        raise NotFoundError("Release", release_id)

    now = as_utc(now) or utcnow()
    conditions = list(DEFAULT_GATE_CONDITIONS if conditions is None else conditions)

    violations: list[GateViolation] = []
    for condition in conditions:
        violation = _CHECKS[condition.type](release, condition)
        if violation is not None:
            violations.append(violation)

    attach_waivers(release.id, violations, now=now)
    result = GateEvaluationResult(
        release_id=release.id,
        conditions=conditions,
        violations=violations,
        evaluated_at=now,
    )

    logger.info(
        "Gate evaluated for release %s: passed=%s violations=%d blocking=%d",
        release.id, result.passed, len(violations), len(result.blocking_violations),
        extra={"event_type": "gate_evaluated", "release_id": release.id},
    )
    return result
