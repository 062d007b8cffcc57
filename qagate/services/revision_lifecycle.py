"""
Revision lifecycle rules — shared by test cases, scenarios and lists.

Pure functions over the immutable transition tables in
``qagate.models.artifact``.  Two tables exist:

    strict      Deprecated is a dead end (default)
    permissive  Deprecated → Draft restarts a lineage

The active table is chosen by ``REVISION_TRANSITION_POLICY`` in app
config, or explicitly per call via ``policy=``.

Usage:
    from qagate.services.revision_lifecycle import can_transition_to

    can_transition_to("DRAFT", "IN_REVIEW")            # True
    can_transition_to("DEPRECATED", "DRAFT")           # False (strict)
    can_transition_to("DEPRECATED", "DRAFT", "permissive")  # True
"""

from __future__ import annotations

from flask import current_app, has_app_context

from qagate.core.exceptions import InvalidTransitionError
from qagate.models.artifact import (
    PERMISSIVE_REVISION_TRANSITIONS,
    REVISION_APPROVED,
    REVISION_DEPRECATED,
    REVISION_DRAFT,
    REVISION_IN_REVIEW,
    REVISION_STATUSES,
    STRICT_REVISION_TRANSITIONS,
)

POLICY_STRICT = "strict"
POLICY_PERMISSIVE = "permissive"

_TABLES = {
    POLICY_STRICT: STRICT_REVISION_TRANSITIONS,
    POLICY_PERMISSIVE: PERMISSIVE_REVISION_TRANSITIONS,
}

FINAL_STATUSES = frozenset({REVISION_APPROVED, REVISION_DEPRECATED})


def active_policy(policy: str | None = None) -> str:
    """Resolve the transition policy name, falling back to app config."""
    if policy is None and has_app_context():
        policy = current_app.config.get("REVISION_TRANSITION_POLICY", POLICY_STRICT)
    policy = (policy or POLICY_STRICT).lower()
    if policy not in _TABLES:
        raise ValueError(f"Unknown revision transition policy: {policy!r}")
    return policy


def transition_table(policy: str | None = None):
    return _TABLES[active_policy(policy)]


def is_editable(status: str) -> bool:
    """Only DRAFT revisions accept content changes."""
    return status == REVISION_DRAFT


def is_approvable(status: str) -> bool:
    return status == REVISION_IN_REVIEW


def is_final_status(status: str) -> bool:
    """APPROVED and DEPRECATED count as final for reporting."""
    return status in FINAL_STATUSES


def can_transition_to(from_status: str, to_status: str, policy: str | None = None) -> bool:
    if from_status == to_status:
        return False
    return to_status in transition_table(policy).get(from_status, frozenset())


def available_transitions(from_status: str, policy: str | None = None) -> list[str]:
    """Allowed targets from ``from_status`` in canonical status order."""
    allowed = transition_table(policy).get(from_status, frozenset())
    return [s for s in REVISION_STATUSES if s in allowed]


def require_transition(
    from_status: str,
    to_status: str,
    resource: str = "Revision",
    policy: str | None = None,
) -> None:
    """Raise InvalidTransitionError unless the table allows the edge."""
    if not can_transition_to(from_status, to_status, policy):
        raise InvalidTransitionError(resource, from_status, to_status)
