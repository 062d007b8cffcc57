"""
Domain exception hierarchy for the revision lifecycle and release gate.

Every service raises one of these types; blueprints register handlers
against them once and get consistent HTTP status codes everywhere.
Each exception carries the structured context (ids, current/expected
status, violation list) a caller needs to render an actionable message
without re-querying.

Usage:
    from qagate.core.exceptions import NotFoundError, StatusPreconditionError

    raise NotFoundError(resource="Release", resource_id=42)
    raise StatusPreconditionError("Release", 42, current_status="PLANNING",
                                  expected_status=["GATE_CHECK"])
"""

from __future__ import annotations


class QAGateError(Exception):
    """Base class for all expected domain outcomes."""


class NotFoundError(QAGateError):
    """Raised when a referenced release, waiver, artifact or revision does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Release", "TestCaseRevision").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(QAGateError):
    """Raised when input is well-formed but violates a content rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names;
                 values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class StatusPreconditionError(QAGateError):
    """Raised when the owning entity's status forbids the operation.

    ``expected_status`` is the list of statuses in which the operation
    would have been legal.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None,
        current_status: str | None,
        expected_status: list[str] | str,
    ) -> None:
        if isinstance(expected_status, str):
            expected_status = [expected_status]
        self.resource = resource
        self.resource_id = resource_id
        self.current_status = current_status
        self.expected_status = list(expected_status)
        super().__init__(
            f"{resource} id={resource_id} is {current_status}; "
            f"expected one of: {', '.join(self.expected_status)}"
        )


class InvalidTransitionError(QAGateError):
    """Raised when a status-to-status edge is not in the relevant state table."""

    def __init__(self, resource: str, from_status: str, to_status: str) -> None:
        self.resource = resource
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"{resource}: transition {from_status} → {to_status} is not allowed")


class ImmutableRevisionError(QAGateError):
    """Raised on an attempt to mutate the content of a non-Draft revision."""

    def __init__(self, resource: str, revision_id: int, status: str) -> None:
        self.resource = resource
        self.revision_id = revision_id
        self.status = status
        super().__init__(f"{resource} id={revision_id} is {status} and can no longer be modified")


class WaiverExpiredError(QAGateError):
    """Raised when a waiver is checked at or after its expiry timestamp."""

    def __init__(self, waiver_id: int, expires_at) -> None:
        self.waiver_id = waiver_id
        self.expires_at = expires_at
        stamp = expires_at.isoformat() if expires_at else None
        super().__init__(f"Waiver id={waiver_id} expired at {stamp}")


class GateViolationError(QAGateError):
    """Raised when release approval is blocked by unwaived CRITICAL violations.

    ``violations`` holds every violation of the evaluation (blocking or
    not) so the caller can present remediation or route to waiver issuance.
    """

    def __init__(self, release_id: int, violations: list) -> None:
        self.release_id = release_id
        self.violations = list(violations)
        blocking = [v for v in self.violations if v.is_blocking]
        super().__init__(
            f"Release id={release_id} is blocked by {len(blocking)} unwaived critical violation(s)"
        )

    def to_dict(self) -> dict:
        return {
            "release_id": self.release_id,
            "violations": [v.to_dict() for v in self.violations],
        }
