"""Standardised API error responses.

Usage
-----
    from qagate.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Release not found")
    return api_error(E.GATE_BLOCK, "Gate blocked", details={"violations": [...]})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • GATE_ prefix for release-gate errors
    """

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # State conflicts – HTTP 409
    STATUS_PRECONDITION = "ERR_STATUS_PRECONDITION"
    INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    IMMUTABLE_REVISION = "ERR_IMMUTABLE_REVISION"
    WAIVER_EXPIRED = "ERR_WAIVER_EXPIRED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"

    # Release gate – HTTP 422
    GATE_BLOCK = "GATE_BLOCK"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.NOT_FOUND: 404,
    E.STATUS_PRECONDITION: 409,
    E.INVALID_TRANSITION: 409,
    E.IMMUTABLE_REVISION: 409,
    E.WAIVER_EXPIRED: 409,
    E.INTERNAL: 500,
    E.GATE_BLOCK: 422,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (current/expected status, violations, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp):
    """Attach the domain-exception → JSON response handlers to a blueprint."""
    import logging

    from flask import request
    from werkzeug.exceptions import HTTPException

    from qagate.core.exceptions import (
        GateViolationError,
        ImmutableRevisionError,
        InvalidTransitionError,
        NotFoundError,
        StatusPreconditionError,
        ValidationError,
        WaiverExpiredError,
    )

    logger = logging.getLogger(bp.import_name)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error), details={
            "resource": error.resource,
            "resource_id": error.resource_id,
        })

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(StatusPreconditionError)
    def _handle_status(error: StatusPreconditionError):
        return api_error(E.STATUS_PRECONDITION, str(error), details={
            "resource": error.resource,
            "resource_id": error.resource_id,
            "current_status": error.current_status,
            "expected_status": error.expected_status,
        })

    @bp.errorhandler(InvalidTransitionError)
    def _handle_transition(error: InvalidTransitionError):
        return api_error(E.INVALID_TRANSITION, str(error), details={
            "from": error.from_status,
            "to": error.to_status,
        })

    @bp.errorhandler(ImmutableRevisionError)
    def _handle_immutable(error: ImmutableRevisionError):
        return api_error(E.IMMUTABLE_REVISION, str(error), details={
            "revision_id": error.revision_id,
            "status": error.status,
        })

    @bp.errorhandler(WaiverExpiredError)
    def _handle_waiver_expired(error: WaiverExpiredError):
        return api_error(E.WAIVER_EXPIRED, str(error), details={"waiver_id": error.waiver_id})

    @bp.errorhandler(GateViolationError)
    def _handle_gate(error: GateViolationError):
        return api_error(E.GATE_BLOCK, str(error), details=error.to_dict())

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
