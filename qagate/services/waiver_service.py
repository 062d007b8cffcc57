"""
Waiver service — time-bounded exceptions to release gate violations.

A waiver is valid strictly while ``now < expires_at``.  Once expired it
stays invalid; there is no renewal, a new waiver must be issued.
Issuing does not deduplicate: the most recently issued valid waiver for a
target is the one the gate uses.

All functions take an optional ``now`` so callers (and tests) control the
clock; it defaults to the current UTC time.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from qagate.core.exceptions import NotFoundError, ValidationError, WaiverExpiredError
from qagate.models import db
from qagate.models.release import WAIVER_TARGET_TYPES, Release, Waiver
from qagate.utils.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)


def _now(now) -> object:
    return as_utc(now) or utcnow()


def issue_waiver(
    release_id: int,
    target_type: str,
    reason: str,
    expires_at,
    issuer_id: str,
    target_id: int | None = None,
    now=None,
) -> Waiver:
    """Persist a new waiver.

    Raises:
        NotFoundError: unknown release.
        ValidationError: unknown target type, blank reason or issuer,
            or ``expires_at`` not strictly after ``now``.
    """
    now = _now(now)
    if db.session.get(Release, release_id) is None:
        raise NotFoundError("Release", release_id)

    errors = {}
    if target_type not in WAIVER_TARGET_TYPES:
        errors["target_type"] = f"must be one of: {', '.join(sorted(WAIVER_TARGET_TYPES))}"
    if not (reason or "").strip():
        errors["reason"] = "a non-empty reason is required"
    if not (issuer_id or "").strip():
        errors["issuer_id"] = "required"
    if expires_at is None:
        errors["expires_at"] = "required"
    elif as_utc(expires_at) <= now:
        errors["expires_at"] = "must be in the future"
    if errors:
        raise ValidationError("Invalid waiver", details=errors)

    waiver = Waiver(
        release_id=release_id,
        target_type=target_type,
        target_id=target_id,
        reason=reason.strip(),
        expires_at=as_utc(expires_at),
        issuer_id=issuer_id,
        created_at=now,
    )
    db.session.add(waiver)
    db.session.commit()

    logger.info(
        "Waiver id=%s issued on release %s for %s/%s until %s",
        waiver.id, release_id, target_type, target_id, waiver.expires_at,
        extra={"event_type": "waiver_issued", "release_id": release_id,
               "waiver_id": waiver.id, "actor": issuer_id},
    )
    return waiver


def get_waiver(waiver_id: int) -> Waiver:
    waiver = db.session.get(Waiver, waiver_id)
    if waiver is None:
        raise NotFoundError("Waiver", waiver_id)
    return waiver


def is_valid(waiver_id: int, now=None) -> Waiver:
    """Return the waiver if it is still valid at ``now``.

    Raises:
        NotFoundError: unknown waiver.
        WaiverExpiredError: ``now >= expires_at``.
    """
    waiver = get_waiver(waiver_id)
    if waiver.is_expired(_now(now)):
        raise WaiverExpiredError(waiver.id, as_utc(waiver.expires_at))
    return waiver


def find_valid_waiver_for_target(
    release_id: int,
    target_type: str,
    target_id: int | None = None,
    now=None,
) -> Waiver | None:
    """Most recently issued waiver for the target that is valid at ``now``.

    ``target_id=None`` matches release-wide waivers only.
    """
    now = _now(now)
    target_filter = Waiver.target_id.is_(None) if target_id is None else Waiver.target_id == target_id
    stmt = (
        select(Waiver)
        .where(
            Waiver.release_id == release_id,
            Waiver.target_type == target_type,
            target_filter,
            Waiver.expires_at > now,
        )
        .order_by(Waiver.created_at.desc(), Waiver.id.desc())
        .limit(1)
    )
    return db.session.execute(stmt).scalars().first()


def find_expired(now=None) -> list[Waiver]:
    """Every waiver with ``expires_at < now``, across all releases."""
    now = _now(now)
    stmt = select(Waiver).where(Waiver.expires_at < now).order_by(Waiver.expires_at, Waiver.id)
    return list(db.session.execute(stmt).scalars().all())


def list_waivers(release_id: int) -> list[dict]:
    if db.session.get(Release, release_id) is None:
        raise NotFoundError("Release", release_id)
    stmt = (
        select(Waiver)
        .where(Waiver.release_id == release_id)
        .order_by(Waiver.created_at.desc(), Waiver.id.desc())
    )
    return [w.to_dict() for w in db.session.execute(stmt).scalars().all()]


def delete_waiver(waiver_id: int) -> None:
    """Delete unconditionally; an unknown id raises NotFoundError."""
    waiver = get_waiver(waiver_id)
    release_id = waiver.release_id
    db.session.delete(waiver)
    db.session.commit()
    logger.info(
        "Waiver id=%s deleted", waiver_id,
        extra={"event_type": "waiver_deleted", "release_id": release_id, "waiver_id": waiver_id},
    )


def sweep_expired(now=None, auto_delete: bool = False) -> dict:
    """Report (and optionally delete) expired waivers.

    Idempotent: a second sweep at the same ``now`` finds nothing to delete.
    """
    now = _now(now)
    expired = find_expired(now)
    report = [w.to_dict() for w in expired]
    deleted = 0
    if auto_delete:
        for waiver in expired:
            db.session.delete(waiver)
            deleted += 1
        db.session.commit()

    logger.info(
        "Waiver sweep: %d expired, %d deleted", len(report), deleted,
        extra={"event_type": "waiver_sweep"},
    )
    return {
        "expired": report,
        "expired_count": len(report),
        "deleted_count": deleted,
        "checked_at": now.isoformat(),
    }
