"""UTC helpers.

All timestamps are stored and compared in UTC.  SQLite returns
``DateTime(timezone=True)`` columns as naive values, so anything read back
from the store goes through :func:`as_utc` before a Python-side comparison.
"""

from __future__ import annotations

from datetime import datetime, timezone

from qagate.core.exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Return ``dt`` as an aware UTC datetime (naive input is taken as UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso(dt: datetime | None) -> str | None:
    return as_utc(dt).isoformat() if dt else None


def parse_iso(raw: str | None, field_name: str) -> datetime | None:
    """Parse an ISO-8601 string from a request body into aware UTC."""
    value = (raw or "").strip() if isinstance(raw, str) else raw
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be an ISO datetime",
                              details={field_name: "invalid datetime"}) from exc
    return as_utc(dt)
