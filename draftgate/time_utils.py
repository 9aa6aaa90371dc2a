"""Utilities for working with timestamps in UTC."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``.

    SQLite hands back naive values for ``DateTime(timezone=True)`` columns;
    those are stored in UTC so the zone is attached rather than converted.
    """

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_between(earlier: Optional[datetime], later: datetime) -> Optional[float]:
    """Return the elapsed hours from ``earlier`` to ``later``."""

    if earlier is None:
        return None
    delta = ensure_utc(later) - ensure_utc(earlier)
    return delta.total_seconds() / 3600.0


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


__all__ = ["utc_now", "ensure_utc", "hours_between", "isoformat"]
