"""UTC time helpers (timezone-aware calculation, naive storage)."""
from __future__ import annotations

from datetime import datetime, timezone, date
from typing import Optional


def utc_now() -> datetime:
    """Return a UTC timestamp without tzinfo for legacy DB columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    """Return today's date in UTC (naive)."""
    return utc_now().date()


def is_unexpired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when ``expires_at`` is unset or still in the future."""
    if expires_at is None:
        return True
    now = now or utc_now()
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    return expires_at > now
