"""Timezone-aware clock utilities.

All wall-clock timestamps in group-facilitator MUST be UTC-aware.  This
module is the single source of "now" so tests can monkey-patch it
trivially.  Rate limiting uses the monotonic clock instead, which never
jumps with wall-clock adjustments.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def monotonic() -> float:
    """Seconds on a monotonic clock, for interval arithmetic only."""
    return time.monotonic()


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (common in webhook payloads)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
