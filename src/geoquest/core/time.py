"""
Epoch-millisecond timestamps and calendar-date bucketing.

Visit records carry integer epoch milliseconds (the browser-side persistence format).
History views bucket them into calendar dates in the configured timezone, so all
conversions go through timezone-aware datetimes.
"""

from __future__ import annotations

import time
from datetime import date, datetime
from zoneinfo import ZoneInfo


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def from_ms(epoch_ms: int, timezone: str) -> datetime:
    """Convert epoch milliseconds to an aware datetime in `timezone`."""
    return datetime.fromtimestamp(int(epoch_ms) / 1000, tz=ZoneInfo(timezone))


def local_date(epoch_ms: int, timezone: str) -> date:
    return from_ms(epoch_ms, timezone).date()
