"""Time window boundaries.

Named windows (today, week, month, year) are calendar aligned in the bins'
local timezone. Rolling windows ("last N days") are plain ``now - N * 24h``
offsets. Callers pick the scheme; the two are not interchangeable.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple

from app.schemas import TimeWindow

MONTH_LABEL_FORMAT = "%b %Y"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def window_start(window: TimeWindow, now: datetime, zone: tzinfo) -> Optional[datetime]:
    """Inclusive start of a named window, or ``None`` for all-time."""
    local = now.astimezone(zone)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)

    if window is TimeWindow.today:
        return midnight
    if window is TimeWindow.week:
        # weekday() counts from Monday; weeks start on Sunday.
        return midnight - timedelta(days=(local.weekday() + 1) % 7)
    if window is TimeWindow.month:
        return midnight.replace(day=1)
    if window is TimeWindow.year:
        return midnight.replace(month=1, day=1)
    return None


def rolling_start(now: datetime, days: float) -> datetime:
    return now - timedelta(days=days)


def day_bounds(day: date, zone: tzinfo) -> Tuple[datetime, datetime]:
    """First and last instant of a local calendar day."""
    return (
        datetime.combine(day, time.min, tzinfo=zone),
        datetime.combine(day, time.max, tzinfo=zone),
    )


def month_label(moment: datetime, zone: tzinfo) -> str:
    return moment.astimezone(zone).strftime(MONTH_LABEL_FORMAT)


def month_key(label: str) -> datetime:
    return datetime.strptime(label, MONTH_LABEL_FORMAT)
