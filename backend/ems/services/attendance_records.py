"""Derived fields and period filters for attendance records."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Literal

from ems.services.lateness import is_late

PeriodFilter = Literal["today", "week", "month", "all"]


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def working_hours(check_in: datetime | None, check_out: datetime | None) -> str | None:
    """Elapsed time between check-in and check-out as ``HH:MM:SS``.

    Hours are not wrapped at 24. Incomplete or inverted pairs yield None.
    """
    if check_in is None or check_out is None:
        return None
    delta = _aware(check_out) - _aware(check_in)
    total = int(delta.total_seconds())
    if total < 0:
        return None
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def resolve_is_late(stored: bool | None, check_in: datetime | None) -> bool:
    """Persisted flag when present, otherwise re-derived from the timestamp."""
    if stored is not None:
        return bool(stored)
    return is_late(check_in)


def period_start(period: str | None, today: date) -> date | None:
    """First day included by a period filter; None means no lower bound."""
    if period == "today":
        return today
    if period == "week":
        # Weeks start on Monday
        return today - timedelta(days=today.weekday())
    if period == "month":
        return today.replace(day=1)
    return None
