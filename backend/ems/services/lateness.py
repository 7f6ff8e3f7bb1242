"""
Late check-in rule.

A check-in is late iff its instant, projected onto the wall clock of the
configured IANA zone, falls strictly after the configured cutoff on that same
local day. Exactly the cutoff counts as on time.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ems.core.config import settings

logger = logging.getLogger(__name__)


def parse_cutoff(value: str | time) -> time:
    """Accept ``"HH:MM"`` / ``"HH:MM:SS"`` strings or a ready ``time``."""
    if isinstance(value, time):
        return value
    return time.fromisoformat(value.strip())


def _to_instant(value: datetime | str | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        # fromisoformat only learned the "Z" suffix in 3.11
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        # Naive timestamps come back from the database as UTC
        value = value.replace(tzinfo=timezone.utc)
    return value


def local_wall_clock(instant: datetime, tz_name: str) -> datetime:
    """Project an aware instant onto the wall clock of ``tz_name``."""
    return instant.astimezone(ZoneInfo(tz_name))


def is_late(
    check_in: datetime | str | None,
    tz_name: str | None = None,
    cutoff: str | time | None = None,
) -> bool:
    """
    Return True if ``check_in`` is after the cutoff in ``tz_name``.

    The wall clock is compared in whole seconds, so 11:00:00.4 still counts
    as 11:00:00. Missing or unparseable input is treated as on time. The
    result depends only on the arguments, never on the host's local
    timezone.
    """
    instant = _to_instant(check_in)
    if instant is None:
        return False

    zone = tz_name or settings.LATE_CUTOFF_TIMEZONE
    try:
        local = local_wall_clock(instant, zone).replace(microsecond=0)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown timezone '%s' for lateness rule; treating as on time", zone)
        return False

    cutoff_time = parse_cutoff(cutoff if cutoff is not None else settings.LATE_CUTOFF_TIME)
    local_cutoff = local.replace(
        hour=cutoff_time.hour,
        minute=cutoff_time.minute,
        second=cutoff_time.second,
        microsecond=0,
    )
    return local > local_cutoff
