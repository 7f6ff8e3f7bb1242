"""
Notification feed pipeline: noise filter -> id dedupe -> content dedupe ->
recency sort -> unread count.

Seed and demo data (the tasks and events created by the seeders) keep
resurfacing in real inboxes, so anything matching their signatures is
dropped before display. The pipeline is pure: same input, same output.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Hashable, Iterable, Mapping, Sequence

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]

NOISE_SUBSTRINGS: tuple[str, ...] = (
    "complete safety training module",
    "submit monthly report",
    "review company policy updates",
    "monthly all-hands meeting",
    "team training session",
    "department review meeting",
    "test notification",
    "lorem ipsum",
)

NOISE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bdummy\b",
        r"\bseed(ed)?\s+data\b",
        r"\bsample\s+notification\b",
        r"^\s*test\s*\d*\s*$",
    )
)


@dataclass(frozen=True)
class NotificationFeed:
    items: list[dict[str, Any]] = field(default_factory=list)
    unread_count: int = 0


def created_at_timestamp(record: Record) -> float:
    """``createdAt`` as epoch seconds; missing or unparseable -> 0."""
    value = record.get("createdAt")
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            return 0.0
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return 0.0


def is_noise(record: Record) -> bool:
    title = str(record.get("title") or "").strip()
    message = str(record.get("message") or "").strip()
    if not title and not message:
        return True

    candidates = (title, message, f"{title} {message}".strip())
    for text in candidates:
        lowered = text.lower()
        if any(s in lowered for s in NOISE_SUBSTRINGS):
            return True
        if text and any(p.search(text) for p in NOISE_PATTERNS):
            return True
    return False


def filter_noise(records: Iterable[Record]) -> list[Record]:
    return [r for r in records if not is_noise(r)]


def _keep_latest(records: Iterable[Record], key_of) -> list[Record]:
    """Collapse records sharing a key, keeping the one with the latest createdAt.

    Groups keep the position of their first member; a None key never groups.
    """
    slots: list[Record] = []
    index_by_key: dict[Hashable, int] = {}
    for record in records:
        key = key_of(record)
        if key is None:
            slots.append(record)
            continue
        if key not in index_by_key:
            index_by_key[key] = len(slots)
            slots.append(record)
            continue
        pos = index_by_key[key]
        if created_at_timestamp(record) > created_at_timestamp(slots[pos]):
            slots[pos] = record
    return slots


def dedupe_by_id(records: Iterable[Record]) -> list[Record]:
    return _keep_latest(records, lambda r: r.get("id"))


def dedupe_by_content(records: Iterable[Record]) -> list[Record]:
    return _keep_latest(
        records,
        lambda r: (str(r.get("title") or ""), str(r.get("message") or "")),
    )


def sort_by_recency(records: Iterable[Record]) -> list[Record]:
    return sorted(records, key=created_at_timestamp, reverse=True)


def process_notifications(raw: Sequence[Record]) -> NotificationFeed:
    survivors = filter_noise(raw)
    survivors = dedupe_by_id(survivors)
    survivors = dedupe_by_content(survivors)
    survivors = sort_by_recency(survivors)
    unread = sum(1 for r in survivors if not r.get("isRead"))

    dropped = len(raw) - len(survivors)
    if dropped:
        logger.debug("Notification feed: %d of %d dropped as noise or duplicates", dropped, len(raw))
    return NotificationFeed(items=[dict(r) for r in survivors], unread_count=unread)
