"""UTC timestamp helpers shared by records, the local store and the outbox.

Wire timestamps are ISO-8601 with millisecond precision and a ``Z`` suffix,
the format browsers produce with ``Date.toISOString()``.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

ONE_MILLISECOND = timedelta(milliseconds=1)


def utcnow() -> datetime:
    return truncate_ms(datetime.now(timezone.utc))


def truncate_ms(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """Parse an ISO string (``Z`` or offset) or epoch milliseconds.

    Returns None for missing or unparseable values.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        parsed = datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
    elif isinstance(raw, str):
        candidate = raw.strip()
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return truncate_ms(parsed.astimezone(timezone.utc))


def epoch_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


__all__ = [
    "ONE_MILLISECOND",
    "utcnow",
    "truncate_ms",
    "format_timestamp",
    "parse_timestamp",
    "epoch_millis",
]
