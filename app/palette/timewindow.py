"""
Day boundaries in a fixed UTC offset.

Event listings decide "upcoming" vs "past" against the start of the current
day in the club's local offset (IST, +05:30), never the host timezone, so a
deployment in any region flips events over at the same instant.

All helpers are pure. Naive datetimes are read as UTC; results are aware UTC.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

IST_OFFSET_MINUTES = 330


def as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def to_naive_utc(instant: datetime) -> datetime:
    """Aware or naive instant -> naive UTC, for comparison with stored columns."""
    return as_utc(instant).replace(tzinfo=None)


def start_of_local_day(instant: datetime, offset_minutes: int = IST_OFFSET_MINUTES) -> datetime:
    """
    UTC instant of local midnight for the local calendar day containing `instant`.

    Shift into the offset, truncate to the day, shift back:
    2025-08-10T19:00Z at +330 is 2025-08-11T00:30 local -> 2025-08-10T18:30Z.
    """
    offset = timedelta(minutes=offset_minutes)
    local = as_utc(instant) + offset
    local_midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return local_midnight - offset


def start_of_next_local_day(instant: datetime, offset_minutes: int = IST_OFFSET_MINUTES) -> datetime:
    return start_of_local_day(instant, offset_minutes) + timedelta(days=1)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_instant(raw: object) -> datetime:
    """
    Parse a client supplied timestamp.

    Accepts datetime objects and ISO-8601 strings ("2025-08-10",
    "2025-08-10T10:00", "2025-08-10T10:00:00Z", "...+05:30"). Date-only and
    naive values are UTC. Raises ValueError on anything else.
    """
    if isinstance(raw, datetime):
        return as_utc(raw)
    text = str(raw or "").strip()
    if not text:
        raise ValueError("empty timestamp")
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))
