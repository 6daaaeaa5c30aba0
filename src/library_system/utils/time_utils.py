"""Clock and date helpers shared by the entity models and the facade."""

import math
from collections.abc import Callable
from datetime import datetime, timedelta

import arrow

Clock = Callable[[], datetime]

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return arrow.utcnow().datetime


def parse_datetime(value: datetime | str | None) -> datetime | None:
    """Coerce a snapshot value into a timezone-aware datetime.

    Accepts ``None``, ``datetime`` instances (naive values are treated as UTC)
    and ISO 8601 strings as written by the JSON storage backend.
    """
    if value is None:
        return None
    return arrow.get(value).to("utc").datetime


def days_late(due: datetime, returned: datetime) -> int:
    """Whole days between ``due`` and ``returned``, rounded up, never negative."""
    seconds = (returned - due).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / SECONDS_PER_DAY)


def add_days(moment: datetime, days: int) -> datetime:
    return moment + timedelta(days=days)
