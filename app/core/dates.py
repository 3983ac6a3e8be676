"""Attendance day normalization. Every attendance/fine key uses the UTC calendar day."""

from datetime import date, datetime, timezone
from typing import Union


def to_utc_day(value: Union[str, date, datetime]) -> date:
    """
    Truncate a date-like value to its UTC calendar day.

    Aware datetimes are converted to UTC first; naive datetimes and plain dates are
    taken as already being UTC. Strings are parsed as ISO 8601 (a trailing "Z" is accepted).
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Invalid date: {value!r}")
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise ValueError(f"Invalid date: {value!r}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
