from __future__ import annotations

from datetime import date, datetime, time, timedelta

from ..core.constants import DATE_FORMAT, DATETIME_FORMAT, TIME_FORMAT


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, DATE_FORMAT).date()


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now()


def floor_time(value: time, minutes: int) -> time:
    """Floor a time of day to the preceding ``minutes`` boundary (seconds dropped)."""
    total = value.hour * 60 + value.minute
    total -= total % minutes
    return time(hour=total // 60, minute=total % 60)


def hours_between(start: time, end: time) -> float:
    """Signed number of hours from ``start`` to ``end`` on the same day."""
    delta = _as_timedelta(end) - _as_timedelta(start)
    return delta.total_seconds() / 3600.0


def _as_timedelta(value: time) -> timedelta:
    return timedelta(hours=value.hour, minutes=value.minute, seconds=value.second)


def normalize_time(value) -> time | None:
    """Normalize TIME values across database drivers.

    Drivers can return TIME as:
    - datetime.time
    - datetime.timedelta (mysql-connector)
    - string (e.g. '08:30:00', sqlite)
    """

    if value is None:
        return None

    if isinstance(value, datetime):
        return value.time()

    if isinstance(value, time):
        return value

    if isinstance(value, timedelta):
        total_seconds = int(value.total_seconds()) % 86400
        hours = total_seconds // 3600
        minutes = (total_seconds % 3600) // 60
        seconds = total_seconds % 60
        return time(hour=hours, minute=minutes, second=seconds)

    if isinstance(value, str):
        parts = value.strip().split(":")
        if len(parts) < 2:
            raise ValueError(f"Invalid time string: {value!r}")
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(float(parts[2])) if len(parts) >= 3 and parts[2] else 0
        return time(hour=hours, minute=minutes, second=seconds)

    raise TypeError(f"Unsupported TIME value type: {type(value)!r}")


def normalize_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_iso_date(value.strip()[:10])
    raise TypeError(f"Unsupported DATE value type: {type(value)!r}")


def format_datetime(value: datetime) -> str:
    return value.strftime(DATETIME_FORMAT)


def format_time(value: time | None) -> str | None:
    return value.strftime(TIME_FORMAT) if value is not None else None
