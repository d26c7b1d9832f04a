"""
Local-date helpers for the goal engine.

Convention: `tz_offset` is the user's offset in minutes east of UTC, so
local = utc + tz_offset. A local calendar day "YYYY-MM-DD" starts at the
UTC instant (local midnight - tz_offset).

SQLite hands back naive datetimes for DateTime(timezone=True) columns; every
value read from the store goes through `ensure_utc` before arithmetic.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import FrozenSet, Optional

from core.exceptions import InvalidInputError

WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
ALL_WEEKDAYS: FrozenSet[int] = frozenset(range(7))

# Accepted spellings -> date.weekday() index
_WEEKDAY_ALIASES = {
    "mon": 0, "monday": 0,
    "tue": 1, "tues": 1, "tuesday": 1,
    "wed": 2, "wednesday": 2,
    "thu": 3, "thur": 3, "thurs": 3, "thursday": 3,
    "fri": 4, "friday": 4,
    "sat": 5, "saturday": 5,
    "sun": 6, "sunday": 6,
}
_DAILY_TOKENS = {"daily", "every day", "everyday"}

MAX_TZ_OFFSET_MINUTES = 14 * 60
MIN_TZ_OFFSET_MINUTES = -12 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_tz_offset(tz_offset: int) -> int:
    if not isinstance(tz_offset, int) or isinstance(tz_offset, bool):
        raise InvalidInputError("tz_offset must be an integer number of minutes", field="tz_offset")
    if tz_offset < MIN_TZ_OFFSET_MINUTES or tz_offset > MAX_TZ_OFFSET_MINUTES:
        raise InvalidInputError(
            f"tz_offset {tz_offset} outside [{MIN_TZ_OFFSET_MINUTES}, {MAX_TZ_OFFSET_MINUTES}]",
            field="tz_offset",
        )
    return tz_offset


def local_date(instant: datetime, tz_offset: int) -> date:
    """Calendar date of `instant` for a user at `tz_offset`."""
    return (ensure_utc(instant) + timedelta(minutes=tz_offset)).date()


def local_day_start_utc(day: date, tz_offset: int) -> datetime:
    """UTC instant at which local `day` begins."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc) - timedelta(minutes=tz_offset)


def local_today_start_utc(now: datetime, tz_offset: int) -> datetime:
    return local_day_start_utc(local_date(now, tz_offset), tz_offset)


def format_local_date(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def parse_local_date(value: str, field: str = "date") -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid date '{value}', expected YYYY-MM-DD", field=field)


def parse_month(value: str) -> date:
    """
    Parse a strict "YYYY-MM" string and return the first day of that month.

    Rejects anything else ("2025-1", "2025-13", "2025-01-05").
    """
    if not isinstance(value, str) or len(value) != 7 or value[4] != "-":
        raise InvalidInputError(f"Invalid month '{value}', expected YYYY-MM", field="month")
    year_part, month_part = value[:4], value[5:]
    if not (year_part.isdigit() and month_part.isdigit()):
        raise InvalidInputError(f"Invalid month '{value}', expected YYYY-MM", field="month")
    month = int(month_part)
    if month < 1 or month > 12:
        raise InvalidInputError(f"Invalid month '{value}', month must be 01-12", field="month")
    return date(int(year_part), month, 1)


def month_bounds(first_day: date) -> tuple:
    """(first, last) calendar days of the month starting at `first_day`."""
    if first_day.month == 12:
        next_month = date(first_day.year + 1, 1, 1)
    else:
        next_month = date(first_day.year, first_day.month + 1, 1)
    return first_day, next_month - timedelta(days=1)


def weekday_name(day: date) -> str:
    """Three-letter English weekday, independent of process locale."""
    return WEEKDAY_NAMES[day.weekday()]


def parse_recurring_pattern(pattern: Optional[str]) -> FrozenSet[int]:
    """
    Turn a recurring pattern into the set of weekday indexes it covers.

    "Daily" (or "every day") covers the whole week. Otherwise the pattern is
    a comma-separated list of weekday names, matched case-insensitively.
    Unknown tokens are ignored; an empty or fully unknown pattern covers no
    day at all.
    """
    if not pattern:
        return frozenset()
    normalized = pattern.strip().lower()
    if normalized in _DAILY_TOKENS:
        return ALL_WEEKDAYS
    days = set()
    for token in normalized.split(","):
        token = token.strip()
        if token in _DAILY_TOKENS:
            return ALL_WEEKDAYS
        index = _WEEKDAY_ALIASES.get(token)
        if index is not None:
            days.add(index)
    return frozenset(days)


def iter_days(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
