"""Time-of-day and calendar helpers pinned to one reference timezone."""

import re
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from slot_alerts.core.exceptions import ValidationError

MINUTES_PER_DAY = 24 * 60

_TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")

# Monday first, matching date.weekday()
HEBREW_DAY_NAMES = (
    "יום שני",
    "יום שלישי",
    "יום רביעי",
    "יום חמישי",
    "יום שישי",
    "יום שבת",
    "יום ראשון",
)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_time_of_day(value: str) -> int:
    """
    Parse ``HH:MM`` (or ``HH:MM:SS``) into minutes since midnight.

    Raises:
        ValidationError: If the value is not a valid time of day
    """
    match = _TIME_OF_DAY.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationError(f"Invalid time of day: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValidationError(f"Invalid time of day: {value!r}")
    return hours * 60 + minutes


def format_time_of_day(minutes: int) -> str:
    """Render minutes since midnight as zero-padded ``HH:MM``."""
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_times(times: list[str] | None) -> list[str]:
    """
    Canonical form of a time-set: zero-padded, deduplicated, sorted.

    Raises:
        ValidationError: If the set is empty or holds an invalid time
    """
    if not times:
        raise ValidationError("Empty time-set")
    return [format_time_of_day(m) for m in sorted({parse_time_of_day(t) for t in times})]


def times_key(times: list[str]) -> str:
    """Equality key for a time-set."""
    return ",".join(normalize_times(times))


def minutes_since_midnight(now: datetime, tz_name: str) -> int:
    """Wall-clock minutes since midnight of ``now`` in the given timezone."""
    local = as_utc(now).astimezone(ZoneInfo(tz_name))
    return local.hour * 60 + local.minute


def in_quiet_window(current: int, start: int, end: int) -> bool:
    """
    Whether ``current`` falls inside the ``[start, end)`` quiet window.

    All arguments are minutes since midnight. ``start > end`` is an overnight
    window that wraps past midnight. ``start == end`` is an empty window.
    """
    if start == end:
        return False
    if start < end:
        return start <= current < end
    return current >= start or current < end


def today_in_timezone(tz_name: str, now: datetime | None = None) -> date:
    """Calendar date of ``now`` in the given timezone."""
    return as_utc(now or utcnow()).astimezone(ZoneInfo(tz_name)).date()


def parse_date(value: str | date) -> date:
    """
    Parse an ISO ``YYYY-MM-DD`` date.

    Raises:
        ValidationError: If the value is not a valid date
    """
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date: {value!r}")


def day_label(value: date) -> str:
    """Hebrew weekday name for a date."""
    return HEBREW_DAY_NAMES[value.weekday()]
