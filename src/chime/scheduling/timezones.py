"""Time and timezone helpers for reminder evaluation.

All instants handled by the scheduler are timezone-aware UTC datetimes.
Wall-clock projection into a reminder's IANA zone happens only at the
cron-matching boundary, through ``project_to_zone``.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "America/Santiago"


class InvalidTimezone(ValueError):
    """Raised when a timezone name is not a known IANA zone."""


@dataclass(frozen=True)
class LocalTime:
    """Wall-clock components of an instant in a specific timezone.

    ``day_of_week`` uses cron numbering: 0 = Sunday ... 6 = Saturday.
    """

    minute: int
    hour: int
    day_of_month: int
    month: int
    day_of_week: int

    @classmethod
    def from_datetime(cls, dt: datetime) -> "LocalTime":
        return cls(
            minute=dt.minute,
            hour=dt.hour,
            day_of_month=dt.day,
            month=dt.month,
            day_of_week=dt.isoweekday() % 7,
        )


# (instant, zone name) -> wall-clock components
ZoneProjector = Callable[[datetime, str], LocalTime]


@lru_cache(maxsize=64)
def get_zone(name: str) -> tzinfo:
    """Resolve an IANA timezone name.

    Raises:
        InvalidTimezone: If the name is empty or unknown.
    """
    if not name:
        raise InvalidTimezone("Timezone name is empty")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezone(f"Unknown timezone: {name}") from e


def is_valid_timezone(name: str) -> bool:
    try:
        get_zone(name)
    except InvalidTimezone:
        return False
    return True


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime.

    Naive values are assumed to already be UTC (SQLite drops offsets).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_utc(dt: datetime, timezone: str) -> datetime:
    """Convert a datetime to UTC, reading naive values as local to ``timezone``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=get_zone(timezone))
    return dt.astimezone(UTC)


def truncate_to_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


def project_to_zone(instant: datetime, zone_name: str) -> LocalTime:
    """Project an absolute instant into wall-clock components in ``zone_name``.

    Raises:
        InvalidTimezone: If ``zone_name`` is unknown.
    """
    local = ensure_utc(instant).astimezone(get_zone(zone_name))
    return LocalTime.from_datetime(local)


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)
