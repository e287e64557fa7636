"""Five-field cron matching.

Fields, in order: minute, hour, day-of-month, month, day-of-week
(0 = Sunday). Each field supports exactly one of these forms:

- ``*``      any value
- ``*/n``    ``value % n == 0`` (evaluated on the raw value, not an offset)
- ``a-b``    inclusive ascending range
- ``a,b,c``  explicit list
- ``n``      exact value

Combined forms (``1-5/2``, ``1-3,5``) and names (``MON``, ``JAN``) are not
supported. At match time they simply fail to match; at write time
``validate_expression`` rejects them.
"""

import logging
import re
from datetime import UTC, datetime, timedelta

from chime.scheduling.timezones import LocalTime, ensure_utc, get_zone

logger = logging.getLogger(__name__)

FIELD_COUNT = 5

# (name, min, max) in expression order
FIELD_DOMAINS: tuple[tuple[str, int, int], ...] = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day_of_month", 1, 31),
    ("month", 1, 12),
    ("day_of_week", 0, 6),
)

_STEP_RE = re.compile(r"^\*/(\d+)$")
_RANGE_RE = re.compile(r"^(\d+)-(\d+)$")
_LIST_RE = re.compile(r"^\d+(?:,\d+)+$")
_INT_RE = re.compile(r"^\d+$")

# Upper bound for next_fire_time scans; covers leap-day-only schedules.
MAX_SCAN_DAYS = 366 * 5


class InvalidCronExpression(ValueError):
    """Raised when a cron expression is rejected at write time."""


def split_fields(expression: str) -> list[str] | None:
    """Split an expression into its fields, or None if the count is wrong."""
    parts = expression.split()
    if len(parts) != FIELD_COUNT:
        return None
    return parts


def field_matches(spec: str, value: int) -> bool:
    """Check whether a single cron field matches ``value``."""
    if spec == "*":
        return True

    try:
        if spec.startswith("*/"):
            step = int(spec[2:])
            return step > 0 and value % step == 0

        if "-" in spec:
            start, end = spec.split("-")
            return int(start) <= value <= int(end)

        if "," in spec:
            return value in {int(item) for item in spec.split(",")}

        return int(spec) == value
    except ValueError:
        # Unsupported syntax never matches
        return False


def matches(expression: str, local: LocalTime) -> bool:
    """Check whether wall-clock components satisfy a 5-field cron expression.

    A malformed expression (wrong field count) never matches and is logged
    at ERROR level.
    """
    parts = split_fields(expression)
    if parts is None:
        logger.error(
            "cron_expression_malformed",
            extra={
                "schedule.cron": expression,
                "schedule.field_count": len(expression.split()),
            },
        )
        return False

    minute, hour, day_of_month, month, day_of_week = parts
    return (
        field_matches(minute, local.minute)
        and field_matches(hour, local.hour)
        and field_matches(day_of_month, local.day_of_month)
        and field_matches(month, local.month)
        and field_matches(day_of_week, local.day_of_week)
    )


def _validate_field(spec: str, name: str, low: int, high: int) -> None:
    def check(value: int) -> None:
        if not low <= value <= high:
            raise InvalidCronExpression(
                f"{name} value {value} outside {low}-{high} in '{spec}'"
            )

    if spec == "*":
        return
    if m := _STEP_RE.match(spec):
        if int(m.group(1)) == 0:
            raise InvalidCronExpression(f"{name} step must be positive in '{spec}'")
        return
    if m := _RANGE_RE.match(spec):
        start, end = int(m.group(1)), int(m.group(2))
        check(start)
        check(end)
        if start > end:
            raise InvalidCronExpression(f"{name} range must be ascending in '{spec}'")
        return
    if _LIST_RE.match(spec):
        for item in spec.split(","):
            check(int(item))
        return
    if _INT_RE.match(spec):
        check(int(spec))
        return
    raise InvalidCronExpression(f"Unsupported {name} syntax: '{spec}'")


def validate_expression(expression: str) -> str:
    """Validate an expression before it is stored.

    Returns:
        The expression normalized to single-space separated fields.

    Raises:
        InvalidCronExpression: If the expression has the wrong shape, uses
            syntax the matcher does not support, or is not valid cron.
    """
    parts = split_fields(expression)
    if parts is None:
        raise InvalidCronExpression(
            f"Expected {FIELD_COUNT} fields (minute hour day month weekday), "
            f"got '{expression}'"
        )

    for spec, (name, low, high) in zip(parts, FIELD_DOMAINS, strict=True):
        _validate_field(spec, name, low, high)

    normalized = " ".join(parts)

    from croniter import croniter

    if not croniter.is_valid(normalized):
        raise InvalidCronExpression(f"Invalid cron expression: '{expression}'")
    return normalized


def next_fire_time(
    expression: str, after: datetime, timezone: str = "UTC"
) -> datetime | None:
    """Find the first minute strictly after ``after`` that the expression matches.

    Uses the same field semantics as ``matches`` so previews agree with
    what the scheduler will actually fire. Nonexistent local times (DST
    gaps) are skipped. Returns a UTC datetime, or None if nothing matches
    within the scan horizon or the expression is malformed.
    """
    parts = split_fields(expression)
    if parts is None:
        return None
    minute_spec, hour_spec, dom_spec, month_spec, dow_spec = parts

    tz = get_zone(timezone)
    after_utc = ensure_utc(after)
    start_local = after_utc.astimezone(tz)
    day = start_local.date()

    for _ in range(MAX_SCAN_DAYS):
        if (
            field_matches(dom_spec, day.day)
            and field_matches(month_spec, day.month)
            and field_matches(dow_spec, day.isoweekday() % 7)
        ):
            for hour in range(24):
                if not field_matches(hour_spec, hour):
                    continue
                for minute in range(60):
                    if not field_matches(minute_spec, minute):
                        continue
                    local = datetime(
                        day.year, day.month, day.day, hour, minute, tzinfo=tz
                    )
                    candidate = local.astimezone(UTC)
                    roundtrip = candidate.astimezone(tz)
                    if (roundtrip.hour, roundtrip.minute) != (hour, minute):
                        continue
                    if candidate > after_utc:
                        return candidate
        day += timedelta(days=1)

    return None
