"""Business rules a proposed reservation must satisfy before it is stored.

Rules are checked in a fixed order and the first failing one is reported:
parseable input, not in the past, at least one hour long, inside business
hours, on a weekday. A weekend booking inside 08:00-19:00 is reported as
``WeekendError``, but one outside those hours (Saturday 20:00, say) fails
earlier with ``OutsideBusinessHoursError``. Timestamps handed to these
functions are naive values in the booking timezone; aware values are
converted into that timezone first.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any

from .errors import (
    InvalidInputError,
    OutsideBusinessHoursError,
    PastDateError,
    TooShortError,
    WeekendError,
)

BUSINESS_START_HOUR = 8
BUSINESS_END_HOUR = 19
MIN_DURATION = timedelta(hours=1)
TITLE_MAX_LENGTH = 22


def parse_timestamp(value: Any, timezone: tzinfo | None = None) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as error:
            raise InvalidInputError(f"Invalid date format: {value!r}.") from error
    else:
        raise InvalidInputError()

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone).replace(tzinfo=None)
    return parsed


def validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise InvalidInputError()
    normalized = title.strip()
    if len(normalized) > TITLE_MAX_LENGTH:
        raise InvalidInputError(f"Title must be at most {TITLE_MAX_LENGTH} characters.")
    return normalized


def validate_time_window(
    start: Any,
    end: Any,
    now: datetime,
    timezone: tzinfo | None = None,
) -> tuple[datetime, datetime]:
    """Check a proposed [start, end) interval and return it as naive datetimes."""
    start = parse_timestamp(start, timezone)
    end = parse_timestamp(end, timezone)
    now = parse_timestamp(now, timezone)

    if start < now:
        raise PastDateError()
    if end - start < MIN_DURATION:
        raise TooShortError()
    if not is_within_business_hours(start, end):
        raise OutsideBusinessHoursError()
    if not is_weekday(start.date()):
        raise WeekendError()
    return start, end


def is_within_business_hours(start: datetime, end: datetime) -> bool:
    if start.date() != end.date():
        return False
    closing = datetime.combine(start.date(), time(BUSINESS_END_HOUR))
    return start.hour >= BUSINESS_START_HOUR and end <= closing


def is_weekday(target_date: date) -> bool:
    return target_date.weekday() < 5


def week_start(any_day: date | datetime) -> date:
    """Return the Monday of the week containing ``any_day``."""
    if isinstance(any_day, datetime):
        any_day = any_day.date()
    return any_day - timedelta(days=any_day.weekday())
