"""Slot generation for a practitioner's availability windows.

Slots are start times ("HH:MM"), not intervals: a slot whose end would run past
the window end is still emitted, and trimming is left to the caller.
"""

import re
from datetime import date, datetime, time

from clinic_backend.core.errors import InvalidInput

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_PATTERN = re.compile(r'^\d{2}:\d{2}$')
MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value: str) -> int:
    """Return minutes since midnight for an ``HH:MM`` string."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise InvalidInput('Invalid time format. Expected HH:MM', code='INVALID_TIME_FORMAT', value=value)

    hours, minutes = (int(part) for part in value.split(':'))
    if hours > 23 or minutes > 59:
        raise InvalidInput('Invalid time format. Expected HH:MM', code='INVALID_TIME_FORMAT', value=value)

    return hours * 60 + minutes


def format_hhmm(total_minutes: int) -> str:
    hours, minutes = divmod(total_minutes, 60)
    return f'{hours:02d}:{minutes:02d}'


def parse_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise InvalidInput('Invalid date format. Expected YYYY-MM-DD', code='INVALID_DATE_FORMAT', value=value)

    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidInput(
            'Invalid date format. Expected YYYY-MM-DD', code='INVALID_DATE_FORMAT', value=value
        ) from exc


def parse_time(value: str | time) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    total_minutes = parse_hhmm(value)
    return time(total_minutes // 60, total_minutes % 60)


def time_to_hhmm(value: time) -> str:
    return f'{value.hour:02d}:{value.minute:02d}'


def generate_slots(window, duration_minutes: int) -> list[str]:
    """Return the ordered slot start times of one availability window.

    ``window`` is anything with ``start``, ``end`` and ``is_off`` attributes
    (normally a :class:`~clinic_backend.schemas.availability.TimeWindow`).
    An off or empty window yields no slots.
    """
    if not isinstance(duration_minutes, int) or duration_minutes <= 0:
        raise InvalidInput('Slot duration must be a positive number of minutes.', code='INVALID_SLOT_DURATION')

    if window is None or window.is_off or not window.start or not window.end:
        return []

    start = parse_hhmm(window.start)
    end = parse_hhmm(window.end)

    return [format_hhmm(minute) for minute in range(start, end, duration_minutes)]


def slots_for_day(day_schedule, duration_minutes: int) -> list[str]:
    """Morning slots followed by evening slots for one weekday."""
    return generate_slots(day_schedule.morning, duration_minutes) + generate_slots(
        day_schedule.evening, duration_minutes
    )
