"""
Pydantic schemas for a practitioner's weekly availability
"""
from pydantic import BaseModel, Field, RootModel, field_validator, model_validator

from clinic_backend.core.errors import InvalidInput
from clinic_backend.services.slots import parse_hhmm

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')


class TimeWindow(BaseModel):
    """One contiguous block of a day (morning or evening)."""
    start: str | None = None
    end: str | None = None
    is_off: bool = False

    @model_validator(mode='after')
    def validate_times(self) -> 'TimeWindow':
        if self.is_off:
            return self

        if not self.start or not self.end:
            raise ValueError('start and end are required unless the window is off.')

        for value in (self.start, self.end):
            try:
                parse_hhmm(value)
            except InvalidInput as exc:
                raise ValueError(f'Invalid time {value!r}. Expected HH:MM.') from exc

        return self


class DaySchedule(BaseModel):
    day: str
    morning: TimeWindow = Field(default_factory=lambda: TimeWindow(is_off=True))
    evening: TimeWindow = Field(default_factory=lambda: TimeWindow(is_off=True))

    @field_validator('day')
    @classmethod
    def validate_day(cls, value: str) -> str:
        normalized = value.strip().capitalize()
        if normalized not in WEEKDAYS:
            raise ValueError(f'Invalid day {value!r}. Expected one of {", ".join(WEEKDAYS)}.')
        return normalized


class WeeklyAvailability(RootModel[list[DaySchedule]]):
    """Seven day schedules, Monday through Sunday, each present exactly once."""

    @model_validator(mode='after')
    def validate_week(self) -> 'WeeklyAvailability':
        days = [schedule.day for schedule in self.root]
        if sorted(days, key=WEEKDAYS.index) != list(WEEKDAYS):
            raise ValueError('Availability must list each day from Monday to Sunday exactly once.')

        self.root.sort(key=lambda schedule: WEEKDAYS.index(schedule.day))
        return self

    def for_weekday(self, weekday: int) -> DaySchedule:
        return self.root[weekday]


def validate_window_alignment(availability: WeeklyAvailability, slot_duration_minutes: int) -> None:
    """Reject open windows that are empty or not aligned to the slot duration."""
    if slot_duration_minutes <= 0:
        raise InvalidInput('Slot duration must be a positive number of minutes.', code='INVALID_SLOT_DURATION')

    for schedule in availability.root:
        for label, window in (('morning', schedule.morning), ('evening', schedule.evening)):
            if window.is_off:
                continue

            start = parse_hhmm(window.start)
            end = parse_hhmm(window.end)
            if start >= end:
                raise InvalidInput(
                    f'{schedule.day} {label} window must start before it ends.',
                    code='INVALID_AVAILABILITY_WINDOW',
                )
            if start % slot_duration_minutes or end % slot_duration_minutes:
                raise InvalidInput(
                    f'{schedule.day} {label} window must start and end on '
                    f'{slot_duration_minutes}-minute boundaries.',
                    code='INVALID_AVAILABILITY_WINDOW',
                )
