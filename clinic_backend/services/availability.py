import logging
from datetime import date

from pydantic import ValidationError
from sqlalchemy.orm import Session

from clinic_backend.core.errors import InvalidInput, NotConfigured, NotFound
from clinic_backend.models.profile import Profile
from clinic_backend.schemas.availability import (
    DaySchedule,
    WeeklyAvailability,
    validate_window_alignment,
)
from clinic_backend.services.slots import parse_date, slots_for_day
from clinic_backend.services.storage import commit_or_raise, idempotent_read

logger = logging.getLogger(__name__)


@idempotent_read
def get_profile(db: Session, doctor_id: str) -> Profile:
    profile = db.get(Profile, doctor_id)
    if profile is None:
        raise NotFound('Doctor not found.', code='DOCTOR_NOT_FOUND')
    return profile


def load_weekly_availability(profile: Profile) -> WeeklyAvailability:
    if not profile.availability:
        raise NotConfigured()

    try:
        return WeeklyAvailability.model_validate(profile.availability)
    except ValidationError as exc:
        logger.warning('Stored availability for doctor %s is malformed: %s', profile.id, exc)
        raise NotConfigured('Stored availability for this doctor is invalid.') from exc


def effective_windows(db: Session, doctor_id: str, on_date: str | date) -> DaySchedule:
    """Return the morning/evening windows that apply to ``on_date``."""
    target_date = parse_date(on_date)
    profile = get_profile(db, doctor_id)
    return load_weekly_availability(profile).for_weekday(target_date.weekday())


def slots_for_date(db: Session, doctor_id: str, on_date: str | date) -> list[str]:
    """All slot start times for the doctor on that date; empty when no availability is configured."""
    target_date = parse_date(on_date)
    profile = get_profile(db, doctor_id)

    try:
        day_schedule = load_weekly_availability(profile).for_weekday(target_date.weekday())
    except NotConfigured:
        logger.info('Doctor %s has no availability configured; no slots on %s', doctor_id, target_date)
        return []

    return slots_for_day(day_schedule, profile.slot_duration_minutes)


def update_availability(
    db: Session,
    doctor_id: str,
    availability,
    slot_duration_minutes: int | None = None,
) -> Profile:
    """Validate and persist a weekly schedule.

    Appointments already booked outside the new windows are left alone.
    """
    profile = get_profile(db, doctor_id)

    if isinstance(availability, WeeklyAvailability):
        weekly = availability
    else:
        try:
            weekly = WeeklyAvailability.model_validate(availability)
        except ValidationError as exc:
            raise InvalidInput(
                'Invalid availability.',
                code='INVALID_AVAILABILITY',
                errors=exc.errors(include_url=False, include_context=False),
            ) from exc

    duration = slot_duration_minutes if slot_duration_minutes is not None else profile.slot_duration_minutes
    validate_window_alignment(weekly, duration)

    profile.availability = weekly.model_dump(mode='json')
    profile.slot_duration_minutes = duration
    commit_or_raise(db, 'update doctor availability')
    db.refresh(profile)

    logger.info('Availability updated for doctor %s (slot duration %s min)', doctor_id, duration)
    return profile
