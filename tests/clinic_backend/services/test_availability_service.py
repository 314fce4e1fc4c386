from datetime import date

import pytest

from clinic_backend.core.errors import InvalidInput, NotConfigured, NotFound
from clinic_backend.models.appointment import Appointment
from clinic_backend.schemas.availability import WEEKDAYS, WeeklyAvailability
from clinic_backend.services import availability, booking


def test_weekly_availability_sorts_days_monday_first(weekly_schedule) -> None:
    payload = list(reversed(weekly_schedule()))

    weekly = WeeklyAvailability.model_validate(payload)

    assert [schedule.day for schedule in weekly.root] == list(WEEKDAYS)


def test_weekly_availability_requires_every_day_once(weekly_schedule) -> None:
    payload = weekly_schedule()[:6]

    with pytest.raises(ValueError):
        WeeklyAvailability.model_validate(payload)


def test_effective_windows_follow_the_weekday(scheduling_db, add_profile, weekly_schedule) -> None:
    add_profile(availability=weekly_schedule(evening=None, off_days=('Sunday',)))

    monday = availability.effective_windows(scheduling_db, 'doctor-1', '2025-03-03')
    sunday = availability.effective_windows(scheduling_db, 'doctor-1', date(2025, 3, 2))

    assert monday.day == 'Monday'
    assert (monday.morning.start, monday.morning.end) == ('09:00', '12:00')
    assert monday.evening.is_off is True
    assert sunday.morning.is_off is True


def test_effective_windows_raises_when_never_configured(scheduling_db, add_profile) -> None:
    add_profile(availability=None)

    with pytest.raises(NotConfigured):
        availability.effective_windows(scheduling_db, 'doctor-1', '2025-03-03')


def test_slots_for_date_degrades_to_empty_when_not_configured(scheduling_db, add_profile) -> None:
    add_profile(availability=None)

    assert availability.slots_for_date(scheduling_db, 'doctor-1', '2025-03-03') == []


def test_slots_for_date_treats_malformed_schedule_as_not_configured(scheduling_db, add_profile) -> None:
    add_profile(availability=[{'day': 'Funday'}])

    assert availability.slots_for_date(scheduling_db, 'doctor-1', '2025-03-03') == []


def test_slots_for_date_uses_profile_duration(scheduling_db, add_profile, weekly_schedule) -> None:
    add_profile(availability=weekly_schedule(evening=None), slot_duration_minutes=30)

    assert availability.slots_for_date(scheduling_db, 'doctor-1', '2025-03-03') == [
        '09:00', '09:30', '10:00', '10:30', '11:00', '11:30',
    ]


def test_get_profile_raises_not_found_for_unknown_doctor(scheduling_db) -> None:
    with pytest.raises(NotFound) as exception_info:
        availability.get_profile(scheduling_db, 'missing')

    assert exception_info.value.code == 'DOCTOR_NOT_FOUND'


def test_update_availability_persists_schedule_and_duration(scheduling_db, add_profile, weekly_schedule) -> None:
    add_profile(availability=None)

    profile = availability.update_availability(
        scheduling_db,
        'doctor-1',
        weekly_schedule(morning=('08:00', '11:00'), evening=None),
        slot_duration_minutes=20,
    )

    assert profile.slot_duration_minutes == 20
    assert profile.availability[0]['day'] == 'Monday'
    assert availability.slots_for_date(scheduling_db, 'doctor-1', '2025-03-03')[:3] == ['08:00', '08:20', '08:40']


def test_update_availability_rejects_windows_off_the_slot_grid(scheduling_db, add_profile, weekly_schedule) -> None:
    add_profile()

    with pytest.raises(InvalidInput) as exception_info:
        availability.update_availability(
            scheduling_db,
            'doctor-1',
            weekly_schedule(morning=('09:10', '12:00')),
            slot_duration_minutes=15,
        )

    assert exception_info.value.code == 'INVALID_AVAILABILITY_WINDOW'


def test_update_availability_checks_alignment_against_new_duration(scheduling_db, add_profile, weekly_schedule) -> None:
    add_profile(slot_duration_minutes=15)

    with pytest.raises(InvalidInput) as exception_info:
        availability.update_availability(
            scheduling_db,
            'doctor-1',
            weekly_schedule(morning=('09:15', '12:00')),
            slot_duration_minutes=30,
        )

    assert exception_info.value.code == 'INVALID_AVAILABILITY_WINDOW'


def test_update_availability_rejects_malformed_times(scheduling_db, add_profile, weekly_schedule) -> None:
    add_profile()

    with pytest.raises(InvalidInput) as exception_info:
        availability.update_availability(scheduling_db, 'doctor-1', weekly_schedule(morning=('9am', '12:00')))

    assert exception_info.value.code == 'INVALID_AVAILABILITY'
    assert exception_info.value.details['errors']


def test_update_availability_leaves_existing_appointments_untouched(
    scheduling_db, add_profile, booking_payload, weekly_schedule
) -> None:
    add_profile()
    appointment = booking.book(scheduling_db, **booking_payload(appointment_time='16:00'))

    availability.update_availability(scheduling_db, 'doctor-1', weekly_schedule(evening=None))

    stored = scheduling_db.get(Appointment, appointment.id)
    assert stored.status == 'scheduled'
    assert '16:00' not in availability.slots_for_date(scheduling_db, 'doctor-1', '2025-03-03')
