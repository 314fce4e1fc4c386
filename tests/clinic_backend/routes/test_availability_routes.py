import pytest
from fastapi import HTTPException

from clinic_backend.auth.dependencies import AuthenticatedUser
from clinic_backend.routes.availability_routes import (
    UpdateAvailabilityRequest,
    get_doctor_availability,
    update_doctor_availability,
)
from clinic_backend.services import booking, leave

OTHER_DOCTOR = AuthenticatedUser(sub='doctor-2', role='doctor', clinic_id='clinic-1')
DOCTOR = AuthenticatedUser(sub='doctor-1', role='doctor', clinic_id='clinic-1')


@pytest.fixture
def routes_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('clinic_backend.routes.availability_routes.ensure_database_ready', lambda: None)


def test_get_doctor_availability_for_unconfigured_doctor(scheduling_db, add_profile, routes_ready) -> None:
    add_profile(availability=None)

    response = get_doctor_availability(doctor_id='doctor-1', current_user=DOCTOR, db=scheduling_db)

    assert response.is_configured is False
    assert response.availability is None
    assert response.effective_capacity == 1


def test_doctor_updates_own_availability(scheduling_db, add_profile, weekly_schedule, routes_ready) -> None:
    add_profile(availability=None)
    data = UpdateAvailabilityRequest(
        availability=weekly_schedule(morning=('08:00', '10:00'), evening=None),
        slot_duration_minutes=30,
    )

    response = update_doctor_availability(doctor_id='doctor-1', data=data, current_user=DOCTOR, db=scheduling_db)

    assert response.is_configured is True
    assert response.slot_duration_minutes == 30
    assert response.availability[0].morning.start == '08:00'


def test_doctor_cannot_update_colleague_availability(scheduling_db, add_profile, weekly_schedule, routes_ready) -> None:
    add_profile()
    data = UpdateAvailabilityRequest(availability=weekly_schedule())

    with pytest.raises(HTTPException) as exception_info:
        update_doctor_availability(doctor_id='doctor-1', data=data, current_user=OTHER_DOCTOR, db=scheduling_db)

    assert exception_info.value.status_code == 403


def test_update_availability_maps_misaligned_window(scheduling_db, add_profile, weekly_schedule, routes_ready) -> None:
    add_profile()
    data = UpdateAvailabilityRequest(availability=weekly_schedule(morning=('09:10', '12:00')))

    with pytest.raises(HTTPException) as exception_info:
        update_doctor_availability(doctor_id='doctor-1', data=data, current_user=DOCTOR, db=scheduling_db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'INVALID_AVAILABILITY_WINDOW'


def test_api_rejects_incomplete_week(api_client, add_profile, weekly_schedule) -> None:
    add_profile()

    response = api_client.put('/availability/doctors/doctor-1', json={'availability': weekly_schedule()[:5]})

    assert response.status_code == 400
    assert response.json()['detail']['code'] == 'INVALID_AVAILABILITY'


def test_api_updates_capacity_as_admin(api_client, add_profile) -> None:
    add_profile('admin-1', role='admin')

    response = api_client.put('/availability/doctors/admin-1/capacity', json={'capacity': '3X'})

    assert response.status_code == 200
    assert response.json()['capacity'] == '3x'
    assert response.json()['effective_capacity'] == 3


def test_api_rejects_capacity_change_by_non_admin(api_client, acting_user, add_profile) -> None:
    add_profile('admin-1', role='admin')
    acting_user.become('doctor-1', 'doctor')

    response = api_client.put('/availability/doctors/admin-1/capacity', json={'capacity': '3x'})

    assert response.status_code == 403


def test_api_rejects_invalid_capacity(api_client, add_profile) -> None:
    add_profile('admin-1', role='admin')

    response = api_client.put('/availability/doctors/admin-1/capacity', json={'capacity': 'lots'})

    assert response.status_code == 400
    assert response.json()['detail']['code'] == 'INVALID_CAPACITY'


def test_api_lists_slots_with_occupancy_and_leave_flag(
    api_client, scheduling_db, add_profile, weekly_schedule, booking_payload
) -> None:
    add_profile(availability=weekly_schedule(morning=('09:00', '10:00'), evening=None), slot_duration_minutes=30)
    booking.book(scheduling_db, **booking_payload('patient-1', appointment_time='09:30'))
    leave.create_leave(
        scheduling_db,
        doctor_id='doctor-1',
        clinic_id='clinic-1',
        leave_start_date='2025-03-03',
        leave_end_date='2025-03-03',
    )

    response = api_client.get('/availability/doctors/doctor-1/slots', params={'date': '2025-03-03'})

    assert response.status_code == 200
    assert response.json() == {
        'doctor_id': 'doctor-1',
        'date': '2025-03-03',
        'is_on_leave': True,
        'slots': [
            {'time': '09:00', 'booked': 0, 'capacity': 1, 'is_available': True},
            {'time': '09:30', 'booked': 1, 'capacity': 1, 'is_available': False},
        ],
    }


def test_api_lists_no_slots_for_unconfigured_doctor(api_client, add_profile) -> None:
    add_profile(availability=None)

    response = api_client.get('/availability/doctors/doctor-1/slots', params={'date': '2025-03-03'})

    assert response.status_code == 200
    assert response.json()['slots'] == []


def test_api_reports_unknown_doctor(api_client) -> None:
    response = api_client.get('/availability/doctors/nobody')

    assert response.status_code == 404
    assert response.json()['detail']['code'] == 'DOCTOR_NOT_FOUND'
