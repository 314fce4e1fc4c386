import pytest
from fastapi import HTTPException

from clinic_backend.auth.dependencies import AuthenticatedUser
from clinic_backend.routes.leave_routes import CreateLeaveRequest, check_leave, create_leave
from clinic_backend.services import leave as leave_registry

DOCTOR = AuthenticatedUser(sub='doctor-1', role='doctor', clinic_id='clinic-1')
PATIENT = AuthenticatedUser(sub='patient-1', role='patient', clinic_id='clinic-1')

LEAVE_PAYLOAD = {
    'doctor_id': 'doctor-1',
    'clinic_id': 'clinic-1',
    'leave_start_date': '2025-03-10',
    'leave_end_date': '2025-03-12',
    'reason': 'Conference',
}


@pytest.fixture
def routes_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('clinic_backend.routes.leave_routes.ensure_database_ready', lambda: None)


def test_create_leave_returns_record(scheduling_db, routes_ready) -> None:
    record = create_leave(data=CreateLeaveRequest(**LEAVE_PAYLOAD), current_user=DOCTOR, db=scheduling_db)

    assert record.id is not None
    assert record.is_active is True


def test_patients_cannot_create_leave(scheduling_db, routes_ready) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_leave(data=CreateLeaveRequest(**LEAVE_PAYLOAD), current_user=PATIENT, db=scheduling_db)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail['code'] == 'FORBIDDEN'


def test_create_leave_maps_inverted_range(scheduling_db, routes_ready) -> None:
    payload = {**LEAVE_PAYLOAD, 'leave_start_date': '2025-03-13'}

    with pytest.raises(HTTPException) as exception_info:
        create_leave(data=CreateLeaveRequest(**payload), current_user=DOCTOR, db=scheduling_db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'INVALID_LEAVE_RANGE'


def test_check_leave_reports_matching_record(scheduling_db, routes_ready) -> None:
    record = leave_registry.create_leave(scheduling_db, **LEAVE_PAYLOAD)

    on_leave = check_leave(doctor_id='doctor-1', date='2025-03-12', current_user=PATIENT, db=scheduling_db)
    available = check_leave(doctor_id='doctor-1', date='2025-03-13', current_user=PATIENT, db=scheduling_db)

    assert on_leave.is_on_leave is True
    assert on_leave.leave.id == record.id
    assert available.is_on_leave is False
    assert available.leave is None


def test_api_leave_lifecycle(api_client) -> None:
    created = api_client.post('/leave', json=LEAVE_PAYLOAD)
    leave_id = created.json()['id']

    fetched = api_client.get(f'/leave/{leave_id}')
    updated = api_client.put(f'/leave/{leave_id}', json={'leave_end_date': '2025-03-14'})
    listed = api_client.get('/leave', params={'doctor_id': 'doctor-1'})
    deactivated = api_client.post(f'/leave/{leave_id}/deactivate')
    after_deactivate = api_client.get('/leave', params={'doctor_id': 'doctor-1'})
    deleted = api_client.delete(f'/leave/{leave_id}')
    missing = api_client.get(f'/leave/{leave_id}')

    assert created.status_code == 201
    assert fetched.json()['reason'] == 'Conference'
    assert updated.json()['leave_end_date'] == '2025-03-14'
    assert [item['id'] for item in listed.json()] == [leave_id]
    assert deactivated.json()['is_active'] is False
    assert after_deactivate.json() == []
    assert deleted.status_code == 200
    assert missing.status_code == 404
    assert missing.json()['detail']['code'] == 'LEAVE_NOT_FOUND'


def test_api_lists_leave_by_range_and_clinic(api_client, scheduling_db) -> None:
    march = leave_registry.create_leave(scheduling_db, **LEAVE_PAYLOAD)
    leave_registry.create_leave(
        scheduling_db, **{**LEAVE_PAYLOAD, 'leave_start_date': '2025-05-01', 'leave_end_date': '2025-05-02'}
    )
    colleague = leave_registry.create_leave(scheduling_db, **{**LEAVE_PAYLOAD, 'doctor_id': 'doctor-2'})

    in_range = api_client.get(
        '/leave/range', params={'doctor_id': 'doctor-1', 'start_date': '2025-03-01', 'end_date': '2025-03-31'}
    )
    clinic = api_client.get('/leave/clinic/clinic-1')

    assert [item['id'] for item in in_range.json()] == [march.id]
    assert {item['id'] for item in clinic.json()} >= {march.id, colleague.id}
    assert len(clinic.json()) == 3


def test_api_check_leave_rejects_bad_date(api_client) -> None:
    response = api_client.get('/leave/check', params={'doctor_id': 'doctor-1', 'date': 'tomorrow'})

    assert response.status_code == 400
    assert response.json()['detail']['code'] == 'INVALID_DATE_FORMAT'
