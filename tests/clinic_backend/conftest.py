import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_backend.auth.dependencies import AuthenticatedUser, get_current_user  # noqa: E402
from clinic_backend.database import Base  # noqa: E402
from clinic_backend.main import app  # noqa: E402
from clinic_backend.models.appointment import Appointment  # noqa: E402
from clinic_backend.models.doctor_leave import DoctorLeave  # noqa: E402
from clinic_backend.models.profile import Profile  # noqa: E402
from clinic_backend.routes.dependencies import booking_throttle, get_db  # noqa: E402

TABLES = [Profile.__table__, Appointment.__table__, DoctorLeave.__table__]


def weekly_schedule(morning=('09:00', '12:00'), evening=('14:00', '17:00'), off_days=()):
    """Build a raw Monday-to-Sunday availability payload."""

    def window(bounds, is_off):
        if bounds is None or is_off:
            return {'start': None, 'end': None, 'is_off': True}
        return {'start': bounds[0], 'end': bounds[1], 'is_off': False}

    return [
        {
            'day': day,
            'morning': window(morning, day in off_days),
            'evening': window(evening, day in off_days),
        }
        for day in ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
    ]


@pytest.fixture
def scheduling_db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))
        engine.dispose()


@pytest.fixture
def add_profile(scheduling_db):
    """Insert a bookable profile; availability defaults to 09:00-12:00 and 14:00-17:00 every day."""

    def _add_profile(
        profile_id='doctor-1',
        *,
        role='doctor',
        capacity='1x',
        availability='default',
        slot_duration_minutes=15,
        clinic_id='clinic-1',
        full_name='Dr. Amal Perera',
    ):
        profile = Profile(
            id=profile_id,
            clinic_id=clinic_id,
            full_name=full_name,
            email=f'{profile_id}@clinic.test',
            role=role,
            capacity=capacity,
            availability=weekly_schedule() if availability == 'default' else availability,
            slot_duration_minutes=slot_duration_minutes,
        )
        scheduling_db.add(profile)
        scheduling_db.commit()
        scheduling_db.refresh(profile)
        return profile

    return _add_profile


@pytest.fixture
def booking_payload():
    def _booking_payload(patient_id='patient-1', **overrides):
        payload = {
            'clinic_id': 'clinic-1',
            'patient_id': patient_id,
            'doctor_id': 'doctor-1',
            'appointment_date': '2025-03-03',
            'appointment_time': '09:00',
            'full_name': f'Patient {patient_id}',
            'contact_number': '0771234567',
        }
        payload.update(overrides)
        return payload

    return _booking_payload


@pytest.fixture(autouse=True)
def reset_booking_throttle():
    booking_throttle.reset()
    yield
    booking_throttle.reset()


@pytest.fixture(name='weekly_schedule')
def weekly_schedule_fixture():
    return weekly_schedule


@pytest.fixture
def acting_user():
    """Mutable holder for the identity the API client authenticates as."""

    class _ActingUser:
        user = AuthenticatedUser(sub='admin-1', role='admin', clinic_id='clinic-1')

        def become(self, sub, role, clinic_id='clinic-1'):
            self.user = AuthenticatedUser(sub=sub, role=role, clinic_id=clinic_id)
            return self.user

    return _ActingUser()


@pytest.fixture
def api_client(scheduling_db, acting_user, monkeypatch: pytest.MonkeyPatch):
    for module in ('appointment_routes', 'availability_routes', 'leave_routes'):
        monkeypatch.setattr(f'clinic_backend.routes.{module}.ensure_database_ready', lambda: None)

    app.dependency_overrides[get_db] = lambda: scheduling_db
    app.dependency_overrides[get_current_user] = lambda: acting_user.user
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
