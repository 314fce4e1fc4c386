from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_backend.core import config


def build_engine(database_url: str):
    connect_args = {}
    if database_url.startswith('sqlite'):
        connect_args = {'check_same_thread': False, 'timeout': 30}
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False
_leave_schema_checked = False
_profile_schema_checked = False


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('slot_ordinal', 'ALTER TABLE appointments ADD COLUMN slot_ordinal INTEGER'),
            ('version', 'ALTER TABLE appointments ADD COLUMN version INTEGER NOT NULL DEFAULT 1'),
            ('provisional', 'ALTER TABLE appointments ADD COLUMN provisional BOOLEAN DEFAULT FALSE'),
            ('patient_note', 'ALTER TABLE appointments ADD COLUMN patient_note VARCHAR'),
            ('doctor_name', 'ALTER TABLE appointments ADD COLUMN doctor_name VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date_status '
                    'ON appointments(doctor_id, appointment_date, status)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_patient_date '
                    'ON appointments(patient_id, appointment_date)'
                )
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_slot_ordinal '
                    'ON appointments(doctor_id, appointment_date, appointment_time, slot_ordinal)'
                )
            )

        _appointment_schema_checked = True


def ensure_leave_schema() -> None:
    global _leave_schema_checked

    if _leave_schema_checked:
        return

    with _schema_lock:
        if _leave_schema_checked:
            return

        inspector = inspect(engine)

        if 'doctor_leaves' not in inspector.get_table_names():
            _leave_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_doctor_leaves_doctor_clinic_active '
                    'ON doctor_leaves(doctor_id, clinic_id, is_active)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_doctor_leaves_range '
                    'ON doctor_leaves(leave_start_date, leave_end_date)'
                )
            )

        _leave_schema_checked = True


def ensure_profile_schema() -> None:
    global _profile_schema_checked

    if _profile_schema_checked:
        return

    with _schema_lock:
        if _profile_schema_checked:
            return

        inspector = inspect(engine)

        if 'profiles' not in inspector.get_table_names():
            _profile_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('profiles')}
        migration_steps = [
            ('availability', 'ALTER TABLE profiles ADD COLUMN availability JSON'),
            (
                'slot_duration_minutes',
                f'ALTER TABLE profiles ADD COLUMN slot_duration_minutes INTEGER DEFAULT {config.DEFAULT_SLOT_DURATION_MINUTES}',
            ),
            ('capacity', f"ALTER TABLE profiles ADD COLUMN capacity VARCHAR DEFAULT '{config.DEFAULT_CAPACITY}'"),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))

        _profile_schema_checked = True
