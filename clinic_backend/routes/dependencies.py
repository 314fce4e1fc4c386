from contextlib import contextmanager

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.core import config
from clinic_backend.core.errors import SchedulingError, to_http_exception
from clinic_backend.database import (
    SessionLocal,
    ensure_appointment_schema,
    ensure_leave_schema,
    ensure_profile_schema,
)
from clinic_backend.middleware.throttle import Throttle

DATABASE_UNAVAILABLE_DETAIL = {
    'code': 'STORAGE_UNAVAILABLE',
    'message': 'Database unavailable. Verify DATABASE_URL and database credentials.',
}

booking_throttle = Throttle(
    max_requests=config.THROTTLE_MAX_REQUESTS,
    window_seconds=config.THROTTLE_WINDOW_SECONDS,
    scope='appointments:book',
)


def ensure_database_ready() -> None:
    try:
        ensure_profile_schema()
        ensure_appointment_schema()
        ensure_leave_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def service_errors(db):
    """Translate scheduling and storage failures into HTTP errors."""
    try:
        yield
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        if db is not None:
            db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
