"""Doctor leave registry.

Leave blocks whole days and is advisory: booking never consults it, and
changing leave never touches existing appointments.
"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from clinic_backend.core.errors import InvalidInput, NotFound
from clinic_backend.models.doctor_leave import DoctorLeave
from clinic_backend.services.slots import parse_date
from clinic_backend.services.storage import commit_or_raise, idempotent_read

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('leave_start_date', 'leave_end_date', 'reason', 'is_active', 'clinic_id')


def _validate_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise InvalidInput(
            'leave_start_date must be before or equal to leave_end_date',
            code='INVALID_LEAVE_RANGE',
        )


def create_leave(
    db: Session,
    *,
    doctor_id: str,
    clinic_id: str,
    leave_start_date: str | date,
    leave_end_date: str | date,
    reason: str | None = None,
) -> DoctorLeave:
    missing_fields = [
        name
        for name, value in (
            ('doctor_id', doctor_id),
            ('clinic_id', clinic_id),
            ('leave_start_date', leave_start_date),
            ('leave_end_date', leave_end_date),
        )
        if not value
    ]
    if missing_fields:
        raise InvalidInput(
            f'Missing required fields: {", ".join(missing_fields)}',
            code='MISSING_REQUIRED_FIELDS',
            missing_fields=missing_fields,
        )

    start_date = parse_date(leave_start_date)
    end_date = parse_date(leave_end_date)
    _validate_range(start_date, end_date)

    leave = DoctorLeave(
        doctor_id=doctor_id,
        clinic_id=clinic_id,
        leave_start_date=start_date,
        leave_end_date=end_date,
        reason=reason or None,
        is_active=True,
    )
    db.add(leave)
    commit_or_raise(db, 'create doctor leave')
    db.refresh(leave)

    logger.info('Leave %s recorded for doctor %s: %s to %s', leave.id, doctor_id, start_date, end_date)
    return leave


@idempotent_read
def get_leave(db: Session, leave_id: int) -> DoctorLeave:
    leave = db.get(DoctorLeave, leave_id)
    if leave is None:
        raise NotFound('Doctor leave record not found', code='LEAVE_NOT_FOUND')
    return leave


def update_leave(db: Session, leave_id: int, update_data: dict) -> DoctorLeave:
    leave = get_leave(db, leave_id)

    changes = {key: value for key, value in update_data.items() if key in UPDATABLE_FIELDS and value is not None}
    if 'leave_start_date' in changes:
        changes['leave_start_date'] = parse_date(changes['leave_start_date'])
    if 'leave_end_date' in changes:
        changes['leave_end_date'] = parse_date(changes['leave_end_date'])

    _validate_range(
        changes.get('leave_start_date', leave.leave_start_date),
        changes.get('leave_end_date', leave.leave_end_date),
    )

    for key, value in changes.items():
        setattr(leave, key, value)

    commit_or_raise(db, 'update doctor leave')
    db.refresh(leave)
    return leave


def delete_leave(db: Session, leave_id: int) -> DoctorLeave:
    leave = get_leave(db, leave_id)
    db.delete(leave)
    commit_or_raise(db, 'delete doctor leave')

    logger.info('Leave %s deleted for doctor %s', leave_id, leave.doctor_id)
    return leave


def deactivate_leave(db: Session, leave_id: int) -> DoctorLeave:
    leave = get_leave(db, leave_id)
    leave.is_active = False
    commit_or_raise(db, 'deactivate doctor leave')
    db.refresh(leave)
    return leave


@idempotent_read
def find_active_leave(db: Session, doctor_id: str, on_date: str | date) -> DoctorLeave | None:
    target_date = parse_date(on_date)
    return db.query(DoctorLeave).filter(
        DoctorLeave.doctor_id == doctor_id,
        DoctorLeave.is_active.is_(True),
        DoctorLeave.leave_start_date <= target_date,
        DoctorLeave.leave_end_date >= target_date,
    ).order_by(DoctorLeave.leave_start_date.asc()).first()


def is_on_leave(db: Session, doctor_id: str, on_date: str | date) -> bool:
    return find_active_leave(db, doctor_id, on_date) is not None


@idempotent_read
def records_in_range(
    db: Session,
    doctor_id: str,
    start_date: str | date,
    end_date: str | date,
) -> list[DoctorLeave]:
    """Active leave records overlapping ``[start_date, end_date]``."""
    range_start = parse_date(start_date)
    range_end = parse_date(end_date)
    _validate_range(range_start, range_end)

    return db.query(DoctorLeave).filter(
        DoctorLeave.doctor_id == doctor_id,
        DoctorLeave.is_active.is_(True),
        DoctorLeave.leave_start_date <= range_end,
        DoctorLeave.leave_end_date >= range_start,
    ).order_by(DoctorLeave.leave_start_date.asc()).all()


@idempotent_read
def leaves_by_doctor(db: Session, doctor_id: str, clinic_id: str | None = None) -> list[DoctorLeave]:
    query = db.query(DoctorLeave).filter(
        DoctorLeave.doctor_id == doctor_id,
        DoctorLeave.is_active.is_(True),
    )
    if clinic_id:
        query = query.filter(DoctorLeave.clinic_id == clinic_id)

    return query.order_by(DoctorLeave.leave_start_date.asc()).all()


@idempotent_read
def leaves_by_clinic(db: Session, clinic_id: str) -> list[DoctorLeave]:
    return db.query(DoctorLeave).filter(
        DoctorLeave.clinic_id == clinic_id,
        DoctorLeave.is_active.is_(True),
    ).order_by(DoctorLeave.leave_start_date.asc(), DoctorLeave.doctor_id.asc()).all()
