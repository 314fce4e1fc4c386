from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import AuthenticatedUser, get_current_user
from clinic_backend.core.errors import Forbidden
from clinic_backend.routes.dependencies import ensure_database_ready, get_db, service_errors
from clinic_backend.services import leave as leave_registry

router = APIRouter(tags=['leave'])


class CreateLeaveRequest(BaseModel):
    doctor_id: str | None = None
    clinic_id: str | None = None
    leave_start_date: str | None = None
    leave_end_date: str | None = None
    reason: str | None = None


class UpdateLeaveRequest(BaseModel):
    clinic_id: str | None = None
    leave_start_date: str | None = None
    leave_end_date: str | None = None
    reason: str | None = None
    is_active: bool | None = None


class LeaveResponse(BaseModel):
    id: int
    doctor_id: str
    clinic_id: str
    leave_start_date: date
    leave_end_date: date
    reason: str | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class LeaveCheckResponse(BaseModel):
    is_on_leave: bool
    leave: LeaveResponse | None = None


def _reject_patients(user: AuthenticatedUser) -> None:
    if user.is_patient:
        raise Forbidden('Patients cannot manage doctor leave.')


@router.post('', response_model=LeaveResponse, status_code=201)
def create_leave(
    data: CreateLeaveRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        _reject_patients(current_user)
        return leave_registry.create_leave(
            db,
            doctor_id=data.doctor_id,
            clinic_id=data.clinic_id,
            leave_start_date=data.leave_start_date,
            leave_end_date=data.leave_end_date,
            reason=data.reason,
        )


@router.get('', response_model=list[LeaveResponse])
def list_doctor_leaves(
    doctor_id: str = Query(...),
    clinic_id: str | None = Query(default=None),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return leave_registry.leaves_by_doctor(db, doctor_id, clinic_id)


@router.get('/check', response_model=LeaveCheckResponse)
def check_leave(
    doctor_id: str = Query(...),
    date: str = Query(...),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Informational only: booking does not consult leave."""
    ensure_database_ready()

    with service_errors(db):
        leave = leave_registry.find_active_leave(db, doctor_id, date)

    return LeaveCheckResponse(
        is_on_leave=leave is not None,
        leave=LeaveResponse.model_validate(leave) if leave is not None else None,
    )


@router.get('/range', response_model=list[LeaveResponse])
def list_leaves_in_range(
    doctor_id: str = Query(...),
    start_date: str = Query(...),
    end_date: str = Query(...),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return leave_registry.records_in_range(db, doctor_id, start_date, end_date)


@router.get('/clinic/{clinic_id}', response_model=list[LeaveResponse])
def list_clinic_leaves(
    clinic_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return leave_registry.leaves_by_clinic(db, clinic_id)


@router.get('/{leave_id}', response_model=LeaveResponse)
def get_leave(
    leave_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return leave_registry.get_leave(db, leave_id)


@router.put('/{leave_id}', response_model=LeaveResponse)
def update_leave(
    leave_id: int,
    data: UpdateLeaveRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        _reject_patients(current_user)
        return leave_registry.update_leave(db, leave_id, data.model_dump(exclude_none=True))


@router.post('/{leave_id}/deactivate', response_model=LeaveResponse)
def deactivate_leave(
    leave_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        _reject_patients(current_user)
        return leave_registry.deactivate_leave(db, leave_id)


@router.delete('/{leave_id}', response_model=LeaveResponse)
def delete_leave(
    leave_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        _reject_patients(current_user)
        leave = leave_registry.delete_leave(db, leave_id)
        return LeaveResponse.model_validate(leave)
