from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import AuthenticatedUser, get_current_user, require_admin
from clinic_backend.core.errors import Forbidden, NotConfigured
from clinic_backend.routes.dependencies import ensure_database_ready, get_db, service_errors
from clinic_backend.schemas.availability import DaySchedule
from clinic_backend.services import availability, booking, capacity, leave
from clinic_backend.services.slots import parse_date

router = APIRouter(tags=['availability'])


class UpdateAvailabilityRequest(BaseModel):
    availability: list[DaySchedule]
    slot_duration_minutes: int | None = Field(default=None, gt=0, le=240)


class UpdateCapacityRequest(BaseModel):
    capacity: str

    @field_validator('capacity')
    @classmethod
    def normalize_capacity(cls, value: str) -> str:
        return value.strip().lower()


class DoctorAvailabilityResponse(BaseModel):
    doctor_id: str
    full_name: str
    role: str
    slot_duration_minutes: int
    capacity: str
    effective_capacity: int
    is_configured: bool
    availability: list[DaySchedule] | None = None


class DaySlotResponse(BaseModel):
    time: str
    booked: int
    capacity: int
    is_available: bool


class DaySlotsResponse(BaseModel):
    doctor_id: str
    date: date
    is_on_leave: bool
    slots: list[DaySlotResponse]


def _availability_response(profile) -> DoctorAvailabilityResponse:
    try:
        weekly = availability.load_weekly_availability(profile)
    except NotConfigured:
        weekly = None

    return DoctorAvailabilityResponse(
        doctor_id=profile.id,
        full_name=profile.full_name,
        role=profile.role,
        slot_duration_minutes=profile.slot_duration_minutes,
        capacity=profile.capacity,
        effective_capacity=capacity.capacity_for_profile(profile),
        is_configured=weekly is not None,
        availability=weekly.root if weekly is not None else None,
    )


@router.get('/doctors/{doctor_id}', response_model=DoctorAvailabilityResponse)
def get_doctor_availability(
    doctor_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return _availability_response(availability.get_profile(db, doctor_id))


@router.put('/doctors/{doctor_id}', response_model=DoctorAvailabilityResponse)
def update_doctor_availability(
    doctor_id: str,
    data: UpdateAvailabilityRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        if not (current_user.is_admin or current_user.sub == doctor_id):
            raise Forbidden('Only admins or the doctor can change this schedule.')

        profile = availability.update_availability(
            db,
            doctor_id,
            [schedule.model_dump() for schedule in data.availability],
            slot_duration_minutes=data.slot_duration_minutes,
        )
        return _availability_response(profile)


@router.put('/doctors/{doctor_id}/capacity', response_model=DoctorAvailabilityResponse)
def update_doctor_capacity(
    doctor_id: str,
    data: UpdateCapacityRequest,
    current_user: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return _availability_response(capacity.update_capacity(db, doctor_id, data.capacity))


@router.get('/doctors/{doctor_id}/slots', response_model=DaySlotsResponse)
def list_doctor_slots(
    doctor_id: str,
    date: str = Query(...),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        target_date = parse_date(date)
        slots = booking.slot_grid(db, doctor_id, target_date)
        # Advisory flag for the UI; slots stay bookable on leave days.
        is_on_leave = leave.is_on_leave(db, doctor_id, target_date)

    return DaySlotsResponse(
        doctor_id=doctor_id,
        date=target_date,
        is_on_leave=is_on_leave,
        slots=[DaySlotResponse(**slot) for slot in slots],
    )
