from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import AuthenticatedUser, get_current_user, require_admin
from clinic_backend.core.errors import Forbidden
from clinic_backend.routes.dependencies import booking_throttle, ensure_database_ready, get_db, service_errors
from clinic_backend.services import booking
from clinic_backend.services.slots import time_to_hhmm

router = APIRouter(tags=['appointments'])

MAX_NOTES_LENGTH = 600


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    clinic_id: str | None = None
    patient_id: str | None = None
    doctor_id: str | None = None
    appointment_date: str | None = None
    appointment_time: str | None = None
    full_name: str | None = None
    contact_number: str | None = None
    appointment_type: str = 'in_person'
    doctor_name: str | None = None
    notes: str | None = None
    patient_note: str | None = None
    provisional: bool = False

    @field_validator('clinic_id', 'patient_id', 'doctor_id', 'appointment_date', 'appointment_time', 'full_name')
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator('appointment_type')
    @classmethod
    def normalize_appointment_type(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('notes', 'patient_note')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateAppointmentRequest(BaseModel):
    appointment_date: str | None = None
    appointment_time: str | None = None
    doctor_id: str | None = None
    doctor_name: str | None = None
    status: str | None = None
    appointment_type: str | None = None
    notes: str | None = None
    patient_note: str | None = None
    full_name: str | None = None
    contact_number: str | None = None

    @field_validator('notes', 'patient_note')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class BookingCreatedResponse(BaseModel):
    id: int
    appointment_uid: str
    status: str
    message: str = 'Appointment booked successfully'


class AppointmentResponse(BaseModel):
    id: int
    appointment_uid: str
    clinic_id: str
    patient_id: str
    doctor_id: str
    doctor_name: str | None = None
    full_name: str | None = None
    contact_number: str | None = None
    appointment_date: date
    appointment_time: str
    appointment_type: str
    status: str
    notes: str | None = None
    patient_note: str | None = None
    provisional: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator('appointment_time', mode='before')
    @classmethod
    def format_time(cls, value):
        if isinstance(value, time):
            return time_to_hhmm(value)
        return value

    class Config:
        from_attributes = True


class SlotStatusResponse(BaseModel):
    time: str
    booked: int
    capacity: int


@router.post(
    '',
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_throttle)],
)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        if current_user.is_patient and data.patient_id and data.patient_id != current_user.sub:
            raise Forbidden('Patients can only book appointments for themselves.')

        appointment = booking.book(
            db,
            clinic_id=data.clinic_id,
            patient_id=data.patient_id,
            doctor_id=data.doctor_id,
            appointment_date=data.appointment_date,
            appointment_time=data.appointment_time,
            full_name=data.full_name,
            contact_number=data.contact_number,
            appointment_type=data.appointment_type,
            notes=data.notes,
            patient_note=data.patient_note,
            doctor_name=data.doctor_name,
            provisional=data.provisional or current_user.is_patient,
        )

    return BookingCreatedResponse(
        id=appointment.id,
        appointment_uid=appointment.appointment_uid,
        status=appointment.status,
    )


@router.get('/booked-slots', response_model=list[str])
def get_booked_slots(
    doctor_id: str = Query(...),
    appointment_date: str = Query(...),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return booking.get_booked_slots_for_doctor_on_date(db, doctor_id, appointment_date)


@router.get('/slot-status', response_model=list[SlotStatusResponse])
def get_slot_status(
    doctor_id: str = Query(...),
    date: str = Query(...),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return booking.slot_status(db, doctor_id, date)


@router.get('/clinic/{clinic_id}', response_model=list[AppointmentResponse])
def list_clinic_appointments(
    clinic_id: str,
    status_filter: str | None = Query(default=None, alias='status'),
    doctor_id: str | None = Query(default=None),
    patient_id: str | None = Query(default=None),
    date: str | None = Query(default=None),
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    search: str | None = Query(default=None),
    provisional: bool | None = Query(default=None),
    appointment_type: str | None = Query(default=None),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        if current_user.is_patient:
            raise Forbidden('Patients cannot list clinic appointments.')

        return booking.appointments_by_clinic(
            db,
            clinic_id,
            status=status_filter,
            doctor_id=doctor_id,
            patient_id=patient_id,
            on_date=date,
            start_date=start_date,
            end_date=end_date,
            search=search,
            provisional=provisional,
            appointment_type=appointment_type,
        )


@router.get('/patient/{patient_id}', response_model=list[AppointmentResponse])
def list_patient_appointments(
    patient_id: str,
    from_date: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=100),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        if current_user.is_patient and current_user.sub != patient_id:
            raise Forbidden('Patients can only view their own appointments.')

        return booking.patient_appointments(db, patient_id, from_date=from_date, limit=limit)


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return booking.get_appointment(db, appointment_id)


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: str,
    data: UpdateAppointmentRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        appointment = booking.get_appointment(db, appointment_id)
        if current_user.is_patient and appointment.patient_id != current_user.sub:
            raise Forbidden('Only the patient who booked this appointment can change it.')

        return booking.update_appointment(db, appointment.id, data.model_dump(exclude_none=True))


@router.delete('/{appointment_id}', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        appointment = booking.get_appointment(db, appointment_id)
        if current_user.is_patient and appointment.patient_id != current_user.sub:
            raise Forbidden('Only the patient who booked this appointment can cancel it.')

        return booking.cancel(db, appointment.id)


@router.delete('/{appointment_id}/record', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment_record(
    appointment_id: str,
    current_user: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        booking.delete_appointment(db, appointment_id)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
