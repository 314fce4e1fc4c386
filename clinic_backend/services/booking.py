"""Appointment booking engine.

Capacity is enforced through seat ordinals: every scheduled/confirmed
appointment holds one ``slot_ordinal`` in ``[0, capacity)`` and the store has a
unique index on (doctor, date, time, ordinal). Two writers that count the same
free seat cannot both commit; the loser rolls back, re-reads the slot and tries
the next seat until the slot is full or the retry budget is spent.
"""

import logging
from dataclasses import dataclass
from datetime import date, time

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from clinic_backend.core import config
from clinic_backend.core.errors import (
    Conflict,
    DuplicatePatientBooking,
    InvalidInput,
    InvalidTransition,
    NotConfigured,
    NotFound,
    SlotFull,
    StorageUnavailable,
)
from clinic_backend.models.appointment import (
    ACTIVE_STATUSES,
    APPOINTMENT_STATUSES,
    APPOINTMENT_TYPES,
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    NO_SHOW,
    SCHEDULED,
    Appointment,
    generate_appointment_uid,
)
from clinic_backend.models.profile import Profile
from clinic_backend.services import availability
from clinic_backend.services.capacity import effective_capacity
from clinic_backend.services.slots import parse_date, parse_time, slots_for_day, time_to_hhmm
from clinic_backend.services.storage import commit_or_raise, idempotent_read

logger = logging.getLogger(__name__)

REQUIRED_BOOKING_FIELDS = ('clinic_id', 'patient_id', 'doctor_id', 'appointment_date', 'appointment_time')
UPDATABLE_FIELDS = ('notes', 'patient_note', 'appointment_type', 'doctor_name', 'full_name', 'contact_number')
RESCHEDULE_FIELDS = ('appointment_date', 'appointment_time', 'doctor_id')

ALLOWED_TRANSITIONS = {
    # A consultation may complete an appointment nobody confirmed first.
    SCHEDULED: frozenset({CONFIRMED, CANCELLED, NO_SHOW, COMPLETED}),
    CONFIRMED: frozenset({COMPLETED, CANCELLED, NO_SHOW}),
}


@dataclass(frozen=True)
class ById:
    value: int


@dataclass(frozen=True)
class ByExternalId:
    value: str


AppointmentRef = ById | ByExternalId


def appointment_refs(identifier: int | str) -> tuple[AppointmentRef, ...]:
    """Lookups to attempt, in order, for an identifier that may be internal or external."""
    if isinstance(identifier, int):
        return ById(identifier), ByExternalId(str(identifier))

    normalized = str(identifier or '').strip()
    if not normalized:
        raise InvalidInput('Appointment ID is required', code='MISSING_APPOINTMENT_ID')

    if normalized.isdigit():
        return ById(int(normalized)), ByExternalId(normalized)
    return (ByExternalId(normalized),)


def _lookup(db: Session, ref: AppointmentRef) -> Appointment | None:
    if isinstance(ref, ById):
        return db.get(Appointment, ref.value)
    return db.query(Appointment).filter(Appointment.appointment_uid == ref.value).first()


@idempotent_read
def find_appointment(db: Session, identifier: int | str) -> Appointment | None:
    for ref in appointment_refs(identifier):
        appointment = _lookup(db, ref)
        if appointment is not None:
            return appointment
    return None


def get_appointment(db: Session, identifier: int | str) -> Appointment:
    appointment = find_appointment(db, identifier)
    if appointment is None:
        raise NotFound('Appointment not found', code='APPOINTMENT_NOT_FOUND')
    return appointment


@idempotent_read
def get_booked_slots_for_doctor_on_date(db: Session, doctor_id: str, appointment_date: str | date) -> list[str]:
    """Times of every scheduled/confirmed appointment, one entry per appointment."""
    target_date = parse_date(appointment_date)
    rows = db.query(Appointment.appointment_time).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == target_date,
        Appointment.status.in_(ACTIVE_STATUSES),
    ).order_by(Appointment.appointment_time.asc()).all()

    return [time_to_hhmm(row.appointment_time) for row in rows]


@idempotent_read
def _slot_occupancy(
    db: Session,
    doctor_id: str,
    target_date: date,
    target_time: time,
    exclude_id: int | None = None,
) -> tuple[int, set[int]]:
    query = db.query(Appointment.id, Appointment.slot_ordinal).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == target_date,
        Appointment.appointment_time == target_time,
        Appointment.status.in_(ACTIVE_STATUSES),
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)

    rows = query.all()
    return len(rows), {row.slot_ordinal for row in rows if row.slot_ordinal is not None}


def _free_ordinal(active_count: int, taken: set[int], capacity: int) -> int | None:
    if active_count >= capacity:
        return None
    return next(ordinal for ordinal in range(capacity) if ordinal not in taken)


@idempotent_read
def _find_patient_booking(db: Session, patient_id: str, clinic_id: str, target_date: date) -> Appointment | None:
    return db.query(Appointment).filter(
        Appointment.patient_id == patient_id,
        Appointment.clinic_id == clinic_id,
        Appointment.appointment_date == target_date,
        Appointment.status != CANCELLED,
    ).first()


@idempotent_read
def _find_by_uid(db: Session, appointment_uid: str) -> Appointment | None:
    return db.query(Appointment).filter(Appointment.appointment_uid == appointment_uid).first()


def _ensure_slot_offered(db: Session, doctor_id: str, target_date: date, target_time: time) -> Profile:
    """Check the time is on the doctor's slot grid; skipped when no availability is saved."""
    profile = availability.get_profile(db, doctor_id)

    try:
        day_schedule = availability.load_weekly_availability(profile).for_weekday(target_date.weekday())
    except NotConfigured:
        return profile

    if time_to_hhmm(target_time) not in slots_for_day(day_schedule, profile.slot_duration_minutes):
        raise InvalidInput(
            'The doctor does not offer this time slot on the selected date.',
            code='SLOT_NOT_OFFERED',
        )
    return profile


def _conflict_retrying(capacity: int) -> Retrying:
    # Each lost race means another writer took a seat, so the slot fills after at most `capacity` losses.
    return Retrying(
        stop=stop_after_attempt(capacity + max(1, config.BOOKING_CONFLICT_RETRIES)),
        retry=retry_if_exception_type(Conflict),
        reraise=True,
    )


def _slot_full(doctor_id: str, target_date: date, target_time: time, capacity: int) -> SlotFull:
    logger.info(
        'Slot %s %s for doctor %s is full (capacity %s)', target_date, time_to_hhmm(target_time), doctor_id, capacity
    )
    return SlotFull(
        f'This time slot is already fully booked. Max capacity: {capacity}. Please choose another time slot.',
        capacity=capacity,
    )


def book(
    db: Session,
    *,
    clinic_id: str | None,
    patient_id: str | None,
    doctor_id: str | None,
    appointment_date: str | date | None,
    appointment_time: str | time | None,
    full_name: str | None = None,
    contact_number: str | None = None,
    appointment_type: str = 'in_person',
    notes: str | None = None,
    patient_note: str | None = None,
    doctor_name: str | None = None,
    provisional: bool = False,
) -> Appointment:
    """Create a scheduled appointment in a free seat of the requested slot."""
    provided = {
        'clinic_id': clinic_id,
        'patient_id': patient_id,
        'doctor_id': doctor_id,
        'appointment_date': appointment_date,
        'appointment_time': appointment_time,
    }
    missing_fields = [name for name in REQUIRED_BOOKING_FIELDS if not provided[name]]
    if missing_fields:
        raise InvalidInput(
            f'Missing required fields: {", ".join(missing_fields)}',
            code='MISSING_REQUIRED_FIELDS',
            missing_fields=missing_fields,
        )

    target_date = parse_date(appointment_date)
    target_time = parse_time(appointment_time)
    if appointment_type not in APPOINTMENT_TYPES:
        raise InvalidInput(
            f'Invalid appointment_type. Allowed values: {", ".join(APPOINTMENT_TYPES)}',
            code='INVALID_APPOINTMENT_TYPE',
        )

    profile = _ensure_slot_offered(db, doctor_id, target_date, target_time)
    appointment_uid = generate_appointment_uid()

    def insert() -> Appointment:
        # Known gap: read-then-insert with no store guard, so two concurrent
        # requests from the same patient can both pass. Capacity is unaffected.
        if _find_patient_booking(db, patient_id, clinic_id, target_date) is not None:
            logger.info('Patient %s already booked at clinic %s on %s', patient_id, clinic_id, target_date)
            raise DuplicatePatientBooking()

        capacity = effective_capacity(db, doctor_id)
        # Open question: bookings may be meant to ignore the multiplier while reschedules honour it.
        seat_limit = 1 if config.BOOK_IGNORES_CAPACITY else capacity
        active_count, taken = _slot_occupancy(db, doctor_id, target_date, target_time)
        ordinal = _free_ordinal(active_count, taken, seat_limit)
        if ordinal is None:
            raise _slot_full(doctor_id, target_date, target_time, seat_limit)

        appointment = Appointment(
            appointment_uid=appointment_uid,
            clinic_id=clinic_id,
            patient_id=patient_id,
            full_name=full_name,
            contact_number=contact_number,
            doctor_id=doctor_id,
            doctor_name=doctor_name or profile.full_name,
            appointment_date=target_date,
            appointment_time=target_time,
            appointment_type=appointment_type,
            status=SCHEDULED,
            notes=notes,
            patient_note=patient_note,
            provisional=bool(provisional),
            slot_ordinal=ordinal,
        )
        db.add(appointment)

        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.info('Seat %s of %s %s for doctor %s taken concurrently', ordinal, target_date, target_time, doctor_id)
            raise Conflict() from exc
        except OperationalError as exc:
            db.rollback()
            logger.warning('Commit outcome unknown for appointment %s; re-reading', appointment_uid)
            stored = _find_by_uid(db, appointment_uid)
            if stored is None:
                raise StorageUnavailable() from exc
            return stored

        db.refresh(appointment)
        return appointment

    initial_capacity = effective_capacity(db, doctor_id)
    for attempt in _conflict_retrying(initial_capacity):
        with attempt:
            appointment = insert()

    logger.info(
        'Appointment %s booked for patient %s with doctor %s at %s %s',
        appointment.appointment_uid,
        patient_id,
        doctor_id,
        target_date,
        time_to_hhmm(target_time),
    )
    return appointment


def reschedule(
    db: Session,
    identifier: int | str,
    *,
    appointment_date: str | date,
    appointment_time: str | time,
    doctor_id: str | None = None,
) -> Appointment:
    """Move an active appointment to another slot, counting capacity without itself."""
    target_date = parse_date(appointment_date)
    target_time = parse_time(appointment_time)
    current = get_appointment(db, identifier)
    appointment_id = current.id
    target_capacity = effective_capacity(db, doctor_id or current.doctor_id)

    def move() -> Appointment:
        appointment = db.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFound('Appointment not found', code='APPOINTMENT_NOT_FOUND')
        if not appointment.is_active:
            raise InvalidTransition(
                'Only scheduled or confirmed appointments can be rescheduled.',
                current_status=appointment.status,
            )

        target_doctor = doctor_id or appointment.doctor_id
        current_slot = (appointment.doctor_id, appointment.appointment_date, appointment.appointment_time)
        if current_slot == (target_doctor, target_date, target_time):
            return appointment

        profile = _ensure_slot_offered(db, target_doctor, target_date, target_time)
        capacity = effective_capacity(db, target_doctor)
        active_count, taken = _slot_occupancy(db, target_doctor, target_date, target_time, exclude_id=appointment.id)
        ordinal = _free_ordinal(active_count, taken, capacity)
        if ordinal is None:
            raise _slot_full(target_doctor, target_date, target_time, capacity)

        if target_doctor != appointment.doctor_id:
            appointment.doctor_name = profile.full_name
        appointment.doctor_id = target_doctor
        appointment.appointment_date = target_date
        appointment.appointment_time = target_time
        appointment.slot_ordinal = ordinal

        try:
            db.commit()
        except (IntegrityError, StaleDataError) as exc:
            db.rollback()
            logger.info('Reschedule of appointment %s collided with a concurrent write', appointment_id)
            raise Conflict() from exc
        except OperationalError as exc:
            db.rollback()
            logger.warning('Commit outcome unknown for reschedule of appointment %s; re-reading', appointment_id)
            stored = find_appointment(db, appointment_id)
            if stored is None or (stored.doctor_id, stored.appointment_date, stored.appointment_time) != (
                target_doctor,
                target_date,
                target_time,
            ):
                raise StorageUnavailable() from exc
            return stored

        db.refresh(appointment)
        return appointment

    for attempt in _conflict_retrying(target_capacity):
        with attempt:
            appointment = move()

    logger.info(
        'Appointment %s now at %s %s with doctor %s',
        appointment.appointment_uid,
        appointment.appointment_date,
        time_to_hhmm(appointment.appointment_time),
        appointment.doctor_id,
    )
    return appointment


def _check_transition(appointment: Appointment, new_status: str) -> None:
    if appointment.status == new_status:
        return
    if new_status not in ALLOWED_TRANSITIONS.get(appointment.status, frozenset()):
        raise InvalidTransition(
            f'Cannot change appointment status from {appointment.status} to {new_status}.',
            current_status=appointment.status,
            requested_status=new_status,
        )


def _set_status(appointment: Appointment, new_status: str) -> None:
    appointment.status = new_status
    if new_status not in ACTIVE_STATUSES:
        appointment.slot_ordinal = None


def _apply_transition(db: Session, appointment: Appointment, new_status: str) -> Appointment:
    if appointment.status == new_status:
        return appointment

    _check_transition(appointment, new_status)
    previous_status = appointment.status
    _set_status(appointment, new_status)

    try:
        commit_or_raise(db, f'mark appointment {new_status}')
    except StaleDataError as exc:
        raise Conflict() from exc

    db.refresh(appointment)
    logger.info('Appointment %s moved from %s to %s', appointment.appointment_uid, previous_status, new_status)
    return appointment


def transition(db: Session, identifier: int | str, new_status: str) -> Appointment:
    if new_status not in APPOINTMENT_STATUSES:
        raise InvalidInput(
            f'Invalid status. Allowed values: {", ".join(APPOINTMENT_STATUSES)}',
            code='INVALID_STATUS_VALUE',
        )
    return _apply_transition(db, get_appointment(db, identifier), new_status)


def cancel(db: Session, identifier: int | str) -> Appointment:
    """Cancel an appointment; cancelling twice is a no-op."""
    return transition(db, identifier, CANCELLED)


def confirm(db: Session, identifier: int | str) -> Appointment:
    return transition(db, identifier, CONFIRMED)


def complete(db: Session, identifier: int | str) -> Appointment:
    return transition(db, identifier, COMPLETED)


def mark_no_show(db: Session, identifier: int | str) -> Appointment:
    return transition(db, identifier, NO_SHOW)


def update_appointment(db: Session, identifier: int | str, update_data: dict) -> Appointment:
    """Apply a partial update: slot changes go through reschedule, status through the state machine."""
    update_data = {key: value for key, value in (update_data or {}).items() if value is not None}
    if not update_data:
        raise InvalidInput('No update data provided', code='EMPTY_UPDATE_DATA')

    new_status = update_data.get('status')
    if new_status is not None and new_status not in APPOINTMENT_STATUSES:
        raise InvalidInput(
            f'Invalid status. Allowed values: {", ".join(APPOINTMENT_STATUSES)}',
            code='INVALID_STATUS_VALUE',
        )
    if 'appointment_type' in update_data and update_data['appointment_type'] not in APPOINTMENT_TYPES:
        raise InvalidInput(
            f'Invalid appointment_type. Allowed values: {", ".join(APPOINTMENT_TYPES)}',
            code='INVALID_APPOINTMENT_TYPE',
        )

    appointment = get_appointment(db, identifier)
    # Rejected before the slot move so a failed update leaves the row untouched.
    if new_status is not None:
        _check_transition(appointment, new_status)

    if any(field in update_data for field in RESCHEDULE_FIELDS):
        appointment = reschedule(
            db,
            appointment.id,
            appointment_date=update_data.get('appointment_date', appointment.appointment_date),
            appointment_time=update_data.get('appointment_time', appointment.appointment_time),
            doctor_id=update_data.get('doctor_id'),
        )

    changes = {field: update_data[field] for field in UPDATABLE_FIELDS if field in update_data}
    status_changed = new_status is not None and new_status != appointment.status
    if not changes and not status_changed:
        return appointment

    previous_status = appointment.status
    for field, value in changes.items():
        setattr(appointment, field, value)
    if status_changed:
        _set_status(appointment, new_status)

    try:
        commit_or_raise(db, 'update appointment')
    except StaleDataError as exc:
        raise Conflict() from exc

    db.refresh(appointment)
    if status_changed:
        logger.info('Appointment %s moved from %s to %s', appointment.appointment_uid, previous_status, new_status)
    return appointment


def delete_appointment(db: Session, identifier: int | str) -> Appointment:
    """Administrative hard delete; no audit trail is kept."""
    appointment = get_appointment(db, identifier)
    db.delete(appointment)
    try:
        commit_or_raise(db, 'delete appointment')
    except StaleDataError as exc:
        raise Conflict() from exc

    logger.info('Appointment %s deleted', appointment.appointment_uid)
    return appointment


@idempotent_read
def appointments_by_clinic(
    db: Session,
    clinic_id: str,
    *,
    status: str | None = None,
    doctor_id: str | None = None,
    patient_id: str | None = None,
    on_date: str | date | None = None,
    start_date: str | date | None = None,
    end_date: str | date | None = None,
    search: str | None = None,
    provisional: bool | None = None,
    appointment_type: str | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.clinic_id == clinic_id)

    if search:
        query = query.filter(Appointment.appointment_uid.ilike(f'%{search.strip()}%'))
    elif on_date:
        query = query.filter(Appointment.appointment_date == parse_date(on_date))

    if status:
        query = query.filter(Appointment.status == status)
    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if patient_id:
        query = query.filter(Appointment.patient_id == patient_id)
    if start_date:
        query = query.filter(Appointment.appointment_date >= parse_date(start_date))
    if end_date:
        query = query.filter(Appointment.appointment_date <= parse_date(end_date))
    if provisional is not None:
        query = query.filter(Appointment.provisional.is_(provisional))
    if appointment_type:
        query = query.filter(Appointment.appointment_type == appointment_type)

    return query.order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc()).all()


@idempotent_read
def patient_appointments(
    db: Session,
    patient_id: str,
    *,
    from_date: str | date | None = None,
    limit: int | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.patient_id == patient_id)
    if from_date:
        query = query.filter(Appointment.appointment_date >= parse_date(from_date))

    query = query.order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc())
    if limit:
        query = query.limit(limit)
    return query.all()


@idempotent_read
def _active_counts_by_time(db: Session, doctor_id: str, target_date: date) -> dict[str, int]:
    rows = db.query(Appointment.appointment_time, func.count(Appointment.id)).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == target_date,
        Appointment.status.in_(ACTIVE_STATUSES),
    ).group_by(Appointment.appointment_time).order_by(Appointment.appointment_time.asc()).all()

    return {time_to_hhmm(slot_time): count for slot_time, count in rows}


def slot_status(db: Session, doctor_id: str, on_date: str | date) -> list[dict]:
    """Occupancy of every time that has at least one active booking."""
    target_date = parse_date(on_date)
    capacity = effective_capacity(db, doctor_id)
    counts = _active_counts_by_time(db, doctor_id, target_date)

    return [{'time': slot, 'booked': booked, 'capacity': capacity} for slot, booked in counts.items()]


def slot_grid(db: Session, doctor_id: str, on_date: str | date) -> list[dict]:
    """Every generated slot of the day with its occupancy; empty when availability is not configured."""
    target_date = parse_date(on_date)
    slots = availability.slots_for_date(db, doctor_id, target_date)
    if not slots:
        return []

    capacity = effective_capacity(db, doctor_id)
    counts = _active_counts_by_time(db, doctor_id, target_date)

    return [
        {
            'time': slot,
            'booked': counts.get(slot, 0),
            'capacity': capacity,
            'is_available': counts.get(slot, 0) < capacity,
        }
        for slot in slots
    ]
