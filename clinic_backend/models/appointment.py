"""Appointment model definitions."""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, String, Time, UniqueConstraint
from sqlalchemy.sql import func

from clinic_backend.database import Base

SCHEDULED = 'scheduled'
CONFIRMED = 'confirmed'
CANCELLED = 'cancelled'
COMPLETED = 'completed'
NO_SHOW = 'no-show'

APPOINTMENT_STATUSES = (SCHEDULED, CONFIRMED, CANCELLED, COMPLETED, NO_SHOW)
# Statuses that occupy a seat in a slot.
ACTIVE_STATUSES = (SCHEDULED, CONFIRMED)
TERMINAL_STATUSES = (CANCELLED, COMPLETED, NO_SHOW)

APPOINTMENT_TYPES = ('in_person', 'video')


def generate_appointment_uid() -> str:
    return str(uuid.uuid4())


class Appointment(Base):
    """Represents a booked appointment in one practitioner's slot."""
    __tablename__ = "appointments"
    __table_args__ = (
        UniqueConstraint(
            'doctor_id', 'appointment_date', 'appointment_time', 'slot_ordinal',
            name='uq_appointments_slot_ordinal',
        ),
        Index('idx_appointments_doctor_date_status', 'doctor_id', 'appointment_date', 'status'),
        Index('idx_appointments_patient_date', 'patient_id', 'appointment_date'),
        Index('idx_appointments_clinic_date', 'clinic_id', 'appointment_date'),
    )

    id = Column(Integer, primary_key=True)
    appointment_uid = Column(String, unique=True, index=True, nullable=False, default=generate_appointment_uid)
    clinic_id = Column(String, nullable=False, index=True)
    patient_id = Column(String, nullable=False)
    full_name = Column(String)
    contact_number = Column(String)
    doctor_id = Column(String, nullable=False)
    doctor_name = Column(String)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(Time, nullable=False)
    appointment_type = Column(String, nullable=False, default='in_person')
    status = Column(String, nullable=False, default=SCHEDULED)
    notes = Column(String)
    patient_note = Column(String)
    provisional = Column(Boolean, nullable=False, default=False)
    # Seat index inside the slot while the appointment is active; NULL once it leaves the active states.
    slot_ordinal = Column(Integer)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {'version_id_col': version}

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
