"""Practitioner profile model definitions."""

import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from clinic_backend.core import config
from clinic_backend.database import Base


class Profile(Base):
    """Represents a clinic staff member who can be booked (doctor or admin)."""
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    clinic_id = Column(String, nullable=False, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    role = Column(String, nullable=False, default='doctor')  # doctor/admin/receptionist
    status = Column(String, nullable=False, default='Active')
    # Weekly schedule as a list of {day, morning, evening}; NULL until first saved.
    availability = Column(JSON)
    slot_duration_minutes = Column(Integer, nullable=False, default=config.DEFAULT_SLOT_DURATION_MINUTES)
    capacity = Column(String, nullable=False, default=config.DEFAULT_CAPACITY)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
