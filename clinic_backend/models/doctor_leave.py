"""Doctor leave model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, String
from sqlalchemy.sql import func

from clinic_backend.database import Base


class DoctorLeave(Base):
    """A whole-day, inclusive date range during which a doctor is marked unavailable."""
    __tablename__ = "doctor_leaves"
    __table_args__ = (
        Index('idx_doctor_leaves_doctor_clinic_active', 'doctor_id', 'clinic_id', 'is_active'),
        Index('idx_doctor_leaves_range', 'leave_start_date', 'leave_end_date'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(String, nullable=False, index=True)
    clinic_id = Column(String, nullable=False, index=True)
    leave_start_date = Column(Date, nullable=False)
    leave_end_date = Column(Date, nullable=False)
    reason = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
