"""Cascade from the consultation subsystem into appointments."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.core.errors import SchedulingError
from clinic_backend.models.appointment import COMPLETED, Appointment
from clinic_backend.services import booking

logger = logging.getLogger(__name__)


def on_consultation_completed(db: Session, appointment_identifier: int | str | None) -> Appointment | None:
    """Mark the linked appointment completed.

    The identifier may be the internal id or the external ``appointment_uid``.
    Failures are logged and swallowed so the consultation update that triggered
    the cascade never fails because of it.

    ``db`` must be a session of its own, not one carrying the consultation's
    open transaction: the cascade commits it on success and rolls it back on
    failure.
    """
    if appointment_identifier is None or appointment_identifier == '':
        return None

    try:
        appointment = booking.find_appointment(db, appointment_identifier)
        if appointment is None:
            logger.warning('No appointment matches %r; completion cascade skipped', appointment_identifier)
            return None

        appointment = booking.transition(db, appointment.id, COMPLETED)
    except (SchedulingError, SQLAlchemyError) as exc:
        db.rollback()
        logger.warning('Failed to cascade appointment status update for %r: %s', appointment_identifier, exc)
        return None

    logger.info('Appointment %s set to completed due to consultation completion', appointment.appointment_uid)
    return appointment
