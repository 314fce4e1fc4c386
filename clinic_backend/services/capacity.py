import logging
import re

from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.core.errors import InvalidInput, NotFound
from clinic_backend.models.profile import Profile
from clinic_backend.services.storage import commit_or_raise, idempotent_read

logger = logging.getLogger(__name__)

CAPACITY_PATTERN = re.compile(r'^\s*(\d+)\s*x\s*$', re.IGNORECASE)


def parse_capacity(value: str | None) -> int:
    """Parse an ``"Nx"`` multiplier; anything malformed or non-positive means 1."""
    if not value:
        return 1

    match = CAPACITY_PATTERN.match(str(value))
    if not match:
        return 1

    multiplier = int(match.group(1))
    return multiplier if multiplier > 0 else 1


def capacity_for_profile(profile: Profile | None) -> int:
    if profile is None:
        return 1
    if (profile.role or '').lower() not in config.MULTI_CAPACITY_ROLES:
        return 1
    return parse_capacity(profile.capacity)


@idempotent_read
def effective_capacity(db: Session, doctor_id: str) -> int:
    # Read per decision; an administrator may change the multiplier between bookings.
    profile = db.get(Profile, doctor_id)
    return capacity_for_profile(profile)


def update_capacity(db: Session, doctor_id: str, capacity: str) -> Profile:
    match = CAPACITY_PATTERN.match(capacity or '')
    if not match or int(match.group(1)) < 1:
        raise InvalidInput('Capacity must look like "2x" with a positive multiplier.', code='INVALID_CAPACITY')

    profile = db.get(Profile, doctor_id)
    if profile is None:
        raise NotFound('Doctor not found.', code='DOCTOR_NOT_FOUND')

    profile.capacity = f'{int(match.group(1))}x'
    commit_or_raise(db, 'update doctor capacity')
    db.refresh(profile)

    logger.info('Capacity for doctor %s set to %s', doctor_id, profile.capacity)
    return profile
