"""Scheduling error taxonomy shared by services and routes."""

from fastapi import HTTPException, status


class SchedulingError(Exception):
    """Base class for typed scheduling failures."""

    code = 'SCHEDULING_ERROR'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Scheduling request failed.'

    def __init__(self, message: str | None = None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_detail(self) -> dict:
        return {'code': self.code, 'message': self.message, **self.details}


class InvalidInput(SchedulingError):
    code = 'INVALID_INPUT'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Invalid request data.'

    def __init__(self, message: str | None = None, code: str | None = None, **details):
        super().__init__(message, **details)
        if code:
            self.code = code


class DuplicatePatientBooking(SchedulingError):
    code = 'DUPLICATE_APPOINTMENT_ON_DATE'
    status_code = status.HTTP_409_CONFLICT
    default_message = (
        'You already have an appointment scheduled at this clinic for this date. '
        'Please cancel it first or choose a different date.'
    )


class SlotFull(SchedulingError):
    code = 'SLOT_FULL'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'This time slot is already fully booked. Please choose another time slot.'


class NotFound(SchedulingError):
    code = 'NOT_FOUND'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Record not found.'

    def __init__(self, message: str | None = None, code: str | None = None, **details):
        super().__init__(message, **details)
        if code:
            self.code = code


class NotConfigured(SchedulingError):
    code = 'AVAILABILITY_NOT_CONFIGURED'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'No availability has been configured for this doctor.'


class InvalidTransition(SchedulingError):
    code = 'INVALID_STATUS_TRANSITION'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'The appointment cannot move to the requested status.'


class Forbidden(SchedulingError):
    code = 'FORBIDDEN'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You are not allowed to perform this action.'


class StorageUnavailable(SchedulingError):
    code = 'STORAGE_UNAVAILABLE'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'Database unavailable. Please try again shortly.'


class Conflict(SchedulingError):
    code = 'CONCURRENT_UPDATE_CONFLICT'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'The slot changed while your request was processed. Please retry.'


def to_http_exception(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
