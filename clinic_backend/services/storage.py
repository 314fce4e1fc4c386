"""Retry and error-mapping helpers around database access.

Only idempotent reads are retried. Writes are never replayed blindly; callers
re-read after an ambiguous commit instead.
"""

import functools
import logging

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from clinic_backend.core import config
from clinic_backend.core.errors import StorageUnavailable

logger = logging.getLogger(__name__)


def _reset_session(retry_state: RetryCallState) -> None:
    db = retry_state.args[0] if retry_state.args else retry_state.kwargs.get('db')
    if db is not None:
        db.rollback()

    logger.warning(
        'Retrying %s after storage error (attempt %s): %s',
        retry_state.fn.__name__ if retry_state.fn else 'read',
        retry_state.attempt_number,
        retry_state.outcome.exception() if retry_state.outcome else None,
    )


def idempotent_read(func):
    """Retry a read-only query on transient storage errors.

    The wrapped function must take the SQLAlchemy session as its first
    argument (or as ``db=``). Exhausted retries surface as StorageUnavailable.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        retrying = retry(
            stop=stop_after_attempt(max(1, config.STORAGE_READ_RETRIES)),
            wait=wait_exponential(multiplier=0.05, max=0.5),
            retry=retry_if_exception_type(OperationalError),
            before_sleep=_reset_session,
            reraise=True,
        )
        try:
            return retrying(func)(*args, **kwargs)
        except OperationalError as exc:
            logger.exception('Storage unavailable during %s', func.__name__)
            raise StorageUnavailable() from exc

    return wrapper


def commit_or_raise(db, action: str) -> None:
    """Commit the session, mapping unexpected storage failures to StorageUnavailable.

    Integrity and stale-data errors are left to the caller, which knows how to
    retry them.
    """
    try:
        db.commit()
    except OperationalError as exc:
        db.rollback()
        logger.exception('Commit failed while trying to %s', action)
        raise StorageUnavailable() from exc
    except SQLAlchemyError:
        db.rollback()
        raise
