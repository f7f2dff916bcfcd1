"""Scheduling error taxonomy.

Every error raised by the scheduling core derives from ``SchedulingError`` and
carries the HTTP status it maps to plus a JSON-ready ``payload``; the app's
exception handlers turn them into responses.
"""

from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

EXCLUSION_VIOLATION = '23P01'
UNIQUE_VIOLATION = '23505'
FOREIGN_KEY_VIOLATION = '23503'


class SchedulingError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    @property
    def payload(self) -> dict[str, Any]:
        return {'detail': self.detail}


class ValidationError(SchedulingError):
    """Malformed or out-of-domain input."""

    status_code = 400

    def __init__(self, detail: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(detail)
        self.errors = errors or []

    @property
    def payload(self) -> dict[str, Any]:
        return {'detail': self.detail, 'errors': self.errors}


class NotFoundError(SchedulingError):
    status_code = 404


class ConflictError(SchedulingError):
    """The provider already has a non-cancelled appointment in the requested time."""

    status_code = 409

    def __init__(self, conflicts: list[dict[str, Any]], detail: str = 'Time slot conflict detected.'):
        super().__init__(detail)
        self.conflicts = conflicts

    @property
    def payload(self) -> dict[str, Any]:
        return {'detail': self.detail, 'conflicts': self.conflicts}


class CapacityExceededError(SchedulingError):
    status_code = 409

    def __init__(self, hours: list[int], detail: str = 'Location capacity exceeded.'):
        super().__init__(detail)
        self.hours = hours

    @property
    def payload(self) -> dict[str, Any]:
        return {'detail': self.detail, 'hours': self.hours}


class InvalidTransitionError(SchedulingError):
    status_code = 409

    def __init__(
        self,
        current_status: str,
        target_status: str,
        appointment_ids: list[str] | None = None,
    ):
        super().__init__(f'Cannot change appointment status from {current_status} to {target_status}.')
        self.current_status = current_status
        self.target_status = target_status
        self.appointment_ids = appointment_ids or []

    @property
    def payload(self) -> dict[str, Any]:
        return {
            'detail': self.detail,
            'currentStatus': self.current_status,
            'targetStatus': self.target_status,
            'appointmentIds': self.appointment_ids,
        }


class ConfigurationError(SchedulingError):
    """Stored scheduling data (e.g. a provider's availability) is unusable."""

    status_code = 500


class PersistenceError(SchedulingError):
    status_code = 503

    def __init__(self, detail: str = 'Database unavailable. Verify DATABASE_URL and database credentials.'):
        super().__init__(detail)


def _sqlstate(exc: SQLAlchemyError) -> str | None:
    orig = getattr(exc, 'orig', None)
    return getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)


def translate_db_error(exc: SQLAlchemyError) -> SchedulingError:
    """Map a raw storage error onto the scheduling taxonomy."""
    if isinstance(exc, IntegrityError):
        code = _sqlstate(exc)
        message = str(getattr(exc, 'orig', exc))
        if code in {EXCLUSION_VIOLATION, UNIQUE_VIOLATION} or 'UNIQUE constraint failed' in message:
            return ConflictError([], detail='Time slot conflict detected by the database.')
        if code == FOREIGN_KEY_VIOLATION or 'FOREIGN KEY constraint failed' in message:
            return NotFoundError('Referenced record does not exist.')
        return ValidationError('Record violates a database constraint.')
    return PersistenceError()
