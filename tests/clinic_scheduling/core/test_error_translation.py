import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from clinic_scheduling.core import config
from clinic_scheduling.core.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    translate_db_error,
)


class FakePgError(Exception):
    def __init__(self, message: str, pgcode: str):
        super().__init__(message)
        self.pgcode = pgcode


def integrity_error(orig: Exception) -> IntegrityError:
    return IntegrityError('INSERT INTO appointments ...', {}, orig)


def test_exclusion_violation_becomes_conflict() -> None:
    error = translate_db_error(integrity_error(FakePgError('conflicting key value', '23P01')))

    assert isinstance(error, ConflictError)
    assert error.status_code == 409


def test_sqlite_foreign_key_failure_becomes_not_found() -> None:
    error = translate_db_error(integrity_error(Exception('FOREIGN KEY constraint failed')))

    assert isinstance(error, NotFoundError)


def test_check_constraint_becomes_validation_error() -> None:
    error = translate_db_error(integrity_error(Exception('CHECK constraint failed: ck_locations_capacity_positive')))

    assert isinstance(error, ValidationError)


def test_connection_failure_hides_details() -> None:
    error = translate_db_error(OperationalError('SELECT 1', {}, Exception('password authentication failed')))

    assert isinstance(error, PersistenceError)
    assert error.status_code == 503
    assert 'password' not in error.detail


def test_runtime_config_requires_window_to_cover_longest_appointment(monkeypatch) -> None:
    monkeypatch.setattr(config, 'CONFLICT_WINDOW_HOURS', 4)
    monkeypatch.setattr(config, 'MAX_APPOINTMENT_MINUTES', 480)

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()


def test_default_runtime_config_is_valid() -> None:
    config.validate_runtime_config()
