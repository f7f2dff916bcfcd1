"""Appointment persistence.

``AppointmentStore`` is what the coordinators depend on; the SQLAlchemy
implementation owns transactions and the locking that makes
check-then-write booking atomic.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from threading import Lock
from typing import Any, Callable, Iterator
from weakref import WeakValueDictionary

from sqlalchemy import func, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduling.core.errors import translate_db_error
from clinic_scheduling.models.appointment import Appointment
from clinic_scheduling.models.location import Location
from clinic_scheduling.models.provider import Provider
from clinic_scheduling.scheduling.status import AppointmentStatus

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    'date': Appointment.start_time,
    'start': Appointment.start_time,
    'created': Appointment.created_at,
    'status': Appointment.status,
}

_registry_lock = Lock()
# Entries vanish once no transaction holds the lock.
_key_locks: WeakValueDictionary[str, Lock] = WeakValueDictionary()


def provider_lock_key(provider_id: str) -> str:
    return f'provider:{provider_id}'


def location_lock_key(location_id: str) -> str:
    return f'location:{location_id}'


def _lock_for(key: str) -> Lock:
    with _registry_lock:
        lock = _key_locks.get(key)
        if lock is None:
            lock = _key_locks[key] = Lock()
        return lock


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception('Storage failure during %s', operation)
        raise translate_db_error(exc) from exc


@dataclass
class AppointmentFilters:
    day: date | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    provider_id: str | None = None
    location_id: str | None = None
    patient_id: str | None = None
    status: AppointmentStatus | None = None
    appointment_type: str | None = None


Guard = Callable[[Appointment], None]


class AppointmentStore(ABC):
    @abstractmethod
    def get_provider(self, provider_id: str) -> Provider | None:
        ...

    @abstractmethod
    def get_location(self, location_id: str) -> Location | None:
        ...

    @abstractmethod
    def list_locations(self) -> list[Location]:
        ...

    @abstractmethod
    def get_appointment(self, appointment_id: str) -> Appointment | None:
        ...

    @abstractmethod
    def find_overlapping(
        self,
        provider_id: str,
        window_start: datetime,
        window_end: datetime,
        exclude_id: str | None = None,
    ) -> list[Appointment]:
        """Active appointments of a provider starting inside ``[window_start, window_end)``."""

    @abstractmethod
    def find_for_provider(self, provider_id: str, start: datetime, end: datetime) -> list[Appointment]:
        """Active appointments of a provider overlapping ``[start, end)``."""

    @abstractmethod
    def find_for_location(
        self,
        location_id: str,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> list[Appointment]:
        """Active appointments at a location overlapping ``[start, end)``."""

    @abstractmethod
    def list_appointments(
        self,
        filters: AppointmentFilters,
        offset: int = 0,
        limit: int | None = None,
        sort_by: str = 'date',
        descending: bool = False,
    ) -> tuple[list[Appointment], int]:
        ...

    @abstractmethod
    def insert_atomic(self, appointment: Appointment, guard: Guard) -> Appointment:
        """Run ``guard`` and insert, as one unit under the provider/location locks."""

    @abstractmethod
    def update_atomic(
        self,
        appointment: Appointment,
        changes: dict[str, Any],
        guard: Callable[[Appointment, dict[str, Any]], None],
    ) -> Appointment:
        """Re-read, run ``guard`` and apply ``changes``, as one unit."""

    @abstractmethod
    def update_provider_availability(self, provider: Provider, availability: dict[str, list[str]]) -> Provider:
        ...

    @abstractmethod
    def bulk_update(
        self,
        appointment_ids: list[str],
        values: dict[str, Any],
        guard: Callable[[dict[str, str]], None] | None = None,
    ) -> int:
        """Apply ``values`` to every existing id in one statement; return the affected count."""


class SqlAlchemyAppointmentStore(AppointmentStore):
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def atomic(self, *keys: str) -> Iterator[None]:
        """Hold per-key locks across the check, the write and the commit.

        Process-level locks serialize threads of this worker; on PostgreSQL a
        transaction-scoped advisory lock per key serializes other workers.
        """
        ordered = sorted(set(keys))
        with ExitStack() as stack:
            for key in ordered:
                stack.enter_context(_lock_for(key))
            try:
                if self.db.get_bind().dialect.name == 'postgresql':
                    for key in ordered:
                        self.db.execute(text('SELECT pg_advisory_xact_lock(hashtext(:key))'), {'key': key})
                yield
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception('Appointment transaction failed (locks: %s)', ', '.join(ordered))
                raise translate_db_error(exc) from exc
            except Exception:
                self.db.rollback()
                raise

    def get_provider(self, provider_id: str) -> Provider | None:
        with _storage_errors('provider lookup'):
            return self.db.get(Provider, provider_id)

    def get_location(self, location_id: str) -> Location | None:
        with _storage_errors('location lookup'):
            return self.db.get(Location, location_id)

    def list_locations(self) -> list[Location]:
        with _storage_errors('location listing'):
            return self.db.query(Location).order_by(Location.name.asc(), Location.id.asc()).all()

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        with _storage_errors('appointment lookup'):
            return self.db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.deleted_at.is_(None),
            ).first()

    def _active(self):
        return self.db.query(Appointment).filter(
            Appointment.deleted_at.is_(None),
            Appointment.status != AppointmentStatus.CANCELLED.value,
        )

    def find_overlapping(
        self,
        provider_id: str,
        window_start: datetime,
        window_end: datetime,
        exclude_id: str | None = None,
    ) -> list[Appointment]:
        with _storage_errors('conflict lookup'):
            query = self._active().filter(
                Appointment.provider_id == provider_id,
                Appointment.start_time >= window_start,
                Appointment.start_time < window_end,
            )
            if exclude_id is not None:
                query = query.filter(Appointment.id != exclude_id)
            return query.order_by(Appointment.start_time.asc()).all()

    def find_for_provider(self, provider_id: str, start: datetime, end: datetime) -> list[Appointment]:
        with _storage_errors('provider schedule lookup'):
            return self._active().filter(
                Appointment.provider_id == provider_id,
                Appointment.start_time < end,
                Appointment.end_time > start,
            ).order_by(Appointment.start_time.asc()).all()

    def find_for_location(
        self,
        location_id: str,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> list[Appointment]:
        with _storage_errors('location schedule lookup'):
            query = self._active().filter(
                Appointment.location_id == location_id,
                Appointment.start_time < end,
                Appointment.end_time > start,
            )
            if exclude_id is not None:
                query = query.filter(Appointment.id != exclude_id)
            return query.order_by(Appointment.start_time.asc()).all()

    def list_appointments(
        self,
        filters: AppointmentFilters,
        offset: int = 0,
        limit: int | None = None,
        sort_by: str = 'date',
        descending: bool = False,
    ) -> tuple[list[Appointment], int]:
        query = self.db.query(Appointment).filter(Appointment.deleted_at.is_(None))

        if filters.day is not None:
            day_start = datetime.combine(filters.day, time())
            query = query.filter(
                Appointment.start_time >= day_start,
                Appointment.start_time < day_start + timedelta(days=1),
            )
        else:
            if filters.start_date is not None:
                query = query.filter(Appointment.start_time >= filters.start_date)
            if filters.end_date is not None:
                query = query.filter(Appointment.start_time <= filters.end_date)

        if filters.provider_id:
            query = query.filter(Appointment.provider_id == filters.provider_id)
        if filters.location_id:
            query = query.filter(Appointment.location_id == filters.location_id)
        if filters.patient_id:
            query = query.filter(Appointment.patient_id == filters.patient_id)
        if filters.status:
            query = query.filter(Appointment.status == AppointmentStatus(filters.status).value)
        if filters.appointment_type:
            query = query.filter(Appointment.appointment_type == filters.appointment_type)

        column = SORT_COLUMNS.get(sort_by, Appointment.start_time)
        ordering = column.desc() if descending else column.asc()

        with _storage_errors('appointment listing'):
            total = query.with_entities(func.count(Appointment.id)).scalar() or 0
            query = query.order_by(ordering, Appointment.id.asc()).offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all(), total

    def insert_atomic(self, appointment: Appointment, guard: Guard) -> Appointment:
        keys = (provider_lock_key(appointment.provider_id), location_lock_key(appointment.location_id))
        with self.atomic(*keys):
            guard(appointment)
            self.db.add(appointment)
            self.db.flush()
        self.db.refresh(appointment)
        return appointment

    def update_atomic(
        self,
        appointment: Appointment,
        changes: dict[str, Any],
        guard: Callable[[Appointment, dict[str, Any]], None],
    ) -> Appointment:
        keys = {
            provider_lock_key(appointment.provider_id),
            location_lock_key(appointment.location_id),
        }
        if changes.get('provider_id'):
            keys.add(provider_lock_key(changes['provider_id']))
        if changes.get('location_id'):
            keys.add(location_lock_key(changes['location_id']))

        with self.atomic(*keys):
            self.db.refresh(appointment)
            guard(appointment, changes)

            pending = dict(changes)
            start_time = pending.pop('start_time', appointment.start_time)
            duration_minutes = pending.pop('duration_minutes', appointment.duration_minutes)
            appointment.reschedule(start_time, duration_minutes)
            for field_name, value in pending.items():
                setattr(appointment, field_name, value)
            self.db.flush()
        self.db.refresh(appointment)
        return appointment

    def update_provider_availability(self, provider: Provider, availability: dict[str, list[str]]) -> Provider:
        with self.atomic(provider_lock_key(provider.id)):
            provider.availability = availability
        self.db.refresh(provider)
        return provider

    def bulk_update(
        self,
        appointment_ids: list[str],
        values: dict[str, Any],
        guard: Callable[[dict[str, str]], None] | None = None,
    ) -> int:
        with self.atomic():
            rows = self.db.query(Appointment.id, Appointment.status).filter(
                Appointment.id.in_(appointment_ids),
                Appointment.deleted_at.is_(None),
            ).with_for_update().all()
            current = {row.id: row.status for row in rows}

            if guard is not None:
                guard(current)
            if not current:
                return 0

            result = self.db.execute(
                update(Appointment)
                .where(Appointment.id.in_(list(current)), Appointment.deleted_at.is_(None))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount
