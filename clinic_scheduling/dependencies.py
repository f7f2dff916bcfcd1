from fastapi import Depends, Header
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduling.core.errors import PersistenceError
from clinic_scheduling.database import ensure_appointment_schema, get_db
from clinic_scheduling.services.availability import AvailabilityService
from clinic_scheduling.services.booking import BookingCoordinator
from clinic_scheduling.services.bulk import BulkOperationCoordinator
from clinic_scheduling.services.capacity import CapacityAccountant
from clinic_scheduling.services.repository import AppointmentStore, SqlAlchemyAppointmentStore


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise PersistenceError() from exc


def get_store(db: Session = Depends(get_db)) -> AppointmentStore:
    ensure_database_ready()
    return SqlAlchemyAppointmentStore(db)


def get_booking_coordinator(store: AppointmentStore = Depends(get_store)) -> BookingCoordinator:
    return BookingCoordinator(store)


def get_bulk_coordinator(store: AppointmentStore = Depends(get_store)) -> BulkOperationCoordinator:
    return BulkOperationCoordinator(store)


def get_availability_service(store: AppointmentStore = Depends(get_store)) -> AvailabilityService:
    return AvailabilityService(store)


def get_capacity_accountant(store: AppointmentStore = Depends(get_store)) -> CapacityAccountant:
    return CapacityAccountant(store)


def get_acting_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    # Used for audit attribution only; identity is not verified here.
    if x_user_id is None:
        return None
    return x_user_id.strip() or None
