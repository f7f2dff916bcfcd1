import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from clinic_scheduling.database import Base  # noqa: E402
from clinic_scheduling.models.appointment import Appointment  # noqa: E402
from clinic_scheduling.models.location import Location  # noqa: E402
from clinic_scheduling.models.provider import Provider  # noqa: E402
from clinic_scheduling.services.events import AuditTrail, NotificationHub  # noqa: E402
from clinic_scheduling.services.repository import SqlAlchemyAppointmentStore  # noqa: E402

SCHEDULING_TABLES = [Provider.__table__, Location.__table__, Appointment.__table__]

# 2026-01-05 is a Monday.
MONDAY = datetime(2026, 1, 5)

DEFAULT_AVAILABILITY = {
    'monday': ['09:00 - 12:00', '13:00 - 17:00'],
    'tuesday': ['09:00 - 17:00'],
}


@pytest.fixture
def scheduling_db():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=SCHEDULING_TABLES)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=SCHEDULING_TABLES)
        engine.dispose()


@pytest.fixture
def store(scheduling_db):
    return SqlAlchemyAppointmentStore(scheduling_db)


@pytest.fixture
def make_provider(scheduling_db):
    def _make_provider(provider_id: str = 'provider-1', availability=None, is_active: bool = True) -> Provider:
        provider = Provider(
            id=provider_id,
            name=f'Dr. {provider_id}',
            availability=DEFAULT_AVAILABILITY if availability is None else availability,
            is_active=is_active,
        )
        scheduling_db.add(provider)
        scheduling_db.commit()
        return provider

    return _make_provider


@pytest.fixture
def make_location(scheduling_db):
    def _make_location(location_id: str = 'location-1', capacity: int = 2, is_active: bool = True) -> Location:
        location = Location(id=location_id, name=f'Clinic {location_id}', capacity=capacity, is_active=is_active)
        scheduling_db.add(location)
        scheduling_db.commit()
        return location

    return _make_location


@pytest.fixture
def make_appointment(scheduling_db):
    """Insert an appointment directly, bypassing the booking checks."""

    def _make_appointment(
        start: datetime,
        duration_minutes: int = 30,
        status: str = 'CONFIRMED',
        provider_id: str = 'provider-1',
        location_id: str = 'location-1',
        appointment_id: str | None = None,
    ) -> Appointment:
        appointment = Appointment(
            provider_id=provider_id,
            location_id=location_id,
            patient_id='patient-1',
            appointment_type='IN_PERSON',
            status=status,
        )
        if appointment_id is not None:
            appointment.id = appointment_id
        appointment.reschedule(start, duration_minutes)
        scheduling_db.add(appointment)
        scheduling_db.commit()
        return appointment

    return _make_appointment


@pytest.fixture
def clinic(make_provider, make_location):
    return make_provider(), make_location()


@pytest.fixture
def audit_entries():
    return []


@pytest.fixture
def audit(audit_entries):
    trail = AuditTrail()
    trail.add_sink(audit_entries.append)
    return trail


@pytest.fixture
def published():
    return []


@pytest.fixture
def notifications():
    return NotificationHub()


@pytest.fixture
def listen(notifications, published):
    def _listen(topic: str) -> None:
        notifications.subscribe(topic, lambda event, payload: published.append((topic, event, payload)))

    return _listen
