from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from threading import Barrier

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from clinic_scheduling.core.errors import ConflictError
from clinic_scheduling.database import Base
from clinic_scheduling.models.appointment import Appointment, AppointmentType
from clinic_scheduling.models.location import Location
from clinic_scheduling.models.provider import Provider
from clinic_scheduling.schemas import BookingRequest
from clinic_scheduling.services.booking import BookingCoordinator
from clinic_scheduling.services.events import AuditTrail, NotificationHub
from clinic_scheduling.services.repository import SqlAlchemyAppointmentStore

TABLES = [Provider.__table__, Location.__table__, Appointment.__table__]
CONTENDERS = 6


def test_concurrent_bookings_for_same_slot_admit_exactly_one(tmp_path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    with SessionFactory() as setup:
        setup.add(Provider(id='provider-race', name='Dr. Race', availability={}))
        setup.add(Location(id='location-race', name='Race Clinic', capacity=CONTENDERS))
        setup.commit()

    barrier = Barrier(CONTENDERS)

    def attempt(patient_number: int) -> str:
        with SessionFactory() as db:
            coordinator = BookingCoordinator(
                SqlAlchemyAppointmentStore(db),
                audit=AuditTrail(),
                notifications=NotificationHub(),
            )
            request = BookingRequest(
                provider_id='provider-race',
                location_id='location-race',
                patient_id=f'patient-{patient_number}',
                start=datetime(2026, 1, 5, 10),
                duration_minutes=30,
                appointment_type=AppointmentType.TELEHEALTH,
            )
            barrier.wait()
            try:
                coordinator.book(request)
            except ConflictError:
                return 'conflict'
            return 'booked'

    try:
        with ThreadPoolExecutor(max_workers=CONTENDERS) as executor:
            outcomes = list(executor.map(attempt, range(CONTENDERS)))

        with SessionFactory() as db:
            stored = db.query(Appointment).filter(Appointment.provider_id == 'provider-race').count()
    finally:
        Base.metadata.drop_all(bind=engine, tables=TABLES)
        engine.dispose()

    assert outcomes.count('booked') == 1
    assert outcomes.count('conflict') == CONTENDERS - 1
    assert stored == 1
