"""Appointment model definitions."""

from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String

from clinic_scheduling.database import Base
from clinic_scheduling.models.ids import new_id
from clinic_scheduling.scheduling.status import AppointmentStatus


class AppointmentType(str, Enum):
    TELEHEALTH = "TELEHEALTH"
    IN_PERSON = "IN_PERSON"


class Appointment(Base):
    """Represents a scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (CheckConstraint("duration_minutes > 0", name="ck_appointments_duration_positive"),)

    id = Column(String(36), primary_key=True, default=new_id)
    provider_id = Column(String(36), ForeignKey("providers.id"), nullable=False)
    location_id = Column(String(36), ForeignKey("locations.id"), nullable=False)
    patient_id = Column(String, nullable=False)
    start_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    # Denormalized start_time + duration_minutes, used for range queries.
    end_time = Column(DateTime, nullable=False)
    appointment_type = Column(String, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.PENDING.value)
    notes = Column(String)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
    deleted_at = Column(DateTime)

    def reschedule(self, start_time: datetime, duration_minutes: int) -> None:
        self.start_time = start_time
        self.duration_minutes = duration_minutes
        self.end_time = start_time + timedelta(minutes=duration_minutes)
