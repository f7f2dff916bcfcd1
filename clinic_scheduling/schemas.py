"""Request and response schemas.

Wire names are camelCase (``providerId``, ``durationMinutes``); snake_case
field names are accepted on input as well.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from clinic_scheduling.core import config
from clinic_scheduling.models.appointment import Appointment, AppointmentType
from clinic_scheduling.scheduling.status import INITIAL_STATUSES, AppointmentStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _normalize_start(value: datetime) -> datetime:
    # Stored times are naive local wall-clock times.
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.replace(second=0, microsecond=0)


def _validate_duration(value: int) -> int:
    if value <= 0:
        raise ValueError('Duration must be greater than zero minutes.')
    if value > config.MAX_APPOINTMENT_MINUTES:
        raise ValueError(f'Duration must be {config.MAX_APPOINTMENT_MINUTES} minutes or fewer.')
    return value


def _validate_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


def _validate_identifier(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Identifier is required.')
    return normalized


class BookingRequest(CamelModel):
    provider_id: str
    location_id: str
    patient_id: str
    start: datetime
    duration_minutes: int
    appointment_type: AppointmentType = Field(alias='type')
    status: AppointmentStatus | None = None
    notes: str | None = None

    @field_validator('provider_id', 'location_id', 'patient_id')
    @classmethod
    def validate_ids(cls, value: str) -> str:
        return _validate_identifier(value)

    @field_validator('start')
    @classmethod
    def validate_start(cls, value: datetime) -> datetime:
        return _normalize_start(value)

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        return _validate_duration(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)

    @field_validator('status')
    @classmethod
    def validate_initial_status(cls, value: AppointmentStatus | None) -> AppointmentStatus | None:
        if value is not None and value not in INITIAL_STATUSES:
            raise ValueError('New appointments must be PENDING or CONFIRMED.')
        return value


class AppointmentUpdateRequest(CamelModel):
    provider_id: str | None = None
    location_id: str | None = None
    patient_id: str | None = None
    start: datetime | None = None
    duration_minutes: int | None = None
    appointment_type: AppointmentType | None = Field(default=None, alias='type')
    status: AppointmentStatus | None = None
    notes: str | None = None

    @field_validator('provider_id', 'location_id', 'patient_id')
    @classmethod
    def validate_ids(cls, value: str | None) -> str | None:
        return None if value is None else _validate_identifier(value)

    @field_validator('start')
    @classmethod
    def validate_start(cls, value: datetime | None) -> datetime | None:
        return None if value is None else _normalize_start(value)

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        return None if value is None else _validate_duration(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)


class StatusUpdateRequest(CamelModel):
    status: AppointmentStatus


class BulkAction(str, Enum):
    DELETE = 'delete'
    UPDATE_STATUS = 'update-status'


class BulkData(CamelModel):
    status: AppointmentStatus | None = None


class BulkRequest(CamelModel):
    action: BulkAction
    appointment_ids: list[str]
    data: BulkData | None = None


class BulkResponse(CamelModel):
    action: BulkAction
    affected_count: int
    message: str


class AppointmentResponse(CamelModel):
    id: str
    provider_id: str
    location_id: str
    patient_id: str
    start: datetime
    end: datetime
    duration_minutes: int
    appointment_type: AppointmentType = Field(alias='type')
    status: AppointmentStatus
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, appointment: Appointment) -> 'AppointmentResponse':
        return cls(
            id=appointment.id,
            provider_id=appointment.provider_id,
            location_id=appointment.location_id,
            patient_id=appointment.patient_id,
            start=appointment.start_time,
            end=appointment.end_time,
            duration_minutes=appointment.duration_minutes,
            appointment_type=appointment.appointment_type,
            status=appointment.status,
            notes=appointment.notes,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


def serialize_appointment(appointment: Appointment) -> dict[str, Any]:
    return AppointmentResponse.from_model(appointment).model_dump(mode='json', by_alias=True)


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class AppointmentListResponse(CamelModel):
    data: list[AppointmentResponse]
    pagination: Pagination


class SlotResponse(CamelModel):
    start: datetime
    end: datetime


class SlotQueryResponse(CamelModel):
    available_slots: list[SlotResponse]
    existing_appointment_count: int
    total_slots: int


class ConflictPairResponse(CamelModel):
    appointment_1: AppointmentResponse
    appointment_2: AppointmentResponse
    overlap_minutes: int


class ConflictReportResponse(CamelModel):
    total_appointments: int
    conflicts: list[ConflictPairResponse]
    conflict_count: int


class AvailabilityUpdateRequest(CamelModel):
    availability: dict[str, Any]


class ProviderAvailabilityResponse(CamelModel):
    provider_id: str
    name: str
    availability: dict[str, list[str]]
    appointments: list[AppointmentResponse] | None = None


class ProviderScheduleDay(CamelModel):
    date: date
    day_of_week: str
    availability: list[str]
    appointments: list[AppointmentResponse]
    appointment_count: int


class ProviderScheduleResponse(CamelModel):
    provider_id: str
    name: str
    schedule: list[ProviderScheduleDay]


class HourBucketResponse(CamelModel):
    hour: int
    label: str
    occupied: int
    available: int
    is_available: bool
    is_over_capacity: bool
    utilization_pct: int


class LocationUtilizationResponse(CamelModel):
    location_id: str
    name: str
    capacity: int
    date: date
    total_appointments: int
    peak_hour: int | None
    buckets: list[HourBucketResponse]


class LocationScheduleDay(CamelModel):
    date: date
    appointment_count: int
    total_duration_minutes: int
    utilization_percentage: int
    is_over_capacity: bool


class LocationScheduleResponse(CamelModel):
    location_id: str
    name: str
    capacity: int
    schedule: list[LocationScheduleDay]


class LocationOverviewItem(CamelModel):
    location_id: str
    name: str
    capacity: int
    appointment_count: int
    utilization_percentage: int


class LocationOverviewResponse(CamelModel):
    start_date: date
    end_date: date
    total_locations: int
    active_locations: int
    total_appointments: int
    average_utilization: int
    locations: list[LocationOverviewItem]
