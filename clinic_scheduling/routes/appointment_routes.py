from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status

from clinic_scheduling.core import config
from clinic_scheduling.dependencies import (
    get_acting_user_id,
    get_availability_service,
    get_booking_coordinator,
    get_bulk_coordinator,
)
from clinic_scheduling.models.appointment import AppointmentType
from clinic_scheduling.scheduling.status import AppointmentStatus
from clinic_scheduling.schemas import (
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentUpdateRequest,
    BookingRequest,
    BulkRequest,
    BulkResponse,
    ConflictReportResponse,
    Pagination,
    SlotQueryResponse,
    StatusUpdateRequest,
)
from clinic_scheduling.services.availability import AvailabilityService
from clinic_scheduling.services.booking import BookingCoordinator
from clinic_scheduling.services.bulk import BulkOperationCoordinator
from clinic_scheduling.services.repository import AppointmentFilters

router = APIRouter(tags=['appointments'])


@router.get('', response_model=AppointmentListResponse)
def list_appointments(
    day: date | None = Query(default=None, alias='date'),
    start_date: datetime | None = Query(default=None, alias='startDate'),
    end_date: datetime | None = Query(default=None, alias='endDate'),
    provider_id: str | None = Query(default=None, alias='providerId'),
    location_id: str | None = Query(default=None, alias='locationId'),
    patient_id: str | None = Query(default=None, alias='patientId'),
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    appointment_type: AppointmentType | None = Query(default=None, alias='type'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_LIMIT, ge=1, le=config.MAX_PAGE_LIMIT),
    sort_by: str = Query(default='date', alias='sortBy'),
    sort_order: str = Query(default='asc', alias='sortOrder', pattern='^(asc|desc)$'),
    coordinator: BookingCoordinator = Depends(get_booking_coordinator),
):
    filters = AppointmentFilters(
        day=day,
        start_date=start_date,
        end_date=end_date,
        provider_id=provider_id,
        location_id=location_id,
        patient_id=patient_id,
        status=appointment_status,
        appointment_type=appointment_type.value if appointment_type else None,
    )
    appointments, total = coordinator.list_appointments(
        filters,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return AppointmentListResponse(
        data=[AppointmentResponse.from_model(appointment) for appointment in appointments],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=-(-total // limit)),
    )


@router.get('/calendar', response_model=dict[str, list[AppointmentResponse]])
def appointment_calendar(
    start_date: datetime = Query(..., alias='startDate'),
    end_date: datetime = Query(..., alias='endDate'),
    provider_id: str | None = Query(default=None, alias='providerId'),
    location_id: str | None = Query(default=None, alias='locationId'),
    coordinator: BookingCoordinator = Depends(get_booking_coordinator),
):
    grouped = coordinator.calendar(start_date, end_date, provider_id=provider_id, location_id=location_id)
    return {
        day: [AppointmentResponse.from_model(appointment) for appointment in appointments]
        for day, appointments in grouped.items()
    }


@router.get('/availability', response_model=SlotQueryResponse)
def check_availability(
    provider_id: str = Query(..., alias='providerId'),
    day: date = Query(..., alias='date'),
    duration_minutes: int = Query(default=30, alias='durationMinutes', gt=0),
    location_id: str | None = Query(default=None, alias='locationId'),
    granularity_minutes: int | None = Query(default=None, alias='granularityMinutes', gt=0),
    exclude_past: bool = Query(default=False, alias='excludePast'),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.available_slots(
        provider_id,
        day,
        duration_minutes,
        location_id=location_id,
        granularity_minutes=granularity_minutes,
        not_before=datetime.now() if exclude_past else None,
    )


@router.get('/conflicts', response_model=ConflictReportResponse)
def check_conflicts(
    provider_id: str = Query(..., alias='providerId'),
    start_date: datetime | None = Query(default=None, alias='startDate'),
    end_date: datetime | None = Query(default=None, alias='endDate'),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.conflict_report(provider_id, start_date=start_date, end_date=end_date)


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: BookingRequest,
    coordinator: BookingCoordinator = Depends(get_booking_coordinator),
    user_id: str | None = Depends(get_acting_user_id),
):
    appointment = coordinator.book(data, user_id=user_id)
    return AppointmentResponse.from_model(appointment)


@router.post('/bulk', response_model=BulkResponse)
def bulk_update_appointments(
    data: BulkRequest,
    coordinator: BulkOperationCoordinator = Depends(get_bulk_coordinator),
    user_id: str | None = Depends(get_acting_user_id),
):
    affected_count = coordinator.apply_bulk(data.action, data.appointment_ids, data.data, user_id=user_id)
    return BulkResponse(
        action=data.action,
        affected_count=affected_count,
        message=f'Bulk {data.action.value} completed successfully',
    )


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: str,
    coordinator: BookingCoordinator = Depends(get_booking_coordinator),
):
    return AppointmentResponse.from_model(coordinator.get(appointment_id))


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: str,
    data: AppointmentUpdateRequest,
    coordinator: BookingCoordinator = Depends(get_booking_coordinator),
    user_id: str | None = Depends(get_acting_user_id),
):
    return AppointmentResponse.from_model(coordinator.update(appointment_id, data, user_id=user_id))


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: str,
    data: StatusUpdateRequest,
    coordinator: BookingCoordinator = Depends(get_booking_coordinator),
    user_id: str | None = Depends(get_acting_user_id),
):
    return AppointmentResponse.from_model(coordinator.change_status(appointment_id, data.status, user_id=user_id))


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: str,
    coordinator: BookingCoordinator = Depends(get_booking_coordinator),
    user_id: str | None = Depends(get_acting_user_id),
):
    coordinator.delete(appointment_id, user_id=user_id)
