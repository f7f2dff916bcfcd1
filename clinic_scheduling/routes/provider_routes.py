from datetime import date

from fastapi import APIRouter, Depends, Query

from clinic_scheduling.dependencies import get_acting_user_id, get_availability_service
from clinic_scheduling.schemas import (
    AvailabilityUpdateRequest,
    ProviderAvailabilityResponse,
    ProviderScheduleResponse,
)
from clinic_scheduling.services.availability import AvailabilityService

router = APIRouter(tags=['providers'])


@router.get('/{provider_id}/availability', response_model=ProviderAvailabilityResponse, response_model_exclude_none=True)
def get_provider_availability(
    provider_id: str,
    start_date: date | None = Query(default=None, alias='startDate'),
    end_date: date | None = Query(default=None, alias='endDate'),
    include_appointments: bool = Query(default=False, alias='includeAppointments'),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_availability(
        provider_id,
        start_date=start_date,
        end_date=end_date,
        include_appointments=include_appointments,
    )


@router.put('/{provider_id}/availability', response_model=ProviderAvailabilityResponse, response_model_exclude_none=True)
def update_provider_availability(
    provider_id: str,
    data: AvailabilityUpdateRequest,
    service: AvailabilityService = Depends(get_availability_service),
    user_id: str | None = Depends(get_acting_user_id),
):
    return service.update_availability(provider_id, data.availability, user_id=user_id)


@router.get('/{provider_id}/schedule', response_model=ProviderScheduleResponse)
def get_provider_schedule(
    provider_id: str,
    start_date: date = Query(..., alias='startDate'),
    end_date: date = Query(..., alias='endDate'),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.provider_schedule(provider_id, start_date, end_date)
