from datetime import date, datetime

from fastapi import APIRouter, Depends, Query

from clinic_scheduling.dependencies import get_capacity_accountant
from clinic_scheduling.schemas import (
    LocationOverviewResponse,
    LocationScheduleResponse,
    LocationUtilizationResponse,
)
from clinic_scheduling.services.capacity import CapacityAccountant

router = APIRouter(tags=['locations'])


@router.get('/stats/overview', response_model=LocationOverviewResponse)
def get_locations_overview(
    start_date: date = Query(..., alias='startDate'),
    end_date: date = Query(..., alias='endDate'),
    accountant: CapacityAccountant = Depends(get_capacity_accountant),
):
    return accountant.overview(start_date, end_date)


@router.get('/{location_id}/utilization', response_model=LocationUtilizationResponse)
def get_location_utilization(
    location_id: str,
    day: date = Query(..., alias='date'),
    accountant: CapacityAccountant = Depends(get_capacity_accountant),
):
    return accountant.utilization(location_id, day)


@router.get('/{location_id}/capacity')
def get_location_capacity(
    location_id: str,
    at: datetime = Query(...),
    accountant: CapacityAccountant = Depends(get_capacity_accountant),
):
    bucket_start = at.replace(minute=0, second=0, microsecond=0)
    return {
        'locationId': location_id,
        'hourStart': bucket_start,
        'isOverCapacity': accountant.is_over_capacity(location_id, bucket_start),
    }


@router.get('/{location_id}/schedule', response_model=LocationScheduleResponse)
def get_location_schedule(
    location_id: str,
    start_date: date = Query(..., alias='startDate'),
    end_date: date = Query(..., alias='endDate'),
    accountant: CapacityAccountant = Depends(get_capacity_accountant),
):
    return accountant.location_schedule(location_id, start_date, end_date)
