from datetime import date, datetime, time, timedelta

from clinic_scheduling.core import config
from clinic_scheduling.core.errors import NotFoundError
from clinic_scheduling.models.location import Location
from clinic_scheduling.scheduling import capacity
from clinic_scheduling.schemas import (
    HourBucketResponse,
    LocationOverviewItem,
    LocationOverviewResponse,
    LocationScheduleDay,
    LocationScheduleResponse,
    LocationUtilizationResponse,
)
from clinic_scheduling.services.availability import check_date_range, day_bounds
from clinic_scheduling.services.repository import AppointmentFilters, AppointmentStore


def operating_hours() -> range:
    return range(config.OPERATING_HOURS_START, config.OPERATING_HOURS_END + 1)


class CapacityAccountant:
    """Per-location, per-hour occupancy. Read-only."""

    def __init__(self, store: AppointmentStore):
        self.store = store

    def _require_location(self, location_id: str) -> Location:
        location = self.store.get_location(location_id)
        if location is None:
            raise NotFoundError('Location not found.')
        return location

    def utilization(self, location_id: str, day: date) -> LocationUtilizationResponse:
        location = self._require_location(location_id)
        appointments = self.store.find_for_location(location.id, *day_bounds(day))
        buckets = capacity.utilization(location.capacity, appointments, day, hours=operating_hours())

        return LocationUtilizationResponse(
            location_id=location.id,
            name=location.name,
            capacity=location.capacity,
            date=day,
            total_appointments=len(appointments),
            peak_hour=capacity.peak_hour(buckets),
            buckets=[
                HourBucketResponse(
                    hour=bucket.hour,
                    label=bucket.label,
                    occupied=bucket.occupied,
                    available=bucket.available,
                    is_available=bucket.is_available,
                    is_over_capacity=bucket.is_over_capacity,
                    utilization_pct=bucket.utilization_pct,
                )
                for bucket in buckets
            ],
        )

    def is_over_capacity(self, location_id: str, bucket_start: datetime) -> bool:
        location = self._require_location(location_id)
        bucket_start = bucket_start.replace(minute=0, second=0, microsecond=0)
        appointments = self.store.find_for_location(location.id, bucket_start, bucket_start + timedelta(hours=1))
        return capacity.is_over_capacity(location.capacity, appointments, bucket_start)

    def location_schedule(self, location_id: str, start_date: date, end_date: date) -> LocationScheduleResponse:
        location = self._require_location(location_id)
        check_date_range(start_date, end_date)

        appointments = self.store.find_for_location(
            location.id,
            day_bounds(start_date)[0],
            day_bounds(end_date)[1],
        )

        schedule = []
        day = start_date
        while day <= end_date:
            day_appointments = [item for item in appointments if item.start_time.date() == day]
            counts = capacity.hourly_occupancy(appointments, day)
            schedule.append(
                LocationScheduleDay(
                    date=day,
                    appointment_count=len(day_appointments),
                    total_duration_minutes=sum(item.duration_minutes for item in day_appointments),
                    utilization_percentage=round(len(day_appointments) / location.capacity * 100),
                    is_over_capacity=any(count > location.capacity for count in counts.values()),
                )
            )
            day += timedelta(days=1)

        return LocationScheduleResponse(
            location_id=location.id,
            name=location.name,
            capacity=location.capacity,
            schedule=schedule,
        )

    def overview(self, start_date: date, end_date: date) -> LocationOverviewResponse:
        """Appointment load of every active location over an inclusive date range.

        A location's utilization is its active appointments in the range
        against one appointment per unit of capacity per day.
        """
        check_date_range(start_date, end_date)
        range_start = day_bounds(start_date)[0]
        range_end = day_bounds(end_date)[1]
        days = (end_date - start_date).days + 1

        locations = self.store.list_locations()
        _, total_appointments = self.store.list_appointments(
            AppointmentFilters(start_date=range_start, end_date=datetime.combine(end_date, time.max)),
            limit=0,
        )

        items = []
        for location in locations:
            if not location.is_active:
                continue
            count = len(self.store.find_for_location(location.id, range_start, range_end))
            items.append(
                LocationOverviewItem(
                    location_id=location.id,
                    name=location.name,
                    capacity=location.capacity,
                    appointment_count=count,
                    utilization_percentage=round(count / (location.capacity * days) * 100),
                )
            )

        average = round(sum(item.utilization_percentage for item in items) / len(items)) if items else 0
        return LocationOverviewResponse(
            start_date=start_date,
            end_date=end_date,
            total_locations=len(locations),
            active_locations=len(items),
            total_appointments=total_appointments,
            average_utilization=average,
            locations=items,
        )
