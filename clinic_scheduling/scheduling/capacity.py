"""Location capacity accounting.

Capacity is an aggregate limit per location and hour: an appointment
occupies every ``[h:00, h+1:00)`` bucket it overlaps, whichever provider
runs it. This is separate from provider conflicts, which are about one
provider being in two places at once.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable

from clinic_scheduling.scheduling.conflicts import is_active
from clinic_scheduling.scheduling.intervals import appointment_interval, overlaps


@dataclass(frozen=True)
class HourBucket:
    hour: int
    occupied: int
    capacity: int

    @property
    def label(self) -> str:
        return f'{self.hour}:00'

    @property
    def available(self) -> int:
        return max(0, self.capacity - self.occupied)

    @property
    def is_available(self) -> bool:
        return self.occupied < self.capacity

    @property
    def is_over_capacity(self) -> bool:
        return self.occupied > self.capacity

    @property
    def utilization_pct(self) -> int:
        if self.capacity <= 0:
            return 0
        return round(self.occupied / self.capacity * 100)


def bucket_bounds(day: date, hour: int) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time(hour))
    return start, start + timedelta(hours=1)


def hours_spanned(day: date, start: datetime, end: datetime) -> list[int]:
    """Hours of ``day`` whose bucket overlaps ``[start, end)``."""
    return [hour for hour in range(24) if overlaps(start, end, *bucket_bounds(day, hour))]


def hourly_occupancy(appointments: Iterable[Any], day: date) -> dict[int, int]:
    counts: dict[int, int] = {}
    for appointment in appointments:
        if not is_active(appointment):
            continue
        start, end = appointment_interval(appointment)
        for hour in hours_spanned(day, start, end):
            counts[hour] = counts.get(hour, 0) + 1
    return counts


def utilization(
    capacity: int,
    appointments: Iterable[Any],
    day: date,
    hours: range = range(8, 19),
) -> list[HourBucket]:
    """Per-hour occupancy for ``day``.

    Hours outside ``hours`` are still reported when something occupies them,
    so an over-capacity evening is never hidden.
    """
    counts = hourly_occupancy(appointments, day)
    reported = sorted(set(hours) | set(counts))
    return [HourBucket(hour=hour, occupied=counts.get(hour, 0), capacity=capacity) for hour in reported]


def is_over_capacity(capacity: int, appointments: Iterable[Any], bucket_start: datetime) -> bool:
    bucket_start = bucket_start.replace(minute=0, second=0, microsecond=0)
    counts = hourly_occupancy(appointments, bucket_start.date())
    return counts.get(bucket_start.hour, 0) > capacity


def exceeded_hours(capacity: int, appointments: Iterable[Any], start: datetime, end: datetime) -> list[int]:
    """Hours that adding ``[start, end)`` would push over ``capacity``."""
    appointments = list(appointments)
    exceeded: list[int] = []
    day = start.date()
    while datetime.combine(day, time()) < end:
        counts = hourly_occupancy(appointments, day)
        exceeded.extend(hour for hour in hours_spanned(day, start, end) if counts.get(hour, 0) + 1 > capacity)
        day += timedelta(days=1)
    return exceeded


def peak_hour(buckets: Iterable[HourBucket]) -> int | None:
    busiest = None
    for bucket in buckets:
        if bucket.occupied and (busiest is None or bucket.occupied > busiest.occupied):
            busiest = bucket
    return busiest.hour if busiest else None
