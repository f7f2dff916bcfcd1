"""Half-open interval helpers.

All overlap checks in the scheduler go through ``overlaps`` so that booking,
slot generation and capacity accounting agree on boundaries: an appointment
ending at 10:00 does not overlap one starting at 10:00.
"""

from datetime import datetime, timedelta
from typing import Any


def overlaps(start_a: Any, end_a: Any, start_b: Any, end_b: Any) -> bool:
    return start_a < end_b and start_b < end_a


def overlap_minutes(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> int:
    if not overlaps(start_a, end_a, start_b, end_b):
        return 0
    shared = min(end_a, end_b) - max(start_a, start_b)
    return round(shared.total_seconds() / 60)


def contains(outer_start: Any, outer_end: Any, start: Any, end: Any) -> bool:
    return outer_start <= start and end <= outer_end


def appointment_interval(appointment: Any) -> tuple[datetime, datetime]:
    start = appointment.start_time
    return start, start + timedelta(minutes=appointment.duration_minutes)
