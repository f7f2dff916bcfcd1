"""Bookable slot enumeration.

Slots are recomputed from availability and the provider's existing
appointments on every call; nothing is cached between calls.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable, Iterator, Sequence

from clinic_scheduling.core.errors import ConfigurationError, ValidationError
from clinic_scheduling.scheduling.availability import TimeRange
from clinic_scheduling.scheduling.conflicts import is_active
from clinic_scheduling.scheduling.intervals import appointment_interval, overlaps

DEFAULT_GRANULARITY_MINUTES = 15


@dataclass(frozen=True, order=True)
class Slot:
    start: datetime
    end: datetime


def iter_slots(
    ranges: Sequence[TimeRange],
    day: date,
    duration_minutes: int,
    existing: Iterable[Any] = (),
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    not_before: datetime | None = None,
    is_admissible: Callable[[datetime, datetime], bool] | None = None,
) -> Iterator[Slot]:
    """Yield every slot of ``duration_minutes`` on ``day`` in start order.

    A cursor walks each availability range in ``granularity_minutes`` steps;
    a slot starting at the cursor is yielded when it fits inside the range and
    does not overlap an active appointment. ``is_admissible`` lets callers
    add constraints such as location capacity.
    """
    if duration_minutes <= 0:
        raise ValidationError('Duration must be a positive number of minutes.')
    if granularity_minutes <= 0:
        raise ValidationError('Granularity must be a positive number of minutes.')

    for item in ranges:
        if item.end <= item.start:
            raise ConfigurationError(f'Availability range {item.label} must end after it starts.')

    busy = [appointment_interval(appointment) for appointment in existing if is_active(appointment)]
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=granularity_minutes)
    seen: set[datetime] = set()

    for item in sorted(ranges):
        range_start, range_end = item.on(day)
        cursor = range_start

        while cursor + duration <= range_end:
            slot_end = cursor + duration
            if (
                cursor not in seen
                and (not_before is None or cursor >= not_before)
                and not any(overlaps(cursor, slot_end, busy_start, busy_end) for busy_start, busy_end in busy)
                and (is_admissible is None or is_admissible(cursor, slot_end))
            ):
                seen.add(cursor)
                yield Slot(cursor, slot_end)
            cursor += step


def generate_slots(
    ranges: Sequence[TimeRange],
    day: date,
    duration_minutes: int,
    existing: Iterable[Any] = (),
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    not_before: datetime | None = None,
    is_admissible: Callable[[datetime, datetime], bool] | None = None,
) -> list[Slot]:
    return list(
        iter_slots(
            ranges,
            day,
            duration_minutes,
            existing=existing,
            granularity_minutes=granularity_minutes,
            not_before=not_before,
            is_admissible=is_admissible,
        )
    )
