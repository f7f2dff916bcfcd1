"""Provider conflict detection.

A provider can only be in one appointment at a time: any two of their
appointments that are not cancelled must not overlap.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable

from clinic_scheduling.scheduling.intervals import appointment_interval, overlap_minutes, overlaps
from clinic_scheduling.scheduling.status import AppointmentStatus


@dataclass(frozen=True)
class BookingCandidate:
    provider_id: str
    start: datetime
    duration_minutes: int
    appointment_id: str | None = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class ConflictPair:
    first: Any
    second: Any
    overlap_minutes: int


def is_active(appointment: Any) -> bool:
    return (
        AppointmentStatus(appointment.status) != AppointmentStatus.CANCELLED
        and getattr(appointment, 'deleted_at', None) is None
    )


def find_conflicts(candidate: BookingCandidate, existing: Iterable[Any]) -> list[Any]:
    """Every active appointment of the candidate's provider that overlaps it."""
    conflicts = []
    for appointment in existing:
        if appointment.provider_id != candidate.provider_id or not is_active(appointment):
            continue
        if candidate.appointment_id is not None and appointment.id == candidate.appointment_id:
            continue
        start, end = appointment_interval(appointment)
        if overlaps(candidate.start, candidate.end, start, end):
            conflicts.append(appointment)
    return sorted(conflicts, key=lambda item: item.start_time)


def find_overlapping_pairs(appointments: Iterable[Any]) -> list[ConflictPair]:
    """All overlapping pairs among active appointments.

    Sweeps appointments in start order while keeping every interval that is
    still open; each new appointment is checked against the whole open set,
    not only its predecessor.
    """
    ordered = sorted(
        (appointment for appointment in appointments if is_active(appointment)),
        key=lambda item: (item.start_time, item.duration_minutes),
    )
    pairs: list[ConflictPair] = []
    open_set: list[tuple[datetime, Any]] = []

    for appointment in ordered:
        start, end = appointment_interval(appointment)
        open_set = [(open_end, item) for open_end, item in open_set if open_end > start]
        for _, other in open_set:
            if other.provider_id != appointment.provider_id:
                continue
            other_start, other_end = appointment_interval(other)
            if overlaps(other_start, other_end, start, end):
                pairs.append(
                    ConflictPair(
                        first=other,
                        second=appointment,
                        overlap_minutes=overlap_minutes(other_start, other_end, start, end),
                    )
                )
        open_set.append((end, appointment))

    return pairs
