"""Appointment lifecycle states and the transitions allowed between them."""

from enum import Enum

from clinic_scheduling.core.errors import InvalidTransitionError


class AppointmentStatus(str, Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    CANCELLED = 'CANCELLED'
    COMPLETED = 'COMPLETED'
    NO_SHOW = 'NO_SHOW'


TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

INITIAL_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


def can_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
    return AppointmentStatus(target) in TRANSITIONS[AppointmentStatus(current)]


def ensure_transition(
    current: AppointmentStatus | str,
    target: AppointmentStatus | str,
    strict: bool = True,
) -> AppointmentStatus:
    """Return the target status, or raise if the move is not allowed.

    With ``strict`` off any status may overwrite any other, which is how the
    legacy PATCH endpoint behaved.
    """
    current = AppointmentStatus(current)
    target = AppointmentStatus(target)
    if strict and not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)
    return target
