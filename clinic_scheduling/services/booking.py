"""Booking coordinator: create, update, status change and delete.

The decisions (conflicts, capacity, transitions) come from the pure
``clinic_scheduling.scheduling`` modules; this class loads their inputs,
runs them inside the store's atomic unit, then records the audit entry and
publishes the notification once the write has committed.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

from clinic_scheduling.core import config
from clinic_scheduling.core.errors import (
    CapacityExceededError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from clinic_scheduling.models.appointment import Appointment
from clinic_scheduling.models.location import Location
from clinic_scheduling.models.provider import Provider
from clinic_scheduling.scheduling.availability import is_within_availability
from clinic_scheduling.scheduling.capacity import exceeded_hours
from clinic_scheduling.scheduling.conflicts import BookingCandidate, find_conflicts
from clinic_scheduling.scheduling.status import AppointmentStatus, ensure_transition
from clinic_scheduling.schemas import AppointmentUpdateRequest, BookingRequest, serialize_appointment
from clinic_scheduling.services.events import AuditTrail, NotificationHub, audit_trail, notification_hub, provider_topic
from clinic_scheduling.services.repository import AppointmentFilters, AppointmentStore

logger = logging.getLogger(__name__)

TIMING_FIELDS = ('start_time', 'duration_minutes', 'provider_id', 'location_id')


def _hour_floor(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


def _hour_ceiling(value: datetime) -> datetime:
    floor = _hour_floor(value)
    return floor if floor == value else floor + timedelta(hours=1)


class BookingCoordinator:
    def __init__(
        self,
        store: AppointmentStore,
        audit: AuditTrail = audit_trail,
        notifications: NotificationHub = notification_hub,
    ):
        self.store = store
        self.audit = audit
        self.notifications = notifications

    # Lookups

    def get(self, appointment_id: str) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError('Appointment not found.')
        return appointment

    def list_appointments(
        self,
        filters: AppointmentFilters,
        page: int = 1,
        limit: int | None = None,
        sort_by: str = 'date',
        sort_order: str = 'asc',
    ) -> tuple[list[Appointment], int]:
        limit = limit or config.DEFAULT_PAGE_LIMIT
        if page < 1 or not 1 <= limit <= config.MAX_PAGE_LIMIT:
            raise ValidationError(f'Page must be >= 1 and limit between 1 and {config.MAX_PAGE_LIMIT}.')
        return self.store.list_appointments(
            filters,
            offset=(page - 1) * limit,
            limit=limit,
            sort_by=sort_by,
            descending=sort_order.lower() == 'desc',
        )

    def calendar(
        self,
        start_date: datetime,
        end_date: datetime,
        provider_id: str | None = None,
        location_id: str | None = None,
    ) -> dict[str, list[Appointment]]:
        if end_date < start_date:
            raise ValidationError('End date must not be before start date.')
        appointments, _ = self.store.list_appointments(
            AppointmentFilters(
                start_date=start_date,
                end_date=end_date,
                provider_id=provider_id,
                location_id=location_id,
            ),
        )
        grouped: dict[str, list[Appointment]] = defaultdict(list)
        for appointment in appointments:
            grouped[appointment.start_time.date().isoformat()].append(appointment)
        return dict(grouped)

    def _require_provider(self, provider_id: str) -> Provider:
        provider = self.store.get_provider(provider_id)
        if provider is None:
            raise NotFoundError('Provider not found.')
        if not provider.is_active:
            raise ValidationError('Provider is not accepting appointments.', errors=[
                {'field': 'providerId', 'message': 'Provider is inactive.'},
            ])
        return provider

    def _require_location(self, location_id: str) -> Location:
        location = self.store.get_location(location_id)
        if location is None:
            raise NotFoundError('Location not found.')
        if not location.is_active:
            raise ValidationError('Location is not accepting appointments.', errors=[
                {'field': 'locationId', 'message': 'Location is inactive.'},
            ])
        return location

    # Checks, run inside the store's atomic unit

    def _check_availability_window(self, provider: Provider, candidate: BookingCandidate) -> None:
        if not config.ENFORCE_AVAILABILITY_WINDOW:
            return
        if not is_within_availability(provider.availability, candidate.start, candidate.end):
            raise ValidationError('Appointment is outside the provider availability.', errors=[
                {'field': 'start', 'message': 'No availability window covers this time.'},
            ])

    def _check_conflicts(self, candidate: BookingCandidate) -> None:
        window = timedelta(hours=config.CONFLICT_WINDOW_HOURS)
        existing = self.store.find_overlapping(
            candidate.provider_id,
            candidate.start - window,
            candidate.start + window,
            exclude_id=candidate.appointment_id,
        )
        conflicts = find_conflicts(candidate, existing)
        if conflicts:
            logger.warning(
                'Rejected booking for provider %s at %s: %d conflict(s)',
                candidate.provider_id,
                candidate.start.isoformat(),
                len(conflicts),
            )
            raise ConflictError([serialize_appointment(appointment) for appointment in conflicts])

    def _check_capacity(self, location: Location, candidate: BookingCandidate) -> None:
        occupying = self.store.find_for_location(
            location.id,
            _hour_floor(candidate.start),
            _hour_ceiling(candidate.end),
            exclude_id=candidate.appointment_id,
        )
        hours = exceeded_hours(location.capacity, occupying, candidate.start, candidate.end)
        if hours:
            logger.warning('Rejected booking at location %s: capacity %d reached for hours %s',
                           location.id, location.capacity, hours)
            raise CapacityExceededError(hours)

    # Writes

    def book(self, request: BookingRequest, user_id: str | None = None) -> Appointment:
        provider = self._require_provider(request.provider_id)
        location = self._require_location(request.location_id)
        candidate = BookingCandidate(provider.id, request.start, request.duration_minutes)
        self._check_availability_window(provider, candidate)

        appointment = Appointment(
            provider_id=provider.id,
            location_id=location.id,
            patient_id=request.patient_id,
            appointment_type=request.appointment_type.value,
            status=(request.status or AppointmentStatus.PENDING).value,
            notes=request.notes,
        )
        appointment.reschedule(candidate.start, candidate.duration_minutes)

        def guard(_: Appointment) -> None:
            self._check_conflicts(candidate)
            self._check_capacity(location, candidate)

        appointment = self.store.insert_atomic(appointment, guard)

        logger.info('Appointment %s created for provider %s', appointment.id, appointment.provider_id)
        self._emit(
            'CREATE',
            appointment,
            user_id,
            {'appointmentData': request.model_dump(mode='json', by_alias=True, exclude_none=True)},
            'appointment-created',
        )
        return appointment

    def update(self, appointment_id: str, request: AppointmentUpdateRequest, user_id: str | None = None) -> Appointment:
        appointment = self.get(appointment_id)
        original = serialize_appointment(appointment)
        changes = self._changes_from(request)
        if not changes:
            return appointment

        provider = (
            self._require_provider(changes['provider_id'])
            if 'provider_id' in changes
            else self.store.get_provider(appointment.provider_id)
        )
        location = (
            self._require_location(changes['location_id'])
            if 'location_id' in changes
            else self.store.get_location(appointment.location_id)
        )

        def guard(current: Appointment, pending: dict[str, Any]) -> None:
            target_status = pending.get('status', current.status)
            if target_status != current.status:
                ensure_transition(current.status, target_status, strict=config.STRICT_STATUS_TRANSITIONS)

            reactivated = (
                current.status == AppointmentStatus.CANCELLED.value
                and target_status != AppointmentStatus.CANCELLED.value
            )
            if target_status == AppointmentStatus.CANCELLED.value:
                return
            if not reactivated and not any(field in pending for field in TIMING_FIELDS):
                return

            candidate = BookingCandidate(
                pending.get('provider_id', current.provider_id),
                pending.get('start_time', current.start_time),
                pending.get('duration_minutes', current.duration_minutes),
                appointment_id=current.id,
            )
            self._check_availability_window(provider, candidate)
            self._check_conflicts(candidate)
            self._check_capacity(location, candidate)

        previous_provider_id = appointment.provider_id
        appointment = self.store.update_atomic(appointment, changes, guard)

        logger.info('Appointment %s updated (%s)', appointment.id, ', '.join(sorted(changes)))
        topics = {provider_topic(appointment.provider_id), provider_topic(previous_provider_id)}
        self._emit(
            'UPDATE',
            appointment,
            user_id,
            {'changes': request.model_dump(mode='json', by_alias=True, exclude_unset=True), 'originalData': original},
            'appointment-updated',
            topics=sorted(topics),
        )
        return appointment

    def change_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        user_id: str | None = None,
    ) -> Appointment:
        appointment = self.get(appointment_id)
        target = AppointmentStatus(status)
        previous: dict[str, str] = {}

        def guard(current: Appointment, _: dict[str, Any]) -> None:
            previous['status'] = current.status
            ensure_transition(current.status, target, strict=config.STRICT_STATUS_TRANSITIONS)
            if current.status == AppointmentStatus.CANCELLED.value and target != AppointmentStatus.CANCELLED:
                candidate = BookingCandidate(
                    current.provider_id,
                    current.start_time,
                    current.duration_minutes,
                    appointment_id=current.id,
                )
                self._check_conflicts(candidate)
                location = self._require_location(current.location_id)
                self._check_capacity(location, candidate)

        appointment = self.store.update_atomic(appointment, {'status': target.value}, guard)

        logger.info('Appointment %s status %s -> %s', appointment.id, previous.get('status'), target.value)
        self._emit(
            'STATUS_UPDATE',
            appointment,
            user_id,
            {'newStatus': target.value, 'previousStatus': previous.get('status')},
            'appointment-status-updated',
        )
        return appointment

    def delete(self, appointment_id: str, user_id: str | None = None) -> None:
        appointment = self.get(appointment_id)
        snapshot = serialize_appointment(appointment)

        self.store.update_atomic(appointment, {'deleted_at': datetime.now()}, lambda current, pending: None)

        logger.info('Appointment %s deleted', appointment_id)
        self.audit.record('DELETE', 'appointment', appointment_id, user_id, {'deletedAppointment': snapshot})
        self.notifications.publish(
            provider_topic(snapshot['providerId']),
            'appointment-deleted',
            {'id': appointment_id},
        )

    def _changes_from(self, request: AppointmentUpdateRequest) -> dict[str, Any]:
        provided = request.model_dump(exclude_unset=True)
        changes: dict[str, Any] = {}
        for field_name, value in provided.items():
            if field_name == 'start':
                if value is None:
                    raise ValidationError('Start time cannot be cleared.')
                changes['start_time'] = value
            elif field_name in {'appointment_type', 'status'}:
                if value is None:
                    raise ValidationError(f'{field_name} cannot be cleared.')
                changes[field_name] = value.value
            elif field_name == 'notes':
                changes['notes'] = value
            elif value is None:
                raise ValidationError(f'{field_name} cannot be cleared.')
            else:
                changes[field_name] = value
        return changes

    def _emit(
        self,
        action: str,
        appointment: Appointment,
        user_id: str | None,
        details: dict[str, Any],
        event: str,
        topics: list[str] | None = None,
    ) -> None:
        self.audit.record(action, 'appointment', appointment.id, user_id, details)
        payload = serialize_appointment(appointment)
        for topic in topics or [provider_topic(appointment.provider_id)]:
            self.notifications.publish(topic, event, payload)

