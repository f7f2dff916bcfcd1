"""Provider availability, slot discovery and conflict reports.

These are read paths: they take no locks, and the slots they return are
advisory until a booking commits.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Mapping

from clinic_scheduling.core import config
from clinic_scheduling.core.errors import NotFoundError, ValidationError
from clinic_scheduling.models.provider import Provider
from clinic_scheduling.scheduling.availability import (
    WEEKDAYS,
    parse_weekly_availability,
    ranges_for_date,
    serialize_weekly_availability,
    weekday_name,
)
from clinic_scheduling.scheduling.capacity import exceeded_hours
from clinic_scheduling.scheduling.conflicts import find_overlapping_pairs, is_active
from clinic_scheduling.scheduling.slots import generate_slots
from clinic_scheduling.schemas import (
    AppointmentResponse,
    ConflictPairResponse,
    ConflictReportResponse,
    ProviderAvailabilityResponse,
    ProviderScheduleDay,
    ProviderScheduleResponse,
    SlotQueryResponse,
    SlotResponse,
)
from clinic_scheduling.services.events import (
    APPOINTMENTS_TOPIC,
    AuditTrail,
    NotificationHub,
    audit_trail,
    notification_hub,
)
from clinic_scheduling.services.repository import AppointmentFilters, AppointmentStore

logger = logging.getLogger(__name__)

MAX_SCHEDULE_DAYS = 62


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time())
    return start, start + timedelta(days=1)


def check_date_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError('End date must not be before start date.')
    if (end_date - start_date).days + 1 > MAX_SCHEDULE_DAYS:
        raise ValidationError(f'Date ranges are limited to {MAX_SCHEDULE_DAYS} days.')


class AvailabilityService:
    def __init__(
        self,
        store: AppointmentStore,
        audit: AuditTrail = audit_trail,
        notifications: NotificationHub = notification_hub,
    ):
        self.store = store
        self.audit = audit
        self.notifications = notifications

    def _require_provider(self, provider_id: str) -> Provider:
        provider = self.store.get_provider(provider_id)
        if provider is None:
            raise NotFoundError('Provider not found.')
        return provider

    def available_slots(
        self,
        provider_id: str,
        day: date,
        duration_minutes: int,
        location_id: str | None = None,
        granularity_minutes: int | None = None,
        not_before: datetime | None = None,
    ) -> SlotQueryResponse:
        """Bookable slots for a provider on one day.

        With ``location_id`` the location must exist and slots that would
        push any of its hour buckets over capacity are left out.
        """
        provider = self._require_provider(provider_id)
        if not 0 < duration_minutes <= config.MAX_APPOINTMENT_MINUTES:
            raise ValidationError(
                f'Duration must be between 1 and {config.MAX_APPOINTMENT_MINUTES} minutes.',
                errors=[{'field': 'durationMinutes', 'message': 'Out of range.'}],
            )

        ranges = ranges_for_date(provider.availability, day)
        day_start, day_end = day_bounds(day)
        existing = self.store.find_for_provider(provider.id, day_start, day_end)

        is_admissible = None
        if location_id:
            location = self.store.get_location(location_id)
            if location is None:
                raise NotFoundError('Location not found.')
            occupying = self.store.find_for_location(location.id, day_start, day_end)

            def is_admissible(start: datetime, end: datetime) -> bool:
                return not exceeded_hours(location.capacity, occupying, start, end)

        slots = generate_slots(
            ranges,
            day,
            duration_minutes,
            existing=existing,
            granularity_minutes=granularity_minutes or config.DEFAULT_SLOT_GRANULARITY_MINUTES,
            not_before=not_before,
            is_admissible=is_admissible,
        )

        return SlotQueryResponse(
            available_slots=[SlotResponse(start=slot.start, end=slot.end) for slot in slots],
            existing_appointment_count=len(existing),
            total_slots=len(slots),
        )

    def get_availability(
        self,
        provider_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
        include_appointments: bool = False,
    ) -> ProviderAvailabilityResponse:
        provider = self._require_provider(provider_id)
        response = ProviderAvailabilityResponse(
            provider_id=provider.id,
            name=provider.name,
            availability=self._stored_availability(provider),
        )

        if include_appointments and start_date and end_date:
            check_date_range(start_date, end_date)
            appointments = self.store.find_for_provider(
                provider.id,
                day_bounds(start_date)[0],
                day_bounds(end_date)[1],
            )
            response.appointments = [AppointmentResponse.from_model(item) for item in appointments]

        return response

    def update_availability(
        self,
        provider_id: str,
        availability: Mapping[str, Any],
        user_id: str | None = None,
    ) -> ProviderAvailabilityResponse:
        provider = self._require_provider(provider_id)
        previous = dict(provider.availability or {})
        normalized = serialize_weekly_availability(parse_weekly_availability(availability))

        provider = self.store.update_provider_availability(provider, normalized)

        logger.info('Availability updated for provider %s', provider.id)
        self.audit.record(
            'UPDATE_AVAILABILITY',
            'provider',
            provider.id,
            user_id,
            {'newAvailability': normalized, 'oldAvailability': previous},
        )
        self.notifications.publish(
            APPOINTMENTS_TOPIC,
            'provider-availability-updated',
            {'providerId': provider.id, 'availability': normalized},
        )
        return ProviderAvailabilityResponse(provider_id=provider.id, name=provider.name, availability=normalized)

    def provider_schedule(self, provider_id: str, start_date: date, end_date: date) -> ProviderScheduleResponse:
        provider = self._require_provider(provider_id)
        check_date_range(start_date, end_date)

        appointments = self.store.find_for_provider(
            provider.id,
            day_bounds(start_date)[0],
            day_bounds(end_date)[1],
        )

        schedule = []
        day = start_date
        while day <= end_date:
            day_appointments = [item for item in appointments if item.start_time.date() == day]
            schedule.append(
                ProviderScheduleDay(
                    date=day,
                    day_of_week=weekday_name(day),
                    availability=[item.label for item in ranges_for_date(provider.availability, day)],
                    appointments=[AppointmentResponse.from_model(item) for item in day_appointments],
                    appointment_count=len(day_appointments),
                )
            )
            day += timedelta(days=1)

        return ProviderScheduleResponse(provider_id=provider.id, name=provider.name, schedule=schedule)

    def conflict_report(
        self,
        provider_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> ConflictReportResponse:
        """Every pair of overlapping active appointments for a provider."""
        provider = self._require_provider(provider_id)
        if start_date and end_date and end_date < start_date:
            raise ValidationError('End date must not be before start date.')

        if start_date and end_date:
            appointments = self.store.find_for_provider(provider.id, start_date, end_date)
        else:
            appointments, _ = self.store.list_appointments(AppointmentFilters(provider_id=provider.id))

        pairs = find_overlapping_pairs(appointments)
        active_count = sum(1 for item in appointments if is_active(item))
        return ConflictReportResponse(
            total_appointments=active_count,
            conflicts=[
                ConflictPairResponse(
                    appointment_1=AppointmentResponse.from_model(pair.first),
                    appointment_2=AppointmentResponse.from_model(pair.second),
                    overlap_minutes=pair.overlap_minutes,
                )
                for pair in pairs
            ],
            conflict_count=len(pairs),
        )

    @staticmethod
    def _stored_availability(provider: Provider) -> dict[str, list[str]]:
        stored = provider.availability or {}
        return {day_name: list(stored.get(day_name) or []) for day_name in WEEKDAYS}
