import logging
from datetime import datetime
from typing import Iterable

from clinic_scheduling.core import config
from clinic_scheduling.core.errors import InvalidTransitionError, ValidationError
from clinic_scheduling.scheduling.status import AppointmentStatus, can_transition
from clinic_scheduling.schemas import BulkAction, BulkData
from clinic_scheduling.services.events import (
    APPOINTMENTS_TOPIC,
    AuditTrail,
    NotificationHub,
    audit_trail,
    notification_hub,
)
from clinic_scheduling.services.repository import AppointmentStore

logger = logging.getLogger(__name__)


def normalize_ids(appointment_ids: Iterable[str]) -> list[str]:
    """Strip, drop blanks and collapse duplicates, keeping first-seen order."""
    normalized = (str(appointment_id).strip() for appointment_id in appointment_ids if appointment_id is not None)
    return list(dict.fromkeys(appointment_id for appointment_id in normalized if appointment_id))


class BulkOperationCoordinator:
    """Applies one action to many appointments as a single batch.

    One audit entry and one aggregate event cover the whole batch.
    """

    def __init__(
        self,
        store: AppointmentStore,
        audit: AuditTrail = audit_trail,
        notifications: NotificationHub = notification_hub,
    ):
        self.store = store
        self.audit = audit
        self.notifications = notifications

    def apply_bulk(
        self,
        action: BulkAction | str,
        appointment_ids: Iterable[str],
        data: BulkData | None = None,
        user_id: str | None = None,
    ) -> int:
        try:
            action = BulkAction(action)
        except ValueError as exc:
            raise ValidationError('Invalid bulk action.', errors=[{'field': 'action', 'message': str(exc)}]) from exc

        ids = normalize_ids(appointment_ids)
        if not ids:
            raise ValidationError('Action and appointment IDs array are required.')
        if len(ids) > config.BULK_MAX_IDS:
            raise ValidationError(f'Bulk operations are limited to {config.BULK_MAX_IDS} appointments per request.')

        now = datetime.now()
        if action is BulkAction.DELETE:
            values = {'deleted_at': now, 'updated_at': now}
            guard = None
            status = None
        else:
            status = data.status if data is not None else None
            if status is None:
                raise ValidationError('Status is required for bulk status update.', errors=[
                    {'field': 'data.status', 'message': 'Field required.'},
                ])
            values = {'status': status.value, 'updated_at': now}

            def guard(current: dict[str, str]) -> None:
                self._check_transitions(current, status)

        affected = self.store.bulk_update(ids, values, guard)

        audit_details = {'appointmentIds': ids, 'action': action.value, 'affectedCount': affected}
        if status is not None:
            audit_details['data'] = {'status': status.value}
        self.audit.record(
            f"BULK_{action.value.upper().replace('-', '_')}",
            'appointment',
            user_id=user_id,
            details=audit_details,
        )
        self.notifications.publish(APPOINTMENTS_TOPIC, 'appointments-bulk-updated', audit_details)

        logger.info('Bulk %s completed: %d of %d appointment(s) affected', action.value, affected, len(ids))
        return affected

    def _check_transitions(self, current: dict[str, str], target: AppointmentStatus) -> None:
        """Reject the batch if any appointment may not move to ``target``.

        Cancelled appointments are never reactivated in bulk, whatever the
        transition mode: reactivation needs the per-appointment conflict and
        capacity checks of ``BookingCoordinator.change_status``.
        """
        strict = config.STRICT_STATUS_TRANSITIONS
        blocked = sorted(
            appointment_id
            for appointment_id, status in current.items()
            if (status == AppointmentStatus.CANCELLED.value and target is not AppointmentStatus.CANCELLED)
            or (strict and not can_transition(status, target))
        )
        if blocked:
            blocked_statuses = sorted({current[appointment_id] for appointment_id in blocked})
            raise InvalidTransitionError('/'.join(blocked_statuses), target.value, appointment_ids=blocked)
