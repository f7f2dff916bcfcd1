from datetime import datetime

import pytest

from clinic_scheduling.core import config
from clinic_scheduling.core.errors import InvalidTransitionError, ValidationError
from clinic_scheduling.scheduling.conflicts import find_overlapping_pairs
from clinic_scheduling.schemas import BulkAction, BulkData
from clinic_scheduling.services.bulk import BulkOperationCoordinator, normalize_ids
from clinic_scheduling.services.repository import AppointmentFilters


@pytest.fixture
def coordinator(store, audit, notifications, clinic):
    return BulkOperationCoordinator(store, audit=audit, notifications=notifications)


@pytest.fixture
def three_appointments(make_appointment):
    return [
        make_appointment(datetime(2026, 1, 5, hour), status='PENDING', appointment_id=f'appt-{hour}')
        for hour in (9, 10, 11)
    ]


def test_bulk_delete_counts_only_existing_appointments(coordinator, three_appointments, store) -> None:
    ids = ['appt-9', 'appt-10', 'appt-11', 'gone-1', 'gone-2']

    affected = coordinator.apply_bulk(BulkAction.DELETE, ids)

    assert affected == 3
    assert all(store.get_appointment(appointment_id) is None for appointment_id in ids)


def test_bulk_delete_skips_already_deleted(coordinator, three_appointments) -> None:
    coordinator.apply_bulk('delete', ['appt-9'])

    assert coordinator.apply_bulk('delete', ['appt-9', 'appt-10']) == 1


def test_bulk_ids_are_deduplicated(coordinator, three_appointments) -> None:
    assert normalize_ids([' appt-9', 'appt-9', '', 'appt-10']) == ['appt-9', 'appt-10']
    assert coordinator.apply_bulk('delete', ['appt-9', 'appt-9', 'appt-10']) == 2


def test_bulk_update_status(coordinator, three_appointments, store, audit_entries, published, listen) -> None:
    listen('appointments')

    affected = coordinator.apply_bulk(
        BulkAction.UPDATE_STATUS,
        ['appt-9', 'appt-10', 'missing'],
        BulkData(status='CONFIRMED'),
        user_id='admin-1',
    )

    assert affected == 2
    assert store.get_appointment('appt-9').status == 'CONFIRMED'
    assert store.get_appointment('appt-11').status == 'PENDING'
    assert len(audit_entries) == 1
    assert audit_entries[0]['action'] == 'BULK_UPDATE_STATUS'
    assert audit_entries[0]['details'] == {
        'appointmentIds': ['appt-9', 'appt-10', 'missing'],
        'action': 'update-status',
        'affectedCount': 2,
        'data': {'status': 'CONFIRMED'},
    }
    assert [(topic, event) for topic, event, _ in published] == [('appointments', 'appointments-bulk-updated')]


def test_bulk_update_status_rejects_whole_batch_on_invalid_transition(
    coordinator, make_appointment, three_appointments, store
) -> None:
    make_appointment(datetime(2026, 1, 5, 14), status='COMPLETED', appointment_id='appt-done')

    with pytest.raises(InvalidTransitionError) as exception_info:
        coordinator.apply_bulk('update-status', ['appt-9', 'appt-done'], BulkData(status='CONFIRMED'))

    assert exception_info.value.appointment_ids == ['appt-done']
    assert store.get_appointment('appt-9').status == 'PENDING'


def test_bulk_update_status_without_strict_machine(coordinator, make_appointment, monkeypatch) -> None:
    monkeypatch.setattr(config, 'STRICT_STATUS_TRANSITIONS', False)
    make_appointment(datetime(2026, 1, 5, 14), status='COMPLETED', appointment_id='appt-done')

    assert coordinator.apply_bulk('update-status', ['appt-done'], BulkData(status='PENDING')) == 1


def test_bulk_never_reactivates_cancelled_appointments(coordinator, make_appointment, store, monkeypatch) -> None:
    monkeypatch.setattr(config, 'STRICT_STATUS_TRANSITIONS', False)
    make_appointment(datetime(2026, 1, 5, 10), status='CONFIRMED', appointment_id='live')
    make_appointment(datetime(2026, 1, 5, 10, 15), status='CANCELLED', appointment_id='dead')
    make_appointment(datetime(2026, 1, 5, 15), status='PENDING', appointment_id='other')

    with pytest.raises(InvalidTransitionError) as exception_info:
        coordinator.apply_bulk('update-status', ['dead', 'other'], BulkData(status='CONFIRMED'))

    assert exception_info.value.appointment_ids == ['dead']
    assert store.get_appointment('dead').status == 'CANCELLED'
    assert store.get_appointment('other').status == 'PENDING'
    appointments, _ = store.list_appointments(AppointmentFilters(provider_id='provider-1'))
    assert find_overlapping_pairs(appointments) == []


def test_bulk_cancel_of_cancelled_appointment_is_allowed_without_strict_machine(
    coordinator, make_appointment, monkeypatch
) -> None:
    monkeypatch.setattr(config, 'STRICT_STATUS_TRANSITIONS', False)
    make_appointment(datetime(2026, 1, 5, 10), status='CANCELLED', appointment_id='dead')

    assert coordinator.apply_bulk('update-status', ['dead'], BulkData(status='CANCELLED')) == 1


def test_bulk_update_status_requires_status(coordinator, three_appointments) -> None:
    with pytest.raises(ValidationError):
        coordinator.apply_bulk('update-status', ['appt-9'])


@pytest.mark.parametrize('ids', [[], ['  ', '']])
def test_bulk_requires_ids(coordinator, ids) -> None:
    with pytest.raises(ValidationError):
        coordinator.apply_bulk('delete', ids)


def test_bulk_rejects_unknown_action(coordinator) -> None:
    with pytest.raises(ValidationError):
        coordinator.apply_bulk('archive', ['appt-9'])


def test_bulk_rejects_oversized_batches(coordinator, monkeypatch) -> None:
    monkeypatch.setattr(config, 'BULK_MAX_IDS', 2)

    with pytest.raises(ValidationError):
        coordinator.apply_bulk('delete', ['a', 'b', 'c'])
