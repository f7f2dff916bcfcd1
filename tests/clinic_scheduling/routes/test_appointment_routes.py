from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from clinic_scheduling.core.errors import ConflictError, NotFoundError
from clinic_scheduling.dependencies import get_store
from clinic_scheduling.main import app
from clinic_scheduling.models.appointment import AppointmentType
from clinic_scheduling.routes.appointment_routes import (
    bulk_update_appointments,
    check_availability,
    check_conflicts,
    create_appointment,
    delete_appointment,
    get_appointment,
    list_appointments,
    update_appointment_status,
)
from clinic_scheduling.schemas import BookingRequest, BulkRequest, StatusUpdateRequest
from clinic_scheduling.services.availability import AvailabilityService
from clinic_scheduling.services.booking import BookingCoordinator
from clinic_scheduling.services.bulk import BulkOperationCoordinator


@pytest.fixture
def booking(store, audit, notifications, clinic):
    return BookingCoordinator(store, audit=audit, notifications=notifications)


@pytest.fixture
def client(store, clinic):
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def booking_payload(**overrides) -> dict:
    payload = {
        'providerId': 'provider-1',
        'locationId': 'location-1',
        'patientId': 'patient-1',
        'start': '2026-01-05T10:00:00',
        'durationMinutes': 30,
        'type': 'IN_PERSON',
    }
    payload.update(overrides)
    return payload


def test_create_and_fetch_appointment(booking) -> None:
    request = BookingRequest(**booking_payload(notes='  first visit  '))

    created = create_appointment(data=request, coordinator=booking, user_id=None)
    fetched = get_appointment(created.id, coordinator=booking)

    assert fetched.id == created.id
    assert fetched.end == datetime(2026, 1, 5, 10, 30)
    assert fetched.notes == 'first visit'
    assert fetched.status == 'PENDING'


def test_create_appointment_conflict(booking, make_appointment) -> None:
    make_appointment(datetime(2026, 1, 5, 10))

    with pytest.raises(ConflictError):
        create_appointment(
            data=BookingRequest(**booking_payload(start='2026-01-05T10:15:00')),
            coordinator=booking,
            user_id=None,
        )


def test_list_appointments_paginates(booking, make_appointment) -> None:
    for hour in (9, 10, 11):
        make_appointment(datetime(2026, 1, 5, hour))

    response = list_appointments(
        day=date(2026, 1, 5),
        start_date=None,
        end_date=None,
        provider_id='provider-1',
        location_id=None,
        patient_id=None,
        appointment_status=None,
        appointment_type=AppointmentType.IN_PERSON,
        page=1,
        limit=2,
        sort_by='date',
        sort_order='asc',
        coordinator=booking,
    )

    assert [item.start.hour for item in response.data] == [9, 10]
    assert response.pagination.total == 3
    assert response.pagination.total_pages == 2


def test_status_and_delete_routes(booking) -> None:
    created = create_appointment(data=BookingRequest(**booking_payload()), coordinator=booking, user_id='desk')

    confirmed = update_appointment_status(
        created.id,
        data=StatusUpdateRequest(status='CONFIRMED'),
        coordinator=booking,
        user_id='desk',
    )
    delete_appointment(created.id, coordinator=booking, user_id='desk')

    assert confirmed.status == 'CONFIRMED'
    with pytest.raises(NotFoundError):
        get_appointment(created.id, coordinator=booking)


def test_availability_and_conflict_routes(store, audit, notifications, clinic, make_appointment) -> None:
    service = AvailabilityService(store, audit=audit, notifications=notifications)
    make_appointment(datetime(2026, 1, 5, 9), duration_minutes=60, appointment_id='a')
    make_appointment(datetime(2026, 1, 5, 9, 30), appointment_id='b')

    slots = check_availability(
        provider_id='provider-1',
        day=date(2026, 1, 5),
        duration_minutes=60,
        location_id=None,
        granularity_minutes=None,
        exclude_past=False,
        service=service,
    )
    past_only = check_availability(
        provider_id='provider-1',
        day=date(2026, 1, 5),
        duration_minutes=60,
        location_id=None,
        granularity_minutes=None,
        exclude_past=True,
        service=service,
    )
    report = check_conflicts(provider_id='provider-1', start_date=None, end_date=None, service=service)

    assert slots.available_slots[0].start == datetime(2026, 1, 5, 10)
    assert past_only.total_slots == 0
    assert report.conflict_count == 1


def test_bulk_route(store, audit, notifications, clinic, make_appointment) -> None:
    make_appointment(datetime(2026, 1, 5, 9), appointment_id='a')
    coordinator = BulkOperationCoordinator(store, audit=audit, notifications=notifications)

    response = bulk_update_appointments(
        data=BulkRequest(action='delete', appointmentIds=['a', 'b']),
        coordinator=coordinator,
        user_id=None,
    )

    assert response.affected_count == 1
    assert response.message == 'Bulk delete completed successfully'


def test_http_booking_conflict_maps_to_409(client) -> None:
    created = client.post('/appointments', json=booking_payload(), headers={'X-User-Id': 'desk-1'})
    conflicting = client.post('/appointments', json=booking_payload(start='2026-01-05T10:15:00'))

    assert created.status_code == 201
    assert created.json()['providerId'] == 'provider-1'
    assert created.json()['type'] == 'IN_PERSON'
    assert conflicting.status_code == 409
    assert conflicting.json()['detail'] == 'Time slot conflict detected.'
    assert [item['id'] for item in conflicting.json()['conflicts']] == [created.json()['id']]


def test_http_invalid_payload_maps_to_400(client) -> None:
    response = client.post('/appointments', json=booking_payload(durationMinutes=0, type='HOUSE_CALL'))

    assert response.status_code == 400
    fields = {error['field'] for error in response.json()['errors']}
    assert fields == {'durationMinutes', 'type'}


def test_http_not_found_and_invalid_transition(client) -> None:
    missing = client.get('/appointments/does-not-exist')
    created = client.post('/appointments', json=booking_payload()).json()
    client.patch(f"/appointments/{created['id']}/status", json={'status': 'CANCELLED'})
    reopened = client.patch(f"/appointments/{created['id']}/status", json={'status': 'CONFIRMED'})

    assert missing.status_code == 404
    assert missing.json() == {'detail': 'Appointment not found.'}
    assert reopened.status_code == 409
    assert reopened.json()['currentStatus'] == 'CANCELLED'
    assert reopened.json()['targetStatus'] == 'CONFIRMED'


def test_http_bulk_and_calendar(client) -> None:
    first = client.post('/appointments', json=booking_payload()).json()
    client.post('/appointments', json=booking_payload(start='2026-01-06T09:00:00'))

    calendar = client.get('/appointments/calendar', params={
        'startDate': '2026-01-05T00:00:00',
        'endDate': '2026-01-06T23:59:00',
    })
    bulk = client.post('/appointments/bulk', json={
        'action': 'update-status',
        'appointmentIds': [first['id'], 'missing'],
        'data': {'status': 'CONFIRMED'},
    })
    deleted = client.delete(f"/appointments/{first['id']}")

    assert sorted(calendar.json()) == ['2026-01-05', '2026-01-06']
    assert bulk.json() == {
        'action': 'update-status',
        'affectedCount': 1,
        'message': 'Bulk update-status completed successfully',
    }
    assert deleted.status_code == 204
