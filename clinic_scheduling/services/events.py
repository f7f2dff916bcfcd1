"""Audit and notification side effects.

Both are fire-and-forget: a failing audit sink or subscriber is logged and
never aborts the booking that triggered it.
"""

import logging
from collections import defaultdict
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger('clinic_scheduling.audit')

AuditSink = Callable[[dict[str, Any]], None]
Subscriber = Callable[[str, dict[str, Any]], None]

APPOINTMENTS_TOPIC = 'appointments'


def provider_topic(provider_id: str) -> str:
    return f'provider-{provider_id}'


class AuditTrail:
    def __init__(self) -> None:
        self._sinks: list[AuditSink] = []

    def add_sink(self, sink: AuditSink) -> None:
        self._sinks.append(sink)

    def record(
        self,
        action: str,
        resource: str,
        resource_id: str | None = None,
        user_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        entry = {
            'action': action,
            'resource': resource,
            'resourceId': resource_id,
            'userId': user_id,
            'details': details or {},
        }
        try:
            audit_logger.info('%s %s %s', action, resource, resource_id or '-', extra={'audit': entry})
        except Exception:
            logger.exception('Failed to write audit log entry for %s %s', action, resource)

        for sink in list(self._sinks):
            try:
                sink(entry)
            except Exception:
                logger.exception('Audit sink failed for %s %s %s', action, resource, resource_id)


class NotificationHub:
    """In-process publish/subscribe keyed by topic.

    Events are state snapshots delivered at most once; there is no ordering
    guarantee between separate publishes.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._lock = Lock()

    def subscribe(self, topic: str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers.get(topic, []):
                    self._subscribers[topic].remove(callback)

        return unsubscribe

    def publish(self, topic: str, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(topic, []))

        for callback in subscribers:
            try:
                callback(event, payload)
            except Exception:
                logger.exception('Subscriber failed handling %s on %s', event, topic)


audit_trail = AuditTrail()
notification_hub = NotificationHub()
