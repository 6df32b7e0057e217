from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from core.logging_utils import log_structured
from core.observability import METRIC_NOTIFICATION_FAILED, increment_metric


@dataclass(frozen=True)
class ConsentChange:
    event_type: str
    consent_id: uuid.UUID
    status: str
    occurred_at: datetime


Subscriber = Callable[[ConsentChange], None]


class ConsentNotifier:
    """In-process fan-out of committed consent changes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(callback)

        return _unsubscribe

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, change: ConsentChange) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(change)
            except Exception as exc:
                # The change is already committed; a failing listener must not hide it from the others.
                increment_metric(METRIC_NOTIFICATION_FAILED, reason=exc.__class__.__name__)
                log_structured(
                    "notification.subscriber_failed",
                    level=logging.WARNING,
                    event_type=change.event_type,
                    consent_id=change.consent_id,
                    subscriber=getattr(callback, "__name__", repr(callback)),
                    error_class=exc.__class__.__name__,
                )


NOTIFIER = ConsentNotifier()
