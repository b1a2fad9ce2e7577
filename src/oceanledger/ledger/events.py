"""Ledger notifications.

Notifications exist for observability and UI refresh only. A failing
handler is logged and never affects ledger state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Notification kinds emitted by the ledger."""

    MEASUREMENT_SUBMITTED = "measurement.submitted"
    DECRYPTION_REQUESTED = "decryption.requested"
    MEASUREMENT_DECRYPTED = "measurement.decrypted"
    REGION_DECRYPTED = "region.decrypted"
    DECRYPTION_CANCELLED = "decryption.cancelled"


@dataclass(frozen=True)
class LedgerEvent:
    """A single notification with its payload."""

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "payload": self.payload,
            "emitted_at": self.emitted_at.isoformat(),
        }


EventHandler = Callable[[LedgerEvent], None]


class EventBus:
    """Synchronous fan-out of ledger events to subscribed handlers.

    Handlers subscribed with ``event_type=None`` receive every event.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType | None, list[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler, event_type: EventType | None = None) -> None:
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, handler: EventHandler, event_type: EventType | None = None) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event_type: EventType, **payload: Any) -> LedgerEvent:
        event = LedgerEvent(type=event_type, payload=payload)
        with self._lock:
            handlers = list(self._handlers.get(event_type, [])) + list(self._handlers.get(None, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler for {event_type.value} failed: {e}")

        return event


class EventRecorder:
    """Handler that keeps every event it receives (handy for tests and audits)."""

    def __init__(self) -> None:
        self.events: list[LedgerEvent] = []

    def __call__(self, event: LedgerEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[LedgerEvent]:
        return [e for e in self.events if e.type == event_type]
