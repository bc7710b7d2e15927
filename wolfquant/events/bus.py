"""In-process event bus — typed, synchronous, fire-and-forget.

Publishers never see subscriber failures.  Callbacks run inline on the
publishing thread, so they must not block for long.
"""

import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger("wolfquant.events")


class EventType(str, enum.Enum):
    TICK = "tick"
    CANDLE = "candle"
    SIGNAL = "signal"
    ORDER = "order"
    TRADE = "trade"
    ERROR = "error"
    IMPORT_PROGRESS = "import_progress"
    IMPORT_COMPLETED = "import_completed"


@dataclass(frozen=True)
class Event:
    """A published notification and its payload."""

    event_type: EventType
    data: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventCallback = Callable[[Event], None]


class EventBus:
    """Best-effort pub/sub keyed by ``EventType``.

    No persistence and no ordering guarantee across event types.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[EventType, list[EventCallback]] = {}

    def subscribe(self, event_type: EventType, callback: EventCallback) -> None:
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: EventType, callback: EventCallback) -> None:
        with self._lock:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def publish(self, event_type: EventType, data: Any) -> Event:
        """Deliver *data* to every subscriber of *event_type*.

        The subscriber list is copied under the lock and invoked outside it,
        so a callback may subscribe or publish without deadlocking.
        """
        event = Event(event_type=event_type, data=data)
        with self._lock:
            callbacks = list(self._subscribers.get(event_type, []))
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s", callback, event_type.value)
        return event
