"""Events and a dispatcher that delivers them to listeners."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable

EventType = str


@dataclass
class Event:
    type: EventType
    object: Any = None


class EventListener:
    """Wraps a handler; listeners are matched by identity."""

    __slots__ = ("handler",)

    def __init__(self, handler: Callable[[Event], None]) -> None:
        self.handler = handler

    def __call__(self, event: Event) -> None:
        self.handler(event)


class Dispatcher:
    """Keeps listeners per event type and calls them in the background."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._listeners: dict[EventType, list[EventListener]] = {}

    def start(self) -> None:
        return None

    def close(self) -> None:
        return None

    def add_event_listener(self, event_type: EventType, listener: EventListener) -> None:
        if listener is None:
            raise ValueError("listener must not be None")
        with self._lock:
            self._listeners.setdefault(event_type, []).append(listener)

    def remove_event_listener(self, event_type: EventType, listener: EventListener) -> None:
        """Remove the first registration of ``listener`` for ``event_type``."""
        with self._lock:
            listeners = self._listeners.get(event_type)
            if listeners is None:
                return
            for index, registered in enumerate(listeners):
                if registered is listener:
                    del listeners[index]
                    break
            if not listeners:
                del self._listeners[event_type]

    def remove_all_event_listener(self, event_type: EventType) -> None:
        """Drop every registered listener."""
        with self._lock:
            self._listeners = {}

    def dispatch_event(self, event: Event | None) -> threading.Thread | None:
        """Call the event's listeners in order on a new thread, which is returned."""
        if event is None:
            return None
        with self._lock:
            handlers = list(self._listeners.get(event.type, ()))
        if not handlers:
            return None

        def deliver() -> None:
            for handler in handlers:
                handler(event)

        thread = threading.Thread(target=deliver, daemon=True)
        thread.start()
        return thread

    def __contains__(self, event_type: object) -> bool:
        with self._lock:
            return event_type in self._listeners

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)


def new_dispatcher(instance: Any = None) -> Dispatcher:
    """Create a dispatcher and attach it to ``instance`` when one is given."""
    dispatcher = Dispatcher()
    if instance is not None:
        instance.event_dispatcher = dispatcher
    return dispatcher