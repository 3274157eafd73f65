"""Keeps one listener per room and swaps them when a room finishes initializing."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from bililive.events import Event, EventListener
from bililive.listener import (
    ROOM_INITIALIZING_FINISHED,
    Listener,
    ListenerExistError,
    ListenerNotExistError,
)
from bililive.live import InitializingFinishedParam

ListenerFactory = Callable[[Any, Any], Any]

_log = logging.getLogger(__name__)


class ListenerManager:
    """Starts, looks up and stops the listeners of an instance."""

    def __init__(self, instance: Any, listener_factory: Optional[ListenerFactory] = None) -> None:
        self.instance = instance
        self._new_listener: ListenerFactory = listener_factory or Listener
        self._lock = threading.Lock()
        self._listeners: dict[str, Any] = {}
        instance.listener_manager = self

    def _logger(self) -> logging.Logger:
        return self.instance.logger or _log

    def _on_initializing_finished(self, event: Event) -> None:
        param: InitializingFinishedParam = event.object
        live = param.live
        if param.info.custom_live_id:
            live.set_live_id_by_string(param.info.custom_live_id)
        instance = self.instance
        logger = self._logger()
        instance.lives[live.live_id] = live

        try:
            room = instance.config.get_live_room_by_url(live.raw_url)
        except Exception as exc:
            logger.error(str(exc), extra={"fields": {"room": live.raw_url}})
            raise
        room.live_id = live.live_id
        if room.is_listening:
            try:
                self.replace_listener(param.initializing_live, live)
            except Exception as exc:
                logger.error(str(exc), extra={"fields": {"url": live.raw_url}})

    def start(self) -> None:
        """Hold the instance open when there is work and watch for initialized rooms."""
        instance = self.instance
        if instance.config.rpc.enable or instance.lives:
            instance.wait_group.add(1)
        instance.event_dispatcher.add_event_listener(
            ROOM_INITIALIZING_FINISHED, EventListener(self._on_initializing_finished)
        )

    def close(self) -> None:
        """Close and forget every listener, then release the instance."""
        with self._lock:
            for listener in self._listeners.values():
                listener.close()
            self._listeners.clear()
        self.instance.wait_group.done()

    def add_listener(self, live: Any) -> None:
        with self._lock:
            live_id = live.live_id
            if live_id in self._listeners:
                raise ListenerExistError()
            listener = self._new_listener(self.instance, live)
            self._listeners[live_id] = listener
            listener.start()

    def remove_listener(self, live_id: str) -> None:
        with self._lock:
            listener = self._listeners.pop(live_id, None)
            if listener is None:
                raise ListenerNotExistError()
            listener.close()

    def replace_listener(self, old_live: Any, new_live: Any) -> None:
        """Close the listener of ``old_live`` and start one for ``new_live`` in its place."""
        with self._lock:
            old_id = old_live.live_id
            old_listener = self._listeners.get(old_id)
            if old_listener is None:
                raise ListenerNotExistError()
            old_listener.close()
            listener = self._new_listener(self.instance, new_live)
            new_id = new_live.live_id
            if old_id != new_id:
                del self._listeners[old_id]
            self._listeners[new_id] = listener
            listener.start()

    def get_listener(self, live_id: str) -> Any:
        with self._lock:
            listener = self._listeners.get(live_id)
        if listener is None:
            raise ListenerNotExistError()
        return listener

    def has_listener(self, live_id: str) -> bool:
        with self._lock:
            return live_id in self._listeners