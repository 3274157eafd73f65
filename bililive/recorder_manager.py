"""Keeps one recorder per live room and reacts to listener events."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Optional

from bililive.events import Event, EventListener
from bililive.listener import LISTEN_STOP, LIVE_END, LIVE_START, ROOM_NAME_CHANGED
from bililive.recorder import Recorder, RecorderExistError, RecorderNotExistError

RecorderFactory = Callable[[Any, Any], Any]

CRON_CHECK_INTERVAL = 15.0

_log = logging.getLogger(__name__)


class RecorderManager:
    """Starts, restarts, looks up and stops the recorders of an instance."""

    def __init__(self, instance: Any, recorder_factory: Optional[RecorderFactory] = None) -> None:
        self.instance = instance
        self.config = instance.config
        self._new_recorder: RecorderFactory = recorder_factory or Recorder
        self._lock = threading.Lock()
        self._recorders: dict[str, Any] = {}
        instance.recorder_manager = self

    def _logger(self) -> logging.Logger:
        return self.instance.logger or _log

    def _on_live_start(self, event: Event) -> None:
        try:
            self.add_recorder(event.object)
        except Exception as exc:
            self._logger().error("failed to add recorder, err: %s", exc)

    def _on_room_name_changed(self, event: Event) -> None:
        live = event.object
        if not self.has_recorder(live.live_id):
            return
        try:
            self.restart_recorder(live)
        except Exception as exc:
            self._logger().error("failed to cronRestart recorder, err: %s", exc)

    def _on_remove(self, event: Event) -> None:
        live = event.object
        if not self.has_recorder(live.live_id):
            return
        try:
            self.remove_recorder(live.live_id)
        except Exception as exc:
            self._logger().error("failed to remove recorder, err: %s", exc)

    def start(self) -> None:
        """Hold the instance open when there is work and subscribe to listener events."""
        instance = self.instance
        if instance.config.rpc.enable or instance.lives:
            instance.wait_group.add(1)
        dispatcher = instance.event_dispatcher
        dispatcher.add_event_listener(LIVE_START, EventListener(self._on_live_start))
        dispatcher.add_event_listener(ROOM_NAME_CHANGED, EventListener(self._on_room_name_changed))
        remove = EventListener(self._on_remove)
        dispatcher.add_event_listener(LIVE_END, remove)
        dispatcher.add_event_listener(LISTEN_STOP, remove)

    def close(self) -> None:
        """Close and forget every recorder, then release the instance."""
        with self._lock:
            for recorder in self._recorders.values():
                recorder.close()
            self._recorders.clear()
        self.instance.wait_group.done()

    def add_recorder(self, live: Any) -> None:
        with self._lock:
            live_id = live.live_id
            if live_id in self._recorders:
                raise RecorderExistError()
            recorder = self._new_recorder(self.instance, live)
            self._recorders[live_id] = recorder
            if self.config.video_split_strategies.max_duration:
                threading.Thread(target=self._cron_restart, args=(live,), daemon=True).start()
            recorder.start()

    def _cron_restart(self, live: Any) -> None:
        try:
            recorder = self.get_recorder(live.live_id)
        except RecorderNotExistError:
            return
        if datetime.now() - recorder.start_time < self.config.video_split_strategies.max_duration:
            timer = threading.Timer(CRON_CHECK_INTERVAL, self._cron_restart, args=(live,))
            timer.daemon = True
            timer.start()
            return
        try:
            self.restart_recorder(live)
        except Exception:
            return

    def restart_recorder(self, live: Any) -> None:
        self.remove_recorder(live.live_id)
        self.add_recorder(live)

    def remove_recorder(self, live_id: str) -> None:
        with self._lock:
            recorder = self._recorders.pop(live_id, None)
            if recorder is None:
                raise RecorderNotExistError()
            recorder.close()

    def get_recorder(self, live_id: str) -> Any:
        with self._lock:
            recorder = self._recorders.get(live_id)
        if recorder is None:
            raise RecorderNotExistError()
        return recorder

    def has_recorder(self, live_id: str) -> bool:
        with self._lock:
            return live_id in self._recorders