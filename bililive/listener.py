"""Polls one room and reports changes of its state as events."""

from __future__ import annotations

import enum
import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from bililive.events import Event
from bililive.live import InitializingFinishedParam, WrappedLive

LISTEN_START = "ListenStart"
LISTEN_STOP = "ListenStop"
LIVE_START = "LiveStart"
LIVE_END = "LiveEnd"
ROOM_NAME_CHANGED = "RoomNameChanged"
ROOM_INITIALIZING_FINISHED = "RoomInitializingFinished"

JITTER_STDEV = 3.0


class ListenerExistError(Exception):
    def __init__(self, message: str = "this live has a listener") -> None:
        super().__init__(message)


class ListenerNotExistError(Exception):
    def __init__(self, message: str = "this live has not a listener") -> None:
        super().__init__(message)


class StatusEvent(enum.IntFlag):
    TO_TRUE = 1
    TO_FALSE = 2
    ROOM_NAME_CHANGED = 4


@dataclass(frozen=True)
class Status:
    room_name: str = ""
    room_status: bool = False

    def diff(self, that: "Status") -> StatusEvent:
        """What changed going from this status to ``that``."""
        result = StatusEvent(0)
        if not self.room_status and that.room_status:
            result |= StatusEvent.TO_TRUE
        if self.room_status and not that.room_status:
            result |= StatusEvent.TO_FALSE
        if self.room_status and that.room_status and self.room_name != that.room_name:
            result |= StatusEvent.ROOM_NAME_CHANGED
        return result


class _State(enum.Enum):
    BEGIN = enum.auto()
    PENDING = enum.auto()
    RUNNING = enum.auto()
    STOPPED = enum.auto()


class Listener:
    """Refreshes a room every ``config.interval`` seconds, with jitter."""

    def __init__(self, instance: Any, live: Any) -> None:
        self.live = live
        self.status = Status()
        self.config = instance.config
        self._dispatcher = instance.event_dispatcher
        self._logger: logging.Logger = instance.logger or logging.getLogger(__name__)
        self._state = _State.BEGIN
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _transition(self, old: _State, new: _State) -> bool:
        with self._state_lock:
            if self._state is not old:
                return False
            self._state = new
            return True

    def _dispatch(self, event_type: str, obj: Any) -> None:
        self._dispatcher.dispatch_event(Event(event_type, obj))

    def start(self) -> None:
        """Announce the listener, refresh once and start polling; later calls do nothing."""
        if not self._transition(_State.BEGIN, _State.PENDING):
            return
        try:
            self._dispatch(LISTEN_START, self.live)
            self.refresh()
            self._thread = threading.Thread(target=self._run, daemon=True, name="listener")
            self._thread.start()
        finally:
            self._transition(_State.PENDING, _State.RUNNING)

    def close(self) -> None:
        """Stop polling; only the first call on a running listener has an effect."""
        if not self._transition(_State.RUNNING, _State.STOPPED):
            return
        self._dispatch(LISTEN_STOP, self.live)
        self._stop.set()

    def refresh(self) -> None:
        """Fetch the room once and dispatch an event if its state changed."""
        try:
            info = self.live.get_info()
        except Exception as exc:
            self._logger.error(
                "failed to load room info",
                extra={"fields": {"error": str(exc), "url": self.live.raw_url}},
            )
            return

        latest = Status(room_name=info.room_name, room_status=info.status)
        fields = {"room": info.room_name, "host": info.host_name}
        try:
            change = self.status.diff(latest)
            event_type: Optional[str] = None
            message = ""
            if change == StatusEvent.TO_TRUE:
                self.live.last_start_time = datetime.now()
                event_type, message = LIVE_START, "Live Start"
            elif change == StatusEvent.TO_FALSE:
                event_type, message = LIVE_END, "Live end"
            elif change == StatusEvent.ROOM_NAME_CHANGED:
                if not self.config.video_split_strategies.on_room_name_changed:
                    return
                event_type, message = ROOM_NAME_CHANGED, "Room name was changed"
            if event_type is not None:
                self._dispatch(event_type, self.live)
                self._logger.info(message, extra={"fields": fields})
            if info.initializing:
                self._finish_initializing()
        finally:
            self.status = latest

    def _finish_initializing(self) -> None:
        inner = self.live.live if isinstance(self.live, WrappedLive) else self.live
        original = inner.original_live
        try:
            info = original.get_info()
        except Exception as exc:
            self._logger.debug("room is still initializing", extra={"fields": {"error": str(exc)}})
            return
        self._dispatch(
            ROOM_INITIALIZING_FINISHED,
            InitializingFinishedParam(initializing_live=self.live, live=original, info=info),
        )

    def _run(self) -> None:
        interval = float(self.config.interval)
        while not self._stop.wait(max(0.0, random.gauss(interval, JITTER_STDEV))):
            self.refresh()