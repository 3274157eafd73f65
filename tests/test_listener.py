import logging

import pytest

from bililive.configs import new_config
from bililive.events import Event
from bililive.instance import Instance
from bililive.listener import (
    LISTEN_START,
    LISTEN_STOP,
    LIVE_END,
    LIVE_START,
    ROOM_INITIALIZING_FINISHED,
    ROOM_NAME_CHANGED,
    Listener,
    ListenerExistError,
    ListenerNotExistError,
    Status,
    StatusEvent,
)
from bililive.live import Info, InitializingLive, WrappedLive


class _Dispatcher:
    def __init__(self):
        self.events = []

    def dispatch_event(self, event):
        self.events.append(event)


class _Live:
    def __init__(self, results=()):
        self.results = list(results)
        self.live_id = "test"
        self.raw_url = "https://live.example.com/1"
        self.platform_cn_name = "test"
        self.last_start_time = None

    def get_info(self):
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _make(live, interval=30):
    config = new_config()
    config.interval = interval
    dispatcher = _Dispatcher()
    inst = Instance(config=config, event_dispatcher=dispatcher, logger=logging.getLogger("test.listener"))
    return Listener(inst, live), dispatcher, config


@pytest.mark.parametrize(
    "before, after, expected",
    [
        (Status("a", False), Status("a", False), StatusEvent(0)),
        (Status("a", False), Status("a", True), StatusEvent.TO_TRUE),
        (Status("a", True), Status("a", False), StatusEvent.TO_FALSE),
        (Status("a", True), Status("b", True), StatusEvent.ROOM_NAME_CHANGED),
        (Status("a", False), Status("b", False), StatusEvent(0)),
    ],
)
def test_status_diff(before, after, expected):
    assert before.diff(after) == expected


def test_error_messages():
    assert str(ListenerExistError()) == "this live has a listener"
    assert str(ListenerNotExistError()) == "this live has not a listener"


def test_refresh():
    live = _Live()
    listener, dispatcher, config = _make(live)
    config.video_split_strategies.on_room_name_changed = False

    live.results.append(Info(status=False))
    listener.refresh()
    assert listener.status.room_status is False
    assert dispatcher.events == []

    live.results.append(Info(status=True))
    listener.refresh()
    assert listener.status.room_status is True
    assert dispatcher.events == [Event(LIVE_START, live)]
    assert live.last_start_time is not None

    live.results.append(Info(status=True, room_name="a"))
    listener.refresh()
    assert dispatcher.events == [Event(LIVE_START, live)]
    assert listener.status.room_name == "a"

    config.video_split_strategies.on_room_name_changed = True
    live.results.append(Info(status=True, room_name="b"))
    listener.refresh()
    assert dispatcher.events[-1] == Event(ROOM_NAME_CHANGED, live)

    live.results.append(Info(status=False))
    listener.refresh()
    assert dispatcher.events[-1] == Event(LIVE_END, live)
    assert listener.status.room_status is False
    assert len(dispatcher.events) == 3


def test_refresh_with_error():
    live = _Live([RuntimeError("this is error")])
    listener, dispatcher, _ = _make(live)
    listener.refresh()
    assert listener.status.room_status is False
    assert dispatcher.events == []


def test_start_and_close():
    live = _Live([Info(status=False)])
    listener, dispatcher, _ = _make(live, interval=5)
    listener.start()
    listener.start()
    listener.close()
    listener.close()
    assert dispatcher.events == [Event(LISTEN_START, live), Event(LISTEN_STOP, live)]
    assert live.results == []


def test_initializing_finished():
    original = _Live([Info(status=True, room_name="ready")])
    wrapped = WrappedLive(InitializingLive(original, "https://live.example.com/1"), {})
    listener, dispatcher, _ = _make(wrapped)
    listener.refresh()
    assert len(dispatcher.events) == 1
    event = dispatcher.events[0]
    assert event.type == ROOM_INITIALIZING_FINISHED
    assert event.object.initializing_live is wrapped
    assert event.object.live is original
    assert event.object.info.room_name == "ready"