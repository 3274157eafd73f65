import types

import pytest

from bililive.configs import Config, LiveRoom
from bililive.events import Dispatcher, Event
from bililive.instance import Instance
from bililive.listener import (
    ROOM_INITIALIZING_FINISHED,
    ListenerExistError,
    ListenerNotExistError,
)
from bililive.listener_manager import ListenerManager
from bililive.live import BaseLive, Info, InitializingFinishedParam, gen_live_id_by_string


class FakeListener:
    def __init__(self, instance, live):
        self.live = live
        self.started = 0
        self.closed = 0

    def start(self):
        self.started += 1

    def close(self):
        self.closed += 1


class StaticLive(BaseLive):
    def get_info(self):
        return Info(live=self)

    def get_stream_urls(self):
        return []


def _live(live_id):
    return types.SimpleNamespace(live_id=live_id, raw_url="https://live.example.com/" + live_id)


def test_add_and_remove_listener():
    instance = Instance()
    m = ListenerManager(instance, FakeListener)
    assert instance.listener_manager is m
    live = _live("test")
    m.add_listener(live)
    with pytest.raises(ListenerExistError):
        m.add_listener(live)
    listener = m.get_listener("test")
    assert listener.live is live
    assert listener.started == 1
    assert m.has_listener("test")
    m.remove_listener("test")
    assert listener.closed == 1
    with pytest.raises(ListenerNotExistError):
        m.remove_listener("test")
    with pytest.raises(ListenerNotExistError):
        m.get_listener("test")
    assert not m.has_listener("test")


def test_start_and_close():
    dispatcher = Dispatcher()
    instance = Instance(config=Config(), event_dispatcher=dispatcher)
    m = ListenerManager(instance, FakeListener)
    m.start()
    assert instance.wait_group.count == 1
    assert ROOM_INITIALIZING_FINISHED in dispatcher
    for i in range(3):
        m.add_listener(_live(f"test_{i}"))
    listeners = [m.get_listener(f"test_{i}") for i in range(3)]
    m.close()
    assert [listener.closed for listener in listeners] == [1, 1, 1]
    assert not any(m.has_listener(f"test_{i}") for i in range(3))
    assert instance.wait_group.count == 0


def test_start_without_work_does_not_hold_instance():
    config = Config()
    config.rpc.enable = False
    instance = Instance(config=config, event_dispatcher=Dispatcher())
    ListenerManager(instance, FakeListener).start()
    assert instance.wait_group.count == 0


def test_replace_listener_with_new_id():
    m = ListenerManager(Instance(), FakeListener)
    old, new = _live("a"), _live("b")
    m.add_listener(old)
    old_listener = m.get_listener("a")
    m.replace_listener(old, new)
    assert old_listener.closed == 1
    assert not m.has_listener("a")
    assert m.get_listener("b").live is new
    assert m.get_listener("b").started == 1


def test_replace_listener_with_same_id():
    m = ListenerManager(Instance(), FakeListener)
    old, new = _live("a"), _live("a")
    m.add_listener(old)
    m.replace_listener(old, new)
    assert m.get_listener("a").live is new


def test_replace_missing_listener():
    m = ListenerManager(Instance(), FakeListener)
    with pytest.raises(ListenerNotExistError):
        m.replace_listener(_live("a"), _live("b"))


def test_initializing_finished_replaces_listener():
    url = "https://live.example.com/1"
    config = Config(live_rooms=[LiveRoom(url=url, is_listening=True)])
    dispatcher = Dispatcher()
    instance = Instance(config=config, event_dispatcher=dispatcher)
    m = ListenerManager(instance, FakeListener)
    m.start()
    initializing = _live("init")
    m.add_listener(initializing)
    real = StaticLive(url)
    param = InitializingFinishedParam(
        initializing_live=initializing, live=real, info=Info(live=real, custom_live_id="custom")
    )
    thread = dispatcher.dispatch_event(Event(ROOM_INITIALIZING_FINISHED, param))
    thread.join(timeout=5)
    new_id = gen_live_id_by_string("custom")
    assert real.live_id == new_id
    assert instance.lives[new_id] is real
    assert config.live_rooms[0].live_id == new_id
    assert m.get_listener(new_id).live is real
    assert not m.has_listener("init")