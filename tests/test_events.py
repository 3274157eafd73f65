import types

import pytest

from bililive.events import Event, EventListener, new_dispatcher


def test_add_and_remove_event_listener():
    d = new_dispatcher()
    calls = []
    listener = EventListener(lambda event: calls.append(event))
    d.add_event_listener("test", listener)
    d.add_event_listener("test2", EventListener(lambda event: None))
    assert "test" in d
    thread = d.dispatch_event(Event("test", 1))
    thread.join(timeout=5)
    assert calls == [Event("test", 1)]
    d.remove_event_listener("test", listener)
    assert "test" not in d
    d.remove_all_event_listener("test2")
    assert len(d) == 0


def test_dispatch_event_order():
    order = []
    d = new_dispatcher()
    for value in range(4):
        d.add_event_listener("test", EventListener(lambda event, v=value: order.append(v)))
    thread = d.dispatch_event(Event("test", None))
    thread.join(timeout=5)
    assert order == [0, 1, 2, 3]


def test_dispatch_without_listeners():
    d = new_dispatcher()
    assert d.dispatch_event(Event("nothing")) is None
    assert d.dispatch_event(None) is None


def test_remove_only_first_registration():
    d = new_dispatcher()
    listener = EventListener(lambda event: None)
    d.add_event_listener("test", listener)
    d.add_event_listener("test", listener)
    d.remove_event_listener("test", listener)
    assert "test" in d
    d.remove_event_listener("test", listener)
    assert "test" not in d


def test_new_dispatcher_attaches_to_instance():
    holder = types.SimpleNamespace(event_dispatcher=None)
    d = new_dispatcher(holder)
    assert holder.event_dispatcher is d


def test_none_listener_rejected():
    d = new_dispatcher()
    with pytest.raises(ValueError):
        d.add_event_listener("test", None)