import threading
import time

import pytest

from bililive.events import new_dispatcher
from bililive.instance import Instance, Module, WaitGroup


def test_wait_group_counts_down():
    wg = WaitGroup()
    wg.add(2)
    assert wg.wait(timeout=0.01) is False
    wg.done()
    assert wg.count == 1
    wg.done()
    assert wg.wait() is True


def test_wait_group_negative():
    with pytest.raises(ValueError):
        WaitGroup().done()


def test_wait_group_wakes_waiter():
    wg = WaitGroup()
    wg.add(1)

    def finish():
        time.sleep(0.05)
        wg.done()

    threading.Thread(target=finish).start()
    assert wg.wait(timeout=5) is True
    assert wg.count == 0


def test_instances_do_not_share_state():
    first, second = Instance(), Instance()
    first.lives["a"] = object()
    assert second.lives == {}
    assert first.wait_group is not second.wait_group


def test_dispatcher_is_module_on_instance():
    inst = Instance()
    dispatcher = new_dispatcher(inst)
    assert inst.event_dispatcher is dispatcher
    assert isinstance(inst.event_dispatcher, Module)
    assert not isinstance(object(), Module)