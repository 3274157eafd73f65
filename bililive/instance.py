"""The shared state of a running recorder."""

from __future__ import annotations

import logging
import threading
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from bililive.configs import Config
from bililive.events import Dispatcher


@runtime_checkable
class Module(Protocol):
    """A part of the application that can be started and closed."""

    def start(self) -> None:
        ...

    def close(self) -> None:
        ...


class WaitGroup:
    """Counts outstanding work; ``wait`` blocks until the count is zero."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def add(self, delta: int = 1) -> None:
        with self._cond:
            count = self._count + delta
            if count < 0:
                raise ValueError("negative WaitGroup counter")
            self._count = count
            if count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Return True once the count is zero, False if ``timeout`` ran out first."""
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout)


@dataclass(eq=False)
class Instance:
    """Everything the modules of one process share."""

    config: Optional[Config] = None
    logger: Optional[logging.Logger] = None
    lives: dict[str, Any] = field(default_factory=dict)
    cache: Optional[MutableMapping] = None
    server: Optional[Module] = None
    event_dispatcher: Optional[Dispatcher] = None
    listener_manager: Optional[Any] = None
    recorder_manager: Optional[Any] = None
    wait_group: WaitGroup = field(default_factory=WaitGroup)