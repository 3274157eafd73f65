"""Stream parsers and the registry that creates them by name."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

ParserBuilder = Callable[[dict[str, str]], "Parser"]

_builders: dict[str, ParserBuilder] = {}


class UnknownParserError(Exception):
    def __init__(self, message: str = "unknown parser") -> None:
        super().__init__(message)


class Parser(ABC):
    """Saves a live stream to a file."""

    @abstractmethod
    def parse_live_stream(self, url: Any, live: Any, file: str) -> None:
        """Record the stream at ``url`` of ``live`` into ``file`` until it ends or is stopped."""

    @abstractmethod
    def stop(self) -> None:
        """Ask a running parse to finish."""


class StatusParser(Parser):
    """A parser that can report its progress."""

    @abstractmethod
    def status(self) -> dict[str, str] | None:
        """Return the latest progress values."""


def register(name: str, builder: ParserBuilder) -> None:
    _builders[name] = builder


def new_parser(name: str, cfg: dict[str, str]) -> Parser:
    """Build the parser registered as ``name`` with ``cfg``."""
    builder = _builders.get(name)
    if builder is None:
        raise UnknownParserError()
    return builder(cfg)