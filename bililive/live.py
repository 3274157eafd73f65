"""Live rooms: the common model, options, builder registry and wrappers."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Protocol, Union
from urllib.parse import SplitResult, urlsplit

from bililive.utils import get_md5_string

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_12_6) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/59.0.3071.115 Safari/537.36"
)
COMMON_HEADERS = {"User-Agent": USER_AGENT}

LAST_START_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

UrlLike = Union[str, SplitResult]


class LiveError(Exception):
    """Base class of errors raised while talking to a live platform."""


class RoomNotExistError(LiveError):
    def __init__(self, message: str = "room not exists") -> None:
        super().__init__(message)


class RoomUrlIncorrectError(LiveError):
    def __init__(self, message: str = "room url incorrect") -> None:
        super().__init__(message)


class InternalError(LiveError):
    def __init__(self, message: str = "internal error") -> None:
        super().__init__(message)


def _as_url(url: UrlLike) -> SplitResult:
    return urlsplit(url) if isinstance(url, str) else url


def _host(url: SplitResult) -> str:
    """Host and port of a URL, without user information."""
    return url.netloc.rpartition("@")[2]


@dataclass
class Info:
    """State of a room at one moment."""

    live: Any = None
    host_name: str = ""
    room_name: str = ""
    status: bool = False
    listening: bool = False
    recording: bool = False
    initializing: bool = False
    custom_live_id: str = ""
    audio_only: bool = False

    def to_json_dict(self) -> dict[str, Any]:
        """Return the fields the API exposes for this room."""
        live = self.live
        data: dict[str, Any] = {
            "id": live.live_id,
            "live_url": live.raw_url,
            "platform_cn_name": live.platform_cn_name,
            "host_name": self.host_name,
            "room_name": self.room_name,
            "status": self.status,
            "listening": self.listening,
            "recording": self.recording,
            "initializing": self.initializing,
        }
        started = live.last_start_time
        if started is not None:
            data["last_start_time"] = started.strftime(LAST_START_TIME_FORMAT)
            data["last_start_time_unix"] = int(started.timestamp())
        data["audio_only"] = self.audio_only
        return data


@dataclass
class Options:
    """Per-room options; cookies are kept per host name."""

    cookies: dict[str, dict[str, str]] = field(default_factory=dict)
    quality: int = 0


Option = Callable[[Options], None]


def new_options(*args: Option) -> Options:
    options = Options()
    for option in args:
        option(options)
    return options


def with_kv_string_cookies(url: UrlLike, cookies: str) -> Option:
    """Option that stores ``name=value; name=value`` cookies for the URL's host."""
    host = (_as_url(url).hostname or "").lower()

    def apply(options: Options) -> None:
        jar = options.cookies.setdefault(host, {})
        for pair in cookies.split(";"):
            name, sep, value = pair.partition("=")
            if not sep:
                continue
            jar[name.strip()] = value.strip()

    return apply


def with_quality(quality: int) -> Option:
    def apply(options: Options) -> None:
        options.quality = quality

    return apply


@dataclass
class InitializingFinishedParam:
    initializing_live: Any
    live: Any
    info: Info


class Builder(Protocol):
    def build(self, url: SplitResult, *options: Option) -> Any:
        ...


_builders: dict[str, Builder] = {}


def register(domain: str, builder: Builder) -> None:
    _builders[domain] = builder


def get_builder(domain: str) -> Optional[Builder]:
    return _builders.get(domain)


def gen_live_id_by_string(value: str) -> str:
    return get_md5_string(value)


def gen_live_id(url: UrlLike) -> str:
    parts = _as_url(url)
    return gen_live_id_by_string(_host(parts) + parts.path)


class BaseLive(ABC):
    """Common state of every room; platforms supply the lookups."""

    platform_cn_name = ""

    def __init__(self, url: UrlLike, *options: Option) -> None:
        self.url = _as_url(url)
        self.live_id = gen_live_id(self.url)
        self.options = new_options(*options)
        self.last_start_time: datetime | None = None

    @property
    def raw_url(self) -> str:
        return self.url.geturl()

    def set_live_id_by_string(self, value: str) -> None:
        self.live_id = gen_live_id_by_string(value)

    @abstractmethod
    def get_info(self) -> Info:
        """Fetch the room's current state."""

    @abstractmethod
    def get_stream_urls(self) -> list[SplitResult]:
        """Return the addresses of the room's streams."""


class WrappedLive:
    """Delegates to a room and stores every fetched Info in a cache."""

    def __init__(self, live: Any, cache: MutableMapping | None) -> None:
        object.__setattr__(self, "live", live)
        object.__setattr__(self, "cache", cache)

    def __getattr__(self, name: str) -> Any:
        if name in ("live", "cache"):
            raise AttributeError(name)
        return getattr(self.live, name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in ("live", "cache"):
            object.__setattr__(self, name, value)
        else:
            setattr(self.live, name, value)

    def __repr__(self) -> str:
        return f"WrappedLive({self.live!r})"

    def get_info(self) -> Info:
        info = self.live.get_info()
        if self.cache is not None:
            self.cache[self] = info
        return info

    def get_stream_urls(self) -> list[SplitResult]:
        return self.live.get_stream_urls()

    def set_live_id_by_string(self, value: str) -> None:
        self.live.set_live_id_by_string(value)


class InitializingLive(BaseLive):
    """Stands in for a room whose first lookups failed."""

    def __init__(self, original_live: Any, url: UrlLike, *options: Option) -> None:
        super().__init__(url, *options)
        self.original_live = original_live

    def get_info(self) -> Info:
        return Info(live=self, host_name="", room_name=self.raw_url, status=False, initializing=True)

    def get_stream_urls(self) -> list[SplitResult]:
        return []


def new_live(
    url: UrlLike,
    cache: MutableMapping | None,
    *args: Option,
    retries: int = 3,
    retry_delay: float = 1.0,
) -> WrappedLive:
    """Build the room for ``url``; fall back to an initializing room if it cannot be read."""
    parts = _as_url(url)
    builder = get_builder(_host(parts))
    if builder is None:
        raise LiveError("not support this url")
    live = WrappedLive(builder.build(parts, *args), cache)
    for _ in range(retries):
        try:
            info = live.get_info()
        except Exception:
            time.sleep(retry_delay)
            continue
        if info.custom_live_id:
            live.set_live_id_by_string(info.custom_live_id)
        return live

    initializing = WrappedLive(InitializingLive(live, parts, *args), cache)
    initializing.get_info()
    return initializing