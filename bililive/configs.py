"""Configuration model, YAML loading and saving."""

from __future__ import annotations

import os
import re
import socket
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable

import yaml


class ConfigError(Exception):
    """Raised when a configuration cannot be loaded, saved or used."""


_NANOS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``1h30m`` or ``1.5s`` into a timedelta."""
    rest = text
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ConfigError(f'invalid duration "{text}"')
    total = Decimal(0)
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if match is None:
            raise ConfigError(f'invalid duration "{text}"')
        try:
            total += Decimal(match.group(1)) * _NANOS_PER_UNIT[match.group(2)]
        except InvalidOperation as exc:
            raise ConfigError(f'invalid duration "{text}"') from exc
        pos = match.end()
    nanos = int(total)
    if negative:
        nanos = -nanos
    return timedelta(microseconds=nanos // 1000)


def _format_fraction(value: int, size: int) -> str:
    whole, part = divmod(value, size)
    if not part:
        return str(whole)
    digits = len(str(size)) - 1
    return f"{whole}.{str(part).rjust(digits, '0').rstrip('0')}"


def _format_duration(delta: timedelta) -> str:
    nanos = ((delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds) * 1000
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)
    if nanos < 1_000_000_000:
        for unit, size in (("ms", 1_000_000), ("\u00b5s", 1_000), ("ns", 1)):
            if nanos >= size:
                return sign + _format_fraction(nanos, size) + unit
    hours, rest = divmod(nanos, 3600 * 1_000_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000_000)
    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + _format_fraction(rest, 1_000_000_000) + "s"


@dataclass
class RPC:
    """Settings of the HTTP API server."""

    enable: bool = True
    bind: str = "127.0.0.1:8080"

    def verify(self) -> None:
        """Raise ConfigError when the server is enabled with an unusable address."""
        if not self.enable:
            return
        host, sep, port = self.bind.rpartition(":")
        if not sep:
            raise ConfigError(f"address {self.bind}: missing port in address")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        elif ":" in host:
            raise ConfigError(f"address {self.bind}: too many colons in address")
        try:
            socket.getaddrinfo(host or None, port or 0, type=socket.SOCK_STREAM)
        except (OSError, UnicodeError) as exc:
            raise ConfigError(f"address {self.bind}: {exc}") from exc


@dataclass
class Feature:
    use_native_flv_parser: bool = False
    remove_symbol_other_character: bool = False


@dataclass
class VideoSplitStrategies:
    on_room_name_changed: bool = False
    max_duration: timedelta = field(default_factory=timedelta)


@dataclass
class OnRecordFinished:
    convert_to_mp4: bool = False
    delete_flv_after_convert: bool = False


@dataclass
class LogConfig:
    out_put_folder: str = "./"
    save_last_log: bool = True
    save_every_log: bool = False


def _as_bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{key}: cannot use {value!r} as a boolean")
    return value


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key}: cannot use {value!r} as an integer")
    return value


def _as_str(value: Any, key: str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"{key}: cannot use {value!r} as a string")


def _as_duration(value: Any, key: str) -> timedelta:
    if isinstance(value, bool):
        raise ConfigError(f"{key}: cannot use {value!r} as a duration")
    if isinstance(value, int):
        return timedelta(microseconds=value // 1000)
    if isinstance(value, str):
        return parse_duration(value)
    raise ConfigError(f"{key}: cannot use {value!r} as a duration")


def _as_cookies(value: Any, key: str) -> dict[str, str]:
    if not isinstance(value, dict):
        raise ConfigError(f"{key}: expected a mapping")
    return {_as_str(k, key): _as_str(v, key) for k, v in value.items()}


def _apply_fields(target: Any, raw: Any, key: str, fields: dict[str, Callable[[Any, str], Any]]) -> None:
    if raw is None:
        return
    if not isinstance(raw, dict):
        raise ConfigError(f"{key}: expected a mapping")
    for name, convert in fields.items():
        value = raw.get(name)
        if value is not None:
            setattr(target, name, convert(value, name))


@dataclass
class LiveRoom:
    """One room to watch."""

    url: str = ""
    is_listening: bool = True
    live_id: str = ""
    quality: int = 0

    @classmethod
    def from_yaml(cls, value: Any) -> "LiveRoom":
        """Build a room from either a plain URL string or a mapping."""
        if isinstance(value, dict):
            room = cls()
            _apply_fields(room, value, "live_rooms", {
                "url": _as_str,
                "is_listening": _as_bool,
                "quality": _as_int,
            })
            return room
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return cls(url=str(value))
        raise ConfigError(f"live_rooms: cannot use {value!r} as a live room")


def new_live_rooms_with_strings(urls: list[str] | None) -> list[LiveRoom]:
    """Create listening rooms for every URL given."""
    return [LiveRoom(url=url, is_listening=True, quality=0) for url in urls or ()]


@dataclass
class Config:
    """All settings of the recorder."""

    file: str = ""
    rpc: RPC = field(default_factory=RPC)
    debug: bool = False
    interval: int = 30
    out_put_path: str = "./"
    ffmpeg_path: str = ""
    log: LogConfig = field(default_factory=LogConfig)
    feature: Feature = field(default_factory=Feature)
    live_rooms: list[LiveRoom] = field(default_factory=list)
    out_put_tmpl: str = ""
    video_split_strategies: VideoSplitStrategies = field(default_factory=VideoSplitStrategies)
    cookies: dict[str, str] = field(default_factory=dict)
    on_record_finished: OnRecordFinished = field(default_factory=OnRecordFinished)
    timeout_in_us: int = 60_000_000
    _index_cache: dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def verify(self) -> None:
        """Raise ConfigError when this configuration cannot be used."""
        self.rpc.verify()
        if self.interval <= 0:
            raise ConfigError("the interval can not <= 0")
        if not os.path.exists(self.out_put_path):
            raise ConfigError(f'the out put path: "{self.out_put_path}" is not exist')
        max_duration = self.video_split_strategies.max_duration
        if timedelta(0) < max_duration < timedelta(minutes=1):
            raise ConfigError("the minimum value of max_duration is one minute")
        if not self.rpc.enable and not self.live_rooms:
            raise ConfigError(
                "the RPC is not enabled, and no live room is set. "
                "the program has nothing to do using this setting"
            )

    def refresh_live_room_index_cache(self) -> None:
        for index, room in enumerate(self.live_rooms):
            self._index_cache[room.url] = index

    def _lookup(self, url: str) -> int | None:
        index = self._index_cache.get(url)
        if index is not None and 0 <= index < len(self.live_rooms) and self.live_rooms[index].url == url:
            return index
        return None

    def remove_live_room_by_url(self, url: str) -> None:
        self.refresh_live_room_index_cache()
        index = self._lookup(url)
        if index is None:
            raise ConfigError("failed removing room: " + url)
        del self.live_rooms[index]
        self._index_cache.pop(url, None)

    def get_live_room_by_url(self, url: str) -> LiveRoom:
        index = self._lookup(url)
        if index is None:
            self.refresh_live_room_index_cache()
            index = self._lookup(url)
            if index is None:
                raise ConfigError("room " + url + " doesn't exist.")
        return self.live_rooms[index]

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as it is written to YAML."""
        return {
            "rpc": {"enable": self.rpc.enable, "bind": self.rpc.bind},
            "debug": self.debug,
            "interval": self.interval,
            "out_put_path": self.out_put_path,
            "ffmpeg_path": self.ffmpeg_path,
            "log": {
                "out_put_folder": self.log.out_put_folder,
                "save_last_log": self.log.save_last_log,
                "save_every_log": self.log.save_every_log,
            },
            "feature": {
                "use_native_flv_parser": self.feature.use_native_flv_parser,
                "remove_symbol_other_character": self.feature.remove_symbol_other_character,
            },
            "live_rooms": [
                {"url": room.url, "is_listening": room.is_listening, "quality": room.quality}
                for room in self.live_rooms
            ],
            "out_put_tmpl": self.out_put_tmpl,
            "video_split_strategies": {
                "on_room_name_changed": self.video_split_strategies.on_room_name_changed,
                "max_duration": _format_duration(self.video_split_strategies.max_duration),
            },
            "cookies": dict(self.cookies),
            "on_record_finished": {
                "convert_to_mp4": self.on_record_finished.convert_to_mp4,
                "delete_flv_after_convert": self.on_record_finished.delete_flv_after_convert,
            },
            "timeout_in_us": self.timeout_in_us,
        }

    def marshal(self) -> None:
        """Write the configuration back to its file."""
        if not self.file:
            raise ConfigError("config path not set")
        text = yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)
        Path(self.file).write_text(text, encoding="utf-8")

    def get_file_path(self) -> str:
        if not self.file:
            raise ConfigError("config path not set")
        return self.file


def new_config() -> Config:
    """Return a configuration holding the defaults."""
    return Config()


def _load(config: Config, raw: dict[str, Any]) -> None:
    _apply_fields(config, raw, "config", {
        "debug": _as_bool,
        "interval": _as_int,
        "out_put_path": _as_str,
        "ffmpeg_path": _as_str,
        "out_put_tmpl": _as_str,
        "cookies": _as_cookies,
        "timeout_in_us": _as_int,
    })
    _apply_fields(config.rpc, raw.get("rpc"), "rpc", {"enable": _as_bool, "bind": _as_str})
    _apply_fields(config.log, raw.get("log"), "log", {
        "out_put_folder": _as_str,
        "save_last_log": _as_bool,
        "save_every_log": _as_bool,
    })
    _apply_fields(config.feature, raw.get("feature"), "feature", {
        "use_native_flv_parser": _as_bool,
        "remove_symbol_other_character": _as_bool,
    })
    _apply_fields(config.video_split_strategies, raw.get("video_split_strategies"), "video_split_strategies", {
        "on_room_name_changed": _as_bool,
        "max_duration": _as_duration,
    })
    _apply_fields(config.on_record_finished, raw.get("on_record_finished"), "on_record_finished", {
        "convert_to_mp4": _as_bool,
        "delete_flv_after_convert": _as_bool,
    })
    rooms = raw.get("live_rooms")
    if rooms is not None:
        if not isinstance(rooms, list):
            raise ConfigError("live_rooms: expected a sequence")
        config.live_rooms = [LiveRoom.from_yaml(item) for item in rooms]


def new_config_with_bytes(data: bytes | str) -> Config:
    """Parse a YAML document over the defaults."""
    try:
        raw = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise ConfigError(str(exc)) from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("config must be a mapping")
    config = new_config()
    _load(config, raw)
    config.refresh_live_room_index_cache()
    return config


def new_config_with_file(file: str | os.PathLike[str]) -> Config:
    """Load the configuration stored in ``file``."""
    try:
        data = Path(file).read_bytes()
    except OSError as exc:
        raise ConfigError(f"can`t open file: {file}") from exc
    config = new_config_with_bytes(data)
    config.file = str(file)
    return config