"""Rooms on live.bilibili.com."""

from __future__ import annotations

import json
from typing import Any, Optional

import requests

from bililive.live import (
    COMMON_HEADERS,
    BaseLive,
    Info,
    InternalError,
    Option,
    RoomNotExistError,
    RoomUrlIncorrectError,
    UrlLike,
    register,
)
from bililive.utils import gen_urls

DOMAIN = "live.bilibili.com"
CN_NAME = "哔哩哔哩"

ROOM_INIT_URL = "https://api.live.bilibili.com/room/v1/Room/room_init"
ROOM_API_URL = "https://api.live.bilibili.com/room/v1/Room/get_info"
USER_API_URL = "https://api.live.bilibili.com/live_user/v1/UserInfo/get_anchor_in_room"
LIVE_API_URL_V2 = "https://api.live.bilibili.com/xlive/web-room/v2/index/getRoomPlayInfo"

HEVC_CODEC_PATH = "data.playurl_info.playurl.stream.1.format.1.codec.1"
AVC_CODEC_PATH = "data.playurl_info.playurl.stream.0.format.0.codec.0"

REQUEST_TIMEOUT = 30


def _parse(body: Any) -> Any:
    if isinstance(body, (dict, list)):
        return body
    try:
        return json.loads(body)
    except (TypeError, ValueError):
        return None


def _get(data: Any, path: str) -> Any:
    """Look up a dotted path; ``#`` gives the length of a list."""
    current = data
    for key in path.split("."):
        if isinstance(current, dict):
            if key not in current:
                return None
            current = current[key]
        elif isinstance(current, list):
            if key == "#":
                return len(current)
            try:
                index = int(key)
            except ValueError:
                return None
            if not 0 <= index < len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def _string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _int(value: Any) -> int:
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            try:
                return int(float(value))
            except ValueError:
                return 0
    return 0


def select_stream_urls(body: Any, quality: int) -> list[str]:
    """Stream addresses from a play-info reply: HEVC when available at quality 0, AVC otherwise."""
    data = _parse(body)
    codec_count = _int(_get(data, "data.playurl_info.playurl.stream.1.format.1.codec.#"))
    path = HEVC_CODEC_PATH if quality == 0 and codec_count > 1 else AVC_CODEC_PATH
    base_url = _string(_get(data, path + ".base_url"))
    url_info = _get(data, path + ".url_info")
    if not isinstance(url_info, list):
        return []
    return [
        _string(_get(item, "host")) + base_url + _string(_get(item, "extra"))
        for item in url_info
    ]


class BilibiliLive(BaseLive):
    """A bilibili live room, addressed by its short or full id."""

    platform_cn_name = CN_NAME

    def __init__(self, url: UrlLike, *options: Option) -> None:
        super().__init__(url, *options)
        self.real_id = ""

    def _cookies(self) -> dict[str, str]:
        return dict(self.options.cookies.get((self.url.hostname or "").lower(), {}))

    def parse_real_id(self) -> None:
        """Resolve the room id in the URL to the full room id."""
        paths = self.url.path.split("/")
        if len(paths) < 2:
            raise RoomUrlIncorrectError()
        response = requests.get(
            ROOM_INIT_URL,
            headers=COMMON_HEADERS,
            params={"id": paths[1]},
            cookies=self._cookies(),
            timeout=REQUEST_TIMEOUT,
        )
        if response.status_code != 200:
            raise RoomNotExistError()
        data = _parse(response.content)
        if data is None or _int(_get(data, "code")) != 0:
            raise RoomNotExistError()
        self.real_id = _string(_get(data, "data.room_id"))

    def _ensure_real_id(self) -> None:
        if not self.real_id:
            self.parse_real_id()

    def get_info(self) -> Info:
        self._ensure_real_id()
        response = requests.get(
            ROOM_API_URL,
            headers=COMMON_HEADERS,
            params={"room_id": self.real_id, "from": "room"},
            cookies=self._cookies(),
            timeout=REQUEST_TIMEOUT,
        )
        if response.status_code != 200:
            raise RoomNotExistError()
        data = _parse(response.content)
        if _int(_get(data, "code")) != 0:
            raise RoomNotExistError()
        info = Info(
            live=self,
            room_name=_string(_get(data, "data.title")),
            status=_int(_get(data, "data.live_status")) == 1,
        )

        response = requests.get(
            USER_API_URL,
            headers=COMMON_HEADERS,
            params={"roomid": self.real_id},
            timeout=REQUEST_TIMEOUT,
        )
        if response.status_code != 200:
            raise InternalError()
        data = _parse(response.content)
        if _int(_get(data, "code")) != 0:
            raise InternalError()
        info.host_name = _string(_get(data, "data.info.uname"))
        return info

    def get_stream_urls(self) -> list[Any]:
        self._ensure_real_id()
        query = (
            f"?room_id={self.real_id}&protocol=0,1&format=0,1,2&codec=0,1"
            "&qn=10000&platform=web&ptype=8&dolby=5&panorama=1"
        )
        response = requests.get(
            LIVE_API_URL_V2 + query,
            headers=COMMON_HEADERS,
            cookies=self._cookies(),
            timeout=REQUEST_TIMEOUT,
        )
        if response.status_code != 200:
            raise RoomNotExistError()
        return gen_urls(*select_stream_urls(response.content, self.options.quality))


class BilibiliBuilder:
    def build(self, url: UrlLike, *args: Option) -> BilibiliLive:
        return BilibiliLive(url, *args)


def _room_id_of(live: Optional[BilibiliLive]) -> str:
    return live.real_id if live is not None else ""


register(DOMAIN, BilibiliBuilder())