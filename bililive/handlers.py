"""HTTP API handlers, independent of the server that routes to them."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional
from urllib.parse import urlsplit

import yaml

from bililive.configs import LiveRoom, new_config_with_bytes
from bililive.consts import app_info
from bililive.live import Info, new_live, with_kv_string_cookies

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_TEXT = "text/plain; charset=utf-8"

_log = logging.getLogger(__name__)


@dataclass
class Response:
    """Status, body and content type of an API reply."""

    status: int
    body: bytes
    content_type: str = CONTENT_TYPE_JSON


def common_resp(err_no: int = 0, err_msg: str = "", data: Any = None) -> dict[str, Any]:
    return {"err_no": err_no, "err_msg": err_msg, "data": data}


def _jsonable(obj: Any) -> Any:
    for name in ("to_json_dict", "to_dict"):
        method = getattr(obj, name, None)
        if callable(method):
            return method()
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, timedelta):
        return obj.total_seconds()
    raise TypeError(f"json: unsupported type: {type(obj).__name__}")


def json_response(obj: Any, status: int = 200) -> Response:
    """Encode ``obj`` as JSON; an object that cannot be encoded gives a 500 text reply."""
    try:
        text = json.dumps(obj, default=_jsonable, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        return Response(500, str(exc).encode("utf-8"), CONTENT_TYPE_TEXT)
    return Response(status, text.encode("utf-8"))


def _error(status: int, message: str, err_no: Optional[int] = None) -> Response:
    return json_response(common_resp(err_no=status if err_no is None else err_no, err_msg=message), status)


def _logger(instance: Any) -> logging.Logger:
    return instance.logger or _log


def _not_found(live_id: str) -> Response:
    return _error(404, f"live id: {live_id} can not find")


def parse_info(instance: Any, live: Any) -> Info:
    """The room's cached Info with the listening and recording flags filled in."""
    cache = instance.cache
    info = cache.get(live) if cache is not None else None
    if info is None:
        info = live.get_info()
    info.listening = instance.listener_manager.has_listener(live.live_id)
    info.recording = instance.recorder_manager.has_recorder(live.live_id)
    return info


def _sorted_infos(infos: list[Info]) -> list[Info]:
    return sorted(infos, key=lambda info: info.live.live_id)


def get_all_lives(instance: Any) -> Response:
    infos = [parse_info(instance, live) for live in list(instance.lives.values())]
    return json_response(_sorted_infos(infos))


def get_live(instance: Any, live_id: str) -> Response:
    live = instance.lives.get(live_id)
    if live is None:
        return _not_found(live_id)
    return json_response(parse_info(instance, live))


def parse_live_action(instance: Any, live_id: str, action: str) -> Response:
    """Start or stop listening to a room."""
    live = instance.lives.get(live_id)
    if live is None:
        return _not_found(live_id)
    try:
        room = instance.config.get_live_room_by_url(live.raw_url)
    except Exception:
        return _error(404, f"room : {live.raw_url} can not find")
    if action == "start":
        try:
            instance.listener_manager.add_listener(live)
        except Exception as exc:
            return _error(400, str(exc))
        room.is_listening = True
    elif action == "stop":
        try:
            instance.listener_manager.remove_listener(live.live_id)
        except Exception as exc:
            return _error(400, str(exc))
        room.is_listening = False
    else:
        return _error(400, f"invalid Action: {action}")
    return json_response(parse_info(instance, live))


_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}


def _json_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value in _TRUE_STRINGS
    return False


def _json_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _json_items(body: bytes | str) -> list[Any]:
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return []
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        return list(parsed.values())
    return []


def add_lives(instance: Any, body: bytes | str) -> Response:
    """Add every ``{"url": ..., "listen": ...}`` item of a JSON list."""
    infos: list[Info] = []
    for item in _json_items(body):
        fields = item if isinstance(item, dict) else {}
        is_listen = _json_bool(fields.get("listen"))
        url = _json_string(fields.get("url")).strip(" ")
        try:
            info = add_live(instance, url, is_listen)
        except Exception as exc:
            _logger(instance).error(f"{url}: {exc}")
            continue
        if info is not None:
            infos.append(info)
    return json_response(_sorted_infos(infos))


def add_live(instance: Any, url: str, is_listen: bool) -> Optional[Info]:
    """Add the room at ``url``; returns None if it is already known."""
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    try:
        parts = urlsplit(url)
        _ = parts.port
    except ValueError:
        raise ValueError(f"can't parse url: {url}") from None
    host = parts.netloc.rpartition("@")[2]
    options = []
    cookies = (instance.config.cookies or {}).get(host)
    if cookies is not None:
        options.append(with_kv_string_cookies(parts, cookies))
    live = new_live(parts, instance.cache, *options)
    if live.live_id in instance.lives:
        return None
    instance.lives[live.live_id] = live
    if is_listen:
        try:
            instance.listener_manager.add_listener(live)
        except Exception as exc:
            _logger(instance).debug(str(exc))
    info = parse_info(instance, live)
    instance.config.live_rooms.append(
        LiveRoom(url=parts.geturl(), is_listening=is_listen, live_id=live.live_id)
    )
    return info


def _remove_live(instance: Any, live: Any) -> None:
    manager = instance.listener_manager
    if manager.has_listener(live.live_id):
        manager.remove_listener(live.live_id)
    instance.lives.pop(live.live_id, None)
    try:
        instance.config.remove_live_room_by_url(live.raw_url)
    except Exception:
        pass


def remove_live(instance: Any, live_id: str) -> Response:
    live = instance.lives.get(live_id)
    if live is None:
        return _not_found(live_id)
    try:
        _remove_live(instance, live)
    except Exception as exc:
        return _error(400, str(exc))
    return json_response(common_resp(data="OK"))


def get_config(instance: Any) -> Response:
    return json_response(instance.config)


def put_config(instance: Any) -> Response:
    """Save the running config to its file."""
    config = instance.config
    config.refresh_live_room_index_cache()
    try:
        config.marshal()
    except Exception as exc:
        return _error(400, str(exc))
    return json_response(common_resp(data="OK"), 200)


def get_raw_config(instance: Any) -> Response:
    try:
        text = yaml.safe_dump(instance.config.to_dict(), allow_unicode=True, sort_keys=False)
    except Exception as exc:
        return _error(500, str(exc), err_no=400)
    return json_response({"config": text})


def put_raw_config(instance: Any, body: bytes | str) -> Response:
    """Replace the config with the YAML text in ``{"config": ...}`` and save it."""
    try:
        payload = json.loads(body)
        text = payload["config"]
        if not isinstance(text, str):
            raise TypeError("config must be a string")
    except (TypeError, ValueError, KeyError) as exc:
        return _error(400, str(exc))
    old_config = instance.config
    try:
        config_path = old_config.get_file_path()
    except Exception as exc:
        return _error(500, str(exc))
    try:
        new_config = new_config_with_bytes(text.encode("utf-8"))
    except Exception as exc:
        return _error(500, str(exc))
    new_config.file = old_config.file
    try:
        apply_live_rooms_by_config(instance, new_config.live_rooms)
    except Exception as exc:
        return json_response({"error": str(exc)})
    new_config.live_rooms = old_config.live_rooms
    try:
        with open(config_path, "w", encoding="utf-8") as handle:
            handle.write(text)
    except OSError as exc:
        _logger(instance).error(str(exc))
    instance.config = new_config
    new_config.refresh_live_room_index_cache()
    return json_response(common_resp(data="OK"))


def apply_live_rooms_by_config(instance: Any, new_live_rooms: list[Any]) -> None:
    """Add, start, stop and remove rooms so the running set matches ``new_live_rooms``."""
    current = instance.config
    current.refresh_live_room_index_cache()
    new_urls = set()
    for new_room in new_live_rooms:
        new_urls.add(new_room.url)
        try:
            room = current.get_live_room_by_url(new_room.url)
        except Exception:
            add_live(instance, new_room.url, new_room.is_listening)
            continue
        live = instance.lives.get(room.live_id)
        if live is None:
            raise LookupError(f"live id: {room.live_id} can not find")
        if room.is_listening != new_room.is_listening:
            if new_room.is_listening:
                instance.listener_manager.add_listener(live)
            else:
                instance.listener_manager.remove_listener(live.live_id)
            room.is_listening = new_room.is_listening
    for room in list(current.live_rooms):
        if room.url in new_urls:
            continue
        live = instance.lives.get(room.live_id)
        if live is None:
            raise LookupError(f"live id: {room.live_id} can not find")
        _remove_live(instance, live)


def get_info(instance: Any) -> Response:
    return json_response(app_info())


def get_file_info(instance: Any, path: str) -> Response:
    """List a directory below the output path."""
    try:
        base = os.path.abspath(instance.config.out_put_path)
    except (OSError, ValueError):
        return json_response(common_resp(err_msg="无效输出目录"))
    try:
        target = os.path.abspath(os.path.join(base, path.lstrip("/\\")))
    except (OSError, ValueError):
        return json_response(common_resp(err_msg="无效路径"))
    if target != base and not target.startswith(base.rstrip(os.sep) + os.sep):
        return json_response(common_resp(err_msg="异常路径"))
    try:
        entries = sorted(os.scandir(target), key=lambda entry: entry.name)
        files = []
        for entry in entries:
            stat = entry.stat()
            is_dir = entry.is_dir()
            files.append(
                {
                    "is_folder": is_dir,
                    "name": entry.name,
                    "last_modified": int(stat.st_mtime),
                    "size": 0 if is_dir else stat.st_size,
                }
            )
    except OSError:
        return json_response(common_resp(err_msg="获取目录失败"))
    # The web client reads the directory under the key "Path".
    return json_response({"files": files, "Path": path})