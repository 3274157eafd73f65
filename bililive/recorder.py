"""Records one room: picks a parser, names the file and restarts on failure."""

from __future__ import annotations

import enum
import logging
import os
import subprocess
import threading
from datetime import datetime
from typing import Any, Callable, Optional

import jinja2

from bililive import ffmpeg, flv, parser
from bililive.events import Event
from bililive.templates import render_template
from bililive.utils import get_ffmpeg_path

RECORDER_START = "RecorderStart"
RECORDER_STOP = "RecorderStop"
RECORDER_RESTART = "RecorderRestart"

DEFAULT_FILENAME_TEMPLATE = (
    "{{ platform_cn_name }}/{{ host_name | filenameFilter }}/"
    '[{{ now() | date("2006-01-02 15-04-05") }}]'
    "[{{ host_name | filenameFilter }}][{{ room_name | filenameFilter }}].flv"
)

_log = logging.getLogger(__name__)

ParserFactory = Callable[[Any, bool, dict[str, str]], parser.Parser]


class RecorderExistError(Exception):
    def __init__(self, message: str = "recorder is exist") -> None:
        super().__init__(message)


class RecorderNotExistError(Exception):
    def __init__(self, message: str = "recorder is not exist") -> None:
        super().__init__(message)


class ParserNotSupportStatusError(Exception):
    def __init__(self, message: str = "parser not support get status") -> None:
        super().__init__(message)


def _url_path(url: Any) -> str:
    if isinstance(url, str):
        from urllib.parse import urlsplit

        return urlsplit(url).path
    return url.path


def _url_text(url: Any) -> str:
    return url if isinstance(url, str) else url.geturl()


def select_parser(url: Any, use_native_flv_parser: bool, cfg: dict[str, str]) -> parser.Parser:
    """The native parser for .flv streams when enabled, ffmpeg otherwise."""
    name = ffmpeg.NAME
    if ".flv" in _url_path(url) and use_native_flv_parser:
        name = flv.NAME
    return parser.new_parser(name, cfg)


def build_output_file(config: Any, info: Any, stream_url: Any) -> str:
    """The file a stream is saved to, from the configured or the default template."""
    rendered: Optional[str] = None
    if config.out_put_tmpl:
        try:
            rendered = render_template(config, config.out_put_tmpl, info)
        except jinja2.TemplateSyntaxError:
            rendered = None
    if rendered is None:
        rendered = render_template(config, DEFAULT_FILENAME_TEMPLATE, info)
    file = os.path.normpath(os.path.join(config.out_put_path, rendered))
    if "m3u8" in _url_path(stream_url):
        file = file[:-4] + ".ts"
    if info.audio_only:
        stem, dot, _ = file.rpartition(".")
        file = (stem if dot else file) + ".aac"
    return file


def remove_empty_file(path: str) -> None:
    """Delete ``path`` if it exists and is empty."""
    try:
        if os.stat(path).st_size == 0:
            os.remove(path)
    except OSError:
        pass


class _State(enum.Enum):
    BEGIN = enum.auto()
    PENDING = enum.auto()
    RUNNING = enum.auto()
    STOPPED = enum.auto()


class Recorder:
    """Records a room on a background thread until closed."""

    def __init__(
        self,
        instance: Any,
        live: Any,
        parser_factory: Optional[ParserFactory] = None,
        retry_delay: float = 5.0,
    ) -> None:
        self.live = live
        self.config = instance.config
        self.out_put_path = instance.config.out_put_path
        self.start_time = datetime.now()
        self._cache = instance.cache
        self._dispatcher = instance.event_dispatcher
        self._logger: logging.Logger = instance.logger or _log
        self._parser_factory: ParserFactory = parser_factory or select_parser
        self._retry_delay = retry_delay
        self._parser: Optional[parser.Parser] = None
        self._parser_lock = threading.Lock()
        self._state = _State.BEGIN
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _transition(self, old: _State, new: _State) -> bool:
        with self._state_lock:
            if self._state is not old:
                return False
            self._state = new
            return True

    def _cached_info(self) -> Any:
        if self._cache is None:
            return None
        return self._cache.get(self.live)

    def _fields(self) -> dict[str, str]:
        info = self._cached_info()
        if info is None:
            return {}
        return {"host": info.host_name, "room": info.room_name}

    def _log(self, level: int, message: str, **extra: Any) -> None:
        fields = self._fields()
        fields.update(extra)
        self._logger.log(level, message, extra={"fields": fields})

    def _set_parser(self, new_parser: parser.Parser) -> None:
        with self._parser_lock:
            if self._parser is not None:
                self._parser.stop()
            self._parser = new_parser

    def _get_parser(self) -> Optional[parser.Parser]:
        with self._parser_lock:
            return self._parser

    def start(self) -> None:
        """Start recording; later calls do nothing."""
        if not self._transition(_State.BEGIN, _State.PENDING):
            return
        self._thread = threading.Thread(target=self._run, daemon=True, name="recorder")
        self._thread.start()
        self._log(logging.INFO, "Record Start")
        self._dispatcher.dispatch_event(Event(RECORDER_START, self.live))
        self._transition(_State.PENDING, _State.RUNNING)

    def _run(self) -> None:
        while not self._stop.is_set():
            self.try_record()

    def try_record(self) -> None:
        """Record the room's first stream once, until it ends or the parser is stopped."""
        try:
            urls = self.live.get_stream_urls()
        except Exception as exc:
            urls = []
            self._log(logging.WARNING, "failed to get stream url, will retry after 5s...", error=str(exc))
        else:
            if not urls:
                self._log(logging.WARNING, "failed to get stream url, will retry after 5s...")
        if not urls:
            self._stop.wait(self._retry_delay)
            return

        info = self._cached_info()
        if info is None:
            info = self.live.get_info()
        url = urls[0]
        file = build_output_file(self.config, info, url)
        output_dir = os.path.dirname(file)
        try:
            os.makedirs(output_dir or ".", exist_ok=True)
        except OSError as exc:
            self._log(logging.ERROR, f"failed to create output path[{output_dir}]", error=str(exc))
            return

        cfg = {"timeout_in_us": str(self.config.timeout_in_us)}
        if self.config.debug:
            cfg["debug"] = "true"
        if self.config.ffmpeg_path:
            cfg["ffmpeg_path"] = self.config.ffmpeg_path
        try:
            new_parser = self._parser_factory(url, self.config.feature.use_native_flv_parser, cfg)
        except Exception as exc:
            self._log(logging.ERROR, "failed to init parse", error=str(exc))
            return
        self._set_parser(new_parser)
        self.start_time = datetime.now()

        address = _url_text(url)
        self._log(logging.DEBUG, f"Start ParseLiveStream({address}, {file})")
        try:
            new_parser.parse_live_stream(url, self.live, file)
        except Exception as exc:
            self._log(logging.INFO, str(exc))
        self._log(logging.DEBUG, f"End ParseLiveStream({address}, {file})")
        remove_empty_file(file)

        if self.config.on_record_finished.convert_to_mp4:
            self._convert_to_mp4(file)

    def _convert_to_mp4(self, file: str) -> None:
        try:
            ffmpeg_path = get_ffmpeg_path(self.config)
        except OSError as exc:
            self._log(logging.ERROR, "failed to find ffmpeg", error=str(exc))
            return
        command = [ffmpeg_path, "-hide_banner", "-i", file, "-c", "copy", file + ".mp4"]
        try:
            result = subprocess.run(command, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL,
                                    stderr=subprocess.DEVNULL, check=False)
        except OSError as exc:
            self._log(logging.DEBUG, str(exc))
            return
        if result.returncode != 0:
            self._log(logging.DEBUG, f"exit status {result.returncode}")
        elif self.config.on_record_finished.delete_flv_after_convert:
            try:
                os.remove(file)
            except OSError:
                pass

    def close(self) -> None:
        """Stop recording; only the first call on a running recorder has an effect."""
        if not self._transition(_State.RUNNING, _State.STOPPED):
            return
        self._stop.set()
        current = self._get_parser()
        if current is not None:
            current.stop()
        self._log(logging.INFO, "Record End")
        self._dispatcher.dispatch_event(Event(RECORDER_STOP, self.live))

    def get_status(self) -> dict[str, str] | None:
        """Progress of the current parser, if it can report it."""
        current = self._get_parser()
        if not isinstance(current, parser.StatusParser):
            raise ParserNotSupportStatusError()
        return current.status()