"""A parser that records a stream by running ffmpeg."""

from __future__ import annotations

import queue
import subprocess
import threading
from typing import Any, BinaryIO, Iterator, Optional

from bililive import parser
from bililive.configs import Config
from bililive.live import USER_AGENT
from bililive.utils import get_ffmpeg_path

NAME = "ffmpeg"

STATUS_TIMEOUT = 3.0
_PROGRESS_MARK = b"progress=continue"


def _url_text(url: Any) -> str:
    return url if isinstance(url, str) else url.geturl()


def decode_ffmpeg_status(data: bytes | str) -> dict[str, str]:
    """Turn one block of ``key=value`` progress lines into a dictionary."""
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    status = {"parser": NAME}
    for line in data.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        status[key.strip()] = value.strip()
    return status


def _progress_blocks(stream: BinaryIO) -> Iterator[bytes]:
    """Yield the text between ``progress=continue`` marks; a trailing partial block is dropped."""
    block = bytearray()
    for line in iter(stream.readline, b""):
        if line.rstrip(b"\r\n") == _PROGRESS_MARK:
            yield bytes(block)
            block.clear()
        else:
            block.extend(line)


class FFmpegParser(parser.StatusParser):
    """Runs ffmpeg to copy a stream into a file and reads its progress output."""

    def __init__(self, debug: bool = False, timeout_in_us: str = "", ffmpeg_path: str = "") -> None:
        self.debug = debug
        self.timeout_in_us = timeout_in_us
        self.ffmpeg_path = ffmpeg_path
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._stopped = False
        self._finished = threading.Event()
        self._status_wanted = threading.Event()
        self._status_queue: "queue.Queue[Optional[bytes]]" = queue.Queue()

    def build_command(self, ffmpeg_path: str, url: str, referer: str, file: str) -> list[str]:
        return [
            ffmpeg_path,
            "-nostats",
            "-progress", "-",
            "-y", "-re",
            "-user_agent", USER_AGENT,
            "-referer", referer,
            "-rw_timeout", self.timeout_in_us,
            "-i", url,
            "-c", "copy",
            "-bsf:a", "aac_adtstoasc",
            file,
        ]

    def parse_live_stream(self, url: Any, live: Any, file: str) -> None:
        """Run ffmpeg until it exits; a non-zero exit raises CalledProcessError."""
        with self._lock:
            if self._stopped:
                return
        ffmpeg_path = get_ffmpeg_path(Config(ffmpeg_path=self.ffmpeg_path))
        command = self.build_command(ffmpeg_path, _url_text(url), live.raw_url, file)
        process = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=None if self.debug else subprocess.DEVNULL,
        )
        with self._lock:
            self._process = process
            stopped = self._stopped
        if stopped:
            self._send_quit(process)
        pump = threading.Thread(target=self._pump, args=(process.stdout,), daemon=True, name="ffmpeg-progress")
        pump.start()
        returncode = process.wait()
        pump.join(timeout=STATUS_TIMEOUT)
        if process.stdin is not None:
            try:
                process.stdin.close()
            except OSError:
                pass
        if returncode:
            raise subprocess.CalledProcessError(returncode, command)

    def _pump(self, stream: BinaryIO) -> None:
        try:
            for block in _progress_blocks(stream):
                if self._status_wanted.is_set():
                    self._status_wanted.clear()
                    self._status_queue.put(block)
        finally:
            self._finished.set()
            if self._status_wanted.is_set():
                self._status_queue.put(None)

    def status(self) -> dict[str, str] | None:
        """Wait for the next progress block; None if ffmpeg is not running or is silent."""
        with self._lock:
            running = self._process is not None
        if not running:
            return None
        self._status_wanted.set()
        if self._finished.is_set():
            self._status_wanted.clear()
            return None
        try:
            block = self._status_queue.get(timeout=STATUS_TIMEOUT)
        except queue.Empty:
            self._status_wanted.clear()
            return None
        if block is None:
            return None
        return decode_ffmpeg_status(block)

    @staticmethod
    def _send_quit(process: subprocess.Popen) -> None:
        if process.poll() is not None or process.stdin is None:
            return
        try:
            process.stdin.write(b"q")
            process.stdin.flush()
        except OSError:
            pass

    def stop(self) -> None:
        """Ask ffmpeg to quit; only the first call has an effect."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            process = self._process
        if process is not None:
            self._send_quit(process)


def build_ffmpeg_parser(cfg: dict[str, str]) -> FFmpegParser:
    return FFmpegParser(
        debug=bool(cfg.get("debug")),
        timeout_in_us=cfg.get("timeout_in_us", ""),
        ffmpeg_path=cfg.get("ffmpeg_path", ""),
    )


parser.register(NAME, build_ffmpeg_parser)