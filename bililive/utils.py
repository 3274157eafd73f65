"""Small helpers: ffmpeg lookup, hashing, random names, regex and URLs."""

from __future__ import annotations

import hashlib
import os
import random
import re
import shutil
import string
from typing import TYPE_CHECKING
from urllib.parse import SplitResult, urlsplit

if TYPE_CHECKING:
    from bililive.configs import Config

_LOWERCASE = string.ascii_lowercase
_ALL_CHARS = string.ascii_lowercase + string.ascii_uppercase + string.digits
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def get_ffmpeg_path(config: "Config") -> str:
    """Return the ffmpeg binary to use; raise FileNotFoundError if there is none."""
    if config.ffmpeg_path:
        os.stat(config.ffmpeg_path)
        return config.ffmpeg_path
    path = shutil.which("ffmpeg") or shutil.which(os.path.join(".", "ffmpeg"))
    if path is None:
        raise FileNotFoundError("ffmpeg: executable file not found")
    return path


def is_ffmpeg_exist(config: "Config") -> bool:
    try:
        get_ffmpeg_path(config)
    except OSError:
        return False
    return True


def get_md5_string(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.md5(data).hexdigest()


def gen_random_name(n: int) -> str:
    """A random identifier of ``n`` letters and digits starting with a lowercase letter."""
    if n < 1:
        raise ValueError("length must be at least 1")
    return random.choice(_LOWERCASE) + "".join(random.choice(_ALL_CHARS) for _ in range(n - 1))


def gen_random_string(length: int, valid_chars: str) -> str:
    return "".join(random.choice(valid_chars) for _ in range(length))


def match1(pattern: str, text: str) -> str:
    """First capture group of the first match, or an empty string."""
    try:
        regex = re.compile(pattern)
    except re.error:
        return ""
    match = regex.search(text)
    if match is None or regex.groups < 1:
        return ""
    return match.group(1) or ""


def gen_urls(*args: str) -> list[SplitResult]:
    """Parse every string into a URL, raising ValueError on the first bad one."""
    urls = []
    for text in args:
        if _CONTROL_CHARS.search(text):
            raise ValueError(f"invalid control character in URL: {text!r}")
        parts = urlsplit(text)
        _ = parts.port
        urls.append(parts)
    return urls