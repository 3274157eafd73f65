"""Application name and runtime information."""

from __future__ import annotations

import dataclasses
import os
import platform
import sys
from dataclasses import dataclass

APP_NAME = "BiliLive-go"
APP_VERSION = "0.1.0"
BUILD_TIME = ""
GIT_HASH = ""


@dataclass(frozen=True)
class AppInfo:
    """Information about the running process."""

    app_name: str
    app_version: str
    build_time: str
    git_hash: str
    pid: int
    platform: str
    python_version: str

    def to_dict(self) -> dict[str, object]:
        return dataclasses.asdict(self)


def app_info() -> AppInfo:
    """Describe the current process."""
    return AppInfo(
        app_name=APP_NAME,
        app_version=APP_VERSION,
        build_time=BUILD_TIME,
        git_hash=GIT_HASH,
        pid=os.getpid(),
        platform=f"{sys.platform}/{platform.machine().lower()}",
        python_version=platform.python_version(),
    )