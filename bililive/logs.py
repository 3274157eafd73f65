"""Logger set-up: stderr plus optional log files in a plain key=value format."""

from __future__ import annotations

import json
import logging
import string
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

LOGGER_NAME = "bililive"
LAST_LOG_NAME = "bililive-go.log"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_PLAIN_CHARS = frozenset(string.ascii_letters + string.digits + "-._/@^+")
_LEVEL_NAMES = {"CRITICAL": "fatal"}


def _format_value(value: Any) -> str:
    text = str(value)
    if text and all(char in _PLAIN_CHARS for char in text):
        return text
    return json.dumps(text, ensure_ascii=False)


class _TextFormatter(logging.Formatter):
    """Formats ``time="..." level=... msg=...`` followed by the record's fields."""

    def __init__(self) -> None:
        super().__init__(datefmt=TIMESTAMP_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        level = _LEVEL_NAMES.get(record.levelname, record.levelname.lower())
        parts = [
            f'time="{self.formatTime(record, self.datefmt)}"',
            f"level={level}",
            f"msg={_format_value(record.getMessage())}",
        ]
        fields = getattr(record, "fields", None) or {}
        parts.extend(f"{key}={_format_value(fields[key])}" for key in sorted(fields))
        if record.exc_info:
            parts.append("exception=" + _format_value(self.formatException(record.exc_info)))
        return " ".join(parts)


def new_logger(instance: Any) -> logging.Logger:
    """Create the process logger from the instance's config and attach it to the instance."""
    config = instance.config
    level = logging.DEBUG if config.debug else logging.INFO
    logger = logging.Logger(LOGGER_NAME, level)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    folder = Path(config.log.out_put_folder)
    if not folder.exists():
        raise FileNotFoundError(f"Failed to determine log output folder: {folder}")
    if config.log.save_every_log:
        run_id = datetime.now().strftime("run-%Y-%m-%d-%H-%M-%S")
        handlers.append(logging.FileHandler(folder / f"{run_id}.log", mode="a", encoding="utf-8"))
    if config.log.save_last_log:
        handlers.append(logging.FileHandler(folder / LAST_LOG_NAME, mode="w", encoding="utf-8"))

    formatter = _TextFormatter()
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    instance.logger = logger
    return logger