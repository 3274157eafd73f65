"""Prometheus-style metrics about rooms and recorders."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

NAMESPACE = "bgo"

LIVE_STATUS = f"{NAMESPACE}_live_status"
LIVE_DURATION_SECONDS = f"{NAMESPACE}_live_duration_seconds"
RECORDER_TOTAL_BYTES = f"{NAMESPACE}_recorder_total_bytes"

GAUGE = "gauge"
COUNTER = "counter"

_HELP = {
    LIVE_STATUS: "live status",
    LIVE_DURATION_SECONDS: "live status",
    RECORDER_TOTAL_BYTES: "recorder total bytes",
}
_KIND = {
    LIVE_STATUS: GAUGE,
    LIVE_DURATION_SECONDS: COUNTER,
    RECORDER_TOTAL_BYTES: COUNTER,
}
_ORDER = (LIVE_STATUS, LIVE_DURATION_SECONDS, RECORDER_TOTAL_BYTES)

_registered: set[int] = set()
_registry_lock = threading.Lock()


@dataclass(frozen=True)
class Sample:
    """One value of one metric with its labels."""

    name: str
    value: float
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return _KIND.get(self.name, GAUGE)

    @property
    def help(self) -> str:
        return _HELP.get(self.name, "")


def _bool_label(value: bool) -> str:
    return "true" if value else "false"


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if float(value).is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


class Collector:
    """Reads the state of every room of an instance into samples."""

    def __init__(self, instance: Any) -> None:
        self.instance = instance

    def _samples_for(self, live_id: str, live: Any) -> list[Sample]:
        instance = self.instance
        cache = instance.cache
        info = cache.get(live) if cache is not None else None
        if info is None:
            return []
        listening = instance.listener_manager.has_listener(live_id)
        samples = [
            Sample(
                LIVE_STATUS,
                1.0 if info.status else 0.0,
                {
                    "live_id": live_id,
                    "live_url": live.raw_url,
                    "live_host_name": info.host_name,
                    "live_room_name": info.room_name,
                    "live_listening": _bool_label(listening),
                },
            )
        ]
        if not (info.status and listening):
            return samples

        started = live.last_start_time
        if started is not None:
            samples.append(
                Sample(
                    LIVE_DURATION_SECONDS,
                    (datetime.now() - started).total_seconds(),
                    {
                        "live_id": live_id,
                        "live_url": live.raw_url,
                        "live_host_name": info.host_name,
                        "live_room_name": info.room_name,
                        "start_time": str(int(started.timestamp())),
                    },
                )
            )

        try:
            recorder = instance.recorder_manager.get_recorder(live_id)
            status = recorder.get_status() or {}
            total = float(status["total_size"])
        except Exception:
            return samples
        samples.append(
            Sample(
                RECORDER_TOTAL_BYTES,
                total,
                {
                    "live_id": live_id,
                    "live_url": live.raw_url,
                    "live_host_name": info.host_name,
                    "live_room_name": info.room_name,
                },
            )
        )
        return samples

    def collect(self) -> list[Sample]:
        """Samples for every room whose state has been fetched."""
        samples: list[Sample] = []
        for live_id, live in list(self.instance.lives.items()):
            samples.extend(self._samples_for(live_id, live))
        return samples

    def render(self) -> str:
        """The samples in the Prometheus text exposition format."""
        samples = self.collect()
        lines: list[str] = []
        for name in _ORDER:
            family = [sample for sample in samples if sample.name == name]
            if not family:
                continue
            lines.append(f"# HELP {name} {_HELP[name]}")
            lines.append(f"# TYPE {name} {_KIND[name]}")
            for sample in family:
                labels = ",".join(f'{key}="{_escape_label(value)}"' for key, value in sample.labels.items())
                lines.append(f"{name}{{{labels}}} {_format_value(sample.value)}")
        return "\n".join(lines) + ("\n" if lines else "")

    def start(self) -> None:
        """Register the collector; registering it twice raises ValueError."""
        with _registry_lock:
            if id(self) in _registered:
                raise ValueError("duplicate metrics collector registration attempted")
            _registered.add(id(self))

    def close(self) -> None:
        with _registry_lock:
            _registered.discard(id(self))