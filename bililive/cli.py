"""Command line entry point: load the config, build the rooms and run until signalled."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import signal
import sys
import threading
from typing import Any, Callable, Optional, Sequence
from urllib.parse import urlsplit

from cachetools import LRUCache

from bililive import bilibili  # noqa: F401  registers the platform
from bililive.configs import (
    RPC,
    Config,
    ConfigError,
    Feature,
    new_config,
    new_config_with_file,
    new_live_rooms_with_strings,
    parse_duration,
)
from bililive.consts import APP_NAME, APP_VERSION, app_info
from bililive.events import new_dispatcher
from bililive.instance import Instance
from bililive.listener_manager import ListenerManager
from bililive.live import new_live, with_kv_string_cookies, with_quality
from bililive.logs import new_logger
from bililive.metrics import Collector
from bililive.recorder_manager import RecorderManager
from bililive.server import Server
from bililive.utils import is_ffmpeg_exist, match1

CACHE_SIZE = 1024
LISTENER_START_INTERVAL = 5.0
WAIT_POLL_INTERVAL = 0.5


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog=APP_NAME, description="A command-line live stream save tools.")
    parser.add_argument("--version", action="version", version=APP_VERSION)
    parser.add_argument("--debug", action="store_true", help="Enable debug mode.")
    parser.add_argument("-t", "--interval", type=int, default=20, help="Interval of query live status")
    parser.add_argument("-o", "--output", default="./", help="Output file path.")
    parser.add_argument(
        "--ffmpeg-path", default="",
        help="Path for FFMPEG (default: find FFMPEG from your environment variable)",
    )
    parser.add_argument("-i", "--input", action="append", default=[], help="Live room urls")
    parser.add_argument("-c", "--config", default="", help="Config file.")
    parser.add_argument("--enable-rpc", action="store_true", help="Enable RPC server.")
    parser.add_argument("--rpc-bind", default=":8080", help="RPC server bind address")
    parser.add_argument("--native-flv-parser", action="store_true", help="use native flv parser")
    parser.add_argument("--output-file-tmpl", default="", help="output file name template")
    parser.add_argument(
        "--split-strategies", action="append", default=[],
        help='video split strategies, support "on_room_name_changed", "max_duration:(duration)"',
    )
    return parser.parse_args(argv)


def gen_config_from_flags(args: argparse.Namespace) -> Config:
    """Build a config from command line flags."""
    cfg = new_config()
    cfg.rpc = RPC(enable=args.enable_rpc, bind=args.rpc_bind)
    cfg.debug = args.debug
    cfg.interval = args.interval
    cfg.out_put_path = args.output
    cfg.ffmpeg_path = args.ffmpeg_path
    cfg.out_put_tmpl = args.output_file_tmpl
    cfg.live_rooms = new_live_rooms_with_strings(args.input)
    cfg.feature = Feature(use_native_flv_parser=args.native_flv_parser)

    strategies = cfg.video_split_strategies
    for strategy in args.split_strategies:
        if strategy == "on_room_name_changed":
            strategies = dataclasses.replace(strategies, on_room_name_changed=True)
        text = match1(r"max_duration:(.*)", strategy)
        if text:
            try:
                strategies = dataclasses.replace(strategies, max_duration=parse_duration(text))
            except (ValueError, ConfigError):
                pass
    cfg.video_split_strategies = strategies
    return cfg


def _config_besides_program() -> Config:
    directory = os.path.dirname(os.path.abspath(sys.argv[0] if sys.argv and sys.argv[0] else "."))
    return new_config_with_file(os.path.join(directory, "config.yml"))


def get_config(args: argparse.Namespace) -> Config:
    """The config from the file given, or else from the flags; raises if it is not valid."""
    if args.config:
        config = new_config_with_file(args.config)
    else:
        config = gen_config_from_flags(args)
    if not config.rpc.enable and not config.live_rooms:
        try:
            config = _config_besides_program()
        except Exception:
            pass
    config.verify()
    return config


def _load_lives(instance: Instance, logger: logging.Logger) -> None:
    config = instance.config
    for room in config.live_rooms:
        try:
            parts = urlsplit(room.url)
            _ = parts.port
        except ValueError as exc:
            logger.error(str(exc), extra={"fields": {"url": room}})
            continue
        host = parts.netloc.rpartition("@")[2]
        options = []
        cookies = (config.cookies or {}).get(host)
        if cookies is not None:
            options.append(with_kv_string_cookies(parts, cookies))
        options.append(with_quality(room.quality))
        try:
            live = new_live(parts, instance.cache, *options)
        except Exception as exc:
            logger.error(str(exc), extra={"fields": {"url": room}})
            continue
        if live.live_id in instance.lives:
            logger.error("%s is exist!", room)
            continue
        instance.lives[live.live_id] = live
        room.live_id = live.live_id


def _shutdown(instance: Instance) -> None:
    if instance.config.rpc.enable and instance.server is not None:
        instance.server.close()
    instance.listener_manager.close()
    instance.recorder_manager.close()


def _install_signal_handlers(on_signal: Callable[[], None]) -> dict[int, Any]:
    if threading.current_thread() is not threading.main_thread():
        return {}
    previous: dict[int, Any] = {}

    def handler(signum: int, frame: Any) -> None:
        on_signal()

    for name in ("SIGHUP", "SIGINT", "SIGTERM"):
        signum = getattr(signal, name, None)
        if signum is not None:
            previous[signum] = signal.signal(signum, handler)
    return previous


def _restore_signal_handlers(previous: dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = get_config(args)
    except Exception as exc:
        sys.stderr.write(str(exc))
        return 1

    instance = Instance(config=config, cache=LRUCache(maxsize=CACHE_SIZE))
    logger = new_logger(instance)
    logger.info("%s Version: %s Link Start", APP_NAME, APP_VERSION)
    if config.file:
        logger.debug("config path: %s.", config.file)
        logger.debug("other flags have been ignored.")
    else:
        logger.debug("config file is not used.")
        logger.debug("flag: %s used.", list(sys.argv if argv is None else argv))
    logger.debug("%r", app_info())
    logger.debug("%r", config)

    if not is_ffmpeg_exist(config):
        logger.critical("FFmpeg binary not found, Please Check.")
        return 1

    new_dispatcher(instance)
    _load_lives(instance, logger)

    if config.rpc.enable:
        Server(instance).start()
    listener_manager = ListenerManager(instance)
    recorder_manager = RecorderManager(instance)
    listener_manager.start()
    recorder_manager.start()
    try:
        Collector(instance).start()
    except ValueError as exc:
        logger.critical("failed to init metrics collector, error: %s", exc)
        return 1

    stopping = threading.Event()

    def on_signal() -> None:
        if stopping.is_set():
            return
        stopping.set()
        threading.Thread(target=_shutdown, args=(instance,), daemon=True, name="shutdown").start()

    previous = _install_signal_handlers(on_signal)
    try:
        for live in list(instance.lives.values()):
            try:
                room = instance.config.get_live_room_by_url(live.raw_url)
            except Exception as exc:
                logger.error(str(exc), extra={"fields": {"room": live.raw_url}})
                raise
            if room.is_listening:
                try:
                    listener_manager.add_listener(live)
                except Exception as exc:
                    logger.error(str(exc), extra={"fields": {"url": live.raw_url}})
            stopping.wait(LISTENER_START_INTERVAL)
        while not instance.wait_group.wait(WAIT_POLL_INTERVAL):
            pass
    finally:
        _restore_signal_handlers(previous)
    logger.info("Bye~")
    return 0


if __name__ == "__main__":
    sys.exit(main())