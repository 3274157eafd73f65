import os
import threading
import types
from pathlib import Path
from urllib.parse import urlsplit

import pytest

from bililive.configs import Config
from bililive.ffmpeg import FFmpegParser
from bililive.flv import FlvParser
from bililive.live import Info
from bililive.parser import Parser, StatusParser
from bililive.recorder import (
    RECORDER_START,
    RECORDER_STOP,
    ParserNotSupportStatusError,
    Recorder,
    build_output_file,
    remove_empty_file,
    select_parser,
)


class FakeLive:
    platform_cn_name = "test"
    raw_url = "http://example.com/room"
    live_id = "live-1"

    def __init__(self, urls=None):
        self.urls = urls if urls is not None else [urlsplit("http://example.com/live/stream.flv")]

    def get_stream_urls(self):
        return self.urls

    def get_info(self):
        return Info(live=self, host_name="host", room_name="room")


class RecordingDispatcher:
    def __init__(self):
        self.events = []

    def dispatch_event(self, event):
        self.events.append(event.type)


class BlockingParser(Parser):
    def __init__(self):
        self.calls = []
        self.started = threading.Event()
        self.stopped = threading.Event()

    def parse_live_stream(self, url, live, file):
        self.calls.append(file)
        self.started.set()
        self.stopped.wait(5)

    def stop(self):
        self.stopped.set()


class ReportingParser(BlockingParser, StatusParser):
    def status(self):
        return {"total_size": "7"}


def make_instance(tmp_path, live):
    config = Config(out_put_path=str(tmp_path))
    return types.SimpleNamespace(
        config=config,
        cache={live: live.get_info()},
        event_dispatcher=RecordingDispatcher(),
        logger=None,
    )


def info_for(**kwargs):
    return Info(live=FakeLive(), host_name="host", room_name="room", **kwargs)


def test_select_parser_by_path_and_feature():
    flv_url = urlsplit("http://example.com/a.flv")
    assert type(select_parser(flv_url, True, {})) is FlvParser
    ffmpeg_for_flv = select_parser(flv_url, False, {"timeout_in_us": "7"})
    assert type(ffmpeg_for_flv) is FFmpegParser
    assert ffmpeg_for_flv.timeout_in_us == "7"
    ffmpeg_for_m3u8 = select_parser(urlsplit("http://example.com/a.m3u8"), True, {"timeout_in_us": "8"})
    assert type(ffmpeg_for_m3u8) is FFmpegParser
    assert ffmpeg_for_m3u8.timeout_in_us == "8"


def test_default_file_name(tmp_path):
    config = Config(out_put_path=str(tmp_path))
    file = build_output_file(config, info_for(), urlsplit("http://example.com/a.flv"))
    path = Path(file)
    assert path.parent == tmp_path / "test" / "host"
    assert path.name.startswith("[")
    assert path.name.endswith("][host][room].flv")


def test_m3u8_and_audio_only_suffixes(tmp_path):
    config = Config(out_put_path=str(tmp_path))
    ts = build_output_file(config, info_for(), urlsplit("http://example.com/a.m3u8"))
    assert ts.endswith("][host][room].ts")
    aac = build_output_file(config, info_for(audio_only=True), urlsplit("http://example.com/a.flv"))
    assert aac.endswith("][host][room].aac")


def test_user_template_and_fallback(tmp_path):
    config = Config(out_put_path=str(tmp_path), out_put_tmpl="{{ host_name }}.flv")
    assert build_output_file(config, info_for(), "http://example.com/a.flv") == os.path.join(str(tmp_path), "host.flv")
    config.out_put_tmpl = "{{ broken"
    assert build_output_file(config, info_for(), "http://example.com/a.flv").endswith("[host][room].flv")


def test_file_name_filter_applied(tmp_path):
    config = Config(out_put_path=str(tmp_path), out_put_tmpl="{{ host_name | filenameFilter }}.flv")
    info = Info(live=FakeLive(), host_name="a/b", room_name="room")
    assert Path(build_output_file(config, info, "http://example.com/a.flv")).name == "a_b.flv"


def test_remove_empty_file(tmp_path):
    empty = tmp_path / "empty.flv"
    empty.write_bytes(b"")
    full = tmp_path / "full.flv"
    full.write_bytes(b"data")
    remove_empty_file(str(empty))
    remove_empty_file(str(full))
    remove_empty_file(str(tmp_path / "missing.flv"))
    assert not empty.exists()
    assert full.read_bytes() == b"data"


def test_try_record_without_urls_does_not_parse(tmp_path):
    live = FakeLive(urls=[])
    created = []
    recorder = Recorder(make_instance(tmp_path, live), live,
                        parser_factory=lambda *a: created.append(a) or BlockingParser(), retry_delay=0)
    recorder.try_record()
    assert created == []


def test_start_record_and_close(tmp_path):
    live = FakeLive()
    instance = make_instance(tmp_path, live)
    parsers = []
    configs = []

    def factory(url, native, cfg):
        configs.append(cfg)
        p = BlockingParser()
        parsers.append(p)
        return p

    recorder = Recorder(instance, live, parser_factory=factory)
    recorder.start()
    recorder.start()
    assert parsers and parsers[0].started.wait(5)
    file = Path(parsers[0].calls[0])
    assert file.parent == tmp_path / "test" / "host"
    assert file.parent.is_dir()
    assert configs[0]["timeout_in_us"] == str(instance.config.timeout_in_us)
    with pytest.raises(ParserNotSupportStatusError):
        recorder.get_status()
    recorder.close()
    recorder.close()
    assert parsers[0].stopped.is_set()
    assert instance.event_dispatcher.events == [RECORDER_START, RECORDER_STOP]


def test_status_from_reporting_parser(tmp_path):
    live = FakeLive()
    parsers = []

    def factory(url, native, cfg):
        p = ReportingParser()
        parsers.append(p)
        return p

    recorder = Recorder(make_instance(tmp_path, live), live, parser_factory=factory)
    recorder.start()
    assert parsers and parsers[0].started.wait(5)
    assert recorder.get_status() == {"total_size": "7"}
    recorder.close()
    assert parsers[0].stopped.is_set()