from datetime import timedelta

import pytest

from bililive.configs import (
    RPC,
    Config,
    ConfigError,
    LiveRoom,
    VideoSplitStrategies,
    new_config,
    new_config_with_bytes,
    new_config_with_file,
    new_live_rooms_with_strings,
    parse_duration,
)


def test_new_config_with_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("rpc:\n  enable: true\n  bind: 127.0.0.1:8080\ninterval: 20\n", encoding="utf-8")
    config = new_config_with_file(str(path))
    assert config.file == str(path)
    assert config.interval == 20


def test_new_config_with_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        new_config_with_file(str(tmp_path / "missing.yml"))


def test_rpc_verify():
    rpc = RPC(enable=False, bind="foo@bar")
    rpc.verify()
    assert rpc.enable is False
    rpc.enable = True
    with pytest.raises(ConfigError):
        rpc.verify()


def test_config_verify(tmp_path):
    cfg = Config(rpc=RPC(), interval=30, out_put_path=str(tmp_path))
    cfg.verify()
    cfg.interval = 0
    with pytest.raises(ConfigError):
        cfg.verify()
    cfg.interval = 30
    cfg.out_put_path = str(tmp_path / "foobar")
    with pytest.raises(ConfigError):
        cfg.verify()
    cfg.out_put_path = str(tmp_path)
    cfg.rpc.enable = False
    with pytest.raises(ConfigError):
        cfg.verify()


def test_verify_max_duration(tmp_path):
    cfg = Config(out_put_path=str(tmp_path))
    cfg.video_split_strategies = VideoSplitStrategies(max_duration=timedelta(seconds=30))
    with pytest.raises(ConfigError):
        cfg.verify()
    cfg.video_split_strategies.max_duration = timedelta(minutes=1)
    cfg.verify()
    assert cfg.video_split_strategies.max_duration == timedelta(minutes=1)


def test_defaults():
    config = new_config()
    assert config.rpc.enable is True
    assert config.rpc.bind == "127.0.0.1:8080"
    assert config.interval == 30
    assert config.out_put_path == "./"
    assert config.log.save_last_log is True
    assert config.timeout_in_us == 60000000
    assert config.live_rooms == []


def test_live_rooms_string_and_mapping():
    data = (
        "live_rooms:\n"
        "  - https://live.bilibili.com/1\n"
        "  - url: https://live.bilibili.com/2\n"
        "    is_listening: false\n"
        "    quality: 1\n"
        "  - url: https://live.bilibili.com/3\n"
    )
    config = new_config_with_bytes(data.encode())
    assert config.live_rooms[0] == LiveRoom(url="https://live.bilibili.com/1", is_listening=True)
    assert config.live_rooms[1].is_listening is False
    assert config.live_rooms[1].quality == 1
    assert config.live_rooms[2].is_listening is True
    assert config.interval == 30


def test_nested_sections_keep_defaults():
    config = new_config_with_bytes(b"log:\n  save_every_log: true\n")
    assert config.log.save_every_log is True
    assert config.log.save_last_log is True
    assert config.log.out_put_folder == "./"


def test_invalid_documents():
    with pytest.raises(ConfigError):
        new_config_with_bytes(b"just a string")
    with pytest.raises(ConfigError):
        new_config_with_bytes(b"interval: [1, 2]")
    with pytest.raises(ConfigError):
        new_config_with_bytes(b"live_rooms:\n  - [a, b]\n")


def test_max_duration_from_yaml():
    config = new_config_with_bytes(b"video_split_strategies:\n  max_duration: 1h30m\n")
    assert config.video_split_strategies.max_duration == timedelta(hours=1, minutes=30)
    config = new_config_with_bytes(b"video_split_strategies:\n  max_duration: 120000000000\n")
    assert config.video_split_strategies.max_duration == timedelta(minutes=2)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("0", timedelta(0)),
        ("1.5s", timedelta(seconds=1.5)),
        ("2m", timedelta(minutes=2)),
        ("1h1m1s", timedelta(hours=1, minutes=1, seconds=1)),
        ("-3s", timedelta(seconds=-3)),
        ("250ms", timedelta(milliseconds=250)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "1", "abc", "1x", "-"])
def test_parse_duration_invalid(text):
    with pytest.raises(ConfigError):
        parse_duration(text)


def test_new_live_rooms_with_strings():
    rooms = new_live_rooms_with_strings(["a", "b"])
    assert [room.url for room in rooms] == ["a", "b"]
    assert all(room.is_listening and room.quality == 0 for room in rooms)
    assert new_live_rooms_with_strings([]) == []


def test_get_and_remove_live_room():
    config = Config(live_rooms=new_live_rooms_with_strings(["a", "b", "c"]))
    room = config.get_live_room_by_url("b")
    assert room.url == "b"
    room.is_listening = False
    assert config.live_rooms[1].is_listening is False
    config.remove_live_room_by_url("b")
    assert [r.url for r in config.live_rooms] == ["a", "c"]
    assert config.get_live_room_by_url("c").url == "c"
    with pytest.raises(ConfigError):
        config.remove_live_room_by_url("b")
    with pytest.raises(ConfigError):
        config.get_live_room_by_url("b")


def test_marshal_round_trip(tmp_path):
    config = new_config()
    with pytest.raises(ConfigError):
        config.marshal()
    with pytest.raises(ConfigError):
        config.get_file_path()
    config.file = str(tmp_path / "out.yml")
    config.live_rooms = [LiveRoom(url="https://live.bilibili.com/9", is_listening=False, quality=2)]
    config.cookies = {"live.bilibili.com": "a=b"}
    config.video_split_strategies.max_duration = timedelta(hours=2, seconds=5)
    config.marshal()
    loaded = new_config_with_file(config.get_file_path())
    assert loaded.live_rooms == config.live_rooms
    assert loaded.cookies == config.cookies
    assert loaded.video_split_strategies.max_duration == config.video_split_strategies.max_duration
    assert loaded.to_dict() == config.to_dict()