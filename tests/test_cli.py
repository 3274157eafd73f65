from bililive.cli import gen_config_from_flags, get_config, main, parse_args
from bililive.configs import new_config, parse_duration


def test_parse_args_defaults():
    args = parse_args([])
    assert args.interval == 20
    assert args.output == "./"
    assert args.rpc_bind == ":8080"
    assert args.input == []
    assert args.enable_rpc is False


def test_inputs_become_listening_rooms():
    cfg = gen_config_from_flags(parse_args(["-i", "https://live.bilibili.com/1", "-i", "https://live.bilibili.com/2"]))
    assert [room.url for room in cfg.live_rooms] == ["https://live.bilibili.com/1", "https://live.bilibili.com/2"]
    assert all(room.is_listening for room in cfg.live_rooms)


def test_flags_copied_into_config(tmp_path):
    cfg = gen_config_from_flags(parse_args([
        "--enable-rpc", "--rpc-bind", "127.0.0.1:9000", "-t", "7", "-o", str(tmp_path),
        "--native-flv-parser", "--output-file-tmpl", "{{ host_name }}.flv", "--debug",
    ]))
    assert cfg.rpc.enable is True
    assert cfg.rpc.bind == "127.0.0.1:9000"
    assert cfg.interval == 7
    assert cfg.out_put_path == str(tmp_path)
    assert cfg.feature.use_native_flv_parser is True
    assert cfg.out_put_tmpl == "{{ host_name }}.flv"
    assert cfg.debug is True


def test_split_strategies():
    cfg = gen_config_from_flags(parse_args([
        "--split-strategies", "on_room_name_changed", "--split-strategies", "max_duration:2m",
    ]))
    assert cfg.video_split_strategies.on_room_name_changed is True
    assert cfg.video_split_strategies.max_duration == parse_duration("2m")


def test_bad_duration_is_ignored():
    cfg = gen_config_from_flags(parse_args(["--split-strategies", "max_duration:bogus"]))
    assert cfg.video_split_strategies.max_duration == new_config().video_split_strategies.max_duration


def test_get_config_from_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(
        "rpc:\n  enable: true\n  bind: 127.0.0.1:8080\n"
        f'interval: 30\nout_put_path: "{tmp_path.as_posix()}"\n',
        encoding="utf-8",
    )
    config = get_config(parse_args(["-c", str(path)]))
    assert config.file == str(path)
    assert config.interval == 30
    assert config.rpc.enable is True


def test_main_rejects_invalid_config(tmp_path, capsys):
    code = main(["--enable-rpc", "--rpc-bind", "127.0.0.1:8080", "--interval", "0", "-o", str(tmp_path)])
    assert code == 1
    assert "interval" in capsys.readouterr().err


def test_main_rejects_missing_config_file(tmp_path, capsys):
    code = main(["-c", str(tmp_path / "missing.yml")])
    assert code == 1
    assert capsys.readouterr().err != ""