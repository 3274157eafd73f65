import os
import platform

from bililive.consts import APP_NAME, app_info


def test_app_info_describes_process():
    info = app_info()
    assert info.app_name == APP_NAME
    assert info.pid == os.getpid()
    assert info.python_version == platform.python_version()


def test_app_name_value():
    assert app_info().app_name == "BiliLive-go"


def test_to_dict_keys_and_values():
    info = app_info()
    data = info.to_dict()
    assert set(data) == {
        "app_name", "app_version", "build_time", "git_hash", "pid", "platform", "python_version",
    }
    assert data["pid"] == info.pid
    assert "/" in data["platform"]