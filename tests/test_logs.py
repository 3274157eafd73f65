import logging

import pytest

from bililive.configs import LogConfig, new_config
from bililive.instance import Instance
from bililive.logs import LAST_LOG_NAME, new_logger


def _instance(folder, debug=False, **log):
    config = new_config()
    config.debug = debug
    config.log = LogConfig(out_put_folder=str(folder), **log)
    return Instance(config=config)


def _close(logger):
    for handler in logger.handlers:
        handler.close()


def test_writes_last_log(tmp_path):
    inst = _instance(tmp_path)
    logger = new_logger(inst)
    assert inst.logger is logger
    logger.info("hello world", extra={"fields": {"room": "r1"}})
    logger.debug("hidden")
    _close(logger)
    text = (tmp_path / LAST_LOG_NAME).read_text(encoding="utf-8")
    assert "level=info" in text
    assert 'msg="hello world"' in text
    assert "room=r1" in text
    assert "hidden" not in text


def test_levels(tmp_path):
    quiet = new_logger(_instance(tmp_path))
    loud = new_logger(_instance(tmp_path, debug=True))
    _close(quiet)
    _close(loud)
    assert quiet.level == logging.INFO
    assert loud.level == logging.DEBUG


def test_every_log_file(tmp_path):
    logger = new_logger(_instance(tmp_path, save_every_log=True, save_last_log=False))
    logger.info("run")
    _close(logger)
    runs = list(tmp_path.glob("run-*.log"))
    assert len(runs) == 1
    assert "run" in runs[0].read_text(encoding="utf-8")
    assert not (tmp_path / LAST_LOG_NAME).exists()


def test_missing_folder(tmp_path):
    with pytest.raises(FileNotFoundError):
        new_logger(_instance(tmp_path / "missing"))