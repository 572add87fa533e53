"""日志配置测试"""

from __future__ import annotations

import json
import logging

import pytest

from brewkit.utils.logger import JSONFormatter, reset_logging, setup_logging


@pytest.fixture(autouse=True)
def _restore_root():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    reset_logging()
    for h in saved_handlers:
        root.addHandler(h)
    root.setLevel(saved_level)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("brewkit.test", logging.INFO, __file__, 10, "安装 %s", ("foo",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self) -> None:
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["message"] == "安装 foo"
        assert entry["logger"] == "brewkit.test"
        assert "package" not in entry

    def test_context_fields(self) -> None:
        entry = json.loads(JSONFormatter().format(_record(package="foo", phase="building")))
        assert entry["package"] == "foo"
        assert entry["phase"] == "building"


class TestSetupLogging:
    def test_no_duplicate_handlers(self) -> None:
        setup_logging("DEBUG")
        setup_logging("DEBUG")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG

    def test_json_output(self) -> None:
        setup_logging("INFO", json_output=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)

    def test_unknown_level_falls_back(self) -> None:
        setup_logging("chatty")
        assert logging.getLogger().level == logging.INFO
