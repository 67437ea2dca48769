"""
Tests for log formatters, sinks and root logging setup.
"""

import json
import logging
import sys

import pytest

from sage_adk.logging_config import (
    FALLBACK_ENTRY,
    JSONFormatter,
    TextFormatter,
    make_formatter,
    open_sink,
    rfc3339_nano,
    setup_logging,
)


def _record(msg="hello", level=logging.INFO, entry=None):
    record = logging.LogRecord("sage_adk.test", level, __file__, 1, msg, None, None)
    if entry is not None:
        record.entry = entry
    return record


class TestTimestamp:
    def test_nanosecond_precision(self):
        assert rfc3339_nano(1_700_000_000_123_456_789) == "2023-11-14T22:13:20.123456789Z"

    def test_zero_padded(self):
        assert rfc3339_nano(5) == "1970-01-01T00:00:00.000000005Z"


class TestJSONFormatter:
    def test_structured_entry(self):
        entry = {"timestamp": "t", "level": "info", "message": "hi", "k": 1}

        line = JSONFormatter().format(_record(entry=entry))

        assert json.loads(line) == entry

    def test_plain_record(self):
        line = JSONFormatter().format(_record("plain", logging.WARNING))

        data = json.loads(line)
        assert data["message"] == "plain"
        assert data["level"] == "warn"
        assert data["logger"] == "sage_adk.test"

    def test_fallback(self):
        loop = {}
        loop["loop"] = loop

        line = JSONFormatter().format(_record(entry={"message": "x", "data": loop}))

        assert line == FALLBACK_ENTRY


class TestTextFormatter:
    def test_order_and_quoting(self):
        entry = {
            "zeta": "a b",
            "timestamp": "t",
            "message": "hi",
            "level": "info",
            "alpha": "",
            "eq": "k=v",
        }

        line = TextFormatter().format(_record(entry=entry))

        assert line == 'timestamp=t level=info message=hi alpha="" eq="k=v" zeta="a b"'

    def test_non_string_values(self):
        entry = {"timestamp": "t", "level": "info", "message": "m", "n": 3, "ok": True}

        line = TextFormatter().format(_record(entry=entry))

        assert line.endswith("n=3 ok=true")


class TestMakeFormatter:
    def test_selects_formatter(self):
        assert isinstance(make_formatter("text"), TextFormatter)
        assert isinstance(make_formatter("TEXT"), TextFormatter)
        assert isinstance(make_formatter("json"), JSONFormatter)
        assert isinstance(make_formatter(""), JSONFormatter)


class TestOpenSink:
    def test_std_streams(self):
        assert open_sink("stdout") is sys.stdout
        assert open_sink("stderr") is sys.stderr
        assert open_sink("") is sys.stdout

    def test_file_appends(self, tmp_path):
        path = tmp_path / "agent.log"
        path.write_text("existing\n")

        stream = open_sink("file", str(path))
        stream.write("new\n")
        stream.close()

        assert path.read_text() == "existing\nnew\n"

    def test_file_requires_path(self):
        with pytest.raises(ValueError):
            open_sink("file", "")


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_configures_root(self):
        setup_logging("debug", "text")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, TextFormatter)

    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("SAGE_ADK_LOG_LEVEL", "warn")
        monkeypatch.setenv("SAGE_ADK_LOG_FORMAT", "json")

        setup_logging()

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
