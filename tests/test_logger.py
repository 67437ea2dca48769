"""
Tests for the structured logger.
"""

import io
import json
import re
import threading
from unittest import mock

import pytest

from sage_adk.observability.context import bind_context, with_agent_id, with_request_id
from sage_adk.observability.logger import Level, StructuredLogger, level_priority, parse_level
from tests.conftest import read_entries

TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{9}Z$")


class TestLevels:
    """Tests for level parsing and priority."""

    def test_priority_order(self):
        priorities = [level_priority(level) for level in ("debug", "info", "warn", "error", "fatal")]

        assert priorities == sorted(priorities)
        assert len(set(priorities)) == 5

    def test_unknown_level_ranks_as_info(self):
        assert level_priority("verbose") == level_priority(Level.INFO)

    def test_parse_level(self):
        assert parse_level("WARN") is Level.WARN

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_level("verbose")


class TestLevelFiltering:
    """A call is emitted iff its priority >= the logger's."""

    @pytest.mark.parametrize("configured", ["debug", "info", "warn", "error"])
    def test_filtering(self, configured, log_output):
        log = StructuredLogger(configured, output=log_output)

        log.debug("d")
        log.info("i")
        log.warn("w")
        log.error("e")

        emitted = [entry["level"] for entry in read_entries(log_output)]
        expected = [
            name
            for name in ("debug", "info", "warn", "error")
            if level_priority(name) >= level_priority(configured)
        ]
        assert emitted == expected

    def test_fatal_always_emitted(self, log_output):
        log = StructuredLogger("error", output=log_output)

        with mock.patch("sage_adk.observability.logger.os._exit") as exit_:
            log.fatal("boom", reason="disk full")

        exit_.assert_called_once_with(1)
        [entry] = read_entries(log_output)
        assert entry["level"] == "fatal"
        assert entry["reason"] == "disk full"

    def test_fatal_from_worker_thread_exits_process(self, log_output):
        log = StructuredLogger("info", output=log_output)

        with mock.patch("sage_adk.observability.logger.os._exit") as exit_:
            worker = threading.Thread(target=log.fatal, args=("worker died",))
            worker.start()
            worker.join()

        exit_.assert_called_once_with(1)
        assert read_entries(log_output)[0]["message"] == "worker died"

    def test_set_level(self, log_output):
        log = StructuredLogger("error", output=log_output)

        log.info("hidden")
        log.set_level("info")
        log.info("shown")

        assert [e["message"] for e in read_entries(log_output)] == ["shown"]

    def test_set_invalid_level(self, logger):
        with pytest.raises(ValueError):
            logger.set_level("loud")


class TestSampling:
    """Debug sampling."""

    def test_rate_zero_drops_all_debug(self, log_output):
        log = StructuredLogger("debug", output=log_output, sampling_rate=0.0)

        for _ in range(1000):
            log.debug("sampled")

        assert log_output.getvalue() == ""

    def test_rate_one_keeps_all_debug(self, log_output):
        log = StructuredLogger("debug", output=log_output, sampling_rate=1.0)

        for _ in range(1000):
            log.debug("sampled")

        assert len(read_entries(log_output)) == 1000

    def test_bernoulli_draw(self, log_output):
        log = StructuredLogger("debug", output=log_output, sampling_rate=0.5)

        with mock.patch("sage_adk.observability.logger.random.random", side_effect=[0.2, 0.7, 0.49]):
            log.debug("a")
            log.debug("b")
            log.debug("c")

        assert [e["message"] for e in read_entries(log_output)] == ["a", "c"]

    def test_sampling_only_affects_debug(self, log_output):
        log = StructuredLogger("debug", output=log_output, sampling_rate=0.0)

        log.info("kept")

        assert len(read_entries(log_output)) == 1

    def test_rate_clamped(self, logger):
        logger.set_sampling_rate(7)
        assert logger.sampling_rate == 1.0

        logger.set_sampling_rate(-3)
        assert logger.sampling_rate == 0.0


class TestEntryShape:
    """Serialized entry contents."""

    def test_fixed_keys(self, logger, log_output):
        logger.info("hello")

        [entry] = read_entries(log_output)
        assert entry["message"] == "hello"
        assert entry["level"] == "info"
        assert TIMESTAMP_RE.match(entry["timestamp"])

    def test_context_fields(self, logger, log_output):
        ctx = with_agent_id(with_request_id(None, "req-123"), "agent-1")

        logger.info("handled", ctx)

        line = log_output.getvalue()
        assert '"request_id": "req-123"' in line
        assert '"agent_id": "agent-1"' in line

    def test_ambient_context(self, logger, log_output):
        with bind_context(with_request_id(None, "req-ambient")):
            logger.info("handled")

        assert read_entries(log_output)[0]["request_id"] == "req-ambient"

    def test_precedence(self, logger, log_output):
        ctx = with_request_id(None, "from-context")
        child = logger.with_fields(request_id="from-logger", component="planner")

        child.info("one", ctx)
        child.info("two", ctx, request_id="from-call")

        first, second = read_entries(log_output)
        assert first["request_id"] == "from-logger"
        assert second["request_id"] == "from-call"
        assert second["component"] == "planner"

    def test_fixed_keys_win(self, logger, log_output):
        logger.info("real", message="fake", level="fake")

        [entry] = read_entries(log_output)
        assert entry["message"] == "real"
        assert entry["level"] == "info"

    def test_unserializable_values_stringified(self, logger, log_output):
        logger.info("obj", value=object())

        [entry] = read_entries(log_output)
        assert entry["value"].startswith("<object object")

    def test_circular_value_falls_back(self, logger, log_output):
        loop = {}
        loop["self"] = loop

        logger.info("loop", data=loop)

        assert json.loads(log_output.getvalue()) == {"error": "failed to marshal log entry"}

    def test_text_format(self, log_output):
        log = StructuredLogger("info", output=log_output, format_type="text")

        log.info("request completed", path="/", status=200)

        line = log_output.getvalue().strip()
        assert line.startswith("timestamp=")
        assert ' level=info message="request completed" path=/ status=200' in line


class TestWithFields:
    """Child loggers."""

    def test_parent_not_mutated(self, logger, log_output):
        child = logger.with_fields(component="planner")

        logger.info("parent")
        child.info("child")

        parent_entry, child_entry = read_entries(log_output)
        assert "component" not in parent_entry
        assert child_entry["component"] == "planner"
        assert logger.fields == {}

    def test_fields_accumulate(self, logger, log_output):
        child = logger.with_fields(a=1).with_fields(b=2)

        child.info("x")

        entry = read_entries(log_output)[0]
        assert entry["a"] == 1
        assert entry["b"] == 2

    def test_child_copies_level(self, log_output):
        parent = StructuredLogger("warn", output=log_output)
        child = parent.with_fields(component="x")

        child.info("hidden")
        child.set_level("info")
        child.info("shown")
        parent.info("still hidden")

        assert [e["message"] for e in read_entries(log_output)] == ["shown"]


class TestConcurrency:
    """Lines stay whole under concurrent writers."""

    def test_no_interleaved_lines(self):
        output = io.StringIO()
        log = StructuredLogger("info", output=output)

        def work(n):
            for i in range(100):
                log.info("line", worker=n, i=i, padding="x" * 200)

        threads = [threading.Thread(target=work, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = read_entries(output)
        assert len(entries) == 800
