"""
Shared fixtures for observability tests.

Loggers write into an in-memory stream so tests can parse the emitted
lines; managers and Flask clients are built fresh per test.
"""

from __future__ import annotations

import io
import json
from typing import Any, Dict, List

import pytest

from sage_adk.observability.logger import StructuredLogger
from sage_adk.observability.manager import ObservabilityManager
from sage_adk.observability.metrics import PrometheusCollector


@pytest.fixture
def log_output() -> io.StringIO:
    """In-memory log sink."""
    return io.StringIO()


@pytest.fixture
def logger(log_output):
    """JSON logger at debug level writing to log_output."""
    return StructuredLogger("debug", output=log_output)


@pytest.fixture
def collector():
    return PrometheusCollector()


@pytest.fixture
def manager(log_output):
    """Manager with default config whose logs go to log_output."""
    return ObservabilityManager("agent-1", output=log_output)


@pytest.fixture
def client(manager):
    """Flask test client for the manager's observability endpoints."""
    app = manager.http_handler()
    app.config["TESTING"] = True
    return app.test_client()


def read_entries(stream: io.StringIO) -> List[Dict[str, Any]]:
    """Parse every JSON line written to a sink."""
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def sample_value(exposition: str, series: str) -> float:
    """Value of one exposed series line, e.g. 'requests_total{a="b"}'."""
    for line in exposition.splitlines():
        if line.startswith("#"):
            continue
        name, _, value = line.rpartition(" ")
        if name == series:
            return float(value)
    raise AssertionError(f"series {series!r} not found in:\n{exposition}")
