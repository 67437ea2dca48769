"""
Tests for the request logging / metrics middleware.
"""

import pytest
from flask import Flask, abort

from sage_adk.observability.agent_metrics import (
    METRIC_ERRORS_TOTAL,
    METRIC_REQUEST_DURATION,
    METRIC_REQUESTS_TOTAL,
    AgentMetrics,
)
from sage_adk.observability.context import current_context, get_agent_id, get_request_id
from sage_adk.observability.middleware import ObservabilityMiddleware
from tests.conftest import read_entries


@pytest.fixture
def agent_metrics(collector):
    return AgentMetrics(collector)


@pytest.fixture
def app(logger, agent_metrics):
    app = Flask(__name__)

    @app.route("/hello")
    def hello():
        ctx = current_context()
        return f"hello {get_request_id(ctx)} {get_agent_id(ctx)}"

    @app.route("/missing")
    def missing():
        abort(404)

    @app.route("/broken")
    def broken():
        abort(503)

    ObservabilityMiddleware(logger, agent_metrics, "agent-1").init_app(app)
    return app


class TestObservabilityMiddleware:
    def test_context_visible_to_handler(self, app):
        response = app.test_client().get("/hello", headers={"X-Request-ID": "req-123"})

        assert response.status_code == 200
        assert response.get_data(as_text=True) == "hello req-123 agent-1"

    def test_logs_incoming_and_completed(self, app, log_output):
        app.test_client().get("/hello", headers={"X-Request-ID": "req-123"})

        incoming, completed = read_entries(log_output)

        assert incoming["message"] == "incoming request"
        assert incoming["method"] == "GET"
        assert incoming["path"] == "/hello"
        assert incoming["request_id"] == "req-123"
        assert incoming["agent_id"] == "agent-1"

        assert completed["message"] == "request completed"
        assert completed["level"] == "info"
        assert completed["status"] == 200
        assert completed["bytes_written"] == len("hello req-123 agent-1")
        assert completed["duration_sec"] >= 0
        assert completed["request_id"] == "req-123"

    def test_without_request_id(self, app, log_output):
        app.test_client().get("/hello")

        entries = read_entries(log_output)
        assert "request_id" not in entries[0]
        assert entries[0]["agent_id"] == "agent-1"

    def test_records_request_metrics(self, app, collector):
        app.test_client().get("/hello")
        app.test_client().get("/hello")

        labels = {"agent_id": "agent-1", "protocol": "http"}
        assert collector.get(METRIC_REQUESTS_TOTAL).get(labels) == 2
        assert collector.get(METRIC_REQUEST_DURATION).get_count(labels) == 2
        assert collector.get(METRIC_ERRORS_TOTAL) is None

    def test_https_protocol_label(self, app, collector):
        app.test_client().get("/hello", base_url="https://localhost")

        labels = {"agent_id": "agent-1", "protocol": "https"}
        assert collector.get(METRIC_REQUESTS_TOTAL).get(labels) == 1

    def test_client_error(self, app, collector, log_output):
        response = app.test_client().get("/missing")

        assert response.status_code == 404
        errors = collector.get(METRIC_ERRORS_TOTAL)
        assert errors.get({"agent_id": "agent-1", "type": "client_error"}) == 1

        final = read_entries(log_output)[-1]
        assert final["message"] == "request error"
        assert final["level"] == "error"
        assert final["status"] == 404

    def test_server_error(self, app, collector):
        app.test_client().get("/broken")

        errors = collector.get(METRIC_ERRORS_TOTAL)
        assert errors.get({"agent_id": "agent-1", "type": "server_error"}) == 1
        assert collector.get(METRIC_REQUESTS_TOTAL).get({"agent_id": "agent-1", "protocol": "http"}) == 1

    def test_wrapped_app_exception(self, logger, agent_metrics, collector, log_output):
        def exploding_app(environ, start_response):
            raise RuntimeError("kaboom")

        wrapped = ObservabilityMiddleware(logger, agent_metrics, "agent-1").wrap(exploding_app)
        environ = {"REQUEST_METHOD": "GET", "PATH_INFO": "/x", "wsgi.url_scheme": "http"}

        with pytest.raises(RuntimeError):
            wrapped(environ, lambda status, headers, exc_info=None: None)

        errors = collector.get(METRIC_ERRORS_TOTAL)
        assert errors.get({"agent_id": "agent-1", "type": "server_error"}) == 1
        assert read_entries(log_output)[-1]["status"] == 500

    def test_context_reset_after_request(self, app):
        app.test_client().get("/hello", headers={"X-Request-ID": "req-123"})

        assert get_request_id(current_context()) == ""
