"""
Tests for OpenTelemetry tracing and its link to the request context.
"""

import io

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode, format_span_id, format_trace_id

from sage_adk.observability.config import TracingConfig
from sage_adk.observability.context import current_context
from sage_adk.observability.logger import StructuredLogger
from sage_adk.observability.tracing import (
    add_event,
    extract_context,
    init_tracing,
    inject_context,
    record_error,
    set_attributes,
    span_ids,
)
from sage_adk.state import Message
from tests.conftest import read_entries


@pytest.fixture
def exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracing(exporter):
    config = TracingConfig(enabled=True, endpoint="http://collector:4318/v1/traces", sampling_rate=1.0)
    tracing = init_tracing(config, "agent-1", exporter)
    yield tracing
    tracing.shutdown()


class TestInit:
    def test_disabled_returns_none(self):
        assert init_tracing(TracingConfig()) is None

    def test_resource_and_sampler(self, exporter):
        config = TracingConfig(enabled=True, endpoint="http://collector:4318/v1/traces", sampling_rate=0.25)

        tracing = init_tracing(config, "agent-1", exporter)

        attributes = tracing.provider.resource.attributes
        assert attributes["service.name"] == "sage-agent"
        assert attributes["service.instance.id"] == "agent-1"
        assert tracing.provider.sampler.rate == 0.25
        tracing.shutdown()


class TestStartSpan:
    def test_ids_bound_into_context(self, tracing, exporter):
        log_output = io.StringIO()
        log = StructuredLogger("info", output=log_output)

        with tracing.start_span("plan", step=3) as span:
            trace_id, span_id = span_ids(span)
            assert current_context().trace_id == trace_id
            log.info("planning")

        assert current_context().trace_id == ""
        [entry] = read_entries(log_output)
        assert entry["trace_id"] == trace_id
        assert entry["span_id"] == span_id
        [finished] = exporter.get_finished_spans()
        assert finished.attributes["step"] == 3

    def test_nested_spans_share_trace(self, tracing, exporter):
        with tracing.start_span("outer") as outer:
            with tracing.start_span("inner"):
                pass

        inner, outer_span = exporter.get_finished_spans()
        assert inner.context.trace_id == outer_span.context.trace_id
        assert inner.parent.span_id == outer.get_span_context().span_id

    def test_exception_recorded_and_raised(self, tracing, exporter):
        with pytest.raises(RuntimeError):
            with tracing.start_span("step"):
                raise RuntimeError("tool failed")

        [span] = exporter.get_finished_spans()
        assert span.status.status_code is StatusCode.ERROR
        assert span.events[0].name == "exception"


class TestSpanHelpers:
    def test_events_and_attributes(self, tracing, exporter):
        with tracing.start_span("step") as span:
            add_event(span, "tool selected", tool="search")
            set_attributes(span, retries=2, tags=["a", "b"], skipped=None)

        [finished] = exporter.get_finished_spans()
        assert finished.events[0].name == "tool selected"
        assert finished.events[0].attributes["tool"] == "search"
        assert finished.attributes["retries"] == 2
        assert finished.attributes["tags"] == ("a", "b")
        assert "skipped" not in finished.attributes

    def test_record_error_message(self, tracing, exporter):
        with tracing.start_span("step") as span:
            record_error(span, "upstream returned 502")

        [finished] = exporter.get_finished_spans()
        assert finished.status.status_code is StatusCode.ERROR
        assert finished.status.description == "upstream returned 502"
        assert finished.events == ()

    def test_helpers_ignore_missing_span(self):
        record_error(None, ValueError("x"))
        add_event(None, "event")
        set_attributes(None, key="value")


class TestPropagation:
    def test_inject_then_extract_continues_trace(self, tracing, exporter):
        carrier = {}
        with tracing.start_span("send") as span:
            inject_context(carrier)
            trace_id, span_id = span_ids(span)

        assert carrier["traceparent"] == f"00-{trace_id}-{span_id}-01"

        with tracing.start_span("receive", parent=extract_context(carrier)):
            pass

        _, received = exporter.get_finished_spans()
        assert format_trace_id(received.context.trace_id) == trace_id
        assert format_span_id(received.parent.span_id) == span_id


class TestMessageTracing:
    def test_successful_handler(self, tracing, exporter):
        handler = tracing.trace_messages(lambda message: message.content.upper())

        assert handler(Message(id="m1", role="user", content="hi")) == "HI"

        [span] = exporter.get_finished_spans()
        assert span.name == "process_message"
        assert span.attributes["message.id"] == "m1"
        assert span.attributes["message.role"] == "user"
        assert span.status.status_code is StatusCode.OK

    def test_failing_handler(self, tracing, exporter):
        def handler(message):
            raise ValueError("bad message")

        traced = tracing.trace_messages(handler)

        with pytest.raises(ValueError):
            traced(Message(id="m1"))

        [span] = exporter.get_finished_spans()
        assert span.status.status_code is StatusCode.ERROR
