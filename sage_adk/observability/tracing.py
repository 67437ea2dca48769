"""
Tracing — OpenTelemetry spans whose IDs flow into the request context.

Spans are created from a private `TracerProvider` configured with the
service name, a trace-ID ratio sampler and an OTLP/HTTP exporter. While a
span started through `Tracing.start_span` is open, its trace and span IDs
are bound into the ambient `RequestContext`, so every log line written
inside it carries `trace_id` and `span_id`.

The provider is not installed globally. Call
`opentelemetry.trace.set_tracer_provider(tracing.provider)` to let other
instrumentation share it.

## Usage

    from sage_adk.observability.tracing import init_tracing

    tracing = init_tracing(config.tracing, agent_id="agent-1")
    if tracing is not None:
        with tracing.start_span("plan", step=3) as span:
            add_event(span, "tool selected", tool="search")
            logger.info("planning")       # carries trace_id + span_id
        tracing.shutdown()

    # Cross-process propagation (W3C traceparent)
    headers = {}
    inject_context(headers)
    parent = extract_context(incoming_headers)
"""

from __future__ import annotations

import functools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Mapping, MutableMapping, Optional, Tuple, TypeVar, Union

from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, format_span_id, format_trace_id
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from .config import TracingConfig
from .context import RequestContext, bind_context, current_context, with_span_id, with_trace_id

logger = logging.getLogger(__name__)

TRACER_NAME = "sage-adk"

_propagator = TraceContextTextMapPropagator()

F = TypeVar("F", bound=Callable[..., Any])


class Tracing:
    """A tracer bound to one provider."""

    def __init__(self, provider: TracerProvider):
        self.provider = provider
        self._tracer = provider.get_tracer(TRACER_NAME)

    @contextmanager
    def start_span(
        self,
        name: str,
        ctx: Optional[RequestContext] = None,
        parent: Optional[Context] = None,
        kind: SpanKind = SpanKind.INTERNAL,
        **attributes: Any,
    ) -> Iterator[Span]:
        """
        Open a span and bind its IDs into the request context.

        Args:
            name: Span name
            ctx: Request context to derive from (ambient context when None)
            parent: Extracted remote context to continue (current span when None)
            kind: OpenTelemetry span kind
            **attributes: Initial span attributes

        An exception escaping the block is recorded on the span, which is
        marked as an error, and re-raised.
        """
        base = ctx if ctx is not None else current_context()
        with self._tracer.start_as_current_span(
            name, context=parent, kind=kind, attributes=_attributes(attributes) or None
        ) as span:
            with bind_context(context_with_span(base, span)):
                yield span

    def trace_messages(self, handler: F) -> F:
        """
        Decorate a message handler so each call runs in a "process_message" span.

        The message's `id` and `role` become span attributes when present.
        """

        @functools.wraps(handler)
        def traced(message: Any, *args: Any, **kwargs: Any) -> Any:
            with self.start_span("process_message", kind=SpanKind.CONSUMER) as span:
                for attr in ("id", "role"):
                    value = getattr(message, attr, None)
                    if isinstance(value, str) and value:
                        span.set_attribute(f"message.{attr}", value)
                result = handler(message, *args, **kwargs)
                span.set_status(Status(StatusCode.OK))
                return result

        return traced  # type: ignore[return-value]

    def shutdown(self) -> None:
        """Flush pending spans and stop the exporter."""
        self.provider.shutdown()


def init_tracing(
    config: TracingConfig,
    agent_id: str = "",
    exporter: Optional[SpanExporter] = None,
) -> Optional[Tracing]:
    """
    Build tracing from config.

    Returns None when tracing is disabled. Without an explicit exporter,
    spans are batched to the OTLP/HTTP endpoint in `config.endpoint`; an
    explicit exporter receives each span synchronously when it ends.
    """
    if not config.enabled:
        return None

    resource_attributes = {"service.name": config.service_name}
    if agent_id:
        resource_attributes["service.instance.id"] = agent_id

    provider = TracerProvider(
        resource=Resource.create(resource_attributes),
        sampler=TraceIdRatioBased(config.sampling_rate),
    )
    if exporter is None:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.endpoint)))
        logger.info(f"Tracing enabled: exporting to {config.endpoint} (sampling {config.sampling_rate})")
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    return Tracing(provider)


def span_ids(span: Span) -> Tuple[str, str]:
    """Hex trace and span IDs of a span, empty strings if it has none."""
    span_context = span.get_span_context()
    if not span_context.is_valid:
        return "", ""
    return format_trace_id(span_context.trace_id), format_span_id(span_context.span_id)


def context_with_span(ctx: Optional[RequestContext], span: Span) -> RequestContext:
    """Derive a request context carrying the span's trace and span IDs."""
    trace_id, span_id = span_ids(span)
    if not trace_id:
        return ctx if ctx is not None else current_context()
    return with_span_id(with_trace_id(ctx, trace_id), span_id)


def record_error(span: Optional[Span], error: Union[BaseException, str]) -> None:
    """Mark a span as failed, recording the exception when one is given."""
    if span is None:
        return
    if isinstance(error, BaseException):
        span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, str(error)))


def add_event(span: Optional[Span], name: str, **attributes: Any) -> None:
    if span is not None:
        span.add_event(name, attributes=_attributes(attributes))


def set_attributes(span: Optional[Span], **attributes: Any) -> None:
    if span is not None:
        span.set_attributes(_attributes(attributes))


def inject_context(carrier: MutableMapping[str, str], context: Optional[Context] = None) -> None:
    """Write the current (or given) trace context into `carrier` as W3C headers."""
    _propagator.inject(carrier, context=context)


def extract_context(carrier: Mapping[str, str]) -> Context:
    """Read a W3C trace context from `carrier` for use as a span parent."""
    return _propagator.extract(carrier)


def _attributes(values: Mapping[str, Any]) -> Dict[str, Any]:
    # OpenTelemetry accepts scalars and homogeneous sequences only
    result: Dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, (str, bool, int, float)):
            result[key] = value
        elif isinstance(value, (list, tuple)):
            result[key] = tuple(str(item) for item in value)
        else:
            result[key] = str(value)
    return result
