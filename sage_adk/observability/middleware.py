"""
HTTP Middleware — Request logging and metrics for WSGI applications.

For each request the middleware binds a request context (inbound
X-Request-ID plus the agent ID), logs "incoming request", runs the wrapped
app, then logs "request completed" or "request error" and records the
request count, duration and error class.

The wrapped app's body is drained before the request is accounted, so
duration and bytes_written cover the full response.

With tracing enabled each request runs in a server span continuing any
inbound W3C `traceparent`, and the span's IDs appear on the request logs.

## Usage

    app = Flask(__name__)
    manager.middleware.init_app(app)

    # or for any WSGI callable
    wsgi_app = manager.middleware.wrap(wsgi_app)
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, List, Optional

from opentelemetry.trace import Span, SpanKind

from .agent_metrics import AgentMetrics
from .context import RequestContext, bind_context, current_context, with_agent_id, with_request_id
from .logger import Logger
from .tracing import Tracing, extract_context, record_error, set_attributes

REQUEST_ID_ENVIRON_KEY = "HTTP_X_REQUEST_ID"
TRACE_HEADERS = {"traceparent": "HTTP_TRACEPARENT", "tracestate": "HTTP_TRACESTATE"}

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]


class _RequestRecord:
    """Per-request capture of status and body size."""

    def __init__(self, ctx: RequestContext, method: str, path: str, protocol: str):
        self.ctx = ctx
        self.method = method
        self.path = path
        self.protocol = protocol
        self.status = 200
        self.written = 0
        self.start = time.monotonic()
        self.span: Optional[Span] = None


class ObservabilityMiddleware:
    """Logs and measures every request passing through a WSGI app."""

    def __init__(
        self,
        logger: Logger,
        metrics: AgentMetrics,
        agent_id: str,
        tracing: Optional[Tracing] = None,
    ):
        self.logger = logger
        self.metrics = metrics
        self.agent_id = agent_id
        self.tracing = tracing

    def init_app(self, app: Any) -> None:
        """Install on a Flask app."""
        app.wsgi_app = self.wrap(app.wsgi_app)

    def wrap(self, app: WSGIApp) -> WSGIApp:
        """Return a WSGI callable wrapping `app`."""

        def observed_app(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
            return self.handle(app, environ, start_response)

        return observed_app

    def request_context(self, environ: dict) -> RequestContext:
        """Derive the request-scoped context for one WSGI environ."""
        ctx = current_context()
        request_id = environ.get(REQUEST_ID_ENVIRON_KEY, "")
        if request_id:
            ctx = with_request_id(ctx, request_id)
        return with_agent_id(ctx, self.agent_id)

    @contextmanager
    def _request_span(self, environ: dict) -> Iterator[Optional[Span]]:
        if self.tracing is None:
            yield None
            return
        carrier = {name: environ[key] for name, key in TRACE_HEADERS.items() if key in environ}
        method = environ.get("REQUEST_METHOD", "")
        path = environ.get("PATH_INFO", "") or "/"
        with self.tracing.start_span(
            f"{method} {path}",
            parent=extract_context(carrier) if carrier else None,
            kind=SpanKind.SERVER,
            **{"http.method": method, "http.target": path},
        ) as span:
            yield span

    def handle(self, app: WSGIApp, environ: dict, start_response: Callable[..., Any]) -> List[bytes]:
        with self._request_span(environ) as span:
            return self._handle(app, environ, start_response, span)

    def _handle(
        self,
        app: WSGIApp,
        environ: dict,
        start_response: Callable[..., Any],
        span: Optional[Span],
    ) -> List[bytes]:
        ctx = self.request_context(environ)
        record = _RequestRecord(
            ctx,
            method=environ.get("REQUEST_METHOD", ""),
            path=environ.get("PATH_INFO", "") or "/",
            protocol="https" if environ.get("wsgi.url_scheme") == "https" else "http",
        )
        record.span = span

        def capturing_start_response(status: str, headers: List[Any], exc_info: Optional[Any] = None):
            record.status = int(status.split(" ", 1)[0])
            write = start_response(status, headers, exc_info)

            def counting_write(data: bytes) -> None:
                record.written += len(data)
                write(data)

            return counting_write

        chunks: List[bytes] = []
        with bind_context(ctx):
            self.logger.info(
                "incoming request",
                ctx,
                method=record.method,
                path=record.path,
                remote_addr=environ.get("REMOTE_ADDR", ""),
            )
            try:
                body = app(environ, capturing_start_response)
                try:
                    for chunk in body:
                        record.written += len(chunk)
                        chunks.append(chunk)
                finally:
                    close = getattr(body, "close", None)
                    if close is not None:
                        close()
            except Exception:
                record.status = 500
                self._finish(record)
                raise

        self._finish(record)
        return chunks

    def _finish(self, record: _RequestRecord) -> None:
        duration = time.monotonic() - record.start

        self.metrics.record_request(self.agent_id, record.protocol, duration)

        set_attributes(record.span, **{"http.status_code": record.status})
        if record.status >= 500:
            record_error(record.span, f"HTTP {record.status}")

        if record.status >= 400:
            error_type = "server_error" if record.status >= 500 else "client_error"
            self.metrics.record_error(self.agent_id, error_type)
            self.logger.error(
                "request error",
                record.ctx,
                method=record.method,
                path=record.path,
                status=record.status,
                duration_sec=duration,
            )
        else:
            self.logger.info(
                "request completed",
                record.ctx,
                method=record.method,
                path=record.path,
                status=record.status,
                duration_sec=duration,
                bytes_written=record.written,
            )
