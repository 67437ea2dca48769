"""
Observability Manager — One object owning the logger, metrics and probes.

Construct one manager per agent process and pass it to whatever needs
logging, metrics, tracing or health state. Construction validates the
config and fails fast with `ConfigError`.

## Usage

    from sage_adk.observability.manager import ObservabilityManager

    manager = ObservabilityManager("agent-1")
    manager.add_readiness_check(FunctionChecker("database", ping_database))

    app = Flask(__name__)
    manager.middleware.init_app(app)

    manager.mark_ready()
    manager.serve()          # blocks; /metrics and /health/* probes

    # on SIGTERM, from another thread
    manager.shutdown()       # liveness now answers 503
    manager.stop_serving()   # serve() returns
    manager.close()
"""

from __future__ import annotations

import logging
import threading
from typing import IO, List, Optional

from flask import Flask
from opentelemetry.sdk.trace.export import SpanExporter
from werkzeug.serving import BaseWSGIServer, make_server

from ..logging_config import open_sink
from .agent_metrics import AgentMetrics, LLMMetrics
from .config import ObservabilityConfig, default_config
from .context import RequestContext
from .health import Checker, LivenessChecker, ReadinessChecker, StartupChecker, health_handler
from .logger import StructuredLogger
from .metrics import PrometheusCollector
from .middleware import ObservabilityMiddleware
from .tracing import Tracing, init_tracing

logger = logging.getLogger(__name__)


class ObservabilityManager:
    """
    Composition root for agent observability.

    Readiness is built around the startup checker, so an agent reports
    not-ready until `mark_ready()` is called, plus any checks added with
    `add_readiness_check()`.
    """

    def __init__(
        self,
        agent_id: str,
        config: Optional[ObservabilityConfig] = None,
        output: Optional[IO[str]] = None,
        span_exporter: Optional[SpanExporter] = None,
    ):
        """
        Args:
            agent_id: ID stamped on request logs and metric labels
            config: Observability config (defaults when None)
            output: Stream overriding config.logging.output
            span_exporter: Exporter overriding the OTLP endpoint when tracing is enabled
        """
        self.agent_id = agent_id
        self.config = config if config is not None else default_config()
        self.config.validate()

        log_cfg = self.config.logging
        # Only a log file this manager opened is closed by close()
        self._log_file: Optional[IO[str]] = None
        if output is None:
            output = open_sink(log_cfg.output, log_cfg.file_path)
            if (log_cfg.output or "").lower() == "file":
                self._log_file = output
        self.logger = StructuredLogger(
            log_cfg.level or "info",
            output=output,
            format_type=log_cfg.format or "json",
            sampling_rate=log_cfg.sampling_rate,
        )

        self.tracing: Optional[Tracing] = init_tracing(self.config.tracing, agent_id, span_exporter)

        self.collector = PrometheusCollector()
        self.agent_metrics = AgentMetrics(self.collector)
        self.llm_metrics = LLMMetrics(self.collector)
        self.middleware = ObservabilityMiddleware(self.logger, self.agent_metrics, agent_id, self.tracing)

        self.liveness_checker = LivenessChecker()
        self.startup_checker = StartupChecker()
        self.readiness_checker = ReadinessChecker(self.startup_checker)

        self.liveness_checker.mark_running()

        self._servers: List[BaseWSGIServer] = []
        self._lock = threading.Lock()

    def mark_ready(self) -> None:
        """Signal that startup has completed."""
        self.startup_checker.mark_ready()

    def add_readiness_check(self, checker: Checker) -> None:
        self.readiness_checker.add_check(checker)

    def shutdown(self, ctx: Optional[RequestContext] = None) -> None:
        """
        Mark the agent as stopping.

        Liveness turns unhealthy while every endpoint, the logger and the
        collector keep working, so probes can observe the 503. Use
        `stop_serving()` and `close()` to tear down.
        """
        self.logger.info("shutting down observability manager", ctx)
        self.liveness_checker.mark_stopped()

    def stop_serving(self) -> None:
        """Stop the servers started by `serve()`, which then returns."""
        with self._lock:
            servers, self._servers = self._servers, []
        for server in servers:
            server.shutdown()

    def close(self) -> None:
        """Stop serving, flush pending spans and close a log file opened here."""
        self.stop_serving()
        if self.tracing is not None:
            self.tracing.shutdown()
            self.tracing = None
        if self._log_file is not None:
            log_file, self._log_file = self._log_file, None
            log_file.flush()
            log_file.close()

    def http_handler(self) -> Flask:
        """Flask app serving the metrics endpoint and the three probes."""
        app = Flask(__name__)
        app.add_url_rule(
            self.config.metrics.path, "metrics", self.collector.handler(), methods=["GET"]
        )
        self._add_health_routes(app)
        return app

    def _add_health_routes(self, app: Flask) -> None:
        health = self.config.health
        app.add_url_rule(
            health.liveness_path, "liveness", health_handler(self.liveness_checker), methods=["GET"]
        )
        app.add_url_rule(
            health.readiness_path, "readiness", health_handler(self.readiness_checker), methods=["GET"]
        )
        app.add_url_rule(
            health.startup_path, "startup", health_handler(self.startup_checker), methods=["GET"]
        )

    def metrics_app(self) -> Flask:
        """Flask app serving only the metrics endpoint."""
        app = Flask(__name__)
        app.add_url_rule(
            self.config.metrics.path, "metrics", self.collector.handler(), methods=["GET"]
        )
        return app

    def serve(self, host: str = "0.0.0.0") -> None:
        """
        Serve the observability endpoints until `stop_serving()`.

        Everything is served on health.port. When metrics.port differs, the
        metrics endpoint is also served there from a background thread.
        """
        primary = make_server(host, self.config.health.port, self.http_handler(), threaded=True)
        servers = [primary]

        if self.config.metrics.enabled and self.config.metrics.port != self.config.health.port:
            secondary = make_server(host, self.config.metrics.port, self.metrics_app(), threaded=True)
            servers.append(secondary)
            thread = threading.Thread(
                target=secondary.serve_forever, name="sage-adk-metrics", daemon=True
            )
            thread.start()

        with self._lock:
            self._servers.extend(servers)

        logger.info(
            f"Serving observability endpoints on {host}:{self.config.health.port}"
            + (f", metrics on :{self.config.metrics.port}" if len(servers) > 1 else "")
        )
        try:
            primary.serve_forever()
        finally:
            with self._lock:
                self._servers = [s for s in self._servers if s not in servers]
            for server in servers[1:]:
                server.shutdown()
            for server in servers:
                server.server_close()
