"""
Observability Module — Metrics, structured logging, tracing, health probes and middleware.
"""

from .agent_metrics import AgentMetrics, LLMMetrics
from .config import (
    ConfigError,
    HealthConfig,
    LoggingConfig,
    MetricsConfig,
    ObservabilityConfig,
    TracingConfig,
    default_config,
)
from .context import (
    RequestContext,
    bind_context,
    current_context,
    get_agent_id,
    get_request_id,
    get_span_id,
    get_trace_id,
    get_user_id,
    with_agent_id,
    with_request_id,
    with_span_id,
    with_timeout,
    with_trace_id,
    with_user_id,
)
from .health import (
    Checker,
    CheckResult,
    FunctionChecker,
    HealthStatus,
    LivenessChecker,
    ReadinessChecker,
    StartupChecker,
    health_handler,
    multi_health_handler,
)
from .logger import Level, Logger, StructuredLogger
from .manager import ObservabilityManager
from .metrics import Collector, Labels, MetricError, PrometheusCollector
from .middleware import ObservabilityMiddleware
from .tracing import (
    Tracing,
    add_event,
    context_with_span,
    extract_context,
    init_tracing,
    inject_context,
    record_error,
    set_attributes,
    span_ids,
)

__all__ = [
    "ObservabilityManager",
    "ObservabilityConfig",
    "MetricsConfig",
    "LoggingConfig",
    "TracingConfig",
    "HealthConfig",
    "ConfigError",
    "default_config",
    "RequestContext",
    "bind_context",
    "current_context",
    "with_request_id",
    "get_request_id",
    "with_trace_id",
    "get_trace_id",
    "with_span_id",
    "get_span_id",
    "with_agent_id",
    "get_agent_id",
    "with_user_id",
    "get_user_id",
    "with_timeout",
    "Collector",
    "PrometheusCollector",
    "Labels",
    "MetricError",
    "AgentMetrics",
    "LLMMetrics",
    "Level",
    "Logger",
    "StructuredLogger",
    "Checker",
    "CheckResult",
    "HealthStatus",
    "FunctionChecker",
    "LivenessChecker",
    "ReadinessChecker",
    "StartupChecker",
    "health_handler",
    "multi_health_handler",
    "ObservabilityMiddleware",
    "Tracing",
    "init_tracing",
    "span_ids",
    "context_with_span",
    "record_error",
    "add_event",
    "set_attributes",
    "inject_context",
    "extract_context",
]
