"""
Observability Configuration — Metrics, logging, tracing and health settings.

Sections are pydantic models so files and environment overrides are
coerced to the right types. Semantic rules (ports, levels, rates, paths)
are checked by `ObservabilityConfig.validate()`, which raises the first
failure as a `ConfigError`.

## Usage

    from sage_adk.observability.config import default_config

    config = default_config()
    config.logging.level = "debug"
    config.validate()
"""

from __future__ import annotations

from pydantic import BaseModel, Field

VALID_LOG_LEVELS = ("debug", "info", "warn", "error", "fatal")
VALID_LOG_FORMATS = ("json", "text")
VALID_LOG_OUTPUTS = ("stdout", "stderr", "file")


class ConfigError(ValueError):
    """A configuration value failed validation."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"observability config error: {field}: {message}")


class MetricsConfig(BaseModel):
    """Prometheus metrics endpoint."""

    enabled: bool = True
    port: int = 9090
    path: str = "/metrics"
    # Seconds between scrapes, advisory only
    interval: int = 15


class LoggingConfig(BaseModel):
    """Structured logger output."""

    level: str = "info"
    format: str = "json"
    output: str = "stdout"
    file_path: str = ""
    sampling_rate: float = 0.1


class TracingConfig(BaseModel):
    """Trace export settings."""

    enabled: bool = False
    endpoint: str = ""
    service_name: str = "sage-agent"
    sampling_rate: float = 0.1


class HealthConfig(BaseModel):
    """Health probe endpoints."""

    enabled: bool = True
    port: int = 8080
    liveness_path: str = "/health/live"
    readiness_path: str = "/health/ready"
    startup_path: str = "/health/startup"


class ObservabilityConfig(BaseModel):
    """Complete observability configuration."""

    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    tracing: TracingConfig = Field(default_factory=TracingConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    def validate(self) -> None:  # type: ignore[override]
        """
        Check every rule in a fixed order.

        Raises:
            ConfigError: for the first rule that fails
        """
        if self.metrics.enabled:
            if not _valid_port(self.metrics.port):
                raise ConfigError("metrics.port", "must be between 1 and 65535")
            if not self.metrics.path:
                raise ConfigError("metrics.path", "must not be empty")

        if self.logging.level and self.logging.level.lower() not in VALID_LOG_LEVELS:
            raise ConfigError("logging.level", "must be one of: debug, info, warn, error, fatal")

        if self.logging.format and self.logging.format.lower() not in VALID_LOG_FORMATS:
            raise ConfigError("logging.format", "must be 'json' or 'text'")

        if not _valid_rate(self.logging.sampling_rate):
            raise ConfigError("logging.sampling_rate", "must be between 0.0 and 1.0")

        if self.logging.output.lower() == "file" and not self.logging.file_path:
            raise ConfigError("logging.file_path", "must not be empty when output is 'file'")

        if self.logging.output and self.logging.output.lower() not in VALID_LOG_OUTPUTS:
            raise ConfigError("logging.output", "must be one of: stdout, stderr, file")

        if self.tracing.enabled:
            if not self.tracing.endpoint:
                raise ConfigError("tracing.endpoint", "must not be empty when tracing is enabled")
            if not _valid_rate(self.tracing.sampling_rate):
                raise ConfigError("tracing.sampling_rate", "must be between 0.0 and 1.0")

        if self.health.enabled:
            if not _valid_port(self.health.port):
                raise ConfigError("health.port", "must be between 1 and 65535")
            for name in ("liveness_path", "readiness_path", "startup_path"):
                path = getattr(self.health, name)
                if not path or not path.startswith("/"):
                    raise ConfigError(f"health.{name}", "must be a non-empty path starting with '/'")


def default_config() -> ObservabilityConfig:
    """Return a fresh configuration with default values."""
    return ObservabilityConfig()


def _valid_port(port: int) -> bool:
    return 0 < port <= 65535


def _valid_rate(rate: float) -> bool:
    return 0.0 <= rate <= 1.0
