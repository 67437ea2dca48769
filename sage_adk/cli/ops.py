"""
CLI ops commands — config check, health probes, metrics export.

Usage:
    sage-adk check-config [--config FILE]
    sage-adk health [--config FILE] [--json]
    sage-adk metrics [--config FILE] [--format prometheus|json]
"""

from __future__ import annotations

import io
import json
from typing import Optional

import click

from ..config.loader import load_config, resolve_agent_id
from ..observability.config import ConfigError, ObservabilityConfig
from ..observability.health import HealthStatus, run_check
from ..observability.manager import ObservabilityManager

_config_option = click.option(
    "--config", "config_path", type=click.Path(dir_okay=False), help="YAML or JSON config file"
)

STATUS_STYLES = {
    HealthStatus.HEALTHY: ("✅", "green"),
    HealthStatus.DEGRADED: ("⚠️", "yellow"),
    HealthStatus.UNHEALTHY: ("❌", "red"),
}


def _load_or_exit(config_path: Optional[str]) -> ObservabilityConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        click.secho(f"✗ {e}", fg="red")
        raise SystemExit(1)


def _quiet_manager(config: ObservabilityConfig) -> ObservabilityManager:
    # Agent log lines would interleave with command output
    return ObservabilityManager(resolve_agent_id(), config, output=io.StringIO())


@click.command("check-config")
@_config_option
def check_config(config_path: Optional[str]) -> None:
    """Validate observability configuration."""
    config = _load_or_exit(config_path)

    click.secho("✓ Configuration valid", fg="green")
    click.echo()
    metrics_state = f"port {config.metrics.port}, path {config.metrics.path}" if config.metrics.enabled else "disabled"
    health_state = f"port {config.health.port}" if config.health.enabled else "disabled"
    tracing_state = config.tracing.endpoint if config.tracing.enabled else "disabled"
    click.echo(f"  Metrics:  {metrics_state}")
    click.echo(f"  Logging:  {config.logging.level}/{config.logging.format} -> {config.logging.output}")
    click.echo(f"  Tracing:  {tracing_state}")
    click.echo(f"  Health:   {health_state}")


@click.command("health")
@_config_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def health(config_path: Optional[str], as_json: bool) -> None:
    """
    Run the liveness, startup and readiness probes once.

    Startup is marked complete first, since the command has finished
    initializing by the time it checks.
    """
    manager = _quiet_manager(_load_or_exit(config_path))
    manager.mark_ready()

    results = [
        run_check(manager.liveness_checker),
        run_check(manager.startup_checker),
        run_check(manager.readiness_checker),
    ]
    manager.close()

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        click.echo()
        for result in results:
            icon, color = STATUS_STYLES.get(result.status, ("❓", "white"))
            click.echo(f"  {icon} ", nl=False)
            click.secho(result.name, fg=color, bold=True, nl=False)
            click.echo(f": {result.status.value}" + (f" ({result.message})" if result.message else ""))
        click.echo()

    if any(r.is_unhealthy() for r in results):
        raise SystemExit(1)


@click.command("metrics")
@_config_option
@click.option("--format", "output_format", type=click.Choice(["prometheus", "json"]), default="prometheus")
def metrics_cmd(config_path: Optional[str], output_format: str) -> None:
    """Export a metrics snapshot for this agent."""
    manager = _quiet_manager(_load_or_exit(config_path))
    manager.agent_metrics.set_status(manager.agent_id, 1)

    if output_format == "json":
        output = json.dumps(manager.collector.export_json(), indent=2) + "\n"
    else:
        output = manager.collector.export_prometheus()
    manager.close()

    click.echo(output, nl=False)
