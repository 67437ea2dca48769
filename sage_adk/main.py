"""
sage-adk — CLI Entry Point

Usage:
    sage-adk serve [--config FILE] [--agent-id ID] [--host HOST]
    sage-adk check-config [--config FILE]
    sage-adk health [--config FILE] [--json]
    sage-adk metrics [--config FILE] [--format prometheus|json]
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import signal
import threading
from typing import Optional

import click

from .cli.ops import check_config, health, metrics_cmd
from .config.loader import load_config, resolve_agent_id
from .logging_config import setup_logging
from .observability.config import ConfigError
from .observability.manager import ObservabilityManager

# Initialize logging
setup_logging()


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """sage-adk — Agent observability toolkit."""
    ctx.ensure_object(dict)


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="YAML or JSON config file")
@click.option("--agent-id", default=None, help="Agent ID (default: SAGE_ADK_AGENT_ID or sage-agent)")
@click.option("--host", default="0.0.0.0", show_default=True, help="Interface to bind")
def serve(config_path: Optional[str], agent_id: Optional[str], host: str) -> None:
    """Serve /metrics and the health probes until interrupted."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.secho(f"✗ {e}", fg="red")
        raise SystemExit(1)

    manager = ObservabilityManager(resolve_agent_id(agent_id), config)
    manager.agent_metrics.set_status(manager.agent_id, 1)

    def _stop() -> None:
        manager.shutdown()
        manager.stop_serving()

    def _terminate(signum, frame):
        # serve_forever must be stopped from another thread
        threading.Thread(target=_stop, name="sage-adk-shutdown").start()

    signal.signal(signal.SIGTERM, _terminate)

    manager.mark_ready()
    click.echo(f"Serving observability for {manager.agent_id} on {host}:{config.health.port}")
    try:
        manager.serve(host)
    except KeyboardInterrupt:
        click.echo("\nInterrupted")
        manager.shutdown()
    finally:
        manager.close()


cli.add_command(check_config)
cli.add_command(health)
cli.add_command(metrics_cmd)


if __name__ == "__main__":
    cli()
