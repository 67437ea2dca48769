"""
Config Loader — Load observability configuration from a file and env vars.

Precedence, lowest to highest:
1. Built-in defaults
2. A YAML or JSON file (its `observability:` section, or the whole document)
3. SAGE_ADK_* environment variables

## Usage

    from sage_adk.config.loader import load_config, resolve_agent_id

    config = load_config("agent.yaml")
    agent_id = resolve_agent_id()

## Environment Variables

- SAGE_ADK_AGENT_ID: agent ID (default: sage-agent)
- SAGE_ADK_LOG_LEVEL, SAGE_ADK_LOG_FORMAT, SAGE_ADK_LOG_OUTPUT, SAGE_ADK_LOG_FILE
- SAGE_ADK_LOG_SAMPLING_RATE
- SAGE_ADK_METRICS_PORT, SAGE_ADK_METRICS_PATH
- SAGE_ADK_HEALTH_PORT
- SAGE_ADK_TRACING_ENABLED, SAGE_ADK_TRACING_ENDPOINT
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from ..observability.config import ConfigError, ObservabilityConfig

logger = logging.getLogger(__name__)

DEFAULT_AGENT_ID = "sage-agent"

_TRUE_VALUES = ("1", "true", "yes", "on")

# env var -> (section, attribute, parser)
ENV_OVERRIDES: Dict[str, tuple] = {
    "SAGE_ADK_LOG_LEVEL": ("logging", "level", str),
    "SAGE_ADK_LOG_FORMAT": ("logging", "format", str),
    "SAGE_ADK_LOG_OUTPUT": ("logging", "output", str),
    "SAGE_ADK_LOG_FILE": ("logging", "file_path", str),
    "SAGE_ADK_LOG_SAMPLING_RATE": ("logging", "sampling_rate", float),
    "SAGE_ADK_METRICS_PORT": ("metrics", "port", int),
    "SAGE_ADK_METRICS_PATH": ("metrics", "path", str),
    "SAGE_ADK_HEALTH_PORT": ("health", "port", int),
    "SAGE_ADK_TRACING_ENABLED": ("tracing", "enabled", lambda v: v.strip().lower() in _TRUE_VALUES),
    "SAGE_ADK_TRACING_ENDPOINT": ("tracing", "endpoint", str),
}


def load_file(path: Path) -> Dict[str, Any]:
    """Load a YAML or JSON config file and return its observability section."""
    suffix = path.suffix.lower()
    if suffix not in (".yaml", ".yml", ".json"):
        raise ConfigError("config", f"unsupported config file extension: {suffix or path.name}")

    with path.open("r", encoding="utf-8") as f:
        try:
            if suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError("config", f"cannot parse {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("config", f"{path} must contain a mapping")
    section = data.get("observability", data)
    if not isinstance(section, dict):
        raise ConfigError("observability", "must be a mapping")
    return section


def apply_env_overrides(config: ObservabilityConfig, environ: Optional[Dict[str, str]] = None) -> None:
    """Overlay SAGE_ADK_* environment variables onto `config` in place."""
    env = os.environ if environ is None else environ
    for var, (section_name, attr, parse) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        value = _parse_env(var, raw, parse)
        if value is None:
            continue
        setattr(getattr(config, section_name), attr, value)


def _parse_env(var: str, raw: str, parse: Callable[[str], Any]) -> Any:
    try:
        return parse(raw)
    except ValueError:
        logger.warning(f"Ignoring {var}={raw!r}: not a valid value")
        return None


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> ObservabilityConfig:
    """
    Build a validated configuration.

    Args:
        path: Optional YAML (.yaml/.yml) or JSON (.json) file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated ObservabilityConfig

    Raises:
        ConfigError: if the file is malformed or a value is invalid
        FileNotFoundError: if `path` does not exist
    """
    data: Dict[str, Any] = {}
    if path is not None:
        data = load_file(Path(path))
        logger.debug(f"Loaded observability config from {path}")

    try:
        config = ObservabilityConfig(**data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError(field, first["msg"]) from e

    apply_env_overrides(config, environ)
    config.validate()
    return config


def resolve_agent_id(agent_id: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> str:
    """Explicit value, else SAGE_ADK_AGENT_ID, else the default."""
    if agent_id:
        return agent_id
    env = os.environ if environ is None else environ
    return env.get("SAGE_ADK_AGENT_ID") or DEFAULT_AGENT_ID
