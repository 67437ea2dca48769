"""
Configuration loading for sage-adk agents.
"""

from .loader import apply_env_overrides, load_config, resolve_agent_id

__all__ = ["load_config", "apply_env_overrides", "resolve_agent_id"]
