"""
State Module — Conversation session storage.
"""

from .errors import (
    InvalidStateError,
    StateError,
    StateExistsError,
    StateExpiredError,
    StateNotFoundError,
    VariableNotFoundError,
)
from .memory import MemoryStateManager, StateConfig, StateFilter
from .models import Message, Session

__all__ = [
    "MemoryStateManager",
    "StateConfig",
    "StateFilter",
    "Session",
    "Message",
    "StateError",
    "StateNotFoundError",
    "StateExistsError",
    "StateExpiredError",
    "VariableNotFoundError",
    "InvalidStateError",
]
