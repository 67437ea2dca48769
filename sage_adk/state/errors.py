"""
State Errors — Distinguishable failures raised by state managers.
"""

from __future__ import annotations


class StateError(Exception):
    """Base class for state manager errors."""

    def __init__(self, message: str, session_id: str = ""):
        self.message = message
        self.session_id = session_id
        super().__init__(f"{message}: {session_id}" if session_id else message)


class StateNotFoundError(StateError):
    """No state exists for the session ID."""

    def __init__(self, session_id: str = ""):
        super().__init__("state not found", session_id)


class StateExistsError(StateError):
    """A state with the session ID already exists."""

    def __init__(self, session_id: str = ""):
        super().__init__("state already exists", session_id)


class StateExpiredError(StateError):
    """The state's TTL has elapsed."""

    def __init__(self, session_id: str = ""):
        super().__init__("state expired", session_id)


class VariableNotFoundError(StateError):
    """The session has no variable with this key."""

    def __init__(self, session_id: str = "", key: str = ""):
        self.key = key
        super().__init__(f"variable not found: {key}" if key else "variable not found", session_id)


class InvalidStateError(StateError):
    """The state is missing a required identifier."""
