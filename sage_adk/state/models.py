"""
State Models — Pydantic schemas for conversation sessions.

A `Session` holds one conversation: its message history, free-form
metadata and named variables. Managers hand out copies, so mutating a
returned session never changes stored state until `update()`.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .errors import InvalidStateError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """One conversation message."""

    id: str
    role: str = "user"
    content: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Session(BaseModel):
    """Conversation state for one session."""

    session_id: str
    agent_id: str
    context_id: str = ""
    messages: List[Message] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    variables: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def validate_ids(self) -> None:
        if not self.session_id:
            raise InvalidStateError("invalid session ID")
        if not self.agent_id:
            raise InvalidStateError("invalid agent ID", self.session_id)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utc_now()) > self.expires_at

    def expire_in(self, ttl: timedelta) -> None:
        self.expires_at = utc_now() + ttl

    def message_count(self) -> int:
        return len(self.messages)

    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    def truncate_messages(self, n: int) -> None:
        """Keep only the newest `n` messages."""
        if len(self.messages) > n:
            self.messages = self.messages[len(self.messages) - n:]
