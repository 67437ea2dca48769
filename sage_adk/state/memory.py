"""
Memory State Manager — In-process conversation sessions with TTL expiry.

Sessions live in a dict keyed by session ID and are lost on restart.
Every read returns a deep copy. An optional background thread sweeps
expired sessions on a fixed interval.

## Usage

    from sage_adk.state.memory import MemoryStateManager, StateConfig
    from sage_adk.state.models import Message, Session

    states = MemoryStateManager(StateConfig(max_messages=50))
    states.create(Session(session_id="s1", agent_id="agent-1"))
    states.add_message("s1", Message(id="m1", role="user", content="hi"))

    history = states.get_messages("s1", limit=10)
    states.close()
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from .errors import StateExistsError, StateExpiredError, StateNotFoundError, VariableNotFoundError
from .models import Message, Session, utc_now

logger = logging.getLogger(__name__)


@dataclass
class StateConfig:
    """Memory state manager settings."""

    default_ttl: timedelta = timedelta(hours=24)
    # 0 keeps every message
    max_messages: int = 100
    cleanup_interval: timedelta = timedelta(hours=1)
    enable_auto_cleanup: bool = True


@dataclass
class StateFilter:
    """Selection and paging for `list()`."""

    agent_id: str = ""
    context_id: str = ""
    limit: int = 0
    offset: int = 0
    include_expired: bool = False


class MemoryStateManager:
    """
    Thread-safe in-memory session store.

    Operations on a missing session raise StateNotFoundError; on an
    expired one (not yet swept) they raise StateExpiredError.
    """

    def __init__(self, config: Optional[StateConfig] = None):
        self.config = config or StateConfig()
        self._states: Dict[str, Session] = {}
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

        interval = self.config.cleanup_interval.total_seconds()
        if self.config.enable_auto_cleanup and interval > 0:
            self._sweeper = threading.Thread(
                target=self._auto_cleanup, args=(interval,), name="sage-adk-state-sweep", daemon=True
            )
            self._sweeper.start()

    # ─── CRUD ───────────────────────────────────────────────

    def create(self, session: Session) -> None:
        session.validate_ids()
        with self._lock:
            if session.session_id in self._states:
                raise StateExistsError(session.session_id)

            stored = session.model_copy(deep=True)
            now = utc_now()
            stored.created_at = now
            stored.updated_at = now
            if stored.expires_at is None and self.config.default_ttl > timedelta(0):
                stored.expires_at = now + self.config.default_ttl
            self._states[stored.session_id] = stored

            session.created_at = stored.created_at
            session.updated_at = stored.updated_at
            session.expires_at = stored.expires_at

    def get(self, session_id: str) -> Session:
        with self._lock:
            return self._live(session_id).model_copy(deep=True)

    def update(self, session: Session) -> None:
        """Replace a stored session, keeping its creation time."""
        session.validate_ids()
        with self._lock:
            existing = self._live(session.session_id)
            stored = session.model_copy(deep=True)
            stored.created_at = existing.created_at
            stored.updated_at = utc_now()
            self._states[stored.session_id] = stored

    def delete(self, session_id: str) -> None:
        with self._lock:
            if session_id not in self._states:
                raise StateNotFoundError(session_id)
            del self._states[session_id]

    def list(self, state_filter: Optional[StateFilter] = None) -> List[Session]:
        """Sessions in creation order, filtered then paged."""
        f = state_filter or StateFilter()
        now = utc_now()
        with self._lock:
            matches = [
                s.model_copy(deep=True)
                for s in self._states.values()
                if (not f.agent_id or s.agent_id == f.agent_id)
                and (not f.context_id or s.context_id == f.context_id)
                and (f.include_expired or not s.is_expired(now))
            ]

        if f.offset > 0:
            matches = matches[f.offset:]
        if f.limit > 0:
            matches = matches[: f.limit]
        return matches

    def count(self) -> int:
        with self._lock:
            return len(self._states)

    # ─── Messages & Variables ───────────────────────────────

    def add_message(self, session_id: str, message: Message) -> None:
        """Append a message, evicting the oldest once max_messages is reached."""
        with self._lock:
            session = self._live(session_id)
            max_messages = self.config.max_messages
            if max_messages > 0 and len(session.messages) >= max_messages:
                session.truncate_messages(max_messages - 1)

            stored = message.model_copy(deep=True)
            now = utc_now()
            stored.metadata["timestamp"] = now.isoformat()
            session.messages.append(stored)
            session.updated_at = now

    def get_messages(self, session_id: str, limit: int = 0) -> List[Message]:
        """The newest `limit` messages, oldest first (all when limit <= 0)."""
        with self._lock:
            messages = self._live(session_id).messages
            if limit > 0:
                messages = messages[-limit:]
            return [m.model_copy(deep=True) for m in messages]

    def set_variable(self, session_id: str, key: str, value: Any) -> None:
        with self._lock:
            session = self._live(session_id)
            session.variables[key] = value
            session.updated_at = utc_now()

    def get_variable(self, session_id: str, key: str) -> Any:
        with self._lock:
            session = self._live(session_id)
            if key not in session.variables:
                raise VariableNotFoundError(session_id, key)
            return session.variables[key]

    def clear(self, session_id: str) -> None:
        """Drop the message history, keeping metadata and variables."""
        with self._lock:
            session = self._live(session_id)
            session.messages = []
            session.updated_at = utc_now()

    # ─── Expiry ─────────────────────────────────────────────

    def cleanup(self) -> int:
        """Remove expired sessions and return how many were removed."""
        now = utc_now()
        with self._lock:
            expired = [sid for sid, s in self._states.items() if s.is_expired(now)]
            for sid in expired:
                del self._states[sid]
        if expired:
            logger.debug(f"Removed {len(expired)} expired sessions")
        return len(expired)

    def close(self) -> None:
        """Stop the background sweep."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)

    def _auto_cleanup(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self.cleanup()
            except Exception as e:
                logger.error(f"State cleanup failed: {e}")

    def _live(self, session_id: str) -> Session:
        session = self._states.get(session_id)
        if session is None:
            raise StateNotFoundError(session_id)
        if session.is_expired():
            raise StateExpiredError(session_id)
        return session
