"""
Request Context — Request-scoped identity carried into every log line.

A `RequestContext` is immutable. Each `with_*` helper returns a derived
copy, so a context can be shared freely between threads. Only five keys
are carried: request, trace, span, agent and user ID, plus an optional
deadline used to bound health-check fan-out.

## Usage

    from sage_adk.observability.context import (
        RequestContext, with_agent_id, with_request_id, bind_context,
    )

    ctx = with_request_id(RequestContext(), "req-123")
    ctx = with_agent_id(ctx, "agent-1")

    with bind_context(ctx):
        logger.info("handling request")   # picks up request_id + agent_id
"""

from __future__ import annotations

import contextvars
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Dict, Iterator, Optional

# Field names written into log entries, in emission order.
CONTEXT_KEYS = ("request_id", "trace_id", "span_id", "agent_id", "user_id")


@dataclass(frozen=True)
class RequestContext:
    """Immutable request-scoped metadata."""

    request_id: str = ""
    trace_id: str = ""
    span_id: str = ""
    agent_id: str = ""
    user_id: str = ""
    # time.monotonic() value after which work should stop
    deadline: Optional[float] = None

    def fields(self) -> Dict[str, str]:
        """Return the well-known IDs that are set."""
        result = {}
        for key in CONTEXT_KEYS:
            value = getattr(self, key)
            if value:
                result[key] = value
        return result

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline


BACKGROUND = RequestContext()

_current: contextvars.ContextVar[RequestContext] = contextvars.ContextVar(
    "sage_adk_request_context", default=BACKGROUND
)


def current_context() -> RequestContext:
    """Get the context bound to the current thread or task."""
    return _current.get()


@contextmanager
def bind_context(ctx: RequestContext) -> Iterator[RequestContext]:
    """Make `ctx` the ambient context for the duration of the block."""
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)


def _base(ctx: Optional[RequestContext]) -> RequestContext:
    return ctx if ctx is not None else BACKGROUND


def with_request_id(ctx: Optional[RequestContext], request_id: str) -> RequestContext:
    return replace(_base(ctx), request_id=request_id)


def get_request_id(ctx: Optional[RequestContext]) -> str:
    return _base(ctx).request_id


def with_trace_id(ctx: Optional[RequestContext], trace_id: str) -> RequestContext:
    return replace(_base(ctx), trace_id=trace_id)


def get_trace_id(ctx: Optional[RequestContext]) -> str:
    return _base(ctx).trace_id


def with_span_id(ctx: Optional[RequestContext], span_id: str) -> RequestContext:
    return replace(_base(ctx), span_id=span_id)


def get_span_id(ctx: Optional[RequestContext]) -> str:
    return _base(ctx).span_id


def with_agent_id(ctx: Optional[RequestContext], agent_id: str) -> RequestContext:
    return replace(_base(ctx), agent_id=agent_id)


def get_agent_id(ctx: Optional[RequestContext]) -> str:
    return _base(ctx).agent_id


def with_user_id(ctx: Optional[RequestContext], user_id: str) -> RequestContext:
    return replace(_base(ctx), user_id=user_id)


def get_user_id(ctx: Optional[RequestContext]) -> str:
    return _base(ctx).user_id


def with_timeout(ctx: Optional[RequestContext], seconds: float) -> RequestContext:
    """
    Derive a context whose deadline is at most `seconds` from now.

    An earlier deadline already present on `ctx` is kept.
    """
    base = _base(ctx)
    deadline = time.monotonic() + seconds
    if base.deadline is not None:
        deadline = min(deadline, base.deadline)
    return replace(base, deadline=deadline)
