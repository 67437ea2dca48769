"""
Health Check — Liveness, readiness and startup probes.

A `Checker` has a name and a `check(ctx)` method returning a fresh
`CheckResult`. Failures are reported as results, never raised.

## Usage

    from sage_adk.observability.health import (
        FunctionChecker, HealthStatus, ReadinessChecker, StartupChecker,
    )

    startup = StartupChecker()
    readiness = ReadinessChecker(startup)
    readiness.add_check(FunctionChecker("database", ping_database))

    startup.mark_ready()
    result = readiness.check()
    if result.is_healthy():
        print("Ready for traffic")
"""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from flask import Response

from .context import RequestContext, current_context, with_timeout

logger = logging.getLogger(__name__)

DEFAULT_CHECK_TIMEOUT = 5.0
DEFAULT_MULTI_CHECK_TIMEOUT = 10.0

ENCODE_ERROR_BODY = '{"error": "failed to encode health check result"}'


class HealthStatus(str, Enum):
    """Health status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class CheckResult:
    """Outcome of one health check invocation."""

    name: str
    status: HealthStatus
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def is_degraded(self) -> bool:
        return self.status == HealthStatus.DEGRADED

    def is_unhealthy(self) -> bool:
        return self.status == HealthStatus.UNHEALTHY

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "status": self.status.value}
        if self.message:
            data["message"] = self.message
        if self.details:
            data["details"] = self.details
        return data


class Checker(ABC):
    """Interface for health checks."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this health check."""

    @abstractmethod
    def check(self, ctx: Optional[RequestContext] = None) -> CheckResult:
        """Perform the health check."""


def aggregate_status(results: Iterable[CheckResult]) -> HealthStatus:
    """Worst-of: unhealthy beats degraded beats healthy. Empty is healthy."""
    overall = HealthStatus.HEALTHY
    for result in results:
        if result.is_unhealthy():
            return HealthStatus.UNHEALTHY
        if result.is_degraded():
            overall = HealthStatus.DEGRADED
    return overall


def run_check(checker: Checker, ctx: Optional[RequestContext] = None) -> CheckResult:
    """Run a checker, turning an escaped exception into an unhealthy result."""
    try:
        return checker.check(ctx)
    except Exception as e:
        logger.warning(f"Health check {checker.name!r} raised: {e}")
        return CheckResult(
            name=checker.name,
            status=HealthStatus.UNHEALTHY,
            message=f"check failed: {e}",
        )


CheckFunc = Callable[[RequestContext], Union[CheckResult, HealthStatus, bool, None]]


class FunctionChecker(Checker):
    """
    Adapt a plain callable into a Checker.

    The callable receives the request context and may return a
    CheckResult, a HealthStatus, or a bool. Exceptions become unhealthy
    results carrying the error message.
    """

    def __init__(self, name: str, func: CheckFunc):
        self._name = name
        self._func = func

    @property
    def name(self) -> str:
        return self._name

    def check(self, ctx: Optional[RequestContext] = None) -> CheckResult:
        if ctx is None:
            ctx = current_context()
        start = time.monotonic()
        try:
            outcome = self._func(ctx)
        except Exception as e:
            return CheckResult(
                name=self._name,
                status=HealthStatus.UNHEALTHY,
                message=str(e) or e.__class__.__name__,
                details={"error_type": e.__class__.__name__},
            )
        latency_ms = round((time.monotonic() - start) * 1000, 3)

        if isinstance(outcome, CheckResult):
            return outcome
        if isinstance(outcome, HealthStatus):
            return CheckResult(name=self._name, status=outcome, details={"latency_ms": latency_ms})
        if outcome is None:
            return CheckResult(name=self._name, status=HealthStatus.UNKNOWN)
        status = HealthStatus.HEALTHY if outcome else HealthStatus.UNHEALTHY
        return CheckResult(name=self._name, status=status, details={"latency_ms": latency_ms})


class LivenessChecker(Checker):
    """Reports whether the process is still running."""

    def __init__(self) -> None:
        self._running = True
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "liveness"

    def check(self, ctx: Optional[RequestContext] = None) -> CheckResult:
        with self._lock:
            running = self._running
        if running:
            return CheckResult(name=self.name, status=HealthStatus.HEALTHY)
        return CheckResult(name=self.name, status=HealthStatus.UNHEALTHY, message="agent not running")

    def mark_running(self) -> None:
        with self._lock:
            self._running = True

    def mark_stopped(self) -> None:
        with self._lock:
            self._running = False

    def is_running(self) -> bool:
        with self._lock:
            return self._running


class StartupChecker(Checker):
    """
    One-way latch for startup completion.

    The first `mark_ready()` records the startup duration; later calls do
    nothing. Only `reset()` returns the checker to not-ready.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ready = False
        self._start_time = time.monotonic()
        self._ready_time: Optional[float] = None

    @property
    def name(self) -> str:
        return "startup"

    def check(self, ctx: Optional[RequestContext] = None) -> CheckResult:
        with self._lock:
            if self._ready:
                return CheckResult(
                    name=self.name,
                    status=HealthStatus.HEALTHY,
                    message="startup completed",
                    details={"startup_duration_ms": self._startup_duration_ms()},
                )
            elapsed_ms = int((time.monotonic() - self._start_time) * 1000)

        return CheckResult(
            name=self.name,
            status=HealthStatus.UNHEALTHY,
            message="startup in progress",
            details={"elapsed_ms": elapsed_ms},
        )

    def mark_ready(self) -> None:
        with self._lock:
            if not self._ready:
                self._ready_time = time.monotonic()
                self._ready = True

    def is_ready(self) -> bool:
        with self._lock:
            return self._ready

    def startup_duration_ms(self) -> int:
        """Recorded startup duration, 0 before ready."""
        with self._lock:
            return self._startup_duration_ms()

    def reset(self) -> None:
        with self._lock:
            self._ready = False
            self._start_time = time.monotonic()
            self._ready_time = None

    def _startup_duration_ms(self) -> int:
        if self._ready_time is None:
            return 0
        return int((self._ready_time - self._start_time) * 1000)


class ReadinessChecker(Checker):
    """
    Aggregate of dependency checks deciding whether to accept traffic.

    Every sub-check runs with the same context; the overall status is the
    worst observed. The check list is replaced on add/remove, so a check
    in progress keeps iterating the list it started with.
    """

    def __init__(self, *checks: Checker):
        self._checks: List[Checker] = list(checks)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "readiness"

    @property
    def checks(self) -> List[Checker]:
        return list(self._checks)

    def check(self, ctx: Optional[RequestContext] = None) -> CheckResult:
        if ctx is None:
            ctx = current_context()
        results = [run_check(check, ctx) for check in self._checks]
        status = aggregate_status(results)

        message = ""
        if status == HealthStatus.UNHEALTHY:
            message = "one or more dependencies unhealthy"
        elif status == HealthStatus.DEGRADED:
            message = "one or more dependencies degraded"

        return CheckResult(
            name=self.name,
            status=status,
            message=message,
            details={"checks": [r.to_dict() for r in results]},
        )

    def add_check(self, check: Checker) -> None:
        with self._lock:
            self._checks = self._checks + [check]

    def remove_check(self, name: str) -> None:
        """Remove every check with this name."""
        with self._lock:
            self._checks = [c for c in self._checks if c.name != name]


def _status_code(status: HealthStatus) -> int:
    # Degraded still serves traffic
    return 503 if status == HealthStatus.UNHEALTHY else 200


def _json_response(payload: Dict[str, Any], status_code: int) -> Response:
    try:
        body = json.dumps(payload)
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to encode health check result: {e}")
        return Response(ENCODE_ERROR_BODY, status=500, mimetype="application/json")
    return Response(body, status=status_code, mimetype="application/json")


def _check_context(default_timeout: float) -> RequestContext:
    ctx = current_context()
    remaining = ctx.remaining()
    return with_timeout(ctx, remaining if remaining is not None else default_timeout)


def health_handler(checker: Checker, timeout: float = DEFAULT_CHECK_TIMEOUT) -> Callable[[], Response]:
    """Flask view running one checker and returning its result as JSON."""

    def health_view() -> Response:
        result = run_check(checker, _check_context(timeout))
        return _json_response(result.to_dict(), _status_code(result.status))

    return health_view


def multi_health_handler(
    *checkers: Checker, timeout: float = DEFAULT_MULTI_CHECK_TIMEOUT
) -> Callable[[], Response]:
    """Flask view running several checkers: {"status": ..., "checks": [...]}."""

    def multi_health_view() -> Response:
        ctx = _check_context(timeout)
        results = [run_check(checker, ctx) for checker in checkers]
        status = aggregate_status(results)
        payload = {"status": status.value, "checks": [r.to_dict() for r in results]}
        return _json_response(payload, _status_code(status))

    return multi_health_view
