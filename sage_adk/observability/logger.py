"""
Structured Logger — Level-filtered, context-aware, sampled log lines.

Every emission becomes one flat record merged in this order (later keys
win): request context IDs, the logger's persistent fields, the call's
fields, then the fixed `timestamp`, `level` and `message` keys. The record
is written as one JSON (or key=value) line through a stdlib handler whose
lock keeps lines whole under concurrency.

## Usage

    from sage_adk.observability.logger import StructuredLogger

    log = StructuredLogger("info")
    log.info("agent started", version="1.2.0")

    child = log.with_fields(component="planner")
    child.warn("slow step", duration_ms=812)
"""

from __future__ import annotations

import logging
import os
import random
import sys
import threading
from abc import ABC, abstractmethod
from enum import Enum
from itertools import count
from typing import IO, Any, Dict, Optional, Union

from ..logging_config import LEVEL_NUMBERS, make_formatter, rfc3339_nano
from .context import RequestContext, current_context


class Level(str, Enum):
    """Log levels, lowest to highest priority."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


_PRIORITIES = {
    Level.DEBUG: 0,
    Level.INFO: 1,
    Level.WARN: 2,
    Level.ERROR: 3,
    Level.FATAL: 4,
}

LevelLike = Union[Level, str]


def parse_level(level: LevelLike) -> Level:
    if isinstance(level, Level):
        return level
    try:
        return Level(str(level).lower())
    except ValueError:
        raise ValueError(
            f"invalid log level {level!r}: must be one of debug, info, warn, error, fatal"
        ) from None


def level_priority(level: LevelLike) -> int:
    """Numeric priority of a level; unknown levels rank as info."""
    try:
        return _PRIORITIES[parse_level(level)]
    except ValueError:
        return _PRIORITIES[Level.INFO]


class Logger(ABC):
    """Interface for structured loggers."""

    @abstractmethod
    def debug(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        """Log a debug message (subject to sampling)."""

    @abstractmethod
    def info(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        """Log an informational message."""

    @abstractmethod
    def warn(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        """Log a warning message."""

    @abstractmethod
    def error(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        """Log an error message."""

    @abstractmethod
    def fatal(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        """Log a fatal message and exit the process."""

    @abstractmethod
    def with_fields(self, **fields: Any) -> "Logger":
        """Create a child logger with persistent fields."""

    @abstractmethod
    def set_level(self, level: LevelLike) -> None:
        """Set the minimum log level."""

    @abstractmethod
    def set_sampling_rate(self, rate: float) -> None:
        """Set the sampling rate for debug logs (0.0-1.0)."""


_sink_ids = count(1)


def _make_sink_logger(output: IO[str], format_type: str) -> logging.Logger:
    # Not registered with logging.getLogger, so each sink stays private
    sink = logging.Logger(f"sage_adk.agent.{next(_sink_ids)}", level=logging.DEBUG)
    sink.propagate = False
    handler = logging.StreamHandler(output)
    handler.setFormatter(make_formatter(format_type))
    sink.addHandler(handler)
    return sink


class StructuredLogger(Logger):
    """
    Logger writing one structured line per entry.

    Children created with `with_fields` share the parent's sink and start
    from a copy of its level and sampling rate; the parent is never
    mutated.
    """

    def __init__(
        self,
        level: LevelLike = Level.INFO,
        output: Optional[IO[str]] = None,
        format_type: str = "json",
        sampling_rate: float = 1.0,
    ):
        self._level = parse_level(level)
        self._sampling_rate = _clamp(sampling_rate)
        self._fields: Dict[str, Any] = {}
        self._sink = _make_sink_logger(output if output is not None else sys.stdout, format_type)
        self._lock = threading.Lock()

    @property
    def level(self) -> Level:
        return self._level

    @property
    def sampling_rate(self) -> float:
        return self._sampling_rate

    @property
    def fields(self) -> Dict[str, Any]:
        return dict(self._fields)

    def debug(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        if not self._should_log(Level.DEBUG):
            return

        # Sampling only applies when the logger itself is at debug
        with self._lock:
            level, rate = self._level, self._sampling_rate
        if level is Level.DEBUG and rate < 1.0 and random.random() >= rate:
            return

        self._log(ctx, Level.DEBUG, msg, fields)

    def info(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        if self._should_log(Level.INFO):
            self._log(ctx, Level.INFO, msg, fields)

    def warn(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        if self._should_log(Level.WARN):
            self._log(ctx, Level.WARN, msg, fields)

    def error(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        if self._should_log(Level.ERROR):
            self._log(ctx, Level.ERROR, msg, fields)

    def fatal(self, msg: str, ctx: Optional[RequestContext] = None, **fields: Any) -> None:
        """
        Log at fatal level, then end the process with `os._exit(1)`.

        This terminates the process from any thread, not just the main one.
        """
        self._log(ctx, Level.FATAL, msg, fields)
        for handler in self._sink.handlers:
            handler.flush()
        os._exit(1)

    def with_fields(self, **fields: Any) -> "StructuredLogger":
        with self._lock:
            child = StructuredLogger.__new__(StructuredLogger)
            child._level = self._level
            child._sampling_rate = self._sampling_rate
            child._fields = {**self._fields, **fields}
        child._sink = self._sink
        child._lock = threading.Lock()
        return child

    def set_level(self, level: LevelLike) -> None:
        parsed = parse_level(level)
        with self._lock:
            self._level = parsed

    def set_sampling_rate(self, rate: float) -> None:
        with self._lock:
            self._sampling_rate = _clamp(rate)

    def _should_log(self, level: Level) -> bool:
        return level_priority(level) >= level_priority(self._level)

    def build_entry(
        self, ctx: Optional[RequestContext], level: Level, msg: str, fields: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Merge context, persistent and call-site fields into one record.

        The fixed `timestamp`, `level` and `message` keys are written last,
        so a call-site field with one of those names cannot replace them.
        """
        if ctx is None:
            ctx = current_context()
        entry: Dict[str, Any] = {}
        entry.update(ctx.fields())
        entry.update(self._fields)
        entry.update(fields)
        entry["timestamp"] = rfc3339_nano()
        entry["level"] = level.value
        entry["message"] = msg
        return entry

    def _log(self, ctx: Optional[RequestContext], level: Level, msg: str, fields: Dict[str, Any]) -> None:
        entry = self.build_entry(ctx, level, msg, fields)
        self._sink.log(LEVEL_NUMBERS[level.value], msg, extra={"entry": entry})


def _clamp(rate: float) -> float:
    return min(1.0, max(0.0, float(rate)))
