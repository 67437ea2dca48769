"""
Logging Configuration — Line formatters and sinks for structured logs.

Provides consistent one-line-per-entry output for both the agent
`StructuredLogger` and plain library loggers:
- JSON output for production (machine-readable)
- key=value text output for development
- Configurable log levels

## Environment Variables

- SAGE_ADK_LOG_LEVEL: debug, info, warn, error, fatal (default: info)
- SAGE_ADK_LOG_FORMAT: json, text (default: json)

## Usage

    from sage_adk.logging_config import setup_logging

    setup_logging()  # Call once at startup
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from typing import IO, Any, Dict, Optional

# Level names used in log entries, mapped onto stdlib levels
LEVEL_NUMBERS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}

_STDLIB_NAMES = {v: k for k, v in LEVEL_NUMBERS.items()}

FALLBACK_ENTRY = '{"error":"failed to marshal log entry"}'

# Keys that lead every text line, in this order
_FIXED_KEYS = ("timestamp", "level", "message")


def rfc3339_nano(ns: Optional[int] = None) -> str:
    """Format a UTC epoch timestamp in nanoseconds as RFC3339 with nanoseconds."""
    if ns is None:
        ns = time.time_ns()
    seconds, nanos = divmod(ns, 1_000_000_000)
    base = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    return f"{base}.{nanos:09d}Z"


def _entry_from_record(record: logging.LogRecord) -> Dict[str, Any]:
    """Get the structured entry carried by a record, or build one."""
    entry = getattr(record, "entry", None)
    if entry is not None:
        return entry

    built: Dict[str, Any] = {
        "timestamp": rfc3339_nano(int(record.created * 1_000_000_000)),
        "level": _STDLIB_NAMES.get(record.levelno, record.levelname.lower()),
        "message": record.getMessage(),
        "logger": record.name,
    }
    if record.exc_info:
        built["exception"] = logging.Formatter().formatException(record.exc_info)
    return built


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {"timestamp": "...", "level": "...", "message": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = _entry_from_record(record)
        try:
            return json.dumps(entry, default=str)
        except (TypeError, ValueError):
            return FALLBACK_ENTRY


def _text_value(value: Any) -> str:
    if isinstance(value, str):
        text = value
    else:
        try:
            text = json.dumps(value, default=str)
        except (TypeError, ValueError):
            text = str(value)
    if text == "" or any(c in text for c in ' "=\n\t'):
        return json.dumps(text)
    return text


class TextFormatter(logging.Formatter):
    """
    Single-line key=value formatter.

    Output format:
    timestamp=... level=info message="request completed" path=/ status=200
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = _entry_from_record(record)
        parts = [f"{key}={_text_value(entry[key])}" for key in _FIXED_KEYS if key in entry]
        for key in sorted(k for k in entry if k not in _FIXED_KEYS):
            parts.append(f"{key}={_text_value(entry[key])}")
        return " ".join(parts)


def make_formatter(format_type: str) -> logging.Formatter:
    """Return the formatter for 'json' or 'text'."""
    if (format_type or "json").lower() == "text":
        return TextFormatter()
    return JSONFormatter()


def open_sink(output: str = "stdout", file_path: str = "") -> IO[str]:
    """
    Resolve a log destination to a writable stream.

    Args:
        output: stdout, stderr, or file
        file_path: Path of the log file when output is "file"
    """
    output = (output or "stdout").lower()
    if output == "stderr":
        return sys.stderr
    if output == "file":
        if not file_path:
            raise ValueError("file_path is required when logging output is 'file'")
        return open(file_path, "a", encoding="utf-8")
    return sys.stdout


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
) -> None:
    """
    Configure stdlib logging for the process.

    Library modules log through `logging.getLogger(__name__)`; this routes
    them through the same formatters as the agent logger.

    Args:
        level: Log level (debug, info, warn, error, fatal).
               Defaults to SAGE_ADK_LOG_LEVEL env var or info.
        format_type: Output format (json, text).
                     Defaults to SAGE_ADK_LOG_FORMAT env var or json.
    """
    log_level = (level or os.environ.get("SAGE_ADK_LOG_LEVEL", "info")).lower()
    log_format = (format_type or os.environ.get("SAGE_ADK_LOG_FORMAT", "json")).lower()

    numeric_level = LEVEL_NUMBERS.get(log_level, logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Remove existing handlers
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(make_formatter(log_format))
    handler.setLevel(numeric_level)
    root.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, format={log_format}"
    )
