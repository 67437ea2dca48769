"""
Metrics — Collect and expose operational metrics.

Counters, gauges, histograms and summaries keyed by name and label set,
exposed in the Prometheus text exposition format.

## Usage

    from sage_adk.observability.metrics import Labels, PrometheusCollector

    collector = PrometheusCollector()

    collector.increment_counter("requests_total", Labels.of("agent_id", "a1"))
    collector.observe_histogram("request_duration_seconds", 0.12, Labels.of("agent_id", "a1"))
    collector.set_gauge("queue_size", 5, {})

    # Export for Prometheus
    output = collector.export_prometheus()

## Caller contract

A metric name is bound to one kind and one set of label names the first
time it is used. Reusing the name with another kind or another label
key-set raises `MetricError`. Every histogram shares the collector's
bucket ladder.
"""

from __future__ import annotations

import logging
import math
import re
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional, Tuple, Type

from flask import Response

logger = logging.getLogger(__name__)

CONTENT_TYPE_LATEST = "text/plain; version=0.0.4; charset=utf-8"

# Exponential-ish ladder spanning 5ms to 10s
DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, float("inf"))

SUMMARY_QUANTILES = (0.5, 0.9, 0.99)
SUMMARY_WINDOW = 1024

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

LabelKey = Tuple[Tuple[str, str], ...]


class MetricError(ValueError):
    """Raised when a metric is used in a way that breaks its contract."""


class Labels(Dict[str, str]):
    """A label set. Plain dicts are accepted everywhere a Labels is."""

    @classmethod
    def of(cls, *keyvals: str) -> "Labels":
        """Build labels from alternating key/value arguments."""
        if len(keyvals) % 2 != 0:
            raise ValueError("Labels.of requires an even number of arguments")
        return cls(zip(keyvals[0::2], keyvals[1::2]))

    def with_label(self, key: str, value: str) -> "Labels":
        """Return a copy with one more label."""
        labels = Labels(self)
        labels[key] = value
        return labels


def no_labels() -> Labels:
    return Labels()


@dataclass
class MetricPoint:
    """A single metric data point."""

    name: str
    value: float
    timestamp: float
    labels: Dict[str, str] = field(default_factory=dict)


def _labels_key(labels: Optional[Mapping[str, str]]) -> LabelKey:
    if not labels:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _format_value(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _check_counter_delta(name: str, value: float) -> None:
    # NaN compares False against everything, so test finiteness explicitly
    if not math.isfinite(value):
        raise MetricError(f"counter {name} requires a finite delta (got {value})")
    if value < 0:
        raise MetricError(f"counter {name} cannot decrease (got {value})")


def format_labels(labels: Mapping[str, str]) -> str:
    """Format labels for Prometheus."""
    if not labels:
        return ""
    pairs = [f'{k}="{_escape_label_value(str(v))}"' for k, v in sorted(labels.items())]
    return "{" + ",".join(pairs) + "}"


class Metric(ABC):
    """One metric family: a name, a fixed label-name set, and its series."""

    kind = "untyped"

    def __init__(self, name: str, help_text: str = "", label_names: Iterable[str] = ()):
        if not _METRIC_NAME_RE.match(name):
            raise MetricError(f"invalid metric name: {name!r}")
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(sorted(label_names))
        for label in self.label_names:
            if not _LABEL_NAME_RE.match(label) or label.startswith("__"):
                raise MetricError(f"invalid label name {label!r} for metric {name}")
        self._labels: Dict[LabelKey, Dict[str, str]] = {}
        self._lock = Lock()

    def _key(self, labels: Optional[Mapping[str, str]]) -> LabelKey:
        key = _labels_key(labels)
        names = tuple(k for k, _ in key)
        if names != self.label_names:
            raise MetricError(
                f"metric {self.name} expects labels {list(self.label_names)}, got {list(names)}"
            )
        if key not in self._labels:
            self._labels[key] = dict(key)
        return key

    @abstractmethod
    def export(self) -> List[MetricPoint]:
        """Export all series as metric points."""


class Counter(Metric):
    """A monotonically increasing counter."""

    kind = "counter"

    def __init__(self, name: str, help_text: str = "", label_names: Iterable[str] = ()):
        super().__init__(name, help_text, label_names)
        self._values: Dict[LabelKey, float] = {}

    def inc(self, value: float = 1, labels: Optional[Mapping[str, str]] = None) -> None:
        """Increment the counter."""
        _check_counter_delta(self.name, value)
        with self._lock:
            key = self._key(labels)
            self._values[key] = self._values.get(key, 0.0) + value

    def get(self, labels: Optional[Mapping[str, str]] = None) -> float:
        """Get current value."""
        return self._values.get(_labels_key(labels), 0.0)

    def export(self) -> List[MetricPoint]:
        now = time.time()
        with self._lock:
            return [
                MetricPoint(self.name, value, now, self._labels[key])
                for key, value in self._values.items()
            ]


class Gauge(Metric):
    """A gauge that can go up and down."""

    kind = "gauge"

    def __init__(self, name: str, help_text: str = "", label_names: Iterable[str] = ()):
        super().__init__(name, help_text, label_names)
        self._values: Dict[LabelKey, float] = {}

    def set(self, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        """Set the gauge value."""
        with self._lock:
            self._values[self._key(labels)] = float(value)

    def inc(self, value: float = 1, labels: Optional[Mapping[str, str]] = None) -> None:
        """Increment the gauge."""
        with self._lock:
            key = self._key(labels)
            self._values[key] = self._values.get(key, 0.0) + value

    def dec(self, value: float = 1, labels: Optional[Mapping[str, str]] = None) -> None:
        """Decrement the gauge."""
        self.inc(-value, labels)

    def get(self, labels: Optional[Mapping[str, str]] = None) -> float:
        """Get current value."""
        return self._values.get(_labels_key(labels), 0.0)

    def export(self) -> List[MetricPoint]:
        now = time.time()
        with self._lock:
            return [
                MetricPoint(self.name, value, now, self._labels[key])
                for key, value in self._values.items()
            ]


class Histogram(Metric):
    """A histogram over a fixed bucket ladder."""

    kind = "histogram"

    def __init__(
        self,
        name: str,
        help_text: str = "",
        label_names: Iterable[str] = (),
        buckets: Optional[Iterable[float]] = None,
    ):
        super().__init__(name, help_text, label_names)
        if "le" in self.label_names:
            raise MetricError(f"histogram {name} cannot use the reserved label 'le'")
        ladder = sorted(float(b) for b in (buckets or DEFAULT_BUCKETS))
        if not ladder or ladder[-1] != float("inf"):
            ladder.append(float("inf"))
        self.buckets: Tuple[float, ...] = tuple(ladder)
        # cumulative: _counts[key][i] counts observations <= buckets[i]
        self._counts: Dict[LabelKey, List[int]] = {}
        self._sums: Dict[LabelKey, float] = {}
        self._totals: Dict[LabelKey, int] = {}

    def observe(self, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        """Observe a value."""
        with self._lock:
            key = self._key(labels)
            counts = self._counts.get(key)
            if counts is None:
                counts = self._counts[key] = [0] * len(self.buckets)
                self._sums[key] = 0.0
                self._totals[key] = 0
            if math.isnan(value):
                # only +Inf, so the +Inf bucket always equals _count
                counts[-1] += 1
            else:
                for i, bound in enumerate(self.buckets):
                    if value <= bound:
                        counts[i] += 1
            self._sums[key] += value
            self._totals[key] += 1

    def get_count(self, labels: Optional[Mapping[str, str]] = None) -> int:
        return self._totals.get(_labels_key(labels), 0)

    def get_sum(self, labels: Optional[Mapping[str, str]] = None) -> float:
        return self._sums.get(_labels_key(labels), 0.0)

    def export(self) -> List[MetricPoint]:
        """Export histogram as metric points."""
        points = []
        now = time.time()
        with self._lock:
            for key, counts in self._counts.items():
                labels = self._labels[key]
                for bound, cumulative in zip(self.buckets, counts):
                    bucket_labels = {**labels, "le": _format_value(bound)}
                    points.append(MetricPoint(f"{self.name}_bucket", cumulative, now, bucket_labels))
                points.append(MetricPoint(f"{self.name}_sum", self._sums[key], now, labels))
                points.append(MetricPoint(f"{self.name}_count", self._totals[key], now, labels))
        return points


class Summary(Metric):
    """
    Streaming quantile estimates over a sliding window.

    Quantiles are computed from the most recent `window` observations;
    `_sum` and `_count` cover every observation; NaN is kept out of the
    window so quantiles stay ordered.
    """

    kind = "summary"

    def __init__(
        self,
        name: str,
        help_text: str = "",
        label_names: Iterable[str] = (),
        quantiles: Iterable[float] = SUMMARY_QUANTILES,
        window: int = SUMMARY_WINDOW,
    ):
        super().__init__(name, help_text, label_names)
        if "quantile" in self.label_names:
            raise MetricError(f"summary {name} cannot use the reserved label 'quantile'")
        self.quantiles = tuple(quantiles)
        self.window = window
        self._samples: Dict[LabelKey, Deque[float]] = {}
        self._sums: Dict[LabelKey, float] = {}
        self._totals: Dict[LabelKey, int] = {}

    def observe(self, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        with self._lock:
            key = self._key(labels)
            samples = self._samples.get(key)
            if samples is None:
                samples = self._samples[key] = deque(maxlen=self.window)
                self._sums[key] = 0.0
                self._totals[key] = 0
            if not math.isnan(value):
                samples.append(value)
            self._sums[key] += value
            self._totals[key] += 1

    def quantile(self, q: float, labels: Optional[Mapping[str, str]] = None) -> float:
        """Estimate quantile `q` for one series (NaN when empty)."""
        with self._lock:
            samples = sorted(self._samples.get(_labels_key(labels), ()))
        return _rank(samples, q)

    def get_count(self, labels: Optional[Mapping[str, str]] = None) -> int:
        return self._totals.get(_labels_key(labels), 0)

    def export(self) -> List[MetricPoint]:
        points = []
        now = time.time()
        with self._lock:
            for key, samples in self._samples.items():
                labels = self._labels[key]
                ordered = sorted(samples)
                for q in self.quantiles:
                    q_labels = {**labels, "quantile": _format_value(q)}
                    points.append(MetricPoint(self.name, _rank(ordered, q), now, q_labels))
                points.append(MetricPoint(f"{self.name}_sum", self._sums[key], now, labels))
                points.append(MetricPoint(f"{self.name}_count", self._totals[key], now, labels))
        return points


def _rank(ordered: List[float], q: float) -> float:
    if not ordered:
        return float("nan")
    index = min(len(ordered) - 1, max(0, math.ceil(q * len(ordered)) - 1))
    return ordered[index]


class Collector(ABC):
    """Interface for metrics collection backends."""

    @abstractmethod
    def increment_counter(self, name: str, labels: Optional[Mapping[str, str]] = None) -> None:
        """Increment a counter metric by 1."""

    @abstractmethod
    def add_counter(self, name: str, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        """Add a non-negative value to a counter metric."""

    @abstractmethod
    def set_gauge(self, name: str, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        """Set a gauge metric to a specific value."""

    @abstractmethod
    def observe_histogram(self, name: str, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        """Observe a value for a histogram metric."""

    @abstractmethod
    def observe_summary(self, name: str, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        """Observe a value for a summary metric."""

    @abstractmethod
    def handler(self) -> Callable[[], Response]:
        """Return a Flask view exposing the metrics."""


class PrometheusCollector(Collector):
    """
    In-process metrics registry with Prometheus text export.

    Families are created lazily on first use. Lookups of existing names
    take no lock; creation re-checks under the registry lock so two
    threads racing on a new name end up sharing one family.
    """

    def __init__(self, buckets: Optional[Iterable[float]] = None):
        self.buckets = tuple(buckets) if buckets else DEFAULT_BUCKETS
        self._families: Dict[str, Metric] = {}
        self._lock = Lock()

    def increment_counter(self, name: str, labels: Optional[Mapping[str, str]] = None) -> None:
        self.add_counter(name, 1, labels)

    def add_counter(self, name: str, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        _check_counter_delta(name, value)
        self._get_or_create(Counter, name, labels).inc(value, labels)

    def set_gauge(self, name: str, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        self._get_or_create(Gauge, name, labels).set(value, labels)

    def observe_histogram(self, name: str, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        self._get_or_create(Histogram, name, labels).observe(value, labels)

    def observe_summary(self, name: str, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        self._get_or_create(Summary, name, labels).observe(value, labels)

    def get(self, name: str) -> Optional[Metric]:
        """Get a registered family by name."""
        return self._families.get(name)

    def _get_or_create(
        self, metric_cls: Type[Metric], name: str, labels: Optional[Mapping[str, str]]
    ) -> Any:
        metric = self._families.get(name)
        if metric is None:
            with self._lock:
                # Double-check after acquiring the lock
                metric = self._families.get(name)
                if metric is None:
                    help_text = f"Auto-generated {metric_cls.kind} metric: {name}"
                    label_names = list(labels or {})
                    if metric_cls is Histogram:
                        metric = Histogram(name, help_text, label_names, buckets=self.buckets)
                    else:
                        metric = metric_cls(name, help_text, label_names)
                    self._families[name] = metric
                    logger.debug(f"Registered {metric.kind} {name} labels={metric.label_names}")
        if not isinstance(metric, metric_cls):
            raise MetricError(
                f"metric {name} is already registered as a {metric.kind}, not a {metric_cls.kind}"
            )
        return metric

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        with self._lock:
            families = sorted(self._families.values(), key=lambda m: m.name)

        lines = []
        for family in families:
            points = family.export()
            if not points:
                continue
            lines.append(f"# HELP {family.name} {_escape_help(family.help_text)}")
            lines.append(f"# TYPE {family.name} {family.kind}")
            for point in points:
                lines.append(f"{point.name}{format_labels(point.labels)} {_format_value(point.value)}")

        if not lines:
            return ""
        return "\n".join(lines) + "\n"

    def export_json(self) -> Dict[str, Any]:
        """Export metrics as JSON."""
        with self._lock:
            families = sorted(self._families.values(), key=lambda m: m.name)

        result: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metrics": {},
        }
        for family in families:
            result["metrics"][family.name] = {
                "type": family.kind,
                "samples": [
                    {"name": p.name, "labels": p.labels, "value": p.value}
                    for p in family.export()
                ],
            }
        return result

    def handler(self) -> Callable[[], Response]:
        """Return a Flask view serving the exposition text."""

        def metrics_view() -> Response:
            try:
                body = self.export_prometheus()
            except Exception as e:
                logger.error(f"Metrics export failed: {e}")
                body = ""
            return Response(body, status=200, content_type=CONTENT_TYPE_LATEST)

        return metrics_view
