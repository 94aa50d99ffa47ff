"""Search and indexing metrics.

Every metric is a Prometheus collector (scraped through ``get_metrics``) paired
with an OpenTelemetry instrument of the same name, so both exporters see the
same numbers. Gauges map to up/down counters; the bridge keeps the last value
per label set and adds the difference.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
import threading
import time
from typing import Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


METER_NAME = "site_search"
LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)

_provider_state: dict[str, Any] = {"provider": None, "meter": None}


def init_metrics(
    service_name: str = "site-search",
    resource_attributes: dict[str, str] | None = None,
    metric_readers: list[MetricReader] | None = None,
) -> MeterProvider:
    """Install the meter provider once; later calls return the installed one."""
    if _provider_state["provider"] is not None:
        return _provider_state["provider"]

    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = MeterProvider(resource=resource, metric_readers=metric_readers or [])
    otel_metrics.set_meter_provider(provider)
    _provider_state.update(provider=provider, meter=provider.get_meter(METER_NAME))
    return provider


def _meter():
    if _provider_state["meter"] is None:
        init_metrics()
    return _provider_state["meter"]


class LabeledMetric:
    """A ``MetricBridge`` with its label values filled in."""

    __slots__ = ("_bridge", "_labels")

    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.record("inc", self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.record("observe", self._labels, value)

    def set(self, value: float) -> None:
        self._bridge.record("set", self._labels, value)


class MetricBridge:
    """One Prometheus collector plus the matching OpenTelemetry instrument."""

    _COLLECTORS = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}
    _ACTIONS = {"counter": "inc", "histogram": "observe", "gauge": "set"}

    def __init__(
        self,
        kind: str,
        name: str,
        description: str,
        labelnames: Sequence[str],
        **collector_options: Any,
    ) -> None:
        if kind not in self._COLLECTORS:
            raise ValueError(f"Unknown metric kind: {kind}")
        self.kind = kind
        self.name = name
        self.description = description
        self.collector = self._COLLECTORS[kind](name, description, list(labelnames), **collector_options)
        self._instrument: Any = None
        self._gauge_values: dict[frozenset[tuple[str, str]], float] = {}
        self._gauge_lock = threading.Lock()

    def labels(self, **labels: str) -> LabeledMetric:
        return LabeledMetric(self, labels)

    def _otel(self):
        if self._instrument is None:
            meter = _meter()
            create = {
                "counter": meter.create_counter,
                "histogram": meter.create_histogram,
                "gauge": meter.create_up_down_counter,
            }[self.kind]
            self._instrument = create(self.name, description=self.description)
        return self._instrument

    def record(self, action: str, labels: dict[str, str], value: float) -> None:
        if action != self._ACTIONS[self.kind]:
            raise TypeError(f"{self.kind} {self.name} does not support {action}()")
        getattr(self.collector.labels(**labels), action)(value)

        if self.kind == "histogram":
            self._otel().record(value, labels)
            return
        if self.kind == "gauge":
            key = frozenset(labels.items())
            with self._gauge_lock:
                delta = value - self._gauge_values.get(key, 0.0)
                self._gauge_values[key] = value
            if delta:
                self._otel().add(delta, labels)
            return
        self._otel().add(value, labels)


SEARCH_LATENCY = MetricBridge(
    "histogram",
    "search_latency_seconds",
    "Search and suggest latency",
    ("index", "operation"),
    buckets=LATENCY_BUCKETS,
)
INDEX_OPERATIONS = MetricBridge(
    "counter",
    "search_index_operations_total",
    "Index mutations by operation and outcome",
    ("index", "operation", "status"),
)
INDEX_DOC_COUNT = MetricBridge(
    "gauge",
    "search_index_document_count",
    "Documents per index and site",
    ("index", "site"),
)
FUZZY_TIMEOUTS = MetricBridge(
    "counter",
    "search_fuzzy_timeouts_total",
    "Queries that fell back to exact matching after the fuzzy budget ran out",
    ("index",),
)
CACHE_LOOKUPS = MetricBridge(
    "counter",
    "search_cache_lookups_total",
    "Result cache lookups",
    ("kind", "result"),
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Iterator[None]:
    """Observe the block's wall time, including when it raises."""
    started = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - started)


def get_metrics() -> bytes:
    """Prometheus text exposition of every registered collector."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
