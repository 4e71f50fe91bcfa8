"""In-process metrics for claimtrail.

Counters, gauges and latency histograms held in memory and served as a JSON
snapshot on ``GET /metrics`` (admin key).

Usage:
    from claimtrail.metrics import METRICS

    METRICS.inc("webhooks_total", labels={"kind": "payment.issued", "status": "complete"})
    with METRICS.in_flight("webhooks_in_flight"), METRICS.timer("webhook_processing_seconds"):
        ...
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Any

HISTOGRAM_WINDOW = 1024


def series_key(name: str, labels: dict[str, str] | None = None) -> str:
    """``name{k="v",...}`` with labels sorted, or the bare name."""
    if not labels:
        return name
    parts = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
    return f"{name}{{{parts}}}"


class InMemoryMetrics:
    """Thread-safe metrics registry.

    Histograms keep only the latest ``window`` observations per series for
    percentiles; ``count``, ``sum`` and ``mean`` cover every observation.
    """

    def __init__(self, window: int = HISTOGRAM_WINDOW) -> None:
        self._lock = threading.Lock()
        self._window = window
        self._counters: dict[str, float] = defaultdict(float)
        self._gauges: dict[str, float] = defaultdict(float)
        self._samples: dict[str, deque[float]] = {}
        self._totals: dict[str, tuple[int, float]] = {}

    def inc(self, name: str, amount: float = 1.0, labels: dict[str, str] | None = None) -> None:
        key = series_key(name, labels)
        with self._lock:
            self._counters[key] += amount

    def counter(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._counters.get(series_key(name, labels), 0.0)

    def inc_gauge(self, name: str, amount: float = 1.0, labels: dict[str, str] | None = None) -> None:
        key = series_key(name, labels)
        with self._lock:
            self._gauges[key] += amount

    def dec_gauge(self, name: str, amount: float = 1.0, labels: dict[str, str] | None = None) -> None:
        self.inc_gauge(name, -amount, labels)

    def gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._gauges.get(series_key(name, labels), 0.0)

    def observe(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        key = series_key(name, labels)
        with self._lock:
            samples = self._samples.get(key)
            if samples is None:
                samples = self._samples[key] = deque(maxlen=self._window)
            samples.append(value)
            count, total = self._totals.get(key, (0, 0.0))
            self._totals[key] = (count + 1, total + value)

    @contextmanager
    def timer(self, name: str, labels: dict[str, str] | None = None):
        """Record elapsed seconds of the block, including when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, time.perf_counter() - start, labels)

    @contextmanager
    def in_flight(self, name: str, labels: dict[str, str] | None = None):
        """Gauge of blocks currently executing."""
        self.inc_gauge(name, labels=labels)
        try:
            yield
        finally:
            self.dec_gauge(name, labels=labels)

    def snapshot(self) -> dict[str, Any]:
        """JSON-serializable view of every series."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": {
                    key: _summary(samples, *self._totals[key]) for key, samples in self._samples.items()
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._samples.clear()
            self._totals.clear()


def _percentile(ordered: list[float], q: float) -> float:
    return ordered[min(int(len(ordered) * q), len(ordered) - 1)]


def _summary(samples: deque[float], count: int, total: float) -> dict[str, float]:
    ordered = sorted(samples)
    return {
        "count": count,
        "sum": total,
        "mean": total / count,
        "p50": _percentile(ordered, 0.50),
        "p95": _percentile(ordered, 0.95),
        "p99": _percentile(ordered, 0.99),
        "max": ordered[-1],
    }


METRICS = InMemoryMetrics()
