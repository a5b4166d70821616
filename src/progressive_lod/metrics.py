"""
Lightweight JSON metrics for progressive LOD loading.

This module provides a small, dependency-free metrics aggregator that supports:
- counters (monotonic totals)
- gauges (latest value)
- histograms (rolling window with basic stats and percentiles)
- named spans (start/end pairs recorded into a histogram of the same name)

All timings are expected in milliseconds by convention (e.g., *_ms).
The aggregator exposes a `snapshot()` that returns a JSON-ready dict.
"""

from __future__ import annotations

import logging
import os
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


@dataclass
class _Hist:
    window: int
    values: Deque[float] = field(default_factory=deque)
    last: float = 0.0
    total: float = 0.0
    count: int = 0
    min_v: float = float("inf")
    max_v: float = float("-inf")

    def observe(self, v: float) -> None:
        self.last = float(v)
        if len(self.values) == self.window:
            dropped = self.values.popleft()
            self.total -= dropped
        self.values.append(self.last)
        self.total += self.last
        if self.last < self.min_v:
            self.min_v = self.last
        if self.last > self.max_v:
            self.max_v = self.last
        self.count += 1

    def stats(self) -> Dict[str, float]:
        n = len(self.values)
        if n == 0:
            return {
                "last_ms": 0.0,
                "mean_ms": 0.0,
                "p50_ms": 0.0,
                "p90_ms": 0.0,
                "min_ms": 0.0,
                "max_ms": 0.0,
                "count": 0,
            }
        arr: List[float] = sorted(self.values)

        def q(p: float) -> float:
            idx = min(max(int(round(p * (n - 1))), 0), n - 1)
            return arr[idx]

        return {
            "last_ms": self.last,
            "mean_ms": self.total / n,
            "p50_ms": q(0.50),
            "p90_ms": q(0.90),
            "min_ms": min(arr[0], self.min_v),
            "max_ms": max(arr[-1], self.max_v),
            "count": self.count,
        }


class Metrics:
    """Small metrics aggregator with JSON snapshot and named spans."""

    def __init__(self, *, clock: Callable[[], float] = time.perf_counter) -> None:
        self._window = max(16, _env_int("PROGRESSIVE_LOD_METRICS_WINDOW", 256))
        self._clock = clock
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._hists: Dict[str, _Hist] = {}
        self._open_spans: Dict[str, float] = {}

    def inc(self, name: str, value: float = 1.0) -> None:
        self._counters[name] = self._counters.get(name, 0.0) + float(value)

    def set(self, name: str, value: float) -> None:
        self._gauges[name] = float(value)

    def observe_ms(self, name: str, value_ms: float) -> None:
        h = self._hists.get(name)
        if h is None:
            h = _Hist(window=self._window, values=deque(maxlen=self._window))
            self._hists[name] = h
        h.observe(float(value_ms))

    # Spans ---------------------------------------------------------------
    def start_span(self, name: str) -> None:
        if name in self._open_spans:
            logger.debug("span restarted before end: %s", name)
        self._open_spans[name] = self._clock()

    def end_span(self, name: str) -> Optional[float]:
        """Close ``name`` and record its duration; returns None if it was never started."""

        started = self._open_spans.pop(name, None)
        if started is None:
            logger.debug("span ended without start: %s", name)
            return None
        elapsed_ms = (self._clock() - started) * 1000.0
        self.observe_ms(name, elapsed_ms)
        return elapsed_ms

    def open_spans(self) -> tuple[str, ...]:
        return tuple(self._open_spans)

    def counter(self, name: str) -> float:
        return self._counters.get(name, 0.0)

    def snapshot(self) -> Dict[str, object]:
        counters = {k: int(v) if float(v).is_integer() else float(v) for k, v in self._counters.items()}
        return {
            "version": "v1",
            "ts": time.time(),
            "gauges": {k: float(v) for k, v in self._gauges.items()},
            "counters": counters,
            "histograms": {k: v.stats() for k, v in self._hists.items()},
            "open_spans": list(self._open_spans),
        }


__all__ = ["Metrics"]
