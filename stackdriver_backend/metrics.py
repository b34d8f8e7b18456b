"""Lightweight self-metrics for the backend.

Counts flush cycles, points and delivery outcomes, and keeps a sliding window
of flush durations for percentiles (p50/p95/p99). Served on `/metrics` by the
host app; these numbers are never forwarded to the gateway.

Google-style docstrings for automatic documentation.
"""

import threading
from time import time
from typing import Dict


_PERCENTILES = (("p50", 0.50), ("p95", 0.95), ("p99", 0.99))


def _nearest_rank(xs: list, p: float) -> float:
    """Value at fraction `p` of an already sorted, non-empty sample."""
    i = max(0, min(len(xs) - 1, int(round(p * (len(xs) - 1)))))
    return xs[i]


class Metrics:
    """Thread-safe metrics container.

    Main methods:
      - inc: increment counters.
      - observe: record the latest value of a gauge.
      - observe_duration: accumulate durations for percentiles.
      - snapshot: export all metrics into a dict.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {
            "flushes_total": 0,
            "points_total": 0,
            "deliveries_total": 0,
            "delivery_errors_total": 0,
        }
        self._gauges: Dict[str, float] = {}
        self._durations_ms: Dict[str, list[float]] = {}

    def inc(self, key: str, by: int = 1) -> None:
        """Increment the counter `key` by `by` (default 1)."""
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + by

    def observe(self, key: str, value: float) -> None:
        """Record the current value of a gauge identified by `key`."""
        with self._lock:
            self._gauges[key] = value

    def snapshot(self) -> Dict[str, float]:
        """Return a snapshot of counters, gauges, and percentiles.

        Returns:
            Dict[str, float]: Flattened metrics ready for serialization.
        """
        with self._lock:
            data: Dict[str, float] = {}
            data.update(self._counters)
            data.update({f"gauge_{k}": v for k, v in self._gauges.items()})
            for name, arr in self._durations_ms.items():
                if not arr:
                    continue
                xs = sorted(arr)
                for label, p in _PERCENTILES:
                    data[f"{name}_{label}_ms"] = _nearest_rank(xs, p)
            data["ts"] = time()
            return data

    def observe_duration(self, key: str, value_ms: float, max_keep: int = 512) -> None:
        """Accumulate a duration in ms under `key` keeping a window of `max_keep`.

        Args:
            key (str): Logical name of the duration metric.
            value_ms (float): Duration in milliseconds.
            max_keep (int): Max samples retained (window). Defaults to 512.
        """
        with self._lock:
            arr = self._durations_ms.setdefault(key, [])
            arr.append(float(value_ms))
            if len(arr) > max_keep:
                self._durations_ms[key] = arr[-max_keep:]
