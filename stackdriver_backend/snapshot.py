from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Collection, Dict, Mapping, Optional


Number = float

INTERNAL_PREFIX = "statsd."

_TIMER_SCALARS = ("count", "count_ps", "lower", "upper", "sum", "mean")


def is_internal(name: str) -> bool:
    """True for metrics the daemon reports about itself."""
    return name.startswith(INTERNAL_PREFIX)


@dataclass(frozen=True)
class TimerData:
    """One timer's aggregates for a flush window.

    Scalar fields are None when the aggregator did not compute them.
    `percentiles` maps a normalized label (`90`, `99_9`) to its `upper_<label>` value.
    """

    count: Optional[Number] = None
    count_ps: Optional[Number] = None
    lower: Optional[Number] = None
    upper: Optional[Number] = None
    sum: Optional[Number] = None
    mean: Optional[Number] = None
    percentiles: Dict[str, Number] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "TimerData":
        scalars = {k: record[k] for k in _TIMER_SCALARS if record.get(k) is not None}
        pcts = {
            k[len("upper_"):]: v
            for k, v in record.items()
            if k.startswith("upper_") and v is not None
        }
        return cls(percentiles=pcts, **scalars)

    def percentile(self, label: str) -> Optional[Number]:
        return self.percentiles.get(label)


@dataclass(frozen=True)
class Snapshot:
    counters: Mapping[str, Number] = field(default_factory=dict)
    counter_rates: Mapping[str, Number] = field(default_factory=dict)
    gauges: Mapping[str, Number] = field(default_factory=dict)
    timer_data: Mapping[str, TimerData] = field(default_factory=dict)
    sets: Mapping[str, Collection[Any]] = field(default_factory=dict)

    @classmethod
    def from_statsd(cls, metrics: Mapping[str, Any]) -> "Snapshot":
        """Build a snapshot from the `metrics` object statsd hands its backends.

        Extra keys (`timers`, `pctThreshold`, `statsd_metrics`...) are ignored.
        Timer records may already be `TimerData` instances.
        """
        timers: Dict[str, TimerData] = {}
        for name, rec in (metrics.get("timer_data") or {}).items():
            if rec is None:
                continue
            timers[name] = rec if isinstance(rec, TimerData) else TimerData.from_record(rec)
        return cls(
            counters=dict(metrics.get("counters") or {}),
            counter_rates=dict(metrics.get("counter_rates") or {}),
            gauges=dict(metrics.get("gauges") or {}),
            timer_data=timers,
            sets=dict(metrics.get("sets") or {}),
        )
