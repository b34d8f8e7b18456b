"""Turns one statsd snapshot into gateway points.

Output order is counters, counter rates, gauges, timers, sets; within a
category the snapshot mapping's own iteration order is kept. Note that the
timer `.min` point carries `upper` (under `sendTimerMaxes`) and `.max` carries
`lower` (under `sendTimerMins`).
"""

from __future__ import annotations

from typing import Iterator, List, Optional, Tuple, Union

from .attribution import SourceAttributor
from .gateway import GatewayMessage, Point
from .logging_utils import get_logger
from .settings import BackendSettings
from .snapshot import Number, Snapshot, TimerData, is_internal


log = get_logger("stackdriver.transformer")


def percentile_label(threshold: Union[int, float, str]) -> str:
    """Normalize a percentile threshold the way statsd keys timer fields.

    Examples: 90 -> "90", 90.0 -> "90", 99.9 -> "99_9".
    """
    if isinstance(threshold, float) and threshold.is_integer():
        threshold = int(threshold)
    return str(threshold).replace(".", "_")


class MetricTransformer:
    def __init__(self, settings: BackendSettings, attributor: Optional[SourceAttributor] = None) -> None:
        self.settings = settings
        self.attributor = attributor or SourceAttributor()
        self._labels = [percentile_label(t) for t in settings.percent_threshold]

    def _suppressed(self, value: Number) -> bool:
        return value == 0 and not self.settings.send_zero_timers_and_rates

    def _eligible(self, items, kind: str) -> Iterator[Tuple[str, object]]:
        for name, value in items:
            if is_internal(name):
                log.debug("metric.internal_skipped", extra={"metric": name, "kind": kind})
                continue
            log.debug("metric.found", extra={"metric": name, "kind": kind})
            yield name, value

    def _timer_points(self, name: str, timer: TimerData) -> Iterator[Tuple[str, Number]]:
        s = self.settings
        if s.send_timer_counters and timer.count is not None and not self._suppressed(timer.count):
            yield f"{name}.count", timer.count
        if s.send_timer_rates and timer.count_ps is not None and not self._suppressed(timer.count_ps):
            yield f"{name}.rate", timer.count_ps
        if s.send_timer_maxes and timer.upper is not None:
            yield f"{name}.min", timer.upper
        if s.send_timer_mins and timer.lower is not None:
            yield f"{name}.max", timer.lower
        if s.send_timer_sums and timer.sum is not None:
            yield f"{name}.sum", timer.sum
        if s.send_timer_avgs and timer.mean is not None:
            yield f"{name}.avg", timer.mean
        if s.send_timer_percentiles:
            for label in self._labels:
                value = timer.percentile(label)
                # aggregator did not compute this percentile
                if value is None:
                    continue
                yield f"{name}.{label}_pct", value

    def named_values(self, snapshot: Snapshot) -> Iterator[Tuple[str, Number]]:
        """Yield `(point name, value)` pairs before attribution."""
        s = self.settings
        if s.send_counters:
            for name, value in self._eligible(snapshot.counters.items(), "counter"):
                if not self._suppressed(value):
                    yield f"{name}.count", value
        if s.send_counter_rates:
            for name, value in self._eligible(snapshot.counter_rates.items(), "counter rate"):
                if not self._suppressed(value):
                    yield f"{name}.rate", value
        if s.send_gauges:
            for name, value in self._eligible(snapshot.gauges.items(), "gauge"):
                yield f"{name}.value", value
        for name, timer in self._eligible(snapshot.timer_data.items(), "timer"):
            yield from self._timer_points(name, timer)
        if s.send_sets:
            for name, members in self._eligible(snapshot.sets.items(), "set"):
                yield f"{name}.count", len(set(members))

    def points(self, snapshot: Snapshot, timestamp: int) -> List[Point]:
        return [
            self.attributor.attribute(Point(name=name, value=value, collected_at=timestamp))
            for name, value in self.named_values(snapshot)
        ]

    def build_message(self, snapshot: Snapshot, timestamp: int) -> GatewayMessage:
        return GatewayMessage(timestamp=timestamp, data=self.points(snapshot, timestamp))
