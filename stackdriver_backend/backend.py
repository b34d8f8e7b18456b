"""Flush and status handlers the statsd host calls.

The host owns the flush interval and calls `flush(timestamp, snapshot)` once
per cycle and `status(write)` whenever it is asked for backend status.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from .attribution import InstanceResolver, SourceAttributor
from .gateway import Delivery, DeliveryOutcome, GatewayClient
from .logging_utils import get_logger, new_flush_id, set_debug, set_flush_id
from .metrics import Metrics
from .settings import BackendSettings
from .snapshot import Snapshot
from .transformer import MetricTransformer


log = get_logger("stackdriver.backend")

StatusWriter = Callable[[Optional[Exception], str, str, Any], None]

STATUS_NAMESPACE = "stackdriver"


class StackdriverBackend:
    """Stackdriver output for statsd.

    Args:
        startup_time (int): Host start time; seeds `last_flush`/`last_exception`.
        settings (BackendSettings): Resolved configuration.
        client (Optional[GatewayClient]): Injected for tests; built from settings otherwise.
        attributor (Optional[SourceAttributor]): Injected for tests; built from settings otherwise.
        metrics (Optional[Metrics]): Self-metrics sink.
    """

    def __init__(
        self,
        startup_time: int,
        settings: BackendSettings,
        client: Optional[GatewayClient] = None,
        attributor: Optional[SourceAttributor] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self.settings = settings
        self.last_flush = int(startup_time)
        self.last_exception = int(startup_time)
        self.metrics = metrics or Metrics()

        set_debug(settings.debug)
        if settings.debug:
            log.info("backend.debug_mode")

        self.attributor = attributor or SourceAttributor.from_settings(settings)
        self.transformer = MetricTransformer(settings, self.attributor)
        self.client = client or GatewayClient(
            settings.api_key,
            url=settings.gateway_url,
            timeout=settings.request_timeout,
        )
        if self.client.on_complete is None:
            self.client.on_complete = self._on_delivery

        self.resolver: Optional[InstanceResolver] = None
        sentinel = settings.cloud_sentinel
        if sentinel and self.attributor.mode == "source":
            self.resolver = InstanceResolver(self.attributor, sentinel)

    def start(self) -> None:
        """Kick off background startup work; never blocks on it."""
        if self.resolver is not None:
            self.resolver.start()

    def flush(self, timestamp: int, snapshot: Union[Snapshot, Mapping[str, Any]]) -> Optional[Delivery]:
        if not self.settings.api_key:
            log.error("flush.no_api_key")
            return None
        if not isinstance(snapshot, Snapshot):
            snapshot = Snapshot.from_statsd(snapshot)

        set_flush_id(new_flush_id())
        start = time.time()
        try:
            log.info("flush.start", extra={"timestamp": int(timestamp), "at": datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()})
            message = self.transformer.build_message(snapshot, int(timestamp))
            n = len(message.data)
            self.metrics.inc("flushes_total")
            self.metrics.inc("points_total", n)
            self.metrics.observe("last_batch_points", float(n))
            if n > 0:
                log.info("flush.posting", extra={"points": n})
            delivery = self.client.deliver(message)
            self.metrics.observe_duration("flush", (time.time() - start) * 1000.0)
            self.last_flush = int(time.time())
            return delivery
        finally:
            set_flush_id(None)

    def _on_delivery(self, outcome: DeliveryOutcome) -> None:
        self.metrics.inc("deliveries_total")
        if outcome.failed:
            self.metrics.inc("delivery_errors_total")
            self.last_exception = int(time.time())

    def status(self, write: StatusWriter) -> None:
        for key, value in (("lastFlush", self.last_flush), ("lastException", self.last_exception)):
            write(None, STATUS_NAMESPACE, key, value)


def init(startup_time: int, settings: BackendSettings) -> StackdriverBackend:
    """Build a backend and start its background work, like statsd's backend `init`."""
    backend = StackdriverBackend(startup_time, settings)
    backend.start()
    return backend
