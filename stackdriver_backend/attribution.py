from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Optional, Tuple

import httpx

from .gateway import Point
from .logging_utils import get_logger
from .settings import AWS_SENTINEL, GCE_SENTINEL, BackendSettings


log = get_logger("stackdriver.attribution")

# sentinel -> (url, headers)
METADATA_ENDPOINTS: Dict[str, Tuple[str, Dict[str, str]]] = {
    AWS_SENTINEL: ("http://169.254.169.254/latest/meta-data/instance-id", {}),
    GCE_SENTINEL: ("http://metadata.google.internal/computeMetadata/v1/instance/id", {"Metadata-Flavor": "Google"}),
}


class SourceAttributor:
    """Decorates points with an instance id.

    Modes:
      - prefix: split `<instance><sep><name>` on the first separator.
      - source: stamp every point with a fixed source.
      - none: leave points alone.
    """

    def __init__(self, mode: str = "none", source: Optional[str] = None, separator: str = "--") -> None:
        if mode not in ("prefix", "source", "none"):
            raise ValueError(f"unknown attribution mode: {mode}")
        self.mode = mode
        # Replaced once by InstanceResolver when the source is a cloud sentinel
        self.source = source
        self.separator = separator

    @classmethod
    def from_settings(cls, settings: BackendSettings) -> "SourceAttributor":
        mode = settings.attribution_mode
        if mode == "prefix" and settings.source:
            log.warning("attribution.source_ignored", extra={"source": settings.source})
        elif mode == "source":
            log.info("attribution.static_source", extra={"source": settings.source})
        return cls(mode=mode, source=settings.source, separator=settings.source_prefix_separator)

    def attribute(self, point: Point) -> Point:
        if self.mode == "prefix":
            idx = point.name.find(self.separator) if self.separator else -1
            if idx > 0:
                return replace(point, instance=point.name[:idx], name=point.name[idx + len(self.separator):])
            return point
        if self.mode == "source":
            return replace(point, instance=self.source)
        return point


class InstanceResolver:
    """One-shot background lookup of the local cloud instance id.

    Flushes that run before the lookup completes keep using the sentinel as
    the instance value; startup is never blocked on this.
    """

    def __init__(
        self,
        attributor: SourceAttributor,
        sentinel: str,
        timeout: float = 2.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if sentinel not in METADATA_ENDPOINTS:
            raise ValueError(f"no metadata endpoint for source {sentinel!r}")
        self.attributor = attributor
        self.sentinel = sentinel
        self.timeout = timeout
        self.resolved: Optional[str] = None
        self._transport = transport
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        t = threading.Thread(target=self._run, name="instance-resolver", daemon=True)
        self._thread = t
        t.start()

    def join(self, timeout: Optional[float] = None) -> Optional[str]:
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        return self.resolved

    def lookup(self) -> Optional[str]:
        url, headers = METADATA_ENDPOINTS[self.sentinel]
        try:
            with httpx.Client(transport=self._transport, timeout=self.timeout) as client:
                resp = client.get(url, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            log.error("instance.lookup_failed", extra={"sentinel": self.sentinel, "url": url, "error": f"{type(e).__name__}: {e}"})
            return None
        instance = resp.text.strip()
        if not instance:
            log.error("instance.lookup_failed", extra={"sentinel": self.sentinel, "url": url, "error": "empty response"})
            return None
        return instance

    def _run(self) -> None:
        instance = self.lookup()
        if instance is None:
            return
        self.resolved = instance
        self.attributor.source = instance
        log.info("instance.resolved", extra={"sentinel": self.sentinel, "instance": instance})
