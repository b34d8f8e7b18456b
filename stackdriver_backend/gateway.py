"""Gateway wire model and HTTPS delivery.

Delivery is at-most-once: each flush builds its own `GatewayMessage`, the POST
runs on a daemon thread and the outcome is only logged (and handed to an
optional completion callback). Nothing is retried or queued.
"""

from __future__ import annotations

import contextvars
import json
import math
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from .logging_utils import get_logger
from .settings import API_KEY_HEADER, GATEWAY_URL, PROTO_VERSION, USER_AGENT


log = get_logger("stackdriver.gateway")


@dataclass(frozen=True)
class Point:
    name: str
    value: float
    collected_at: int
    instance: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        # NaN and infinities have no JSON form; they go out as null
        value = self.value if math.isfinite(self.value) else None
        d: Dict[str, Any] = {"name": self.name, "value": value, "collected_at": self.collected_at}
        if self.instance is not None:
            d["instance"] = self.instance
        return d


@dataclass
class GatewayMessage:
    timestamp: int
    data: List[Point] = field(default_factory=list)
    proto_version: int = PROTO_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proto_version": self.proto_version,
            "timestamp": self.timestamp,
            "data": [p.to_dict() for p in self.data],
        }

    def encode(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False, allow_nan=False, separators=(",", ":")).encode("utf-8")


class DeliveryOutcome(str, Enum):
    SUCCESS = "success"
    GATEWAY_ERROR = "gateway_error"
    TRANSPORT_ERROR = "transport_error"
    NOT_CONFIGURED = "not_configured"
    MALFORMED = "malformed"
    EMPTY = "empty"

    @property
    def failed(self) -> bool:
        """True when a request went out and did not succeed."""
        return self in (DeliveryOutcome.GATEWAY_ERROR, DeliveryOutcome.TRANSPORT_ERROR)


class Delivery:
    """Handle for one submitted message.

    Outcomes decided before any I/O (no key, empty batch) are set immediately;
    otherwise `join()` waits for the delivery thread.
    """

    def __init__(self, outcome: Optional[DeliveryOutcome] = None, points: int = 0) -> None:
        self.outcome = outcome
        self.points = points
        self._thread: Optional[threading.Thread] = None

    @property
    def pending(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> Optional[DeliveryOutcome]:
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        return self.outcome


class GatewayClient:
    """Posts gateway messages to the custom-metrics endpoint.

    Args:
        api_key (Optional[str]): Gateway API key; without it every delivery no-ops.
        url (str): Full gateway URL.
        timeout (float): Per-request httpx timeout in seconds.
        transport (Optional[httpx.BaseTransport]): Override for tests.
        on_complete (Optional[Callable]): Called with the `DeliveryOutcome` of
            every request that was actually attempted.
    """

    def __init__(
        self,
        api_key: Optional[str],
        url: str = GATEWAY_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        on_complete: Optional[Callable[[DeliveryOutcome], None]] = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self.on_complete = on_complete
        self._transport = transport
        if not self.api_key:
            log.error("gateway.no_api_key", extra={"effect": "all deliveries will no-op"})

    def headers(self, body: bytes) -> Dict[str, str]:
        return {
            "Content-Length": str(len(body)),
            "Content-Type": "application/json; charset=utf-8",
            "User-Agent": USER_AGENT,
            API_KEY_HEADER: self.api_key or "",
        }

    def deliver(self, message: Optional[GatewayMessage]) -> Delivery:
        """Submit `message` without waiting for the response."""
        if not self.api_key:
            log.error("gateway.no_api_key", extra={"effect": "message dropped"})
            return Delivery(DeliveryOutcome.NOT_CONFIGURED)
        if message is None:
            log.error("gateway.malformed", extra={"reason": "no message to post"})
            return Delivery(DeliveryOutcome.MALFORMED)
        if not message.data:
            log.debug("gateway.empty_batch")
            return Delivery(DeliveryOutcome.EMPTY)

        delivery = Delivery(points=len(message.data))
        ctx = contextvars.copy_context()

        def _run() -> None:
            delivery.outcome = ctx.run(self._send_and_report, message)

        t = threading.Thread(target=_run, name="gateway-post", daemon=True)
        delivery._thread = t
        t.start()
        return delivery

    def _send_and_report(self, message: GatewayMessage) -> DeliveryOutcome:
        try:
            outcome = self.send(message)
        except Exception:
            log.exception("gateway.send_failed", extra={"url": self.url})
            outcome = DeliveryOutcome.TRANSPORT_ERROR
        if self.on_complete is not None:
            try:
                self.on_complete(outcome)
            except Exception:
                log.exception("gateway.on_complete_failed")
        return outcome

    def send(self, message: GatewayMessage) -> DeliveryOutcome:
        """POST `message` and classify the response. Blocks until it completes."""
        body = message.encode()
        log.debug("gateway.post", extra={"url": self.url, "points": len(message.data), "bytes": len(body)})
        try:
            with httpx.Client(transport=self._transport, timeout=self.timeout) as client:
                resp = client.post(self.url, content=body, headers=self.headers(body))
        except httpx.HTTPError as e:
            log.error("gateway.transport_error", extra={"url": self.url, "error": f"{type(e).__name__}: {e}"})
            return DeliveryOutcome.TRANSPORT_ERROR

        if resp.status_code >= 400:
            log.error("gateway.rejected", extra={"status": resp.status_code, "body": resp.text[:512]})
            return DeliveryOutcome.GATEWAY_ERROR
        log.debug("gateway.accepted", extra={"status": resp.status_code, "body": resp.text[:512]})
        return DeliveryOutcome.SUCCESS
