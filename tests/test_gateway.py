import json

import httpx
import pytest

from stackdriver_backend.gateway import DeliveryOutcome, GatewayClient, GatewayMessage, Point


def _msg(n=2):
    return GatewayMessage(timestamp=100, data=[Point(name=f"m{i}.count", value=i, collected_at=100) for i in range(n)])


class _Recorder:
    def __init__(self, status=200, body="ok"):
        self.requests = []
        self.status = status
        self.body = body

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status, text=self.body)


def test_wire_format_field_order():
    msg = GatewayMessage(timestamp=7, data=[
        Point(name="a.count", value=1, collected_at=7),
        Point(name="b.value", value=2.5, collected_at=7, instance="hostA"),
    ])
    body = msg.encode().decode("utf-8")
    assert body.startswith('{"proto_version":1,"timestamp":7,"data":[')
    d = json.loads(body)
    assert list(d["data"][0].keys()) == ["name", "value", "collected_at"]
    assert d["data"][1] == {"name": "b.value", "value": 2.5, "collected_at": 7, "instance": "hostA"}


def test_send_posts_json_with_headers():
    rec = _Recorder()
    c = GatewayClient("secret", transport=httpx.MockTransport(rec))
    assert c.send(_msg()) is DeliveryOutcome.SUCCESS
    req = rec.requests[0]
    assert req.method == "POST"
    assert str(req.url) == "https://custom-gateway.stackdriver.com/v1/custom"
    assert req.headers["content-type"] == "application/json; charset=utf-8"
    assert req.headers["user-agent"] == "stackdriver-statsd-backend/0.0.1"
    assert req.headers["x-stackdriver-apikey"] == "secret"
    assert req.headers["content-length"] == str(len(req.content))
    body = json.loads(req.content)
    assert body["proto_version"] == 1 and body["timestamp"] == 100 and len(body["data"]) == 2


@pytest.mark.parametrize("status,outcome", [
    (200, DeliveryOutcome.SUCCESS),
    (201, DeliveryOutcome.SUCCESS),
    (302, DeliveryOutcome.SUCCESS),
    (400, DeliveryOutcome.GATEWAY_ERROR),
    (403, DeliveryOutcome.GATEWAY_ERROR),
    (503, DeliveryOutcome.GATEWAY_ERROR),
])
def test_response_classification(status, outcome):
    c = GatewayClient("k", transport=httpx.MockTransport(_Recorder(status=status)))
    assert c.send(_msg()) is outcome


def test_transport_error_is_reported_not_raised():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    c = GatewayClient("k", transport=httpx.MockTransport(handler))
    assert c.send(_msg()) is DeliveryOutcome.TRANSPORT_ERROR


def test_timeout_is_transport_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    c = GatewayClient("k", transport=httpx.MockTransport(handler))
    assert c.send(_msg()) is DeliveryOutcome.TRANSPORT_ERROR


def test_deliver_without_api_key_makes_no_call():
    rec = _Recorder()
    c = GatewayClient(None, transport=httpx.MockTransport(rec))
    d = c.deliver(_msg())
    assert d.outcome is DeliveryOutcome.NOT_CONFIGURED
    assert not d.pending and rec.requests == []


def test_deliver_empty_batch_makes_no_call():
    rec = _Recorder()
    c = GatewayClient("k", transport=httpx.MockTransport(rec))
    d = c.deliver(GatewayMessage(timestamp=1))
    assert d.join() is DeliveryOutcome.EMPTY and rec.requests == []


def test_deliver_none_is_malformed():
    rec = _Recorder()
    c = GatewayClient("k", transport=httpx.MockTransport(rec))
    assert c.deliver(None).outcome is DeliveryOutcome.MALFORMED
    assert rec.requests == []


def test_deliver_runs_in_background_and_reports_outcome():
    outcomes = []
    rec = _Recorder(status=500, body="boom")
    c = GatewayClient("k", transport=httpx.MockTransport(rec), on_complete=outcomes.append)
    d = c.deliver(_msg(3))
    assert d.points == 3
    assert d.join(timeout=2.0) is DeliveryOutcome.GATEWAY_ERROR
    assert outcomes == [DeliveryOutcome.GATEWAY_ERROR]
    assert len(rec.requests) == 1


def test_failed_outcomes():
    assert DeliveryOutcome.GATEWAY_ERROR.failed and DeliveryOutcome.TRANSPORT_ERROR.failed
    assert not DeliveryOutcome.SUCCESS.failed and not DeliveryOutcome.EMPTY.failed


def test_non_finite_values_encode_as_null():
    msg = GatewayMessage(timestamp=1, data=[
        Point(name="g.value", value=float("nan"), collected_at=1),
        Point(name="h.value", value=float("inf"), collected_at=1),
        Point(name="i.value", value=3, collected_at=1),
    ])
    # strict parse: bare NaN/Infinity tokens would be rejected here
    d = json.loads(msg.encode(), parse_constant=lambda c: pytest.fail(f"non-JSON token {c}"))
    assert [p["value"] for p in d["data"]] == [None, None, 3]


def test_unexpected_send_error_is_reported_as_transport_error():
    outcomes = []

    def handler(request):
        raise RuntimeError("socket exploded")

    c = GatewayClient("k", transport=httpx.MockTransport(handler), on_complete=outcomes.append)
    d = c.deliver(_msg())
    assert d.join(timeout=2.0) is DeliveryOutcome.TRANSPORT_ERROR
    assert outcomes == [DeliveryOutcome.TRANSPORT_ERROR]
