#!/usr/bin/env python3
"""Lightweight HTTP smoke test without reaching the real gateway.

Starts a uvicorn server from the in-process FastAPI app with the gateway
pointed back at its own GET-only `/healthz`, so the post is rejected (405) and
logged as a gateway error. Pushes one flush and checks the operator endpoints.
"""
import os
import threading
import time
import sys
import httpx
from pathlib import Path

# Ensure repository root is on sys.path when running from tools/
ROOT = str(Path(__file__).resolve().parents[1])
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


def main() -> int:
    port = int(os.getenv("PORT", "8127"))
    base = f"http://127.0.0.1:{port}"

    from stackdriver_backend.app import create_app
    from stackdriver_backend.settings import BackendSettings
    import uvicorn

    settings = BackendSettings(apiKey="smoke", gatewayUrl=base + "/healthz", debug=True)
    app = create_app(settings)
    config = uvicorn.Config(app, host="127.0.0.1", port=port, log_level="info")
    server = uvicorn.Server(config)

    th = threading.Thread(target=server.run, daemon=True)
    th.start()

    ok = False
    for _ in range(60):
        try:
            r = httpx.get(base + "/healthz", timeout=0.5)
            if r.status_code == 200:
                ok = True
                break
        except httpx.HTTPError:
            pass
        time.sleep(0.25)
    if not ok:
        print("Server did not become ready", file=sys.stderr)
        server.should_exit = True
        th.join(timeout=2.0)
        return 1

    def _check(path: str, allow=(200,)):
        r = httpx.get(base + path, timeout=1.0)
        if r.status_code not in allow:
            raise RuntimeError(f"{path} -> {r.status_code}")
        print(path, "->", r.status_code, r.text)

    try:
        r = httpx.post(base + "/v1/flush", json={
            "timestamp": int(time.time()),
            "metrics": {"counters": {"smoke.hits": 1}, "gauges": {"smoke.level": 0}},
        }, timeout=1.0)
        print("/v1/flush ->", r.status_code, r.text)
        if r.status_code != 200:
            raise RuntimeError(f"/v1/flush -> {r.status_code}")
        _check("/status")
        _check("/metrics")
    finally:
        server.should_exit = True
        th.join(timeout=2.0)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
