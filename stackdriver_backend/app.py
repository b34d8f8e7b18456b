"""HTTP host for the backend.

Provides:
- `create_app()`: builds the FastAPI app wired to one `StackdriverBackend`.
- `POST /v1/flush` lets an external aggregator push one flush cycle.
- `GET /status`, `GET /metrics`, `GET /healthz` for operators.

Google-style docstrings to ease automatic documentation.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .backend import StackdriverBackend
from .config_loader import build_settings
from .logging_utils import get_logger
from .settings import BackendSettings


class FlushRequest(BaseModel):
    timestamp: Optional[int] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)


def create_app(
    settings: Optional[BackendSettings] = None,
    backend: Optional[StackdriverBackend] = None,
) -> FastAPI:
    """Create and initialize the application.

    Args:
        settings (Optional[BackendSettings]): Defaults to `build_settings()`.
        backend (Optional[StackdriverBackend]): Pre-built backend (tests).

    Returns:
        FastAPI: The app; the backend is available as `app.state.backend`.
    """
    if backend is None:
        backend = StackdriverBackend(int(time.time()), settings or build_settings())
    log = get_logger("stackdriver.app")

    @asynccontextmanager
    async def _lifespan(_app):
        backend.start()
        yield

    app = FastAPI(title="stackdriver-statsd-backend", version="0.1.0", lifespan=_lifespan)
    app.state.backend = backend  # type: ignore[attr-defined]

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {
            "status": "ok",
            "api_key_set": bool(backend.settings.api_key),
            "attribution": backend.attributor.mode,
        }

    @app.post("/v1/flush")
    def flush(req: FlushRequest):
        ts = req.timestamp if req.timestamp is not None else int(time.time())
        delivery = backend.flush(ts, req.metrics)
        if delivery is None:
            return JSONResponse({"status": "skipped", "reason": "api key not set"}, status_code=503)
        log.debug("flush.request", extra={"timestamp": ts, "points": delivery.points})
        return {"status": "accepted", "points": delivery.points, "outcome": delivery.outcome.value if delivery.outcome else "pending"}

    @app.get("/status")
    def status() -> Dict[str, Any]:
        out: Dict[str, Dict[str, Any]] = {}

        def write(error, namespace, key, value):
            out.setdefault(namespace, {})[key] = value

        backend.status(write)
        return out

    @app.get("/metrics")
    def metrics_endpoint():
        return JSONResponse(backend.metrics.snapshot())

    return app
