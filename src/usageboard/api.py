"""
HTTP surface of the usage dashboard.

- GET /api/usage - current UsageSnapshot as JSON
- GET /health    - liveness check
- GET /metrics   - Prometheus exposition
"""

from typing import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import REGISTRY, CollectorRegistry, make_asgi_app

from usageboard.collector import UsageCollector

logger = structlog.get_logger()

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def create_app(
    collector: "UsageCollector",
    registry: "CollectorRegistry" = REGISTRY,
) -> "FastAPI":
    app = FastAPI(
        title="usageboard",
        description="LLM usage and cost reporting API",
    )

    @app.middleware("http")
    async def add_security_headers(
        request: "Request",
        call_next: "Callable[[Request], Awaitable[Response]]",
    ) -> "Response":
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response

    @app.get("/health")
    async def health() -> "dict[str, str]":
        return {"status": "ok"}

    @app.get("/api/usage")
    async def usage() -> "Response":
        # JSONResponse renders eagerly, so serialization errors land here too
        try:
            snapshot = await collector.get_snapshot()
            return JSONResponse(content=snapshot.to_dict())
        except Exception as err:
            logger.exception("usage_request_failed")
            return JSONResponse(status_code=500, content={"error": str(err)})

    app.mount("/metrics", make_asgi_app(registry=registry))
    return app
