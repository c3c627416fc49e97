"""Health check endpoints for the standalone queue worker."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from .worker import QueueWorker


def create_health_app(worker: QueueWorker) -> FastAPI:
    """Create a FastAPI app with health and readiness endpoints."""
    app = FastAPI(title="mailvault-worker health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({
            "service": "mailvault-worker",
            "uptime_seconds": worker.uptime_seconds,
            "invocations": worker.invocations,
            "messages_processed": worker.messages_processed,
            "messages_failed": worker.messages_failed,
            "seconds_since_last_run": worker.seconds_since_last_run,
        })

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = worker.is_ready
        return JSONResponse(
            {"ready": is_ready},
            status_code=200 if is_ready else 503,
        )

    return app
