"""FastAPI app receiving Graph change notifications.

Responses Graph can observe are limited to 200 (handshake), 202
(accepted), 400, 401 and 405.  Ingestion errors never change the status
code of an accepted batch: a non-2xx would make Graph retry and
eventually disable the subscription.
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import AppConfig, DispatchMode
from .dispatch import BaseDispatcher, InlineDispatcher, QueueDispatcher
from .errors import ValidationFailure
from .models import parse_notifications
from .runtime import Runtime
from .validator import validate_batch
from .worker import QueueWorker, build_worker

logger = structlog.get_logger()

WORKER_TRIGGER_PATH = "/api/workers/process-queue"
_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class WebhookStats:
    """Counters exposed on ``/health``."""

    def __init__(self) -> None:
        self.start_time = time.monotonic()
        self.batches_received = 0
        self.batches_rejected = 0
        self.notifications_accepted = 0
        self.notifications_failed = 0
        self.notifications_dropped = 0
        self.handshakes = 0


def build_dispatcher(config: AppConfig, runtime: Runtime) -> BaseDispatcher:
    """Select the dispatcher for ``WEBHOOK_MODE``."""
    if config.webhook.mode is DispatchMode.QUEUE:
        if runtime.queue is None:
            raise ValueError("WEBHOOK_MODE=queue requires SQS_QUEUE_URL to be set")
        return QueueDispatcher(runtime.queue)
    return InlineDispatcher(
        runtime.tokens,
        runtime.pipeline,
        max_concurrency=config.webhook.max_concurrency,
    )


def create_webhook_app(
    config: AppConfig,
    runtime: Runtime | None = None,
    *,
    dispatcher: BaseDispatcher | None = None,
    worker: QueueWorker | None = None,
) -> FastAPI:
    """Build the webhook app.

    Without an explicit *dispatcher* one is built from *runtime* (created
    from *config* when omitted).  The runtime's clients are started and
    stopped with the app lifespan.
    """
    if dispatcher is None:
        runtime = runtime or Runtime.from_config(config)
        dispatcher = build_dispatcher(config, runtime)
    if worker is None and runtime is not None:
        worker = build_worker(config, runtime)

    secret_value = config.webhook.client_state
    secret = secret_value.get_secret_value() if secret_value else None
    stats = WebhookStats()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if runtime is not None:
            await runtime.start()
        logger.info(
            "webhook_started",
            path=config.webhook.path,
            mode=dispatcher.mode,
            client_state_configured=bool(secret),
        )
        try:
            yield
        finally:
            if runtime is not None:
                await runtime.stop()
            logger.info("webhook_stopped")

    app = FastAPI(title="mailvault webhook", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.stats = stats

    @app.api_route(config.webhook.path, methods=_ALL_METHODS)
    async def graph_webhook(request: Request) -> Response:
        # Handshake: echo before doing anything else.
        validation_token = request.query_params.get("validationToken")
        if validation_token:
            stats.handshakes += 1
            logger.info("validation_handshake")
            return PlainTextResponse(validation_token, status_code=200)

        if request.method == "GET":
            return JSONResponse({"error": "Missing validationToken"}, status_code=400)
        if request.method != "POST":
            logger.info("method_not_allowed", method=request.method)
            return JSONResponse(
                {"error": "Method not allowed"},
                status_code=405,
                headers={"Allow": "GET, POST"},
            )

        raw = await request.body()
        try:
            payload = json.loads(raw) if raw.strip() else {}
        except ValueError:
            logger.warning("notification_body_invalid_json", size=len(raw))
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        value = payload.get("value") if isinstance(payload, dict) else None
        if not value:
            logger.debug("notification_batch_empty")
            return Response(status_code=202)
        if not isinstance(value, list):
            logger.warning("notification_batch_malformed", value_type=type(value).__name__)
            return Response(status_code=202)

        notifications, dropped = parse_notifications(value)
        if dropped:
            stats.notifications_dropped += len(dropped)
            logger.warning("notifications_malformed_dropped", indexes=dropped, size=len(value))
        if not notifications:
            return Response(status_code=202)

        stats.batches_received += 1
        try:
            validate_batch(notifications, secret)
        except ValidationFailure:
            stats.batches_rejected += 1
            logger.warning("notification_batch_rejected", size=len(notifications))
            return JSONResponse({"error": "Invalid clientState"}, status_code=401)

        try:
            summary = await dispatcher.dispatch(notifications)
        except Exception:
            stats.notifications_failed += len(notifications)
            logger.exception("notification_batch_dispatch_failed", size=len(notifications))
        else:
            stats.notifications_accepted += summary.succeeded
            stats.notifications_failed += summary.failed
            logger.info(
                "notification_batch_accepted",
                size=len(notifications),
                mode=dispatcher.mode,
                succeeded=summary.succeeded,
                failed=summary.failed,
            )
        return Response(status_code=202)

    if worker is not None:

        @app.api_route(WORKER_TRIGGER_PATH, methods=["GET", "POST"])
        async def process_queue() -> JSONResponse:
            try:
                result = await worker.run_once()
            except Exception as exc:
                logger.exception("worker_invocation_failed")
                return JSONResponse({"success": False, "error": str(exc)}, status_code=500)
            return JSONResponse({
                "success": True,
                "received": result.received,
                "processed": result.processed,
                "failed": result.failed,
            })

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({
            "service": "mailvault-webhook",
            "mode": dispatcher.mode,
            "uptime_seconds": time.monotonic() - stats.start_time,
            "handshakes": stats.handshakes,
            "batches_received": stats.batches_received,
            "batches_rejected": stats.batches_rejected,
            "notifications_accepted": stats.notifications_accepted,
            "notifications_failed": stats.notifications_failed,
            "notifications_dropped": stats.notifications_dropped,
        })

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = runtime is None or runtime.started
        return JSONResponse(
            {"ready": is_ready},
            status_code=200 if is_ready else 503,
        )

    return app
