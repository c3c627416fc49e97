"""QueueWorker: drain queued notifications through the ingestion pipeline."""

from __future__ import annotations

import asyncio
import signal
import time
from typing import TYPE_CHECKING

import structlog
import uvicorn
from pydantic import ValidationError

from .auth import TokenProvider
from .errors import UpstreamAPIFailure
from .health import create_health_app
from .models import Notification, QueueMessage, WorkerRunResult
from .pipeline import IngestionPipeline
from .sqs import NotificationQueue
from .validator import client_state_matches

if TYPE_CHECKING:
    from .config import AppConfig
    from .runtime import Runtime

logger = structlog.get_logger()


class QueueWorker:
    """Receive a bounded batch, ingest each notification, delete each message.

    Every received message is deleted once it has been handled, whether
    ingestion succeeded, failed, or the body could not be parsed.  Failed
    ingestion is only visible in the logs and the health counters.
    """

    def __init__(
        self,
        queue: NotificationQueue,
        tokens: TokenProvider,
        pipeline: IngestionPipeline,
        *,
        max_messages: int = 5,
        wait_seconds: int = 10,
        idle_seconds: float = 5.0,
        client_state: str | None = None,
    ) -> None:
        self._queue = queue
        self._tokens = tokens
        self._pipeline = pipeline
        self._max_messages = max_messages
        self._wait_seconds = wait_seconds
        self._idle_seconds = idle_seconds
        self._client_state = client_state
        self._shutdown_event = asyncio.Event()

        self._invocations: int = 0
        self._messages_processed: int = 0
        self._messages_failed: int = 0
        self._last_run_at: float | None = None
        self._start_time: float = time.monotonic()
        self._running: bool = False

    # ------------------------------------------------------------------
    # Public properties (used by health checks)
    # ------------------------------------------------------------------

    @property
    def invocations(self) -> int:
        return self._invocations

    @property
    def messages_processed(self) -> int:
        return self._messages_processed

    @property
    def messages_failed(self) -> int:
        return self._messages_failed

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._start_time

    @property
    def seconds_since_last_run(self) -> float | None:
        if self._last_run_at is None:
            return None
        return time.monotonic() - self._last_run_at

    @property
    def is_ready(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Single invocation
    # ------------------------------------------------------------------

    async def run_once(self) -> WorkerRunResult:
        """Receive up to ``max_messages`` and process them.

        Raises :class:`~mailvault.errors.AuthenticationFailure` when no token
        can be acquired; the received messages are then left on the queue
        and reappear after their visibility timeout.
        """
        self._invocations += 1
        self._last_run_at = time.monotonic()
        result = WorkerRunResult()

        messages = await self._queue.receive(self._max_messages, self._wait_seconds)
        result.received = len(messages)
        if not messages:
            logger.debug("queue_empty")
            return result

        token = await self._tokens.get_token()

        outcomes = await asyncio.gather(*(self._handle(m, token) for m in messages))
        for ok, deleted, error in outcomes:
            if ok:
                result.processed += 1
            else:
                result.failed += 1
                if error:
                    result.errors.append(error)
            if deleted:
                result.deleted += 1

        self._messages_processed += result.processed
        self._messages_failed += result.failed
        logger.info(
            "worker_batch_complete",
            received=result.received,
            processed=result.processed,
            failed=result.failed,
            deleted=result.deleted,
        )
        return result

    async def _handle(self, message: QueueMessage, token: str) -> tuple[bool, bool, str | None]:
        """Process one queue message.  Returns ``(ok, deleted, error)``."""
        log = logger.bind(queue_message_id=message.message_id)
        ok = True
        error: str | None = None
        try:
            notification = self._parse(message)
            if notification is None:
                log.warning("queue_message_unparseable")
            elif self._client_state_rejected(notification):
                log.warning("queue_message_client_state_mismatch")
            else:
                result = await self._pipeline.ingest(notification, token)
                if not result.ok:
                    ok = False
                    error = f"{len(result.failed)} attachment(s) failed for {result.message_id}"
        except UpstreamAPIFailure as exc:
            if exc.is_unauthorized:
                self._tokens.invalidate()
            log.error("queue_message_ingest_failed", error=str(exc))
            ok, error = False, str(exc)
        except Exception as exc:
            log.exception("queue_message_ingest_failed")
            ok, error = False, str(exc)

        try:
            await self._queue.delete(message.receipt_handle)
        except Exception:
            log.exception("queue_message_delete_failed")
            return ok, False, error
        return ok, True, error

    @staticmethod
    def _parse(message: QueueMessage) -> Notification | None:
        try:
            return Notification.model_validate_json(message.body or "{}")
        except ValidationError:
            return None

    def _client_state_rejected(self, notification: Notification) -> bool:
        if not self._client_state or not notification.client_state:
            return False
        return not client_state_matches(notification.client_state, self._client_state)

    # ------------------------------------------------------------------
    # Long-running loop
    # ------------------------------------------------------------------

    async def run(self, health_port: int | None = None) -> None:
        """Poll until SIGTERM/SIGINT, optionally serving the health endpoints."""
        self._start_time = time.monotonic()
        self._install_signal_handlers()
        self._running = True
        logger.info("queue_worker_started")

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._poll_loop())
                if health_port:
                    tg.create_task(self._run_health_server(health_port))
        except* Exception:
            logger.exception("queue_worker_error")
        finally:
            self._running = False
            logger.info("queue_worker_stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def _poll_loop(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                result = await self.run_once()
            except Exception:
                logger.exception("worker_invocation_failed")
                await self._sleep(self._idle_seconds)
                continue

            if result.received == 0:
                await self._sleep(self._idle_seconds)

    async def _sleep(self, seconds: float) -> None:
        """Sleep unless shutdown is requested first."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    # ------------------------------------------------------------------
    # Health server
    # ------------------------------------------------------------------

    async def _run_health_server(self, port: int) -> None:
        app = create_health_app(self)
        config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        serve_task = asyncio.create_task(server.serve())
        await self._shutdown_event.wait()
        server.should_exit = True
        await serve_task

    # ------------------------------------------------------------------
    # Signal handling
    # ------------------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def _handle(sig: signal.Signals) -> None:
            logger.info("shutdown_signal_received", signal=sig.name)
            self._shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _handle, sig)


def build_worker(config: AppConfig, runtime: Runtime) -> QueueWorker | None:
    """Wire a :class:`QueueWorker` to the runtime's clients.

    Returns ``None`` when no queue URL is configured.
    """
    if runtime.queue is None:
        return None
    secret = config.webhook.client_state
    return QueueWorker(
        runtime.queue,
        runtime.tokens,
        runtime.pipeline,
        max_messages=config.queue.max_messages,
        wait_seconds=config.queue.wait_seconds,
        idle_seconds=config.worker.idle_seconds,
        client_state=secret.get_secret_value() if secret else None,
    )
