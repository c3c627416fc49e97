"""Dispatchers: what the webhook does with a validated notification batch."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from .auth import TokenProvider
from .errors import UpstreamAPIFailure
from .models import Notification
from .pipeline import IngestionPipeline
from .sqs import NotificationQueue

logger = structlog.get_logger()


@dataclass
class DispatchSummary:
    """How many notifications of a batch were handled and how many failed."""

    succeeded: int = 0
    failed: int = 0


class BaseDispatcher(ABC):
    """Hand an accepted batch downstream.

    Dispatchers never raise for per-notification errors; they log them and
    count them in the returned :class:`DispatchSummary`.
    """

    @property
    @abstractmethod
    def mode(self) -> str:
        """Short name reported by the health endpoint."""

    @abstractmethod
    async def dispatch(self, notifications: Sequence[Notification]) -> DispatchSummary:
        """Process or enqueue every notification in the batch."""


class InlineDispatcher(BaseDispatcher):
    """Run the ingestion pipeline before the webhook acknowledges.

    One token is acquired per batch; notifications run concurrently, at
    most ``max_concurrency`` at a time.
    """

    def __init__(
        self,
        tokens: TokenProvider,
        pipeline: IngestionPipeline,
        max_concurrency: int = 4,
    ) -> None:
        self._tokens = tokens
        self._pipeline = pipeline
        self._max_concurrency = max_concurrency

    @property
    def mode(self) -> str:
        return "inline"

    async def dispatch(self, notifications: Sequence[Notification]) -> DispatchSummary:
        token = await self._tokens.get_token()
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _run(notification: Notification) -> bool:
            async with semaphore:
                try:
                    result = await self._pipeline.ingest(notification, token)
                except UpstreamAPIFailure as exc:
                    if exc.is_unauthorized:
                        self._tokens.invalidate()
                    logger.error(
                        "notification_ingest_failed",
                        message_id=notification.message_id,
                        error=str(exc),
                    )
                    return False
                except Exception:
                    logger.exception(
                        "notification_ingest_failed",
                        message_id=notification.message_id,
                    )
                    return False
                return result.ok

        outcomes = await asyncio.gather(*(_run(n) for n in notifications))
        summary = DispatchSummary(
            succeeded=sum(outcomes),
            failed=len(outcomes) - sum(outcomes),
        )
        return summary


class QueueDispatcher(BaseDispatcher):
    """Enqueue each notification verbatim for the queue worker."""

    def __init__(self, queue: NotificationQueue) -> None:
        self._queue = queue

    @property
    def mode(self) -> str:
        return "queue"

    async def dispatch(self, notifications: Sequence[Notification]) -> DispatchSummary:
        async def _send(notification: Notification) -> bool:
            try:
                await self._queue.send(notification.to_json())
            except Exception:
                logger.exception(
                    "notification_enqueue_failed",
                    message_id=notification.message_id,
                )
                return False
            return True

        outcomes = await asyncio.gather(*(_send(n) for n in notifications))
        summary = DispatchSummary(
            succeeded=sum(outcomes),
            failed=len(outcomes) - sum(outcomes),
        )
        logger.info("notifications_enqueued", count=summary.succeeded, failed=summary.failed)
        return summary
