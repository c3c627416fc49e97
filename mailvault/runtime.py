"""Process-scoped client handles shared by the webhook and the worker."""

from __future__ import annotations

import structlog

from .auth import TokenProvider
from .config import AppConfig
from .graph import GraphClient
from .pipeline import IngestionPipeline
from .s3 import ObjectStore
from .sqs import NotificationQueue

logger = structlog.get_logger()


class Runtime:
    """Owns the token provider and the Graph, object store and queue clients.

    Built once per process and injected into the components that need it.
    ``queue`` is ``None`` when no queue URL is configured.
    """

    def __init__(
        self,
        tokens: TokenProvider,
        graph: GraphClient,
        store: ObjectStore,
        queue: NotificationQueue | None = None,
    ) -> None:
        self.tokens = tokens
        self.graph = graph
        self.store = store
        self.queue = queue
        self.pipeline = IngestionPipeline(graph, store)
        self._started = False

    @classmethod
    def from_config(cls, config: AppConfig) -> Runtime:
        return cls(
            tokens=TokenProvider(config.identity),
            graph=GraphClient(config.graph),
            store=ObjectStore(config.storage),
            queue=NotificationQueue(config.queue) if config.queue_enabled else None,
        )

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start every client; on failure, close the ones already started."""
        try:
            await self.graph.start()
            await self.store.start()
            if self.queue is not None:
                await self.queue.start()
        except Exception:
            logger.exception("runtime_start_failed")
            await self.stop()
            raise
        self._started = True
        logger.info("runtime_started", queue_enabled=self.queue is not None)

    async def stop(self) -> None:
        if self.queue is not None:
            await self.queue.stop()
        await self.store.stop()
        await self.graph.stop()
        self._started = False
        logger.info("runtime_stopped")
