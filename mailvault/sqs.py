"""SQS queue for offloading notification processing from the webhook.

All boto3 calls are wrapped with ``asyncio.to_thread()`` to avoid blocking.
"""

from __future__ import annotations

import asyncio

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from .config import QueueConfig
from .errors import UpstreamAPIFailure
from .models import QueueMessage

logger = structlog.get_logger()


class NotificationQueue:
    """``send`` / ``receive`` / ``delete`` against one SQS queue URL."""

    def __init__(self, config: QueueConfig) -> None:
        self._config = config
        self._client = None  # type: ignore[assignment]

    async def start(self) -> None:
        """Create the boto3 SQS client."""
        kwargs: dict = {"region_name": self._config.region}
        if self._config.access_key_id and self._config.secret_access_key:
            kwargs["aws_access_key_id"] = self._config.access_key_id
            kwargs["aws_secret_access_key"] = self._config.secret_access_key.get_secret_value()
        self._client = await asyncio.to_thread(boto3.client, "sqs", **kwargs)
        logger.info("notification_queue_started", queue_url=self._config.queue_url)

    async def stop(self) -> None:
        """Clean up the boto3 client."""
        self._client = None
        logger.info("notification_queue_stopped")

    async def send(self, body: str) -> str:
        """Enqueue *body*.  Returns the SQS message ID."""
        assert self._client is not None, "Queue client not started"
        try:
            response = await asyncio.to_thread(
                self._client.send_message,
                QueueUrl=self._config.queue_url,
                MessageBody=body,
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamAPIFailure("Queue send failed", error=str(exc)) from exc

        message_id = response["MessageId"]
        logger.debug("notification_enqueued", queue_message_id=message_id)
        return message_id

    async def receive(
        self,
        max_messages: int | None = None,
        wait_seconds: int | None = None,
    ) -> list[QueueMessage]:
        """Long-poll for up to *max_messages* messages."""
        assert self._client is not None, "Queue client not started"
        try:
            response = await asyncio.to_thread(
                self._client.receive_message,
                QueueUrl=self._config.queue_url,
                MaxNumberOfMessages=max_messages or self._config.max_messages,
                WaitTimeSeconds=(
                    self._config.wait_seconds if wait_seconds is None else wait_seconds
                ),
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamAPIFailure("Queue receive failed", error=str(exc)) from exc

        messages = [
            QueueMessage(
                message_id=raw.get("MessageId", ""),
                body=raw.get("Body") or "",
                receipt_handle=raw["ReceiptHandle"],
            )
            for raw in response.get("Messages") or []
        ]
        logger.debug("queue_messages_received", count=len(messages))
        return messages

    async def delete(self, receipt_handle: str) -> None:
        """Acknowledge a received message so it is not redelivered."""
        assert self._client is not None, "Queue client not started"
        try:
            await asyncio.to_thread(
                self._client.delete_message,
                QueueUrl=self._config.queue_url,
                ReceiptHandle=receipt_handle,
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamAPIFailure("Queue delete failed", error=str(exc)) from exc
