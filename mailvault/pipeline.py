"""IngestionPipeline: move a notified message's file attachments into the bucket."""

from __future__ import annotations

import asyncio

import structlog

from .graph import GraphClient
from .models import (
    AttachmentFailure,
    FileAttachment,
    IngestionResult,
    ItemAttachment,
    Message,
    Notification,
    ReferenceAttachment,
    StoredObject,
    UnknownAttachment,
    object_key,
)
from .s3 import ObjectStore

logger = structlog.get_logger()


class IngestionPipeline:
    """Fetch attachments for one notification from Graph and write them to storage.

    Safe to run repeatedly for the same notification: object keys depend
    only on the message's received date, its ID and the attachment name.
    """

    def __init__(self, graph: GraphClient, store: ObjectStore) -> None:
        self._graph = graph
        self._store = store

    async def ingest(self, notification: Notification, token: str) -> IngestionResult:
        """Run the pipeline for one notification.

        A failed message fetch propagates as
        :class:`~mailvault.errors.UpstreamAPIFailure`; so does a failed
        attachment listing, unless the message has no attachments.  Per-attachment
        failures are logged and recorded in the result without stopping
        sibling attachments.
        """
        message_id = notification.message_id
        if not message_id:
            logger.warning(
                "notification_missing_message_id",
                subscription_id=notification.subscription_id,
            )
            return IngestionResult(skipped_reason="missing_message_id")

        log = logger.bind(message_id=message_id)

        message, attachments = await asyncio.gather(
            self._graph.get_message(message_id, token),
            self._graph.list_attachments(message_id, token),
            return_exceptions=True,
        )
        if isinstance(message, BaseException):
            raise message
        # A failed listing only matters when the message claims attachments.
        if message.has_attachments and isinstance(attachments, BaseException):
            raise attachments

        if not message.has_attachments or not attachments:
            log.info("message_has_no_attachments")
            return IngestionResult(message_id=message_id, skipped_reason="no_attachments")

        result = IngestionResult(message_id=message_id)
        files: list[FileAttachment] = []
        for attachment in attachments:
            match attachment:
                case FileAttachment():
                    files.append(attachment)
                case ItemAttachment() | ReferenceAttachment():
                    log.info(
                        "attachment_skipped",
                        attachment_id=attachment.id,
                        name=attachment.name,
                        odata_type=attachment.odata_type,
                    )
                    result.skipped.append(attachment.name)
                case UnknownAttachment():
                    log.warning(
                        "attachment_unknown_type",
                        attachment_id=attachment.id,
                        name=attachment.name,
                        odata_type=attachment.odata_type,
                    )
                    result.skipped.append(attachment.name)

        outcomes = await asyncio.gather(
            *(self._store_attachment(message, message_id, f, token) for f in files)
        )
        for outcome in outcomes:
            if isinstance(outcome, StoredObject):
                result.stored.append(outcome)
            else:
                result.failed.append(outcome)

        log.info(
            "message_ingested",
            stored=len(result.stored),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )
        return result

    async def _store_attachment(
        self,
        message: Message,
        message_id: str,
        attachment: FileAttachment,
        token: str,
    ) -> StoredObject | AttachmentFailure:
        """Fetch and write one attachment; failures are returned, not raised."""
        try:
            data = attachment.inline_bytes()
            if data is None:
                data = await self._graph.get_attachment_bytes(message_id, attachment.id, token)

            key = object_key(message_id, attachment.name, message.received_date_time)
            stored = await self._store.put(key, data, attachment.content_type)
        except Exception as exc:
            logger.exception(
                "attachment_ingest_failed",
                message_id=message_id,
                attachment_id=attachment.id,
                name=attachment.name,
            )
            return AttachmentFailure(
                attachment_id=attachment.id,
                name=attachment.name,
                error=str(exc),
            )

        logger.info(
            "attachment_stored",
            message_id=message_id,
            key=stored.key,
            size=stored.size,
            content_type=stored.content_type,
        )
        return stored

