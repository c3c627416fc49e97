"""S3-compatible object store for attachment bytes.

All boto3 calls are wrapped with ``asyncio.to_thread()`` to avoid blocking.
"""

from __future__ import annotations

import asyncio

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from .config import StorageConfig
from .errors import UpstreamAPIFailure
from .models import StoredObject

logger = structlog.get_logger()


class ObjectStore:
    """Write-only bucket access: one ``put`` per attachment.

    Keys are deterministic, so writing the same attachment twice
    overwrites the object instead of duplicating it.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._config = config
        self._client = None  # type: ignore[assignment]

    async def start(self) -> None:
        """Create the boto3 S3 client."""
        kwargs: dict = {"region_name": self._config.region}
        if self._config.endpoint:
            kwargs["endpoint_url"] = self._config.endpoint
        if self._config.access_key_id and self._config.secret_access_key:
            kwargs["aws_access_key_id"] = self._config.access_key_id
            kwargs["aws_secret_access_key"] = self._config.secret_access_key.get_secret_value()
        self._client = await asyncio.to_thread(boto3.client, "s3", **kwargs)
        logger.info("object_store_started", bucket=self._config.bucket)

    async def stop(self) -> None:
        """Clean up the boto3 client."""
        self._client = None
        logger.info("object_store_stopped")

    async def put(self, key: str, body: bytes, content_type: str | None = None) -> StoredObject:
        """Write *body* at *key*.  Returns the :class:`StoredObject` written."""
        assert self._client is not None, "Object store not started"

        kwargs: dict = {"Bucket": self._config.bucket, "Key": key, "Body": body}
        if content_type:
            kwargs["ContentType"] = content_type

        try:
            await asyncio.to_thread(self._client.put_object, **kwargs)
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamAPIFailure(
                "Object store write failed",
                bucket=self._config.bucket,
                key=key,
                error=str(exc),
            ) from exc

        uri = f"s3://{self._config.bucket}/{key}"
        logger.debug("object_written", uri=uri, size=len(body))
        return StoredObject(key=key, content_type=content_type, size=len(body), uri=uri)
