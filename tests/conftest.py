"""Shared test fixtures for the mailvault test suite."""

from __future__ import annotations

import base64
from collections.abc import Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from mailvault.config import (
    AppConfig,
    GraphConfig,
    IdentityConfig,
    QueueConfig,
    StorageConfig,
    WebhookConfig,
)
from mailvault.dispatch import BaseDispatcher, DispatchSummary
from mailvault.models import Notification

GRAPH_BASE = "https://graph.test/v1.0"
CLIENT_STATE = "S"


@pytest.fixture
def identity_config() -> IdentityConfig:
    return IdentityConfig(
        tenant_id="tenant-1",
        client_id="client-1",
        client_secret=SecretStr("shh"),
    )


@pytest.fixture
def graph_config() -> GraphConfig:
    return GraphConfig(base_url=GRAPH_BASE, timeout_seconds=5.0)


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig(
        bucket="test-bucket",
        endpoint="https://account.r2.test",
        access_key_id="AKIA",
        secret_access_key=SecretStr("secret"),
    )


@pytest.fixture
def queue_config() -> QueueConfig:
    return QueueConfig(
        queue_url="https://sqs.us-east-1.amazonaws.com/123/notifications",
        region="us-east-1",
    )


@pytest.fixture
def app_config(
    identity_config: IdentityConfig,
    graph_config: GraphConfig,
    storage_config: StorageConfig,
) -> AppConfig:
    return AppConfig(
        identity=identity_config,
        graph=graph_config,
        storage=storage_config,
        webhook=WebhookConfig(client_state=SecretStr(CLIENT_STATE)),
        queue=QueueConfig(queue_url=""),
    )


# ------------------------------------------------------------------
# Graph payload builders
# ------------------------------------------------------------------


def make_notification(
    *,
    message_id: str | None = "m1",
    client_state: str | None = CLIENT_STATE,
    subscription_id: str = "sub-1",
) -> dict:
    """Build one change notification as Graph posts it."""
    notification: dict = {
        "subscriptionId": subscription_id,
        "changeType": "created",
        "resource": f"Users/u1/Messages/{message_id}",
    }
    if client_state is not None:
        notification["clientState"] = client_state
    if message_id is not None:
        notification["resourceData"] = {
            "@odata.type": "#Microsoft.Graph.Message",
            "id": message_id,
        }
    else:
        notification["resourceData"] = {"@odata.type": "#Microsoft.Graph.Message"}
    return notification


def make_message(
    *,
    message_id: str = "m1",
    has_attachments: bool = True,
    received: str | None = "2024-03-01T10:00:00Z",
) -> dict:
    message: dict = {
        "id": message_id,
        "subject": "Invoice",
        "hasAttachments": has_attachments,
    }
    if received is not None:
        message["receivedDateTime"] = received
    return message


def make_file_attachment(
    *,
    attachment_id: str = "a1",
    name: str = "invoice.pdf",
    content_type: str = "application/pdf",
    content: bytes | None = b"%PDF-1.4 invoice",
) -> dict:
    attachment: dict = {
        "@odata.type": "#microsoft.graph.fileAttachment",
        "id": attachment_id,
        "name": name,
        "contentType": content_type,
        "size": len(content or b""),
    }
    if content is not None:
        attachment["contentBytes"] = base64.b64encode(content).decode("ascii")
    return attachment


def make_item_attachment(*, attachment_id: str = "i1", name: str = "Forwarded") -> dict:
    return {
        "@odata.type": "#microsoft.graph.itemAttachment",
        "id": attachment_id,
        "name": name,
        "contentType": None,
        "size": 2048,
    }


# ------------------------------------------------------------------
# Collaborator doubles
# ------------------------------------------------------------------


class RecordingDispatcher(BaseDispatcher):
    """Dispatcher double that records every batch it receives."""

    def __init__(self, *, fail: bool = False) -> None:
        self.batches: list[list[Notification]] = []
        self._fail = fail

    @property
    def mode(self) -> str:
        return "recording"

    async def dispatch(self, notifications: Sequence[Notification]) -> DispatchSummary:
        self.batches.append(list(notifications))
        if self._fail:
            raise RuntimeError("downstream exploded")
        return DispatchSummary(succeeded=len(notifications))


@pytest.fixture
def recording_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def mock_tokens() -> MagicMock:
    """A TokenProvider double returning a fixed bearer token."""
    tokens = MagicMock()
    tokens.get_token = AsyncMock(return_value="token-123")
    tokens.invalidate = MagicMock()
    return tokens


@pytest.fixture
def mock_store() -> MagicMock:
    """An ObjectStore double whose ``put`` echoes a StoredObject."""
    from mailvault.models import StoredObject

    store = MagicMock()

    async def _put(key: str, body: bytes, content_type: str | None = None) -> StoredObject:
        return StoredObject(
            key=key,
            content_type=content_type,
            size=len(body),
            uri=f"s3://test-bucket/{key}",
        )

    store.put = AsyncMock(side_effect=_put)
    return store
