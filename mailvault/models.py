"""Data models for Graph notifications, messages, attachments and stored objects."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

FILE_ATTACHMENT_TYPE = "#microsoft.graph.fileAttachment"
ITEM_ATTACHMENT_TYPE = "#microsoft.graph.itemAttachment"
REFERENCE_ATTACHMENT_TYPE = "#microsoft.graph.referenceAttachment"


# ------------------------------------------------------------------
# Notifications (inbound webhook payload)
# ------------------------------------------------------------------


class ResourceData(BaseModel):
    """The ``resourceData`` block of a change notification."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    odata_type: str | None = Field(default=None, alias="@odata.type")


class Notification(BaseModel):
    """One change notification pushed by Graph.

    Unknown keys are kept so a notification can be forwarded to the queue
    exactly as it was received.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    subscription_id: str | None = Field(default=None, alias="subscriptionId")
    client_state: str | None = Field(default=None, alias="clientState")
    change_type: str | None = Field(default=None, alias="changeType")
    resource: str | None = None
    resource_data: ResourceData | None = Field(default=None, alias="resourceData")

    @property
    def message_id(self) -> str | None:
        """The message identifier, or ``None`` when the notification lacks one."""
        if self.resource_data is None:
            return None
        return self.resource_data.id or None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


def parse_notifications(items: list[Any]) -> tuple[list[Notification], list[int]]:
    """Validate each entry of a ``value`` array on its own.

    Returns the notifications that parsed and the indexes of the ones that
    did not, so one malformed entry never costs its siblings.
    """
    notifications: list[Notification] = []
    dropped: list[int] = []
    for index, item in enumerate(items):
        try:
            notifications.append(Notification.model_validate(item))
        except ValidationError:
            dropped.append(index)
    return notifications, dropped


# ------------------------------------------------------------------
# Mail resources (Graph responses)
# ------------------------------------------------------------------


class Message(BaseModel):
    """Projection of a Graph message; only the fields ingestion needs."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    subject: str | None = None
    received_date_time: str | None = Field(default=None, alias="receivedDateTime")
    has_attachments: bool = Field(default=False, alias="hasAttachments")


class BaseAttachment(BaseModel):
    """Fields shared by every attachment variant."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str = ""
    content_type: str | None = Field(default=None, alias="contentType")
    size: int | None = None
    odata_type: str | None = Field(default=None, alias="@odata.type")


class FileAttachment(BaseAttachment):
    """Attachment carrying literal bytes, inline when small enough."""

    content_bytes: str | None = Field(default=None, alias="contentBytes")

    def inline_bytes(self) -> bytes | None:
        """Decode ``contentBytes``; ``None`` means the bytes must be fetched."""
        if not self.content_bytes:
            return None
        return base64.b64decode(self.content_bytes)


class ItemAttachment(BaseAttachment):
    """An embedded Outlook item (message, event, contact)."""


class ReferenceAttachment(BaseAttachment):
    """A link to a file stored elsewhere (OneDrive, SharePoint)."""


class UnknownAttachment(BaseAttachment):
    """Any attachment whose ``@odata.type`` is not recognised."""


Attachment = FileAttachment | ItemAttachment | ReferenceAttachment | UnknownAttachment

_ATTACHMENT_TYPES: dict[str, type[BaseAttachment]] = {
    FILE_ATTACHMENT_TYPE: FileAttachment,
    ITEM_ATTACHMENT_TYPE: ItemAttachment,
    REFERENCE_ATTACHMENT_TYPE: ReferenceAttachment,
}


def parse_attachment(data: dict[str, Any]) -> Attachment:
    """Build the attachment variant selected by ``@odata.type``."""
    model = _ATTACHMENT_TYPES.get(data.get("@odata.type") or "", UnknownAttachment)
    return model.model_validate(data)  # type: ignore[return-value]


# ------------------------------------------------------------------
# Write side
# ------------------------------------------------------------------


def object_key(
    message_id: str,
    attachment_name: str,
    received_date_time: str | None,
    *,
    now: datetime | None = None,
) -> str:
    """Build the object key ``{YYYY-MM-DD}/{message_id}/{attachment_name}``.

    The date is the first 10 characters of ``receivedDateTime`` and falls
    back to the current UTC date.  The name is used verbatim.
    """
    if received_date_time:
        date = received_date_time[:10]
    else:
        date = (now or datetime.now(UTC)).strftime("%Y-%m-%d")
    return f"{date}/{message_id}/{attachment_name}"


class StoredObject(BaseModel):
    """An attachment written to the object store."""

    key: str
    content_type: str | None = None
    size: int
    uri: str


class AttachmentFailure(BaseModel):
    """An attachment whose fetch or write failed."""

    attachment_id: str
    name: str
    error: str


class IngestionResult(BaseModel):
    """Outcome of running the pipeline on one notification."""

    message_id: str | None = None
    stored: list[StoredObject] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: list[AttachmentFailure] = Field(default_factory=list)
    skipped_reason: str | None = None

    @property
    def ok(self) -> bool:
        return not self.failed


# ------------------------------------------------------------------
# Queue
# ------------------------------------------------------------------


@dataclass
class QueueMessage:
    """A message received from the notification queue."""

    message_id: str
    body: str
    receipt_handle: str


@dataclass
class WorkerRunResult:
    """Counters for one worker invocation."""

    received: int = 0
    processed: int = 0
    failed: int = 0
    deleted: int = 0
    errors: list[str] = field(default_factory=list)
