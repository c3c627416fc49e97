"""Async Microsoft Graph client for the mail and subscription endpoints."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from .config import GraphConfig
from .errors import UpstreamAPIFailure
from .models import Attachment, Message, parse_attachment

logger = structlog.get_logger()

MESSAGE_SELECT = "id,subject,receivedDateTime,hasAttachments,from"
ATTACHMENT_SELECT = "id,name,contentType,size,contentBytes"


class GraphClient:
    """Bearer-authenticated reads against Graph v1.0.

    Every call takes the token explicitly so one token can be acquired per
    batch and shared by all of its notifications.  Non-2xx responses raise
    :class:`UpstreamAPIFailure` carrying the status code.
    """

    def __init__(self, config: GraphConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    @property
    def mailbox_path(self) -> str:
        """``users/{mailbox}`` for a configured mailbox, ``me`` otherwise."""
        if self._config.mailbox:
            return f"users/{quote(self._config.mailbox, safe='')}"
        return "me"

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url.rstrip("/") + "/",
            timeout=httpx.Timeout(self._config.timeout_seconds),
        )
        logger.info("graph_client_started", base_url=self._config.base_url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("graph_client_stopped")

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    async def get_message(self, message_id: str, token: str) -> Message:
        """Fetch message metadata with a field projection."""
        data = await self._get_json(
            f"{self.mailbox_path}/messages/{quote(message_id, safe='')}",
            token,
            params={"$select": MESSAGE_SELECT},
        )
        return Message.model_validate(data)

    async def list_attachments(self, message_id: str, token: str) -> list[Attachment]:
        """List a message's attachments, following ``@odata.nextLink`` pages."""
        path: str | None = f"{self.mailbox_path}/messages/{quote(message_id, safe='')}/attachments"
        params: dict[str, str] | None = {"$select": ATTACHMENT_SELECT}
        attachments: list[Attachment] = []
        while path:
            data = await self._get_json(path, token, params=params)
            attachments.extend(parse_attachment(item) for item in data.get("value") or [])
            path = data.get("@odata.nextLink")
            params = None
        return attachments

    async def get_attachment_bytes(self, message_id: str, attachment_id: str, token: str) -> bytes:
        """Download raw bytes from an attachment's ``$value`` endpoint."""
        response = await self._request(
            "GET",
            f"{self.mailbox_path}/messages/{quote(message_id, safe='')}"
            f"/attachments/{quote(attachment_id, safe='')}/$value",
            token,
        )
        logger.debug(
            "attachment_bytes_fetched",
            message_id=message_id,
            attachment_id=attachment_id,
            size=len(response.content),
        )
        return response.content

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def list_subscriptions(self, token: str) -> list[dict[str, Any]]:
        data = await self._get_json("subscriptions", token)
        return list(data.get("value") or [])

    async def create_subscription(self, payload: dict[str, Any], token: str) -> dict[str, Any]:
        response = await self._request("POST", "subscriptions", token, json=payload)
        return response.json()

    async def update_subscription(
        self,
        subscription_id: str,
        payload: dict[str, Any],
        token: str,
    ) -> dict[str, Any] | None:
        response = await self._request(
            "PATCH",
            f"subscriptions/{quote(subscription_id, safe='')}",
            token,
            json=payload,
        )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get_json(
        self,
        path: str,
        token: str,
        *,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        response = await self._request("GET", path, token, params=params)
        return response.json()

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        **kwargs: Any,
    ) -> httpx.Response:
        assert self._client is not None, "Graph client not started"
        try:
            response = await self._client.request(
                method,
                path,
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise UpstreamAPIFailure(
                f"Graph {method} request failed",
                path=path,
                error=str(exc),
            ) from exc

        if response.is_error:
            raise UpstreamAPIFailure(
                f"Graph {method} returned an error status",
                status_code=response.status_code,
                path=path,
                body=response.text[:500],
            )
        return response
