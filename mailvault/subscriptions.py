"""Subscription maintenance: keep Graph pushing notifications to the webhook.

Operational tooling only; nothing in the ingestion path depends on it.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from .auth import TokenProvider
from .errors import SubscriptionNotFound
from .graph import GraphClient

logger = structlog.get_logger()


def _expiration(days: int, *, now: datetime | None = None) -> str:
    moment = (now or datetime.now(UTC)) + timedelta(days=days)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.000Z")


class SubscriptionManager:
    """List, create and renew the mailbox's ``created`` message subscription."""

    def __init__(
        self,
        graph: GraphClient,
        tokens: TokenProvider,
        *,
        client_state: str | None = None,
        days: int = 2,
    ) -> None:
        self._graph = graph
        self._tokens = tokens
        self._client_state = client_state
        self._days = days

    async def list_all(self) -> list[dict[str, Any]]:
        token = await self._tokens.get_token()
        return await self._graph.list_subscriptions(token)

    async def find(self, notification_url: str) -> dict[str, Any] | None:
        for subscription in await self.list_all():
            if subscription.get("notificationUrl") == notification_url:
                return subscription
        return None

    async def create(self, notification_url: str, *, now: datetime | None = None) -> dict[str, Any]:
        """Create a subscription for new messages in the configured mailbox."""
        token = await self._tokens.get_token()
        payload: dict[str, Any] = {
            "changeType": "created",
            "notificationUrl": notification_url,
            "resource": f"{self._graph.mailbox_path}/messages",
            "expirationDateTime": _expiration(self._days, now=now),
        }
        if self._client_state:
            payload["clientState"] = self._client_state

        created = await self._graph.create_subscription(payload, token)
        logger.info(
            "subscription_created",
            subscription_id=created.get("id"),
            resource=payload["resource"],
            expires=created.get("expirationDateTime"),
        )
        return created

    async def renew(self, notification_url: str, *, now: datetime | None = None) -> dict[str, Any]:
        """Extend the subscription pointing at *notification_url*.

        Raises :class:`SubscriptionNotFound` if no subscription matches.
        """
        subscription = await self.find(notification_url)
        if subscription is None:
            logger.warning("subscription_not_found", notification_url=notification_url)
            raise SubscriptionNotFound(notification_url)

        token = await self._tokens.get_token()
        expiration = _expiration(self._days, now=now)
        updated = await self._graph.update_subscription(
            subscription["id"],
            {"expirationDateTime": expiration},
            token,
        )
        logger.info(
            "subscription_renewed",
            subscription_id=subscription["id"],
            expires=expiration,
        )
        return updated or {**subscription, "expirationDateTime": expiration}
