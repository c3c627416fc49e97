"""Exception taxonomy for the notification and ingestion path.

Every error carries keyword context so log lines stay structured::

    raise UpstreamAPIFailure("Graph GET failed", status_code=404, url=url)
"""

from __future__ import annotations

from typing import Any


class MailVaultError(Exception):
    """Base exception for mailvault."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class AuthenticationFailure(MailVaultError):
    """A bearer token could not be acquired from the identity provider."""


class ValidationFailure(MailVaultError):
    """A notification batch failed the clientState check."""


class UpstreamAPIFailure(MailVaultError):
    """The mail API, object store or queue returned a non-success result."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        **context: Any,
    ) -> None:
        self.status_code = status_code
        if status_code is not None:
            context["status_code"] = status_code
        super().__init__(message, **context)

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class SubscriptionNotFound(MailVaultError):
    """No Graph subscription points at the requested notification URL."""

    def __init__(self, notification_url: str) -> None:
        self.notification_url = notification_url
        super().__init__(
            "No active subscription for notification URL",
            notification_url=notification_url,
        )
