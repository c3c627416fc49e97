"""Bearer token acquisition via the MSAL client-credential flow.

``msal`` is synchronous, so token requests run in ``asyncio.to_thread()``.
"""

from __future__ import annotations

import asyncio
import time

import msal
import structlog

from .config import IdentityConfig
from .errors import AuthenticationFailure

logger = structlog.get_logger()

# Refresh this many seconds before the token actually expires.
_EXPIRY_MARGIN_SECONDS = 60


class TokenProvider:
    """Acquire and cache a Graph bearer token for the app registration.

    The cached token is reused until shortly before expiry.  Callers that
    see a 401 from Graph call :meth:`invalidate` so the next
    :meth:`get_token` goes back to the identity provider.
    """

    def __init__(self, config: IdentityConfig) -> None:
        self._config = config
        self._app: msal.ConfidentialClientApplication | None = None
        self._access_token: str | None = None
        self._expires_at: float = 0.0

    def _application(self) -> msal.ConfidentialClientApplication:
        if self._app is None:
            self._app = msal.ConfidentialClientApplication(
                self._config.client_id,
                authority=self._config.authority,
                client_credential=self._config.client_secret.get_secret_value(),
            )
        return self._app

    @property
    def has_valid_token(self) -> bool:
        return self._access_token is not None and time.monotonic() < self._expires_at

    async def get_token(self) -> str:
        """Return a cached token or acquire a new one.

        Raises :class:`AuthenticationFailure` if the identity provider does
        not return an access token.
        """
        if self.has_valid_token:
            assert self._access_token is not None
            return self._access_token

        try:
            result = await asyncio.to_thread(self._acquire)
        except Exception as exc:
            logger.error("token_acquisition_failed", error=str(exc))
            raise AuthenticationFailure(
                "Token request to identity provider failed",
                tenant_id=self._config.tenant_id,
            ) from exc

        token = result.get("access_token")
        if not token:
            logger.error(
                "token_acquisition_failed",
                error=result.get("error"),
                error_description=result.get("error_description"),
            )
            raise AuthenticationFailure(
                "Failed to acquire Graph token",
                tenant_id=self._config.tenant_id,
                error=result.get("error"),
            )

        expires_in = int(result.get("expires_in", 3599))
        self._access_token = token
        self._expires_at = time.monotonic() + max(expires_in - _EXPIRY_MARGIN_SECONDS, 0)
        logger.info("token_acquired", expires_in=expires_in)
        return token

    def _acquire(self) -> dict:
        return self._application().acquire_token_for_client(scopes=[self._config.scope])

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-acquires."""
        if self._access_token is not None:
            logger.info("token_invalidated")
        self._access_token = None
        self._expires_at = 0.0
