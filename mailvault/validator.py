"""clientState validation for inbound notification batches."""

from __future__ import annotations

import hmac
from collections.abc import Sequence

import structlog

from .errors import ValidationFailure
from .models import Notification

logger = structlog.get_logger()


def client_state_matches(client_state: str, secret: str) -> bool:
    """Constant-time comparison of the echoed clientState with the secret."""
    return hmac.compare_digest(client_state.encode("utf-8"), secret.encode("utf-8"))


def validate_batch(notifications: Sequence[Notification], secret: str | None) -> None:
    """Reject the whole batch if any notification carries a wrong clientState.

    Permissive by policy: with no secret configured, or for a notification
    that carries no clientState, the check passes.  Raises
    :class:`ValidationFailure` on the first mismatch; nothing in a rejected
    batch may be processed.
    """
    if not secret:
        return

    for index, notification in enumerate(notifications):
        client_state = notification.client_state
        if not client_state:
            continue
        if not client_state_matches(client_state, secret):
            logger.warning(
                "client_state_mismatch",
                index=index,
                subscription_id=notification.subscription_id,
                batch_size=len(notifications),
            )
            raise ValidationFailure(
                "Invalid clientState",
                subscription_id=notification.subscription_id,
            )
