"""mailvault: Graph mail notifications in, attachment objects out.

Public API re-exported here for convenience::

    from mailvault import AppConfig, IngestionPipeline, create_webhook_app
"""

from .auth import TokenProvider
from .config import AppConfig, DispatchMode
from .dispatch import InlineDispatcher, QueueDispatcher
from .errors import (
    AuthenticationFailure,
    MailVaultError,
    SubscriptionNotFound,
    UpstreamAPIFailure,
    ValidationFailure,
)
from .graph import GraphClient
from .logging import setup_logging
from .models import IngestionResult, Notification, StoredObject, object_key
from .pipeline import IngestionPipeline
from .runtime import Runtime
from .s3 import ObjectStore
from .sqs import NotificationQueue
from .subscriptions import SubscriptionManager
from .validator import validate_batch
from .webhook import create_webhook_app
from .worker import QueueWorker

__all__ = [
    "AppConfig",
    "AuthenticationFailure",
    "DispatchMode",
    "GraphClient",
    "InlineDispatcher",
    "IngestionPipeline",
    "IngestionResult",
    "MailVaultError",
    "Notification",
    "NotificationQueue",
    "ObjectStore",
    "QueueDispatcher",
    "QueueWorker",
    "Runtime",
    "StoredObject",
    "SubscriptionManager",
    "SubscriptionNotFound",
    "TokenProvider",
    "UpstreamAPIFailure",
    "ValidationFailure",
    "create_webhook_app",
    "object_key",
    "setup_logging",
    "validate_batch",
]
