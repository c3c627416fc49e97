"""mailvault configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars,
which is how the webhook and the worker are configured in deployment.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class DispatchMode(str, Enum):
    """How the webhook hands accepted notifications downstream."""

    INLINE = "inline"
    QUEUE = "queue"


class IdentityConfig(BaseSettings):
    """Azure AD app registration used for the client-credential flow."""

    model_config = {"env_prefix": "AZURE_"}

    tenant_id: str = Field(default="", description="Azure AD tenant ID")
    client_id: str = Field(default="", description="App registration client ID")
    client_secret: SecretStr = Field(
        default=SecretStr(""),
        description="App registration client secret",
    )
    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        description="Authority host the tenant ID is appended to",
    )
    scope: str = Field(
        default="https://graph.microsoft.com/.default",
        description="Scope requested for the Graph bearer token",
    )

    @property
    def authority(self) -> str:
        return f"{self.authority_host.rstrip('/')}/{self.tenant_id}"


class GraphConfig(BaseSettings):
    """Microsoft Graph mail API settings."""

    model_config = {"env_prefix": "GRAPH_"}

    base_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Graph API base URL",
    )
    mailbox: str | None = Field(
        default=None,
        description="Target mailbox (UPN or ID); the token's own mailbox when unset",
    )
    timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")


class WebhookConfig(BaseSettings):
    """Inbound notification endpoint settings."""

    model_config = {"env_prefix": "WEBHOOK_"}

    client_state: SecretStr | None = Field(
        default=None,
        description="Shared secret Graph echoes in every notification",
    )
    path: str = Field(default="/api/graph-webhook", description="Route for notifications")
    mode: DispatchMode = Field(
        default=DispatchMode.INLINE,
        description="inline: ingest before acking; queue: enqueue and ack",
    )
    max_concurrency: int = Field(
        default=4,
        ge=1,
        description="Notifications ingested in parallel per batch (inline mode)",
    )
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, description="Bind port")
    notification_url: str | None = Field(
        default=None,
        description="Public URL of this endpoint, used by subscription tooling",
    )
    subscription_days: int = Field(
        default=2,
        ge=1,
        description="Days a created or renewed subscription stays valid",
    )


class StorageConfig(BaseSettings):
    """S3-compatible object store (Cloudflare R2) settings."""

    model_config = {"env_prefix": "R2_"}

    bucket: str = Field(default="", description="Bucket attachments are written to")
    endpoint: str | None = Field(
        default=None,
        description="S3 endpoint URL (e.g. https://<account>.r2.cloudflarestorage.com)",
    )
    region: str = Field(default="auto", description="Region; R2 ignores it")
    access_key_id: str | None = Field(default=None, description="Access key ID")
    secret_access_key: SecretStr | None = Field(default=None, description="Secret access key")


class QueueConfig(BaseSettings):
    """SQS queue settings for the offloaded notification path."""

    model_config = {"env_prefix": "SQS_"}

    queue_url: str = Field(default="", description="SQS queue URL; empty disables the queue path")
    region: str = Field(default="us-east-1", description="AWS region")
    access_key_id: str | None = Field(default=None, description="Access key ID")
    secret_access_key: SecretStr | None = Field(default=None, description="Secret access key")
    max_messages: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Messages received per worker invocation",
    )
    wait_seconds: int = Field(
        default=10,
        ge=0,
        le=20,
        description="Long-poll wait per receive call",
    )


class WorkerConfig(BaseSettings):
    """Standalone queue worker process settings."""

    model_config = {"env_prefix": "WORKER_"}

    health_port: int = Field(default=8081, description="Port for the K8s health endpoints")
    idle_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Pause after an empty poll or a failed invocation",
    )


class LogConfig(BaseSettings):
    """Logging output settings."""

    model_config = {"env_prefix": "LOG_"}

    format: str = Field(
        default="json",
        pattern="^(json|console)$",
        description="json for JSON lines, console for the human-friendly renderer",
    )
    level: str = Field(default="INFO", description="Root log level")


class AppConfig(BaseSettings):
    """Root configuration; nested configs read their own env-var prefixes."""

    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    @property
    def queue_enabled(self) -> bool:
        return bool(self.queue.queue_url)
