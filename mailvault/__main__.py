"""Entry point for mailvault.

Usage::

    python -m mailvault webhook                      # HTTP endpoint for Graph notifications
    python -m mailvault worker                       # drain the SQS queue
    python -m mailvault subscription list
    python -m mailvault subscription create [URL]
    python -m mailvault subscription renew [URL]

``URL`` defaults to ``WEBHOOK_NOTIFICATION_URL``.
"""

from __future__ import annotations

import asyncio
import json
import sys

_USAGE = (
    "Usage: python -m mailvault <webhook|worker|subscription> "
    "[list|create|renew] [notification-url]"
)


def _run_webhook(config) -> None:
    import uvicorn

    from .webhook import create_webhook_app

    app = create_webhook_app(config)
    uvicorn.run(app, host=config.webhook.host, port=config.webhook.port, log_level="warning")


async def _run_worker(config) -> None:
    from .runtime import Runtime
    from .worker import build_worker

    runtime = Runtime.from_config(config)
    worker = build_worker(config, runtime)
    if worker is None:
        print("SQS_QUEUE_URL must be set to run the worker", file=sys.stderr)
        sys.exit(1)

    await runtime.start()
    try:
        await worker.run(health_port=config.worker.health_port)
    finally:
        await runtime.stop()


async def _run_subscription(config, action: str, url: str | None) -> None:
    from .auth import TokenProvider
    from .errors import SubscriptionNotFound
    from .graph import GraphClient
    from .subscriptions import SubscriptionManager

    graph = GraphClient(config.graph)
    secret = config.webhook.client_state
    manager = SubscriptionManager(
        graph,
        TokenProvider(config.identity),
        client_state=secret.get_secret_value() if secret else None,
        days=config.webhook.subscription_days,
    )

    url = url or config.webhook.notification_url
    if action != "list" and not url:
        print("A notification URL is required (argument or WEBHOOK_NOTIFICATION_URL)", file=sys.stderr)
        sys.exit(1)

    await graph.start()
    try:
        if action == "list":
            result: object = await manager.list_all()
        elif action == "create":
            result = await manager.create(url)
        else:
            result = await manager.renew(url)
    except SubscriptionNotFound as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)
    finally:
        await graph.stop()

    print(json.dumps(result, indent=2))


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in ("webhook", "worker", "subscription"):
        print(_USAGE, file=sys.stderr)
        sys.exit(1)

    from .config import AppConfig
    from .logging import setup_logging

    mode = sys.argv[1]
    config = AppConfig()
    setup_logging(
        json=config.log.format == "json",
        level=config.log.level,
        service=f"mailvault-{mode}",
    )

    if mode == "webhook":
        _run_webhook(config)

    elif mode == "worker":
        asyncio.run(_run_worker(config))

    elif mode == "subscription":
        if len(sys.argv) < 3 or sys.argv[2] not in ("list", "create", "renew"):
            print(_USAGE, file=sys.stderr)
            sys.exit(1)
        url = sys.argv[3] if len(sys.argv) > 3 else None
        asyncio.run(_run_subscription(config, sys.argv[2], url))


if __name__ == "__main__":
    main()
