"""Process entry point: wires the buses from settings and serves health checks."""

import asyncio
import signal
from dataclasses import dataclass
from typing import Iterable, Optional

from prometheus_client import start_http_server
import structlog

from .actions import ActionBus, ActionDefinition, ActionRegistry, SideEffectProcessor
from .actions.bus import set_action_bus
from .audit import InMemoryAuditLog
from .config import BusSettings
from .events import EventBus, EventSubscriber, WebhookDeliverer, WebhookRegistry
from .notifications import NotificationCenter
from .storage import InMemoryDatabase
from .utils import (
    LoggingExceptionCapture,
    setup_logging,
    start_health_server,
    stop_health_server,
)

logger = structlog.get_logger(__name__)


@dataclass
class Runtime:
    """Everything ``bootstrap`` wired together."""

    settings: BusSettings
    action_bus: ActionBus
    event_bus: EventBus
    registry: ActionRegistry
    audit_log: InMemoryAuditLog
    notifications: NotificationCenter
    webhooks: WebhookRegistry
    webhook_deliverer: WebhookDeliverer
    database: InMemoryDatabase

    async def shutdown(self) -> None:
        """Flush detached work and release HTTP resources."""
        await self.action_bus.drain()
        await self.webhook_deliverer.close()


def bootstrap(
    settings: Optional[BusSettings] = None,
    actions: Iterable[ActionDefinition] = (),
    subscribers: Iterable[EventSubscriber] = (),
    *,
    install_default: bool = True,
) -> Runtime:
    """Build registries, buses and collaborators from settings.

    Args:
        settings: Settings; read from the environment when omitted
        actions: Definitions registered as one batch
        subscribers: Event subscribers registered after the webhook dispatcher
        install_default: Make the new bus the process-wide ``dispatch`` target

    Returns:
        The wired runtime
    """
    settings = settings or BusSettings()
    exception_capture = LoggingExceptionCapture()

    registry = ActionRegistry()
    registry.register_many(actions)

    event_bus = EventBus(exception_capture=exception_capture)

    webhooks = WebhookRegistry(delivery_log_size=settings.webhook_delivery_log_size)
    deliverer = WebhookDeliverer(
        webhooks,
        timeout=settings.webhook_timeout,
        max_retries=settings.webhook_max_retries,
        retry_delays=settings.webhook_retry_delays,
    )
    event_bus.subscribe(deliverer.as_subscriber())
    event_bus.subscribe_all(subscribers)

    notifications = NotificationCenter()
    audit_log = InMemoryAuditLog(max_entries=settings.audit_log_max_entries)
    database = InMemoryDatabase()

    action_bus = ActionBus(
        registry,
        event_bus,
        audit_sink=audit_log,
        exception_capture=exception_capture,
        side_effects=SideEffectProcessor(notifications=notifications, webhooks=deliverer),
        db_factory=database.for_tenant,
        audit_input_max_chars=settings.audit_input_max_chars,
    )
    if install_default:
        set_action_bus(action_bus)

    logger.info(
        "Bootstrapped action bus",
        actions=len(registry),
        subscribers=event_bus.subscriber_count(),
    )

    return Runtime(
        settings=settings,
        action_bus=action_bus,
        event_bus=event_bus,
        registry=registry,
        audit_log=audit_log,
        notifications=notifications,
        webhooks=webhooks,
        webhook_deliverer=deliverer,
        database=database,
    )


async def serve(runtime: Runtime) -> None:
    """Serve metrics and health endpoints until SIGINT or SIGTERM."""
    settings = runtime.settings

    if settings.metrics_enabled:
        start_http_server(settings.metrics_port)
        logger.info("Started Prometheus metrics server", port=settings.metrics_port)

    await start_health_server(settings.health_port, runtime.action_bus)
    logger.info("Started health check server", port=settings.health_port)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            logger.debug("Signal handlers not supported", signal=sig.name)

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down")
        await stop_health_server()
        await runtime.shutdown()


def main() -> None:
    """Main entry point."""
    settings = BusSettings()
    setup_logging(settings.log_level, settings.log_format)

    logger.info("Starting metabus", version="0.1.0")
    asyncio.run(serve(bootstrap(settings)))


if __name__ == "__main__":
    main()
