"""Domain event distribution."""

from .base import WILDCARD, DomainEvent, EventSubscriber
from .bus import (
    EventBus,
    clear_subscribers,
    get_event_bus,
    get_subscriber_count,
    publish,
    subscribe,
    subscribe_all,
)
from .webhooks import WebhookDeliverer, WebhookRegistration, WebhookRegistry

__all__ = [
    "WILDCARD",
    "DomainEvent",
    "EventSubscriber",
    "EventBus",
    "get_event_bus",
    "subscribe",
    "subscribe_all",
    "publish",
    "get_subscriber_count",
    "clear_subscribers",
    "WebhookDeliverer",
    "WebhookRegistration",
    "WebhookRegistry",
]
