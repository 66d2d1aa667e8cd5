"""Event bus: routes domain events to registered subscribers."""

import asyncio
import dataclasses
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import structlog
from prometheus_client import Counter

from ..utils.observability import ExceptionCapture, LoggingExceptionCapture
from .base import WILDCARD, DomainEvent, EventSubscriber


logger = structlog.get_logger(__name__)

EVENTS_PUBLISHED = Counter(
    "metabus_events_published_total",
    "Total number of domain events published",
    ["event_type"],
)

SUBSCRIBER_FAILURES = Counter(
    "metabus_event_subscriber_failures_total",
    "Total number of subscriber handlers that raised",
    ["subscriber", "event_type"],
)


class EventBus:
    """Pub/sub router with exact-type and wildcard subscriptions.

    Every matching handler runs concurrently. A failing handler is logged
    and captured but never stops its siblings and never reaches the
    publisher. There is no ordering guarantee between subscribers.
    """

    def __init__(self, exception_capture: Optional[ExceptionCapture] = None) -> None:
        """Initialize the event bus.

        Args:
            exception_capture: Receives subscriber failures; defaults to the log
        """
        self._subscribers: Dict[str, List[EventSubscriber]] = defaultdict(list)
        self._exception_capture = exception_capture or LoggingExceptionCapture()

        logger.debug("Initialized EventBus")

    def subscribe(self, subscriber: EventSubscriber) -> None:
        """Register a subscriber for its event type (or ``*``)."""
        self._subscribers[subscriber.event_type].append(subscriber)

        logger.info(
            "Registered event subscriber",
            subscriber=subscriber.name,
            event_type=subscriber.event_type,
        )

    def subscribe_all(self, subscribers: Iterable[EventSubscriber]) -> None:
        for subscriber in subscribers:
            self.subscribe(subscriber)

    def _matching(self, event_type: str) -> List[EventSubscriber]:
        matched = list(self._subscribers.get(event_type, ()))
        if event_type != WILDCARD:
            matched.extend(self._subscribers.get(WILDCARD, ()))
        return matched

    async def publish(self, event: DomainEvent) -> None:
        """Deliver an event to every matching subscriber.

        Waits for all handlers to settle. Never raises.

        Args:
            event: The event; ``timestamp`` is filled in when missing
        """
        if event.timestamp is None:
            event = dataclasses.replace(event, timestamp=datetime.now(timezone.utc))

        subscribers = self._matching(event.type)
        EVENTS_PUBLISHED.labels(event_type=event.type).inc()

        if not subscribers:
            logger.debug("No subscribers for event", event_type=event.type)
            return

        await asyncio.gather(*(self._deliver(sub, event) for sub in subscribers))

    async def _deliver(self, subscriber: EventSubscriber, event: DomainEvent) -> None:
        try:
            await subscriber.handler(event)
        except Exception as e:
            SUBSCRIBER_FAILURES.labels(
                subscriber=subscriber.name, event_type=event.type
            ).inc()
            logger.error(
                "Event subscriber failed",
                subscriber=subscriber.name,
                event_type=event.type,
                error=str(e),
            )
            try:
                self._exception_capture.capture_exception(
                    e, subscriber=subscriber.name, event_type=event.type
                )
            except Exception as capture_error:
                logger.warning(
                    "Exception capture failed",
                    subscriber=subscriber.name,
                    error=str(capture_error),
                )

    def subscriber_count(self) -> int:
        """Total number of registered subscribers across all event types."""
        return sum(len(subs) for subs in self._subscribers.values())

    def clear(self) -> None:
        """Remove every subscription."""
        self._subscribers.clear()

    def get_stats(self) -> Dict[str, object]:
        return {
            "subscribers": self.subscriber_count(),
            "event_types": sorted(self._subscribers),
        }


# Global event bus instance
_event_bus = EventBus()


def get_event_bus() -> EventBus:
    """Get the process-wide default event bus."""
    return _event_bus


def subscribe(subscriber: EventSubscriber) -> None:
    _event_bus.subscribe(subscriber)


def subscribe_all(subscribers: Iterable[EventSubscriber]) -> None:
    _event_bus.subscribe_all(subscribers)


async def publish(event: DomainEvent) -> None:
    await _event_bus.publish(event)


def get_subscriber_count() -> int:
    return _event_bus.subscriber_count()


def clear_subscribers() -> None:
    _event_bus.clear()
