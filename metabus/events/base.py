"""Domain event and subscriber types."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

WILDCARD = "*"


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened, named ``<entity>.<verb>`` by convention.

    ``tenant_id`` is stamped by ``ActionContext.emit``; events published
    outside a dispatch may leave it empty.
    """

    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    tenant_id: Optional[str] = None

    @property
    def entity(self) -> str:
        """Entity segment of the event type (text before the first dot)."""
        return self.type.split(".", 1)[0]


EventHandler = Callable[[DomainEvent], Awaitable[None]]


@dataclass(frozen=True)
class EventSubscriber:
    """A named handler listening for one event type, or ``*`` for all."""

    name: str
    event_type: str
    handler: EventHandler
