"""Action and event buses for a declarative application shell."""

from .actions import (
    ALLOW_ALL,
    ActionBus,
    ActionDefinition,
    ActionFailure,
    ActionResult,
    ActionSuccess,
    Caller,
    CallerType,
    PermissionRule,
    SideEffect,
    dispatch,
)
from .events import DomainEvent, EventBus, EventSubscriber

__version__ = "0.1.0"

__all__ = [
    "ALLOW_ALL",
    "ActionBus",
    "ActionDefinition",
    "ActionFailure",
    "ActionResult",
    "ActionSuccess",
    "Caller",
    "CallerType",
    "DomainEvent",
    "EventBus",
    "EventSubscriber",
    "PermissionRule",
    "SideEffect",
    "dispatch",
]
