"""Core types for action definitions, callers and dispatch results."""

from dataclasses import dataclass, field
from functools import cached_property
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar, Optional, Protocol, Union

from pydantic import TypeAdapter

from ..events.base import DomainEvent


class CallerType(str, Enum):
    """What kind of identity is invoking an action."""

    HUMAN = "human"
    SYSTEM = "system"
    AI_AGENT = "ai-agent"
    WEBHOOK = "webhook"


class PermissionEffect(str, Enum):
    """Outcome of a permission rule."""

    ALLOW = "allow"
    DENY = "deny"


class ActionErrorType(str, Enum):
    """Failure categories; adapters map these to transport status codes."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    PERMISSION = "permission"
    WORKFLOW = "workflow"
    UNKNOWN = "unknown"


class SideEffectType(str, Enum):
    """Declarative side effects processed after a successful dispatch."""

    EMIT_EVENT = "emit_event"
    NOTIFY = "notify"
    WEBHOOK = "webhook"


def _as_tuple(values: Any) -> tuple:
    if isinstance(values, str):
        return (values,)
    return tuple(values)


@dataclass(frozen=True)
class Caller:
    """Authenticated identity resolved by an external auth provider."""

    user_id: str
    tenant_id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    type: CallerType = CallerType.HUMAN

    def __post_init__(self) -> None:
        # Accept any iterable of roles, a single role name, and plain strings for the type
        object.__setattr__(self, "roles", frozenset(_as_tuple(self.roles)))
        object.__setattr__(self, "type", CallerType(self.type))


@dataclass(frozen=True)
class PermissionRule:
    """A single allow/deny clause.

    Empty ``caller_types`` or ``roles`` mean "any". ``ownership`` is accepted
    for compatibility with entity definitions but is evaluated as "any".
    """

    effect: PermissionEffect
    caller_types: tuple[CallerType, ...] = ()
    roles: tuple[str, ...] = ()
    ownership: str = "any"

    def __post_init__(self) -> None:
        object.__setattr__(self, "effect", PermissionEffect(self.effect))
        # A bare string names a single caller type or role
        caller_types = _as_tuple(self.caller_types)
        object.__setattr__(self, "caller_types", tuple(CallerType(t) for t in caller_types))
        object.__setattr__(self, "roles", _as_tuple(self.roles))


ALLOW_ALL = PermissionRule(effect=PermissionEffect.ALLOW)


@dataclass(frozen=True)
class SideEffect:
    """A best-effort follow-up attached to an action definition."""

    type: SideEffectType
    config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", SideEffectType(self.type))


@dataclass(frozen=True)
class ActionExample:
    """Example invocation, used for documentation and AI few-shot prompts."""

    description: str
    input: dict[str, Any]
    natural_language: Optional[str] = None


class Logger(Protocol):
    """Structured logger contract handed to handlers."""

    def debug(self, event: str, **kw: Any) -> Any: ...

    def info(self, event: str, **kw: Any) -> Any: ...

    def warning(self, event: str, **kw: Any) -> Any: ...

    def error(self, event: str, **kw: Any) -> Any: ...


@dataclass(frozen=True)
class ActionContext:
    """Per-dispatch bundle passed to handlers and hooks.

    Built fresh for every dispatch and never shared between calls.
    """

    caller: Caller
    db: Any
    emit: Callable[[DomainEvent], Awaitable[None]]
    logger: Logger


Handler = Callable[[Any, ActionContext], Awaitable[Any]]
BeforeHook = Callable[[Any, ActionContext], Awaitable[Any]]
AfterHook = Callable[[Any, Any, ActionContext], Awaitable[Any]]


@dataclass(frozen=True)
class ActionDefinition:
    """The complete, immutable definition of an action."""

    id: str
    name: str
    description: str
    input_schema: Any
    handler: Handler
    permissions: tuple[PermissionRule, ...] = ()
    output_schema: Any = None
    idempotent: bool = False
    before_execute: tuple[BeforeHook, ...] = ()
    after_execute: tuple[AfterHook, ...] = ()
    side_effects: tuple[SideEffect, ...] = ()
    affects_entities: tuple[str, ...] = ()
    examples: tuple[ActionExample, ...] = ()

    def __post_init__(self) -> None:
        for name in (
            "permissions",
            "before_execute",
            "after_execute",
            "side_effects",
            "affects_entities",
            "examples",
        ):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    @property
    def entity(self) -> str:
        """Entity segment of the id (text before the first dot)."""
        return self.id.split(".", 1)[0]

    @cached_property
    def input_adapter(self) -> TypeAdapter:
        """Validator for ``input_schema``, built once per definition."""
        return TypeAdapter(self.input_schema)


@dataclass(frozen=True)
class ActionSuccess:
    """Successful dispatch."""

    data: Any
    success: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "data": self.data}


@dataclass(frozen=True)
class ActionFailure:
    """Failed dispatch. ``error`` is always safe to show to the caller."""

    error: str
    error_type: ActionErrorType
    details: Optional[dict[str, Any]] = None
    success: ClassVar[bool] = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": False,
            "error": self.error,
            "errorType": ActionErrorType(self.error_type).value,
        }
        if self.details is not None:
            result["details"] = self.details
        return result


ActionResult = Union[ActionSuccess, ActionFailure]
