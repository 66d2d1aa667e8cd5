"""Action definitions, registry and the dispatch pipeline."""

from .base import (
    ALLOW_ALL,
    ActionContext,
    ActionDefinition,
    ActionErrorType,
    ActionExample,
    ActionFailure,
    ActionResult,
    ActionSuccess,
    Caller,
    CallerType,
    PermissionEffect,
    PermissionRule,
    SideEffect,
    SideEffectType,
)
from .bus import ActionBus, dispatch, get_action_bus, set_action_bus
from .errors import (
    ActionBusError,
    DuplicateActionError,
    InputValidationError,
    PermissionDeniedError,
    RecordNotFoundError,
    WorkflowError,
)
from .permissions import authorize, check_permission
from .registry import (
    ActionRegistry,
    clear_action_registry,
    get_action,
    get_action_registry,
    get_actions_for_entity,
    get_all_actions,
    register_action,
    register_actions,
)
from .side_effects import SideEffectProcessor
from .workflow import (
    SimpleWorkflowDefinition,
    WorkflowTransition,
    WorkflowTransitionResult,
    validate_workflow_transitions,
)

__all__ = [
    "ALLOW_ALL",
    "ActionBus",
    "ActionBusError",
    "ActionContext",
    "ActionDefinition",
    "ActionErrorType",
    "ActionExample",
    "ActionFailure",
    "ActionRegistry",
    "ActionResult",
    "ActionSuccess",
    "Caller",
    "CallerType",
    "DuplicateActionError",
    "InputValidationError",
    "PermissionDeniedError",
    "PermissionEffect",
    "PermissionRule",
    "RecordNotFoundError",
    "SideEffect",
    "SideEffectProcessor",
    "SideEffectType",
    "SimpleWorkflowDefinition",
    "WorkflowError",
    "WorkflowTransition",
    "WorkflowTransitionResult",
    "authorize",
    "check_permission",
    "clear_action_registry",
    "dispatch",
    "get_action",
    "get_action_bus",
    "get_action_registry",
    "get_actions_for_entity",
    "get_all_actions",
    "register_action",
    "register_actions",
    "set_action_bus",
    "validate_workflow_transitions",
]
