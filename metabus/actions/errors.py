"""Typed errors understood by the dispatch pipeline."""

from typing import Any, Dict, List


class ActionBusError(Exception):
    """Base class for all errors raised by the action bus."""


class DuplicateActionError(ActionBusError):
    """Raised when an action id is registered twice."""

    def __init__(self, action_id: str) -> None:
        super().__init__(
            f"Action '{action_id}' is already registered. Action ids must be unique."
        )
        self.action_id = action_id


class InputValidationError(ActionBusError):
    """Input did not match the action's input schema.

    Carries one entry per offending field so callers can self-correct.
    """

    def __init__(self, message: str, field_errors: List[Dict[str, str]]) -> None:
        super().__init__(message)
        self.field_errors = field_errors


class PermissionDeniedError(ActionBusError):
    """No permission rule allowed the caller to run the action."""

    def __init__(self, action_id: str, user_id: str) -> None:
        super().__init__(
            f"Permission denied: user '{user_id}' cannot execute action '{action_id}'"
        )
        self.action_id = action_id
        self.user_id = user_id


class WorkflowError(ActionBusError):
    """A status transition violated the entity's workflow definition."""

    def __init__(
        self,
        field: str,
        from_state: Any,
        to_state: Any,
        valid_targets: List[str],
        message: str = "",
    ) -> None:
        if not message:
            message = (
                f"Invalid {field} transition: '{from_state}' -> '{to_state}' is not allowed. "
                f"Valid transitions from '{from_state}': [{', '.join(valid_targets)}]"
            )
        super().__init__(message)
        self.field = field
        self.from_state = from_state
        self.to_state = to_state
        self.valid_targets = valid_targets

    def to_details(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "from": self.from_state,
            "to": self.to_state,
            "validTargets": list(self.valid_targets),
        }


class RecordNotFoundError(ActionBusError):
    """Raised by handlers when a looked-up record does not exist."""

    def __init__(self, entity: str, record_id: str) -> None:
        super().__init__(f"{entity} '{record_id}' not found")
        self.entity = entity
        self.record_id = record_id
