"""Input validation against an action's pydantic schema."""

from typing import Any, Dict, List

from pydantic import ValidationError

from .base import ActionDefinition
from .errors import InputValidationError


def _field_errors(exc: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "code": error["type"],
        }
        for error in exc.errors()
    ]


def validate_input(action: ActionDefinition, raw_input: Any) -> Any:
    """Parse raw input with the action's input schema.

    Args:
        action: Action whose ``input_schema`` is applied
        raw_input: Untrusted input as received from the caller

    Returns:
        The parsed (and possibly coerced) input

    Raises:
        InputValidationError: With one entry per offending field
    """
    try:
        return action.input_adapter.validate_python(raw_input)
    except ValidationError as e:
        raise InputValidationError(
            f"Validation failed for action '{action.id}'", _field_errors(e)
        ) from e
