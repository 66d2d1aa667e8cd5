"""Workflow transition validation for entity status fields.

Handlers call ``validate_workflow_transitions`` before persisting an update;
a ``WorkflowError`` raised here surfaces from dispatch as a ``workflow``
failure carrying the valid targets.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import structlog

from .errors import WorkflowError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class WorkflowTransition:
    """A single allowed move between two states."""

    from_state: str
    to_state: str
    requires: tuple[str, ...] = ()
    triggers: tuple[str, ...] = ()


@dataclass(frozen=True)
class SimpleWorkflowDefinition:
    """Linear state machine over one entity field."""

    name: str
    field: str
    transitions: tuple[WorkflowTransition, ...] = ()

    def targets_from(self, state: Any) -> List[str]:
        return [t.to_state for t in self.transitions if t.from_state == state]


@dataclass(frozen=True)
class WorkflowTransitionResult:
    """A validated transition and the triggers it declares."""

    workflow: SimpleWorkflowDefinition
    from_state: Any
    to_state: Any
    triggers: tuple[str, ...] = ()


def validate_workflow_transitions(
    workflows: Sequence[SimpleWorkflowDefinition],
    data: Dict[str, Any],
    current_record: Dict[str, Any],
) -> List[WorkflowTransitionResult]:
    """Validate field changes against workflow definitions.

    Args:
        workflows: Workflow definitions of the entity
        data: Update payload (only the fields being changed)
        current_record: Current persisted state of the record

    Returns:
        One result per workflow whose field is being changed

    Raises:
        WorkflowError: If a transition is not allowed or a required field is empty
    """
    results: List[WorkflowTransitionResult] = []

    for workflow in workflows:
        if workflow.field not in data:
            continue

        current_value = current_record.get(workflow.field)
        new_value = data[workflow.field]

        transition = next(
            (
                t
                for t in workflow.transitions
                if t.from_state == current_value and t.to_state == new_value
            ),
            None,
        )
        if transition is None:
            logger.debug(
                "Rejected workflow transition",
                workflow=workflow.name,
                field=workflow.field,
                from_state=current_value,
                to_state=new_value,
            )
            raise WorkflowError(
                workflow.field,
                current_value,
                new_value,
                workflow.targets_from(current_value),
            )

        for required in transition.requires:
            value = data.get(required, current_record.get(required))
            if value is None or value == "":
                raise WorkflowError(
                    workflow.field,
                    current_value,
                    new_value,
                    workflow.targets_from(current_value),
                    message=(
                        f"Cannot transition {workflow.field} to '{new_value}': "
                        f"required field '{required}' must have a value"
                    ),
                )

        results.append(
            WorkflowTransitionResult(
                workflow=workflow,
                from_state=current_value,
                to_state=new_value,
                triggers=transition.triggers,
            )
        )

    return results
