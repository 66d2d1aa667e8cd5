"""Action registry: the catalog of every dispatchable action."""

from typing import Any, Dict, Iterable, List, Optional

import structlog

from .base import ActionDefinition
from .errors import DuplicateActionError


logger = structlog.get_logger(__name__)


class ActionRegistry:
    """In-memory lookup table from action id to definition.

    Populated at bootstrap (or by an explicit hot install) and read-only
    while requests are served.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._actions: Dict[str, ActionDefinition] = {}

        logger.debug("Initialized ActionRegistry")

    def register(self, action: ActionDefinition, *, skip_existing: bool = False) -> bool:
        """Register an action definition.

        Args:
            action: Definition to register
            skip_existing: Warn and skip instead of raising when the id is
                already taken (used by hot-install flows)

        Returns:
            True if the definition was stored, False if it was skipped

        Raises:
            DuplicateActionError: If the id exists and ``skip_existing`` is False
        """
        if action.id in self._actions:
            if not skip_existing:
                raise DuplicateActionError(action.id)

            logger.warning("Skipping already registered action", action=action.id)
            return False

        self._actions[action.id] = action

        logger.info(
            "Registered action",
            action=action.id,
            permissions=len(action.permissions),
            side_effects=len(action.side_effects),
        )
        return True

    def register_many(self, actions: Iterable[ActionDefinition]) -> None:
        """Register a batch of definitions, all or nothing.

        The whole batch is checked for collisions, against the registry and
        within itself, before any definition is stored.

        Raises:
            DuplicateActionError: On the first colliding id; nothing is stored
        """
        batch = list(actions)
        seen = set(self._actions)
        for action in batch:
            if action.id in seen:
                raise DuplicateActionError(action.id)
            seen.add(action.id)

        for action in batch:
            self.register(action)

    def get(self, action_id: str) -> Optional[ActionDefinition]:
        """Look up an action by id."""
        return self._actions.get(action_id)

    def get_all(self) -> List[ActionDefinition]:
        """Return all registered actions in registration order."""
        return list(self._actions.values())

    def get_for_entity(self, entity_name: str) -> List[ActionDefinition]:
        """Return actions whose id starts with ``<entity_name>.`` (case-insensitive)."""
        prefix = f"{entity_name.lower()}."
        return [a for a in self._actions.values() if a.id.lower().startswith(prefix)]

    def clear(self) -> None:
        """Remove every registered action."""
        self._actions.clear()

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._actions

    def get_stats(self) -> Dict[str, Any]:
        """Get registry statistics.

        Returns:
            Dictionary with statistics
        """
        return {
            "registered_actions": len(self._actions),
            "entities": sorted({a.entity for a in self._actions.values()}),
        }


# Global action registry instance
_action_registry = ActionRegistry()


def get_action_registry() -> ActionRegistry:
    """Get the process-wide default registry."""
    return _action_registry


def register_action(action: ActionDefinition) -> None:
    _action_registry.register(action)


def register_actions(actions: Iterable[ActionDefinition]) -> None:
    _action_registry.register_many(actions)


def get_action(action_id: str) -> Optional[ActionDefinition]:
    return _action_registry.get(action_id)


def get_all_actions() -> List[ActionDefinition]:
    return _action_registry.get_all()


def get_actions_for_entity(entity_name: str) -> List[ActionDefinition]:
    return _action_registry.get_for_entity(entity_name)


def clear_action_registry() -> None:
    _action_registry.clear()
