"""Permission evaluation for action dispatch.

Rules are evaluated strictly in declaration order and the first rule that
matches the caller decides. A rule matches when every condition it declares
holds:

* ``caller_types`` (if non-empty): the caller's type is in the list
* ``roles`` (if non-empty): the caller holds at least one listed role

No matching rule, or no rules at all, means deny. Rule order is part of the
contract: a deny placed before an allow blocks callers the allow would admit.
"""

from typing import Sequence

from .base import ActionDefinition, Caller, PermissionEffect, PermissionRule


def rule_matches(rule: PermissionRule, caller: Caller) -> bool:
    """Check whether a single rule applies to the caller."""
    if rule.caller_types and caller.type not in rule.caller_types:
        return False

    if rule.roles and caller.roles.isdisjoint(rule.roles):
        return False

    # ownership == "own" needs the target record; treated as "any" here
    return True


def authorize(caller: Caller, rules: Sequence[PermissionRule]) -> PermissionEffect:
    """Return the effect of the first rule matching the caller.

    Args:
        caller: The resolved caller identity
        rules: Permission rules in declaration order

    Returns:
        The matching rule's effect, or DENY when nothing matches
    """
    for rule in rules:
        if rule_matches(rule, caller):
            return rule.effect

    return PermissionEffect.DENY


def check_permission(action: ActionDefinition, caller: Caller) -> bool:
    """True when the caller may execute the action."""
    return authorize(caller, action.permissions) is PermissionEffect.ALLOW
