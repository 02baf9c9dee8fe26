"""
Action ordering for wasi-guard.

Actions are partially ordered by severity:

    allow < log < return_errno(_) < kill

Two return_errno actions with different codes have no order between them;
with the same code they are equal.
"""

from enum import Enum
from typing import Iterable

from wasi_guard.schema import Action, ActionKind

_SEVERITY = {
    ActionKind.ALLOW: 0,
    ActionKind.LOG: 1,
    ActionKind.RETURN_ERRNO: 2,
    ActionKind.KILL: 3,
}


class Ordering(str, Enum):
    """Result of comparing two actions."""

    LESS = "less"
    EQUAL = "equal"
    GREATER = "greater"
    INCOMPARABLE = "incomparable"


def severity(action: Action) -> int:
    """Rank of an action's kind; return_errno codes share one rank."""
    return _SEVERITY[action.kind]


def compare(a: Action, b: Action) -> Ordering:
    """
    Compare two actions by severity.

    Returns:
        INCOMPARABLE for two return_errno actions with different codes,
        otherwise LESS, EQUAL or GREATER
    """
    rank_a, rank_b = severity(a), severity(b)
    if rank_a < rank_b:
        return Ordering.LESS
    if rank_a > rank_b:
        return Ordering.GREATER
    if a.errno != b.errno:
        return Ordering.INCOMPARABLE
    return Ordering.EQUAL


def actions_to_execute(actions: Iterable[Action]) -> list[Action]:
    """
    Filter out the actions that need no enforcement.

    Allow is a no-op for the host; everything else (log, errno injection,
    termination) has an effect. Order is preserved.
    """
    return [action for action in actions if not action.is_allow]
