"""
Policy Engine module for wasi-guard.

This module implements the call-gating model: per-call statements, a
default action, and the derived set of calls that are always killed.

Key concepts:
    - Action: allow, log, return_errno(code) or kill, partially ordered
    - Bound: a predicate over a call's arguments
    - Statement: "if the bound holds for this call, take this action"
    - Guard: the ordered statements of one call
    - Policy: default action + guard table + must-be-killed set

The engine is deterministic: the same call with the same arguments always
yields the same ordered action list.
"""

from wasi_guard.policy.action import Ordering, actions_to_execute, compare, severity
from wasi_guard.policy.bound import (
    AllOf,
    Bound,
    Composition,
    FunctionPredicate,
    Predicate,
)
from wasi_guard.policy.engine import (
    Policy,
    PolicyBuilder,
    build_policy,
    compute_must_be_killed,
)
from wasi_guard.policy.guard import Guard
from wasi_guard.policy.stmt import Statement

__all__ = [
    "AllOf",
    "Bound",
    "Composition",
    "FunctionPredicate",
    "Guard",
    "Ordering",
    "Policy",
    "PolicyBuilder",
    "Predicate",
    "Statement",
    "actions_to_execute",
    "build_policy",
    "compare",
    "compute_must_be_killed",
    "severity",
]
