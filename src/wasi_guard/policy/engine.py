"""
Policy Engine for wasi-guard.

The policy is the security boundary between an untrusted guest module and
the WASI host. Every intercepted call is looked up here.

Design Principles:
    - Kill-by-default: a policy that names no default kills unlisted calls
    - Immutable: a finished Policy is never mutated; to change the rules,
      build a new Policy and swap the reference
    - Collect, don't reduce: a guard returns every triggered action in
      declaration order and leaves the merge to the host

How it works:
    1. PolicyBuilder receives (call name, [(bound or None, action), ...])
       entries and a default action
    2. Each entry is resolved against the ABI registry and its bounds are
       checked against the call's arity
    3. build() freezes the guard table and derives the must-be-killed set
    4. The host queries guard_for(name).check(args) per call, and
       must_be_killed before loading a module
"""

import logging
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from wasi_guard.abi.registry import AbiRegistry, default_registry
from wasi_guard.errors import UnknownAbiError
from wasi_guard.policy.bound import ArgTuple, Bound, Predicate, as_bound
from wasi_guard.policy.guard import Guard
from wasi_guard.policy.stmt import Statement
from wasi_guard.schema import Action, coerce_action

logger = logging.getLogger(__name__)

BoundLike = Bound | Predicate | Callable[..., bool] | None
ActionLike = Action | str
Entry = tuple[BoundLike, ActionLike]


def compute_must_be_killed(
    guards: Mapping[str, Guard],
    default_action: Action,
    names: Iterable[str],
) -> frozenset[str]:
    """
    Derive the calls that kill the guest whatever their arguments.

    A call is included when its guard has an unconditional kill statement,
    or when it has no guard (or an empty one) and the default action is
    kill. A conditional kill never qualifies: whether it fires depends on
    argument values that are unknown before the call happens.

    Args:
        guards: Guard table by call name
        default_action: Action for calls without a guard
        names: Every call name the registry knows

    Returns:
        Frozen set of call names
    """
    killed = {name for name, guard in guards.items() if guard.must_be_killed}
    if default_action.is_kill:
        killed.update(name for name in names if name not in guards or not len(guards[name]))
    return frozenset(killed)


class Policy:
    """
    A finished, immutable policy.

    Usage:
        policy = PolicyBuilder(default="allow").statement("fd_write", "log").build()
        guard = policy.guard_for("fd_write")
        if guard is None:
            actions = [policy.default_action]
        else:
            actions = guard.check(args) or [policy.default_action]

    Attributes:
        default_action: Action for calls with no guard or no triggered statement
        guards: Read-only guard table by call name
        must_be_killed: Calls that kill the guest regardless of arguments
        registry: The ABI registry the policy was validated against
    """

    def __init__(
        self,
        default_action: Action,
        guards: Mapping[str, Guard],
        registry: AbiRegistry | None = None,
    ) -> None:
        """
        Initialize a policy.

        Raises:
            UnknownAbiError: If a guard names a call the registry does not know
        """
        registry = registry if registry is not None else default_registry()
        for name, guard in guards.items():
            if name not in registry:
                raise UnknownAbiError(abi=name)
            if guard.abi.name != name:
                msg = f"Guard for {guard.abi.name} is filed under {name}"
                raise ValueError(msg)

        self.default_action = default_action
        self.registry = registry
        # A guard without statements is the same as no guard
        self.guards: Mapping[str, Guard] = MappingProxyType(
            {name: guard for name, guard in guards.items() if len(guard)}
        )
        self.must_be_killed = compute_must_be_killed(
            self.guards, default_action, registry.names()
        )
        logger.debug(
            "Policy finalized: default=%s, %d guards, %d must-be-killed calls",
            default_action,
            len(self.guards),
            len(self.must_be_killed),
        )

    def guard_for(self, abi_name: str) -> Guard | None:
        """The guard of a call, or None when the default action applies."""
        return self.guards.get(abi_name)

    def evaluate(self, abi_name: str, args: ArgTuple) -> list[Action]:
        """
        Evaluate a call and apply the default fallback.

        Returns:
            The guard's triggered actions, or ``[default_action]`` when the
            call has no guard or no statement triggered
        """
        guard = self.guard_for(abi_name)
        if guard is None:
            return [self.default_action]
        return guard.check(args) or [self.default_action]

    def default_guard_names(self) -> list[str]:
        """Registry names that have no guard, in registry order."""
        return [name for name in self.registry.names() if name not in self.guards]

    def __repr__(self) -> str:
        return (
            f"<Policy default={self.default_action}, "
            f"guards={len(self.guards)}, must_be_killed={len(self.must_be_killed)}>"
        )


class PolicyBuilder:
    """
    Data-driven construction of a Policy.

    Statements for the same call keep the order in which they were added,
    whichever method added them.

    Usage:
        policy = (
            PolicyBuilder(default="kill")
            .statement("proc_exit", "allow", lambda code: code == 0)
            .statement("sched_yield", "log")
            .build()
        )
    """

    def __init__(
        self,
        registry: AbiRegistry | None = None,
        default: ActionLike | None = None,
    ) -> None:
        self.registry = registry if registry is not None else default_registry()
        self._default = Action.default() if default is None else coerce_action(default)
        self._statements: dict[str, list[Statement]] = {}

    def default(self, action: ActionLike) -> "PolicyBuilder":
        """Set the action for calls no statement covers."""
        self._default = coerce_action(action)
        return self

    def statement(
        self,
        abi_name: str,
        action: ActionLike,
        bound: BoundLike = None,
    ) -> "PolicyBuilder":
        """
        Add one statement.

        Raises:
            UnknownAbiError: If the call is not in the registry
            ArityMismatchError: If the bound does not fit the call
            InvalidActionError: If the action cannot be parsed
        """
        abi = self.registry.get(abi_name)
        stmt = Statement(abi=abi, action=coerce_action(action), bound=as_bound(bound))
        self._statements.setdefault(abi_name, []).append(stmt)
        return self

    def entries(self, abi_name: str, entries: Iterable[Entry]) -> "PolicyBuilder":
        """Add ``(bound or None, action)`` statements for one call."""
        for bound, action in entries:
            self.statement(abi_name, action, bound)
        return self

    def build(self) -> Policy:
        """Freeze the statements into a Policy."""
        guards = {
            name: Guard(self.registry.get(name), stmts)
            for name, stmts in self._statements.items()
            if stmts
        }
        return Policy(self._default, guards, registry=self.registry)


def build_policy(
    entries: Mapping[str, Iterable[Entry]] | Iterable[tuple[str, Iterable[Entry]]],
    default: ActionLike | None = None,
    registry: AbiRegistry | None = None,
) -> Policy:
    """
    Build a Policy in one call.

    Args:
        entries: ``{call name: [(bound or None, action), ...]}`` or the same
            as a sequence of pairs
        default: Action for calls without a guard (kill when omitted)
        registry: Registry to validate against (WASI preview 1 when omitted)

    Returns:
        The finished Policy
    """
    builder = PolicyBuilder(registry=registry, default=default)
    items = entries.items() if isinstance(entries, Mapping) else entries
    for abi_name, abi_entries in items:
        builder.entries(abi_name, abi_entries)
    return builder.build()
