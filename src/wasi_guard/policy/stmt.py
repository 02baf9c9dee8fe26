"""
Statements: "if the arguments of this call satisfy this bound, take this action".
"""

from dataclasses import dataclass, replace
from typing import Callable, Sequence

from wasi_guard.errors import ArityMismatchError
from wasi_guard.policy.bound import ArgTuple, Bound, Predicate, as_bound
from wasi_guard.schema import AbiDescriptor, Action, ArgType


def check_arity(abi: AbiDescriptor, args: ArgTuple) -> None:
    """Raise if an argument tuple does not fit a call."""
    if len(args) != abi.arity:
        raise ArityMismatchError(abi=abi.name, expected=abi.arity, actual=len(args))


@dataclass(frozen=True)
class Statement:
    """
    One rule attached to one WASI call.

    A statement without a bound is unconditional. The bound's arity must
    equal the call's arity; this is checked on construction.

    Attributes:
        abi: The call this statement governs
        action: The action taken when the statement triggers
        bound: Optional condition on the call's arguments
    """

    abi: AbiDescriptor
    action: Action
    bound: Bound | None = None

    def __post_init__(self) -> None:
        """Validate the bound against the call."""
        if self.bound is not None and self.bound.arity != self.abi.arity:
            raise ArityMismatchError(
                abi=self.abi.name,
                expected=self.abi.arity,
                actual=self.bound.arity,
            )

    @property
    def unconditional(self) -> bool:
        return self.bound is None

    @property
    def must_be_killed(self) -> bool:
        """True when this statement kills on every call, whatever the arguments."""
        return self.action.is_kill and self.bound is None

    def check_bound(self, args: ArgTuple) -> bool:
        """
        Decide whether this statement triggers for the given arguments.

        Raises:
            ArityMismatchError: If args does not match the call's arity
        """
        check_arity(self.abi, args)
        if self.bound is None:
            return True
        return self.bound.check(args)

    def when(self, bound: "Bound | Predicate | Callable[..., bool]") -> "Statement":
        """Return a copy of this statement guarded by ``bound``."""
        return replace(self, bound=as_bound(bound))

    def retype(self, params: Sequence[ArgType | str | None]) -> "Statement":
        """
        Read the call's arguments as different types in this statement's bound.

        Only the types may change, never the count: an ``(i32, i32)`` call
        can be bound as ``(i32, u32)`` but not as ``(i32,)``.

        Raises:
            ArityMismatchError: If ``params`` does not match the call's arity
        """
        if len(params) != self.abi.arity:
            raise ArityMismatchError(
                abi=self.abi.name,
                expected=self.abi.arity,
                actual=len(params),
            )
        if self.bound is None:
            return self
        return replace(self, bound=self.bound.retyped(params))

    def __str__(self) -> str:
        condition = "" if self.bound is None else " where <bound>"
        return f"{self.action} {self.abi.name}{condition}"
