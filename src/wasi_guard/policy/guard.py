"""
Guards: the statements governing one WASI call.
"""

from typing import Iterable, Iterator

from wasi_guard.policy.bound import ArgTuple
from wasi_guard.policy.stmt import Statement, check_arity
from wasi_guard.schema import AbiDescriptor, Action


class Guard:
    """
    The ordered statements that apply to one call.

    Usage:
        guard = Guard(fd_write, [
            fd_write.trigger(Action.log()),
            fd_write.trigger(Action.kill()).when(lambda fd, iovs, iovs_len, nwritten: fd > 2),
        ])
        actions = guard.check((1, 0, 0, 0))

    Attributes:
        abi: The call this guard governs
        statements: Statements in declaration order
    """

    __slots__ = ("abi", "statements")

    def __init__(self, abi: AbiDescriptor, statements: Iterable[Statement] = ()) -> None:
        """
        Initialize a guard.

        Raises:
            ValueError: If a statement governs a different call
        """
        statements = tuple(statements)
        for stmt in statements:
            if stmt.abi.name != abi.name:
                msg = f"Statement for {stmt.abi.name} cannot be added to the {abi.name} guard"
                raise ValueError(msg)
        self.abi = abi
        self.statements = statements

    @classmethod
    def from_statements(cls, *statements: Statement) -> "Guard":
        """Build a guard from statements that all govern the same call."""
        if not statements:
            msg = "from_statements needs at least one statement"
            raise ValueError(msg)
        return cls(statements[0].abi, statements)

    def check(self, args: ArgTuple) -> list[Action]:
        """
        Collect the actions of every statement that triggers.

        Every statement is evaluated, in declaration order; the result is
        in that order, not in order of severity, and is not reduced. An
        empty list means nothing triggered and the policy default applies.

        Raises:
            ArityMismatchError: If args does not match the call's arity
        """
        check_arity(self.abi, args)
        return [stmt.action for stmt in self.statements if stmt.check_bound(args)]

    @property
    def must_be_killed(self) -> bool:
        """True when some statement kills unconditionally."""
        return any(stmt.must_be_killed for stmt in self.statements)

    def __len__(self) -> int:
        return len(self.statements)

    def __iter__(self) -> Iterator[Statement]:
        return iter(self.statements)

    def __repr__(self) -> str:
        return f"<Guard {self.abi.name}: {len(self.statements)} statements>"
