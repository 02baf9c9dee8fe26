"""
Predicates and bounds over WASI call arguments.

A predicate is a pure boolean function of a call's argument tuple with a
fixed arity. Predicates compose with ``and_`` / ``or_`` (short-circuit) and a
sequence of predicates means "all must hold".

A Bound wraps one predicate (possibly a composition) and is what a
statement holds. A bound may declare the integer type of each argument; the
raw values are then reinterpreted to those types before the predicate runs:

    >>> bound = Bound.from_callable(lambda fd: fd > 2, params=["u32"])
    >>> bound.check((-1,))   # -1 read as u32 is 4294967295
    True

Arity is always checked when predicates are combined or a bound is attached
to a statement, so a mismatched predicate never reaches call time.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Sequence

from wasi_guard.errors import ArityMismatchError
from wasi_guard.schema import ArgType

ArgTuple = tuple[Any, ...]
ParamTypes = tuple[ArgType | None, ...]


def callable_arity(func: Callable[..., bool]) -> int:
    """
    Count the positional parameters of a callable.

    Raises:
        TypeError: If the callable takes ``*args`` or has no inspectable
            signature; pass an explicit arity instead
    """
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError) as e:
        msg = f"Cannot infer arity of {func!r}; pass arity explicitly"
        raise TypeError(msg) from e

    positional = 0
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            msg = f"Cannot infer arity of {func!r} (takes *args); pass arity explicitly"
            raise TypeError(msg)
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            positional += 1
    return positional


def _check_same_arity(expected: int, actual: int) -> None:
    if expected != actual:
        raise ArityMismatchError(expected=expected, actual=actual)


def coerce_param_types(params: Iterable[ArgType | str | None]) -> ParamTypes:
    """Accept ArgType members or their names ("u32")."""
    return tuple(None if p is None else ArgType(p) for p in params)


# =============================================================================
# Predicates
# =============================================================================


class Predicate(ABC):
    """
    A pure boolean function of an argument tuple.

    Subclasses must implement:
    - arity property: Number of arguments the predicate takes
    - __call__(): Evaluate the predicate on a tuple of that length
    """

    @property
    @abstractmethod
    def arity(self) -> int:
        """Number of arguments."""
        ...

    @abstractmethod
    def __call__(self, args: ArgTuple) -> bool:
        """Evaluate the predicate."""
        ...

    def and_(self, other: "Predicate") -> "Predicate":
        """Both must hold; ``other`` is not evaluated if self is false."""
        return Composition(self, other, conjunction=True)

    def or_(self, other: "Predicate") -> "Predicate":
        """Either must hold; ``other`` is not evaluated if self is true."""
        return Composition(self, other, conjunction=False)


class FunctionPredicate(Predicate):
    """
    A predicate backed by a plain function taking one positional argument
    per call argument: ``lambda fd, iovs, iovs_len, nwritten: fd > 2``.
    """

    def __init__(self, func: Callable[..., bool], arity: int | None = None) -> None:
        if not callable(func):
            msg = f"Predicate must be callable, got {func!r}"
            raise TypeError(msg)
        self._func = func
        self._arity = callable_arity(func) if arity is None else arity

    @property
    def arity(self) -> int:
        return self._arity

    def __call__(self, args: ArgTuple) -> bool:
        return bool(self._func(*args))

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", repr(self._func))
        return f"FunctionPredicate({name}, arity={self._arity})"


class Composition(Predicate):
    """Short-circuit conjunction or disjunction of two predicates."""

    def __init__(self, left: Predicate, right: Predicate, conjunction: bool) -> None:
        _check_same_arity(left.arity, right.arity)
        self.left = left
        self.right = right
        self.conjunction = conjunction

    @property
    def arity(self) -> int:
        return self.left.arity

    def __call__(self, args: ArgTuple) -> bool:
        if self.conjunction:
            return self.left(args) and self.right(args)
        return self.left(args) or self.right(args)

    def __repr__(self) -> str:
        op = "and" if self.conjunction else "or"
        return f"({self.left!r} {op} {self.right!r})"


class AllOf(Predicate):
    """
    A list of predicates that must all hold.

    An empty list always holds; it then needs an explicit arity.
    """

    def __init__(self, predicates: Iterable[Predicate], arity: int | None = None) -> None:
        self.predicates = tuple(predicates)
        if arity is None:
            if not self.predicates:
                msg = "An empty predicate list needs an explicit arity"
                raise TypeError(msg)
            arity = self.predicates[0].arity
        for predicate in self.predicates:
            _check_same_arity(arity, predicate.arity)
        self._arity = arity

    @property
    def arity(self) -> int:
        return self._arity

    def __call__(self, args: ArgTuple) -> bool:
        return all(predicate(args) for predicate in self.predicates)

    def __repr__(self) -> str:
        return f"AllOf({list(self.predicates)!r})"


def as_predicate(value: "Predicate | Callable[..., bool]") -> Predicate:
    """Wrap a plain callable; pass predicates through unchanged."""
    if isinstance(value, Predicate):
        return value
    return FunctionPredicate(value)


# =============================================================================
# Bounds
# =============================================================================


class Bound:
    """
    The condition part of a statement.

    Callers only see ``check(args)``; how the predicate is composed stays
    opaque.

    Attributes:
        predicate: The wrapped predicate
        param_types: Declared type of each argument, or None to pass the
            raw values through
    """

    __slots__ = ("predicate", "param_types")

    def __init__(
        self,
        predicate: Predicate | Callable[..., bool],
        params: Sequence[ArgType | str | None] | None = None,
    ) -> None:
        self.predicate = as_predicate(predicate)
        self.param_types: ParamTypes | None = None
        if params is not None:
            param_types = coerce_param_types(params)
            _check_same_arity(self.predicate.arity, len(param_types))
            self.param_types = param_types

    @classmethod
    def from_callable(
        cls,
        func: Callable[..., bool],
        params: Sequence[ArgType | str | None] | None = None,
        arity: int | None = None,
    ) -> "Bound":
        """Create a bound from a plain function."""
        return cls(FunctionPredicate(func, arity=arity), params=params)

    @classmethod
    def from_predicates(
        cls,
        predicates: Iterable[Predicate | Callable[..., bool]],
        params: Sequence[ArgType | str | None] | None = None,
    ) -> "Bound":
        """A bound that holds when every predicate holds."""
        return cls(AllOf(as_predicate(p) for p in predicates), params=params)

    @classmethod
    def all_of(cls, bounds: Iterable["Bound"]) -> "Bound":
        """Fold bounds with ``and_``."""
        bounds = list(bounds)
        if not bounds:
            msg = "all_of needs at least one bound"
            raise ValueError(msg)
        result = bounds[0]
        for bound in bounds[1:]:
            result = result.and_(bound)
        return result

    @classmethod
    def any_of(cls, bounds: Iterable["Bound"]) -> "Bound":
        """Fold bounds with ``or_``."""
        bounds = list(bounds)
        if not bounds:
            msg = "any_of needs at least one bound"
            raise ValueError(msg)
        result = bounds[0]
        for bound in bounds[1:]:
            result = result.or_(bound)
        return result

    @property
    def arity(self) -> int:
        return self.predicate.arity

    def convert(self, args: ArgTuple) -> ArgTuple:
        """Reinterpret raw argument values as the declared parameter types."""
        _check_same_arity(self.arity, len(args))
        if self.param_types is None:
            return args
        return tuple(
            value if arg_type is None else arg_type.reinterpret(value)
            for arg_type, value in zip(self.param_types, args)
        )

    def check(self, args: ArgTuple) -> bool:
        """Evaluate the bound on a call's raw arguments."""
        return self.predicate(self.convert(args))

    def retyped(self, params: Sequence[ArgType | str | None]) -> "Bound":
        """
        The same predicate reading its arguments as different types.

        Raises:
            ArityMismatchError: If the number of types differs from the arity
        """
        return Bound(self.predicate, params=params)

    def and_(self, other: "Bound") -> "Bound":
        """Conjunction; each side keeps its own parameter types."""
        return Bound(_TypedPredicate.of(self).and_(_TypedPredicate.of(other)))

    def or_(self, other: "Bound") -> "Bound":
        """Disjunction; each side keeps its own parameter types."""
        return Bound(_TypedPredicate.of(self).or_(_TypedPredicate.of(other)))

    def __repr__(self) -> str:
        return f"Bound({self.predicate!r}, params={self.param_types!r})"


class _TypedPredicate(Predicate):
    """A bound seen as a predicate: applies the bound's conversion first."""

    def __init__(self, bound: Bound) -> None:
        self.bound = bound

    @classmethod
    def of(cls, bound: Bound) -> Predicate:
        if bound.param_types is None:
            return bound.predicate
        return cls(bound)

    @property
    def arity(self) -> int:
        return self.bound.arity

    def __call__(self, args: ArgTuple) -> bool:
        return self.bound.check(args)

    def __repr__(self) -> str:
        return repr(self.bound)


def as_bound(value: "Bound | Predicate | Callable[..., bool] | None") -> Bound | None:
    """Accept a Bound, a predicate, a plain callable, or None."""
    if value is None or isinstance(value, Bound):
        return value
    return Bound(value)
