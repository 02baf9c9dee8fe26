"""
Schema definitions for wasi-guard.

This module defines the Pydantic models shared by the registry, the policy
engine and the scanner:
- ArgType/AbiArg/AbiDescriptor: What a WASI call looks like
- DescriptorTable: A fixed table of WASI calls
- Action: The decision a statement or a policy default yields

Design Decisions:
    - All models are immutable (frozen=True) and reject unknown fields
    - Descriptors are created once, from YAML tables, and shared read-only
    - Argument sizes are documentation only; values are never converted
      unless a bound explicitly asks for a reinterpretation
"""

import re
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from wasi_guard.errors import DescriptorTableError, InvalidActionError

if TYPE_CHECKING:
    from wasi_guard.policy.stmt import Statement


# =============================================================================
# Argument Types
# =============================================================================


class ArgType(str, Enum):
    """
    Integer types a WASI call argument can be declared with.

    Every core-wasm argument travels as an i32 or i64; the declared type only
    tells a bound how to read the bit pattern.
    """

    I8 = "i8"
    U8 = "u8"
    I16 = "i16"
    U16 = "u16"
    I32 = "i32"
    U32 = "u32"
    I64 = "i64"
    U64 = "u64"

    @property
    def bits(self) -> int:
        """Width of the type in bits."""
        return int(self.value[1:])

    @property
    def size(self) -> int:
        """Width of the type in bytes."""
        return self.bits // 8

    @property
    def signed(self) -> bool:
        """Whether the type is two's-complement signed."""
        return self.value.startswith("i")

    def reinterpret(self, value: int) -> int:
        """
        Reinterpret an integer's low bits as this type.

        Args:
            value: Any Python integer (or bool)

        Returns:
            The value the same bit pattern has under this type,
            e.g. ``ArgType.U32.reinterpret(-1) == 0xFFFF_FFFF``
        """
        mask = (1 << self.bits) - 1
        raw = int(value) & mask
        if self.signed and raw >> (self.bits - 1):
            raw -= 1 << self.bits
        return raw


# Every argument declared without a type is an i32
DEFAULT_ARG_TYPE = ArgType.I32

# All WASI calls return an errno as i32
RET_VAL_SIZE = ArgType.I32.size


# =============================================================================
# ABI Descriptors
# =============================================================================


class AbiArg(BaseModel):
    """
    One formal parameter of a WASI call.

    Attributes:
        name: Parameter name (unique within its descriptor)
        size: Wire width in bytes
        type: Declared integer type, or None for a raw sized argument
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Parameter name")
    size: int = Field(..., gt=0, description="Wire width in bytes")
    type: ArgType | None = Field(default=None, description="Declared integer type")

    @model_validator(mode="before")
    @classmethod
    def fill_size_and_type(cls, data: Any) -> Any:
        """
        Accept the short notations used by descriptor tables.

        - "fd"              -> i32, 4 bytes
        - {"fd": "u32"}     -> u32, 4 bytes
        - {"name": "precision", "size": 8} -> raw 8-byte argument
        """
        if isinstance(data, str):
            data = {"name": data}
        elif isinstance(data, dict) and len(data) == 1 and "name" not in data:
            ((name, arg_type),) = data.items()
            data = {"name": name, "type": arg_type}

        if not isinstance(data, dict):
            return data

        data = dict(data)
        arg_type = data.get("type")
        if arg_type is None and "size" not in data:
            data["type"] = arg_type = DEFAULT_ARG_TYPE
        if arg_type is not None:
            size = ArgType(arg_type).size
            if data.setdefault("size", size) != size:
                msg = f"size {data['size']} does not match type {arg_type} ({size} bytes)"
                raise ValueError(msg)
        return data


class AbiDescriptor(BaseModel):
    """
    A WASI call: its name and ordered arguments.

    Descriptors are pure data. The argument tuple passed to a guard for this
    call must have exactly ``arity`` elements.

    Attributes:
        name: The WASI function name (e.g., "fd_write")
        args: Ordered parameter descriptions
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="WASI function name")
    args: tuple[AbiArg, ...] = Field(default=(), description="Ordered parameters")

    @field_validator("args", mode="before")
    @classmethod
    def accept_missing_args(cls, v: Any) -> Any:
        """A call with no arguments may be written without an args list."""
        return () if v is None else v

    @property
    def arity(self) -> int:
        """Number of arguments."""
        return len(self.args)

    @property
    def arg_types(self) -> tuple[ArgType | None, ...]:
        """Declared type of each argument, in order."""
        return tuple(arg.type for arg in self.args)

    @staticmethod
    def ret_val_size() -> int:
        """The return value of every WASI call is an i32 errno."""
        return RET_VAL_SIZE

    def args_are_distinct(self) -> bool:
        """Check that no two arguments share a name."""
        names = [arg.name for arg in self.args]
        return len(names) == len(set(names))

    def trigger(self, action: "Action") -> "Statement":
        """Create an unconditional statement on this call."""
        from wasi_guard.policy.stmt import Statement

        return Statement(abi=self, action=action)

    def __str__(self) -> str:
        args = ", ".join(
            f"{arg.name}: {arg.type.value}" if arg.type else f"{arg.name}[{arg.size}]"
            for arg in self.args
        )
        return f"{self.name}({args})"


class DescriptorTable(BaseModel):
    """
    A named, fixed table of WASI calls.

    Attributes:
        name: Table label (e.g., "wasi_snapshot_preview1")
        calls: Descriptors in declaration order
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Table label")
    calls: tuple[AbiDescriptor, ...] = Field(default=(), description="Declared calls")

    @field_validator("calls", mode="before")
    @classmethod
    def accept_bare_names(cls, v: Any) -> Any:
        """A bare string entry declares a call with no arguments."""
        if v is None:
            return ()
        return [{"name": item} if isinstance(item, str) else item for item in v]


# =============================================================================
# Actions
# =============================================================================


class ActionKind(str, Enum):
    """The four decisions a policy can take for a call."""

    ALLOW = "allow"
    LOG = "log"
    RETURN_ERRNO = "return_errno"
    KILL = "kill"


_ACTION_PATTERN = re.compile(
    r"^\s*(?P<kind>[a-z_]+)\s*(?:\(\s*(?P<errno>[^)]*?)\s*\))?\s*$",
    re.IGNORECASE,
)
_ERRNO_ALIASES = {"ret_err", "ret_errno", "return_errno"}
_RADIX_PREFIXES = {"0x", "0o", "0b"}


class Action(BaseModel):
    """
    A policy decision.

    ``ReturnErrno`` carries the u16 errno the WASI call must return instead
    of running. Use the constructors rather than building kinds by hand:

        Action.allow(), Action.log(), Action.return_errno(63), Action.kill()

    Attributes:
        kind: Which decision
        errno: Error code, only for RETURN_ERRNO
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ActionKind = Field(..., description="Which decision")
    errno: int | None = Field(
        default=None,
        description="Errno returned by the call (RETURN_ERRNO only)",
        ge=0,
        le=0xFFFF,
    )

    @model_validator(mode="after")
    def errno_matches_kind(self) -> "Action":
        """Only RETURN_ERRNO carries an errno, and it must carry one."""
        if (self.kind is ActionKind.RETURN_ERRNO) != (self.errno is not None):
            msg = "errno must be set for return_errno and only for return_errno"
            raise ValueError(msg)
        return self

    @classmethod
    def allow(cls) -> "Action":
        """Create an ALLOW action."""
        return cls(kind=ActionKind.ALLOW)

    @classmethod
    def log(cls) -> "Action":
        """Create a LOG action."""
        return cls(kind=ActionKind.LOG)

    @classmethod
    def return_errno(cls, errno: int) -> "Action":
        """Create a RETURN_ERRNO action."""
        return cls(kind=ActionKind.RETURN_ERRNO, errno=int(errno))

    @classmethod
    def kill(cls) -> "Action":
        """Create a KILL action."""
        return cls(kind=ActionKind.KILL)

    @classmethod
    def default(cls) -> "Action":
        """The action used when a policy does not name one."""
        return cls.kill()

    @classmethod
    def parse(cls, text: str) -> "Action":
        """
        Parse an action from its textual form.

        Accepts ``allow``, ``log``, ``kill`` and ``ret_err(N)``,
        ``ret_errno(N)`` or ``return_errno(N)``, case-insensitively.
        N is decimal (leading zeros allowed) or carries a 0x, 0o or 0b prefix.

        Raises:
            InvalidActionError: If the text is not a valid action
        """
        match = _ACTION_PATTERN.match(text)
        if match is None:
            raise InvalidActionError(value=text)

        kind = match["kind"].lower()
        errno = match["errno"]
        if kind in _ERRNO_ALIASES and errno:
            try:
                base = 0 if errno[:2].lower() in _RADIX_PREFIXES else 10
                return cls.return_errno(int(errno, base))
            except (ValueError, ValidationError) as e:
                raise InvalidActionError(value=text, context={"error": str(e)}) from e
        if errno is None and kind in {"allow", "log", "kill"}:
            return cls(kind=ActionKind(kind))
        raise InvalidActionError(value=text)

    @property
    def is_allow(self) -> bool:
        return self.kind is ActionKind.ALLOW

    @property
    def is_kill(self) -> bool:
        return self.kind is ActionKind.KILL

    def __str__(self) -> str:
        if self.kind is ActionKind.RETURN_ERRNO:
            return f"return_errno({self.errno})"
        return self.kind.value


def coerce_action(value: "Action | str") -> Action:
    """Accept an Action or its textual form."""
    if isinstance(value, Action):
        return value
    if isinstance(value, str):
        return Action.parse(value)
    raise InvalidActionError(value=repr(value))


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_descriptor_table(path: Path | str) -> DescriptorTable:
    """
    Load a descriptor table from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated DescriptorTable object

    Raises:
        FileNotFoundError: If the file doesn't exist
        DescriptorTableError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        content = f.read()

    return load_descriptor_table_from_string(content, source=str(path))


def load_descriptor_table_from_string(
    content: str,
    source: str = "<string>",
) -> DescriptorTable:
    """Load a descriptor table from a YAML string."""
    try:
        data = yaml.safe_load(content)
        return DescriptorTable.model_validate(data)
    except (yaml.YAMLError, ValidationError) as e:
        raise DescriptorTableError(source=source, underlying_error=str(e)) from e
