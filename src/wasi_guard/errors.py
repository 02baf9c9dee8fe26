"""
Exception hierarchy for wasi-guard.

All wasi-guard exceptions inherit from WasiGuardError, allowing callers to
catch every library failure with a single except clause.

Exception Categories:
    - ScanError: A module binary could not be scanned for imports
    - PolicyBuildError: A policy, statement or registry is inconsistent
    - DescriptorTableError: An ABI descriptor table failed to load

Scan errors are always fail-closed: an embedder that receives one must treat
the module as unscannable and reject it.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Scan errors: 1xxx
ERROR_SCAN_MALFORMED_BINARY = 1001
ERROR_SCAN_NON_FUNCTION_IMPORT = 1002
ERROR_SCAN_UNRESOLVED_TYPE = 1003

# Policy errors: 2xxx
ERROR_POLICY_UNKNOWN_ABI = 2001
ERROR_POLICY_ARITY_MISMATCH = 2002
ERROR_POLICY_INVALID_ACTION = 2003
ERROR_POLICY_DUPLICATE_ABI = 2004
ERROR_POLICY_FROZEN_REGISTRY = 2005

# Descriptor table errors: 3xxx
ERROR_TABLE_INVALID = 3001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class WasiGuardError(Exception):
    """
    Base exception for all wasi-guard errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Scan Errors
# =============================================================================


@dataclass
class ScanError(WasiGuardError):
    """
    Base class for import scanning errors.

    None of these are retryable: the same bytes always fail the same way.
    """


@dataclass
class MalformedBinaryError(ScanError):
    """
    Raised when module bytes are not a structurally valid module.

    Attributes:
        offset: Byte offset at which parsing failed
        detail: What the parser expected to find
    """

    offset: int = 0
    detail: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Malformed module at offset {self.offset:#x}: {self.detail}"
        if self.code == 0:
            self.code = ERROR_SCAN_MALFORMED_BINARY
        self.context.update({
            "offset": self.offset,
            "detail": self.detail,
        })


@dataclass
class NonFunctionImportError(ScanError):
    """Raised when an import entry is a table, memory, global or tag."""

    module: str = ""
    name: str = ""
    kind: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Unsupported {self.kind} import: {self.module}.{self.name}"
        if self.code == 0:
            self.code = ERROR_SCAN_NON_FUNCTION_IMPORT
        if not self.suggestion:
            self.suggestion = "Only function imports can be screened; reject the module"
        self.context.update({
            "module": self.module,
            "name": self.name,
            "kind": self.kind,
        })


@dataclass
class UnresolvedTypeError(ScanError):
    """Raised when an imported function references a type index that was never declared."""

    module: str = ""
    name: str = ""
    type_index: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Import {self.module}.{self.name} references undeclared type {self.type_index}"
            )
        if self.code == 0:
            self.code = ERROR_SCAN_UNRESOLVED_TYPE
        self.context.update({
            "module": self.module,
            "name": self.name,
            "type_index": self.type_index,
        })


# =============================================================================
# Policy Errors
# =============================================================================


@dataclass
class PolicyBuildError(WasiGuardError):
    """
    Base class for policy construction errors.

    These are raised while a policy is being assembled, never while a
    finished policy is evaluated.

    Attributes:
        abi: Name of the ABI involved (if applicable)
    """

    abi: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["abi"] = self.abi


@dataclass
class UnknownAbiError(PolicyBuildError):
    """Raised when a name is not present in the ABI registry."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Unknown WASI ABI: {self.abi}"
        if self.code == 0:
            self.code = ERROR_POLICY_UNKNOWN_ABI
        if not self.suggestion:
            self.suggestion = "Check the call name or load a registry that declares it"
        super().__post_init__()


@dataclass
class ArityMismatchError(PolicyBuildError):
    """Raised when a bound or argument tuple does not match an ABI's arity."""

    expected: int = 0
    actual: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            target = self.abi or "bound"
            self.message = (
                f"Arity mismatch for {target}: expected {self.expected} arguments, "
                f"got {self.actual}"
            )
        if self.code == 0:
            self.code = ERROR_POLICY_ARITY_MISMATCH
        super().__post_init__()
        self.context.update({
            "expected": self.expected,
            "actual": self.actual,
        })


@dataclass
class InvalidActionError(PolicyBuildError):
    """Raised when an action cannot be parsed or is out of range."""

    value: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid action: {self.value!r}"
        if self.code == 0:
            self.code = ERROR_POLICY_INVALID_ACTION
        if not self.suggestion:
            self.suggestion = "Use allow, log, kill or ret_errno(<0..65535>)"
        super().__post_init__()
        self.context["value"] = self.value


@dataclass
class DuplicateAbiError(PolicyBuildError):
    """Raised when an ABI name is registered twice."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"ABI already registered: {self.abi}"
        if self.code == 0:
            self.code = ERROR_POLICY_DUPLICATE_ABI
        super().__post_init__()


@dataclass
class FrozenRegistryError(PolicyBuildError):
    """Raised when registering into a registry that has been frozen."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot register {self.abi}: registry is frozen"
        if self.code == 0:
            self.code = ERROR_POLICY_FROZEN_REGISTRY
        if not self.suggestion:
            self.suggestion = "Build a new AbiRegistry instead of extending a frozen one"
        super().__post_init__()


# =============================================================================
# Descriptor Table Errors
# =============================================================================


@dataclass
class DescriptorTableError(WasiGuardError):
    """
    Raised when an ABI descriptor table cannot be loaded.

    Attributes:
        source: Path or label of the table
        underlying_error: The YAML or validation error text
    """

    source: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid descriptor table {self.source}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_TABLE_INVALID
        self.context.update({
            "source": self.source,
            "underlying_error": self.underlying_error,
        })
