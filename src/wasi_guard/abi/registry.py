"""
ABI descriptor registry for wasi-guard.

The registry is the catalog of every WASI call the policy system knows
about. Policies are validated against it, and the must-be-killed set of a
policy is computed over its names.

Design:
    - Built-in registries are loaded once from the YAML tables shipped in
      wasi_guard/abi/tables and frozen
    - Custom registries can be assembled for testing or other WASI flavours
    - Names keep declaration order

Usage:
    from wasi_guard.abi import default_registry

    fd_write = default_registry().get("fd_write")
"""

import logging
from functools import lru_cache
from importlib import resources
from typing import Iterable, Iterator

from wasi_guard.errors import DuplicateAbiError, FrozenRegistryError, UnknownAbiError
from wasi_guard.schema import AbiDescriptor, DescriptorTable, load_descriptor_table_from_string

logger = logging.getLogger(__name__)

WASI_P1_TABLE = "wasi_p1.yaml"
WASMEDGE_SOCK_TABLE = "wasmedge_sock.yaml"


class AbiRegistry:
    """
    Registry for looking up ABI descriptors by name.

    Attributes:
        _abis: Internal mapping of call names to descriptors
        _frozen: Whether further registration is refused
    """

    def __init__(self, descriptors: Iterable[AbiDescriptor] = ()) -> None:
        """Initialize a registry, optionally pre-populated."""
        self._abis: dict[str, AbiDescriptor] = {}
        self._frozen = False
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: AbiDescriptor, replace: bool = False) -> None:
        """
        Register a descriptor.

        A replaced descriptor keeps its original position in ``names()``.

        Args:
            descriptor: The descriptor to register
            replace: Allow overriding an existing descriptor of the same name

        Raises:
            FrozenRegistryError: If the registry has been frozen
            DuplicateAbiError: If the name exists and replace is False
        """
        if self._frozen:
            raise FrozenRegistryError(abi=descriptor.name)
        if descriptor.name in self._abis and not replace:
            raise DuplicateAbiError(abi=descriptor.name)
        self._abis[descriptor.name] = descriptor

    def register_table(self, table: DescriptorTable, replace: bool = False) -> None:
        """Register every call of a descriptor table, in order."""
        for descriptor in table.calls:
            self.register(descriptor, replace=replace)
        logger.debug("Registered %d calls from table %s", len(table.calls), table.name)

    def freeze(self) -> "AbiRegistry":
        """Refuse any further registration. Returns self."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> AbiDescriptor:
        """
        Look up a descriptor by name.

        Raises:
            UnknownAbiError: If no call with that name is registered
        """
        descriptor = self._abis.get(name)
        if descriptor is None:
            raise UnknownAbiError(abi=name)
        return descriptor

    def get_optional(self, name: str) -> AbiDescriptor | None:
        """Look up a descriptor by name, returning None if not found."""
        return self._abis.get(name)

    def has(self, name: str) -> bool:
        """Check if a call is registered."""
        return name in self._abis

    def names(self) -> list[str]:
        """All registered call names, in declaration order."""
        return list(self._abis)

    def __len__(self) -> int:
        return len(self._abis)

    def __iter__(self) -> Iterator[AbiDescriptor]:
        return iter(self._abis.values())

    def __contains__(self, name: object) -> bool:
        return name in self._abis

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"<AbiRegistry: {len(self)} calls, {state}>"


def load_table_resource(filename: str) -> DescriptorTable:
    """Load one of the descriptor tables shipped with the package."""
    resource = resources.files("wasi_guard.abi").joinpath("tables").joinpath(filename)
    return load_descriptor_table_from_string(resource.read_text(encoding="utf-8"), source=filename)


@lru_cache(maxsize=None)
def load_builtin_registry(wasmedge_sock: bool = False) -> AbiRegistry:
    """
    Build the frozen registry of WASI preview 1 calls.

    Args:
        wasmedge_sock: Also load the WasmEdge socket extension, which
            replaces sock_accept and adds ten socket calls

    Returns:
        A frozen AbiRegistry, shared by every caller
    """
    registry = AbiRegistry()
    registry.register_table(load_table_resource(WASI_P1_TABLE))
    if wasmedge_sock:
        registry.register_table(load_table_resource(WASMEDGE_SOCK_TABLE), replace=True)
    return registry.freeze()


def default_registry() -> AbiRegistry:
    """The registry used when a policy is built without one."""
    return load_builtin_registry()
