"""
Static import scanner for wasi-guard.

Extracts the host functions a guest module imports, with their resolved
signatures, and cross-references them against a policy's must-be-killed set
so that a module doomed to be killed is rejected before instantiation.

How it works:
    1. The module header and every section's framing are checked
    2. The type section is decoded into recursion groups; type indices count
       the subtypes of every group in declaration order
    3. The import section is decoded; any non-function import fails the scan
    4. Each function import is paired with its type by index

Security Note:
    Every failure is a ScanError and must be treated as fail-closed: a
    module that cannot be scanned is rejected, never loaded unscreened.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from wasi_guard.errors import MalformedBinaryError, NonFunctionImportError, UnresolvedTypeError
from wasi_guard.policy.engine import Policy
from wasi_guard.scanner.reader import BinaryReader
from wasi_guard.scanner.types import FuncType, RecGroup, SubType, read_rec_group

logger = logging.getLogger(__name__)

WASM_MAGIC = b"\x00asm"
WASM_VERSION = b"\x01\x00\x00\x00"

CUSTOM_SECTION = 0
TYPE_SECTION = 1
IMPORT_SECTION = 2

# Non-custom sections must appear in this order, each at most once
SECTION_ORDER = {
    1: 1,    # type
    2: 2,    # import
    3: 3,    # function
    4: 4,    # table
    5: 5,    # memory
    13: 6,   # tag
    6: 7,    # global
    7: 8,    # export
    8: 9,    # start
    9: 10,   # element
    12: 11,  # data count
    10: 12,  # code
    11: 13,  # data
}

IMPORT_KINDS = {
    0x00: "function",
    0x01: "table",
    0x02: "memory",
    0x03: "global",
    0x04: "tag",
}


@dataclass(frozen=True)
class ImportFunc:
    """
    A host function imported by a guest module.

    Attributes:
        module: The module being imported from (e.g., "wasi_snapshot_preview1")
        name: The name of the imported function (e.g., "fd_write")
        type_index: Index of the function's type in the type index space
        signature: The recursion group that declares the type, shared with
            every other import of a type from the same group
    """

    module: str
    name: str
    type_index: int
    signature: RecGroup
    group_offset: int = 0

    @property
    def sub_type(self) -> SubType:
        """The declaration this import's type index points at."""
        return self.signature.types[self.group_offset]

    @property
    def func_type(self) -> FuncType:
        """
        The imported function's signature.

        Raises:
            TypeError: If the type index points at a struct or array type
        """
        composite = self.sub_type.composite
        if not isinstance(composite, FuncType):
            msg = f"Import {self.module}.{self.name} has non-function type {self.type_index}"
            raise TypeError(msg)
        return composite

    def is_c_abi(self) -> bool:
        """
        Whether the signature is callable like a C function.

        True when the type is declared outside any explicit ``rec`` group,
        is final, is a function type, and has at most one result.
        """
        sub = self.sub_type
        return (
            not self.signature.explicit
            and sub.is_final
            and sub.is_func
            and len(sub.composite.results) <= 1
        )

    def __str__(self) -> str:
        return f"{self.module}.{self.name}{self.sub_type.composite}"


@dataclass(frozen=True)
class _UntypedImport:
    module: str
    name: str
    type_index: int


def _read_type_section(reader: BinaryReader) -> list[tuple[RecGroup, int]]:
    """Decode the type section into (group, offset in group) per type index."""
    index_space: list[tuple[RecGroup, int]] = []
    for _ in range(reader.read_u32()):
        group = read_rec_group(reader)
        index_space.extend((group, offset) for offset in range(len(group.types)))
    return index_space


def _read_import_section(reader: BinaryReader) -> list[_UntypedImport]:
    imports: list[_UntypedImport] = []
    for _ in range(reader.read_u32()):
        module = reader.read_name()
        name = reader.read_name()
        kind_offset = reader.pos
        kind = reader.read_byte()
        if kind not in IMPORT_KINDS:
            raise reader.fail(f"invalid import kind {kind:#04x}", kind_offset)
        if kind != 0x00:
            raise NonFunctionImportError(module=module, name=name, kind=IMPORT_KINDS[kind])
        imports.append(_UntypedImport(module=module, name=name, type_index=reader.read_u32()))
    return imports


def _read_header(reader: BinaryReader) -> None:
    if reader.remaining < 8 or reader.read_bytes(4) != WASM_MAGIC:
        raise MalformedBinaryError(offset=0, detail="magic header not detected")
    version = reader.read_bytes(4)
    if version != WASM_VERSION:
        raise MalformedBinaryError(
            offset=4,
            detail=f"unsupported binary version {version.hex()} (only core modules, version 1)",
        )


def parse_import_funcs(
    module_bytes: bytes,
    require_c_abi: bool = False,
) -> list[ImportFunc]:
    """
    Extract the function imports of a module binary.

    Args:
        module_bytes: The raw module
        require_c_abi: Also reject modules importing a function whose
            signature is not C-ABI (see ImportFunc.is_c_abi)

    Returns:
        ImportFunc values in declaration order

    Raises:
        MalformedBinaryError: If the bytes are not a structurally valid module
        NonFunctionImportError: If the module imports a table, memory, global or tag
        UnresolvedTypeError: If an import references an undeclared type index
    """
    data = bytes(module_bytes)
    reader = BinaryReader(data)
    _read_header(reader)

    index_space: list[tuple[RecGroup, int]] = []
    untyped: list[_UntypedImport] = []
    last_rank = 0
    while not reader.eof:
        section_offset = reader.pos
        section_id = reader.read_byte()
        section = reader.sub_reader(reader.read_u32())

        if section_id == CUSTOM_SECTION:
            section.read_name()
            continue

        rank = SECTION_ORDER.get(section_id)
        if rank is None:
            raise MalformedBinaryError(offset=section_offset, detail=f"unknown section id {section_id}")
        if rank <= last_rank:
            raise MalformedBinaryError(
                offset=section_offset,
                detail=f"section {section_id} out of order or duplicated",
            )
        last_rank = rank

        if section_id == TYPE_SECTION:
            index_space = _read_type_section(section)
            section.expect_end("type section")
        elif section_id == IMPORT_SECTION:
            untyped = _read_import_section(section)
            section.expect_end("import section")

    logger.debug("Scanned module: %d types, %d function imports", len(index_space), len(untyped))

    imports: list[ImportFunc] = []
    for entry in untyped:
        if entry.type_index >= len(index_space):
            raise UnresolvedTypeError(module=entry.module, name=entry.name, type_index=entry.type_index)
        group, offset = index_space[entry.type_index]
        func = ImportFunc(
            module=entry.module,
            name=entry.name,
            type_index=entry.type_index,
            signature=group,
            group_offset=offset,
        )
        if not func.sub_type.is_func:
            raise MalformedBinaryError(
                detail=f"import {entry.module}.{entry.name} refers to non-function type {entry.type_index}",
            )
        if require_c_abi and not func.is_c_abi():
            raise MalformedBinaryError(
                detail=f"import {entry.module}.{entry.name} does not have a C-ABI signature",
            )
        imports.append(func)
    return imports


def forbidden_imports(
    imports: Sequence[ImportFunc],
    blacklist: Iterable[str],
) -> list[ImportFunc]:
    """
    Select the imports whose name is blacklisted, keeping their order.

    The blacklist is normally ``Policy.must_be_killed``.
    """
    names = frozenset(blacklist)
    return [func for func in imports if func.name in names]


@dataclass(frozen=True)
class ScreenResult:
    """
    Outcome of screening a module against a policy.

    Attributes:
        imports: Every function import of the module
        forbidden: The imports that would always kill the guest
    """

    imports: tuple[ImportFunc, ...]
    forbidden: tuple[ImportFunc, ...]

    @property
    def rejected(self) -> bool:
        """True when the module must not be instantiated."""
        return bool(self.forbidden)


def screen_module(module_bytes: bytes, policy: Policy) -> ScreenResult:
    """
    Parse a module and check its imports against a policy.

    Raises:
        ScanError: If the module cannot be scanned; reject it
    """
    imports = parse_import_funcs(module_bytes)
    forbidden = forbidden_imports(imports, policy.must_be_killed)
    if forbidden:
        logger.info(
            "Module imports %d always-killed calls: %s",
            len(forbidden),
            ", ".join(func.name for func in forbidden),
        )
    return ScreenResult(imports=tuple(imports), forbidden=tuple(forbidden))
