"""
Import scanner module for wasi-guard.

Reads a guest module's binary form, extracts its imported host functions
with their signatures, and flags the ones a policy always kills.
"""

from wasi_guard.scanner.imports import (
    ImportFunc,
    ScreenResult,
    forbidden_imports,
    parse_import_funcs,
    screen_module,
)
from wasi_guard.scanner.types import (
    ArrayType,
    FieldType,
    FuncType,
    PackedType,
    RecGroup,
    RefType,
    StructType,
    SubType,
    ValType,
)

__all__ = [
    "ArrayType",
    "FieldType",
    "FuncType",
    "ImportFunc",
    "PackedType",
    "RecGroup",
    "RefType",
    "ScreenResult",
    "StructType",
    "SubType",
    "ValType",
    "forbidden_imports",
    "parse_import_funcs",
    "screen_module",
]
