"""
ABI descriptor module for wasi-guard.

Catalog of the WASI calls a policy can govern: their names and the name,
size and declared type of each argument. The catalog is pure data, loaded
once from YAML tables and shared read-only.
"""

from wasi_guard.abi.errno import Errno
from wasi_guard.abi.registry import (
    AbiRegistry,
    default_registry,
    load_builtin_registry,
    load_table_resource,
)

__all__ = [
    "AbiRegistry",
    "Errno",
    "default_registry",
    "load_builtin_registry",
    "load_table_resource",
]
