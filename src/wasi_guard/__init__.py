"""
wasi-guard - Static security policies for WASI calls made by untrusted guest modules.

wasi-guard decides what a WASI host must do with each call a guest makes.
It provides:
- Per-call statements with argument bounds and a default action
- Ordered action lists (allow, log, return_errno, kill) for every call
- Static pre-screening of module imports against always-killed calls

Example usage:
    from wasi_guard import PolicyBuilder, screen_module

    policy = (
        PolicyBuilder(default="allow")
        .statement("fd_write", "ret_errno(2)", lambda fd, iovs, n, out: fd > 2)
        .statement("sock_send", "kill")
        .build()
    )
    actions = policy.guard_for("fd_write").check((3, 0, 0, 0))
    if screen_module(module_bytes, policy).rejected:
        ...
"""

__version__ = "0.1.0"
__author__ = "wasi-guard Contributors"

from wasi_guard.abi import AbiRegistry, Errno, default_registry, load_builtin_registry
from wasi_guard.policy import (
    Bound,
    Guard,
    Ordering,
    Policy,
    PolicyBuilder,
    Statement,
    actions_to_execute,
    build_policy,
    compare,
)
from wasi_guard.scanner import (
    ImportFunc,
    ScreenResult,
    forbidden_imports,
    parse_import_funcs,
    screen_module,
)
from wasi_guard.schema import AbiArg, AbiDescriptor, Action, ActionKind, ArgType

__all__ = [
    "__version__",
    "__author__",
    "AbiArg",
    "AbiDescriptor",
    "AbiRegistry",
    "Action",
    "ActionKind",
    "ArgType",
    "Bound",
    "Errno",
    "Guard",
    "ImportFunc",
    "Ordering",
    "Policy",
    "PolicyBuilder",
    "ScreenResult",
    "Statement",
    "actions_to_execute",
    "build_policy",
    "compare",
    "default_registry",
    "forbidden_imports",
    "load_builtin_registry",
    "parse_import_funcs",
    "screen_module",
]
