"""
Pytest configuration and fixtures for wasi-guard tests.

This module provides shared fixtures used across unit and integration
tests: registries, ready-made policies and module binaries.
"""

import pytest

import wasm_builder as wb
from wasi_guard.abi import AbiRegistry, default_registry
from wasi_guard.policy import Policy, PolicyBuilder
from wasi_guard.schema import AbiDescriptor


@pytest.fixture
def registry() -> AbiRegistry:
    """The built-in WASI preview 1 registry."""
    return default_registry()


@pytest.fixture
def small_registry() -> AbiRegistry:
    """An unfrozen registry with three calls of different arities."""
    return AbiRegistry([
        AbiDescriptor.model_validate({"name": "noop"}),
        AbiDescriptor.model_validate({"name": "exit", "args": [{"code": "u32"}]}),
        AbiDescriptor.model_validate({"name": "pair", "args": ["a", "b"]}),
    ])


@pytest.fixture
def allow_policy() -> Policy:
    """Allow everything by default, kill sched_yield, bound proc_exit."""
    return (
        PolicyBuilder(default="allow")
        .statement("proc_exit", "allow", lambda code: code >= 0)
        .statement("proc_exit", "log", lambda code: code >= 4 and code & 1 == 1)
        .statement("sched_yield", "log")
        .statement("sched_yield", "kill")
        .build()
    )


@pytest.fixture
def kill_policy() -> Policy:
    """Kill by default; fd_write and proc_exit are permitted."""
    return (
        PolicyBuilder()
        .statement("fd_write", "allow")
        .statement("proc_exit", "allow")
        .statement("proc_exit", "kill", lambda code: code != 0)
        .build()
    )


@pytest.fixture
def hello_module() -> bytes:
    """
    A module importing five WASI calls, like a compiled hello-world.

    Types: 0 = () -> (), 1 = (i32) -> (), 2 = (i32, i32) -> i32,
    3 = (i32, i64, i32) -> i32, 4 = (i32, i32, i32, i32) -> i32
    """
    return wb.wasi_module(
        ("clock_time_get", 3),
        ("fd_write", 4),
        ("environ_get", 2),
        ("environ_sizes_get", 2),
        ("proc_exit", 1),
        types=[
            wb.func_type(),
            wb.func_type([wb.I32]),
            wb.func_type([wb.I32, wb.I32], [wb.I32]),
            wb.func_type([wb.I32, wb.I64, wb.I32], [wb.I32]),
            wb.func_type([wb.I32, wb.I32, wb.I32, wb.I32], [wb.I32]),
        ],
    )
