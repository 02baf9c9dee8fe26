"""
Unit tests for the import scanner.

Tests cover:
- Extracting function imports with their signatures
- Type index resolution across recursion groups
- Non-function and unresolved imports
- Malformed binaries (header, LEB128, section framing and order)
- The C-ABI signature check
- Filtering imports by a blacklist
"""

import pytest

import wasm_builder as wb
from wasi_guard.errors import (
    MalformedBinaryError,
    NonFunctionImportError,
    ScanError,
    UnresolvedTypeError,
)
from wasi_guard.scanner import (
    FuncType,
    ImportFunc,
    RecGroup,
    RefType,
    StructType,
    SubType,
    ValType,
    forbidden_imports,
    parse_import_funcs,
)


# =============================================================================
# Well-formed Modules
# =============================================================================


class TestParseImportFuncs:
    """Tests for parse_import_funcs on valid modules."""

    def test_hello_module(self, hello_module: bytes) -> None:
        imports = parse_import_funcs(hello_module)
        assert [func.name for func in imports] == [
            "clock_time_get",
            "fd_write",
            "environ_get",
            "environ_sizes_get",
            "proc_exit",
        ]
        assert {func.module for func in imports} == {"wasi_snapshot_preview1"}
        assert [func.type_index for func in imports] == [3, 4, 2, 2, 1]

    def test_signatures(self, hello_module: bytes) -> None:
        imports = {func.name: func for func in parse_import_funcs(hello_module)}
        assert imports["clock_time_get"].func_type == FuncType(
            params=(ValType.I32, ValType.I64, ValType.I32),
            results=(ValType.I32,),
        )
        assert imports["proc_exit"].func_type == FuncType(params=(ValType.I32,), results=())
        assert str(imports["proc_exit"]) == "wasi_snapshot_preview1.proc_exit(i32) -> ()"

    def test_shared_type_shares_group(self, hello_module: bytes) -> None:
        imports = {func.name: func for func in parse_import_funcs(hello_module)}
        assert imports["environ_get"].signature is imports["environ_sizes_get"].signature
        assert imports["environ_get"].signature is not imports["proc_exit"].signature

    def test_all_c_abi(self, hello_module: bytes) -> None:
        assert all(func.is_c_abi() for func in parse_import_funcs(hello_module))

    def test_accepts_bytearray(self, hello_module: bytes) -> None:
        assert len(parse_import_funcs(bytearray(hello_module))) == 5

    def test_header_only(self) -> None:
        assert parse_import_funcs(wb.HEADER) == []

    def test_types_without_imports(self) -> None:
        assert parse_import_funcs(wb.module(wb.type_section(wb.func_type()))) == []

    def test_custom_sections_skipped(self) -> None:
        data = wb.module(
            wb.custom_section("name", b"\x01\x02\x03"),
            wb.type_section(wb.func_type([wb.I32])),
            wb.custom_section("producers"),
            wb.import_section(wb.import_func("env", "log", 0)),
            wb.custom_section("trailer", b"\xff"),
        )
        assert [func.name for func in parse_import_funcs(data)] == ["log"]

    def test_later_sections_not_decoded(self) -> None:
        data = wb.module(
            wb.type_section(wb.func_type()),
            wb.import_section(wb.import_func("env", "f", 0)),
            wb.section(3, b"\x01\x00"),
            wb.section(7, b"\xde\xad"),
            wb.section(10, b"\xbe\xef\x00"),
        )
        assert [func.name for func in parse_import_funcs(data)] == ["f"]

    def test_reference_types(self) -> None:
        # (func (param funcref (ref null 0) (ref func)))
        raw = b"\x60\x03\x70\x63\x00\x64\x70\x00"
        data = wb.module(
            wb.type_section(raw),
            wb.import_section(wb.import_func("env", "refs", 0)),
        )
        (func,) = parse_import_funcs(data)
        assert func.func_type.params == (
            RefType(nullable=True, heap="func"),
            RefType(nullable=True, heap=0),
            RefType(nullable=False, heap="func"),
        )


class TestRecGroups:
    """Tests for GC-style type sections."""

    @pytest.fixture
    def gc_module(self) -> bytes:
        return wb.module(
            wb.type_section(
                wb.rec(
                    wb.sub(wb.struct_type([(wb.I32, True)])),
                    wb.sub(wb.func_type([wb.I32]), final=True),
                ),
                wb.func_type([wb.I32], [wb.I32]),
                wb.sub(wb.func_type([wb.I64])),
                wb.sub(wb.func_type([wb.F32]), final=True, supertypes=[2]),
                wb.rec(wb.sub(wb.func_type(), final=True)),
                wb.func_type([], [wb.I32, wb.I32]),
            ),
            wb.import_section(
                wb.import_func("env", "in_rec", 1),
                wb.import_func("env", "plain", 2),
                wb.import_func("env", "open_sub", 3),
                wb.import_func("env", "final_sub", 4),
                wb.import_func("env", "single_rec", 5),
                wb.import_func("env", "multi_value", 6),
            ),
        )

    def test_indices_count_subtypes(self, gc_module: bytes) -> None:
        imports = {func.name: func for func in parse_import_funcs(gc_module)}
        assert imports["in_rec"].func_type.params == (ValType.I32,)
        assert imports["in_rec"].group_offset == 1
        assert imports["plain"].func_type.results == (ValType.I32,)
        assert imports["open_sub"].func_type.params == (ValType.I64,)
        assert imports["final_sub"].sub_type.supertypes == (2,)

    def test_c_abi(self, gc_module: bytes) -> None:
        c_abi = {func.name: func.is_c_abi() for func in parse_import_funcs(gc_module)}
        assert c_abi == {
            "in_rec": False,
            "plain": True,
            "open_sub": False,
            "final_sub": True,
            "single_rec": False,
            "multi_value": False,
        }

    def test_explicit_group(self, gc_module: bytes) -> None:
        imports = {func.name: func for func in parse_import_funcs(gc_module)}
        assert imports["in_rec"].signature.explicit
        assert len(imports["in_rec"].signature.types) == 2
        assert imports["single_rec"].signature.explicit
        assert not imports["plain"].signature.explicit

    def test_require_c_abi(self, gc_module: bytes, hello_module: bytes) -> None:
        with pytest.raises(MalformedBinaryError) as exc_info:
            parse_import_funcs(gc_module, require_c_abi=True)
        assert "in_rec" in str(exc_info.value)
        assert len(parse_import_funcs(hello_module, require_c_abi=True)) == 5

    def test_import_of_struct_type(self) -> None:
        data = wb.module(
            wb.type_section(wb.struct_type([(wb.I32, False)]), wb.array_type(0x78, mutable=True)),
            wb.import_section(wb.import_func("env", "not_a_func", 0)),
        )
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(data)

    def test_func_type_of_non_function(self) -> None:
        group = RecGroup(types=(SubType(composite=StructType(fields=())),))
        func = ImportFunc(module="env", name="s", type_index=0, signature=group)
        assert not func.is_c_abi()
        with pytest.raises(TypeError):
            func.func_type


# =============================================================================
# Rejected Modules
# =============================================================================


class TestNonFunctionImports:
    """Tests for table, memory and global imports."""

    @pytest.mark.parametrize(
        ("entry", "kind"),
        [
            (wb.import_memory("env", "memory"), "memory"),
            (wb.import_global("env", "g"), "global"),
            (wb.import_table("env", "t"), "table"),
        ],
    )
    def test_rejected(self, entry: bytes, kind: str) -> None:
        data = wb.module(
            wb.type_section(wb.func_type()),
            wb.import_section(wb.import_func("env", "f", 0), entry),
        )
        with pytest.raises(NonFunctionImportError) as exc_info:
            parse_import_funcs(data)
        assert exc_info.value.kind == kind
        assert exc_info.value.module == "env"

    def test_invalid_kind(self) -> None:
        entry = wb.name("env") + wb.name("x") + b"\x07\x00"
        data = wb.module(wb.import_section(entry))
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(data)


class TestUnresolvedTypes:
    """Tests for imports referencing undeclared types."""

    def test_index_past_end(self) -> None:
        data = wb.wasi_module(("fd_write", 5), types=[wb.func_type()])
        with pytest.raises(UnresolvedTypeError) as exc_info:
            parse_import_funcs(data)
        assert exc_info.value.name == "fd_write"
        assert exc_info.value.type_index == 5

    def test_no_type_section(self) -> None:
        data = wb.module(wb.import_section(wb.import_func("env", "f", 0)))
        with pytest.raises(UnresolvedTypeError):
            parse_import_funcs(data)


class TestMalformedBinaries:
    """Tests for structurally invalid input."""

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"\x00asm",
            b"\x00asm\x01\x00",
            b"\x7fELF\x01\x00\x00\x00",
        ],
    )
    def test_bad_magic(self, data: bytes) -> None:
        with pytest.raises(MalformedBinaryError) as exc_info:
            parse_import_funcs(data)
        assert exc_info.value.offset == 0

    @pytest.mark.parametrize(
        "version",
        [b"\x02\x00\x00\x00", b"\x0d\x00\x01\x00"],
    )
    def test_bad_version(self, version: bytes) -> None:
        with pytest.raises(MalformedBinaryError) as exc_info:
            parse_import_funcs(b"\x00asm" + version)
        assert exc_info.value.offset == 4

    def test_section_larger_than_module(self) -> None:
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(wb.HEADER + b"\x01\x10\x00")

    def test_leb_too_long(self) -> None:
        with pytest.raises(MalformedBinaryError) as exc_info:
            parse_import_funcs(wb.HEADER + b"\x00\x80\x80\x80\x80\x80\x00")
        assert "too long" in exc_info.value.detail

    def test_leb_too_large(self) -> None:
        with pytest.raises(MalformedBinaryError) as exc_info:
            parse_import_funcs(wb.HEADER + b"\x00\xff\xff\xff\xff\x7f")
        assert "too large" in exc_info.value.detail

    def test_truncated_leb(self) -> None:
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(wb.HEADER + b"\x01\x80")

    def test_sections_out_of_order(self) -> None:
        imports = wb.import_section(wb.import_func("env", "f", 0))
        data = wb.module(imports, wb.type_section(wb.func_type()))
        with pytest.raises(MalformedBinaryError) as exc_info:
            parse_import_funcs(data)
        assert exc_info.value.offset == 8 + len(imports)

    def test_duplicate_section(self) -> None:
        types = wb.type_section(wb.func_type())
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(wb.module(types, types))

    def test_unknown_section(self) -> None:
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(wb.module(wb.section(14, b"")))

    def test_trailing_bytes_in_type_section(self) -> None:
        payload = wb.vec([wb.func_type()]) + b"\x00"
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(wb.module(wb.section(1, payload)))

    def test_type_runs_past_section(self) -> None:
        payload = wb.vec([wb.func_type([wb.I32])])[:-1]
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(wb.module(wb.section(1, payload)))

    def test_invalid_value_type(self) -> None:
        raw = b"\x60\x01\x40\x00"
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(wb.module(wb.type_section(raw)))

    def test_invalid_type_form(self) -> None:
        with pytest.raises(MalformedBinaryError):
            parse_import_funcs(wb.module(wb.type_section(b"\x61\x00\x00")))

    def test_invalid_utf8_name(self) -> None:
        entry = b"\x02\xff\xfe" + wb.name("f") + b"\x00\x00"
        data = wb.module(wb.type_section(wb.func_type()), wb.import_section(entry))
        with pytest.raises(MalformedBinaryError) as exc_info:
            parse_import_funcs(data)
        assert "UTF-8" in exc_info.value.detail

    def test_all_failures_are_scan_errors(self) -> None:
        with pytest.raises(ScanError):
            parse_import_funcs(b"not wasm")


# =============================================================================
# Forbidden Imports
# =============================================================================


class TestForbiddenImports:
    """Tests for forbidden_imports."""

    def test_keeps_import_order(self, hello_module: bytes) -> None:
        imports = parse_import_funcs(hello_module)
        forbidden = forbidden_imports(imports, {"proc_exit", "clock_time_get", "sock_send"})
        assert [func.name for func in forbidden] == ["clock_time_get", "proc_exit"]

    def test_empty_blacklist(self, hello_module: bytes) -> None:
        assert forbidden_imports(parse_import_funcs(hello_module), frozenset()) == []

    def test_no_imports(self) -> None:
        assert forbidden_imports([], {"proc_exit"}) == []

    def test_matches_by_name_only(self) -> None:
        data = wb.module(
            wb.type_section(wb.func_type()),
            wb.import_section(
                wb.import_func("env", "proc_exit", 0),
                wb.import_func("wasi_snapshot_preview1", "proc_exit", 0),
            ),
        )
        forbidden = forbidden_imports(parse_import_funcs(data), ["proc_exit"])
        assert [func.module for func in forbidden] == ["env", "wasi_snapshot_preview1"]

    def test_result_is_subset(self, hello_module: bytes) -> None:
        imports = parse_import_funcs(hello_module)
        blacklist = {"fd_write", "environ_get"}
        forbidden = forbidden_imports(imports, blacklist)
        assert all(func in imports and func.name in blacklist for func in forbidden)
