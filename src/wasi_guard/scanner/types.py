"""
WebAssembly type definitions as read from a module's type section.

Covers the MVP encoding and the GC-proposal encoding (``rec`` groups,
``sub`` / ``sub final`` declarations, struct and array types, typed
references). Types are decoded only as far as needed to resolve and
inspect imported function signatures.
"""

from dataclasses import dataclass
from enum import Enum

from wasi_guard.scanner.reader import BinaryReader


class ValType(str, Enum):
    """Numeric and vector value types."""

    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"
    V128 = "v128"


class PackedType(str, Enum):
    """Storage-only types for struct and array fields."""

    I8 = "i8"
    I16 = "i16"


VALTYPE_ENCODING = {
    0x7F: ValType.I32,
    0x7E: ValType.I64,
    0x7D: ValType.F32,
    0x7C: ValType.F64,
    0x7B: ValType.V128,
}

PACKED_ENCODING = {
    0x78: PackedType.I8,
    0x77: PackedType.I16,
}

# Abstract heap types; each byte doubles as a nullable reference shorthand
# (0x70 is funcref, 0x6F is externref, ...)
ABSTRACT_HEAP_ENCODING = {
    0x74: "noexn",
    0x73: "nofunc",
    0x72: "noextern",
    0x71: "none",
    0x70: "func",
    0x6F: "extern",
    0x6E: "any",
    0x6D: "eq",
    0x6C: "i31",
    0x6B: "struct",
    0x6A: "array",
    0x69: "exn",
}

REF_NULL = 0x63
REF = 0x64

FUNC_TYPE = 0x60
STRUCT_TYPE = 0x5F
ARRAY_TYPE = 0x5E

SUB = 0x50
SUB_FINAL = 0x4F
REC = 0x4E


@dataclass(frozen=True)
class RefType:
    """
    A reference type.

    Attributes:
        nullable: Whether null is a valid value
        heap: Abstract heap type name ("func", "extern", ...) or a
            concrete type index
    """

    nullable: bool
    heap: str | int

    def __str__(self) -> str:
        null = "null " if self.nullable else ""
        return f"(ref {null}{self.heap})"


@dataclass(frozen=True)
class FieldType:
    """A struct field or array element."""

    storage: ValType | PackedType | RefType
    mutable: bool


@dataclass(frozen=True)
class FuncType:
    """A function signature."""

    params: tuple[ValType | RefType, ...]
    results: tuple[ValType | RefType, ...]

    def __str__(self) -> str:
        params = ", ".join(str(getattr(p, "value", p)) for p in self.params)
        results = ", ".join(str(getattr(r, "value", r)) for r in self.results)
        return f"({params}) -> ({results})"


@dataclass(frozen=True)
class StructType:
    fields: tuple[FieldType, ...]


@dataclass(frozen=True)
class ArrayType:
    element: FieldType


CompositeType = FuncType | StructType | ArrayType


@dataclass(frozen=True)
class SubType:
    """
    A type declaration with its subtyping information.

    A plain MVP ``(type (func ...))`` is a final subtype without supertypes.
    """

    composite: CompositeType
    is_final: bool = True
    supertypes: tuple[int, ...] = ()

    @property
    def is_func(self) -> bool:
        return isinstance(self.composite, FuncType)


@dataclass(frozen=True, eq=False)
class RecGroup:
    """
    A recursion group: one entry of the type section.

    Groups are shared by reference between every import whose signature
    they declare. ``explicit`` is True for groups written with ``rec``,
    even when they hold a single type.
    """

    types: tuple[SubType, ...]
    explicit: bool = False


# =============================================================================
# Decoding
# =============================================================================


def read_heap_type(reader: BinaryReader) -> str | int:
    byte = reader.peek_byte()
    if byte in ABSTRACT_HEAP_ENCODING:
        reader.read_byte()
        return ABSTRACT_HEAP_ENCODING[byte]
    start = reader.pos
    index = reader.read_s33()
    if index < 0:
        raise reader.fail(f"invalid heap type {index}", start)
    return index


def read_val_type(reader: BinaryReader) -> ValType | RefType:
    start = reader.pos
    byte = reader.read_byte()
    if byte in VALTYPE_ENCODING:
        return VALTYPE_ENCODING[byte]
    if byte in ABSTRACT_HEAP_ENCODING:
        return RefType(nullable=True, heap=ABSTRACT_HEAP_ENCODING[byte])
    if byte in (REF_NULL, REF):
        return RefType(nullable=byte == REF_NULL, heap=read_heap_type(reader))
    raise reader.fail(f"invalid value type {byte:#04x}", start)


def read_field_type(reader: BinaryReader) -> FieldType:
    byte = reader.peek_byte()
    if byte in PACKED_ENCODING:
        reader.read_byte()
        storage: ValType | PackedType | RefType = PACKED_ENCODING[byte]
    else:
        storage = read_val_type(reader)

    start = reader.pos
    mutability = reader.read_byte()
    if mutability not in (0, 1):
        raise reader.fail(f"invalid mutability {mutability:#04x}", start)
    return FieldType(storage=storage, mutable=bool(mutability))


def read_composite_type(reader: BinaryReader) -> CompositeType:
    start = reader.pos
    form = reader.read_byte()
    if form == FUNC_TYPE:
        params = tuple(read_val_type(reader) for _ in range(reader.read_u32()))
        results = tuple(read_val_type(reader) for _ in range(reader.read_u32()))
        return FuncType(params=params, results=results)
    if form == STRUCT_TYPE:
        return StructType(fields=tuple(read_field_type(reader) for _ in range(reader.read_u32())))
    if form == ARRAY_TYPE:
        return ArrayType(element=read_field_type(reader))
    raise reader.fail(f"invalid composite type form {form:#04x}", start)


def read_sub_type(reader: BinaryReader) -> SubType:
    byte = reader.peek_byte()
    if byte in (SUB, SUB_FINAL):
        reader.read_byte()
        supertypes = tuple(reader.read_u32() for _ in range(reader.read_u32()))
        return SubType(
            composite=read_composite_type(reader),
            is_final=byte == SUB_FINAL,
            supertypes=supertypes,
        )
    return SubType(composite=read_composite_type(reader))


def read_rec_group(reader: BinaryReader) -> RecGroup:
    if reader.peek_byte() == REC:
        reader.read_byte()
        types = tuple(read_sub_type(reader) for _ in range(reader.read_u32()))
        return RecGroup(types=types, explicit=True)
    return RecGroup(types=(read_sub_type(reader),))
