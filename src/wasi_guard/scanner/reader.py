"""
Byte reader for the WebAssembly binary format.

Every read is bounds-checked; running off the end or hitting an invalid
encoding raises MalformedBinaryError carrying the absolute offset.
"""

from wasi_guard.errors import MalformedBinaryError


class BinaryReader:
    """
    Cursor over a slice of a module's bytes.

    Attributes:
        data: The whole module (offsets stay absolute)
        pos: Current absolute offset
        end: Absolute offset one past the last readable byte
    """

    __slots__ = ("data", "pos", "end")

    def __init__(self, data: bytes, pos: int = 0, end: int | None = None) -> None:
        self.data = data
        self.pos = pos
        self.end = len(data) if end is None else end

    def fail(self, detail: str, offset: int | None = None) -> MalformedBinaryError:
        """Build the error for a malformed read at the current (or given) offset."""
        return MalformedBinaryError(offset=self.pos if offset is None else offset, detail=detail)

    @property
    def eof(self) -> bool:
        return self.pos >= self.end

    @property
    def remaining(self) -> int:
        return self.end - self.pos

    def read_byte(self) -> int:
        if self.pos >= self.end:
            raise self.fail("unexpected end of data")
        byte = self.data[self.pos]
        self.pos += 1
        return byte

    def peek_byte(self) -> int:
        if self.pos >= self.end:
            raise self.fail("unexpected end of data")
        return self.data[self.pos]

    def read_bytes(self, count: int) -> bytes:
        if count > self.remaining:
            raise self.fail(f"expected {count} bytes, {self.remaining} left")
        chunk = bytes(self.data[self.pos:self.pos + count])
        self.pos += count
        return chunk

    def read_u32(self) -> int:
        """Unsigned LEB128, at most 5 bytes, value below 2**32."""
        start = self.pos
        result = 0
        shift = 0
        while True:
            byte = self.read_byte()
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                break
            shift += 7
            if shift >= 35:
                raise self.fail("integer representation too long", start)
        if result > 0xFFFF_FFFF:
            raise self.fail("integer too large", start)
        return result

    def read_s33(self) -> int:
        """Signed LEB128 into 33 bits (heap type indices)."""
        start = self.pos
        result = 0
        shift = 0
        while True:
            byte = self.read_byte()
            result |= (byte & 0x7F) << shift
            shift += 7
            if not byte & 0x80:
                break
            if shift >= 35:
                raise self.fail("integer representation too long", start)
        if byte & 0x40:
            result -= 1 << shift
        if not -(1 << 32) <= result < (1 << 32):
            raise self.fail("integer too large", start)
        return result

    def read_name(self) -> str:
        """A length-prefixed UTF-8 string."""
        length = self.read_u32()
        start = self.pos
        raw = self.read_bytes(length)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise self.fail("malformed UTF-8 encoding", start) from e

    def sub_reader(self, size: int) -> "BinaryReader":
        """
        Split off the next ``size`` bytes as their own reader and skip them here.
        """
        if size > self.remaining:
            raise self.fail(f"section size {size} exceeds remaining {self.remaining} bytes")
        reader = BinaryReader(self.data, self.pos, self.pos + size)
        self.pos += size
        return reader

    def expect_end(self, what: str) -> None:
        """Raise unless everything up to ``end`` has been consumed."""
        if not self.eof:
            raise self.fail(f"{self.remaining} unexpected trailing bytes in {what}")
