"""
Big-endian binary reading helpers for variation table decoders.
"""

import math
import struct

from vfresolve.core.errors import InvalidFontError

_UINT8 = struct.Struct(">B")
_UINT16 = struct.Struct(">H")
_INT16 = struct.Struct(">h")
_UINT32 = struct.Struct(">I")
_INT32 = struct.Struct(">i")


def f2dot14_to_float(value: int) -> float:
    """Convert a signed 2.14 fixed-point integer to float."""
    return value / 16384.0


def fixed_to_float(value: int) -> float:
    """Convert a signed 16.16 fixed-point integer to float."""
    return value / 65536.0


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


class BinaryReader:
    """
    Bounds-checked cursor over a byte buffer.

    Every read past the end of the buffer raises InvalidFontError naming the
    table being decoded, so callers never see struct.error.
    """

    __slots__ = ("data", "offset", "table")

    def __init__(self, data: bytes, offset: int = 0, *, table: str = "") -> None:
        self.data = data
        self.offset = offset
        self.table = table

    def __len__(self) -> int:
        return len(self.data)

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def require(self, size: int, what: str = "data") -> None:
        """Fail unless ``size`` more bytes are available."""
        if size < 0 or self.offset + size > len(self.data):
            raise InvalidFontError(
                f"{self.table or 'table'}: {what} needs {size} bytes at offset "
                f"{self.offset}, only {self.remaining} remain",
                context={"table": self.table, "offset": self.offset, "size": size},
            )

    def seek(self, offset: int) -> "BinaryReader":
        if offset < 0 or offset > len(self.data):
            raise InvalidFontError(
                f"{self.table or 'table'}: offset {offset} outside buffer of "
                f"{len(self.data)} bytes",
                context={"table": self.table, "offset": offset},
            )
        self.offset = offset
        return self

    def at(self, offset: int) -> "BinaryReader":
        """New reader over the same buffer positioned at ``offset``."""
        return BinaryReader(self.data, self.offset, table=self.table).seek(offset)

    def _unpack(self, packer: struct.Struct, what: str) -> int:
        self.require(packer.size, what)
        (value,) = packer.unpack_from(self.data, self.offset)
        self.offset += packer.size
        return value

    def uint8(self, what: str = "uint8") -> int:
        return self._unpack(_UINT8, what)

    def uint16(self, what: str = "uint16") -> int:
        return self._unpack(_UINT16, what)

    def int16(self, what: str = "int16") -> int:
        return self._unpack(_INT16, what)

    def uint32(self, what: str = "uint32") -> int:
        return self._unpack(_UINT32, what)

    def f2dot14(self, what: str = "F2Dot14") -> float:
        return f2dot14_to_float(self._unpack(_INT16, what))

    def fixed(self, what: str = "Fixed") -> float:
        return fixed_to_float(self._unpack(_INT32, what))

    def tag(self, what: str = "tag") -> str:
        return self.read(4, what).decode("latin-1")

    def read(self, size: int, what: str = "bytes") -> bytes:
        self.require(size, what)
        chunk = self.data[self.offset : self.offset + size]
        self.offset += size
        return chunk
