"""
l2dat: Primitive Codec
======================

Fixed-width little-endian reads and writes over an in-memory buffer.

``ByteReader`` never aliases the buffer as a wider integer type; every value is
unpacked with an explicit little-endian ``struct`` format. Short reads raise
``TruncatedInput`` with the offset and the byte counts involved.

License: MIT
"""

import struct
from typing import Union

from .errors import TruncatedInput

U8 = struct.Struct('<B')
U16 = struct.Struct('<H')
I16 = struct.Struct('<h')
U32 = struct.Struct('<I')
I32 = struct.Struct('<i')
U64 = struct.Struct('<Q')
I64 = struct.Struct('<q')
F32 = struct.Struct('<f')
F64 = struct.Struct('<d')

BytesLike = Union[bytes, bytearray, memoryview]


class ByteReader:
    """
    Sequential reader over a byte buffer.

    Example:
        >>> reader = ByteReader(b'\\x01\\x00\\x00\\x00')
        >>> reader.read_u32()
        1
    """

    def __init__(self, data: BytesLike, offset: int = 0):
        self._data = memoryview(bytes(data))
        self._pos = offset

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def __len__(self) -> int:
        return len(self._data)

    def at_end(self) -> bool:
        return self._pos >= len(self._data)

    def read(self, size: int) -> bytes:
        """
        Read exactly ``size`` bytes.

        Raises:
            TruncatedInput: If fewer than ``size`` bytes remain
        """
        if size < 0:
            raise ValueError(f"Negative read size: {size}")
        end = self._pos + size
        if end > len(self._data):
            raise TruncatedInput(
                f"Truncated input at offset {self._pos}: "
                f"need {size} bytes, {self.remaining} available",
                offset=self._pos, wanted=size, available=self.remaining,
            )
        chunk = self._data[self._pos:end].tobytes()
        self._pos = end
        return chunk

    def read_struct(self, fmt: struct.Struct):
        return fmt.unpack(self.read(fmt.size))[0]

    def read_u8(self) -> int:
        return self.read_struct(U8)

    def read_u16(self) -> int:
        return self.read_struct(U16)

    def read_i16(self) -> int:
        return self.read_struct(I16)

    def read_u32(self) -> int:
        return self.read_struct(U32)

    def read_i32(self) -> int:
        return self.read_struct(I32)

    def read_u64(self) -> int:
        return self.read_struct(U64)

    def read_i64(self) -> int:
        return self.read_struct(I64)

    def read_f32(self) -> float:
        return self.read_struct(F32)

    def read_f64(self) -> float:
        return self.read_struct(F64)

    def read_u128(self) -> int:
        return int.from_bytes(self.read(16), 'little')


class ByteWriter:
    """Append-only little-endian writer backed by a ``bytearray``."""

    def __init__(self):
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def write(self, data: BytesLike) -> int:
        self._buf += data
        return len(data)

    def write_struct(self, fmt: struct.Struct, value) -> int:
        try:
            packed = fmt.pack(value)
        except (struct.error, OverflowError) as e:
            raise ValueError(f"Value {value!r} does not fit format '{fmt.format}': {e}") from e
        return self.write(packed)

    def write_u8(self, value: int) -> int:
        return self.write_struct(U8, value)

    def write_u16(self, value: int) -> int:
        return self.write_struct(U16, value)

    def write_i16(self, value: int) -> int:
        return self.write_struct(I16, value)

    def write_u32(self, value: int) -> int:
        return self.write_struct(U32, value)

    def write_i32(self, value: int) -> int:
        return self.write_struct(I32, value)

    def write_u64(self, value: int) -> int:
        return self.write_struct(U64, value)

    def write_i64(self, value: int) -> int:
        return self.write_struct(I64, value)

    def write_f32(self, value: float) -> int:
        return self.write_struct(F32, value)

    def write_f64(self, value: float) -> int:
        return self.write_struct(F64, value)

    def write_u128(self, value: int) -> int:
        try:
            packed = int(value).to_bytes(16, 'little')
        except OverflowError as e:
            raise ValueError(f"Value {value!r} does not fit u128: {e}") from e
        return self.write(packed)
