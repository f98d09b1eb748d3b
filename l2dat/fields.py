"""
l2dat: Field Codecs
===================

Every on-disk value shape implements the ``Codec`` interface: ``read`` pulls one
value from a ``ByteReader`` and ``write`` appends one value to a ``ByteWriter``.

Collections are generic over two codecs: the element codec and a length codec
that decides how the element count is stored (``BYTE``, ``WORD``, ``DWORD`` or
the compact ``INDEX``). This is what lets a single ``Sequence`` describe every
array shape found in the game tables:

    Sequence(DWORD)                 # compact count, then u32 values
    Sequence(DWORD, length=BYTE)    # u8 count, then u32 values
    PairSequence(DWORD, BYTE, length=WORD)

License: MIT
"""

import logging
import struct
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Sequence as SequenceType, Tuple

import numpy as np

from . import binary_io
from .binary_io import ByteReader, ByteWriter, BytesLike
from .compact import read_compact, write_compact
from .text import read_ascf, read_wire_string, write_ascf, write_wire_string

logger = logging.getLogger(__name__)


class Codec(ABC):
    """Reads and writes one value of a fixed wire shape."""

    name: str = 'codec'

    @abstractmethod
    def read(self, reader: ByteReader) -> Any:
        ...

    @abstractmethod
    def write(self, writer: ByteWriter, value: Any) -> None:
        ...

    def read_many(self, reader: ByteReader, count: int) -> List[Any]:
        return [self.read(reader) for _ in range(count)]

    def write_many(self, writer: ByteWriter, values: Iterable[Any]) -> None:
        for value in values:
            self.write(writer, value)

    def decode(self, data: BytesLike) -> Any:
        """Decode a single value from the start of ``data``."""
        return self.read(ByteReader(data))

    def encode(self, value: Any) -> bytes:
        writer = ByteWriter()
        self.write(writer, value)
        return writer.getvalue()

    def __repr__(self) -> str:
        return self.name


# ============================================================================
# Scalars
# ============================================================================

class Primitive(Codec):
    """
    Fixed-width little-endian number.

    Runs of primitives are decoded with a single ``numpy.frombuffer`` call
    and encoded with a single repeated ``struct`` format.
    """

    def __init__(self, name: str, fmt: struct.Struct, dtype: str):
        self.name = name
        self.fmt = fmt
        self.size = fmt.size
        self.dtype = np.dtype(dtype)

    def read(self, reader: ByteReader):
        return reader.read_struct(self.fmt)

    def write(self, writer: ByteWriter, value) -> None:
        writer.write_struct(self.fmt, value)

    def read_many(self, reader: ByteReader, count: int) -> list:
        if count <= 0:
            return []
        raw = reader.read(count * self.size)
        return np.frombuffer(raw, dtype=self.dtype, count=count).tolist()

    def write_many(self, writer: ByteWriter, values: Iterable[Any]) -> None:
        values = list(values)
        if not values:
            return
        code = self.fmt.format[-1]
        try:
            writer.write(struct.pack(f'<{len(values)}{code}', *values))
        except (struct.error, OverflowError) as e:
            raise ValueError(f"{self.name} run contains a value out of range: {e}") from e


class U128(Codec):
    """16-byte little-endian unsigned integer (GUID)."""

    name = 'GUID'
    size = 16

    def read(self, reader: ByteReader) -> int:
        return reader.read_u128()

    def write(self, writer: ByteWriter, value: int) -> None:
        writer.write_u128(value)


class CompactIndex(Codec):
    name = 'INDEX'

    def read(self, reader: ByteReader) -> int:
        return read_compact(reader)

    def write(self, writer: ByteWriter, value: int) -> None:
        write_compact(writer, value)


class WireString(Codec):
    """``u32`` byte length + UTF-16LE."""

    name = 'STR'

    def read(self, reader: ByteReader) -> str:
        return read_wire_string(reader)

    def write(self, writer: ByteWriter, value: str) -> None:
        write_wire_string(writer, value)


class HybridString(Codec):
    """Compact length whose sign selects codepage or UTF-16LE."""

    name = 'ASCF'

    def read(self, reader: ByteReader) -> str:
        return read_ascf(reader)

    def write(self, writer: ByteWriter, value: str) -> None:
        write_ascf(writer, value)


BYTE = Primitive('BYTE', binary_io.U8, '<u1')
WORD = Primitive('WORD', binary_io.U16, '<u2')
USHORT = WORD
SHORT = Primitive('SHORT', binary_io.I16, '<i2')
DWORD = Primitive('DWORD', binary_io.U32, '<u4')
INT = Primitive('INT', binary_io.I32, '<i4')
QWORD = Primitive('QWORD', binary_io.U64, '<u8')
LONG = Primitive('LONG', binary_io.I64, '<i8')
FLOAT = Primitive('FLOAT', binary_io.F32, '<f4')
DOUBLE = Primitive('DOUBLE', binary_io.F64, '<f8')
GUID = U128()
INDEX = CompactIndex()
STR = WireString()
ASCF = HybridString()

LENGTH_CODECS = (BYTE, WORD, DWORD, INDEX)


# ============================================================================
# Collections
# ============================================================================

def _read_length(length: Codec, reader: ByteReader) -> int:
    start = reader.position
    count = length.read(reader)
    if count < 0:
        logger.debug(f"Negative {length.name} count {count} at offset {start}, reading empty")
        return 0
    return count


def _check_length_codec(length: Codec) -> Codec:
    if length not in LENGTH_CODECS:
        raise ValueError(f"Unsupported length codec: {length!r}")
    return length


class Sequence(Codec):
    """
    Homogeneous length-prefixed collection.

    Example:
        >>> codec = Sequence(DWORD, length=BYTE)
        >>> codec.encode([1, 2])
        b'\\x02\\x01\\x00\\x00\\x00\\x02\\x00\\x00\\x00'
    """

    def __init__(self, item: Codec, length: Codec = INDEX):
        self.item = item
        self.length = _check_length_codec(length)
        self.name = f'Sequence[{length.name}, {item.name}]'

    def read(self, reader: ByteReader) -> list:
        count = _read_length(self.length, reader)
        return self.item.read_many(reader, count)

    def write(self, writer: ByteWriter, value: SequenceType[Any]) -> None:
        items = list(value)
        self.length.write(writer, len(items))
        self.item.write_many(writer, items)


class PairSequence(Codec):
    """
    Paired collection stored as two runs: all first elements, then all
    second elements, sharing one count prefix.
    """

    def __init__(self, first: Codec, second: Codec, length: Codec = INDEX):
        self.first = first
        self.second = second
        self.length = _check_length_codec(length)
        self.name = f'PairSequence[{length.name}, {first.name}, {second.name}]'

    def read(self, reader: ByteReader) -> List[Tuple[Any, Any]]:
        count = _read_length(self.length, reader)
        firsts = self.first.read_many(reader, count)
        seconds = self.second.read_many(reader, count)
        return list(zip(firsts, seconds))

    def write(self, writer: ByteWriter, value: SequenceType[Tuple[Any, Any]]) -> None:
        pairs = [tuple(pair) for pair in value]
        for pair in pairs:
            if len(pair) != 2:
                raise ValueError(f"{self.name} expects 2-tuples, got {pair!r}")
        self.length.write(writer, len(pairs))
        self.first.write_many(writer, [p[0] for p in pairs])
        self.second.write_many(writer, [p[1] for p in pairs])


class Fixed(Codec):
    """Exactly ``count`` elements with no length prefix."""

    def __init__(self, item: Codec, count: int):
        self.item = item
        self.count = count
        self.name = f'Fixed[{count}, {item.name}]'

    def read(self, reader: ByteReader) -> list:
        return self.item.read_many(reader, self.count)

    def write(self, writer: ByteWriter, value: SequenceType[Any]) -> None:
        items = list(value)
        if len(items) != self.count:
            raise ValueError(f"{self.name} expects {self.count} items, got {len(items)}")
        self.item.write_many(writer, items)

