"""
l2dat: Record Codec
===================

Composes field codecs into whole-record readers and writers. Fields are read
and written strictly in declaration order; the codec of each field is chosen
explicitly, so two fields with the same Python type can have different wire
shapes (``DWORD`` vs ``INDEX``, ``STR`` vs ``ASCF``, ``BYTE``- vs
``INDEX``-prefixed arrays).

Example:
    >>> @record
    ... class ItemStat:
    ...     id: int = wire(DWORD)
    ...     name: str = wire(ASCF)
    ...     icons: list = wire(Sequence(ASCF, length=BYTE))
    >>> stat = ItemStat.from_bytes(data)
    >>> stat.to_bytes() == data
    True

Ad-hoc shapes without a class decode to plain dicts:
    >>> codec = RecordCodec([('id', DWORD), ('price', LONG)])
    >>> codec.decode(codec.encode({'id': 1, 'price': 100}))
    {'id': 1, 'price': 100}

License: MIT
"""

import dataclasses
from collections.abc import Mapping
from typing import Any, Callable, List, Optional, Sequence as SequenceType, Tuple

from .binary_io import ByteReader, ByteWriter, BytesLike
from .fields import BYTE, DWORD, Codec, Sequence

CODEC_KEY = 'l2dat.codec'


def codec_for(shape: Any) -> Codec:
    """Resolve a codec instance or a record class to its ``Codec``."""
    if isinstance(shape, Codec):
        return shape
    codec = getattr(shape, 'codec', None)
    if isinstance(codec, Codec):
        return codec
    raise TypeError(f"{shape!r} is neither a Codec nor a record class")


def wire(shape: Any, **kwargs) -> Any:
    """Declare a dataclass field stored with ``shape``."""
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[CODEC_KEY] = codec_for(shape)
    return dataclasses.field(metadata=metadata, **kwargs)


class RecordCodec(Codec):
    """Ordered field list -> record value."""

    def __init__(self, fields: SequenceType[Tuple[str, Any]],
                 factory: Optional[Callable[..., Any]] = None,
                 name: Optional[str] = None):
        self.fields: List[Tuple[str, Codec]] = [(n, codec_for(c)) for n, c in fields]
        self.factory = factory
        self.name = name or 'Record[' + ', '.join(n for n, _ in self.fields) + ']'

    def read(self, reader: ByteReader) -> Any:
        values = {}
        for name, codec in self.fields:
            values[name] = codec.read(reader)
        if self.factory is None:
            return values
        return self.factory(**values)

    def write(self, writer: ByteWriter, value: Any) -> None:
        is_mapping = isinstance(value, Mapping)
        for name, codec in self.fields:
            try:
                field_value = value[name] if is_mapping else getattr(value, name)
            except (KeyError, AttributeError):
                raise ValueError(f"{self.name}: value has no field '{name}'") from None
            codec.write(writer, field_value)


def _attach(cls, codec: Codec):
    def to_bytes(self) -> bytes:
        return codec.encode(self)

    def from_bytes(klass, data: BytesLike):
        return codec.decode(data)

    cls.codec = codec
    cls.to_bytes = to_bytes
    cls.from_bytes = classmethod(from_bytes)
    return cls


def record(cls=None, *, name: Optional[str] = None):
    """
    Class decorator turning a dataclass with ``wire()`` fields into a record.

    Adds ``cls.codec``, ``obj.to_bytes()`` and ``cls.from_bytes(data)``.
    """
    def wrap(klass):
        if not dataclasses.is_dataclass(klass):
            klass = dataclasses.dataclass(klass)

        shape = []
        for f in dataclasses.fields(klass):
            if CODEC_KEY not in f.metadata:
                raise TypeError(f"{klass.__name__}.{f.name} has no wire codec")
            shape.append((f.name, f.metadata[CODEC_KEY]))

        return _attach(klass, RecordCodec(shape, factory=klass, name=name or klass.__name__))

    if cls is None:
        return wrap
    return wrap(cls)


# ============================================================================
# Shared shapes
# ============================================================================

@record
class MTX:
    """Pair of ``BYTE``-prefixed ``DWORD`` arrays (mesh/texture references)."""
    vec_1: List[int] = wire(Sequence(DWORD, length=BYTE), default_factory=list)
    vec_2: List[int] = wire(Sequence(DWORD, length=BYTE), default_factory=list)


@dataclasses.dataclass
class MTX3:
    """
    Extended mesh reference block.

    Binary layout:
        - count: 1 byte
        - vec_1: count x DWORD
        - vec_1_f: count x (BYTE, BYTE), interleaved
        - count_2: 1 byte
        - vec_2: count_2 x DWORD
        - val: DWORD
    """
    vec_1: List[int] = dataclasses.field(default_factory=list)
    vec_1_f: List[Tuple[int, int]] = dataclasses.field(default_factory=list)
    vec_2: List[int] = dataclasses.field(default_factory=list)
    val: int = 0


class Mtx3Codec(Codec):
    name = 'MTX3'

    def read(self, reader: ByteReader) -> MTX3:
        count = reader.read_u8()
        vec_1 = DWORD.read_many(reader, count)
        vec_1_f = [(reader.read_u8(), reader.read_u8()) for _ in range(count)]
        vec_2 = DWORD.read_many(reader, reader.read_u8())
        val = reader.read_u32()
        return MTX3(vec_1=vec_1, vec_1_f=vec_1_f, vec_2=vec_2, val=val)

    def write(self, writer: ByteWriter, value: MTX3) -> None:
        if len(value.vec_1_f) != len(value.vec_1):
            raise ValueError(
                f"MTX3 vec_1 and vec_1_f must have equal length "
                f"({len(value.vec_1)} != {len(value.vec_1_f)})"
            )
        BYTE.write(writer, len(value.vec_1))
        DWORD.write_many(writer, value.vec_1)
        for first, second in value.vec_1_f:
            writer.write_u8(first)
            writer.write_u8(second)
        BYTE.write(writer, len(value.vec_2))
        DWORD.write_many(writer, value.vec_2)
        writer.write_u32(value.val)


_attach(MTX3, Mtx3Codec())
