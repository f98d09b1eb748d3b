"""
l2dat: Compact Index Codec
==========================

Signed variable-length integer used for lengths, counts and object references.

Byte layout:
    byte 0:     bit 7 = sign, bit 6 = continuation, bits 0-5 = value bits 0-5
    bytes 1-3:  bit 7 = continuation, bits 0-6 = next 7 value bits
    byte 4:     bits 0-4 = value bits 27-31, no continuation bit

Example:
    >>> encode_compact(0)
    b'\\x00'
    >>> encode_compact(-1)
    b'\\x81'
    >>> decode_compact(b'\\x40\\x01')
    (64, 2)

License: MIT
"""

from typing import Tuple

from .binary_io import ByteReader, ByteWriter, BytesLike
from .errors import TruncatedInput

MAX_COMPACT = 2 ** 31 - 1
MAX_COMPACT_SIZE = 5


def encode_compact(value: int) -> bytes:
    """
    Encode a signed integer as a compact index (1-5 bytes).

    Raises:
        ValueError: If ``abs(value)`` exceeds ``MAX_COMPACT``
    """
    value = int(value)
    if abs(value) > MAX_COMPACT:
        raise ValueError(f"Compact index out of range: {value}")

    v = abs(value)
    groups = [
        v & 0x3F,
        (v >> 6) & 0x7F,
        (v >> 13) & 0x7F,
        (v >> 20) & 0x7F,
        (v >> 27) & 0x1F,
    ]
    if value < 0:
        groups[0] |= 0x80

    size = MAX_COMPACT_SIZE
    while size > 1 and groups[size - 1] == 0:
        size -= 1

    for i in range(size - 1):
        groups[i] |= 0x40 if i == 0 else 0x80

    return bytes(groups[:size])


def read_compact(reader: ByteReader) -> int:
    """Read one compact index from ``reader``."""
    start = reader.position
    try:
        x = reader.read_u8()
        negative = bool(x & 0x80)
        output = x & 0x3F
        more = bool(x & 0x40)

        i = 1
        while more and i < MAX_COMPACT_SIZE:
            x = reader.read_u8()
            if i == 4:
                output |= (x & 0x1F) << 27
                break
            output |= (x & 0x7F) << (6 + (i - 1) * 7)
            more = bool(x & 0x80)
            i += 1
    except TruncatedInput as e:
        raise TruncatedInput(
            f"Truncated compact index at offset {start}",
            offset=start, wanted=e.wanted, available=e.available,
        ) from e

    # i32 wrap for a full 5th byte
    if output > MAX_COMPACT:
        output -= 2 ** 32
    return -output if negative else output


def decode_compact(data: BytesLike, offset: int = 0) -> Tuple[int, int]:
    """
    Decode a compact index from ``data`` starting at ``offset``.

    Returns:
        Tuple of (value, bytes_consumed)
    """
    reader = ByteReader(data, offset)
    value = read_compact(reader)
    return value, reader.position - offset


def write_compact(writer: ByteWriter, value: int) -> int:
    return writer.write(encode_compact(value))
