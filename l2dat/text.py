"""
l2dat: Text Codec
=================

Two on-disk string representations:

- STR: ``u32`` byte length followed by UTF-16LE code units.
- ASCF: compact-index length whose sign picks the encoding. A count ``n >= 0``
  is followed by ``n`` single-byte codepage characters; ``n < 0`` is followed by
  ``-2n`` bytes of UTF-16LE, the last unit being a NUL terminator.

The single-byte codepage is windows-1252 with its five undefined bytes
(0x81, 0x8D, 0x8F, 0x90, 0x9D) mapped to the matching C1 control code points,
so every byte value decodes and re-encodes to itself.

License: MIT
"""

import codecs

from .binary_io import ByteReader, ByteWriter
from .compact import read_compact, write_compact
from .errors import InvalidText


def _build_decoding_table() -> str:
    chars = []
    for b in range(256):
        try:
            chars.append(bytes([b]).decode('cp1252'))
        except UnicodeDecodeError:
            chars.append(chr(b))
    return ''.join(chars)


DECODING_TABLE = _build_decoding_table()
ENCODING_TABLE = codecs.charmap_build(DECODING_TABLE)

ASCF_EMPTY = '\0'
_BOM = '\ufeff'


def cp1252_decode(data: bytes) -> str:
    return codecs.charmap_decode(data, 'strict', DECODING_TABLE)[0]


def cp1252_encode(text: str) -> bytes:
    """
    Raises:
        InvalidText: If ``text`` holds a character outside the codepage
    """
    try:
        return codecs.charmap_encode(text, 'strict', ENCODING_TABLE)[0]
    except UnicodeEncodeError as e:
        raise InvalidText(f"Text not representable in codepage: {e}") from e


def _decode_utf16(data: bytes) -> str:
    try:
        return data.decode('utf-16-le')
    except UnicodeDecodeError as e:
        raise InvalidText(f"Malformed UTF-16 text: {e}") from e


def _encode_utf16(text: str) -> bytes:
    try:
        return text.encode('utf-16-le')
    except UnicodeEncodeError as e:
        raise InvalidText(f"Text not encodable as UTF-16: {e}") from e


# ============================================================================
# STR
# ============================================================================

def read_wire_string(reader: ByteReader) -> str:
    length = reader.read_u32()
    data = reader.read(length)
    if length % 2:
        raise InvalidText(f"UTF-16 string has odd byte length {length}")
    return _decode_utf16(data)


def write_wire_string(writer: ByteWriter, text: str) -> int:
    data = _encode_utf16(text)
    return writer.write_u32(len(data)) + writer.write(data)


# ============================================================================
# ASCF
# ============================================================================

def read_ascf(reader: ByteReader) -> str:
    """
    Read a hybrid string.

    Codepage strings come back byte-for-byte, including any NUL they carry.
    UTF-16 strings come back without their terminator unit.
    """
    count = read_compact(reader)

    if count >= 0:
        return cp1252_decode(reader.read(count))

    text = _decode_utf16(reader.read(-count * 2))
    if text.startswith(_BOM):
        text = text[1:]
    if text.endswith('\0'):
        text = text[:-1]
    return text


def write_ascf(writer: ByteWriter, text: str) -> int:
    """
    Write a hybrid string: ASCII text takes the codepage branch, anything
    else is stored as UTF-16LE with a terminator unit.

    Raises:
        TypeError: If ``text`` is not a ``str``
    """
    if not isinstance(text, str):
        raise TypeError(f"ASCF value must be str, got {type(text).__name__}")

    if text.isascii():
        data = cp1252_encode(text)
        return write_compact(writer, len(data)) + writer.write(data)

    if text.endswith('\0'):
        text = text[:-1]
    data = _encode_utf16(text)
    units = len(data) // 2
    written = write_compact(writer, -units - 1)
    written += writer.write(data)
    written += writer.write(b'\x00\x00')
    return written


def to_ascf(text: str) -> str:
    """Convert editor text to the stored ASCF convention."""
    return text.replace('\n', '\\n') + '\0'


def from_ascf(value: str) -> str:
    """Convert a stored ASCF value back to editor text."""
    return value.replace('\0', '').replace('\\n', '\n')
