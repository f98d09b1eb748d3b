"""
l2dat: Lineage II DAT Container Codec
=====================================

Reads and writes the game's ``.dat`` tables.

The package has two layers:
- Field and record codecs: compact indices, fixed-width numbers, STR/ASCF
  strings and length-prefixed collections, composed into typed records.
- Envelope codec: magic/version framing, XOR or raw-RSA obfuscation and a
  checksum-tolerant zlib layer.

Example:
    >>> from l2dat import record, wire, DWORD, LONG, DatFile
    >>> @record
    ... class ItemPrice:
    ...     id: int = wire(DWORD)
    ...     price: int = wire(LONG)
    >>> dat = DatFile(ItemPrice)
    >>> data = dat.dumps([ItemPrice(1, 100), ItemPrice(2, 9999)])
    >>> dat.loads(data).records
    [ItemPrice(id=1, price=100), ItemPrice(id=2, price=9999)]

License: MIT
"""

from .errors import (
    DatError,
    DatIOError,
    TruncatedInput,
    UnknownVersion,
    CipherFailure,
    DecompressionFailure,
    InvalidText,
)

from .binary_io import ByteReader, ByteWriter
from .compact import encode_compact, decode_compact, read_compact, write_compact, MAX_COMPACT
from .text import (
    read_wire_string,
    write_wire_string,
    read_ascf,
    write_ascf,
    to_ascf,
    from_ascf,
    cp1252_decode,
    cp1252_encode,
    ASCF_EMPTY,
)

from .fields import (
    Codec,
    Primitive,
    Sequence,
    PairSequence,
    Fixed,
    BYTE,
    WORD,
    USHORT,
    SHORT,
    DWORD,
    INT,
    QWORD,
    LONG,
    FLOAT,
    DOUBLE,
    GUID,
    INDEX,
    STR,
    ASCF,
)
from .records import RecordCodec, record, wire, codec_for, MTX, MTX3

from .envelope import (
    EncVersion,
    KeyPair,
    KEY_TABLE,
    EnvelopeHeader,
    LINEAGE_HEADER,
    END_BYTES,
    PACKAGE_FILE_TAG,
    decode_envelope,
    encode_envelope,
    inflate_tolerant,
    is_framed,
)
from .table import (
    DatFile,
    DatOptions,
    DatTable,
    SaveJob,
    SAFE_PACKAGE_FOOTER,
    read_table,
    read_dict_table,
    write_table,
    decode_dat,
    encode_dat,
    save_tables,
    is_baseinfo,
)

__all__ = [
    # Errors
    'DatError',
    'DatIOError',
    'TruncatedInput',
    'UnknownVersion',
    'CipherFailure',
    'DecompressionFailure',
    'InvalidText',

    # Low-level codecs
    'ByteReader',
    'ByteWriter',
    'encode_compact',
    'decode_compact',
    'read_compact',
    'write_compact',
    'MAX_COMPACT',
    'read_wire_string',
    'write_wire_string',
    'read_ascf',
    'write_ascf',
    'to_ascf',
    'from_ascf',
    'cp1252_decode',
    'cp1252_encode',
    'ASCF_EMPTY',

    # Field and record codecs
    'Codec',
    'Primitive',
    'Sequence',
    'PairSequence',
    'Fixed',
    'BYTE',
    'WORD',
    'USHORT',
    'SHORT',
    'DWORD',
    'INT',
    'QWORD',
    'LONG',
    'FLOAT',
    'DOUBLE',
    'GUID',
    'INDEX',
    'STR',
    'ASCF',
    'RecordCodec',
    'record',
    'wire',
    'codec_for',
    'MTX',
    'MTX3',

    # Envelope
    'EncVersion',
    'KeyPair',
    'KEY_TABLE',
    'EnvelopeHeader',
    'LINEAGE_HEADER',
    'END_BYTES',
    'PACKAGE_FILE_TAG',
    'decode_envelope',
    'encode_envelope',
    'inflate_tolerant',
    'is_framed',

    # Tables
    'DatFile',
    'DatOptions',
    'DatTable',
    'SaveJob',
    'SAFE_PACKAGE_FOOTER',
    'read_table',
    'read_dict_table',
    'write_table',
    'decode_dat',
    'encode_dat',
    'save_tables',
    'is_baseinfo',
]

__version__ = '1.0.0'
__license__ = 'MIT'
