"""
l2dat: Envelope Codec
=====================

File-level framing around a compressed table payload.

Framed layout (all integers little-endian):
    - magic: 22 bytes, UTF-16LE "Lineage2Ver"
    - version tag: 6 bytes, UTF-16LE "111" / "121" / "411" / "412" / "413" / "414"
    - cipher body: N bytes
    - trailer: 19 zero bytes + marker byte 100

Cipher body, by version:
    - 111, 121: one key-carrier byte, then the packed payload XOR-ed with a
      single key byte (key = carrier ^ low byte of PACKAGE_FILE_TAG)
    - 411-414: 128-byte textbook-RSA blocks (no padding), each carrying up to
      124 payload bytes right-aligned, with the chunk size stored at byte 3

Packed payload (the cleartext under either cipher):
    - original size: 4 bytes (uint32)
    - zlib stream (default level 6); its 4-byte Adler-32 tail is never checked

A file that does not start with the magic is a raw payload and passes through
untouched in both directions.

License: MIT
"""

import logging
import struct
import zlib
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Optional, Union

import numpy as np

from .binary_io import BytesLike
from .errors import CipherFailure, DecompressionFailure, TruncatedInput, UnknownVersion

logger = logging.getLogger(__name__)


# ============================================================================
# File Format Constants
# ============================================================================

PACKAGE_FILE_TAG = 0x9E2A83C1
LINEAGE_HEADER = 'Lineage2Ver'.encode('utf-16-le')
HEADER_SIZE = len(LINEAGE_HEADER)             # 22
VERSION_TAG_SIZE = 6
PREFIX_SIZE = HEADER_SIZE + VERSION_TAG_SIZE  # 28

TRAILER_MARKER = 100
END_BYTES = bytes(19) + bytes([TRAILER_MARKER])
TRAILER_SIZE = len(END_BYTES)                 # 20

RSA_BLOCK_SIZE = 128
RSA_CHUNK_SIZE = 124
SIZE_PREFIX = struct.Struct('<I')

DEFAULT_COMPRESSION_LEVEL = 6
DEFAULT_XOR_KEY = 0xAC


class EncVersion(Enum):
    """Supported envelope version tags"""
    V111 = '111'
    V121 = '121'
    V411 = '411'
    V412 = '412'
    V413 = '413'
    V414 = '414'

    @property
    def tag(self) -> bytes:
        """6-byte UTF-16LE tag as stored after the magic."""
        return self.value.encode('utf-16-le')

    @property
    def key(self) -> Optional['KeyPair']:
        """RSA key for this version, or None for the XOR versions."""
        return KEY_TABLE.get(self)

    @classmethod
    def from_tag(cls, tag: bytes) -> 'EncVersion':
        for version in cls:
            if version.tag == tag:
                return version
        raise UnknownVersion(tag)

    @classmethod
    def coerce(cls, version: Union['EncVersion', str, int]) -> 'EncVersion':
        if isinstance(version, cls):
            return version
        try:
            return cls(str(version))
        except ValueError:
            raise UnknownVersion(str(version).encode('utf-16-le')) from None


@dataclass(frozen=True)
class KeyPair:
    """
    Fixed RSA parameters for one version.

    ``exponent`` recovers cleartext from game files. ``private_exponent`` is
    the inverse, needed to produce files the client accepts; it is only known
    for some versions.
    """
    modulus: int
    exponent: int
    private_exponent: Optional[int] = None

    @property
    def can_encrypt(self) -> bool:
        return self.private_exponent is not None

    def decrypt_block(self, block: bytes) -> bytes:
        c = int.from_bytes(block, 'big')
        if c >= self.modulus:
            raise CipherFailure("RSA block is not below the modulus")
        return pow(c, self.exponent, self.modulus).to_bytes(RSA_BLOCK_SIZE, 'big')

    def encrypt_block(self, block: bytes) -> bytes:
        if self.private_exponent is None:
            raise CipherFailure("No encryption exponent known for this key")
        m = int.from_bytes(block, 'big')
        if m >= self.modulus:
            raise CipherFailure("RSA cleartext block is not below the modulus")
        return pow(m, self.private_exponent, self.modulus).to_bytes(RSA_BLOCK_SIZE, 'big')


KEY_TABLE = MappingProxyType({
    EncVersion.V411: KeyPair(
        modulus=int(
            '8c9d5da87b30f5d7cd9dc88c746eaac5bb180267fa11737358c4c95d9adf59dd'
            '37689f9befb251508759555d6fe0eca87bebe0a10712cf0ec245af84cd22eb4c'
            'b675e98eaf5799fca62a20a2baa4801d5d70718dcd43283b8428f1387aec6600'
            'f937bfc7bb72404d187d3a9c438f1ffce9ce365dccf754232ff6def038a41385', 16),
        exponent=0x1d,
    ),
    EncVersion.V412: KeyPair(
        modulus=int(
            'a465134799cf2c45087093e7d0f0f144e6d528110c08f674730d436e40827330'
            'eccea46e70acf10cdda7d8f710e3b44dcca931812d76cd7494289bca8b73823f'
            '57efc0515b97e4a2a02612ccfa719cf7885104b06f2e7e2cc967b62e3d3b1aad'
            'b925db94cbc8cd3070a4bb13f7e202c7733a67b1b94c1ebc0afcbe1a63b448cf', 16),
        exponent=0x25,
    ),
    EncVersion.V413: KeyPair(
        modulus=int(
            '75b4d6de5c016544068a1acf125869f43d2e09fc55b8b1e289556daf9b875763'
            '5593446288b3653da1ce91c87bb1a5c18f16323495c55d7d72c0890a83f69bfd'
            '1fd9434eb1c02f3e4679edfa43309319070129c267c85604d87bb65bae205de3'
            '707af1d2108881abb567c3b3d069ae67c3a4c6a3aa93d26413d4c66094ae2039', 16),
        exponent=0x1d,
        private_exponent=int(
            '30b4c2d798d47086145c75063c8e841e719776e400291d7838d3e6c4405b504c'
            '6a07f8fca27f32b86643d2649d1d5f124cdd0bf272f0909dd7352fe10a77b34d'
            '831043d9ae541f8263c6fe3d1c14c2f04e43a7253a6dda9a8c1562cbd493c1b6'
            '31a1957618ad5dfe5ca28553f746e2fc6f2db816c7db223ec91e955081c1de65', 16),
    ),
    EncVersion.V414: KeyPair(
        modulus=int(
            'ad70257b2316ce09dfaf2ebc3f63b3d673b0c98a403950e26bb87379b11e17ae'
            'd0e45af23e7171e5ec1fbc8d1ae32ffb7801b31266eef9c334b53469d4b7cbe8'
            '3284273d35a9aab49b453e7012f374496c65f8089f5d134b0eb3d1e3b22051ed'
            '5977a6dd68c4f85785dfcc9f4412c81681944fc4b8ce27caf0242deaa5762e8d', 16),
        exponent=0x25,
    ),
})


# ============================================================================
# Header
# ============================================================================

@dataclass
class EnvelopeHeader:
    """
    Magic marker + version tag (28 bytes).

    Binary layout:
        - magic: 22 bytes (LINEAGE_HEADER)
        - version tag: 6 bytes (EncVersion.tag)
    """
    version: EncVersion = EncVersion.V413

    def to_bytes(self) -> bytes:
        return LINEAGE_HEADER + self.version.tag

    @classmethod
    def from_bytes(cls, data: BytesLike) -> 'EnvelopeHeader':
        """
        Raises:
            ValueError: If the magic marker is missing
            TruncatedInput: If the version tag is cut short
            UnknownVersion: If the version tag is not supported
        """
        if not is_framed(data):
            raise ValueError("Missing Lineage2Ver magic marker")
        if len(data) < PREFIX_SIZE:
            raise TruncatedInput(
                f"File too small for envelope header: {len(data)} bytes",
                offset=HEADER_SIZE, wanted=VERSION_TAG_SIZE, available=len(data) - HEADER_SIZE,
            )
        return cls(version=EncVersion.from_tag(bytes(data[HEADER_SIZE:PREFIX_SIZE])))

    @classmethod
    def size(cls) -> int:
        return PREFIX_SIZE


def is_framed(data: BytesLike) -> bool:
    return bytes(data[:HEADER_SIZE]) == LINEAGE_HEADER


# ============================================================================
# Compression
# ============================================================================

def inflate_tolerant(stream: BytesLike) -> bytes:
    """
    Inflate a zlib stream without verifying its Adler-32 checksum.

    The checksum may be missing, truncated or wrong; only the zlib header and
    the deflate data itself must be valid.

    Raises:
        DecompressionFailure: On a bad header or corrupt/incomplete deflate data
    """
    stream = bytes(stream)
    if len(stream) < 2:
        raise DecompressionFailure(f"zlib stream too short: {len(stream)} bytes")

    cmf, flg = stream[0], stream[1]
    if cmf & 0x0F != 8 or (cmf << 8 | flg) % 31 != 0:
        raise DecompressionFailure(f"Invalid zlib header: {stream[:2].hex()}")
    if flg & 0x20:
        raise DecompressionFailure("zlib preset dictionaries are not supported")

    inflater = zlib.decompressobj(-zlib.MAX_WBITS)
    try:
        data = inflater.decompress(stream[2:]) + inflater.flush()
    except zlib.error as e:
        raise DecompressionFailure(f"Inflate failed: {e}") from e

    if not inflater.eof:
        raise DecompressionFailure("Deflate stream ended before its final block")
    return data


def pack_payload(data: BytesLike, level: int = DEFAULT_COMPRESSION_LEVEL) -> bytes:
    """Size prefix + zlib stream."""
    return SIZE_PREFIX.pack(len(data)) + zlib.compress(bytes(data), level)


def unpack_payload(packed: BytesLike, verify_size: bool = True) -> bytes:
    """
    Inverse of ``pack_payload``. The last 4 bytes (the zlib checksum) are
    dropped before inflating.

    Raises:
        TruncatedInput: If ``packed`` cannot hold the size prefix and checksum
        DecompressionFailure: If inflating fails or the stored size disagrees
    """
    if len(packed) < 2 * SIZE_PREFIX.size:
        raise TruncatedInput(
            f"Packed payload too short: {len(packed)} bytes",
            wanted=2 * SIZE_PREFIX.size, available=len(packed),
        )
    stored_size = SIZE_PREFIX.unpack(bytes(packed[:SIZE_PREFIX.size]))[0]
    data = inflate_tolerant(packed[SIZE_PREFIX.size:len(packed) - SIZE_PREFIX.size])

    if verify_size and stored_size != len(data):
        raise DecompressionFailure(
            f"Stored size {stored_size} does not match inflated size {len(data)}"
        )
    return data


# ============================================================================
# Ciphers
# ============================================================================

def rsa_decrypt_blocks(body: BytesLike, key: KeyPair) -> bytes:
    """Decrypt 128-byte blocks and join their right-aligned chunks."""
    body = bytes(body)
    if len(body) % RSA_BLOCK_SIZE:
        raise TruncatedInput(
            f"RSA body of {len(body)} bytes is not a whole number of {RSA_BLOCK_SIZE}-byte blocks",
            offset=PREFIX_SIZE + len(body) - len(body) % RSA_BLOCK_SIZE,
            wanted=RSA_BLOCK_SIZE, available=len(body) % RSA_BLOCK_SIZE,
        )

    chunks = []
    for offset in range(0, len(body), RSA_BLOCK_SIZE):
        clear = key.decrypt_block(body[offset:offset + RSA_BLOCK_SIZE])
        size = clear[3]
        if size > RSA_CHUNK_SIZE:
            raise CipherFailure(
                f"Block at body offset {offset} claims {size} bytes (max {RSA_CHUNK_SIZE})"
            )
        pad = (-size & 1) + (-size & 2)
        start = RSA_BLOCK_SIZE - size - pad
        chunks.append(clear[start:start + size])

    logger.debug(f"Decrypted {len(chunks)} RSA blocks")
    return b''.join(chunks)


def rsa_encrypt_blocks(packed: BytesLike, key: KeyPair) -> bytes:
    """Split into 124-byte chunks, right-align each in a block and encrypt."""
    if not key.can_encrypt:
        raise CipherFailure("No encryption exponent known for this version")

    packed = bytes(packed)
    out = bytearray()
    for offset in range(0, len(packed), RSA_CHUNK_SIZE):
        chunk = packed[offset:offset + RSA_CHUNK_SIZE]
        size = len(chunk)
        block = bytearray(RSA_BLOCK_SIZE)
        block[3] = size
        start = RSA_BLOCK_SIZE - size - (RSA_CHUNK_SIZE - size) % 4
        block[start:start + size] = chunk
        out += key.encrypt_block(bytes(block))

    logger.debug(f"Encrypted {len(out) // RSA_BLOCK_SIZE} RSA blocks")
    return bytes(out)


def _xor(data: bytes, key: int) -> bytes:
    return (np.frombuffer(data, dtype=np.uint8) ^ np.uint8(key)).tobytes()


def xor_decode(body: BytesLike) -> bytes:
    """Strip the key-carrier byte and de-obfuscate the rest."""
    body = bytes(body)
    if not body:
        raise TruncatedInput("XOR body is empty", offset=PREFIX_SIZE, wanted=1, available=0)
    key = body[0] ^ (PACKAGE_FILE_TAG & 0xFF)
    return _xor(body[1:], key)


def xor_encode(packed: BytesLike, key: int = DEFAULT_XOR_KEY) -> bytes:
    if not 0 <= key <= 0xFF:
        raise ValueError(f"XOR key must be a single byte, got {key}")
    return bytes([key ^ (PACKAGE_FILE_TAG & 0xFF)]) + _xor(bytes(packed), key)


# ============================================================================
# Envelope
# ============================================================================

def decode_envelope(data: BytesLike, verify_size: bool = True) -> bytes:
    """
    Recover the table payload from file bytes.

    Raw (unframed) input is returned as-is.

    Raises:
        TruncatedInput, UnknownVersion, CipherFailure, DecompressionFailure
    """
    if not is_framed(data):
        logger.debug("No magic marker, treating input as raw payload")
        return bytes(data)

    header = EnvelopeHeader.from_bytes(data)
    if len(data) < PREFIX_SIZE + TRAILER_SIZE:
        raise TruncatedInput(
            f"File too small for envelope trailer: {len(data)} bytes",
            offset=PREFIX_SIZE, wanted=TRAILER_SIZE, available=len(data) - PREFIX_SIZE,
        )
    if data[-1] != TRAILER_MARKER:
        logger.warning(f"Unexpected trailer marker byte {data[-1]} (expected {TRAILER_MARKER})")

    body = data[PREFIX_SIZE:len(data) - TRAILER_SIZE]
    key = header.version.key

    if key is not None:
        logger.debug(f"Envelope v{header.version.value}: RSA body of {len(body)} bytes")
        packed = rsa_decrypt_blocks(body, key)
    else:
        logger.debug(f"Envelope v{header.version.value}: XOR body of {len(body)} bytes")
        packed = xor_decode(body)

    return unpack_payload(packed, verify_size=verify_size)


def encode_envelope(payload: BytesLike,
                    version: Optional[Union[EncVersion, str]] = EncVersion.V413,
                    level: int = DEFAULT_COMPRESSION_LEVEL,
                    xor_key: int = DEFAULT_XOR_KEY) -> bytes:
    """
    Wrap a table payload into file bytes.

    Args:
        payload: Serialized records
        version: Target version, or None for a raw (unframed) file
        level: zlib compression level
        xor_key: Key byte for the 111/121 versions

    Raises:
        UnknownVersion: If ``version`` is not a supported tag
        CipherFailure: If ``version`` cannot be encrypted (411, 412, 414)
    """
    if version is None:
        return bytes(payload)

    version = EncVersion.coerce(version)
    key = version.key
    if key is not None and not key.can_encrypt:
        raise CipherFailure(f"Version {version.value} can be read but not written")

    packed = pack_payload(payload, level)
    if key is not None:
        body = rsa_encrypt_blocks(packed, key)
    else:
        body = xor_encode(packed, xor_key)

    return EnvelopeHeader(version).to_bytes() + body + END_BYTES
