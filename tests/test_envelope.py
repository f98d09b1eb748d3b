#!/usr/bin/env python3
"""
l2dat Envelope Test Suite
=========================

Tests for framing, the XOR and RSA ciphers and the tolerant zlib layer.
"""

import pytest
import zlib
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from l2dat.envelope import (
    END_BYTES,
    KEY_TABLE,
    LINEAGE_HEADER,
    PREFIX_SIZE,
    RSA_BLOCK_SIZE,
    SIZE_PREFIX,
    TRAILER_SIZE,
    EncVersion,
    EnvelopeHeader,
    decode_envelope,
    encode_envelope,
    inflate_tolerant,
    is_framed,
    pack_payload,
    rsa_decrypt_blocks,
    rsa_encrypt_blocks,
    unpack_payload,
    xor_decode,
    xor_encode,
)
from l2dat.errors import (
    CipherFailure,
    DatError,
    DecompressionFailure,
    TruncatedInput,
    UnknownVersion,
)

PAYLOAD = b'\x02\x00\x00\x00' + bytes(range(256)) * 8 + b'\x0cSafePackage\x00'


class TestHeader:
    """Test magic marker and version tags"""

    def test_magic_bytes(self):
        assert len(LINEAGE_HEADER) == 22
        assert LINEAGE_HEADER == b'L\x00i\x00n\x00e\x00a\x00g\x00e\x002\x00V\x00e\x00r\x00'

    def test_version_tags(self):
        assert EncVersion.V413.tag == b'4\x001\x003\x00'
        assert EncVersion.from_tag(b'1\x002\x001\x00') is EncVersion.V121

    def test_unknown_tag_raises(self):
        with pytest.raises(UnknownVersion, match="Unknown enc version: '999'"):
            EncVersion.from_tag('999'.encode('utf-16-le'))

    def test_header_roundtrip(self):
        data = EnvelopeHeader(EncVersion.V412).to_bytes()
        assert len(data) == EnvelopeHeader.size() == PREFIX_SIZE
        assert EnvelopeHeader.from_bytes(data).version is EncVersion.V412

    def test_header_missing_magic(self):
        with pytest.raises(ValueError, match="magic"):
            EnvelopeHeader.from_bytes(b'\x00' * 40)

    def test_only_xor_versions_have_no_key(self):
        assert EncVersion.V111.key is None
        assert EncVersion.V121.key is None
        assert set(KEY_TABLE) == {EncVersion.V411, EncVersion.V412,
                                  EncVersion.V413, EncVersion.V414}

    def test_only_413_can_encrypt(self):
        assert EncVersion.V413.key.can_encrypt
        for version in (EncVersion.V411, EncVersion.V412, EncVersion.V414):
            assert not version.key.can_encrypt


class TestInflateTolerant:
    """Test zlib decoding that ignores the checksum"""

    def setup_method(self):
        self.data = bytes(range(256)) * 40
        self.stream = zlib.compress(self.data, 6)

    def test_valid_stream(self):
        assert inflate_tolerant(self.stream) == self.data

    def test_corrupted_checksum_still_inflates(self):
        corrupted = bytearray(self.stream)
        corrupted[-1] ^= 0xFF
        with pytest.raises(zlib.error):
            zlib.decompress(bytes(corrupted))
        assert inflate_tolerant(corrupted) == self.data

    def test_missing_checksum(self):
        assert inflate_tolerant(self.stream[:-4]) == self.data

    def test_bad_header_raises(self):
        with pytest.raises(DecompressionFailure, match="header"):
            inflate_tolerant(b'\x00\x00' + self.stream[2:])

    def test_incomplete_stream_raises(self):
        with pytest.raises(DecompressionFailure):
            inflate_tolerant(self.stream[:len(self.stream) // 2])

    def test_garbage_raises(self):
        with pytest.raises(DecompressionFailure):
            inflate_tolerant(b'\x78\x9c' + b'\xff' * 32)


class TestPackedPayload:
    """Test size prefix + zlib framing"""

    def test_roundtrip(self):
        packed = pack_payload(PAYLOAD)
        assert SIZE_PREFIX.unpack(packed[:4])[0] == len(PAYLOAD)
        assert unpack_payload(packed) == PAYLOAD

    def test_size_mismatch_raises(self):
        packed = SIZE_PREFIX.pack(999) + zlib.compress(PAYLOAD)
        with pytest.raises(DecompressionFailure, match="Stored size 999"):
            unpack_payload(packed)

    def test_size_mismatch_ignored(self):
        packed = SIZE_PREFIX.pack(999) + zlib.compress(PAYLOAD)
        assert unpack_payload(packed, verify_size=False) == PAYLOAD

    def test_too_short_raises(self):
        with pytest.raises(TruncatedInput):
            unpack_payload(b'\x01\x02\x03')


class TestCiphers:
    """Test the XOR and RSA layers in isolation"""

    def test_xor_carrier_byte(self):
        body = xor_encode(b'\x00\x01', key=0xAC)
        assert body == bytes([0xAC ^ 0xC1, 0xAC, 0xAD])
        assert xor_decode(body) == b'\x00\x01'

    def test_xor_key_range(self):
        with pytest.raises(ValueError):
            xor_encode(b'abc', key=256)

    def test_rsa_block_roundtrip(self):
        key = EncVersion.V413.key
        block = bytes(3) + bytes([5]) + bytes(119) + b'hello'
        assert key.decrypt_block(key.encrypt_block(block)) == block

    def test_rsa_chunking(self):
        key = EncVersion.V413.key
        packed = bytes(range(250))
        body = rsa_encrypt_blocks(packed, key)

        assert len(body) == 3 * RSA_BLOCK_SIZE
        assert rsa_decrypt_blocks(body, key) == packed

    def test_rsa_unaligned_chunk_sizes(self):
        key = EncVersion.V413.key
        for size in (1, 2, 3, 5, 123, 124):
            packed = bytes([0x5A]) * size
            assert rsa_decrypt_blocks(rsa_encrypt_blocks(packed, key), key) == packed

    def test_rsa_partial_block_raises(self):
        with pytest.raises(TruncatedInput):
            rsa_decrypt_blocks(bytes(100), EncVersion.V413.key)

    def test_rsa_oversized_chunk_raises(self):
        key = EncVersion.V413.key
        block = bytearray(RSA_BLOCK_SIZE)
        block[3] = 200
        body = key.encrypt_block(bytes(block))
        with pytest.raises(CipherFailure, match="claims 200 bytes"):
            rsa_decrypt_blocks(body, key)

    def test_rsa_block_above_modulus_raises(self):
        with pytest.raises(CipherFailure):
            rsa_decrypt_blocks(b'\xff' * RSA_BLOCK_SIZE, EncVersion.V413.key)

    def test_encrypt_without_private_exponent(self):
        with pytest.raises(CipherFailure):
            rsa_encrypt_blocks(b'abc', EncVersion.V411.key)


class TestEnvelope:
    """Test whole-file encode/decode"""

    @pytest.mark.parametrize('version', [EncVersion.V111, EncVersion.V121, EncVersion.V413])
    def test_roundtrip(self, version):
        data = encode_envelope(PAYLOAD, version=version)

        assert data[:22] == LINEAGE_HEADER
        assert data[22:28] == version.tag
        assert data[-TRAILER_SIZE:] == END_BYTES
        assert data[-1] == 100
        assert decode_envelope(data) == PAYLOAD

    def test_rsa_body_is_whole_blocks(self):
        data = encode_envelope(PAYLOAD, version=EncVersion.V413)
        assert (len(data) - PREFIX_SIZE - TRAILER_SIZE) % RSA_BLOCK_SIZE == 0

    def test_version_as_string(self):
        data = encode_envelope(PAYLOAD, version='121')
        assert EnvelopeHeader.from_bytes(data).version is EncVersion.V121

    def test_custom_xor_key(self):
        data = encode_envelope(PAYLOAD, version=EncVersion.V111, xor_key=0x5D)
        assert data[PREFIX_SIZE] == 0x5D ^ 0xC1
        assert decode_envelope(data) == PAYLOAD

    @pytest.mark.parametrize('version', [EncVersion.V411, EncVersion.V412, EncVersion.V414])
    def test_read_only_versions_refuse_to_encode(self, version):
        with pytest.raises(CipherFailure, match="can be read but not written"):
            encode_envelope(PAYLOAD, version=version)

    def test_unknown_version_string(self):
        with pytest.raises(UnknownVersion):
            encode_envelope(PAYLOAD, version='999')

    def test_raw_passthrough(self):
        assert encode_envelope(PAYLOAD, version=None) == PAYLOAD
        assert not is_framed(PAYLOAD)
        assert decode_envelope(PAYLOAD) == PAYLOAD

    def test_unknown_version_in_file(self):
        data = LINEAGE_HEADER + '999'.encode('utf-16-le') + bytes(RSA_BLOCK_SIZE) + END_BYTES
        with pytest.raises(UnknownVersion):
            decode_envelope(data)

    def test_truncated_header(self):
        with pytest.raises(TruncatedInput):
            decode_envelope(LINEAGE_HEADER + b'4\x00')

    def test_truncated_body(self):
        data = encode_envelope(PAYLOAD, version=EncVersion.V413)
        with pytest.raises(TruncatedInput):
            decode_envelope(data[:PREFIX_SIZE + 200] + END_BYTES)

    def test_corrupt_compressed_data(self):
        packed = SIZE_PREFIX.pack(10) + b'\x78\x9c' + b'\xff' * 40
        body = rsa_encrypt_blocks(packed, EncVersion.V413.key)
        data = EnvelopeHeader(EncVersion.V413).to_bytes() + body + END_BYTES
        with pytest.raises(DecompressionFailure):
            decode_envelope(data)

    def test_errors_share_base_class(self):
        with pytest.raises(DatError):
            decode_envelope(LINEAGE_HEADER + '000'.encode('utf-16-le') + END_BYTES)

    def test_compression_level_changes_output(self):
        fast = encode_envelope(PAYLOAD * 4, version=EncVersion.V111, level=1)
        best = encode_envelope(PAYLOAD * 4, version=EncVersion.V111, level=9)
        assert decode_envelope(fast) == decode_envelope(best) == PAYLOAD * 4
