#!/usr/bin/env python3
"""
l2dat CLI Test Suite
====================

Tests for the info/unpack/pack commands.
"""

import pytest
import tempfile
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from l2dat.cli import main
from l2dat.envelope import LINEAGE_HEADER, decode_envelope
from l2dat.errors import DatIOError

PAYLOAD = b'\x01\x00\x00\x00' + b'\x07\x00\x00\x00' * 16 + b'\x0cSafePackage\x00'


class TestCli:
    """Test command line round trips"""

    def setup_method(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.raw = self.root / 'table.bin'
        self.raw.write_bytes(PAYLOAD)

    def teardown_method(self):
        self.tmpdir.cleanup()

    def test_pack_default_output(self, capsys):
        main(['pack', str(self.raw)])

        packed = self.root / 'table.dat'
        data = packed.read_bytes()
        assert data.startswith(LINEAGE_HEADER)
        assert decode_envelope(data) == PAYLOAD
        assert 'Packed' in capsys.readouterr().out

    def test_pack_unpack_roundtrip(self):
        packed = self.root / 'out.dat'
        unpacked = self.root / 'back.bin'

        main(['pack', str(self.raw), '-o', str(packed), '--version-tag', '121'])
        main(['unpack', str(packed), '-o', str(unpacked)])

        assert unpacked.read_bytes() == PAYLOAD

    def test_pack_raw(self):
        out = self.root / 'raw.dat'
        main(['pack', str(self.raw), '-o', str(out), '--version-tag', 'raw'])
        assert out.read_bytes() == PAYLOAD

    def test_info(self, capsys):
        packed = self.root / 'info.dat'
        main(['pack', str(self.raw), '-o', str(packed)])
        capsys.readouterr()

        main(['info', str(packed)])
        out = capsys.readouterr().out
        assert 'version: 413' in out
        assert 'cipher: rsa' in out

    def test_read_only_version_fails(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(['pack', str(self.raw), '-o', str(self.root / 'x.dat'), '--version-tag', '414'])
        assert exc.value.code == 1
        assert 'can be read but not written' in capsys.readouterr().err

    def test_missing_input(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(['unpack', str(self.root / 'missing.dat')])
        assert exc.value.code == 1
        assert 'not found' in capsys.readouterr().err

    def test_pack_refuses_to_overwrite_input(self, capsys):
        """Packing table.dat with the default output name would clobber it"""
        source = self.root / 'table.dat'
        source.write_bytes(PAYLOAD)

        with pytest.raises(SystemExit) as exc:
            main(['pack', str(source)])
        assert exc.value.code == 1
        assert 'overwrite input' in capsys.readouterr().err
        assert source.read_bytes() == PAYLOAD

    def test_unpack_refuses_to_overwrite_input(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(['unpack', str(self.raw)])
        assert exc.value.code == 1
        assert 'overwrite input' in capsys.readouterr().err
        assert self.raw.read_bytes() == PAYLOAD

    def test_debug_reraises(self):
        with pytest.raises(DatIOError):
            main(['--debug', 'info', str(self.root / 'missing.dat')])

    def test_no_command(self):
        with pytest.raises(SystemExit):
            main([])
