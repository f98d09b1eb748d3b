#!/usr/bin/env python3
"""
l2dat Command Line Interface
============================

Usage:
    l2dat info <file>
    l2dat unpack <file> [-o <output>] [--no-verify-size]
    l2dat pack <input> [-o <output>] [--version-tag 413] [--level 6] [--xor-key 172]

License: MIT
"""

import argparse
import sys
from pathlib import Path

from . import __version__
from .envelope import DEFAULT_COMPRESSION_LEVEL, DEFAULT_XOR_KEY, EncVersion, decode_envelope, encode_envelope
from .errors import DatIOError
from .table import DatFile


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='l2dat',
        description='l2dat: Lineage II DAT container codec'
    )
    parser.add_argument('--version', action='version',
                        version=f'l2dat {__version__}')
    parser.add_argument('--debug', action='store_true',
                        help='Show full stack trace on error')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Info command
    info_parser = subparsers.add_parser('info', help='Show DAT file information')
    info_parser.add_argument('file', help='DAT file to inspect')

    # Unpack command
    unpack_parser = subparsers.add_parser('unpack', help='Strip envelope, write raw payload')
    unpack_parser.add_argument('input', help='Input DAT file')
    unpack_parser.add_argument('-o', '--output', help='Output payload file')
    unpack_parser.add_argument('--no-verify-size', action='store_true',
                               help='Do not check the stored payload size')

    # Pack command
    pack_parser = subparsers.add_parser('pack', help='Wrap a raw payload into a DAT envelope')
    pack_parser.add_argument('input', help='Input payload file')
    pack_parser.add_argument('-o', '--output', help='Output DAT file')
    pack_parser.add_argument('--version-tag', default=EncVersion.V413.value,
                             choices=[v.value for v in EncVersion] + ['raw'],
                             help='Target version tag (default: 413)')
    pack_parser.add_argument('--level', type=int, default=DEFAULT_COMPRESSION_LEVEL,
                             help='zlib compression level (default: 6)')
    pack_parser.add_argument('--xor-key', type=int, default=DEFAULT_XOR_KEY,
                             help='Key byte for versions 111/121 (default: 172)')

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == 'info':
            cmd_info(args)
        elif args.command == 'unpack':
            cmd_unpack(args)
        elif args.command == 'pack':
            cmd_pack(args)
    except Exception as e:
        if args.debug:
            raise
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _read_input(path: Path) -> bytes:
    if not path.exists():
        raise DatIOError(f"Input file not found: {path}")
    with open(path, 'rb') as f:
        return f.read()


def _check_output(input_path: Path, output_path: Path) -> None:
    if output_path.resolve() == input_path.resolve():
        raise DatIOError(f"Output would overwrite input: {output_path} (use -o)")


def cmd_info(args):
    """Show DAT file information"""
    info = DatFile.info(args.file)

    print(f"DAT File: {args.file}")
    print("-" * 50)
    for key, value in info.items():
        print(f"  {key}: {value}")


def cmd_unpack(args):
    """Decode envelope to raw payload"""
    input_path = Path(args.input)
    output_path = Path(args.output) if args.output else input_path.with_suffix('.bin')
    _check_output(input_path, output_path)

    data = _read_input(input_path)
    payload = decode_envelope(data, verify_size=not args.no_verify_size)

    with open(output_path, 'wb') as f:
        f.write(payload)

    print(f"Unpacked: {input_path}")
    print(f"  File:    {len(data):,} bytes")
    print(f"  Payload: {len(payload):,} bytes")
    print(f"  Output:  {output_path}")


def cmd_pack(args):
    """Encode raw payload into envelope"""
    input_path = Path(args.input)
    output_path = Path(args.output) if args.output else input_path.with_suffix('.dat')
    _check_output(input_path, output_path)

    payload = _read_input(input_path)
    version = None if args.version_tag == 'raw' else EncVersion(args.version_tag)
    data = encode_envelope(payload, version=version, level=args.level, xor_key=args.xor_key)

    with open(output_path, 'wb') as f:
        f.write(data)

    print(f"Packed: {input_path}")
    print(f"  Payload: {len(payload):,} bytes")
    print(f"  File:    {len(data):,} bytes")
    print(f"  Version: {args.version_tag}")
    print(f"  Output:  {output_path}")


if __name__ == '__main__':
    main()
