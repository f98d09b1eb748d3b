"""
l2dat: Table I/O
================

Reads and writes whole tables on top of the envelope and record codecs.

Payload layouts:
    - single table: [count][record]*
    - dictionary + table: [INDEX dict_count][dict_entry]* [u32 count][record]*

Both are followed by the 13-byte SafePackage footer on write. The footer is
not checked on read.

Example:
    >>> dat = DatFile(ItemName.codec)
    >>> table = dat.load('itemname-ru.dat')
    >>> dat.save('itemname-ru.dat', table.records)

License: MIT
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .binary_io import ByteReader, ByteWriter, BytesLike
from .envelope import (
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_XOR_KEY,
    PREFIX_SIZE,
    RSA_BLOCK_SIZE,
    TRAILER_SIZE,
    EncVersion,
    EnvelopeHeader,
    decode_envelope,
    encode_envelope,
    is_framed,
)
from .errors import DatIOError
from .fields import DWORD, INDEX, Codec
from .records import codec_for

logger = logging.getLogger(__name__)

SAFE_PACKAGE_FOOTER = b'\x0cSafePackage\x00'
TRUNCATION_SLACK = 16
BASEINFO_SUFFIX = '_baseinfo.dat'

PathLike = Union[str, Path]


@dataclass
class DatOptions:
    """Per-call codec settings"""
    version: Optional[EncVersion] = EncVersion.V413
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    xor_key: int = DEFAULT_XOR_KEY
    verify_size: bool = True
    tolerate_truncation: bool = False
    count_codec: Codec = DWORD


@dataclass
class DatTable:
    """Decoded contents of one DAT file"""
    records: List[Any]
    dictionary: Optional[List[Any]] = None
    version: Optional[EncVersion] = None

    def __len__(self) -> int:
        return len(self.records)


def is_baseinfo(path: PathLike) -> bool:
    """True for the ``*_baseinfo.dat`` tables that are known to be cut short."""
    return str(path).lower().endswith(BASEINFO_SUFFIX)


# ============================================================================
# Payload level
# ============================================================================

def _read_records(reader: ByteReader, codec: Codec, count: int,
                  tolerate_truncation: bool) -> List[Any]:
    records = []
    for _ in range(count):
        if tolerate_truncation and reader.remaining < TRUNCATION_SLACK:
            logger.warning(
                f"Stopped after {len(records)} of {count} records: "
                f"only {reader.remaining} bytes left"
            )
            break
        records.append(codec.read(reader))
    return records


def read_table(payload: BytesLike, codec: Any, count_codec: Codec = DWORD,
               tolerate_truncation: bool = False) -> List[Any]:
    """
    Decode ``[count][record]*`` from a decoded payload.

    Args:
        payload: Payload bytes (after the envelope is stripped)
        codec: Record codec or record class
        count_codec: ``DWORD`` (default) or ``INDEX``
        tolerate_truncation: Stop early instead of failing once fewer than
            16 bytes remain

    Raises:
        TruncatedInput: If the payload ends before ``count`` records
    """
    codec = codec_for(codec)
    reader = ByteReader(payload)
    count = count_codec.read(reader)
    logger.info(f"\tElements count: {count}")

    records = _read_records(reader, codec, count, tolerate_truncation)
    logger.debug(f"{reader.remaining} bytes left after {len(records)} records")
    return records


def read_dict_table(payload: BytesLike, dict_codec: Any, codec: Any,
                    tolerate_truncation: bool = False) -> Tuple[List[Any], List[Any]]:
    """Decode ``[INDEX n][entry]* [u32 m][record]*``."""
    dict_codec = codec_for(dict_codec)
    codec = codec_for(codec)
    reader = ByteReader(payload)

    dict_count = INDEX.read(reader)
    logger.info(f"\tDict elements count: {dict_count}")
    dictionary = dict_codec.read_many(reader, max(dict_count, 0))

    count = reader.read_u32()
    logger.info(f"\tElements count: {count}")
    records = _read_records(reader, codec, count, tolerate_truncation)
    return dictionary, records


def write_table(records: Iterable[Any], codec: Any,
                dictionary: Optional[Iterable[Any]] = None,
                dict_codec: Optional[Any] = None,
                count_codec: Codec = DWORD) -> bytes:
    """
    Encode records (and an optional leading dictionary) into a payload,
    SafePackage footer included.
    """
    codec = codec_for(codec)
    records = list(records)
    writer = ByteWriter()

    if dictionary is not None:
        if dict_codec is None:
            raise ValueError("dict_codec is required when a dictionary is given")
        dict_codec = codec_for(dict_codec)
        entries = list(dictionary)
        INDEX.write(writer, len(entries))
        dict_codec.write_many(writer, entries)
        DWORD.write(writer, len(records))
    else:
        count_codec.write(writer, len(records))

    codec.write_many(writer, records)
    writer.write(SAFE_PACKAGE_FOOTER)
    return writer.getvalue()


# ============================================================================
# File level
# ============================================================================

def decode_dat(data: BytesLike, codec: Any, dict_codec: Optional[Any] = None,
               options: Optional[DatOptions] = None) -> DatTable:
    """File bytes -> typed records."""
    options = options or DatOptions()
    version = EnvelopeHeader.from_bytes(data).version if is_framed(data) else None
    payload = decode_envelope(data, verify_size=options.verify_size)

    if dict_codec is not None:
        dictionary, records = read_dict_table(
            payload, dict_codec, codec, tolerate_truncation=options.tolerate_truncation)
        return DatTable(records=records, dictionary=dictionary, version=version)

    records = read_table(payload, codec, count_codec=options.count_codec,
                         tolerate_truncation=options.tolerate_truncation)
    return DatTable(records=records, version=version)


def encode_dat(records: Iterable[Any], codec: Any,
               dictionary: Optional[Iterable[Any]] = None,
               dict_codec: Optional[Any] = None,
               options: Optional[DatOptions] = None) -> bytes:
    """Typed records -> file bytes."""
    options = options or DatOptions()
    payload = write_table(records, codec, dictionary=dictionary, dict_codec=dict_codec,
                          count_codec=options.count_codec)
    return encode_envelope(payload, version=options.version,
                           level=options.compression_level, xor_key=options.xor_key)


def _read_file(path: Path) -> bytes:
    if not path.exists():
        raise DatIOError(f"File not found: {path}")
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise DatIOError(f"Cannot read {path}: {e}") from e


def _write_file(path: Path, data: bytes) -> None:
    try:
        with open(path, 'wb') as f:
            f.write(data)
    except OSError as e:
        raise DatIOError(f"Cannot write {path}: {e}") from e


class DatFile:
    """
    DAT reader/writer bound to one record shape.

    Example:
        >>> dat = DatFile(ItemStat.codec, options=DatOptions(version=EncVersion.V413))
        >>> dat.save('itemstatdata.dat', records)
        >>> dat.load('itemstatdata.dat').records == records
        True
    """

    def __init__(self, codec: Any, dict_codec: Optional[Any] = None,
                 options: Optional[DatOptions] = None):
        self.codec = codec_for(codec)
        self.dict_codec = codec_for(dict_codec) if dict_codec is not None else None
        self.options = options or DatOptions()

    def loads(self, data: BytesLike) -> DatTable:
        return decode_dat(data, self.codec, dict_codec=self.dict_codec, options=self.options)

    def dumps(self, records: Iterable[Any], dictionary: Optional[Iterable[Any]] = None) -> bytes:
        return encode_dat(records, self.codec, dictionary=dictionary,
                          dict_codec=self.dict_codec, options=self.options)

    def load(self, path: PathLike) -> DatTable:
        path = Path(path)
        logger.info(f"Loading {path}")
        table = self.loads(_read_file(path))
        logger.info(f"\tLoaded: {len(table.records)}")
        return table

    def save(self, path: PathLike, records: Iterable[Any],
             dictionary: Optional[Iterable[Any]] = None) -> Path:
        path = Path(path)
        _write_file(path, self.dumps(records, dictionary))
        logger.info(f"Saved {path}")
        return path

    @staticmethod
    def info(path: PathLike) -> Dict[str, Any]:
        """
        Describe a DAT file without decoding its records.

        Returns:
            Dictionary with framing, version, cipher and size details
        """
        path = Path(path)
        data = _read_file(path)

        if not is_framed(data):
            return {
                'framed': False,
                'version': None,
                'cipher': 'none',
                'file_size': len(data),
                'payload_size': len(data),
            }

        header = EnvelopeHeader.from_bytes(data)
        key = header.version.key
        body_size = max(len(data) - PREFIX_SIZE - TRAILER_SIZE, 0)
        payload = decode_envelope(data)

        return {
            'framed': True,
            'version': header.version.value,
            'cipher': 'rsa' if key is not None else 'xor',
            'writable': key is None or key.can_encrypt,
            'file_size': len(data),
            'body_size': body_size,
            'blocks': body_size // RSA_BLOCK_SIZE if key is not None else 0,
            'payload_size': len(payload),
            'trailer_marker': data[-1],
        }


# ============================================================================
# Multi-table save
# ============================================================================

@dataclass
class SaveJob:
    """One output table for ``save_tables``"""
    path: Path
    codec: Any
    records: List[Any]
    dictionary: Optional[List[Any]] = None
    dict_codec: Optional[Any] = None
    options: DatOptions = field(default_factory=DatOptions)


def _run_job(job: SaveJob) -> Path:
    return DatFile(job.codec, dict_codec=job.dict_codec, options=job.options).save(
        job.path, job.records, job.dictionary)


def save_tables(jobs: Iterable[SaveJob],
                max_workers: Optional[int] = None) -> Dict[Path, Optional[Exception]]:
    """
    Write several tables concurrently, one task per table.

    Every job gets its own copy of its record list before the workers start,
    so callers may keep mutating their lists once this returns. A failing
    table never stops the others.

    Returns:
        Mapping of path to the exception it raised, or None on success
    """
    owned = [
        SaveJob(
            path=Path(job.path),
            codec=job.codec,
            records=list(job.records),
            dictionary=list(job.dictionary) if job.dictionary is not None else None,
            dict_codec=job.dict_codec,
            options=job.options,
        )
        for job in jobs
    ]
    report: Dict[Path, Optional[Exception]] = {}
    if not owned:
        return report

    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        futs = [(job.path, ex.submit(_run_job, job)) for job in owned]
        for path, fut in futs:
            try:
                fut.result()
                report[path] = None
            except Exception as e:
                logger.warning(f"Failed to save {path}: {e}")
                report[path] = e

    saved = sum(1 for e in report.values() if e is None)
    logger.info(f"Saved {saved} of {len(report)} tables")
    return report
