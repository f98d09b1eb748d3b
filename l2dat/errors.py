"""
l2dat: Error Kinds
==================

Every decode path reports malformed input through one of these classes so a
single corrupt file never takes down a batch job. All format errors are
``ValueError`` subclasses, which keeps ``except ValueError`` callers working.

License: MIT
"""


class DatError(Exception):
    """Base class for all DAT codec failures"""


class DatIOError(DatError, OSError):
    """File open/read/write failure"""


class TruncatedInput(DatError, ValueError):
    """Fewer bytes available than a field or block requires"""

    def __init__(self, message: str, offset: int = 0, wanted: int = 0, available: int = 0):
        super().__init__(message)
        self.offset = offset
        self.wanted = wanted
        self.available = available


class UnknownVersion(DatError, ValueError):
    """Version tag is not present in the key table"""

    def __init__(self, tag: bytes):
        self.tag = bytes(tag)
        try:
            text = self.tag.decode('utf-16-le')
        except UnicodeDecodeError:
            text = self.tag.hex()
        super().__init__(f"Unknown enc version: {text!r}")


class CipherFailure(DatError, ValueError):
    """RSA block decrypt/encrypt inconsistency"""


class DecompressionFailure(DatError, ValueError):
    """zlib stream could not be inflated"""


class InvalidText(DatError, ValueError):
    """Malformed UTF-16 data or text that cannot be encoded"""
