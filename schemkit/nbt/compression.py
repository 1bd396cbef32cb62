"""
Compression Envelope
====================

Detects and removes the gzip or zlib envelope around a tag tree, and wraps
encoded trees for writing.

Detection looks only at the first bytes:

- gzip: ``1F 8B``
- zlib: first byte with high nibble 7 and deflate method 8, and a header
  checksum ``(CMF << 8 | FLG) % 31 == 0``
- anything else is treated as raw tag-tree bytes

Raw tag trees start with a type byte (0x0A for a compound), so they never
collide with either signature.
"""

import gzip
import logging
import zlib
from enum import Enum

from schemkit.errors import CompressionSignatureMismatch

logger = logging.getLogger(__name__)

GZIP_MAGIC = b'\x1f\x8b'


class CompressionMode(Enum):
    """Envelope around an encoded tag tree."""
    NONE = 'none'
    GZIP = 'gzip'
    ZLIB = 'zlib'

    @classmethod
    def from_name(cls, name: str) -> 'CompressionMode':
        try:
            return cls(name.lower())
        except ValueError:
            valid = ', '.join(m.value for m in cls)
            raise ValueError(f"Unknown compression '{name}' (expected one of: {valid})") from None


def _is_zlib_header(data: bytes) -> bool:
    if len(data) < 2:
        return False
    cmf, flg = data[0], data[1]
    return (cmf >> 4) == 7 and (cmf & 0x0F) == 8 and ((cmf << 8) | flg) % 31 == 0


def sniff(data: bytes) -> CompressionMode:
    """Return the envelope the data appears to use. Never fails."""
    if data[:2] == GZIP_MAGIC:
        return CompressionMode.GZIP
    if _is_zlib_header(data):
        return CompressionMode.ZLIB
    return CompressionMode.NONE


def open(data: bytes) -> bytes:
    """
    Strip the compression envelope, if any.

    Args:
        data: File contents as read from disk or network

    Returns:
        Uncompressed tag-tree bytes

    Raises:
        CompressionSignatureMismatch: If a gzip/zlib signature was found but
            the stream is not decompressible
    """
    mode = sniff(data)
    if mode == CompressionMode.GZIP:
        try:
            result = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise CompressionSignatureMismatch(f"Invalid gzip stream: {e}", offset=0) from e
    elif mode == CompressionMode.ZLIB:
        try:
            result = zlib.decompress(data)
        except zlib.error as e:
            raise CompressionSignatureMismatch(f"Invalid zlib stream: {e}", offset=0) from e
    else:
        return bytes(data)

    logger.debug("Decompressed %s stream: %d -> %d bytes", mode.value, len(data), len(result))
    return result


def wrap(data: bytes, mode: CompressionMode) -> bytes:
    """Wrap encoded tag-tree bytes in the requested envelope."""
    if mode == CompressionMode.GZIP:
        return gzip.compress(data, mtime=0)
    if mode == CompressionMode.ZLIB:
        return zlib.compress(data)
    if mode == CompressionMode.NONE:
        return bytes(data)
    raise ValueError(f"Unknown compression mode: {mode!r}")
