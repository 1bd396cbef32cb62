"""
Packed Index Arrays
===================

Encoders and decoders for the three block index array layouts used by
schematic dialects:

- Byte arrays: one unsigned byte per entry.
- Varint arrays: 7 data bits per byte, high bit set when more bytes follow,
  least significant group first, entries back to back.
- Packed-long arrays: fixed-width entries in 64-bit words, least significant
  bits first. ``DENSE`` packing lets an entry continue into the low bits of
  the next word; ``ALIGNED`` packing stores ``64 // bits`` whole entries per
  word and leaves the remaining high bits unused. No built-in dialect selects
  ``ALIGNED``; it is kept for callers packing arrays of their own.

The packing policy is a property of the dialect and is always passed in
explicitly. Decoders produce exactly ``count`` entries and reject buffers
that are shorter or longer than the count requires.
"""

from enum import Enum
from typing import Iterable, Optional, Union

import numpy as np

from schemkit.errors import ArrayLengthMismatch, InvalidBitWidth, MalformedTag

MAX_VARINT_BYTES = 5
MAX_VARINT_VALUE = (1 << (7 * MAX_VARINT_BYTES)) - 1

IndexArray = Union[np.ndarray, Iterable[int]]


class PackingPolicy(Enum):
    """How fixed-width entries are laid out in 64-bit words."""
    DENSE = 'dense'
    ALIGNED = 'aligned'


def bits_for(palette_size: int, minimum: int = 1) -> int:
    """
    Bits needed to store indices into a palette of ``palette_size`` entries.

    ``ceil(log2(palette_size))``, and never less than ``minimum`` (a palette of
    one entry still uses one bit).
    """
    if palette_size < 0:
        raise InvalidBitWidth(f"Negative palette size {palette_size}")
    bits = max(minimum, (palette_size - 1).bit_length() if palette_size > 1 else 0, 1)
    if bits > 64:
        raise InvalidBitWidth(f"Palette of {palette_size} entries needs {bits} bits")
    return bits


def _check_bits(bits: int):
    if not 1 <= bits <= 64:
        raise InvalidBitWidth(f"Bit width {bits} outside 1..64")


def packed_length(count: int, bits: int, policy: PackingPolicy) -> int:
    """Number of 64-bit words needed for ``count`` entries."""
    _check_bits(bits)
    if count <= 0:
        return 0
    if policy == PackingPolicy.DENSE:
        return (count * bits + 63) // 64
    per_word = 64 // bits
    return (count + per_word - 1) // per_word


def _as_indices(indices: IndexArray) -> np.ndarray:
    return np.asarray(indices, dtype=np.int64).reshape(-1)


# ---------------------------------------------------------------------------
# Byte arrays
# ---------------------------------------------------------------------------

def unpack_bytes(data: Union[bytes, np.ndarray], count: int,
                 field: Optional[str] = None) -> np.ndarray:
    """Decode one unsigned byte per entry."""
    raw = np.frombuffer(bytes(data), dtype=np.uint8) if isinstance(data, (bytes, bytearray)) \
        else np.asarray(data).astype(np.uint8)
    if raw.size != count:
        raise ArrayLengthMismatch(
            f"Expected {count} byte entries, found {raw.size}", field=field
        )
    return raw.astype(np.int32)


def pack_bytes(indices: IndexArray) -> bytes:
    """Encode one unsigned byte per entry; values must be below 256."""
    values = _as_indices(indices)
    if values.size and (values.min() < 0 or values.max() > 0xFF):
        bad = int(np.flatnonzero((values < 0) | (values > 0xFF))[0])
        raise InvalidBitWidth(f"Value {int(values[bad])} does not fit in a byte", offset=bad)
    return values.astype(np.uint8).tobytes()


# ---------------------------------------------------------------------------
# Varint arrays
# ---------------------------------------------------------------------------

def decode_varints(data: Union[bytes, np.ndarray], count: int,
                   field: Optional[str] = None) -> np.ndarray:
    """
    Decode exactly ``count`` continuation-bit varints.

    Raises:
        ArrayLengthMismatch: If the data ends early or has bytes left over
        MalformedTag: If a single entry is longer than 5 bytes
    """
    raw = bytes(data) if isinstance(data, (bytes, bytearray)) \
        else np.asarray(data).astype(np.uint8).tobytes()
    if len(raw) < count:
        raise ArrayLengthMismatch(
            f"Varint data has {len(raw)} bytes, at least {count} required", field=field
        )
    result = np.empty(count, dtype=np.int64)
    pos = 0
    end = len(raw)

    for i in range(count):
        value = 0
        shift = 0
        start = pos
        while True:
            if pos >= end:
                raise ArrayLengthMismatch(
                    f"Varint data ended after {i} of {count} entries",
                    offset=start, field=field,
                )
            byte = raw[pos]
            pos += 1
            value |= (byte & 0x7F) << shift
            if not byte & 0x80:
                break
            shift += 7
            if pos - start >= MAX_VARINT_BYTES:
                raise MalformedTag(
                    f"Varint longer than {MAX_VARINT_BYTES} bytes", offset=start, field=field
                )
        result[i] = value

    if pos != end:
        raise ArrayLengthMismatch(
            f"{end - pos} bytes left over after {count} varint entries",
            offset=pos, field=field,
        )
    return result


def encode_varints(indices: IndexArray) -> bytes:
    """Encode entries as back-to-back continuation-bit varints."""
    values = _as_indices(indices)
    if values.size and (values.min() < 0 or values.max() > MAX_VARINT_VALUE):
        bad = int(np.flatnonzero((values < 0) | (values > MAX_VARINT_VALUE))[0])
        raise InvalidBitWidth(
            f"Value {int(values[bad])} does not fit in a {MAX_VARINT_BYTES}-byte varint",
            offset=bad,
        )
    if values.size and values.max() < 0x80:
        return values.astype(np.uint8).tobytes()

    out = bytearray()
    for value in values.tolist():
        while value >= 0x80:
            out.append((value & 0x7F) | 0x80)
            value >>= 7
        out.append(value)
    return bytes(out)


# ---------------------------------------------------------------------------
# Packed-long arrays
# ---------------------------------------------------------------------------

def unpack_longs(words: Union[np.ndarray, Iterable[int]], count: int, bits: int,
                 policy: PackingPolicy, field: Optional[str] = None) -> np.ndarray:
    """
    Extract ``count`` fixed-width entries from 64-bit words.

    Args:
        words: Signed or unsigned 64-bit words as stored in a long array
        count: Number of entries to produce
        bits: Entry width
        policy: DENSE or ALIGNED packing

    Raises:
        ArrayLengthMismatch: If the word count differs from what ``count``
            entries of ``bits`` width require
        InvalidBitWidth: If ``bits`` is outside 1..64
    """
    _check_bits(bits)
    words = np.asarray(words)
    if words.dtype != np.uint64:
        words = words.astype(np.int64).view(np.uint64)
    words = words.reshape(-1)

    expected = packed_length(count, bits, policy)
    if words.size != expected:
        raise ArrayLengthMismatch(
            f"Expected {expected} words for {count} entries of {bits} bits "
            f"({policy.value} packing), found {words.size}",
            field=field,
        )
    if count <= 0:
        return np.zeros(0, dtype=np.int64)

    mask = np.uint64((1 << bits) - 1)
    index = np.arange(count, dtype=np.uint64)

    if policy == PackingPolicy.ALIGNED:
        per_word = np.uint64(64 // bits)
        word_index = (index // per_word).astype(np.intp)
        offset = (index % per_word) * np.uint64(bits)
        values = (words[word_index] >> offset) & mask
        return values.astype(np.int64)

    bit_index = index * np.uint64(bits)
    word_index = (bit_index >> np.uint64(6)).astype(np.intp)
    offset = bit_index & np.uint64(63)
    low = words[word_index] >> offset

    spans = offset + np.uint64(bits) > np.uint64(64)
    if spans.any():
        next_index = np.minimum(word_index + 1, words.size - 1)
        # shift amount is only meaningful where the entry spans two words
        high_shift = np.where(spans, np.uint64(64) - offset, np.uint64(0))
        high = np.where(spans, words[next_index] << high_shift, np.uint64(0))
        low = low | high
    return (low & mask).astype(np.int64)


def pack_longs(indices: IndexArray, bits: int, policy: PackingPolicy) -> np.ndarray:
    """
    Pack entries into the minimum number of 64-bit words.

    Returns:
        Signed int64 array ready for a long array tag

    Raises:
        InvalidBitWidth: If ``bits`` is outside 1..64 or a value needs more
    """
    _check_bits(bits)
    values = _as_indices(indices)
    count = values.size
    words = np.zeros(packed_length(count, bits, policy), dtype=np.uint64)
    if count == 0:
        return words.view(np.int64)

    limit = (1 << bits) - 1
    if values.min() < 0 or (bits < 64 and values.max() > limit):
        bad = int(np.flatnonzero((values < 0) | (values > limit))[0])
        raise InvalidBitWidth(f"Value {int(values[bad])} does not fit in {bits} bits",
                              offset=bad)

    values = values.astype(np.uint64)
    index = np.arange(count, dtype=np.uint64)

    if policy == PackingPolicy.ALIGNED:
        per_word = np.uint64(64 // bits)
        word_index = (index // per_word).astype(np.intp)
        offset = (index % per_word) * np.uint64(bits)
        np.bitwise_or.at(words, word_index, values << offset)
        return words.view(np.int64)

    bit_index = index * np.uint64(bits)
    word_index = (bit_index >> np.uint64(6)).astype(np.intp)
    offset = bit_index & np.uint64(63)
    np.bitwise_or.at(words, word_index, values << offset)

    spans = offset + np.uint64(bits) > np.uint64(64)
    if spans.any():
        carry = np.uint64(64) - offset[spans]
        np.bitwise_or.at(words, word_index[spans] + 1, values[spans] >> carry)
    return words.view(np.int64)


__all__ = [
    'PackingPolicy', 'bits_for', 'packed_length',
    'unpack_bytes', 'pack_bytes',
    'decode_varints', 'encode_varints',
    'unpack_longs', 'pack_longs',
    'MAX_VARINT_VALUE',
]
