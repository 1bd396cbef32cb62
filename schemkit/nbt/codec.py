"""
NBT Binary Codec
================

Reads and writes the named binary tag wire format:

- Every tag starts with a one-byte type id; a named tag follows it with a
  u16 big-endian length and that many UTF-8 bytes.
- Numerics are fixed-width big-endian.
- Arrays are an i32 element count followed by the elements.
- Lists are an element type byte, an i32 count and the element payloads.
  A count of zero or less yields an empty list whatever the type byte; an
  unusual header (negative count, unknown type byte) is kept on
  :class:`~schemkit.nbt.tags.EmptyList` and written back as read.
- Compounds are named tags terminated by an END byte.

Decoding walks the tree with an explicit stack, so nesting depth is bounded
by ``max_depth`` instead of the interpreter's recursion limit, and builds
nbtlib tags. Encoding checks depth and string sizes, then hands the tree to
nbtlib's writer. Any tree produced by :func:`decode` encodes back to the
same bytes.
"""

import io
import logging
import struct
from typing import List as ListType, Optional, Tuple

import numpy as np

from schemkit.errors import MalformedTag, RecursionLimitExceeded
from schemkit.nbt.tags import (
    Tag, TagType, Byte, Short, Int, Long, Float, Double, String,
    ByteArray, IntArray, LongArray, List, Compound, EmptyList, tag_class,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 512
MAX_STRING_BYTES = 0xFFFF

_UBYTE = struct.Struct('>B')
_USHORT = struct.Struct('>H')
_INT = struct.Struct('>i')

_SCALARS = {
    TagType.BYTE: (struct.Struct('>b'), Byte),
    TagType.SHORT: (struct.Struct('>h'), Short),
    TagType.INT: (_INT, Int),
    TagType.LONG: (struct.Struct('>q'), Long),
    TagType.FLOAT: (struct.Struct('>f'), Float),
    TagType.DOUBLE: (struct.Struct('>d'), Double),
}

# nbtlib's writer byteswaps unless the array carries its own dtype object
_ARRAYS = {
    TagType.BYTE_ARRAY: (ByteArray.item_type['big'], ByteArray),
    TagType.INT_ARRAY: (IntArray.item_type['big'], IntArray),
    TagType.LONG_ARRAY: (LongArray.item_type['big'], LongArray),
}

_VALID_TYPES = frozenset(int(t) for t in TagType)


class NBTReader:
    """
    Decoder for a single tag tree held in memory.

    Args:
        data: Uncompressed tag-tree bytes
        max_depth: Maximum number of nested lists/compounds
    """

    def __init__(self, data: bytes, max_depth: int = DEFAULT_MAX_DEPTH):
        self.data = bytes(data)
        self.pos = 0
        self.max_depth = max_depth

    # -- primitive reads ---------------------------------------------------

    def _need(self, size: int, what: str):
        if size < 0 or self.pos + size > len(self.data):
            raise MalformedTag(f"Unexpected end of data while reading {what}",
                               offset=self.pos)

    def _unpack(self, fmt: struct.Struct, what: str):
        self._need(fmt.size, what)
        value = fmt.unpack_from(self.data, self.pos)[0]
        self.pos += fmt.size
        return value

    def read_type(self) -> TagType:
        offset = self.pos
        value = self._unpack(_UBYTE, "tag type")
        if value not in _VALID_TYPES:
            raise MalformedTag(f"Invalid tag type {value}", offset=offset)
        return TagType(value)

    def read_string(self) -> str:
        length = self._unpack(_USHORT, "string length")
        self._need(length, "string")
        raw = self.data[self.pos:self.pos + length]
        try:
            value = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedTag(f"Invalid UTF-8 in string: {e.reason}",
                               offset=self.pos + e.start) from None
        self.pos += length
        return value

    def _read_array(self, tag_type: TagType) -> Tag:
        dtype, cls = _ARRAYS[tag_type]
        offset = self.pos
        count = self._unpack(_INT, "array length")
        if count < 0:
            raise MalformedTag(f"Negative array length {count}", offset=offset)
        if count == 0:
            return cls()
        self._need(count * dtype.itemsize, f"{tag_type.name} of {count} elements")
        array = np.frombuffer(self.data, dtype=dtype, count=count, offset=self.pos)
        self.pos += count * dtype.itemsize
        return cls(array.copy())

    # -- tree walk ---------------------------------------------------------

    def _open(self, tag_type: TagType, stack: list) -> Tag:
        """Read a scalar, or create a container and push it on the stack."""
        if tag_type in _SCALARS:
            fmt, cls = _SCALARS[tag_type]
            return cls(self._unpack(fmt, tag_type.name))
        if tag_type == TagType.STRING:
            return String(self.read_string())
        if tag_type in _ARRAYS:
            return self._read_array(tag_type)

        if len(stack) >= self.max_depth:
            raise RecursionLimitExceeded(
                f"Tag nesting exceeds maximum depth {self.max_depth}", offset=self.pos
            )

        if tag_type == TagType.COMPOUND:
            compound = Compound()
            stack.append([compound, 0, None])
            return compound

        if tag_type == TagType.LIST:
            subtype_offset = self.pos
            raw_subtype = self._unpack(_UBYTE, "list element type")
            count = self._unpack(_INT, "list length")
            if count <= 0:
                if count == 0 and raw_subtype in _VALID_TYPES:
                    return List[tag_class(raw_subtype)]()
                return EmptyList(raw_subtype, count)
            if raw_subtype not in _VALID_TYPES:
                raise MalformedTag(f"Invalid list element type {raw_subtype}",
                                   offset=subtype_offset)
            subtype = TagType(raw_subtype)
            if subtype == TagType.END:
                raise MalformedTag(f"List of END tags with {count} elements",
                                   offset=subtype_offset)
            result = List[tag_class(subtype)]()
            stack.append([result, count, subtype])
            return result

        raise MalformedTag(f"Unexpected tag type {tag_type.name}", offset=self.pos)

    def read_payload(self, tag_type: TagType) -> Tag:
        """Read the payload of a tag whose type byte has already been consumed."""
        stack: ListType[list] = []
        value = self._open(tag_type, stack)

        while stack:
            frame = stack[-1]
            container = frame[0]
            if frame[2] is None:
                entry_offset = self.pos
                entry_type = self.read_type()
                if entry_type == TagType.END:
                    stack.pop()
                    continue
                name = self.read_string()
                if name in container:
                    raise MalformedTag(f"Duplicate compound key '{name}'",
                                       offset=entry_offset)
                container[name] = self._open(entry_type, stack)
            else:
                if frame[1] == 0:
                    stack.pop()
                    continue
                frame[1] -= 1
                container.append(self._open(frame[2], stack))

        return value

    def read_named(self) -> Tuple[str, Tag]:
        """Read a complete named root tag."""
        offset = self.pos
        tag_type = self.read_type()
        if tag_type == TagType.END:
            raise MalformedTag("Root tag cannot be END", offset=offset)
        name = self.read_string()
        return name, self.read_payload(tag_type)


def _check_string(value: str, field: Optional[str] = None):
    try:
        size = len(value.encode('utf-8'))
    except UnicodeEncodeError as e:
        raise MalformedTag(f"String is not encodable as UTF-8: {e.reason}",
                           field=field) from None
    if size > MAX_STRING_BYTES:
        raise MalformedTag(f"String of {size} bytes exceeds {MAX_STRING_BYTES}", field=field)


def check_tree(tag: Tag, max_depth: int = DEFAULT_MAX_DEPTH):
    """
    Verify that a tree can be written: every node is a tag, strings fit a
    u16 length and nesting stays within ``max_depth``.

    Raises:
        TypeError: If a node is not a tag
        MalformedTag: For an unencodable or oversized string
        RecursionLimitExceeded: When nesting is deeper than ``max_depth``
    """
    stack = [(tag, 0, None)]
    while stack:
        node, depth, field = stack.pop()
        if not isinstance(node, Tag):
            raise TypeError(f"Cannot encode {type(node).__name__} as a tag")
        if isinstance(node, String):
            _check_string(node, field)
        elif isinstance(node, (List, Compound)):
            if depth >= max_depth:
                raise RecursionLimitExceeded(
                    f"Tag nesting exceeds maximum depth {max_depth}", field=field
                )
            if isinstance(node, Compound):
                for name, value in node.items():
                    _check_string(name, field)
                    stack.append((value, depth + 1, name))
            else:
                stack.extend((item, depth + 1, field) for item in node)


def decode(data: bytes, max_depth: int = DEFAULT_MAX_DEPTH) -> Tuple[str, Tag]:
    """
    Decode an uncompressed tag tree.

    Args:
        data: Raw tag-tree bytes
        max_depth: Maximum nesting of lists and compounds

    Returns:
        Tuple of (root name, root tag)

    Raises:
        MalformedTag: On invalid type bytes, truncation or bad structure
        RecursionLimitExceeded: When nesting is deeper than ``max_depth``
    """
    reader = NBTReader(data, max_depth=max_depth)
    name, tag = reader.read_named()
    if reader.pos < len(reader.data):
        logger.debug("Ignoring %d trailing bytes after root tag",
                     len(reader.data) - reader.pos)
    return name, tag


def encode(name: str, tag: Tag, max_depth: Optional[int] = None) -> bytes:
    """Encode a named root tag to its uncompressed wire form."""
    check_tree(tag, max_depth or DEFAULT_MAX_DEPTH)
    _check_string(name)
    buffer = io.BytesIO()
    buffer.write(_UBYTE.pack(tag.tag_id))
    String(name).write(buffer)
    tag.write(buffer)
    return buffer.getvalue()


def decode_payload(data: bytes, tag_type: TagType,
                   max_depth: int = DEFAULT_MAX_DEPTH) -> Tag:
    """Decode a bare payload of a known type (no type byte, no name)."""
    return NBTReader(data, max_depth=max_depth).read_payload(TagType(tag_type))


def encode_payload(tag: Tag) -> bytes:
    """Encode a tag's payload without its type byte and name."""
    check_tree(tag)
    buffer = io.BytesIO()
    tag.write(buffer)
    return buffer.getvalue()
