"""
NBT Tag Types
=============

Tag trees are built from nbtlib's tag classes, one per wire type id:

- Integers: Byte, Short, Int, Long (subclasses of ``int``, range checked)
- Floats: Float, Double (subclasses of ``float``)
- String (subclass of ``str``)
- Arrays: ByteArray, IntArray, LongArray (numpy arrays)
- Containers: ``List[T]`` (homogeneous) and Compound (ordered dict)

This module re-exports them together with the wire type ids, typed field
accessors used by the dialect adapters, and :class:`EmptyList`, which keeps
the header of an empty list exactly as it was read.

nbtlib compares tags by value, so ``Byte(1) == Int(1)``; use
:func:`same_tag` for type-strict comparison.
"""

import struct
from enum import IntEnum
from typing import Any, Optional, Type

import numpy as np
from nbtlib.tag import (
    Base as Tag, End, Byte, Short, Int, Long, Float, Double, String,
    Array, ByteArray, IntArray, LongArray, List, Compound,
)

from schemkit.errors import InvalidSchematic


class TagType(IntEnum):
    """Wire type ids."""
    END = 0
    BYTE = 1
    SHORT = 2
    INT = 3
    LONG = 4
    FLOAT = 5
    DOUBLE = 6
    BYTE_ARRAY = 7
    STRING = 8
    LIST = 9
    COMPOUND = 10
    INT_ARRAY = 11
    LONG_ARRAY = 12


INTEGER_TYPES = (Byte, Short, Int, Long)


def tag_class(tag_type: int) -> Type[Tag]:
    """nbtlib class for a wire type id."""
    return Tag.get_tag(int(tag_type))


class EmptyList(List):
    """
    An empty list whose header is not the canonical ``(type, 0)`` pair.

    The element byte may be any value and the count may be negative; both
    are written back unchanged.
    """

    __slots__ = ('element_id', 'declared_count')

    def __new__(cls, element_id: int = 0, declared_count: int = 0):
        return list.__new__(cls)

    def __init__(self, element_id: int = 0, declared_count: int = 0):
        super().__init__()
        self.element_id = element_id
        self.declared_count = declared_count

    def write(self, fileobj, byteorder='big'):
        prefix = '>' if byteorder == 'big' else '<'
        fileobj.write(struct.pack(prefix + 'Bi', self.element_id, self.declared_count))

    def __repr__(self):
        return f"EmptyList({self.element_id}, {self.declared_count})"


def byte_array(data: bytes) -> ByteArray:
    """ByteArray holding raw (unsigned) bytes."""
    return ByteArray(np.frombuffer(bytes(data), dtype=ByteArray.item_type['big']))


def same_tag(a: Any, b: Any) -> bool:
    """Structural equality that also requires matching tag types."""
    if isinstance(a, List) and isinstance(b, List):
        if len(a) != len(b):
            return False
        if len(a) and a.subtype is not b.subtype:
            return False
        return all(same_tag(x, y) for x, y in zip(a, b))
    if type(a) is not type(b):
        return False
    if isinstance(a, Compound):
        return a.keys() == b.keys() and all(same_tag(a[k], b[k]) for k in a)
    if isinstance(a, Array):
        return bool(np.array_equal(a, b))
    return a == b


def require(compound: Compound, key: str, *types: Type[Tag]) -> Any:
    """
    Return ``compound[key]``, checking its presence and type.

    Raises:
        InvalidSchematic: naming the field when it is missing or mistyped
    """
    if key not in compound:
        raise InvalidSchematic("Missing required field", field=key)
    value = compound[key]
    if types and not isinstance(value, types):
        expected = ' or '.join(t.__name__ for t in types)
        raise InvalidSchematic(f"Expected {expected}, got {type(value).__name__}", field=key)
    return value


def get_int(compound: Compound, key: str, default: Optional[int] = None) -> Optional[int]:
    """Integer field as a plain int, or ``default``."""
    value = compound.get(key)
    if isinstance(value, INTEGER_TYPES):
        return int(value)
    return default


def get_str(compound: Compound, key: str, default: Optional[str] = None) -> Optional[str]:
    """String field as a plain str, or ``default``."""
    value = compound.get(key)
    if isinstance(value, String):
        return str(value)
    return default


__all__ = [
    'Tag', 'TagType', 'End', 'Byte', 'Short', 'Int', 'Long', 'Float', 'Double', 'String',
    'ByteArray', 'IntArray', 'LongArray', 'List', 'Compound', 'EmptyList',
    'INTEGER_TYPES', 'tag_class', 'byte_array', 'same_tag', 'require', 'get_int', 'get_str',
]
