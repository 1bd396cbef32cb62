"""
schemkit NBT Module
===================

nbtlib tag types, the binary tag-tree codec and the compression envelope.
"""

from schemkit.nbt.tags import (
    Tag, TagType, Byte, Short, Int, Long, Float, Double, String,
    ByteArray, IntArray, LongArray, List, Compound, EmptyList, same_tag,
)
from schemkit.nbt.codec import decode, encode, DEFAULT_MAX_DEPTH
from schemkit.nbt.compression import CompressionMode, sniff

__all__ = [
    'Tag', 'TagType', 'Byte', 'Short', 'Int', 'Long', 'Float', 'Double',
    'String', 'ByteArray', 'IntArray', 'LongArray', 'List', 'Compound', 'EmptyList',
    'same_tag', 'decode', 'encode', 'DEFAULT_MAX_DEPTH', 'CompressionMode', 'sniff',
]
