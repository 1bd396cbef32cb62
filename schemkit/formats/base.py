"""
Format Adapter Base
===================

The closed set of supported dialects and the helpers shared by their
adapters.
"""

import logging
from enum import Enum
from typing import Iterable, Optional, Tuple

from schemkit.config import CodecConfig
from schemkit.core.voxel_region import BlockEntity, Entity, VoxelRegion
from schemkit.errors import InvalidSchematic
from schemkit.nbt.tags import (
    Tag, Short, Int, Double, Float, String, IntArray, List, Compound,
    INTEGER_TYPES, require,
)

logger = logging.getLogger(__name__)


class Format(Enum):
    """Supported schematic dialects."""
    LITEMATIC = 'litematic'
    SPONGE = 'sponge'
    LEGACY = 'legacy'
    STRUCTURE = 'structure'

    @property
    def extensions(self) -> Tuple[str, ...]:
        return _EXTENSIONS[self]

    @classmethod
    def from_name(cls, name: str) -> 'Format':
        """Look a format up by value (``sponge``) or extension (``.schem``)."""
        key = name.lower()
        for fmt in cls:
            if key == fmt.value or key in fmt.extensions or f'.{key}' in fmt.extensions:
                return fmt
        raise ValueError(f"Unknown schematic format: {name}")

    @classmethod
    def from_extension(cls, ext: str) -> Optional['Format']:
        ext = ext.lower()
        if not ext.startswith('.'):
            ext = '.' + ext
        for fmt in cls:
            if ext in fmt.extensions:
                return fmt
        return None


_EXTENSIONS = {
    Format.LITEMATIC: ('.litematic',),
    Format.SPONGE: ('.schem',),
    Format.LEGACY: ('.schematic',),
    Format.STRUCTURE: ('.nbt',),
}


class FormatAdapter:
    """
    Maps one dialect's tag tree to and from a VoxelRegion.

    Subclasses set ``FORMAT`` and implement the three classmethods. Root
    fields not listed in ``KNOWN_FIELDS`` are carried in
    ``region.metadata.extra`` and written back by :meth:`attach_extra`.
    """

    FORMAT: Format = None
    KNOWN_FIELDS: frozenset = frozenset()

    @classmethod
    def detect(cls, root_name: str, root: Tag) -> bool:
        """Cheap signature check on a decoded root tag."""
        raise NotImplementedError

    @classmethod
    def decode(cls, root_name: str, root: Tag, config: CodecConfig) -> VoxelRegion:
        raise NotImplementedError

    @classmethod
    def encode(cls, region: VoxelRegion, config: CodecConfig, **options) -> Tuple[str, Compound]:
        """Build the root tag; returns (root name, root compound)."""
        raise NotImplementedError

    # -- helpers shared by adapters ------------------------------------------

    @classmethod
    def collect_extra(cls, compound: Compound, known: Optional[Iterable[str]] = None) -> Compound:
        """Root entries the adapter does not interpret, in file order."""
        known = cls.KNOWN_FIELDS if known is None else frozenset(known)
        extra = Compound((key, value) for key, value in compound.items() if key not in known)
        if extra:
            logger.debug("%s: preserving unknown fields %s", cls.FORMAT.value, list(extra))
        return extra

    @staticmethod
    def attach_extra(compound: Compound, extra: Compound):
        """Write preserved fields back without overriding written ones."""
        for key, value in extra.items():
            if key not in compound:
                compound[key] = value


def require_compound(root: Tag, what: str) -> Compound:
    if not isinstance(root, Compound):
        raise InvalidSchematic(f"{what} root must be a compound, got {type(root).__name__}")
    return root


def read_int(compound: Compound, key: str, default: Optional[int] = None) -> int:
    """Read a required (or defaulted) integer field of any integer tag type."""
    if key not in compound:
        if default is not None:
            return default
        raise InvalidSchematic("Missing required field", field=key)
    return int(require(compound, key, *INTEGER_TYPES))


def read_unsigned_short(compound: Compound, key: str) -> int:
    """Dimensions stored as Short are unsigned on disk."""
    return read_int(compound, key) & 0xFFFF


def check_volume(size: Tuple[int, int, int], config: CodecConfig, field: str):
    """Reject a declared size above ``config.max_volume`` before anything is allocated."""
    volume = size[0] * size[1] * size[2]
    if volume > config.max_volume:
        raise InvalidSchematic(
            f"Region {tuple(size)} holds {volume} blocks, more than the limit of {config.max_volume}",
            field=field,
        )


def unsigned_short(value: int) -> Short:
    if not 0 <= value <= 0xFFFF:
        raise InvalidSchematic(f"Dimension {value} does not fit in an unsigned short")
    return Short(value - 0x10000 if value > 0x7FFF else value)


def read_position(tag: Tag, field: str) -> Tuple[int, int, int]:
    """Integer xyz from an IntArray, a List of integers or an x/y/z compound."""
    if isinstance(tag, IntArray) and len(tag) == 3:
        return tuple(int(v) for v in tag)
    if isinstance(tag, List) and len(tag) == 3 and all(isinstance(v, INTEGER_TYPES) for v in tag):
        return tuple(int(v) for v in tag)
    if isinstance(tag, Compound) and all(k in tag for k in 'xyz'):
        return tuple(read_int(tag, k) for k in 'xyz')
    raise InvalidSchematic(f"Expected a 3-component integer position, got {tag!r}", field=field)


def read_vector(tag: Tag, field: str) -> Tuple[float, float, float]:
    """Float xyz from a List of doubles/floats (or integers)."""
    if isinstance(tag, List) and len(tag) == 3 and all(isinstance(v, (Double, Float) + INTEGER_TYPES) for v in tag):
        return tuple(float(v) for v in tag)
    if isinstance(tag, IntArray) and len(tag) == 3:
        return tuple(float(v) for v in tag)
    raise InvalidSchematic(f"Expected a 3-component vector, got {tag!r}", field=field)


def int_array(values: Iterable[int]) -> IntArray:
    return IntArray([int(v) for v in values])


def int_list(values: Iterable[int]) -> List:
    return List[Int]([Int(v) for v in values])


def double_list(values: Iterable[float]) -> List:
    return List[Double]([Double(v) for v in values])


def xyz_compound(values: Iterable[int]) -> Compound:
    x, y, z = values
    return Compound(x=Int(x), y=Int(y), z=Int(z))


def split_payload(compound: Compound, exclude: Iterable[str]) -> Compound:
    """Copy of ``compound`` without the given keys, order preserved."""
    exclude = frozenset(exclude)
    return Compound((k, v) for k, v in compound.items() if k not in exclude)


def compound_list(tag: Optional[Tag], field: str) -> Iterable[Compound]:
    """Elements of a list of compounds; a missing or empty list yields nothing."""
    if tag is None:
        return []
    if not isinstance(tag, List):
        raise InvalidSchematic(f"Expected a list, got {type(tag).__name__}", field=field)
    if len(tag) == 0:
        return []
    if not issubclass(tag.subtype, Compound):
        raise InvalidSchematic(f"Expected a list of compounds, got {tag.subtype.__name__}", field=field)
    return list(tag)


def block_entity_from_flat(compound: Compound, pos_key: str, id_keys: Tuple[str, ...],
                           field: str) -> BlockEntity:
    """Block entity whose payload sits next to its position and id keys."""
    position = read_position(compound[pos_key], field) if pos_key in compound \
        else read_position(compound, field)
    id_key = next((k for k in id_keys if k in compound), None)
    block_id = str(compound[id_key]) if id_key else ''
    exclude = {pos_key, 'x', 'y', 'z'} if pos_key not in compound else {pos_key}
    if id_key:
        exclude.add(id_key)
    return BlockEntity(position, block_id, split_payload(compound, exclude))


def entity_from_flat(compound: Compound, pos_key: str, id_keys: Tuple[str, ...],
                     field: str) -> Entity:
    """Entity whose payload sits next to its position and id keys."""
    position = read_vector(require(compound, pos_key), field)
    id_key = next((k for k in id_keys if k in compound), None)
    entity_id = str(compound[id_key]) if id_key else ''
    exclude = {pos_key}
    if id_key:
        exclude.add(id_key)
    return Entity(position, entity_id, split_payload(compound, exclude))


def string_or_none(compound: Compound, key: str) -> Optional[str]:
    value = compound.get(key)
    return str(value) if isinstance(value, String) else None
