"""
VoxelRegion - Unified Schematic Model
=====================================

The format-independent representation every dialect adapter decodes into
and encodes from.

Blocks are stored as a numpy array of palette indices with shape
``(height, length, width)``, so the flat order is y, then z, then x - the
order used on disk by every supported dialect.
"""

import copy
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from schemkit.core.palette import BlockState, Palette
from schemkit.errors import ArrayLengthMismatch, InvalidSchematic, PaletteOutOfRange
from schemkit.nbt.tags import Compound, same_tag

logger = logging.getLogger(__name__)

Position = Tuple[int, int, int]


@dataclass(eq=False)
class BlockEntity:
    """A block entity (tile entity): position, type id and opaque payload."""
    position: Position
    id: str
    data: Compound = field(default_factory=Compound)

    def __eq__(self, other):
        if not isinstance(other, BlockEntity):
            return NotImplemented
        return (tuple(self.position) == tuple(other.position) and self.id == other.id and
                same_tag(self.data, other.data))


@dataclass(eq=False)
class Entity:
    """A free entity: fractional position, type id and opaque payload."""
    position: Tuple[float, float, float]
    id: str
    data: Compound = field(default_factory=Compound)

    def __eq__(self, other):
        if not isinstance(other, Entity):
            return NotImplemented
        return (tuple(self.position) == tuple(other.position) and self.id == other.id and
                same_tag(self.data, other.data))


@dataclass(eq=False)
class BiomeMap:
    """
    Biome ids laid out like the block array.

    Attributes:
        palette: Biome ids (e.g. ``minecraft:plains``), index order
        data: int32 array of shape ``(height, length, width)``
    """
    palette: List[str]
    data: np.ndarray

    def get_biome(self, x: int, y: int, z: int) -> str:
        return self.palette[int(self.data[y, z, x])]

    def validate(self):
        flat = self.data.reshape(-1)
        if flat.size and (flat.min() < 0 or flat.max() >= len(self.palette)):
            bad = int(np.flatnonzero((flat < 0) | (flat >= len(self.palette)))[0])
            raise PaletteOutOfRange(
                f"Biome index {int(flat[bad])} has no palette entry", offset=bad, field='biomes'
            )

    def __eq__(self, other):
        if not isinstance(other, BiomeMap):
            return NotImplemented
        if self.data.shape != other.data.shape:
            return False
        mine = np.asarray(self.palette, dtype=object)[self.data] if self.palette else self.data
        theirs = np.asarray(other.palette, dtype=object)[other.data] if other.palette else other.data
        return bool(np.array_equal(mine, theirs))


@dataclass(eq=False)
class Metadata:
    """
    Descriptive data about a schematic.

    Attributes:
        name: Schematic name
        author: Author name
        description: Free text description
        created: Creation time, milliseconds since the epoch
        modified: Modification time, milliseconds since the epoch
        data_version: Minecraft data version the blocks were saved with
        source_format: Dialect the region was decoded from
        format_version: Dialect sub-version the region was decoded from
        attributes: Entries of the dialect's metadata compound that are not
            mapped to a field above
        extra: Root fields no adapter interprets, written back on encode
        outer_extra: Fields beside the ``Schematic`` compound when the dialect
            wraps it in an outer root
    """
    name: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    created: Optional[int] = None
    modified: Optional[int] = None
    data_version: Optional[int] = None
    source_format: Optional[str] = None
    format_version: Optional[int] = None
    attributes: Compound = field(default_factory=Compound)
    extra: Compound = field(default_factory=Compound)
    outer_extra: Compound = field(default_factory=Compound)

    def __eq__(self, other):
        if not isinstance(other, Metadata):
            return NotImplemented
        plain = ('name', 'author', 'description', 'created', 'modified',
                 'data_version', 'source_format', 'format_version')
        tags = ('attributes', 'extra', 'outer_extra')
        return (all(getattr(self, k) == getattr(other, k) for k in plain) and
                all(same_tag(getattr(self, k), getattr(other, k)) for k in tags))


def _origin(offset: Optional[Position]) -> Position:
    return tuple(offset) if offset is not None else (0, 0, 0)


def _state_key(state: BlockState) -> str:
    props = ','.join(f"{k}={v}" for k, v in sorted(state.properties.items()))
    return f"{state.name}[{props}]"


@dataclass(eq=False)
class VoxelRegion:
    """
    A rectangular region of blocks with its palette and auxiliary data.

    Attributes:
        width: Size along x
        height: Size along y
        length: Size along z
        palette: Block states referenced by ``blocks``
        blocks: Palette indices, shape ``(height, length, width)``
        offset: Optional world-relative offset of the region origin
        block_entities: Block entities, in file order
        entities: Entities, in file order
        biomes: Optional biome map
        metadata: Name, author, timestamps and preserved unknown fields
    """

    width: int
    height: int
    length: int
    palette: Palette = field(default_factory=Palette)
    blocks: np.ndarray = field(default=None, repr=False)
    offset: Optional[Position] = None
    block_entities: List[BlockEntity] = field(default_factory=list)
    entities: List[Entity] = field(default_factory=list)
    biomes: Optional[BiomeMap] = None
    metadata: Metadata = field(default_factory=Metadata)

    def __post_init__(self):
        """Check dimensions and shape the block array."""
        for axis, value in (('width', self.width), ('height', self.height), ('length', self.length)):
            if int(value) <= 0:
                raise InvalidSchematic(f"Region {axis} must be positive, got {value}", field=axis)
        self.width, self.height, self.length = int(self.width), int(self.height), int(self.length)

        if self.blocks is None:
            air = self.palette.index_of(BlockState.AIR)
            self.blocks = np.full(self.shape, air, dtype=np.int32)
        else:
            blocks = np.asarray(self.blocks)
            if blocks.size != self.volume:
                raise ArrayLengthMismatch(
                    f"Block array has {blocks.size} entries, region volume is {self.volume}",
                    field='blocks',
                )
            self.blocks = blocks.reshape(self.shape).astype(np.int32, copy=False)

    @classmethod
    def create(cls, width: int, height: int, length: int,
               fill: BlockState = BlockState.AIR, name: Optional[str] = None) -> 'VoxelRegion':
        """
        Factory method to create a region filled with one block state.

        Args:
            width, height, length: Region dimensions
            fill: Block state for every position (air by default)
            name: Schematic name

        Returns:
            New VoxelRegion instance
        """
        palette = Palette([fill])
        blocks = np.zeros((height, length, width), dtype=np.int32)
        return cls(width, height, length, palette=palette, blocks=blocks,
                   metadata=Metadata(name=name))

    # -- geometry ------------------------------------------------------------

    @property
    def size(self) -> Position:
        """Dimensions as (width, height, length)."""
        return (self.width, self.height, self.length)

    @property
    def shape(self) -> Position:
        """Shape of the block array, (height, length, width)."""
        return (self.height, self.length, self.width)

    @property
    def volume(self) -> int:
        return self.width * self.height * self.length

    def is_valid_position(self, x: int, y: int, z: int) -> bool:
        """Check if coordinates are within the region bounds."""
        return (0 <= x < self.width and
                0 <= y < self.height and
                0 <= z < self.length)

    def flat_index(self, x: int, y: int, z: int) -> int:
        """Offset of (x, y, z) in the flattened y-z-x block array."""
        return (y * self.length + z) * self.width + x

    def _check_position(self, x: int, y: int, z: int):
        if not self.is_valid_position(x, y, z):
            raise IndexError(f"Position ({x}, {y}, {z}) outside region of size {self.size}")

    # -- blocks --------------------------------------------------------------

    def index_at(self, x: int, y: int, z: int) -> int:
        """Palette index stored at a position."""
        self._check_position(x, y, z)
        return int(self.blocks[y, z, x])

    def get_block(self, x: int, y: int, z: int) -> BlockState:
        """
        Get the block state at the specified position.

        Raises:
            IndexError: If the position is outside the region
        """
        return self.palette.state_at(self.index_at(x, y, z))

    def set_block(self, x: int, y: int, z: int, state: BlockState) -> int:
        """
        Set the block state at the specified position.

        Returns:
            Palette index used for the state
        """
        self._check_position(x, y, z)
        index = self.palette.index_of(state)
        self.blocks[y, z, x] = index
        return index

    def fill_region(self, start: Position, end: Position, state: BlockState):
        """Fill the inclusive box between two corners with one state, clipped to the region."""
        x1, y1, z1 = (max(0, min(start[i], end[i])) for i in range(3))
        x2 = min(self.width, max(start[0], end[0]) + 1)
        y2 = min(self.height, max(start[1], end[1]) + 1)
        z2 = min(self.length, max(start[2], end[2]) + 1)
        self.blocks[y1:y2, z1:z2, x1:x2] = self.palette.index_of(state)

    def iter_blocks(self, skip_air: bool = True) -> Iterator[Tuple[int, int, int, BlockState]]:
        """Yield (x, y, z, state) in y-z-x order."""
        states = self.palette.states
        for y, z, x in np.ndindex(*self.shape):
            state = states[int(self.blocks[y, z, x])]
            if skip_air and state.is_air:
                continue
            yield x, y, z, state

    def count_blocks(self, skip_air: bool = True) -> Dict[BlockState, int]:
        """Number of positions holding each block state."""
        counts: Counter = Counter()
        values, totals = np.unique(self.blocks, return_counts=True)
        for index, total in zip(values, totals):
            state = self.palette.state_at(int(index))
            if skip_air and state.is_air:
                continue
            counts[state] += int(total)
        return dict(counts.most_common())

    def get_bounds(self) -> Optional[Tuple[Position, Position]]:
        """
        Bounding box of non-air blocks.

        Returns:
            Tuple of (min_corner, max_corner) as (x, y, z), or None when the
            region holds only air
        """
        air = np.array([s.is_air for s in self.palette.states] or [True], dtype=bool)
        solid = ~air[self.blocks]
        found = np.argwhere(solid)
        if len(found) == 0:
            return None
        y1, z1, x1 = (int(v) for v in found.min(axis=0))
        y2, z2, x2 = (int(v) for v in found.max(axis=0))
        return (x1, y1, z1), (x2, y2, z2)

    def compact_palette(self):
        """Drop palette entries no block refers to."""
        self.palette, self.blocks = self.palette.compact(self.blocks)

    # -- block entities and entities -------------------------------------------

    def get_block_entity(self, position: Position) -> Optional[BlockEntity]:
        position = tuple(position)
        for block_entity in self.block_entities:
            if tuple(block_entity.position) == position:
                return block_entity
        return None

    def add_block_entity(self, block_entity: BlockEntity):
        """Add a block entity, replacing any at the same position."""
        self.remove_block_entity(block_entity.position)
        self.block_entities.append(block_entity)

    def remove_block_entity(self, position: Position) -> Optional[BlockEntity]:
        existing = self.get_block_entity(position)
        if existing is not None:
            self.block_entities.remove(existing)
        return existing

    def add_entity(self, entity: Entity):
        self.entities.append(entity)

    # -- invariants ------------------------------------------------------------

    def validate(self):
        """
        Check the region invariants.

        Raises:
            ArrayLengthMismatch: If the block array has the wrong shape
            PaletteOutOfRange: If a block or biome index has no palette entry
        """
        if self.blocks.shape != self.shape:
            raise ArrayLengthMismatch(
                f"Block array shape {self.blocks.shape} does not match region {self.shape}",
                field='blocks',
            )
        self.palette.validate_indices(self.blocks, field_name='blocks')
        if self.biomes is not None:
            if self.biomes.data.shape != self.shape:
                raise ArrayLengthMismatch(
                    f"Biome array shape {self.biomes.data.shape} does not match region {self.shape}",
                    field='biomes',
                )
            self.biomes.validate()
        for block_entity in self.block_entities:
            if not self.is_valid_position(*block_entity.position):
                logger.debug("Block entity %s at %s lies outside the region",
                             block_entity.id, block_entity.position)

    def state_keys(self) -> np.ndarray:
        """Object array of order-independent state keys, shaped like ``blocks``."""
        keys = np.empty(max(len(self.palette), 1), dtype=object)
        for i, state in enumerate(self.palette.states):
            keys[i] = _state_key(state)
        return keys[self.blocks]

    def same_blocks(self, other: 'VoxelRegion') -> bool:
        """True when both regions hold the same state at every position."""
        if self.shape != other.shape:
            return False
        return bool(np.array_equal(self.state_keys(), other.state_keys()))

    def __eq__(self, other):
        """Regions are equal when they describe the same voxels and auxiliary data; metadata is not compared."""
        if not isinstance(other, VoxelRegion):
            return NotImplemented
        return (self.size == other.size and
                _origin(self.offset) == _origin(other.offset) and
                self.same_blocks(other) and
                self.block_entities == other.block_entities and
                self.entities == other.entities and
                self.biomes == other.biomes)

    def clone(self) -> 'VoxelRegion':
        """Create a deep copy of this region."""
        return copy.deepcopy(self)


__all__ = ['VoxelRegion', 'BlockEntity', 'Entity', 'BiomeMap', 'Metadata']
