"""
Structure Block Format
======================

Vanilla structure files (``.nbt``) saved by structure blocks:

- ``size``: list of three ints
- ``palette``: list of ``{Name, Properties}`` compounds (or ``palettes``, a
  list of alternative palettes of which the first is used)
- ``blocks``: sparse list of ``{state, pos, nbt}``; positions not listed
  are left untouched when the structure is placed
- ``entities``: list of ``{pos, blockPos, nbt}``

Unlisted positions decode to ``minecraft:structure_void`` and void blocks
are left out of ``blocks`` on encode.
"""

import logging
import math
from typing import Dict, Tuple

import numpy as np

from schemkit.config import CodecConfig
from schemkit.core.palette import BlockState, Palette
from schemkit.core.voxel_region import BlockEntity, Entity, Metadata, VoxelRegion
from schemkit.errors import InvalidSchematic, PaletteOutOfRange
from schemkit.formats.base import (
    Format, FormatAdapter, check_volume, compound_list, double_list, int_list, read_int,
    read_position, read_vector, require_compound, split_payload, string_or_none,
)
from schemkit.nbt.tags import Tag, Compound, Int, List, String, get_int, get_str, require

logger = logging.getLogger(__name__)

STRUCTURE_VOID = BlockState('minecraft:structure_void')


class StructureSchematic(FormatAdapter):
    """Handler for vanilla structure ``.nbt`` files."""

    FORMAT = Format.STRUCTURE
    KNOWN_FIELDS = frozenset(('DataVersion', 'size', 'palette', 'palettes', 'blocks', 'entities', 'author'))

    @classmethod
    def detect(cls, root_name: str, root: Tag) -> bool:
        return (isinstance(root, Compound) and
                isinstance(root.get('size'), List) and
                isinstance(root.get('blocks'), List) and
                ('palette' in root or 'palettes' in root))

    @classmethod
    def decode(cls, root_name: str, root: Tag, config: CodecConfig) -> VoxelRegion:
        """Decode a structure root tag."""
        root = require_compound(root, "Structure")
        width, height, length = read_position(require(root, 'size', List), 'size')
        check_volume((width, height, length), config, 'size')

        if 'palette' in root:
            entries = compound_list(require(root, 'palette', List), 'palette')
        else:
            palettes = require(root, 'palettes', List)
            if len(palettes) == 0 or not isinstance(palettes[0], List):
                raise InvalidSchematic("Expected at least one palette", field='palettes')
            if len(palettes) > 1:
                logger.debug("Structure has %d palettes, using the first", len(palettes))
            entries = compound_list(palettes[0], 'palettes')
        palette = Palette(cls._read_state(entry) for entry in entries)
        size = len(palette)
        logger.debug("Structure %dx%dx%d, palette of %d", width, height, length, size)

        metadata = Metadata(
            source_format=Format.STRUCTURE.value,
            data_version=get_int(root, 'DataVersion'),
            author=string_or_none(root, 'author'),
        )
        metadata.extra = cls.collect_extra(root)
        region = VoxelRegion(width, height, length, palette=palette.copy(), metadata=metadata)
        region.blocks.fill(region.palette.index_of(STRUCTURE_VOID))

        for i, block in enumerate(compound_list(root.get('blocks'), 'blocks')):
            state = read_int(block, 'state')
            if not 0 <= state < size:
                raise PaletteOutOfRange(
                    f"Block state {state} has no palette entry (palette size {size})",
                    offset=i, field='blocks',
                )
            x, y, z = read_position(require(block, 'pos'), 'blocks')
            if not region.is_valid_position(x, y, z):
                raise InvalidSchematic(f"Block position {(x, y, z)} outside size {region.size}",
                                       field='blocks')
            region.blocks[y, z, x] = state
            nbt = block.get('nbt')
            if isinstance(nbt, Compound):
                region.block_entities.append(
                    BlockEntity((x, y, z), get_str(nbt, 'id', ''), split_payload(nbt, ('id',)))
                )

        for entity in compound_list(root.get('entities'), 'entities'):
            nbt = entity.get('nbt')
            nbt = nbt if isinstance(nbt, Compound) else Compound()
            region.entities.append(Entity(
                read_vector(require(entity, 'pos'), 'entities'),
                get_str(nbt, 'id', ''),
                split_payload(nbt, ('id',)),
            ))
        return region

    @staticmethod
    def _read_state(entry: Compound) -> BlockState:
        name = str(require(entry, 'Name', String))
        properties = entry.get('Properties')
        if isinstance(properties, Compound):
            return BlockState(name, {k: str(v) for k, v in properties.items()})
        return BlockState(name)

    @classmethod
    def encode(cls, region: VoxelRegion, config: CodecConfig, **options) -> Tuple[str, Compound]:
        """Encode a region as a structure file; structure void positions are omitted."""
        region.validate()
        palette, indices = region.palette.compact(region.blocks)

        states = [s for s in palette if s != STRUCTURE_VOID]
        remap = np.array([states.index(s) if s != STRUCTURE_VOID else -1 for s in palette] or [-1],
                         dtype=np.int64)
        indices = remap[indices]

        block_entities: Dict[Tuple[int, int, int], BlockEntity] = {
            tuple(be.position): be for be in region.block_entities
        }
        blocks = []
        for y, z, x in np.argwhere(indices >= 0):
            x, y, z = int(x), int(y), int(z)
            block = Compound(pos=int_list((x, y, z)), state=Int(int(indices[y, z, x])))
            be = block_entities.pop((x, y, z), None)
            if be is not None:
                block['nbt'] = cls._payload(be.id, be.data)
            blocks.append(block)
        for position in block_entities:
            logger.debug("Dropping block entity at %s: no block there", position)

        root = Compound()
        root['DataVersion'] = Int(region.metadata.data_version or config.data_version)
        if region.metadata.author is not None:
            root['author'] = String(region.metadata.author)
        root['size'] = int_list(region.size)
        root['palette'] = List[Compound]([cls._write_state(s) for s in states])
        root['blocks'] = List[Compound](blocks)
        root['entities'] = List[Compound]([
            Compound(
                pos=double_list(e.position),
                blockPos=int_list(math.floor(v) for v in e.position),
                nbt=cls._payload(e.id, e.data),
            )
            for e in region.entities
        ])
        cls.attach_extra(root, region.metadata.extra)
        return '', root

    @staticmethod
    def _payload(object_id: str, data: Compound) -> Compound:
        compound = Compound()
        if object_id:
            compound['id'] = String(object_id)
        FormatAdapter.attach_extra(compound, data)
        return compound

    @staticmethod
    def _write_state(state: BlockState) -> Compound:
        entry = Compound(Name=String(state.name))
        if state.properties:
            entry['Properties'] = Compound((k, String(v)) for k, v in state.properties.items())
        return entry
