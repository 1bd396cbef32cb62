"""
Litematica Schematic Format
===========================

``.litematic`` files written by the Litematica mod. The unnamed root holds
a ``Metadata`` compound and a ``Regions`` compound of named sub-regions.
Each region has:

- ``Position``: region origin relative to the schematic origin
- ``Size``: extent per axis; a negative component means the region grows
  towards negative coordinates from ``Position``
- ``BlockStatePalette``: list of ``{Name, Properties}`` compounds
- ``BlockStates``: palette indices in a long array, DENSE packing, at least
  2 bits per entry, y-z-x order over the absolute size
- ``TileEntities`` (``x, y, z`` relative to the region's minimum corner)
  and ``Entities`` (``Pos`` relative to the same corner)

All regions are merged into one VoxelRegion spanning their bounding box.
"""

import logging
from dataclasses import dataclass
from typing import List as ListType, Optional, Tuple

import numpy as np

from schemkit.config import CodecConfig
from schemkit.core.packing import PackingPolicy, bits_for, pack_longs, unpack_longs
from schemkit.core.palette import BlockState, Palette
from schemkit.core.voxel_region import BlockEntity, Entity, Metadata, VoxelRegion
from schemkit.errors import InvalidSchematic, UnsupportedDialectVersion
from schemkit.formats.base import (
    Format, FormatAdapter, check_volume, compound_list, double_list, entity_from_flat,
    read_int, read_position, require_compound, split_payload, string_or_none, xyz_compound,
)
from schemkit.nbt.tags import (
    Tag, Compound, Int, List, Long, LongArray, String, INTEGER_TYPES, get_int, get_str, require,
)

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = range(4, 8)
MIN_BITS = 2

_METADATA_FIELDS = (
    'Name', 'Author', 'Description', 'TimeCreated', 'TimeModified',
    'EnclosingSize', 'RegionCount', 'TotalBlocks', 'TotalVolume',
)


@dataclass
class _SubRegion:
    """One decoded ``Regions`` entry, in its own coordinates."""
    name: str
    origin: Tuple[int, int, int]
    size: Tuple[int, int, int]
    palette: Palette
    blocks: np.ndarray
    block_entities: ListType[BlockEntity]
    entities: ListType[Entity]


def _normalise(position, size) -> Tuple[Tuple[int, int, int], Tuple[int, int, int]]:
    """Minimum corner and absolute size of a region with signed size."""
    origin = tuple(p + s + 1 if s < 0 else p for p, s in zip(position, size))
    return origin, tuple(abs(s) for s in size)


class LitematicSchematic(FormatAdapter):
    """Handler for Litematica ``.litematic`` files."""

    FORMAT = Format.LITEMATIC
    KNOWN_FIELDS = frozenset(('Version', 'SubVersion', 'MinecraftDataVersion', 'Metadata', 'Regions'))

    @classmethod
    def detect(cls, root_name: str, root: Tag) -> bool:
        return (isinstance(root, Compound) and
                isinstance(root.get('Regions'), Compound) and
                isinstance(root.get('Version'), INTEGER_TYPES))

    # -- decode -----------------------------------------------------------------

    @classmethod
    def decode(cls, root_name: str, root: Tag, config: CodecConfig) -> VoxelRegion:
        """
        Decode a Litematica root tag, merging every sub-region.

        Raises:
            UnsupportedDialectVersion: For versions outside 4..7
            InvalidSchematic: If there are no regions
        """
        root = require_compound(root, "Litematic")
        version = read_int(root, 'Version')
        if version not in SUPPORTED_VERSIONS:
            raise UnsupportedDialectVersion('Litematic', version, field='Version')

        regions = [
            cls._read_region(name, require_compound(tag, f"Region '{name}'"), config)
            for name, tag in require(root, 'Regions', Compound).items()
        ]
        if not regions:
            raise InvalidSchematic("Litematic has no regions", field='Regions')
        logger.debug("Litematic v%d with %d region(s)", version, len(regions))

        region = regions[0] if len(regions) == 1 else None
        if region is not None:
            merged = VoxelRegion(*region.size, palette=region.palette, blocks=region.blocks,
                                 offset=region.origin)
            merged.block_entities = region.block_entities
            merged.entities = region.entities
        else:
            merged = cls._merge(regions, config)

        merged.metadata = cls._read_metadata(root, version)
        return merged

    @classmethod
    def _read_region(cls, name: str, tag: Compound, config: CodecConfig) -> _SubRegion:
        position = read_position(require(tag, 'Position'), f'{name}.Position')
        signed_size = read_position(require(tag, 'Size'), f'{name}.Size')
        if 0 in signed_size:
            raise InvalidSchematic(f"Region '{name}' has zero size {signed_size}", field=f'{name}.Size')
        origin, size = _normalise(position, signed_size)
        check_volume(size, config, f'{name}.Size')
        width, height, length = size
        volume = width * height * length

        palette = Palette(
            cls._read_state(entry, name)
            for entry in compound_list(require(tag, 'BlockStatePalette', List), f'{name}.BlockStatePalette')
        )
        bits = bits_for(len(palette), minimum=MIN_BITS)
        field = f'{name}.BlockStates'
        indices = unpack_longs(np.asarray(require(tag, 'BlockStates', LongArray)), volume, bits,
                               PackingPolicy.DENSE, field=field)
        palette.validate_indices(indices, field_name=field)

        block_entities = [
            BlockEntity(read_position(c, f'{name}.TileEntities'),
                        get_str(c, 'id', ''),
                        split_payload(c, ('x', 'y', 'z', 'id')))
            for c in compound_list(tag.get('TileEntities'), f'{name}.TileEntities')
        ]
        entities = [
            entity_from_flat(c, 'Pos', ('id',), f'{name}.Entities')
            for c in compound_list(tag.get('Entities'), f'{name}.Entities')
        ]
        for key in tag:
            if key in ('PendingBlockTicks', 'PendingFluidTicks') and len(tag[key]):
                logger.debug("Region '%s': dropping %d %s", name, len(tag[key]), key)
        return _SubRegion(name, origin, size, palette, indices.reshape(height, length, width),
                          block_entities, entities)

    @staticmethod
    def _read_state(entry: Compound, region_name: str) -> BlockState:
        name = require(entry, 'Name', String)
        properties = entry.get('Properties')
        if properties is None:
            return BlockState(str(name))
        if not isinstance(properties, Compound):
            raise InvalidSchematic("Block state properties must be a compound",
                                   field=f'{region_name}.BlockStatePalette')
        return BlockState(str(name), {k: str(v) for k, v in properties.items()})

    @staticmethod
    def _merge(regions: ListType[_SubRegion], config: CodecConfig) -> VoxelRegion:
        """Combine sub-regions into their bounding box; later non-air blocks win."""
        low = tuple(min(r.origin[i] for r in regions) for i in range(3))
        high = tuple(max(r.origin[i] + r.size[i] for r in regions) for i in range(3))
        width, height, length = (high[i] - low[i] for i in range(3))
        check_volume((width, height, length), config, 'Regions')

        palette = Palette([BlockState.AIR])
        merged = VoxelRegion(width, height, length, palette=palette, offset=low)
        for sub in regions:
            remap = np.array([palette.index_of(s) for s in sub.palette] or [0], dtype=np.int32)
            solid = np.array([not s.is_air for s in sub.palette] or [False], dtype=bool)
            dx, dy, dz = (sub.origin[i] - low[i] for i in range(3))
            w, h, l = sub.size
            target = merged.blocks[dy:dy + h, dz:dz + l, dx:dx + w]
            mask = solid[sub.blocks]
            target[mask] = remap[sub.blocks][mask]

            for be in sub.block_entities:
                x, y, z = be.position
                merged.add_block_entity(BlockEntity((x + dx, y + dy, z + dz), be.id, be.data))
            for entity in sub.entities:
                x, y, z = entity.position
                merged.add_entity(Entity((x + dx, y + dy, z + dz), entity.id, entity.data))
        return merged

    @classmethod
    def _read_metadata(cls, root: Compound, version: int) -> Metadata:
        metadata = Metadata(
            source_format=Format.LITEMATIC.value,
            format_version=version,
            data_version=get_int(root, 'MinecraftDataVersion'),
        )
        meta = root.get('Metadata')
        if isinstance(meta, Compound):
            metadata.name = string_or_none(meta, 'Name')
            metadata.author = string_or_none(meta, 'Author')
            metadata.description = string_or_none(meta, 'Description')
            metadata.created = get_int(meta, 'TimeCreated')
            metadata.modified = get_int(meta, 'TimeModified')
            metadata.attributes = split_payload(meta, _METADATA_FIELDS)
        metadata.extra = cls.collect_extra(root)
        return metadata

    # -- encode -----------------------------------------------------------------

    @classmethod
    def encode(cls, region: VoxelRegion, config: CodecConfig,
               region_name: Optional[str] = None, **options) -> Tuple[str, Compound]:
        """
        Encode a region as a single-region Litematica schematic.

        Args:
            region: Region to encode
            config: Codec configuration
            region_name: Name of the sub-region; the schematic name if None
        """
        region.validate()
        palette, indices = region.palette.compact(region.blocks, keep=(BlockState.AIR,))
        bits = bits_for(len(palette), minimum=MIN_BITS)
        name = region_name or region.metadata.name or 'Unnamed'
        total_blocks = int(np.count_nonzero(~np.array([s.is_air for s in palette])[indices]))

        sub = Compound()
        sub['Position'] = xyz_compound(region.offset or (0, 0, 0))
        sub['Size'] = xyz_compound(region.size)
        sub['BlockStatePalette'] = List[Compound]([cls._write_state(s) for s in palette])
        sub['BlockStates'] = LongArray(pack_longs(indices.reshape(-1), bits, PackingPolicy.DENSE))
        sub['TileEntities'] = List[Compound]([cls._write_tile_entity(be) for be in region.block_entities])
        sub['Entities'] = List[Compound]([cls._write_entity(e) for e in region.entities])
        sub['PendingBlockTicks'] = List[Compound]()
        sub['PendingFluidTicks'] = List[Compound]()

        root = Compound()
        root['Version'] = Int(config.litematic_version)
        root['SubVersion'] = Int(config.litematic_subversion)
        root['MinecraftDataVersion'] = Int(region.metadata.data_version or config.data_version)
        root['Metadata'] = cls._write_metadata(region, name, total_blocks)
        root['Regions'] = Compound({name: sub})
        cls.attach_extra(root, region.metadata.extra)
        return '', root

    @staticmethod
    def _write_state(state: BlockState) -> Compound:
        entry = Compound(Name=String(state.name))
        if state.properties:
            entry['Properties'] = Compound((k, String(v)) for k, v in state.properties.items())
        return entry

    @staticmethod
    def _write_tile_entity(block_entity: BlockEntity) -> Compound:
        compound = xyz_compound(block_entity.position)
        if block_entity.id:
            compound['id'] = String(block_entity.id)
        FormatAdapter.attach_extra(compound, block_entity.data)
        return compound

    @staticmethod
    def _write_entity(entity: Entity) -> Compound:
        compound = Compound()
        if entity.id:
            compound['id'] = String(entity.id)
        compound['Pos'] = double_list(entity.position)
        FormatAdapter.attach_extra(compound, entity.data)
        return compound

    @staticmethod
    def _write_metadata(region: VoxelRegion, name: str, total_blocks: int) -> Compound:
        meta = region.metadata
        compound = Compound()
        compound['Name'] = String(meta.name or name)
        compound['Author'] = String(meta.author or '')
        compound['Description'] = String(meta.description or '')
        compound['TimeCreated'] = Long(meta.created or 0)
        compound['TimeModified'] = Long(meta.modified or meta.created or 0)
        compound['EnclosingSize'] = xyz_compound(region.size)
        compound['RegionCount'] = Int(1)
        compound['TotalBlocks'] = Int(total_blocks)
        compound['TotalVolume'] = Int(region.volume)
        FormatAdapter.attach_extra(compound, meta.attributes)
        return compound
