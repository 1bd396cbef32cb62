"""
Legacy Schematic Format
=======================

MCEdit / WorldEdit ``.schematic`` files, the pre-1.13 format that stores
numeric block ids:

- ``Blocks``: one unsigned byte per position (low 8 bits of the id)
- ``AddBlocks``: optional nibble array holding bits 8..11 of the id
- ``Data``: one byte per position, the low nibble is the data value
- ``TileEntities``: compounds with ``x``, ``y``, ``z`` and ``id``
- ``WEOffsetX/Y/Z``: WorldEdit copy offset
"""

import logging
from typing import Tuple

import numpy as np

from schemkit.config import CodecConfig
from schemkit.core.palette import Palette
from schemkit.core.packing import pack_bytes, unpack_bytes
from schemkit.core.voxel_region import BlockEntity, Metadata, VoxelRegion
from schemkit.errors import ArrayLengthMismatch
from schemkit.formats.base import (
    Format, FormatAdapter, compound_list, double_list, entity_from_flat, read_int,
    read_position, read_unsigned_short, require_compound, split_payload, unsigned_short,
)
from schemkit.formats.legacy_blocks import STONE_ID, block_state_for, legacy_id_for
from schemkit.nbt.tags import (
    Tag, ByteArray, Compound, Int, List, String, byte_array, get_str, require,
)

logger = logging.getLogger(__name__)

_OFFSET_KEYS = ('WEOffsetX', 'WEOffsetY', 'WEOffsetZ')
_ORIGIN_KEYS = ('WEOriginX', 'WEOriginY', 'WEOriginZ')


class LegacySchematic(FormatAdapter):
    """Handler for MCEdit ``.schematic`` files."""

    FORMAT = Format.LEGACY
    KNOWN_FIELDS = frozenset(
        ('Width', 'Height', 'Length', 'Materials', 'Blocks', 'AddBlocks', 'Data',
         'Entities', 'TileEntities') + _OFFSET_KEYS + _ORIGIN_KEYS
    )

    @staticmethod
    def _body(root: Tag):
        if isinstance(root, Compound) and isinstance(root.get('Schematic'), Compound):
            return root['Schematic']
        return root

    @classmethod
    def detect(cls, root_name: str, root: Tag) -> bool:
        body = cls._body(root)
        if not isinstance(body, Compound) or not isinstance(body.get('Blocks'), ByteArray):
            return False
        return 'Materials' in body or 'Palette' not in body

    @classmethod
    def decode(cls, root_name: str, root: Tag, config: CodecConfig) -> VoxelRegion:
        """Decode a legacy schematic root tag."""
        body = require_compound(cls._body(root), "Legacy schematic")
        width = read_unsigned_short(body, 'Width')
        height = read_unsigned_short(body, 'Height')
        length = read_unsigned_short(body, 'Length')
        volume = width * height * length
        logger.debug("Legacy schematic %dx%dx%d", width, height, length)

        ids = unpack_bytes(require(body, 'Blocks', ByteArray).tobytes(), volume, field='Blocks')
        if 'AddBlocks' in body:
            ids = ids | (cls._unpack_nibbles(require(body, 'AddBlocks', ByteArray), volume) << 8)
        if 'Data' in body:
            data = unpack_bytes(require(body, 'Data', ByteArray).tobytes(), volume, field='Data') & 0xF
        else:
            data = np.zeros(volume, dtype=ids.dtype)

        keys, inverse = np.unique((ids << 4) | data, return_inverse=True)
        palette = Palette(block_state_for(int(key) >> 4, int(key) & 0xF) for key in keys)

        offset = None
        if all(k in body for k in _OFFSET_KEYS):
            offset = tuple(read_int(body, k) for k in _OFFSET_KEYS)

        metadata = Metadata(source_format=Format.LEGACY.value)
        metadata.attributes = Compound((k, body[k]) for k in _ORIGIN_KEYS if k in body)
        metadata.extra = cls.collect_extra(body)

        region = VoxelRegion(
            width, height, length,
            palette=palette,
            blocks=inverse.reshape(-1).astype(np.int32),
            offset=offset,
            metadata=metadata,
        )
        region.block_entities = [
            cls._read_tile_entity(c) for c in compound_list(body.get('TileEntities'), 'TileEntities')
        ]
        region.entities = [
            entity_from_flat(c, 'Pos', ('id',), 'Entities')
            for c in compound_list(body.get('Entities'), 'Entities')
        ]
        return region

    @staticmethod
    def _unpack_nibbles(tag: ByteArray, count: int) -> np.ndarray:
        """AddBlocks holds two entries per byte, high nibble first."""
        raw = np.frombuffer(tag.tobytes(), dtype=np.uint8).astype(np.int64)
        if len(raw) * 2 < count:
            raise ArrayLengthMismatch(
                f"AddBlocks has {len(raw)} bytes, {(count + 1) // 2} required", field='AddBlocks'
            )
        nibbles = np.empty(len(raw) * 2, dtype=np.int64)
        nibbles[0::2] = raw >> 4
        nibbles[1::2] = raw & 0xF
        return nibbles[:count]

    @staticmethod
    def _pack_nibbles(values: np.ndarray) -> bytes:
        values = np.asarray(values, dtype=np.uint8).reshape(-1)
        if len(values) % 2:
            values = np.append(values, np.uint8(0))
        return ((values[0::2] << 4) | values[1::2]).astype(np.uint8).tobytes()

    @staticmethod
    def _read_tile_entity(compound: Compound) -> BlockEntity:
        position = read_position(compound, 'TileEntities')
        return BlockEntity(
            position,
            get_str(compound, 'id', ''),
            split_payload(compound, ('x', 'y', 'z', 'id')),
        )

    @classmethod
    def encode(cls, region: VoxelRegion, config: CodecConfig, **options) -> Tuple[str, Compound]:
        """
        Encode a region as a legacy schematic.

        States without a legacy id are written as stone.
        """
        region.validate()
        count = max(len(region.palette), 1)
        id_lut = np.zeros(count, dtype=np.int64)
        data_lut = np.zeros(count, dtype=np.int64)
        for index, state in enumerate(region.palette):
            pair = legacy_id_for(state)
            if pair is None:
                logger.warning("No legacy id for %s, writing stone", state)
                pair = (STONE_ID, 0)
            id_lut[index], data_lut[index] = pair

        flat = region.blocks.reshape(-1)
        ids = id_lut[flat]
        data = data_lut[flat]

        body = Compound()
        body['Width'] = unsigned_short(region.width)
        body['Height'] = unsigned_short(region.height)
        body['Length'] = unsigned_short(region.length)
        body['Materials'] = String('Alpha')
        body['Blocks'] = byte_array(pack_bytes(ids & 0xFF))
        if np.any(ids > 0xFF):
            body['AddBlocks'] = byte_array(cls._pack_nibbles(ids >> 8))
        body['Data'] = byte_array(pack_bytes(data))
        body['Entities'] = List[Compound]([
            cls._write_entity(e.position, e.id, e.data) for e in region.entities
        ])
        body['TileEntities'] = List[Compound]([
            cls._write_tile_entity(be) for be in region.block_entities
        ])
        if region.offset is not None:
            for key, value in zip(_OFFSET_KEYS, region.offset):
                body[key] = Int(value)
        cls.attach_extra(body, region.metadata.attributes)
        cls.attach_extra(body, region.metadata.extra)
        return 'Schematic', body

    @staticmethod
    def _write_entity(position, entity_id: str, data: Compound) -> Compound:
        compound = Compound()
        if entity_id:
            compound['id'] = String(entity_id)
        compound['Pos'] = double_list(position)
        FormatAdapter.attach_extra(compound, data)
        return compound

    @staticmethod
    def _write_tile_entity(block_entity: BlockEntity) -> Compound:
        x, y, z = block_entity.position
        compound = Compound(x=Int(x), y=Int(y), z=Int(z))
        if block_entity.id:
            compound['id'] = String(block_entity.id)
        FormatAdapter.attach_extra(compound, block_entity.data)
        return compound
