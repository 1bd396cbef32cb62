"""
Sponge Schematic Format
=======================

Sponge ``.schem`` files (WorldEdit 7+), versions 1 to 3:

- v1: root ``Schematic``; ``Palette`` + ``PaletteMax`` + varint ``BlockData``,
  block entities under ``TileEntities``; no entities, no biomes.
- v2: adds ``DataVersion``, renames ``TileEntities`` to ``BlockEntities``,
  adds ``Entities`` and 2D (x/z) biomes in ``BiomePalette``/``BiomeData``.
- v3: the ``Schematic`` compound is nested in an unnamed root; blocks move to
  ``Blocks{Palette, Data, BlockEntities}``, biomes become 3D in
  ``Biomes{Palette, Data}``, and block entity / entity payloads are nested
  under ``Data``.
  Fields next to ``Schematic`` in the outer root are kept in
  ``metadata.outer_extra``.

Dimensions are unsigned shorts; block and biome indices are varint arrays
in y-z-x order.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from schemkit.config import CodecConfig
from schemkit.core.packing import decode_varints, encode_varints
from schemkit.core.palette import Palette, dense_order
from schemkit.core.voxel_region import (
    BiomeMap, BlockEntity, Entity, Metadata, VoxelRegion,
)
from schemkit.errors import InvalidSchematic, UnsupportedDialectVersion
from schemkit.formats.base import (
    Format, FormatAdapter, compound_list, double_list, entity_from_flat,
    block_entity_from_flat, int_array, read_int, read_position, read_unsigned_short,
    read_vector, require_compound, split_payload, string_or_none, unsigned_short,
)
from schemkit.nbt.tags import (
    Tag, ByteArray, Compound, Int, List, Long, String, INTEGER_TYPES,
    byte_array, get_int, get_str, require,
)

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = (1, 2, 3)

_COMMON_FIELDS = ('Version', 'DataVersion', 'Width', 'Height', 'Length', 'Offset', 'Metadata')
_V2_FIELDS = frozenset(_COMMON_FIELDS + (
    'Palette', 'PaletteMax', 'BlockData', 'BlockEntities', 'TileEntities', 'Entities',
    'BiomePalette', 'BiomePaletteMax', 'BiomeData',
))
_V3_FIELDS = frozenset(_COMMON_FIELDS + ('Blocks', 'Biomes', 'Entities'))
_METADATA_FIELDS = ('Name', 'Author', 'Date')


class SpongeSchematic(FormatAdapter):
    """Handler for Sponge schematic files."""

    FORMAT = Format.SPONGE
    KNOWN_FIELDS = _V2_FIELDS

    @classmethod
    def _body(cls, root: Tag) -> Tuple[Optional[Compound], bool]:
        """Return (schematic compound, nested in an outer root)."""
        if not isinstance(root, Compound):
            return None, False
        inner = root.get('Schematic')
        if isinstance(inner, Compound) and 'Version' in inner:
            return inner, True
        return root, False

    @classmethod
    def detect(cls, root_name: str, root: Tag) -> bool:
        body, nested = cls._body(root)
        if body is None or not isinstance(body.get('Version'), INTEGER_TYPES):
            return False
        if nested:
            return 'Blocks' in body or 'Width' in body
        return 'Palette' in body or 'BlockData' in body

    # -- decode -----------------------------------------------------------------

    @classmethod
    def decode(cls, root_name: str, root: Tag, config: CodecConfig) -> VoxelRegion:
        """
        Decode a Sponge schematic root tag.

        Raises:
            UnsupportedDialectVersion: For versions other than 1, 2 and 3
        """
        root = require_compound(root, "Sponge schematic")
        body, nested = cls._body(root)
        version = read_int(body, 'Version')
        if version not in SUPPORTED_VERSIONS:
            raise UnsupportedDialectVersion('Sponge', version, field='Version')

        width = read_unsigned_short(body, 'Width')
        height = read_unsigned_short(body, 'Height')
        length = read_unsigned_short(body, 'Length')
        volume = width * height * length
        logger.debug("Sponge v%d schematic %dx%dx%d", version, width, height, length)

        if version == 3:
            blocks_tag = require(body, 'Blocks', Compound)
            palette_tag = require(blocks_tag, 'Palette', Compound)
            data_tag = require(blocks_tag, 'Data', ByteArray)
            palette = cls._read_palette(palette_tag, None, 'Blocks.Palette')
            block_data_field = 'Blocks.Data'
        else:
            palette_tag = require(body, 'Palette', Compound)
            data_tag = require(body, 'BlockData', ByteArray)
            palette_max = get_int(body, 'PaletteMax')
            palette = cls._read_palette(palette_tag, palette_max, 'Palette')
            block_data_field = 'BlockData'

        indices = decode_varints(data_tag.tobytes(), volume, field=block_data_field)
        palette.validate_indices(indices, field_name=block_data_field)

        region = VoxelRegion(
            width, height, length,
            palette=palette,
            blocks=indices.astype(np.int32),
            offset=read_position(body['Offset'], 'Offset') if 'Offset' in body else None,
            metadata=cls._read_metadata(body, version),
        )
        if nested:
            region.metadata.outer_extra = Compound(
                (key, value) for key, value in root.items() if key != 'Schematic'
            )

        if version == 3:
            region.block_entities = [
                cls._read_nested_block_entity(c)
                for c in compound_list(blocks_tag.get('BlockEntities'), 'Blocks.BlockEntities')
            ]
            region.entities = [
                cls._read_nested_entity(c)
                for c in compound_list(body.get('Entities'), 'Entities')
            ]
            if 'Biomes' in body:
                region.biomes = cls._read_biomes_v3(require(body, 'Biomes', Compound), region)
            region.metadata.extra = cls.collect_extra(body, _V3_FIELDS)
        else:
            key = 'TileEntities' if version == 1 else 'BlockEntities'
            if key not in body:
                key = 'BlockEntities' if key == 'TileEntities' else 'TileEntities'
            region.block_entities = [
                block_entity_from_flat(c, 'Pos', ('Id', 'id'), key)
                for c in compound_list(body.get(key), key)
            ]
            region.entities = [
                entity_from_flat(c, 'Pos', ('Id', 'id'), 'Entities')
                for c in compound_list(body.get('Entities'), 'Entities')
            ]
            if 'BiomeData' in body:
                region.biomes = cls._read_biomes_v2(body, region)
            region.metadata.extra = cls.collect_extra(body, _V2_FIELDS)

        return region

    @staticmethod
    def _read_palette(palette_tag: Compound, declared_max: Optional[int], field: str) -> Palette:
        mapping = {}
        for key, value in palette_tag.items():
            if not isinstance(value, INTEGER_TYPES):
                raise InvalidSchematic(f"Palette entry '{key}' is not an integer", field=field)
            mapping[key] = int(value)
        return Palette.from_mapping(mapping, declared_size=declared_max, field_name=field)

    @staticmethod
    def _read_metadata(body: Compound, version: int) -> Metadata:
        metadata = Metadata(
            source_format=Format.SPONGE.value,
            format_version=version,
            data_version=get_int(body, 'DataVersion'),
        )
        meta_tag = body.get('Metadata')
        if isinstance(meta_tag, Compound):
            metadata.name = string_or_none(meta_tag, 'Name')
            metadata.author = string_or_none(meta_tag, 'Author')
            metadata.created = get_int(meta_tag, 'Date')
            metadata.attributes = split_payload(meta_tag, _METADATA_FIELDS)
        return metadata

    @staticmethod
    def _read_nested_block_entity(compound: Compound) -> BlockEntity:
        position = read_position(require(compound, 'Pos'), 'Blocks.BlockEntities')
        data = compound.get('Data')
        return BlockEntity(
            position,
            get_str(compound, 'Id', ''),
            data if isinstance(data, Compound) else Compound(),
        )

    @staticmethod
    def _read_nested_entity(compound: Compound) -> Entity:
        position = read_vector(require(compound, 'Pos'), 'Entities')
        data = compound.get('Data')
        return Entity(
            position,
            get_str(compound, 'Id', ''),
            data if isinstance(data, Compound) else Compound(),
        )

    @staticmethod
    def _biome_palette(palette_tag: Compound, declared_max: Optional[int], field: str):
        mapping = {key: int(value) for key, value in palette_tag.items()
                   if isinstance(value, INTEGER_TYPES)}
        if len(mapping) != len(palette_tag):
            raise InvalidSchematic("Biome palette entries must be integers", field=field)
        return [str(k) for k in dense_order(mapping, declared_max, field)]

    @classmethod
    def _read_biomes_v2(cls, body: Compound, region: VoxelRegion) -> BiomeMap:
        names = cls._biome_palette(require(body, 'BiomePalette', Compound),
                                   get_int(body, 'BiomePaletteMax'), 'BiomePalette')
        raw = require(body, 'BiomeData', ByteArray).tobytes()
        columns = decode_varints(raw, region.width * region.length, field='BiomeData')
        data = np.broadcast_to(
            columns.reshape(region.length, region.width), region.shape
        ).astype(np.int32)
        biomes = BiomeMap(names, data)
        biomes.validate()
        return biomes

    @classmethod
    def _read_biomes_v3(cls, biomes_tag: Compound, region: VoxelRegion) -> BiomeMap:
        names = cls._biome_palette(require(biomes_tag, 'Palette', Compound), None, 'Biomes.Palette')
        raw = require(biomes_tag, 'Data', ByteArray).tobytes()
        data = decode_varints(raw, region.volume, field='Biomes.Data')
        biomes = BiomeMap(names, data.reshape(region.shape).astype(np.int32))
        biomes.validate()
        return biomes

    # -- encode -----------------------------------------------------------------

    @classmethod
    def encode(cls, region: VoxelRegion, config: CodecConfig,
               version: Optional[int] = None, **options) -> Tuple[str, Compound]:
        """
        Encode a region as a Sponge schematic.

        Args:
            region: Region to encode
            config: Codec configuration
            version: Sponge version (1, 2 or 3); ``config.sponge_version`` if None

        Returns:
            Tuple of (root name, root compound)
        """
        version = version or config.sponge_version
        if version not in SUPPORTED_VERSIONS:
            raise UnsupportedDialectVersion('Sponge', version, field='Version')
        region.validate()

        palette, indices = region.palette.compact(region.blocks)
        palette_tag = Compound((str(state), Int(i)) for i, state in enumerate(palette))
        block_data = byte_array(encode_varints(indices.reshape(-1)))

        body = Compound()
        body['Version'] = Int(version)
        if version >= 2:
            body['DataVersion'] = Int(region.metadata.data_version or config.data_version)
        body['Metadata'] = cls._write_metadata(region.metadata)
        body['Width'] = unsigned_short(region.width)
        body['Height'] = unsigned_short(region.height)
        body['Length'] = unsigned_short(region.length)
        body['Offset'] = int_array(region.offset or (0, 0, 0))

        if version == 3:
            blocks = Compound(Palette=palette_tag, Data=block_data)
            blocks['BlockEntities'] = List[Compound]([
                cls._write_nested(be.position, be.id, be.data, int_array)
                for be in region.block_entities
            ])
            body['Blocks'] = blocks
            if region.biomes is not None:
                body['Biomes'] = Compound(
                    Palette=Compound((name, Int(i)) for i, name in enumerate(region.biomes.palette)),
                    Data=byte_array(encode_varints(region.biomes.data.reshape(-1))),
                )
            body['Entities'] = List[Compound]([
                cls._write_nested(e.position, e.id, e.data, double_list)
                for e in region.entities
            ])
        else:
            body['PaletteMax'] = Int(len(palette))
            body['Palette'] = palette_tag
            body['BlockData'] = block_data
            key = 'TileEntities' if version == 1 else 'BlockEntities'
            body[key] = List[Compound]([
                cls._write_flat(be.position, be.id, be.data, int_array)
                for be in region.block_entities
            ])
            if version == 2:
                body['Entities'] = List[Compound]([
                    cls._write_flat(e.position, e.id, e.data, double_list)
                    for e in region.entities
                ])
                if region.biomes is not None:
                    cls._write_biomes_v2(body, region.biomes)
            elif region.entities or region.biomes is not None:
                logger.warning("Sponge v1 cannot store entities or biomes; dropping them")

        cls.attach_extra(body, region.metadata.extra)

        if version == 3:
            outer = Compound(Schematic=body)
            cls.attach_extra(outer, region.metadata.outer_extra)
            return '', outer
        cls.attach_extra(body, region.metadata.outer_extra)
        return 'Schematic', body

    @staticmethod
    def _write_metadata(metadata: Metadata) -> Compound:
        meta = Compound()
        if metadata.name is not None:
            meta['Name'] = String(metadata.name)
        if metadata.author is not None:
            meta['Author'] = String(metadata.author)
        if metadata.created is not None:
            meta['Date'] = Long(metadata.created)
        FormatAdapter.attach_extra(meta, metadata.attributes)
        return meta

    @staticmethod
    def _write_flat(position, object_id: str, data: Compound, position_tag) -> Compound:
        compound = Compound(Pos=position_tag(position))
        if object_id:
            compound['Id'] = String(object_id)
        FormatAdapter.attach_extra(compound, data)
        return compound

    @staticmethod
    def _write_nested(position, object_id: str, data: Compound, position_tag) -> Compound:
        compound = Compound(Pos=position_tag(position))
        if object_id:
            compound['Id'] = String(object_id)
        if data:
            compound['Data'] = data
        return compound

    @staticmethod
    def _write_biomes_v2(body: Compound, biomes: BiomeMap):
        layer = biomes.data[0]
        if biomes.data.shape[0] > 1 and not np.all(biomes.data == layer):
            logger.debug("Sponge v2 stores 2D biomes; keeping the bottom layer only")
        body['BiomePaletteMax'] = Int(len(biomes.palette))
        body['BiomePalette'] = Compound((name, Int(i)) for i, name in enumerate(biomes.palette))
        body['BiomeData'] = byte_array(encode_varints(layer.reshape(-1)))
