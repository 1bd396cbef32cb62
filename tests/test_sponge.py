"""Tests for the Sponge schematic adapter."""

import logging

import numpy as np
import pytest

from schemkit.config import CodecConfig
from schemkit.core.palette import BlockState
from schemkit.core.voxel_region import BiomeMap, Entity, VoxelRegion
from schemkit.errors import (
    ArrayLengthMismatch, PaletteNotDense, PaletteOutOfRange, UnsupportedDialectVersion,
)
from schemkit.formats import Format, load, save
from schemkit.formats.base import double_list, read_unsigned_short, unsigned_short
from schemkit.nbt import codec
from schemkit.nbt.tags import Compound, Int, IntArray, List, Short, String, byte_array


def sponge_root(**overrides) -> Compound:
    """A minimal 2x1x1 Sponge v2 body: air then stone."""
    root = Compound(
        Version=Int(2),
        DataVersion=Int(3465),
        Width=Short(2),
        Height=Short(1),
        Length=Short(1),
        PaletteMax=Int(2),
        Palette=Compound({'minecraft:air': Int(0), 'minecraft:stone': Int(1)}),
        BlockData=byte_array(b'\x00\x01'),
    )
    root.update(overrides)
    return root


def tree_of(data: bytes):
    return codec.decode(data)


class TestSpongeRoundTrip:
    """Test cases for encoding then decoding each version."""

    def test_v2(self, sample_region: VoxelRegion) -> None:
        data = save(sample_region, Format.SPONGE)
        loaded = load(data)

        assert loaded == sample_region
        assert loaded.metadata.source_format == 'sponge'
        assert loaded.metadata.format_version == 2
        assert loaded.metadata.name == 'sample'

    def test_v2_layout(self, sample_region: VoxelRegion) -> None:
        """v2 writes a root named Schematic with a flat palette and BlockEntities."""
        name, root = tree_of(save(sample_region, Format.SPONGE, compression='none'))
        assert name == 'Schematic'
        assert root['Version'] == Int(2)
        assert int(root['PaletteMax']) == len(root['Palette'])
        assert 'BlockEntities' in root and 'TileEntities' not in root
        assert isinstance(root['BlockEntities'][0]['Pos'], IntArray)
        assert root['BlockEntities'][0]['Pos'].tolist() == [1, 0, 0]
        assert root['BlockEntities'][0]['Id'] == String('minecraft:chest')

    def test_v1(self, single_block_region: VoxelRegion) -> None:
        data = save(single_block_region, Format.SPONGE, version=1, compression='none')
        name, root = tree_of(data)

        assert name == 'Schematic'
        assert 'TileEntities' in root
        assert 'DataVersion' not in root
        assert load(data) == single_block_region

    def test_v1_drops_entities(self, sample_region: VoxelRegion, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            loaded = load(save(sample_region, Format.SPONGE, version=1))
        assert loaded.entities == []
        assert loaded.block_entities == sample_region.block_entities
        assert 'dropping' in caplog.text

    def test_v3(self, sample_region: VoxelRegion) -> None:
        """v3 nests the body and payloads, and keeps 3D biomes."""
        sample_region.biomes = BiomeMap(
            ['minecraft:plains', 'minecraft:desert'],
            np.array([[[0, 0, 1], [0, 1, 1]], [[1, 1, 1], [0, 0, 0]]], dtype=np.int32),
        )
        data = save(sample_region, Format.SPONGE, version=3, compression='none')
        name, root = tree_of(data)

        assert name == ''
        body = root['Schematic']
        assert body['Version'] == Int(3)
        assert set(body['Blocks'].keys()) == {'Palette', 'Data', 'BlockEntities'}
        assert 'Items' in body['Blocks']['BlockEntities'][0]['Data']
        assert 'Invisible' in body['Entities'][0]['Data']

        loaded = load(data)
        assert loaded == sample_region
        assert loaded.metadata.format_version == 3

    def test_v3_keeps_outer_root_fields(self, single_block_region: VoxelRegion) -> None:
        """Fields beside the nested Schematic compound are written back beside it."""
        name, root = tree_of(save(single_block_region, Format.SPONGE, version=3, compression='none'))
        root['Custom'] = Compound(Note=String('kept'))
        loaded = load(codec.encode(name, root))

        assert loaded.metadata.outer_extra['Custom']['Note'] == String('kept')
        assert 'Custom' not in loaded.metadata.extra

        _, written = tree_of(save(loaded, Format.SPONGE, version=3, compression='none'))
        assert list(written.keys()) == ['Schematic', 'Custom']
        assert written['Custom']['Note'] == String('kept')
        assert 'Custom' not in written['Schematic']

    def test_v2_biomes_are_columns(self) -> None:
        region = VoxelRegion.create(2, 3, 1)
        columns = np.array([[0, 1]], dtype=np.int32)
        region.biomes = BiomeMap(['minecraft:plains', 'minecraft:forest'],
                                 np.broadcast_to(columns, region.shape).copy())
        loaded = load(save(region, Format.SPONGE))

        assert loaded.biomes == region.biomes
        assert loaded.biomes.get_biome(1, 2, 0) == 'minecraft:forest'

    def test_config_version(self, single_block_region: VoxelRegion) -> None:
        config = CodecConfig(sponge_version=3)
        name, root = tree_of(save(single_block_region, Format.SPONGE, compression='none', config=config))
        assert root['Schematic']['Version'] == Int(3)

    def test_large_palette_uses_multibyte_varints(self) -> None:
        """Indices of 128 and above take two varint bytes."""
        region = VoxelRegion.create(200, 1, 1)
        for x in range(200):
            region.set_block(x, 0, 0, BlockState(f'minecraft:block_{x}'))
        loaded = load(save(region, Format.SPONGE))
        assert loaded == region
        assert len(loaded.palette) == 200


class TestSpongeDecodeErrors:
    """Test cases for malformed Sponge input."""

    def test_minimal_body(self) -> None:
        region = load(codec.encode('Schematic', sponge_root()))
        assert region.size == (2, 1, 1)
        assert region.get_block(1, 0, 0).name == 'minecraft:stone'
        assert region.offset is None

    def test_unsupported_version(self) -> None:
        data = codec.encode('Schematic', sponge_root(Version=Int(4)))
        with pytest.raises(UnsupportedDialectVersion) as info:
            load(data)
        assert info.value.version == 4
        assert info.value.field == 'Version'

    def test_unsupported_encode_version(self, single_block_region: VoxelRegion) -> None:
        with pytest.raises(UnsupportedDialectVersion):
            save(single_block_region, Format.SPONGE, version=5)

    def test_palette_max_mismatch(self) -> None:
        with pytest.raises(PaletteNotDense):
            load(codec.encode('Schematic', sponge_root(PaletteMax=Int(3))))

    def test_palette_gap(self) -> None:
        palette = Compound({'minecraft:air': Int(0), 'minecraft:stone': Int(5)})
        with pytest.raises(PaletteNotDense):
            load(codec.encode('Schematic', sponge_root(Palette=palette, PaletteMax=Int(2))))

    def test_index_out_of_range(self) -> None:
        with pytest.raises(PaletteOutOfRange) as info:
            load(codec.encode('Schematic', sponge_root(BlockData=byte_array(b'\x00\x02'))))
        assert info.value.offset == 1

    def test_block_data_too_short(self) -> None:
        with pytest.raises(ArrayLengthMismatch):
            load(codec.encode('Schematic', sponge_root(BlockData=byte_array(b'\x00'))))

    def test_huge_dimensions_with_short_block_data(self) -> None:
        """Dimensions of 65535 cubed with one byte of BlockData fail before allocating."""
        root = sponge_root(Width=Short(-1), Height=Short(-1), Length=Short(-1),
                           BlockData=byte_array(b'\x00'))
        with pytest.raises(ArrayLengthMismatch) as info:
            load(codec.encode('Schematic', root))
        assert info.value.field == 'BlockData'

    def test_block_data_too_long(self) -> None:
        with pytest.raises(ArrayLengthMismatch):
            load(codec.encode('Schematic', sponge_root(BlockData=byte_array(b'\x00\x01\x01'))))

    def test_unsigned_dimensions(self) -> None:
        """Short dimensions above 32767 are read as unsigned."""
        tag = unsigned_short(40000)
        assert int(tag) < 0
        assert read_unsigned_short(Compound(Width=tag), 'Width') == 40000

    def test_entities_without_data(self) -> None:
        """v2 entities with only Pos and Id decode with an empty payload."""
        entity = Compound(Pos=double_list((0.5, 0.0, 0.5)), Id=String('minecraft:cow'))
        region = load(codec.encode('Schematic', sponge_root(Entities=List[Compound]([entity]))))
        assert region.entities == [Entity((0.5, 0.0, 0.5), 'minecraft:cow')]
