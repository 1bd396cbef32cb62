"""Tests for the Litematica adapter."""

import pytest

from schemkit.config import CodecConfig
from schemkit.core.packing import PackingPolicy, bits_for, pack_longs, packed_length
from schemkit.core.palette import BlockState
from schemkit.core.voxel_region import BlockEntity, VoxelRegion
from schemkit.errors import ArrayLengthMismatch, InvalidSchematic, UnsupportedDialectVersion
from schemkit.formats import Format, load, save
from schemkit.formats.base import xyz_compound
from schemkit.nbt import codec
from schemkit.nbt.tags import Compound, Int, List, LongArray, String

STONE = BlockState('minecraft:stone')
DIRT = BlockState('minecraft:dirt')


def state_entry(state: BlockState) -> Compound:
    entry = Compound(Name=String(state.name))
    if state.properties:
        entry['Properties'] = Compound((k, String(v)) for k, v in state.properties.items())
    return entry


def make_region(position, size, states, indices, **extra) -> Compound:
    """A Regions entry with its block states packed the way Litematica does."""
    bits = bits_for(len(states), minimum=2)
    region = Compound(
        Position=xyz_compound(position),
        Size=xyz_compound(size),
        BlockStatePalette=List[Compound]([state_entry(s) for s in states]),
        BlockStates=LongArray(pack_longs(indices, bits, PackingPolicy.DENSE)),
    )
    region.update(extra)
    return region


def make_root(regions: dict, version: int = 6) -> Compound:
    return Compound(
        Version=Int(version),
        SubVersion=Int(1),
        MinecraftDataVersion=Int(3465),
        Metadata=Compound(Name=String('test'), Author=String('tester')),
        Regions=Compound(regions),
    )


def load_root(root: Compound) -> VoxelRegion:
    return load(codec.encode('', root))


class TestLitematicRoundTrip:
    """Test cases for encoding then decoding."""

    def test_round_trip(self, sample_region: VoxelRegion) -> None:
        loaded = load(save(sample_region, Format.LITEMATIC))
        assert loaded == sample_region
        assert loaded.metadata.source_format == 'litematic'
        assert loaded.metadata.format_version == 6

    def test_single_block(self, single_block_region: VoxelRegion) -> None:
        assert load(save(single_block_region, Format.LITEMATIC)) == single_block_region

    def test_layout(self, sample_region: VoxelRegion) -> None:
        """One region named after the schematic, air first, DENSE packed states."""
        name, root = codec.decode(save(sample_region, Format.LITEMATIC, compression='none'))
        assert name == ''
        assert root['Version'] == Int(6)
        assert list(root['Regions'].keys()) == ['sample']

        region = root['Regions']['sample']
        palette = region['BlockStatePalette']
        assert palette[0]['Name'] == String('minecraft:air')
        bits = bits_for(len(palette), minimum=2)
        assert len(region['BlockStates']) == packed_length(sample_region.volume, bits, PackingPolicy.DENSE)

        meta = root['Metadata']
        assert meta['TotalVolume'] == Int(12)
        assert meta['TotalBlocks'] == Int(4)
        assert meta['RegionCount'] == Int(1)

    def test_metadata_fields(self, single_block_region: VoxelRegion) -> None:
        single_block_region.metadata.author = 'someone'
        single_block_region.metadata.description = 'a chest'
        single_block_region.metadata.created = 1700000000000
        loaded = load(save(single_block_region, Format.LITEMATIC))

        assert loaded.metadata.author == 'someone'
        assert loaded.metadata.description == 'a chest'
        assert loaded.metadata.created == 1700000000000

    def test_offset_becomes_position(self) -> None:
        region = VoxelRegion.create(1, 1, 1)
        region.set_block(0, 0, 0, STONE)
        region.offset = (5, -3, 2)
        loaded = load(save(region, Format.LITEMATIC))
        assert loaded.offset == (5, -3, 2)


class TestLitematicDecode:
    """Test cases for hand-built Litematica trees."""

    def test_negative_size(self) -> None:
        """A negative size extends from Position towards negative coordinates."""
        root = make_root({
            'r': make_region((2, 0, 0), (-2, 1, 1), [BlockState.AIR, STONE], [0, 1]),
        })
        region = load_root(root)

        assert region.size == (2, 1, 1)
        assert region.offset == (1, 0, 0)
        assert region.get_block(1, 0, 0) == STONE

    def test_merge_regions(self) -> None:
        """Regions are merged into their bounding box."""
        root = make_root({
            'a': make_region((0, 0, 0), (2, 1, 1), [BlockState.AIR, STONE], [1, 1]),
            'b': make_region((3, 0, 0), (-1, 1, 1), [BlockState.AIR, DIRT], [1],
                             TileEntities=List[Compound]([Compound(
                                 x=Int(0), y=Int(0), z=Int(0), id=String('minecraft:sign'),
                             )])),
        })
        region = load_root(root)

        assert region.size == (4, 1, 1)
        assert region.offset == (0, 0, 0)
        assert region.get_block(0, 0, 0) == STONE
        assert region.get_block(1, 0, 0) == STONE
        assert region.get_block(2, 0, 0) == BlockState.AIR
        assert region.get_block(3, 0, 0) == DIRT
        assert region.block_entities == [BlockEntity((3, 0, 0), 'minecraft:sign')]

    def test_later_air_does_not_overwrite(self) -> None:
        root = make_root({
            'a': make_region((0, 0, 0), (1, 1, 1), [BlockState.AIR, STONE], [1]),
            'b': make_region((0, 0, 0), (1, 1, 1), [BlockState.AIR], [0]),
        })
        assert load_root(root).get_block(0, 0, 0) == STONE

    def test_properties(self) -> None:
        lever = BlockState('minecraft:lever', {'face': 'floor', 'powered': 'true'})
        root = make_root({'r': make_region((0, 0, 0), (1, 1, 1), [BlockState.AIR, lever], [1])})
        assert load_root(root).get_block(0, 0, 0) == lever

    @pytest.mark.parametrize('version', [3, 8])
    def test_unsupported_version(self, version: int) -> None:
        root = make_root({'r': make_region((0, 0, 0), (1, 1, 1), [BlockState.AIR], [0])},
                         version=version)
        with pytest.raises(UnsupportedDialectVersion):
            load_root(root)

    def test_wrong_block_state_length(self) -> None:
        region = make_region((0, 0, 0), (1, 1, 1), [BlockState.AIR], [0])
        region['BlockStates'] = LongArray([0, 0])
        with pytest.raises(ArrayLengthMismatch):
            load_root(make_root({'r': region}))

    def test_no_regions(self) -> None:
        with pytest.raises(InvalidSchematic):
            load(codec.encode('', make_root({})), format_hint=Format.LITEMATIC)

    def test_zero_size(self) -> None:
        region = make_region((0, 0, 0), (1, 1, 1), [BlockState.AIR], [0])
        region['Size'] = xyz_compound((0, 1, 1))
        with pytest.raises(InvalidSchematic):
            load_root(make_root({'r': region}))

    def test_oversized_region_rejected(self) -> None:
        """A region size above the volume limit fails before its blocks are unpacked."""
        region = make_region((0, 0, 0), (1, 1, 1), [BlockState.AIR], [0])
        region['Size'] = xyz_compound((2 ** 31 - 1,) * 3)
        with pytest.raises(InvalidSchematic) as info:
            load_root(make_root({'r': region}))
        assert info.value.field == 'r.Size'

    def test_oversized_merge_rejected(self) -> None:
        """Small regions far apart may still span a bounding box above the limit."""
        root = make_root({
            'a': make_region((0, 0, 0), (1, 1, 1), [BlockState.AIR, STONE], [1]),
            'b': make_region((2000, 0, 0), (1, 1, 1), [BlockState.AIR, DIRT], [1]),
        })
        data = codec.encode('', root)
        with pytest.raises(InvalidSchematic) as info:
            load(data, config=CodecConfig(max_volume=1000))
        assert info.value.field == 'Regions'
        assert load(data).size == (2001, 1, 1)
