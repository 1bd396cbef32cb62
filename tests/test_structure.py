"""Tests for the vanilla structure file adapter."""

import pytest

from schemkit.config import CodecConfig
from schemkit.core.palette import BlockState
from schemkit.core.voxel_region import VoxelRegion
from schemkit.errors import InvalidSchematic, PaletteOutOfRange
from schemkit.formats import Format, load, save
from schemkit.formats.base import int_list
from schemkit.formats.structure import STRUCTURE_VOID
from schemkit.nbt import codec
from schemkit.nbt.tags import Compound, Int, List, String

STONE = BlockState('minecraft:stone')


def structure_root(blocks, size=(2, 1, 1), palette=(STONE,)) -> Compound:
    return Compound(
        DataVersion=Int(3465),
        size=int_list(size),
        palette=List[Compound]([Compound(Name=String(s.name)) for s in palette]),
        blocks=List[Compound](blocks),
        entities=List[Compound](),
    )


def block(pos, state, nbt=None) -> Compound:
    compound = Compound(pos=int_list(pos), state=Int(state))
    if nbt is not None:
        compound['nbt'] = nbt
    return compound


class TestStructureRoundTrip:
    """Test cases for encoding then decoding."""

    def test_round_trip(self, sample_region: VoxelRegion) -> None:
        loaded = load(save(sample_region, Format.STRUCTURE))
        assert loaded == sample_region
        assert loaded.metadata.source_format == 'structure'

    def test_layout(self, single_block_region: VoxelRegion) -> None:
        """Block entity payloads sit in the block's nbt with their id."""
        name, root = codec.decode(save(single_block_region, Format.STRUCTURE, compression='none'))
        assert name == ''
        assert root['size'] == int_list((1, 1, 1))
        assert len(root['blocks']) == 1
        nbt = root['blocks'][0]['nbt']
        assert nbt['id'] == String('minecraft:chest')
        assert 'Items' in nbt

    def test_entity_block_pos(self, sample_region: VoxelRegion) -> None:
        _, root = codec.decode(save(sample_region, Format.STRUCTURE, compression='none'))
        entity = root['entities'][0]
        assert entity['blockPos'] == int_list((1, 1, 0))
        assert entity['nbt']['id'] == String('minecraft:armor_stand')


class TestStructureVoid:
    """Test cases for positions absent from the block list."""

    def test_absent_positions_are_void(self) -> None:
        region = load(codec.encode('', structure_root([block((0, 0, 0), 0)])))
        assert region.get_block(0, 0, 0) == STONE
        assert region.get_block(1, 0, 0) == STRUCTURE_VOID

    def test_void_skipped_on_encode(self) -> None:
        region = load(codec.encode('', structure_root([block((1, 0, 0), 0)])))
        _, root = codec.decode(save(region, Format.STRUCTURE, compression='none'))

        assert len(root['blocks']) == 1
        assert root['blocks'][0]['pos'] == int_list((1, 0, 0))
        assert [str(p['Name']) for p in root['palette']] == ['minecraft:stone']


class TestStructureDecode:
    """Test cases for hand-built structure trees."""

    def test_block_entity_from_nbt(self) -> None:
        nbt = Compound(id=String('minecraft:sign'), Text=String('hi'))
        region = load(codec.encode('', structure_root([block((0, 0, 0), 0, nbt)])))
        be = region.get_block_entity((0, 0, 0))
        assert be.id == 'minecraft:sign'
        assert be.data == Compound(Text=String('hi'))

    def test_palettes_uses_first(self) -> None:
        root = structure_root([block((0, 0, 0), 0)], size=(1, 1, 1))
        del root['palette']
        root['palettes'] = List[List]([
            List[Compound]([Compound(Name=String('minecraft:stone'))]),
            List[Compound]([Compound(Name=String('minecraft:dirt'))]),
        ])
        assert load(codec.encode('', root)).get_block(0, 0, 0) == STONE

    def test_state_out_of_range(self) -> None:
        with pytest.raises(PaletteOutOfRange):
            load(codec.encode('', structure_root([block((0, 0, 0), 3)])))

    def test_position_out_of_bounds(self) -> None:
        with pytest.raises(InvalidSchematic):
            load(codec.encode('', structure_root([block((5, 0, 0), 0)])))

    def test_oversized_volume_rejected(self) -> None:
        """A declared size above the volume limit fails before the block array is allocated."""
        root = structure_root([], size=(2 ** 31 - 1,) * 3)
        with pytest.raises(InvalidSchematic) as info:
            load(codec.encode('', root))
        assert info.value.field == 'size'

    def test_volume_limit_is_configurable(self) -> None:
        root = structure_root([block((0, 0, 0), 0)], size=(4, 4, 4))
        with pytest.raises(InvalidSchematic):
            load(codec.encode('', root), config=CodecConfig(max_volume=63))
        assert load(codec.encode('', root), config=CodecConfig(max_volume=64)).volume == 64
