"""Shared fixtures for schemkit tests."""

import pytest

from schemkit.core.palette import BlockState
from schemkit.core.voxel_region import BlockEntity, Entity, VoxelRegion
from schemkit.nbt.tags import Byte, Compound, Int, List, String

STONE = BlockState('minecraft:stone')
CHEST = BlockState('minecraft:chest', {'facing': 'north', 'type': 'single', 'waterlogged': 'false'})
STAIRS = BlockState('minecraft:oak_stairs', {'facing': 'east', 'half': 'bottom'})


def chest_payload() -> Compound:
    item = Compound(Slot=Byte(0), id=String('minecraft:diamond'), Count=Byte(3))
    return Compound(Items=List[Compound]([item]), CustomName=String('Loot'))


@pytest.fixture
def single_block_region() -> VoxelRegion:
    """1x1x1 region holding one chest with its block entity."""
    region = VoxelRegion.create(1, 1, 1, name='single')
    region.set_block(0, 0, 0, CHEST)
    region.add_block_entity(BlockEntity((0, 0, 0), 'minecraft:chest', chest_payload()))
    return region


@pytest.fixture
def sample_region() -> VoxelRegion:
    """3x2x2 region with several states, a block entity and an entity."""
    region = VoxelRegion.create(3, 2, 2, name='sample')
    region.set_block(0, 0, 0, STONE)
    region.set_block(1, 0, 0, CHEST)
    region.set_block(2, 1, 1, STAIRS)
    region.set_block(0, 1, 0, STONE)
    region.add_block_entity(BlockEntity((1, 0, 0), 'minecraft:chest', chest_payload()))
    region.add_entity(Entity(
        (1.5, 1.0, 0.25), 'minecraft:armor_stand',
        Compound(Invisible=Byte(1), Tags=List[String]([String('marker')])),
    ))
    return region


@pytest.fixture
def legacy_region() -> VoxelRegion:
    """Region whose states all have legacy ids."""
    region = VoxelRegion.create(2, 2, 1, name='legacy')
    region.set_block(0, 0, 0, STONE)
    region.set_block(1, 0, 0, BlockState('minecraft:chest'))
    region.set_block(0, 1, 0, BlockState('minecraft:white_wool', {'data': '14'}))
    region.add_block_entity(BlockEntity(
        (1, 0, 0), 'Chest', Compound(Items=List[Compound](), Lock=String(''))
    ))
    region.add_entity(Entity((0.5, 1.0, 0.5), 'Pig', Compound(Health=Int(10))))
    return region
