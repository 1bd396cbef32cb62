"""
schemkit Core Module
====================

Unified voxel model, block palette and packed index array codecs.
"""

from schemkit.core.palette import BlockState, Palette
from schemkit.core.packing import PackingPolicy
from schemkit.core.voxel_region import VoxelRegion, BlockEntity, Entity, BiomeMap, Metadata

__all__ = [
    'BlockState', 'Palette', 'PackingPolicy',
    'VoxelRegion', 'BlockEntity', 'Entity', 'BiomeMap', 'Metadata',
]
