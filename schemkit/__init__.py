"""
schemkit - Minecraft Schematic Codecs
=====================================

Reads and writes Minecraft schematic files through one unified in-memory
region model:

- Litematica (.litematic)
- Sponge Schematic v1-v3 (.schem)
- MCEdit / WorldEdit legacy (.schematic)
- Vanilla structure files (.nbt)

Version: 1.0.0
"""

__version__ = "1.0.0"
__license__ = "MIT"

from schemkit.config import CodecConfig, DEFAULT_CONFIG
from schemkit.core.palette import BlockState, Palette
from schemkit.core.voxel_region import VoxelRegion, BlockEntity, Entity, BiomeMap, Metadata
from schemkit.errors import SchematicError
from schemkit.formats import Format, FormatManager, load, save, detect
from schemkit.nbt.compression import CompressionMode

__all__ = [
    'VoxelRegion', 'BlockEntity', 'Entity', 'BiomeMap', 'Metadata',
    'BlockState', 'Palette', 'Format', 'FormatManager', 'CompressionMode',
    'CodecConfig', 'DEFAULT_CONFIG', 'SchematicError',
    'load', 'save', 'detect', '__version__',
]
