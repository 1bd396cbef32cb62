"""
Codec Configuration
===================

Tunables shared by the tag codec and the format adapters. Every public
entry point accepts an optional :class:`CodecConfig`; ``DEFAULT_CONFIG`` is
used when none is given.
"""

from dataclasses import dataclass, field, replace
from typing import Dict

from schemkit.nbt.codec import DEFAULT_MAX_DEPTH
from schemkit.nbt.compression import CompressionMode


def _default_compression() -> Dict[str, CompressionMode]:
    return {
        'litematic': CompressionMode.GZIP,
        'sponge': CompressionMode.GZIP,
        'legacy': CompressionMode.GZIP,
        'structure': CompressionMode.GZIP,
    }


@dataclass(frozen=True)
class CodecConfig:
    """
    Attributes:
        max_depth: Maximum nesting of lists/compounds accepted by the decoder
        sponge_version: Sponge sub-version written when none is requested
        data_version: Minecraft data version written when the region has none
        litematic_version: Litematica format version written
        litematic_subversion: Litematica sub-version written
        max_volume: Largest block count a decoded region may declare
        default_compression: Envelope used by ``save`` per format name
    """
    max_depth: int = DEFAULT_MAX_DEPTH
    sponge_version: int = 2
    data_version: int = 3465
    litematic_version: int = 6
    litematic_subversion: int = 1
    max_volume: int = 1 << 28
    default_compression: Dict[str, CompressionMode] = field(default_factory=_default_compression)

    def with_options(self, **changes) -> 'CodecConfig':
        """Return a copy with some fields replaced."""
        return replace(self, **changes)


DEFAULT_CONFIG = CodecConfig()
