"""
schemkit Formats Module
=======================

Dialect adapters and the dispatch layer that picks one:

- Litematica ``.litematic``
- Sponge ``.schem`` (versions 1 to 3)
- MCEdit legacy ``.schematic``
- Vanilla structure ``.nbt``
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Type, Union

from schemkit.config import CodecConfig, DEFAULT_CONFIG
from schemkit.core.voxel_region import VoxelRegion
from schemkit.errors import UnrecognizedFormat
from schemkit.formats.base import Format, FormatAdapter
from schemkit.formats.legacy import LegacySchematic
from schemkit.formats.litematic import LitematicSchematic
from schemkit.formats.sponge import SpongeSchematic
from schemkit.formats.structure import StructureSchematic
from schemkit.nbt import codec
from schemkit.nbt.compression import CompressionMode, open as open_envelope, wrap
from schemkit.nbt.tags import Tag

logger = logging.getLogger(__name__)

# Detection order; the first adapter whose signature matches wins.
DETECTION_ORDER = (Format.LITEMATIC, Format.SPONGE, Format.LEGACY, Format.STRUCTURE)

ADAPTERS = {
    Format.LITEMATIC: LitematicSchematic,
    Format.SPONGE: SpongeSchematic,
    Format.LEGACY: LegacySchematic,
    Format.STRUCTURE: StructureSchematic,
}


def _read_tree(data: bytes, config: CodecConfig) -> Tuple[str, Tag]:
    return codec.decode(open_envelope(data), max_depth=config.max_depth)


def _detect_tree(root_name: str, root: Tag) -> Format:
    for fmt in DETECTION_ORDER:
        if ADAPTERS[fmt].detect(root_name, root):
            logger.debug("Detected %s schematic", fmt.value)
            return fmt
    raise UnrecognizedFormat("No schematic dialect matches the root tag")


def detect(data: bytes, config: Optional[CodecConfig] = None) -> Format:
    """
    Identify the dialect of a schematic without decoding its blocks.

    Raises:
        UnrecognizedFormat: If no adapter accepts the root tag
    """
    config = config or DEFAULT_CONFIG
    return _detect_tree(*_read_tree(data, config))


def load(data: bytes, format_hint: Optional[Union[Format, str]] = None,
         config: Optional[CodecConfig] = None) -> VoxelRegion:
    """
    Decode schematic bytes into a VoxelRegion.

    Args:
        data: File contents, gzip/zlib compressed or raw
        format_hint: Dialect to decode as; detected when None
        config: Codec configuration

    Returns:
        Decoded region, with ``metadata.source_format`` set

    Raises:
        UnrecognizedFormat: If no hint is given and no dialect matches
        SchematicError: Any decode failure, decoding is all-or-nothing
    """
    config = config or DEFAULT_CONFIG
    root_name, root = _read_tree(data, config)
    if format_hint is None:
        fmt = _detect_tree(root_name, root)
    else:
        fmt = format_hint if isinstance(format_hint, Format) else Format.from_name(format_hint)
    region = ADAPTERS[fmt].decode(root_name, root, config)
    logger.debug("Loaded %s region %s with %d palette entries",
                 fmt.value, region.size, len(region.palette))
    return region


def save(region: VoxelRegion, fmt: Union[Format, str],
         compression: Optional[Union[CompressionMode, str]] = None,
         config: Optional[CodecConfig] = None, **options) -> bytes:
    """
    Encode a VoxelRegion in the requested dialect.

    Args:
        region: Region to encode
        fmt: Target dialect
        compression: Envelope; the format's default when None
        config: Codec configuration
        **options: Adapter options, e.g. ``version`` for Sponge

    Returns:
        File contents
    """
    config = config or DEFAULT_CONFIG
    if not isinstance(fmt, Format):
        fmt = Format.from_name(fmt)
    if compression is None:
        compression = config.default_compression.get(fmt.value, CompressionMode.GZIP)
    elif not isinstance(compression, CompressionMode):
        compression = CompressionMode.from_name(compression)

    root_name, root = ADAPTERS[fmt].encode(region, config, **options)
    payload = codec.encode(root_name, root, max_depth=config.max_depth)
    return wrap(payload, compression)


class FormatManager:
    """
    Centralized schematic file manager.

    Maps file extensions to dialects and reads or writes files on disk.
    """

    def __init__(self, config: Optional[CodecConfig] = None):
        self.config = config or DEFAULT_CONFIG

    @staticmethod
    def adapter(fmt: Format) -> Type[FormatAdapter]:
        return ADAPTERS[fmt]

    @staticmethod
    def format_for_path(filepath: Union[str, Path]) -> Optional[Format]:
        """Dialect implied by a file's extension, or None."""
        return Format.from_extension(Path(filepath).suffix)

    def can_import(self, filepath: Union[str, Path]) -> bool:
        return self.format_for_path(filepath) is not None

    can_export = can_import

    def import_file(self, filepath: Union[str, Path],
                    format_hint: Optional[Format] = None) -> VoxelRegion:
        """
        Load a schematic file.

        The extension is not trusted; the dialect is detected from the
        content unless ``format_hint`` is given.

        Raises:
            OSError: If the file cannot be read
            SchematicError: If the content cannot be decoded
        """
        path = Path(filepath)
        region = load(path.read_bytes(), format_hint=format_hint, config=self.config)
        if region.metadata.name is None:
            region.metadata.name = path.stem
        return region

    def export_file(self, filepath: Union[str, Path], region: VoxelRegion,
                    fmt: Optional[Format] = None,
                    compression: Optional[CompressionMode] = None, **options) -> Format:
        """
        Save a region to a file.

        Args:
            filepath: Output path
            region: Region to save
            fmt: Target dialect; taken from the extension when None

        Returns:
            The dialect written

        Raises:
            ValueError: If no dialect is given and the extension is unknown
        """
        path = Path(filepath)
        fmt = fmt or self.format_for_path(path)
        if fmt is None:
            raise ValueError(f"Unsupported export format: {path.suffix}")
        path.write_bytes(save(region, fmt, compression, config=self.config, **options))
        logger.debug("Wrote %s schematic to %s", fmt.value, path)
        return fmt


__all__ = [
    'Format', 'FormatAdapter', 'FormatManager', 'DETECTION_ORDER', 'ADAPTERS',
    'LitematicSchematic', 'SpongeSchematic', 'LegacySchematic', 'StructureSchematic',
    'load', 'save', 'detect',
]
