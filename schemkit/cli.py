"""
schemkit - Command Line
=======================

Entry point for the ``schemkit`` command.

Usage:
    schemkit info FILE [--format F]
    schemkit convert SRC DST [--to F] [--compression C] [--sponge-version N]
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from schemkit import __version__
from schemkit.errors import SchematicError
from schemkit.formats import Format, FormatManager, SpongeSchematic
from schemkit.nbt.compression import CompressionMode

logger = logging.getLogger(__name__)

FORMAT_NAMES = [fmt.value for fmt in Format]


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog='schemkit',
        description='Inspect and convert Minecraft schematic files',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Supported formats:
  litematic (.litematic), sponge (.schem), legacy (.schematic), structure (.nbt)

Examples:
  %(prog)s info castle.litematic
  %(prog)s convert castle.litematic castle.schem
  %(prog)s convert old.schematic new.schem --sponge-version 3
        """
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    info = commands.add_parser('info', help='Show a summary of a schematic')
    info.add_argument('file', help='Schematic file to inspect')
    info.add_argument('--format', choices=FORMAT_NAMES,
                      help='Decode as this format instead of detecting it')
    info.add_argument('--top', type=int, default=10,
                      help='Number of block counts to show (default: 10)')

    convert = commands.add_parser('convert', help='Convert a schematic to another format')
    convert.add_argument('source', help='Input schematic')
    convert.add_argument('destination', help='Output path')
    convert.add_argument('--to', choices=FORMAT_NAMES,
                         help='Output format (default: from the output extension)')
    convert.add_argument('--compression', choices=[m.value for m in CompressionMode],
                         help='Output compression (default: gzip)')
    convert.add_argument('--sponge-version', type=int, choices=(1, 2, 3),
                         help='Sponge version to write')

    return parser.parse_args(argv)


def show_info(manager: FormatManager, args: argparse.Namespace) -> int:
    hint = Format.from_name(args.format) if args.format else None
    region = manager.import_file(args.file, format_hint=hint)
    meta = region.metadata

    print(f"File:       {args.file}")
    print(f"Format:     {meta.source_format}"
          + (f" v{meta.format_version}" if meta.format_version is not None else ""))
    print(f"Name:       {meta.name or '-'}")
    if meta.author:
        print(f"Author:     {meta.author}")
    print(f"Size:       {region.width} x {region.height} x {region.length} (w x h x l)")
    if region.offset is not None:
        print(f"Offset:     {region.offset}")
    print(f"Palette:    {len(region.palette)} states")
    print(f"Block ent.: {len(region.block_entities)}")
    print(f"Entities:   {len(region.entities)}")
    if region.biomes is not None:
        print(f"Biomes:     {len(region.biomes.palette)}")

    counts = region.count_blocks()
    if counts:
        print("Blocks:")
        for state, count in list(counts.items())[:args.top]:
            print(f"  {count:>8}  {state}")
    return 0


def convert(manager: FormatManager, args: argparse.Namespace) -> int:
    region = manager.import_file(args.source)
    fmt = Format.from_name(args.to) if args.to else manager.format_for_path(args.destination)
    if fmt is None:
        logger.error("Cannot tell the output format from %s; use --to",
                     Path(args.destination).name)
        return 2

    options = {}
    if fmt == SpongeSchematic.FORMAT and args.sponge_version:
        options['version'] = args.sponge_version
    compression = CompressionMode.from_name(args.compression) if args.compression else None
    manager.export_file(args.destination, region, fmt, compression, **options)
    print(f"Converted {args.source} ({region.metadata.source_format}) -> "
          f"{args.destination} ({fmt.value})")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main command line entry point."""
    args = parse_arguments(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    manager = FormatManager()
    try:
        if args.command == 'info':
            return show_info(manager, args)
        return convert(manager, args)
    except (OSError, SchematicError) as e:
        logger.error("%s", e)
        if args.debug:
            raise
        return 1


if __name__ == '__main__':
    sys.exit(main())
