"""
Schematic Errors
================

Exception hierarchy shared by the tag codec, the packed array codec,
the palette and the format adapters.

Every error can carry a byte ``offset`` (position in the decoded buffer or
flat index in a block array) and a ``field`` name (compound key being
interpreted) so the caller can act on it without re-parsing.
"""

from typing import Optional


class SchematicError(Exception):
    """Base class for every error raised by schemkit."""

    def __init__(self, message: str, offset: Optional[int] = None,
                 field: Optional[str] = None):
        self.message = message
        self.offset = offset
        self.field = field
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.field is not None:
            context.append(f"field '{self.field}'")
        if self.offset is not None:
            context.append(f"offset {self.offset}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class MalformedTag(SchematicError):
    """Invalid type byte, truncated field or inconsistent tag structure."""


class RecursionLimitExceeded(SchematicError):
    """Tag nesting deeper than the configured maximum."""


class CompressionSignatureMismatch(SchematicError):
    """A gzip/zlib signature was found but the stream did not decompress."""


class UnrecognizedFormat(SchematicError):
    """No adapter recognized the input and no format hint was given."""


class UnsupportedDialectVersion(SchematicError):
    """The dialect family is known but this sub-version is not handled."""

    def __init__(self, dialect: str, version: int, field: Optional[str] = None):
        self.dialect = dialect
        self.version = version
        super().__init__(f"Unsupported {dialect} version: {version}", field=field)


class PaletteOutOfRange(SchematicError, IndexError):
    """A block index has no corresponding palette entry."""


class PaletteNotDense(SchematicError):
    """Decoded palette indices contain gaps, duplicates or negatives."""


class ArrayLengthMismatch(SchematicError):
    """Declared block count does not match the available packed data."""


class InvalidBitWidth(SchematicError):
    """Bit width outside 1..64, or a value that does not fit in it."""


class InvalidSchematic(SchematicError):
    """A required field is missing, has the wrong type, or is out of range."""


__all__ = [
    'SchematicError',
    'MalformedTag',
    'RecursionLimitExceeded',
    'CompressionSignatureMismatch',
    'UnrecognizedFormat',
    'UnsupportedDialectVersion',
    'PaletteOutOfRange',
    'PaletteNotDense',
    'ArrayLengthMismatch',
    'InvalidBitWidth',
    'InvalidSchematic',
]
