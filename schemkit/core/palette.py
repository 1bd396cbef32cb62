"""
Block Palette
=============

Block states and the dense index <-> block state table used by every
palette-based schematic dialect.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from schemkit.errors import PaletteNotDense, PaletteOutOfRange


@dataclass(frozen=True)
class BlockState:
    """
    A block type plus its state properties.

    Equality and hashing ignore the order of properties.
    """
    name: str
    properties: Dict[str, str] = field(default_factory=dict)

    def __hash__(self):
        return hash((self.name, frozenset(self.properties.items())))

    @classmethod
    def parse(cls, text: str) -> 'BlockState':
        """
        Parse a block state string such as ``minecraft:oak_stairs[facing=east]``.

        Malformed property entries (no ``=``) are ignored.
        """
        text = text.strip()
        if '[' not in text:
            return cls(text)
        name, _, rest = text.partition('[')
        properties = {}
        for entry in rest.rstrip(']').split(','):
            key, sep, value = entry.partition('=')
            if sep:
                properties[key.strip()] = value.strip()
        return cls(name.strip(), properties)

    def with_properties(self, **properties: str) -> 'BlockState':
        merged = dict(self.properties)
        merged.update(properties)
        return BlockState(self.name, merged)

    @property
    def is_air(self) -> bool:
        return self.name in AIR_NAMES

    def __str__(self):
        if not self.properties:
            return self.name
        props = ','.join(f"{k}={v}" for k, v in self.properties.items())
        return f"{self.name}[{props}]"


AIR_NAMES = frozenset({'minecraft:air', 'minecraft:cave_air', 'minecraft:void_air'})

BlockState.AIR = BlockState('minecraft:air')


def dense_order(mapping: Mapping[Any, int], declared_size: Optional[int] = None,
                field_name: Optional[str] = None) -> List[Any]:
    """
    Order the keys of a ``{key: index}`` mapping by index.

    Args:
        mapping: Native palette encoding
        declared_size: Palette size stated elsewhere in the file, if any
        field_name: Field reported in errors

    Returns:
        Keys ordered so that ``result[i]`` has index ``i``

    Raises:
        PaletteNotDense: If the indices are not exactly ``0..n-1``, or do not
            agree with ``declared_size``
    """
    size = len(mapping)
    ordered: List[Any] = [None] * size
    seen = [False] * size
    for key, index in mapping.items():
        index = int(index)
        if not 0 <= index < size:
            raise PaletteNotDense(
                f"Palette index {index} for '{key}' outside 0..{size - 1}", field=field_name
            )
        if seen[index]:
            raise PaletteNotDense(f"Palette index {index} assigned twice", field=field_name)
        seen[index] = True
        ordered[index] = key
    if declared_size is not None and declared_size != size:
        raise PaletteNotDense(
            f"Declared palette size {declared_size} but {size} entries present",
            field=field_name,
        )
    return ordered


class Palette:
    """
    Dense mapping between integer indices and block states.

    Indices are contiguous from 0. During decode a palette is built once from
    the file's native encoding; during encode new states are appended with
    :meth:`index_of`.
    """

    def __init__(self, states: Iterable[BlockState] = ()):
        self._states: List[BlockState] = []
        self._index: Dict[BlockState, int] = {}
        for state in states:
            self._append(state)

    def _append(self, state: BlockState) -> int:
        if not isinstance(state, BlockState):
            raise TypeError(f"Palette entries must be BlockState, not {type(state).__name__}")
        index = len(self._states)
        self._states.append(state)
        self._index.setdefault(state, index)
        return index

    @classmethod
    def from_states(cls, states: Iterable[BlockState]) -> 'Palette':
        """Create a palette from an implicit ordered list of states."""
        return cls(states)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, int], declared_size: Optional[int] = None,
                     field_name: Optional[str] = None) -> 'Palette':
        """
        Create a palette from a ``{block state string: index}`` mapping.

        Raises:
            PaletteNotDense: If indices have gaps or duplicates
        """
        ordered = dense_order(mapping, declared_size, field_name)
        return cls(BlockState.parse(text) for text in ordered)

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[BlockState]:
        return iter(self._states)

    def __contains__(self, state: BlockState) -> bool:
        return state in self._index

    def __eq__(self, other):
        if isinstance(other, Palette):
            return self._states == other._states
        return NotImplemented

    def __repr__(self):
        return f"Palette({[str(s) for s in self._states]!r})"

    @property
    def states(self) -> Tuple[BlockState, ...]:
        return tuple(self._states)

    def index_of(self, state: BlockState) -> int:
        """Return the index of ``state``, appending it if absent."""
        index = self._index.get(state)
        if index is None:
            index = self._append(state)
        return index

    def lookup(self, state: BlockState) -> Optional[int]:
        """Return the index of ``state`` without inserting it."""
        return self._index.get(state)

    def state_at(self, index: int) -> BlockState:
        """
        Get the block state at an index.

        Raises:
            PaletteOutOfRange: If ``index`` is negative or ``>= len(self)``
        """
        if not 0 <= index < len(self._states):
            raise PaletteOutOfRange(
                f"Palette index {index} out of range for palette of size {len(self._states)}"
            )
        return self._states[index]

    def validate_indices(self, indices: np.ndarray, field_name: Optional[str] = None):
        """
        Check that every entry of an index array resolves in this palette.

        Raises:
            PaletteOutOfRange: With the flat offset of the first bad entry
        """
        flat = np.asarray(indices).reshape(-1)
        if flat.size == 0:
            return
        bad = np.flatnonzero((flat < 0) | (flat >= len(self._states)))
        if bad.size:
            offset = int(bad[0])
            raise PaletteOutOfRange(
                f"Block index {int(flat[offset])} has no palette entry "
                f"(palette size {len(self._states)})",
                offset=offset, field=field_name,
            )

    def compact(self, indices: np.ndarray,
                keep: Iterable[BlockState] = ()) -> Tuple['Palette', np.ndarray]:
        """
        Drop unreferenced states.

        Args:
            indices: Index array referring to this palette
            keep: States that stay at the front of the new palette even when
                unreferenced (e.g. air for formats that reserve index 0)

        Returns:
            Tuple of (new palette, remapped index array of the same shape)
        """
        indices = np.asarray(indices)
        new_palette = Palette()
        for state in keep:
            new_palette.index_of(state)
        remap = np.zeros(max(len(self._states), 1), dtype=np.int32)
        for old in np.unique(indices):
            remap[int(old)] = new_palette.index_of(self._states[int(old)])
        if indices.size == 0:
            return new_palette, indices.astype(np.int32)
        return new_palette, remap[indices].astype(np.int32)

    def copy(self) -> 'Palette':
        return Palette(self._states)

    def to_list(self) -> List[str]:
        """Serialize to block state strings in index order."""
        return [str(s) for s in self._states]


__all__ = ['BlockState', 'Palette', 'AIR_NAMES', 'dense_order']
