"""Tests for compression sniffing and the envelope helpers."""

import gzip
import zlib

import pytest

from schemkit.errors import CompressionSignatureMismatch
from schemkit.nbt import codec, compression
from schemkit.nbt.compression import CompressionMode, sniff
from schemkit.nbt.tags import Compound, String


@pytest.fixture
def raw_tree() -> bytes:
    return codec.encode('', Compound(name=String('envelope')))


class TestSniff:
    """Test cases for envelope detection."""

    def test_gzip(self, raw_tree: bytes) -> None:
        assert sniff(gzip.compress(raw_tree)) == CompressionMode.GZIP

    def test_zlib(self, raw_tree: bytes) -> None:
        """zlib streams are recognized at every compression level."""
        for level in (1, 6, 9):
            assert sniff(zlib.compress(raw_tree, level)) == CompressionMode.ZLIB

    def test_raw(self, raw_tree: bytes) -> None:
        assert sniff(raw_tree) == CompressionMode.NONE

    def test_short_input(self) -> None:
        """Sniffing never fails, even on empty input."""
        assert sniff(b'') == CompressionMode.NONE
        assert sniff(b'\x1f') == CompressionMode.NONE

    def test_zlib_checksum_required(self) -> None:
        """A 0x78 byte without a valid header checksum is not zlib."""
        assert sniff(b'\x78\x00') == CompressionMode.NONE


class TestOpenAndWrap:
    """Test cases for removing and adding envelopes."""

    @pytest.mark.parametrize('mode', list(CompressionMode))
    def test_wrap_then_open(self, raw_tree: bytes, mode: CompressionMode) -> None:
        """open() should undo wrap() for every mode."""
        wrapped = compression.wrap(raw_tree, mode)
        assert sniff(wrapped) == mode
        assert compression.open(wrapped) == raw_tree

    def test_gzip_output_is_deterministic(self, raw_tree: bytes) -> None:
        """gzip output carries no timestamp."""
        assert compression.wrap(raw_tree, CompressionMode.GZIP) == \
            compression.wrap(raw_tree, CompressionMode.GZIP)

    def test_corrupt_gzip(self) -> None:
        """A gzip signature followed by garbage is a signature mismatch."""
        with pytest.raises(CompressionSignatureMismatch) as info:
            compression.open(b'\x1f\x8b' + b'not really gzip')
        assert info.value.offset == 0

    def test_truncated_gzip(self, raw_tree: bytes) -> None:
        data = gzip.compress(raw_tree)
        with pytest.raises(CompressionSignatureMismatch):
            compression.open(data[:len(data) // 2])

    def test_corrupt_zlib(self) -> None:
        with pytest.raises(CompressionSignatureMismatch):
            compression.open(b'\x78\x9c' + b'\xff' * 8)

    def test_mode_from_name(self) -> None:
        assert CompressionMode.from_name('GZIP') == CompressionMode.GZIP
        with pytest.raises(ValueError):
            CompressionMode.from_name('brotli')
