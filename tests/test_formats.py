"""Tests for format detection and the load/save dispatch."""

import gzip

import pytest

from schemkit.core.voxel_region import VoxelRegion
from schemkit.errors import (
    CompressionSignatureMismatch, MalformedTag, UnrecognizedFormat,
)
from schemkit.formats import DETECTION_ORDER, Format, FormatManager, detect, load, save
from schemkit.nbt import codec
from schemkit.nbt.compression import CompressionMode, sniff
from schemkit.nbt.tags import Compound, Int, String

ALL_FORMATS = list(Format)


def region_for(fmt: Format, sample_region: VoxelRegion, legacy_region: VoxelRegion) -> VoxelRegion:
    return legacy_region if fmt == Format.LEGACY else sample_region


def body_of(fmt: Format, root: Compound) -> Compound:
    """The compound holding root fields (v3 Sponge nests it)."""
    if fmt == Format.SPONGE and 'Schematic' in root:
        return root['Schematic']
    return root


class TestFormat:
    """Test cases for the Format enum."""

    def test_extensions(self) -> None:
        assert Format.from_extension('.litematic') == Format.LITEMATIC
        assert Format.from_extension('schem') == Format.SPONGE
        assert Format.from_extension('.SCHEMATIC') == Format.LEGACY
        assert Format.from_extension('.nbt') == Format.STRUCTURE
        assert Format.from_extension('.vox') is None

    def test_from_name(self) -> None:
        assert Format.from_name('sponge') == Format.SPONGE
        assert Format.from_name('.litematic') == Format.LITEMATIC
        with pytest.raises(ValueError):
            Format.from_name('minecraft')

    def test_detection_order(self) -> None:
        assert DETECTION_ORDER == (Format.LITEMATIC, Format.SPONGE, Format.LEGACY, Format.STRUCTURE)


class TestDetection:
    """Test cases for loading without a format hint."""

    @pytest.mark.parametrize('fmt', ALL_FORMATS)
    def test_hintless_equals_hinted(self, fmt: Format, sample_region: VoxelRegion,
                                    legacy_region: VoxelRegion) -> None:
        """Detection picks the same adapter the hint would."""
        data = save(region_for(fmt, sample_region, legacy_region), fmt)
        assert detect(data) == fmt
        assert load(data) == load(data, format_hint=fmt)
        assert load(data).metadata.source_format == fmt.value

    @pytest.mark.parametrize('version', [1, 2, 3])
    def test_every_sponge_version_detected(self, version: int,
                                           single_block_region: VoxelRegion) -> None:
        assert detect(save(single_block_region, Format.SPONGE, version=version)) == Format.SPONGE

    @pytest.mark.parametrize('mode', list(CompressionMode))
    def test_any_envelope(self, mode: CompressionMode, sample_region: VoxelRegion) -> None:
        data = save(sample_region, Format.SPONGE, compression=mode)
        assert sniff(data) == mode
        assert load(data) == sample_region

    def test_default_envelope_is_gzip(self, sample_region: VoxelRegion) -> None:
        for fmt in ALL_FORMATS:
            assert sniff(save(sample_region, fmt)) == CompressionMode.GZIP

    def test_unrecognized(self) -> None:
        data = codec.encode('', Compound(Hello=String('world')))
        with pytest.raises(UnrecognizedFormat):
            load(data)
        with pytest.raises(UnrecognizedFormat):
            detect(data)

    def test_corrupt_envelope(self) -> None:
        with pytest.raises(CompressionSignatureMismatch):
            load(b'\x1f\x8b\x08\x00garbage')

    def test_truncated_file(self, sample_region: VoxelRegion) -> None:
        data = save(sample_region, Format.LITEMATIC, compression='none')
        with pytest.raises(MalformedTag):
            load(data[:-5])

    def test_truncated_gzip_body(self, sample_region: VoxelRegion) -> None:
        """A complete gzip stream around a truncated tree still fails in the codec."""
        raw = save(sample_region, Format.STRUCTURE, compression='none')
        with pytest.raises(MalformedTag):
            load(gzip.compress(raw[:len(raw) // 2]))


class TestUnknownFields:
    """Test cases for root fields no adapter interprets."""

    @pytest.mark.parametrize('fmt', ALL_FORMATS)
    def test_preserved(self, fmt: Format, sample_region: VoxelRegion,
                       legacy_region: VoxelRegion) -> None:
        """Unknown root fields survive decode and are written back."""
        region = region_for(fmt, sample_region, legacy_region)
        name, root = codec.decode(save(region, fmt, compression='none'))
        body_of(fmt, root)['CustomField'] = String('kept')
        body_of(fmt, root)['CustomNumber'] = Int(42)

        loaded = load(codec.encode(name, root))
        assert loaded.metadata.extra['CustomField'] == String('kept')
        assert list(loaded.metadata.extra.keys()) == ['CustomField', 'CustomNumber']

        _, written = codec.decode(save(loaded, fmt, compression='none'))
        assert body_of(fmt, written)['CustomField'] == String('kept')
        assert body_of(fmt, written)['CustomNumber'] == Int(42)

    def test_extra_never_overrides_written_fields(self, sample_region: VoxelRegion) -> None:
        sample_region.metadata.extra['Version'] = Int(99)
        _, root = codec.decode(save(sample_region, Format.SPONGE, compression='none'))
        assert root['Version'] == Int(2)


class TestFormatManager:
    """Test cases for the file helpers."""

    def test_export_import(self, tmp_path, sample_region: VoxelRegion) -> None:
        manager = FormatManager()
        path = tmp_path / 'house.litematic'
        assert manager.export_file(path, sample_region) == Format.LITEMATIC
        assert manager.import_file(path) == sample_region

    def test_extension_not_trusted_on_import(self, tmp_path, sample_region: VoxelRegion) -> None:
        """Content decides the dialect, not the file name."""
        manager = FormatManager()
        path = tmp_path / 'mislabelled.schematic'
        manager.export_file(path, sample_region, fmt=Format.SPONGE)
        assert manager.import_file(path).metadata.source_format == 'sponge'

    def test_name_defaults_to_stem(self, tmp_path) -> None:
        manager = FormatManager()
        path = tmp_path / 'tower.nbt'
        manager.export_file(path, VoxelRegion.create(1, 1, 1))
        assert manager.import_file(path).metadata.name == 'tower'

    def test_unknown_extension(self, tmp_path, sample_region: VoxelRegion) -> None:
        manager = FormatManager()
        assert not manager.can_export(tmp_path / 'model.obj')
        with pytest.raises(ValueError):
            manager.export_file(tmp_path / 'model.obj', sample_region)
