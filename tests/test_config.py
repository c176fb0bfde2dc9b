"""Tests for conversion options and checksum helpers."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from radioconv.config import DEFAULT_OPTIONS, ConversionOptions, load_options
from radioconv.utils.checksum import crc32, intel_hex_checksum, verify_intel_hex_record


class TestConversionOptions:
    """Test cases for ConversionOptions."""

    def test_defaults(self):
        assert DEFAULT_OPTIONS.board_policy == "convert"
        assert DEFAULT_OPTIONS.fallback_board is None
        assert DEFAULT_OPTIONS.hex_framing == "intel"
        assert DEFAULT_OPTIONS.progress_unit == "entries"

    @pytest.mark.parametrize(
        "changes",
        [
            {"board_policy": "lenient"},
            {"hex_framing": "srec"},
            {"progress_unit": "models"},
            {"max_archive_entries": 0},
            {"max_document_bytes": -1},
        ],
    )
    def test_invalid(self, changes):
        with pytest.raises(ValueError):
            ConversionOptions(**changes)

    def test_with_changes_ignores_none(self):
        """Test that unset command line values keep the loaded options."""
        options = ConversionOptions(board_policy="strict")
        changed = options.with_changes(board_policy=None, hex_framing="plain")
        assert changed.board_policy == "strict"
        assert changed.hex_framing == "plain"
        assert options.hex_framing == "intel"

    def test_to_dict(self):
        assert DEFAULT_OPTIONS.to_dict()["max_archive_entries"] == 1024


class TestLoadOptions:
    """Test cases for loading options from YAML."""

    def test_load(self, tmp_path):
        path = tmp_path / "options.yml"
        path.write_text("board_policy: declared\nfallback_board: x9d\n")
        options = load_options(path)
        assert options.board_policy == "declared"
        assert options.fallback_board == "x9d"
        assert options.hex_framing == "intel"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "options.yml"
        path.write_text("")
        assert load_options(path) == DEFAULT_OPTIONS

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "options.yml"
        path.write_text("board_polcy: strict\n")
        with pytest.raises(ValueError) as exc:
            load_options(path)
        assert "board_polcy" in str(exc.value)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "options.yml"
        path.write_text("- strict\n")
        with pytest.raises(ValueError):
            load_options(path)


class TestChecksums:
    """Test cases for checksum helpers."""

    def test_crc32(self):
        assert crc32(b"123456789") == 0xCBF43926
        assert crc32(b"") == 0

    def test_intel_hex_checksum(self):
        """Test the checksum of a two-byte data record at address 0."""
        assert intel_hex_checksum(bytes([0x02, 0x00, 0x00, 0x00, 0x01, 0x02])) == 0xFB
        assert intel_hex_checksum([0x00, 0x00, 0x00, 0x01]) == 0xFF

    def test_verify_record(self):
        assert verify_intel_hex_record(bytes([0x00, 0x00, 0x00, 0x01, 0xFF]))
        assert not verify_intel_hex_record(bytes([0x00, 0x00, 0x00, 0x01, 0xFE]))
        assert not verify_intel_hex_record(b"\x00\x01")
