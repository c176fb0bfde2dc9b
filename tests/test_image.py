"""Tests for the whole-image codec and settings model."""

import random
import sys
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import settings as hypothesis_settings
from hypothesis import strategies as st

sys.path.insert(0, str(Path(__file__).parent.parent))

from radioconv.codec.bits import from_signed, read_bits, to_signed, write_bits
from radioconv.codec.fields import Unknown, default_value, is_signed
from radioconv.codec.image import (
    MODEL_COUNT_BITS,
    VARIANT_BITS,
    VERSION_BITS,
    decode_image,
    encode_image,
    read_header,
)
from radioconv.errors import InvalidContainerError, SizeMismatchError
from radioconv.models.image import ContainerKind, RawImage
from radioconv.schema.layout import Encoding


class TestImageCodec:
    """Test cases for decode_image and encode_image."""

    def test_header(self, table, make_settings):
        """Test the version, variant and model count bits."""
        schema = table.resolve("x9d", 216)
        payload = encode_image(make_settings("x9d", 216, models=3), schema)
        assert len(payload) == 1024
        assert read_header(payload) == (216, 0x0101)
        assert payload[:4] == b"\xd8\x01\x01\x03"
        assert read_bits(payload, *MODEL_COUNT_BITS) == 3

    def test_default_image_decodes_to_defaults(self, table, make_settings):
        """Test that an image at its default bit pattern decodes to the default tree."""
        schema = table.resolve("x9d", 216)
        payload = encode_image(make_settings("x9d", 216), schema)
        settings = decode_image(payload, schema)

        assert settings.radio == default_value(schema.radio)
        assert settings.radio["backlight_mode"] == "keys"
        assert settings.radio["vbat_warn"] == 6.5
        assert settings.radio["owner_name"] == ""
        assert settings.models == []

    def test_round_trip(self, table, glider):
        """Test that encoding a decoded image reproduces the bytes."""
        schema = table.resolve("x9d", 216)
        payload = encode_image(glider, schema)
        decoded = decode_image(payload, schema)

        assert decoded.same_values(glider)
        assert encode_image(decoded, schema) == payload

    def test_unused_slots_stay_zero(self, table, glider):
        schema = table.resolve("x9d", 216)
        payload = encode_image(glider, schema)
        start, stride = schema.segments()["model"]
        assert payload[start + 2 * stride :] == bytes(len(payload) - start - 2 * stride)

    def test_unused_slot_bytes_kept(self, table, glider):
        """Test that re-encoding a decoded image keeps the bytes of unused slots."""
        schema = table.resolve("x9d", 216)
        payload = bytearray(encode_image(glider, schema))
        start, stride = schema.segments()["model"]
        payload[start + 2 * stride + 5] = 0x41

        decoded = decode_image(bytes(payload), schema)
        assert decoded.payload == bytes(payload)
        assert encode_image(decoded, schema) == bytes(payload)

    def test_payload_of_other_board_ignored(self, table, glider):
        """Test that the decoded bytes only seed an image of the same schema."""
        payload = bytearray(encode_image(glider, table.resolve("x9d", 216)))
        payload[-1] = 0xFF
        decoded = decode_image(bytes(payload), table.resolve("x9d", 216))

        other = encode_image(decoded, table.resolve("x9dp", 216))
        assert read_header(other) == (216, 0x0102)
        assert other[-1] == 0

    def test_wrong_size(self, table, glider):
        schema = table.resolve("x9d", 216)
        payload = encode_image(glider, schema)
        with pytest.raises(SizeMismatchError) as exc:
            decode_image(payload[:-1], schema)
        assert exc.value.expected == 1024
        assert exc.value.actual == 1023

    def test_wrong_variant(self, table, glider):
        """Test that an image for another board is refused."""
        payload = encode_image(glider, table.resolve("x9d", 216))
        with pytest.raises(InvalidContainerError):
            decode_image(payload, table.resolve("x7", 216))

    def test_short_header(self):
        with pytest.raises(SizeMismatchError):
            read_header(b"\xd8\x01")

    def test_undeclared_enum_survives(self, table, make_settings):
        """Test that an undeclared enum pattern round-trips bit for bit."""
        schema = table.resolve("x9d", 218)
        payload = bytearray(encode_image(make_settings("x9d", 218), schema))
        offset = schema.radio.offset + schema.radio.child("backlight_mode").offset
        write_bits(payload, offset, 3, 7)

        settings = decode_image(bytes(payload), schema)
        assert settings.radio["backlight_mode"] == Unknown(7)
        assert encode_image(settings, schema) == bytes(payload)

    def test_out_of_range_collected(self, table, make_settings):
        """Test that out-of-range values become defaults when issues are collected."""
        schema = table.resolve("x9d", 216)
        payload = bytearray(encode_image(make_settings("x9d", 216), schema))
        offset = schema.radio.offset + schema.radio.child("contrast").offset
        write_bits(payload, offset, 5, 2)

        issues = []
        settings = decode_image(bytes(payload), schema, issues)
        assert settings.radio["contrast"] == 25
        assert [issue.path for issue in issues] == ["radio.contrast"]


class TestSettingsModel:
    """Test cases for CanonicalSettings and RawImage."""

    def test_model_access(self, glider):
        assert glider.model_count == 2
        assert glider.model(0)["name"] == "GLIDER"
        with pytest.raises(IndexError):
            glider.model(2)

    def test_copy_is_deep(self, glider):
        clone = glider.copy()
        clone.models[0]["mixes"][0]["weight"] = 0
        assert glider.models[0]["mixes"][0]["weight"] == -50
        assert not clone.same_values(glider)

    def test_same_values_ignores_metadata(self, glider):
        clone = glider.copy()
        clone.metadata["labels"] = ["Gliders"]
        assert clone.same_values(glider)

    def test_raw_image_checksum(self):
        image = RawImage.create(b"\x01\x02", ContainerKind.RAW, "x9d", 216)
        assert image.size == 2
        assert image.checksum is not None
        assert image.verify_checksum()
        assert "raw" in repr(image)


def _make_valid(buffer: bytearray, layout, base: int) -> None:
    """Rewrite array counts and out-of-range numbers so every field decodes."""
    for name in layout.count_fields:
        count = layout.child(name)
        array = next(c for c in layout.fields if c.count_field == name)
        used = read_bits(buffer, base + count.offset, count.width) % (array.length + 1)
        write_bits(buffer, base + count.offset, count.width, used)

    for child in layout.value_fields:
        offset = base + child.offset
        if child.encoding == Encoding.STRUCT:
            _make_valid(buffer, child, offset)
        elif child.encoding == Encoding.ARRAY:
            used = child.length
            if child.count_field:
                count = layout.child(child.count_field)
                used = read_bits(buffer, base + count.offset, count.width)
            for i in range(used):
                element = offset + i * child.stride
                if child.element.encoding == Encoding.STRUCT:
                    _make_valid(buffer, child.element, element)
                else:
                    _make_scalar_valid(buffer, child.element, element)
        else:
            _make_scalar_valid(buffer, child, offset)


def _make_scalar_valid(buffer: bytearray, layout, offset: int) -> None:
    if not layout.encoding.is_numeric:
        return
    raw = read_bits(buffer, offset, layout.width)
    stored = to_signed(raw, layout.width) if is_signed(layout) else raw
    low, high = layout.raw_range()
    if not low <= stored <= high:
        stored = low + stored % (high - low + 1)
        raw = from_signed(stored, layout.width) if is_signed(layout) else stored
        write_bits(buffer, offset, layout.width, raw)


class TestImageProperties:
    """Property-based tests over every bundled schema."""

    @hypothesis_settings(max_examples=20)
    @given(st.integers(min_value=0, max_value=2**32 - 1))
    def test_decode_encode_reproduces_bytes(self, table, seed):
        """Test that any valid image survives decode then encode bit for bit."""
        rng = random.Random(seed)
        for schema in table:
            buffer = bytearray(rng.getrandbits(schema.size * 8).to_bytes(schema.size, "little"))
            _make_valid(buffer, schema.root, 0)
            write_bits(buffer, *VERSION_BITS, schema.version)
            write_bits(buffer, *VARIANT_BITS, schema.variant)

            payload = bytes(buffer)
            decoded = decode_image(payload, schema)
            assert encode_image(decoded, schema) == payload, schema
