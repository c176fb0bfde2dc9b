"""Tests for the little-endian bit codec."""

import sys
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

sys.path.insert(0, str(Path(__file__).parent.parent))

from radioconv.codec.bits import from_signed, read_bits, to_signed, write_bits
from radioconv.errors import TruncatedBufferError


class TestReadBits:
    """Test cases for read_bits."""

    def test_read_within_byte(self):
        """Test reading a field inside a single byte."""
        assert read_bits(b"\xb4", 2, 4) == 0b1101

    def test_read_across_byte_boundary(self):
        """Test a field that spans two bytes."""
        assert read_bits(b"\xc0\x02", 6, 4) == 0b1011

    def test_read_little_endian_word(self):
        """Test that multi-byte fields are little-endian."""
        assert read_bits(b"\x01\x01", 0, 16) == 0x0101
        assert read_bits(b"\x34\x12", 0, 16) == 0x1234

    def test_zero_width(self):
        """Test that a zero-width read returns 0 without a span check."""
        assert read_bits(b"", 0, 0) == 0

    def test_truncated(self):
        """Test reading past the end of the buffer."""
        with pytest.raises(TruncatedBufferError) as exc:
            read_bits(b"\x00\x00", 12, 8, field="radio.contrast")
        assert exc.value.field == "radio.contrast"
        assert exc.value.offset == 12


class TestWriteBits:
    """Test cases for write_bits."""

    def test_write_across_byte_boundary(self):
        """Test the documented cross-byte example."""
        buf = bytearray(2)
        write_bits(buf, 6, 4, 0b1011)
        assert bytes(buf) == b"\xc0\x02"

    def test_neighbours_untouched(self):
        """Test that only the target bits change."""
        buf = bytearray(b"\xff\xff\xff")
        write_bits(buf, 5, 7, 0)
        assert bytes(buf) == b"\x1f\xf0\xff"

    def test_value_too_wide(self):
        """Test that a value wider than the field is refused."""
        with pytest.raises(ValueError):
            write_bits(bytearray(1), 0, 3, 8)

    def test_negative_value(self):
        with pytest.raises(ValueError):
            write_bits(bytearray(1), 0, 3, -1)

    def test_truncated(self):
        """Test writing past the end of the buffer."""
        buf = bytearray(1)
        with pytest.raises(TruncatedBufferError):
            write_bits(buf, 4, 8, 1)
        assert buf == bytearray(1)


class TestSigned:
    """Test cases for two's complement helpers."""

    def test_to_signed(self):
        assert to_signed(0b11111, 5) == -1
        assert to_signed(0b10000, 5) == -16
        assert to_signed(0b01111, 5) == 15

    def test_from_signed(self):
        assert from_signed(-12, 5) == 20
        assert from_signed(-1, 8) == 0xFF
        assert from_signed(7, 8) == 7


@st.composite
def bit_fields(draw):
    size = draw(st.integers(min_value=1, max_value=12))
    buffer = draw(st.binary(min_size=size, max_size=size))
    width = draw(st.integers(min_value=1, max_value=size * 8))
    offset = draw(st.integers(min_value=0, max_value=size * 8 - width))
    value = draw(st.integers(min_value=0, max_value=(1 << width) - 1))
    return bytearray(buffer), offset, width, value


class TestBitProperties:
    """Property-based tests for the bit codec."""

    @given(bit_fields())
    def test_write_then_read(self, field):
        """Test that a written value reads back unchanged."""
        buf, offset, width, value = field
        write_bits(buf, offset, width, value)
        assert read_bits(buf, offset, width) == value

    @given(bit_fields())
    def test_other_bits_preserved(self, field):
        """Test that bits outside the field keep their value."""
        buf, offset, width, value = field
        before = int.from_bytes(bytes(buf), "little")
        write_bits(buf, offset, width, value)
        after = int.from_bytes(bytes(buf), "little")

        outside = ~(((1 << width) - 1) << offset)
        assert before & outside == after & outside

    @given(st.integers(min_value=1, max_value=32), st.data())
    def test_signed_round_trip(self, width, data):
        """Test that from_signed and to_signed are inverses over the width."""
        value = data.draw(st.integers(min_value=-(1 << (width - 1)), max_value=(1 << (width - 1)) - 1))
        assert to_signed(from_signed(value, width), width) == value
