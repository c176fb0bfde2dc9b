"""Tests for the typed field codec."""

import sys
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

sys.path.insert(0, str(Path(__file__).parent.parent))

from radioconv.codec.bits import read_bits, write_bits
from radioconv.codec.fields import (
    Unknown,
    clamp_value,
    decode_field,
    decode_struct,
    default_value,
    encode_field,
    encode_struct,
    validate_value,
)
from radioconv.errors import (
    InvalidEncodingError,
    OutOfRangeError,
    TruncatedBufferError,
    TypeMismatchError,
    ValueOutOfRangeError,
)
from radioconv.schema.loader import build_field, build_struct


def field(**definition):
    return build_field(definition)


class TestNumericFields:
    """Test cases for uint, int and fixed fields."""

    def test_uint(self):
        layout = field(name="x", type="uint", width=5, offset=3)
        buf = bytearray(1)
        encode_field(17, layout, buf)
        assert buf[0] == 17 << 3
        assert decode_field(buf, layout) == 17

    def test_int_twos_complement(self):
        """Test that negative values use the field width's two's complement."""
        layout = field(name="tz", type="int", width=5, min=-12, max=12)
        buf = bytearray(1)
        encode_field(-12, layout, buf)
        assert read_bits(buf, 0, 5) == 20
        assert decode_field(buf, layout) == -12

    def test_fixed_point(self):
        """Test that the scale is applied on decode and removed on encode."""
        layout = field(name="v", type="fixed", width=8, scale=0.1, min=3.0, max=12.0)
        buf = bytearray(1)
        encode_field(6.5, layout, buf)
        assert buf[0] == 65
        assert decode_field(buf, layout) == 6.5

    def test_decode_out_of_range(self):
        """Test that a stored value outside min..max is reported."""
        layout = field(name="contrast", type="uint", width=5, min=10, max=30, default=25)
        with pytest.raises(OutOfRangeError) as exc:
            decode_field(b"\x03", layout, path="radio.contrast")
        assert exc.value.raw == 3
        assert exc.value.field == "radio.contrast"

    def test_decode_out_of_range_collects_issue(self):
        """Test that with an issues list the default replaces the value."""
        layout = field(name="contrast", type="uint", width=5, min=10, max=30, default=25)
        issues = []
        assert decode_field(b"\x03", layout, issues=issues) == 25
        assert len(issues) == 1
        assert issues[0].raw == 3
        assert issues[0].path == "contrast"

    def test_encode_out_of_range(self):
        layout = field(name="volume", type="uint", width=5, max=23)
        with pytest.raises(ValueOutOfRangeError):
            encode_field(24, layout, bytearray(1))

    def test_encode_wrong_type(self):
        """Test that bools and strings are not accepted as integers."""
        layout = field(name="x", type="uint", width=4)
        with pytest.raises(TypeMismatchError):
            encode_field(True, layout, bytearray(1))
        with pytest.raises(TypeMismatchError):
            encode_field("3", layout, bytearray(1))

    def test_truncated(self):
        layout = field(name="x", type="uint", width=12, offset=8)
        with pytest.raises(TruncatedBufferError):
            decode_field(b"\x00\x00", layout)

    def test_clamp(self):
        """Test clamping into the field range."""
        layout = field(name="v", type="fixed", width=8, scale=0.1, min=3.5, max=10.0, default=6.5)
        assert clamp_value(11.0, layout) == 10.0
        assert clamp_value(1.0, layout) == 3.5
        assert clamp_value("high", layout) == 6.5


class TestEnumFields:
    """Test cases for enum fields."""

    @pytest.fixture
    def mode(self):
        return field(
            name="mode",
            type="enum",
            width=3,
            choices={0: "off", 1: "keys", 2: "sticks"},
            default="keys",
        )

    def test_tag_round_trip(self, mode):
        buf = bytearray(1)
        encode_field("sticks", mode, buf)
        assert buf[0] == 2
        assert decode_field(buf, mode) == "sticks"

    def test_undeclared_value_is_unknown(self, mode):
        """Test that an undeclared bit pattern decodes to Unknown."""
        value = decode_field(b"\x07", mode)
        assert value == Unknown(7)
        assert str(value) == "Unknown(7)"

    def test_unknown_encodes_raw(self, mode):
        """Test that an Unknown value is written back bit for bit."""
        buf = bytearray(1)
        encode_field(Unknown(5), mode, buf)
        assert buf[0] == 5

    def test_unknown_too_wide(self, mode):
        with pytest.raises(ValueOutOfRangeError):
            encode_field(Unknown(8), mode, bytearray(1))

    def test_unknown_tag(self, mode):
        with pytest.raises(ValueOutOfRangeError):
            encode_field("both", mode, bytearray(1))


class TestFlagsAndBool:
    """Test cases for flags and bool fields."""

    def test_flags(self):
        layout = field(name="f", type="flags", width=8, names=["a", "b", "c"])
        buf = bytearray(1)
        encode_field(["a", "c"], layout, buf)
        assert buf[0] == 0b101
        assert decode_field(buf, layout) == ["a", "c"]

    def test_unnamed_flag_bits(self):
        """Test that set bits without a name decode as bitN."""
        layout = field(name="f", type="flags", width=4, names=["a"])
        assert decode_field(b"\x09", layout) == ["a", "bit3"]

    def test_unknown_flag(self):
        layout = field(name="f", type="flags", width=2, names=["a", "b"])
        with pytest.raises(ValueOutOfRangeError):
            encode_field(["z"], layout, bytearray(1))

    def test_bool(self):
        layout = field(name="b", type="bool", offset=7)
        buf = bytearray(b"\x01")
        encode_field(True, layout, buf)
        assert buf[0] == 0x81
        assert decode_field(buf, layout) is True


class TestStringFields:
    """Test cases for fixed-capacity strings."""

    def test_null_terminated(self):
        layout = field(name="s", type="string", capacity=4)
        buf = bytearray(4)
        encode_field("AB", layout, buf)
        assert bytes(buf) == b"AB\x00\x00"
        assert decode_field(buf, layout) == "AB"

    def test_null_terminated_full(self):
        """Test a string that fills the whole capacity."""
        layout = field(name="s", type="string", capacity=4)
        assert decode_field(b"ABCD", layout) == "ABCD"

    def test_space_padded(self):
        layout = field(name="s", type="string", capacity=4, termination="space")
        buf = bytearray(4)
        encode_field("AB", layout, buf)
        assert bytes(buf) == b"AB  "
        assert decode_field(buf, layout) == "AB"

    def test_length_prefixed(self):
        """Test that the length byte precedes the capacity bytes."""
        layout = field(name="s", type="string", capacity=4, termination="length")
        assert layout.width == 40
        buf = bytearray(5)
        encode_field("AB", layout, buf)
        assert bytes(buf) == b"\x02AB\x00\x00"
        assert decode_field(buf, layout) == "AB"

    def test_existing_padding_kept(self):
        """Test that re-encoding a decoded string keeps the bytes it was read from."""
        space = field(name="s", type="string", capacity=10, termination="space")
        buf = bytearray(b"GLIDER\x00\x00\x00\x00")
        encode_field(decode_field(buf, space), space, buf)
        assert bytes(buf) == b"GLIDER\x00\x00\x00\x00"

        null = field(name="s", type="string", capacity=6)
        buf = bytearray(b"AB\x00CD\x00")
        encode_field(decode_field(buf, null), null, buf)
        assert bytes(buf) == b"AB\x00CD\x00"

    def test_changed_string_repadded(self):
        layout = field(name="s", type="string", capacity=6)
        buf = bytearray(b"AB\x00CD\x00")
        encode_field("XY", layout, buf)
        assert bytes(buf) == b"XY\x00\x00\x00\x00"

    def test_too_long(self):
        layout = field(name="s", type="string", capacity=4)
        with pytest.raises(ValueOutOfRangeError):
            encode_field("ABCDE", layout, bytearray(4))

    def test_outside_charset(self):
        layout = field(name="s", type="string", capacity=4)
        with pytest.raises(ValueOutOfRangeError):
            encode_field("€", layout, bytearray(4))


class TestComposites:
    """Test cases for structs and arrays."""

    @pytest.fixture
    def counted(self):
        """A struct with a counted array of 4-bit items."""
        return build_struct(
            "s",
            [
                {"name": "count", "type": "uint", "width": 3},
                {
                    "name": "items",
                    "type": "array",
                    "length": 4,
                    "count_field": "count",
                    "element": {"type": "uint", "width": 4},
                },
            ],
        )

    def test_count_field_written_from_length(self, counted):
        """Test that the count field follows the list length."""
        buf = bytearray(3)
        encode_struct({"items": [1, 2, 3]}, counted, buf)
        assert read_bits(buf, 0, 3) == 3
        assert decode_struct(buf, counted) == {"items": [1, 2, 3]}

    def test_count_field_hidden(self, counted):
        """Test that count fields are not part of the decoded tree."""
        assert "count" not in default_value(counted)
        assert default_value(counted) == {"items": []}

    def test_count_beyond_capacity(self, counted):
        """Test that a stored count larger than the array is rejected."""
        buf = bytearray(3)
        write_bits(buf, 0, 3, 5)
        with pytest.raises(InvalidEncodingError):
            decode_struct(buf, counted)

    def test_too_many_items(self, counted):
        with pytest.raises(ValueOutOfRangeError):
            encode_struct({"items": [1, 2, 3, 4, 5]}, counted, bytearray(3))

    def test_fixed_array_needs_every_element(self):
        layout = field(name="a", type="array", length=3, element={"type": "uint", "width": 8})
        with pytest.raises(ValueOutOfRangeError):
            encode_field([1, 2], layout, bytearray(3))
        assert default_value(layout) == [0, 0, 0]

    def test_unknown_struct_field(self, counted):
        with pytest.raises(TypeMismatchError):
            encode_struct({"items": [], "other": 1}, counted, bytearray(3))

    def test_missing_struct_field(self, counted):
        with pytest.raises(TypeMismatchError):
            encode_struct({}, counted, bytearray(3))

    def test_validate_value(self, counted):
        """Test validation without a buffer."""
        assert validate_value({"items": [15]}, counted) is None
        assert "items[0]" in validate_value({"items": [16]}, counted)

    def test_default_values_are_fresh(self, counted):
        """Test that composite defaults are not shared between calls."""
        first = default_value(counted)
        first["items"].append(1)
        assert default_value(counted) == {"items": []}


class TestFieldProperties:
    """Property-based tests for scalar fields."""

    @given(
        st.integers(min_value=1, max_value=24),
        st.integers(min_value=0, max_value=16),
        st.data(),
    )
    def test_signed_round_trip(self, width, offset, data):
        """Test that any in-range int survives encode then decode."""
        layout = field(name="x", type="int", width=width, offset=offset)
        value = data.draw(st.integers(min_value=layout.minimum, max_value=layout.maximum))
        background = data.draw(st.binary(min_size=6, max_size=6))

        buf = bytearray(background)
        encode_field(value, layout, buf)
        assert decode_field(buf, layout) == value

    @given(st.text(alphabet="ABCDEFGHIJ0123456789-", max_size=10))
    def test_string_round_trip(self, text):
        for termination in ("null", "length"):
            layout = field(name="s", type="string", capacity=10, termination=termination)
            buf = bytearray(11)
            encode_field(text, layout, buf)
            assert decode_field(buf, layout) == text
