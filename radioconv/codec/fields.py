"""
Typed field codec.

Translates between the bits described by a FieldLayout and Python values:

    UINT / INT   -> int (INT is two's complement of the field width)
    FIXED        -> float, raw * scale (scale applied here, never stored)
    BOOL         -> bool
    ENUM         -> tag string, or Unknown(raw) for undeclared patterns
    FLAGS        -> list of set flag names, in bit order
    STRING       -> str, fixed capacity (null, space or length terminated)
    STRUCT       -> dict of child values (array count fields omitted)
    ARRAY        -> list of element values

All functions are pure over the buffer they are given.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from radioconv.codec.bits import check_span, from_signed, read_bits, to_signed, write_bits
from radioconv.errors import (
    CodecError,
    InvalidEncodingError,
    OutOfRangeError,
    TypeMismatchError,
    ValueOutOfRangeError,
)
from radioconv.schema.layout import Encoding, FieldLayout, Termination

logger = logging.getLogger(__name__)

STRING_CHARSET = "latin-1"


@dataclass(frozen=True)
class Unknown:
    """An enum bit pattern outside the declared set of tags."""

    raw: int

    def __str__(self) -> str:
        return f"Unknown({self.raw})"


@dataclass
class FieldIssue:
    """
    A field-level decode problem that was replaced by the field default.

    Collected instead of raised when the caller passes an `issues` list.
    """

    path: str
    layout: FieldLayout
    raw: Optional[int]
    error: CodecError


def default_value(layout: FieldLayout) -> Any:
    """
    Build the default value of a field.

    Composite defaults are built fresh on every call so callers may mutate
    them.
    """
    if layout.encoding == Encoding.STRUCT:
        return {child.name: default_value(child) for child in layout.value_fields}
    if layout.encoding == Encoding.ARRAY:
        if layout.is_fixed_count:
            return [default_value(layout.element) for _ in range(layout.length)]
        return []
    if layout.encoding == Encoding.FLAGS:
        return list(layout.default or ())
    return copy.copy(layout.default)


def is_signed(layout: FieldLayout) -> bool:
    if layout.encoding == Encoding.INT:
        return True
    return layout.encoding == Encoding.FIXED and layout.minimum is not None and layout.minimum < 0


def _scaled(raw: int, scale: float) -> float:
    return round(raw * scale, 6)


# Decoding


def decode_field(
    buffer,
    layout: FieldLayout,
    base: int = 0,
    count: Optional[int] = None,
    path: Optional[str] = None,
    issues: Optional[List[FieldIssue]] = None,
) -> Any:
    """
    Decode one field from a buffer.

    Args:
        buffer: Source bytes
        layout: Field layout
        base: Bit offset of the parent struct
        count: Used element count for ARRAY fields with a count field
        path: Field path for error messages (defaults to the field name)
        issues: If given, out-of-range values are appended here and
                replaced by the field default instead of raising

    Returns:
        The decoded value

    Raises:
        OutOfRangeError: Value outside the declared range (issues is None)
        TruncatedBufferError: Buffer ends before the field does
        InvalidEncodingError: Array count larger than its capacity
    """
    path = path or layout.name
    offset = base + layout.offset

    if layout.encoding == Encoding.STRUCT:
        return decode_struct(buffer, layout, offset, path, issues)
    if layout.encoding == Encoding.ARRAY:
        return _decode_array(buffer, layout, offset, count, path, issues)

    check_span(buffer, offset, layout.width, path)
    raw = read_bits(buffer, offset, layout.width, path)
    try:
        return _from_raw(raw, layout, path, offset)
    except OutOfRangeError as e:
        if issues is None:
            raise
        logger.debug("Out of range on decode, using default: %s", e)
        issues.append(FieldIssue(path, layout, raw, e))
        return default_value(layout)


def _from_raw(raw: int, layout: FieldLayout, path: str, offset: int) -> Any:
    encoding = layout.encoding

    if encoding.is_numeric:
        stored = to_signed(raw, layout.width) if is_signed(layout) else raw
        low, high = layout.raw_range()
        if not low <= stored <= high:
            shown = _scaled(stored, layout.scale) if encoding == Encoding.FIXED else stored
            raise OutOfRangeError(
                f"value {shown} outside {layout.minimum}..{layout.maximum}",
                path,
                offset,
                raw=raw,
            )
        if encoding == Encoding.FIXED:
            return _scaled(stored, layout.scale)
        return stored

    if encoding == Encoding.BOOL:
        return bool(raw)

    if encoding == Encoding.ENUM:
        tag = layout.tag_for(raw)
        return tag if tag is not None else Unknown(raw)

    if encoding == Encoding.FLAGS:
        return [name for bit, name in enumerate(layout.flags) if raw >> bit & 1]

    if encoding == Encoding.STRING:
        return _decode_string(raw, layout)

    raise InvalidEncodingError(f"cannot decode encoding {encoding}", path, offset)


def _decode_string(raw: int, layout: FieldLayout) -> str:
    data = raw.to_bytes(layout.width // 8, "little")
    if layout.termination == Termination.LENGTH:
        used = min(data[0], layout.capacity)
        text = data[1 : 1 + used]
    elif layout.termination == Termination.SPACE:
        text = data.rstrip(b" \x00")
    else:
        text = data.split(b"\x00", 1)[0]
    return text.decode(STRING_CHARSET)


def _decode_array(buffer, layout, offset, count, path, issues) -> list:
    if count is None:
        if not layout.is_fixed_count:
            raise InvalidEncodingError("array count was not resolved", path, offset)
        count = layout.length
    if count > layout.length:
        raise InvalidEncodingError(
            f"count {count} exceeds capacity {layout.length}", path, offset
        )
    check_span(buffer, offset, layout.width, path)
    return [
        decode_field(buffer, layout.element, offset + i * layout.stride, None, f"{path}[{i}]", issues)
        for i in range(count)
    ]


def decode_struct(
    buffer,
    layout: FieldLayout,
    base: int = 0,
    path: str = "",
    issues: Optional[List[FieldIssue]] = None,
) -> Dict[str, Any]:
    """
    Decode every value field of a struct.

    Array count fields are resolved first and left out of the result.
    """
    counts = {}
    for name in layout.count_fields:
        count_layout = layout.child(name)
        counts[name] = read_bits(
            buffer, base + count_layout.offset, count_layout.width, _join(path, name)
        )

    values = {}
    for child in layout.value_fields:
        values[child.name] = decode_field(
            buffer,
            child,
            base,
            counts.get(child.count_field) if child.count_field else None,
            _join(path, child.name),
            issues,
        )
    return values


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


# Encoding


def encode_field(
    value: Any, layout: FieldLayout, buffer: bytearray, base: int = 0, path: Optional[str] = None
) -> None:
    """
    Encode one field into a buffer, leaving all other bits untouched.

    A scalar whose bits already decode to `value` is left as it is, so the
    string padding of a decoded image survives re-encoding.

    Args:
        value: Value to store
        layout: Field layout
        buffer: Destination (modified in place)
        base: Bit offset of the parent struct
        path: Field path for error messages

    Raises:
        ValueOutOfRangeError: Value outside range or capacity
        TypeMismatchError: Value of the wrong type for the field
    """
    path = path or layout.name
    offset = base + layout.offset

    if layout.encoding == Encoding.STRUCT:
        encode_struct(value, layout, buffer, offset, path)
        return
    if layout.encoding == Encoding.ARRAY:
        _encode_array(value, layout, buffer, offset, path)
        return

    check_span(buffer, offset, layout.width, path)
    raw = to_raw(value, layout, path)
    current = read_bits(buffer, offset, layout.width, path)
    if current != raw and not _reads_as(current, value, layout, path, offset):
        write_bits(buffer, offset, layout.width, raw, path)


def _reads_as(current: int, value: Any, layout: FieldLayout, path: str, offset: int) -> bool:
    try:
        stored = _from_raw(current, layout, path, offset)
    except CodecError:
        return False
    return type(stored) is type(value) and stored == value


def to_raw(value: Any, layout: FieldLayout, path: Optional[str] = None) -> int:
    """
    Convert a scalar value to the unsigned integer stored in its bits.
    """
    path = path or layout.name
    encoding = layout.encoding

    if encoding in (Encoding.UINT, Encoding.INT):
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeMismatchError(f"expected integer, got {type(value).__name__}", path)
        return _check_stored(value, layout, path)

    if encoding == Encoding.FIXED:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeMismatchError(f"expected number, got {type(value).__name__}", path)
        return _check_stored(round(value / layout.scale), layout, path)

    if encoding == Encoding.BOOL:
        if not isinstance(value, bool):
            raise TypeMismatchError(f"expected bool, got {type(value).__name__}", path)
        return int(value)

    if encoding == Encoding.ENUM:
        if isinstance(value, Unknown):
            if value.raw < 0 or value.raw >> layout.width:
                raise ValueOutOfRangeError(f"{value} does not fit in {layout.width} bits", path)
            return value.raw
        if not isinstance(value, str):
            raise TypeMismatchError(f"expected enum tag, got {type(value).__name__}", path)
        raw = layout.raw_for(value)
        if raw is None:
            raise ValueOutOfRangeError(f"{value!r} is not one of {list(layout.tags)}", path)
        return raw

    if encoding == Encoding.FLAGS:
        if isinstance(value, str) or not isinstance(value, (list, tuple, set, frozenset)):
            raise TypeMismatchError(f"expected list of flags, got {type(value).__name__}", path)
        raw = 0
        for name in value:
            if name not in layout.flags:
                raise ValueOutOfRangeError(f"unknown flag {name!r}", path)
            raw |= 1 << layout.flags.index(name)
        return raw

    if encoding == Encoding.STRING:
        if not isinstance(value, str):
            raise TypeMismatchError(f"expected string, got {type(value).__name__}", path)
        return _encode_string(value, layout, path)

    raise TypeMismatchError(f"cannot encode encoding {encoding}", path)


def _check_stored(stored: int, layout: FieldLayout, path: str) -> int:
    low, high = layout.raw_range()
    if not low <= stored <= high:
        raise ValueOutOfRangeError(
            f"value outside {layout.minimum}..{layout.maximum}", path
        )
    return from_signed(stored, layout.width) if is_signed(layout) else stored


def _encode_string(value: str, layout: FieldLayout, path: str) -> int:
    try:
        text = value.encode(STRING_CHARSET)
    except UnicodeEncodeError:
        raise ValueOutOfRangeError(f"{value!r} has characters outside {STRING_CHARSET}", path)
    if len(text) > layout.capacity:
        raise ValueOutOfRangeError(
            f"{value!r} longer than {layout.capacity} characters", path
        )

    if layout.termination == Termination.LENGTH:
        data = bytes([len(text)]) + text.ljust(layout.capacity, b"\x00")
    elif layout.termination == Termination.SPACE:
        data = text.ljust(layout.capacity, b" ")
    else:
        data = text.ljust(layout.capacity, b"\x00")
    return int.from_bytes(data, "little")


def _encode_array(value, layout: FieldLayout, buffer, offset: int, path: str) -> None:
    if not isinstance(value, list):
        raise TypeMismatchError(f"expected list, got {type(value).__name__}", path)
    if layout.is_fixed_count and len(value) != layout.length:
        raise ValueOutOfRangeError(
            f"expected exactly {layout.length} elements, got {len(value)}", path
        )
    if len(value) > layout.length:
        raise ValueOutOfRangeError(
            f"{len(value)} elements exceed capacity {layout.length}", path
        )
    for i, item in enumerate(value):
        encode_field(item, layout.element, buffer, offset + i * layout.stride, f"{path}[{i}]")


def encode_struct(
    values: Dict[str, Any], layout: FieldLayout, buffer: bytearray, base: int = 0, path: str = ""
) -> None:
    """
    Encode a struct value, writing array count fields from list lengths.
    """
    if not isinstance(values, dict):
        raise TypeMismatchError(f"expected mapping, got {type(values).__name__}", path or None)

    known = {child.name for child in layout.value_fields}
    extra = sorted(set(values) - known)
    if extra:
        raise TypeMismatchError(f"unknown fields {extra}", path or None)

    for child in layout.value_fields:
        child_path = _join(path, child.name)
        if child.name not in values:
            raise TypeMismatchError("missing value", child_path)
        value = values[child.name]
        encode_field(value, child, buffer, base, child_path)

        if child.count_field and isinstance(value, list):
            count_layout = layout.child(child.count_field)
            encode_field(len(value), count_layout, buffer, base, _join(path, count_layout.name))


# Validation


def validate_value(value: Any, layout: FieldLayout, path: Optional[str] = None) -> Optional[str]:
    """
    Check a value against a layout without touching any buffer.

    Returns:
        None if the value can be encoded, otherwise the reason it cannot
    """
    path = path or layout.name
    try:
        if layout.encoding == Encoding.STRUCT:
            scratch = bytearray((layout.width + 7) // 8)
            encode_struct(value, layout, scratch, 0, path)
        elif layout.encoding == Encoding.ARRAY:
            scratch = bytearray((layout.width + 7) // 8)
            _encode_array(value, layout, scratch, 0, path)
        else:
            to_raw(value, layout, path)
    except CodecError as e:
        return str(e)
    return None


def clamp_value(value: Any, layout: FieldLayout) -> Any:
    """
    Pull a numeric value back into its layout's range.

    Non-numeric values (and values of the wrong type) fall back to the
    field default.
    """
    encoding = layout.encoding
    if encoding.is_numeric and isinstance(value, (int, float)) and not isinstance(value, bool):
        clamped = min(max(value, layout.minimum), layout.maximum)
        if encoding == Encoding.FIXED:
            return _scaled(round(clamped / layout.scale), layout.scale)
        return int(clamped)
    if encoding == Encoding.STRING and isinstance(value, str):
        truncated = value.encode(STRING_CHARSET, errors="replace")[: layout.capacity]
        return truncated.decode(STRING_CHARSET)
    return default_value(layout)
