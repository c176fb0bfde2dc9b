"""
Bit-level access to flat byte buffers.

Bits are numbered little-endian: bit n of the buffer is bit (n % 8) of byte
(n // 8), so a field of `width` bits at `offset` is the integer formed by the
covering bytes read little-endian, shifted right by (offset % 8) and masked.
This matches how bitfield structs are laid out on the radios.

Example:
    buf = bytearray(2)
    write_bits(buf, 6, 4, 0b1011)   # crosses the byte boundary
    bytes(buf) == b"\\xc0\\x02"
    read_bits(buf, 6, 4) == 0b1011
"""

from typing import Union

from radioconv.errors import TruncatedBufferError

Buffer = Union[bytes, bytearray, memoryview]


def _span(offset: int, width: int):
    first = offset // 8
    last = (offset + width - 1) // 8
    return first, last + 1


def check_span(buffer: Buffer, offset: int, width: int, field=None) -> None:
    """
    Raise TruncatedBufferError if the bit range does not fit in the buffer.
    """
    if offset < 0 or width < 0:
        raise TruncatedBufferError(f"negative bit range {offset}+{width}", field, offset)
    if offset + width > len(buffer) * 8:
        raise TruncatedBufferError(
            f"bits {offset}..{offset + width} beyond buffer of {len(buffer)} bytes",
            field,
            offset,
        )


def read_bits(buffer: Buffer, offset: int, width: int, field=None) -> int:
    """
    Read an unsigned integer of `width` bits starting at bit `offset`.

    Args:
        buffer: Source bytes
        offset: Absolute bit offset
        width: Number of bits (0 returns 0)
        field: Field path, used in error messages

    Returns:
        The unsigned value
    """
    if width == 0:
        return 0
    check_span(buffer, offset, width, field)
    start, end = _span(offset, width)
    chunk = int.from_bytes(bytes(buffer[start:end]), "little")
    return (chunk >> (offset % 8)) & ((1 << width) - 1)


def write_bits(buffer: bytearray, offset: int, width: int, value: int, field=None) -> None:
    """
    Write `value` into `width` bits starting at bit `offset`.

    Bits outside the range keep their current value: the covering bytes are
    read, masked and written back.

    Args:
        buffer: Destination (modified in place)
        offset: Absolute bit offset
        width: Number of bits
        value: Unsigned value, must fit in `width` bits
        field: Field path, used in error messages
    """
    if width == 0:
        return
    check_span(buffer, offset, width, field)
    mask = (1 << width) - 1
    if value < 0 or value > mask:
        raise ValueError(f"value {value} does not fit in {width} bits")

    start, end = _span(offset, width)
    shift = offset % 8
    chunk = int.from_bytes(bytes(buffer[start:end]), "little")
    chunk &= ~(mask << shift)
    chunk |= value << shift
    buffer[start:end] = chunk.to_bytes(end - start, "little")


def to_signed(raw: int, width: int) -> int:
    """Interpret `raw` as a two's complement number of `width` bits."""
    if width and raw & (1 << (width - 1)):
        return raw - (1 << width)
    return raw


def from_signed(value: int, width: int) -> int:
    """Two's complement representation of `value` in `width` bits."""
    return value & ((1 << width) - 1)
