"""
Hex-text container (.hex, .eepe).

Two framings are accepted, both optionally preceded by an
"EEPE EEPROM FILE" banner line:

- Intel HEX records (":LLAAAATT<data>CC"), data, end-of-file and
  extended address records
- Plain hex pairs, any whitespace between them

Malformed input is rejected as a whole: an odd number of digits, a character
that is not a hex digit or a record with a bad checksum raises
InvalidEncodingError naming the line, and no bytes are returned.
"""

import logging
import string
from pathlib import Path
from typing import Dict, Optional, Union

from radioconv.config import DEFAULT_OPTIONS, ConversionOptions
from radioconv.containers.common import (
    check_size,
    identify,
    read_text,
    suffix_of,
    write_text,
)
from radioconv.errors import IoFailureError, InvalidEncodingError
from radioconv.models.image import ContainerKind, RawImage
from radioconv.schema.table import SchemaTable
from radioconv.utils.checksum import intel_hex_checksum, verify_intel_hex_record

logger = logging.getLogger(__name__)

BANNER = "EEPE EEPROM FILE"
RECORD_SIZE = 32

# Intel HEX record types
DATA = 0x00
END_OF_FILE = 0x01
EXTENDED_SEGMENT = 0x02
START_SEGMENT = 0x03
EXTENDED_LINEAR = 0x04
START_LINEAR = 0x05

HEX_DIGITS = set(string.hexdigits)


def parse_hex_text(text: str, name: str = "<hex>") -> bytes:
    """
    Parse hex text in either framing.

    Args:
        text: File contents
        name: Source name used in error locations

    Returns:
        The decoded bytes

    Raises:
        InvalidEncodingError: Malformed input (field is "name:line")
    """
    lines = list(enumerate(text.splitlines(), 1))
    content = [(number, line.strip()) for number, line in lines if line.strip()]
    if content and content[0][1].upper() == BANNER:
        content = content[1:]
    if not content:
        raise InvalidEncodingError("no hex data", name)

    if content[0][1].startswith(":"):
        return _parse_intel_hex(content, name)
    return _parse_plain(content, name)


def _parse_plain(content, name: str) -> bytes:
    digits = []
    for number, line in content:
        for column, char in enumerate(line, 1):
            if char.isspace():
                continue
            if char not in HEX_DIGITS:
                raise InvalidEncodingError(
                    f"invalid character {char!r} in column {column}", f"{name}:{number}"
                )
            digits.append(char)
    if len(digits) % 2:
        raise InvalidEncodingError(f"odd number of hex digits ({len(digits)})", name)
    return bytes.fromhex("".join(digits))


def _parse_intel_hex(content, name: str) -> bytes:
    chunks: Dict[int, bytes] = {}
    base = 0
    finished = False

    for number, line in content:
        where = f"{name}:{number}"
        if finished:
            raise InvalidEncodingError("data after end-of-file record", where)
        if not line.startswith(":"):
            raise InvalidEncodingError("record does not start with ':'", where)

        body = line[1:]
        bad = next((c for c in body if c not in HEX_DIGITS), None)
        if bad is not None:
            raise InvalidEncodingError(f"invalid character {bad!r}", where)
        if len(body) % 2:
            raise InvalidEncodingError("odd number of hex digits", where)

        record = bytes.fromhex(body)
        if len(record) < 5 or len(record) != record[0] + 5:
            raise InvalidEncodingError("record length does not match its byte count", where)
        if not verify_intel_hex_record(record):
            raise InvalidEncodingError(
                f"bad record checksum 0x{record[-1]:02X}, expected "
                f"0x{intel_hex_checksum(record[:-1]):02X}",
                where,
            )

        address = (record[1] << 8) | record[2]
        record_type = record[3]
        data = record[4:-1]
        if record_type == DATA:
            chunks[base + address] = data
        elif record_type == END_OF_FILE:
            finished = True
        elif record_type == EXTENDED_SEGMENT:
            base = int.from_bytes(data, "big") << 4
        elif record_type == EXTENDED_LINEAR:
            base = int.from_bytes(data, "big") << 16
        elif record_type not in (START_SEGMENT, START_LINEAR):
            raise InvalidEncodingError(f"unknown record type {record_type:02X}", where)

    if not finished:
        raise InvalidEncodingError("missing end-of-file record", name)

    result = bytearray()
    for address in sorted(chunks):
        if address != len(result):
            raise InvalidEncodingError(
                f"records leave a gap or overlap at address 0x{len(result):04X}", name
            )
        result += chunks[address]
    return bytes(result)


def format_intel_hex(data: bytes, record_size: int = RECORD_SIZE) -> str:
    """Format bytes as Intel HEX records followed by an end-of-file record."""
    lines = []
    upper = 0
    for start in range(0, len(data), record_size):
        if start >> 16 != upper:
            upper = start >> 16
            lines.append(_record(0, EXTENDED_LINEAR, upper.to_bytes(2, "big")))
        lines.append(_record(start & 0xFFFF, DATA, data[start : start + record_size]))
    lines.append(_record(0, END_OF_FILE, b""))
    return "\n".join(lines) + "\n"


def _record(address: int, record_type: int, data: bytes) -> str:
    record = bytes([len(data), address >> 8, address & 0xFF, record_type]) + data
    return ":" + (record + bytes([intel_hex_checksum(record)])).hex().upper()


def format_plain(data: bytes, per_line: int = RECORD_SIZE) -> str:
    """Format bytes as the banner followed by lines of bare hex pairs."""
    lines = [BANNER]
    for start in range(0, len(data), per_line):
        lines.append(data[start : start + per_line].hex().upper())
    return "\n".join(lines) + "\n"


class HexTextAdapter:
    """
    Reader/writer for hex-encoded images.

    Example:
        adapter = HexTextAdapter(default_table(), options.with_changes(hex_framing="plain"))
        adapter.write(image, "backup.eepe")
    """

    kind = ContainerKind.HEX
    extensions = (".hex", ".eepe")

    def __init__(self, table: SchemaTable, options: Optional[ConversionOptions] = None):
        self.table = table
        self.options = options or DEFAULT_OPTIONS

    @classmethod
    def can_read(cls, path: Union[str, Path]) -> bool:
        path = Path(path)
        return path.is_file() and suffix_of(path) in cls.extensions

    def read(self, source: Union[str, Path]) -> RawImage:
        """
        Read a hex image.

        Raises:
            IoFailureError: File cannot be read
            InvalidEncodingError: Malformed hex text
            SizeMismatchError: Decoded length differs from the schema size
        """
        try:
            text = read_text(source)
        except IoFailureError as e:
            if e.offset is None:
                raise
            raise InvalidEncodingError(f"non-text byte at offset {e.offset}", str(source)) from e
        data = parse_hex_text(text, Path(source).name)
        board, version, payload, metadata = identify(self.table, data, self.options, source)
        check_size(self.table, board, version, len(payload), source)
        logger.debug("Read hex image %s: %s v%d", source, board, version)
        return RawImage.create(
            payload, self.kind, board, version, source=str(source), metadata=metadata
        )

    def write(self, image: RawImage, destination: Union[str, Path], progress=None) -> None:
        check_size(self.table, image.board, image.version, image.size, destination)
        if self.options.hex_framing == "plain":
            text = format_plain(image.payload)
        else:
            text = format_intel_hex(image.payload)
        write_text(destination, text)
        if progress is not None:
            progress(image.size, image.size)
        logger.debug("Wrote %s hex image %s", self.options.hex_framing, destination)
