"""
Checksum utilities for radio images and containers.

- CRC-32 (zlib polynomial): payload checksums in RawImage, archives and
  legacy compressed containers
- Intel HEX record checksum: two's complement of the byte sum of a record
"""

import zlib
from typing import List, Union


def crc32(data: Union[bytes, bytearray, memoryview]) -> int:
    """
    Calculate the CRC-32 of a payload.

    Args:
        data: Bytes to checksum

    Returns:
        Unsigned 32-bit CRC
    """
    return zlib.crc32(bytes(data)) & 0xFFFFFFFF


def intel_hex_checksum(record: Union[bytes, List[int]]) -> int:
    """
    Calculate the checksum byte of an Intel HEX record.

    The checksum covers the length, address, type and data bytes:
    the low byte of the sum, negated.

    Args:
        record: Record bytes without the checksum

    Returns:
        Checksum value (0-255)
    """
    if isinstance(record, list):
        record = bytes(record)

    return (-sum(record)) & 0xFF


def verify_intel_hex_record(record: Union[bytes, List[int]]) -> bool:
    """
    Verify a complete Intel HEX record (checksum byte included).

    Returns:
        True if the bytes sum to zero modulo 256
    """
    if isinstance(record, list):
        record = bytes(record)

    return len(record) >= 5 and sum(record) & 0xFF == 0
