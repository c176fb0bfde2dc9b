"""Utility functions for radioconv."""

from radioconv.utils.checksum import crc32, intel_hex_checksum, verify_intel_hex_record

__all__ = [
    "crc32",
    "intel_hex_checksum",
    "verify_intel_hex_record",
]
