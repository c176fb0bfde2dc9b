"""Binary field codec: bit-exact packing of typed fields into byte buffers."""

from radioconv.codec.fields import (
    FieldIssue,
    Unknown,
    decode_field,
    decode_struct,
    default_value,
    encode_field,
    encode_struct,
    validate_value,
)
from radioconv.codec.image import decode_image, encode_image, read_header

__all__ = [
    "FieldIssue",
    "Unknown",
    "decode_field",
    "decode_image",
    "decode_struct",
    "default_value",
    "encode_field",
    "encode_image",
    "encode_struct",
    "read_header",
    "validate_value",
]
