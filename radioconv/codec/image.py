"""
Whole-image codec.

Every image starts with the same fixed header, whatever the board or
version:

    bits  0-7    schema version
    bits  8-23   board variant id (little-endian)
    bits 24-31   number of used model slots

followed by the radio settings struct and the model slot array, both byte
aligned. The header fields are part of every schema's root struct; this
module maps the root struct onto CanonicalSettings and back.
"""

import logging
from typing import List, Optional, Tuple

from radioconv.codec.bits import read_bits
from radioconv.codec.fields import FieldIssue, decode_struct, encode_struct
from radioconv.errors import InvalidContainerError, SizeMismatchError
from radioconv.models.settings import CanonicalSettings
from radioconv.schema.layout import SchemaVersion

logger = logging.getLogger(__name__)

VERSION_BITS = (0, 8)
VARIANT_BITS = (8, 16)
MODEL_COUNT_BITS = (24, 8)
HEADER_SIZE = 4


def read_header(payload: bytes) -> Tuple[int, int]:
    """
    Read the version and board variant id from an image.

    Returns:
        (version, variant)

    Raises:
        SizeMismatchError: Payload too short to hold the header
    """
    if len(payload) < HEADER_SIZE:
        raise SizeMismatchError(HEADER_SIZE, len(payload), "image header")
    return read_bits(payload, *VERSION_BITS), read_bits(payload, *VARIANT_BITS)


def decode_image(
    payload: bytes, schema: SchemaVersion, issues: Optional[List[FieldIssue]] = None
) -> CanonicalSettings:
    """
    Decode a complete image into CanonicalSettings.

    Args:
        payload: Image bytes, exactly schema.size long
        schema: Layout to decode with
        issues: Optional list collecting out-of-range fields

    Returns:
        Decoded settings tagged with the schema's board and version

    Raises:
        SizeMismatchError: Payload length differs from the schema size
        InvalidContainerError: Header names another board
    """
    if len(payload) != schema.size:
        raise SizeMismatchError(schema.size, len(payload))

    variant = read_bits(payload, *VARIANT_BITS)
    if variant != schema.variant:
        raise InvalidContainerError(
            f"image variant 0x{variant:04X} does not belong to board {schema.board}"
        )

    values = decode_struct(payload, schema.root, 0, "", issues)
    logger.debug(
        "Decoded %s: %d model slots, %d issues",
        schema,
        len(values["models"]),
        len(issues) if issues is not None else 0,
    )
    return CanonicalSettings(
        board=schema.board,
        version=schema.version,
        radio=values["radio"],
        models=values["models"],
        payload=bytes(payload),
    )


def encode_image(settings: CanonicalSettings, schema: SchemaVersion) -> bytes:
    """
    Encode settings at the given schema.

    When the settings were decoded from an image of this same schema, that
    image is the starting point and only fields whose value changed are
    rewritten. Otherwise bits not covered by any field stay zero.

    Returns:
        Image bytes, schema.size long
    """
    buffer = bytearray(_baseline(settings.payload, schema))
    values = {
        "version": schema.version,
        "variant": schema.variant,
        "radio": settings.radio,
        "models": settings.models,
    }
    encode_struct(values, schema.root, buffer, 0, "")
    return bytes(buffer)


def _baseline(payload: Optional[bytes], schema: SchemaVersion) -> bytes:
    if payload is None or len(payload) != schema.size:
        return bytes(schema.size)
    if read_header(payload) != (schema.version, schema.variant):
        return bytes(schema.size)
    return payload
