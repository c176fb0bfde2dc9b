"""
Helpers shared by the container adapters: file access with typed errors,
board identification from the image header and size validation.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from radioconv.codec.bits import write_bits
from radioconv.codec.image import VARIANT_BITS, read_header
from radioconv.config import ConversionOptions
from radioconv.errors import IoFailureError, SizeMismatchError, UnknownBoardError
from radioconv.schema.layout import SchemaVersion
from radioconv.schema.table import SchemaTable

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def read_bytes(path: PathLike, limit: Optional[int] = None) -> bytes:
    """
    Read a whole file.

    Raises:
        IoFailureError: The file cannot be read
    """
    try:
        with open(path, "rb") as f:
            return f.read() if limit is None else f.read(limit)
    except OSError as e:
        raise IoFailureError(path, e.strerror or str(e)) from e


def write_bytes(path: PathLike, data: bytes) -> None:
    """
    Write a whole file.

    Raises:
        IoFailureError: The file cannot be written; offset is the number of
            bytes known to be written
    """
    written = 0
    try:
        with open(path, "wb") as f:
            written = f.write(data)
    except OSError as e:
        raise IoFailureError(path, e.strerror or str(e), written) from e


def read_text(path: PathLike, limit: Optional[int] = None) -> str:
    data = read_bytes(path, limit)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise IoFailureError(path, f"not UTF-8 text: {e.reason}", e.start) from e


def write_text(path: PathLike, text: str) -> None:
    write_bytes(path, text.encode("utf-8"))


def resolve_board(
    table: SchemaTable,
    variant: int,
    options: ConversionOptions,
    path: Optional[PathLike] = None,
) -> Tuple[str, bool]:
    """
    Map a header variant id to a board name.

    Returns:
        (board, fell_back): fell_back is True when options.fallback_board
        was used for an unknown variant

    Raises:
        UnknownBoardError: Unknown variant and no fallback board configured
    """
    try:
        return table.board_for_variant(variant), False
    except UnknownBoardError:
        if options.fallback_board is None:
            raise
        fallback = options.fallback_board
        table.board_info(fallback)
        logger.warning(
            "%s: unknown board variant 0x%04X, using fallback board %s",
            path or "image",
            variant,
            fallback,
        )
        return fallback, True


def identify(
    table: SchemaTable,
    payload: bytes,
    options: ConversionOptions,
    path: Optional[PathLike] = None,
) -> Tuple[str, int, bytes, dict]:
    """
    Read board and version from an image header.

    When the fallback board is used, the variant id in the payload is
    rewritten to the fallback board's id and the original id is kept in the
    returned metadata.

    Returns:
        (board, version, payload, metadata)
    """
    version, variant = read_header(payload)
    board, fell_back = resolve_board(table, variant, options, path)
    metadata = {}
    if fell_back:
        buffer = bytearray(payload)
        write_bits(buffer, *VARIANT_BITS, table.board_info(board).variant)
        payload = bytes(buffer)
        metadata["declared_variant"] = variant
    return board, version, payload, metadata


def check_size(
    table: SchemaTable, board: str, version: int, size: int, path: Optional[PathLike] = None
) -> SchemaVersion:
    """
    Resolve the schema of an image and check its length.

    Raises:
        SizeMismatchError: Length differs from the schema size
    """
    schema = table.resolve(board, version)
    if size != table.size_of(schema):
        raise SizeMismatchError(
            table.size_of(schema), size, "image", str(path) if path else None
        )
    return schema


def suffix_of(path: PathLike) -> str:
    return Path(path).suffix.lower()
