"""
Legacy compressed container (.eepz).

File layout (little-endian):

    0x00  4s   magic "EEPZ"
    0x04  H    board variant id
    0x06  B    schema version
    0x07  x    reserved
    0x08  I    uncompressed size
    0x0C  I    CRC-32 of the uncompressed image
    0x10       zlib stream

The magic and the declared size are checked before anything is
decompressed, and the stream is never inflated beyond the declared size.
There is no best-effort recovery: every inconsistency is an error.
"""

import logging
import struct
import zlib
from pathlib import Path
from typing import Optional, Union

from radioconv.config import DEFAULT_OPTIONS, ConversionOptions
from radioconv.containers.common import (
    check_size,
    identify,
    read_bytes,
    resolve_board,
    suffix_of,
    write_bytes,
)
from radioconv.errors import InvalidContainerError, SizeMismatchError
from radioconv.models.image import ContainerKind, RawImage
from radioconv.schema.table import SchemaTable
from radioconv.utils.checksum import crc32

logger = logging.getLogger(__name__)

MAGIC = b"EEPZ"
HEADER = struct.Struct("<4sHBxII")


class LegacyCompressedAdapter:
    """
    Reader/writer for zlib-compressed single-file images.

    Example:
        image = LegacyCompressedAdapter(default_table()).read("old.eepz")
    """

    kind = ContainerKind.LEGACY
    extensions = (".eepz",)

    def __init__(self, table: SchemaTable, options: Optional[ConversionOptions] = None):
        self.table = table
        self.options = options or DEFAULT_OPTIONS

    @classmethod
    def can_read(cls, path: Union[str, Path]) -> bool:
        path = Path(path)
        if not path.is_file():
            return False
        if suffix_of(path) in cls.extensions:
            return True
        return read_bytes(path, len(MAGIC)) == MAGIC

    def read(self, source: Union[str, Path]) -> RawImage:
        """
        Read a legacy compressed image.

        Raises:
            IoFailureError: File cannot be read
            InvalidContainerError: Bad magic, corrupt stream, CRC mismatch or
                header disagreeing with the image
            SizeMismatchError: Declared size differs from the schema size or
                from the inflated size
        """
        data = read_bytes(source)
        if len(data) < HEADER.size:
            raise InvalidContainerError(
                f"file too short for the {HEADER.size}-byte header", str(source)
            )
        magic, variant, version, declared, checksum = HEADER.unpack_from(data)
        if magic != MAGIC:
            raise InvalidContainerError(f"bad magic {magic!r}", str(source))

        board, _ = resolve_board(self.table, variant, self.options, source)
        schema = self.table.resolve(board, version)
        if declared != self.table.size_of(schema):
            raise SizeMismatchError(
                self.table.size_of(schema), declared, "declared image", str(source)
            )

        inflated = self._inflate(data[HEADER.size :], declared, source)
        if crc32(inflated) != checksum:
            raise InvalidContainerError(
                f"CRC mismatch: header 0x{checksum:08X}, data 0x{crc32(inflated):08X}",
                str(source),
            )

        board, image_version, payload, metadata = identify(
            self.table, inflated, self.options, source
        )
        if image_version != version or board != schema.board:
            raise InvalidContainerError(
                f"header declares {schema.board} v{version}, image holds {board} v{image_version}",
                str(source),
            )
        check_size(self.table, board, version, len(payload), source)
        logger.debug("Read legacy image %s: %s v%d", source, board, version)
        return RawImage.create(
            payload, self.kind, board, version, source=str(source), metadata=metadata
        )

    @staticmethod
    def _inflate(stream: bytes, declared: int, source) -> bytes:
        inflater = zlib.decompressobj()
        try:
            payload = inflater.decompress(stream, declared + 1)
        except zlib.error as e:
            raise InvalidContainerError(f"corrupt compressed data: {e}", str(source)) from e
        if len(payload) > declared:
            raise InvalidContainerError(
                f"compressed data expands beyond the declared {declared} bytes", str(source)
            )
        if not inflater.eof:
            raise InvalidContainerError("compressed data is truncated", str(source))
        if inflater.unused_data:
            raise InvalidContainerError(
                f"{len(inflater.unused_data)} bytes after the compressed data", str(source)
            )
        if len(payload) != declared:
            raise SizeMismatchError(declared, len(payload), "inflated image", str(source))
        return payload

    def write(self, image: RawImage, destination: Union[str, Path], progress=None) -> None:
        check_size(self.table, image.board, image.version, image.size, destination)
        header = HEADER.pack(
            MAGIC,
            self.table.board_info(image.board).variant,
            image.version,
            image.size,
            crc32(image.payload),
        )
        write_bytes(destination, header + zlib.compress(image.payload, 9))
        if progress is not None:
            progress(image.size, image.size)
        logger.debug("Wrote legacy image %s", destination)
