"""
Raw binary container (.bin): the image bytes verbatim.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from radioconv.config import DEFAULT_OPTIONS, ConversionOptions
from radioconv.containers.common import check_size, identify, read_bytes, suffix_of, write_bytes
from radioconv.models.image import ContainerKind, RawImage
from radioconv.schema.table import SchemaTable

logger = logging.getLogger(__name__)


class RawBinaryAdapter:
    """
    Reader/writer for raw EEPROM dumps.

    The only validation is the image length against the schema size.

    Example:
        adapter = RawBinaryAdapter(default_table())
        image = adapter.read("backup.bin")
    """

    kind = ContainerKind.RAW
    extensions = (".bin",)

    def __init__(self, table: SchemaTable, options: Optional[ConversionOptions] = None):
        self.table = table
        self.options = options or DEFAULT_OPTIONS

    @classmethod
    def can_read(cls, path: Union[str, Path]) -> bool:
        path = Path(path)
        return path.is_file() and suffix_of(path) in cls.extensions

    def read(self, source: Union[str, Path]) -> RawImage:
        """
        Read a raw image.

        Raises:
            IoFailureError: File cannot be read
            SizeMismatchError: Length differs from the schema size
            UnknownBoardError: Header names an unknown board
        """
        data = read_bytes(source)
        board, version, payload, metadata = identify(self.table, data, self.options, source)
        check_size(self.table, board, version, len(payload), source)
        logger.debug("Read raw image %s: %s v%d, %d bytes", source, board, version, len(payload))
        return RawImage.create(
            payload, self.kind, board, version, source=str(source), metadata=metadata
        )

    def write(self, image: RawImage, destination: Union[str, Path], progress=None) -> None:
        check_size(self.table, image.board, image.version, image.size, destination)
        write_bytes(destination, image.payload)
        if progress is not None:
            progress(image.size, image.size)
        logger.debug("Wrote raw image %s (%d bytes)", destination, image.size)
