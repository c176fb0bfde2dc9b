"""
Container adapters.

One adapter class per ContainerKind; every adapter offers the same three
operations (read, write, can_read) and is picked by its kind tag:

    RAW        .bin             image bytes verbatim
    HEX        .hex, .eepe      Intel HEX records or plain hex pairs
    LEGACY     .eepz            EEPZ header + zlib stream
    ARCHIVE    .otx, .zip       zip with radio/model entries
    DOCUMENT   .yml, .yaml      YAML stream (radio + one doc per model)
    DIRECTORY  <dir>/           RADIO/radio.yml + MODELS/models.yml + models

Example:
    from radioconv.containers import read_image, write_image
    from radioconv.schema import default_table

    table = default_table()
    image = read_image("backup.otx", table)
    write_image(image, "backup.yml", table)
"""

from pathlib import Path
from typing import Callable, Optional, Union

from radioconv.config import ConversionOptions
from radioconv.containers.archive import ArchiveAdapter
from radioconv.containers.directory import DirectoryAdapter
from radioconv.containers.document import DocumentAdapter, document_from_tree, tree_from_document
from radioconv.containers.hextext import HexTextAdapter
from radioconv.containers.legacy import LegacyCompressedAdapter
from radioconv.containers.raw import RawBinaryAdapter
from radioconv.errors import InvalidContainerError
from radioconv.models.image import ContainerKind, RawImage
from radioconv.schema.table import SchemaTable

ADAPTERS = {
    ContainerKind.RAW: RawBinaryAdapter,
    ContainerKind.HEX: HexTextAdapter,
    ContainerKind.LEGACY: LegacyCompressedAdapter,
    ContainerKind.ARCHIVE: ArchiveAdapter,
    ContainerKind.DOCUMENT: DocumentAdapter,
    ContainerKind.DIRECTORY: DirectoryAdapter,
}

# Content sniffing order for files without a known extension
_DETECTION_ORDER = (
    ContainerKind.DIRECTORY,
    ContainerKind.LEGACY,
    ContainerKind.ARCHIVE,
    ContainerKind.HEX,
    ContainerKind.DOCUMENT,
    ContainerKind.RAW,
)


def kind_for_path(path: Union[str, Path]) -> ContainerKind:
    """
    Container kind implied by a path name, for files that may not exist yet.

    Paths without a suffix are directories.

    Raises:
        InvalidContainerError: Unknown extension
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if not suffix or path.is_dir():
        return ContainerKind.DIRECTORY
    for kind, adapter in ADAPTERS.items():
        if suffix in adapter.extensions:
            return kind
    raise InvalidContainerError(f"unknown container extension {suffix!r}", str(path))


def detect_kind(path: Union[str, Path]) -> ContainerKind:
    """
    Detect the container kind of an existing file or directory.

    Raises:
        InvalidContainerError: No adapter recognises the path
    """
    for kind in _DETECTION_ORDER:
        if ADAPTERS[kind].can_read(path):
            return kind
    raise InvalidContainerError("unrecognised container", str(path))


def read_image(
    path: Union[str, Path],
    table: SchemaTable,
    kind: Optional[ContainerKind] = None,
    options: Optional[ConversionOptions] = None,
) -> RawImage:
    """Read an image with the adapter for `kind` (detected when omitted)."""
    kind = ContainerKind(kind) if kind is not None else detect_kind(path)
    return ADAPTERS[kind](table, options).read(path)


def write_image(
    image: RawImage,
    path: Union[str, Path],
    table: SchemaTable,
    kind: Optional[ContainerKind] = None,
    options: Optional[ConversionOptions] = None,
    progress: Optional[Callable[[int, int], None]] = None,
) -> ContainerKind:
    """
    Write an image with the adapter for `kind` (taken from the path when
    omitted).

    Returns:
        The container kind written
    """
    kind = ContainerKind(kind) if kind is not None else kind_for_path(path)
    ADAPTERS[kind](table, options).write(image, path, progress)
    return kind


__all__ = [
    "ADAPTERS",
    "ArchiveAdapter",
    "DirectoryAdapter",
    "DocumentAdapter",
    "HexTextAdapter",
    "LegacyCompressedAdapter",
    "RawBinaryAdapter",
    "detect_kind",
    "document_from_tree",
    "kind_for_path",
    "read_image",
    "tree_from_document",
    "write_image",
]
