"""
Raw image model - container payload plus what the container declared.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from radioconv.utils.checksum import crc32


class ContainerKind(str, Enum):
    """On-disk container formats."""

    RAW = "raw"
    HEX = "hex"
    LEGACY = "legacy"
    ARCHIVE = "archive"
    DOCUMENT = "document"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class RawImage:
    """
    Image bytes as read from (or about to be written to) a container.

    Attributes:
        payload: Flat image bytes
        kind: Container the payload came from
        board: Declared board identifier
        version: Declared schema version
        checksum: CRC-32 of the payload
        source: Path the image was read from, if any
        metadata: Container extras that have no place in the bit layout
    """

    payload: bytes
    kind: ContainerKind
    board: str
    version: int
    checksum: Optional[int] = None
    source: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def create(
        cls,
        payload: bytes,
        kind: ContainerKind,
        board: str,
        version: int,
        source: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "RawImage":
        """Build an image, computing its checksum."""
        return cls(
            payload=bytes(payload),
            kind=kind,
            board=board,
            version=version,
            checksum=crc32(payload),
            source=source,
            metadata=dict(metadata or {}),
        )

    @property
    def size(self) -> int:
        return len(self.payload)

    def verify_checksum(self) -> bool:
        """True if the payload still matches its recorded checksum."""
        return self.checksum is None or crc32(self.payload) == self.checksum

    def __repr__(self) -> str:
        return (
            f"RawImage(kind={self.kind.value}, board={self.board!r}, "
            f"version={self.version}, size={len(self.payload)})"
        )
