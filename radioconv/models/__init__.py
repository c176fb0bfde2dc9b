"""Data models for radio configuration storage."""

from radioconv.models.image import ContainerKind, RawImage
from radioconv.models.settings import CanonicalSettings

__all__ = [
    "CanonicalSettings",
    "ContainerKind",
    "RawImage",
]
