"""
Conversion options.

Options are plain values passed explicitly to the container adapters and the
conversion engine; nothing here is global. They can be loaded from a YAML
file:

    board_policy: convert
    fallback_board: x9d
    hex_framing: intel
    progress_unit: entries
"""

import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

BOARD_POLICIES = ("strict", "convert", "declared")
HEX_FRAMINGS = ("intel", "plain")
PROGRESS_UNITS = ("entries", "bytes")


@dataclass(frozen=True)
class ConversionOptions:
    """
    Tunable behaviour of reads, writes and conversions.

    Attributes:
        board_policy: What to do when the image board differs from the
            requested target board. "strict" rejects, "convert" migrates
            within the same family, "declared" keeps the image's own board.
        fallback_board: Board used (with a warning) when an image names an
            unknown board variant. None makes unknown variants an error.
        hex_framing: "intel" writes Intel HEX records, "plain" writes bare
            hex pairs
        progress_unit: Archive write progress in "entries" or "bytes"
        max_archive_entries: Upper bound on entries read from an archive
        max_document_bytes: Upper bound on the size of a text document
    """

    board_policy: str = "convert"
    fallback_board: Optional[str] = None
    hex_framing: str = "intel"
    progress_unit: str = "entries"
    max_archive_entries: int = 1024
    max_document_bytes: int = 4 * 1024 * 1024

    def __post_init__(self):
        _check_choice("board_policy", self.board_policy, BOARD_POLICIES)
        _check_choice("hex_framing", self.hex_framing, HEX_FRAMINGS)
        _check_choice("progress_unit", self.progress_unit, PROGRESS_UNITS)
        if self.max_archive_entries < 1:
            raise ValueError("max_archive_entries must be positive")
        if self.max_document_bytes < 1:
            raise ValueError("max_document_bytes must be positive")

    def with_changes(self, **changes) -> "ConversionOptions":
        """Copy with some options replaced (None values are ignored)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _check_choice(name: str, value: str, allowed) -> None:
    if value not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}, got {value!r}")


DEFAULT_OPTIONS = ConversionOptions()


def load_options(path: Union[str, Path]) -> ConversionOptions:
    """
    Load options from a YAML file. Missing keys keep their defaults.

    Raises:
        ValueError: Unknown key or invalid value
        OSError: File cannot be read
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: options must be a mapping")

    known = {f.name for f in fields(ConversionOptions)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{path}: unknown options {unknown}")

    options = ConversionOptions(**data)
    logger.debug("Loaded options from %s: %s", path, options)
    return options
