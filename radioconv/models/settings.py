"""
Canonical settings tree - the version-independent in-memory configuration.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class CanonicalSettings:
    """
    Fully decoded radio configuration.

    The tree is plain Python data: dicts for structs, lists for arrays and
    scalars as produced by the field codec. It is owned by whoever decoded
    or converted it; the engine keeps no reference.

    Attributes:
        board: Board identifier the tree is laid out for
        version: Schema version the tree conforms to
        radio: Radio-wide settings
        models: Used model slots, in slot order
        metadata: Container extras (model file names, labels)
        payload: Image bytes the tree was decoded from, if any. Re-encoding
                 at the same schema starts from them, so bits no field
                 owns (unused slots, string padding) come back unchanged.
    """

    board: str
    version: int
    radio: Dict[str, Any] = field(default_factory=dict)
    models: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    payload: Optional[bytes] = field(default=None, compare=False, repr=False)

    def model(self, index: int) -> Dict[str, Any]:
        """Get a model slot by index."""
        if not 0 <= index < len(self.models):
            raise IndexError(f"No model in slot {index} ({len(self.models)} used)")
        return self.models[index]

    @property
    def model_count(self) -> int:
        return len(self.models)

    def same_values(self, other: "CanonicalSettings") -> bool:
        """Compare the settings trees, ignoring container metadata."""
        return (
            self.board == other.board
            and self.version == other.version
            and self.radio == other.radio
            and self.models == other.models
        )

    def copy(self) -> "CanonicalSettings":
        """Create a deep copy of these settings."""
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        return (
            f"CanonicalSettings(board={self.board!r}, version={self.version}, "
            f"models={len(self.models)})"
        )
