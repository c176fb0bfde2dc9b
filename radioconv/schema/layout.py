"""
Field layout descriptions.

A FieldLayout says where a field lives inside its parent structure (bit
offset and width), how the bits are interpreted (Encoding) and which values
are valid. Layouts nest: a STRUCT layout holds child layouts whose offsets
are relative to the struct start, an ARRAY layout holds one element layout
repeated every `stride` bits.

A SchemaVersion groups the layouts of one (board, firmware version) pair.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Encoding(str, Enum):
    """How the bits of a field are interpreted."""

    UINT = "uint"
    INT = "int"
    FIXED = "fixed"
    BOOL = "bool"
    ENUM = "enum"
    FLAGS = "flags"
    STRING = "string"
    STRUCT = "struct"
    ARRAY = "array"

    @property
    def is_numeric(self) -> bool:
        return self in (Encoding.UINT, Encoding.INT, Encoding.FIXED)

    @property
    def is_composite(self) -> bool:
        return self in (Encoding.STRUCT, Encoding.ARRAY)


class Termination(str, Enum):
    """How a fixed-capacity string marks its end."""

    NULL = "null"  # zero padded, first NUL ends the string
    SPACE = "space"  # space padded, trailing spaces stripped
    LENGTH = "length"  # one length byte, then capacity bytes


@dataclass(frozen=True)
class FieldLayout:
    """
    Location, encoding and validity range of one field.

    Attributes:
        name: Field name, unique within its parent struct
        encoding: Bit interpretation
        offset: Bit offset relative to the parent struct
        width: Width in bits
        minimum: Lowest valid value (engineering units for FIXED)
        maximum: Highest valid value
        default: Value used for new or invalidated fields
        scale: Fixed-point scale factor applied at decode time
        choices: ENUM (raw, tag) pairs
        flags: FLAGS bit names, bit 0 first
        capacity: STRING capacity in bytes
        termination: STRING termination rule
        fields: STRUCT children
        element: ARRAY element layout
        length: ARRAY capacity (fixed count when count_field is None)
        count_field: ARRAY sibling field holding the used element count
        stride: ARRAY element stride in bits
    """

    name: str
    encoding: Encoding
    offset: int = 0
    width: int = 0
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    default: Any = None
    scale: float = 1.0
    choices: Tuple[Tuple[int, str], ...] = ()
    flags: Tuple[str, ...] = ()
    capacity: int = 0
    termination: Termination = Termination.NULL
    fields: Tuple["FieldLayout", ...] = ()
    element: Optional["FieldLayout"] = None
    length: int = 0
    count_field: Optional[str] = None
    stride: int = 0
    description: str = field(default="", compare=False)

    @property
    def end(self) -> int:
        """First bit after the field (relative to the parent struct)."""
        return self.offset + self.width

    @property
    def is_fixed_count(self) -> bool:
        return self.encoding == Encoding.ARRAY and self.count_field is None

    # Struct helpers

    def child(self, name: str) -> Optional["FieldLayout"]:
        """Get a child layout by name (STRUCT only)."""
        for child in self.fields:
            if child.name == name:
                return child
        return None

    @property
    def count_fields(self) -> Tuple[str, ...]:
        """Names of children that only hold array element counts."""
        return tuple(c.count_field for c in self.fields if c.count_field is not None)

    @property
    def value_fields(self) -> Tuple["FieldLayout", ...]:
        """Children that appear in the settings tree (count fields excluded)."""
        counts = set(self.count_fields)
        return tuple(c for c in self.fields if c.name not in counts)

    # Enum helpers

    def tag_for(self, raw: int) -> Optional[str]:
        for value, tag in self.choices:
            if value == raw:
                return tag
        return None

    def raw_for(self, tag: str) -> Optional[int]:
        for value, name in self.choices:
            if name == tag:
                return value
        return None

    @property
    def tags(self) -> Tuple[str, ...]:
        return tuple(tag for _, tag in self.choices)

    # Numeric helpers

    def raw_range(self) -> Tuple[int, int]:
        """
        Valid range of the stored integer.

        For FIXED fields the engineering-unit range is divided by the scale,
        so range checks never compare floats.
        """
        if self.encoding == Encoding.FIXED:
            return round(self.minimum / self.scale), round(self.maximum / self.scale)
        return int(self.minimum), int(self.maximum)

    def shape(self) -> "FieldLayout":
        """This layout with position and name stripped, for structural comparison."""
        return replace(self, name="", offset=0)

    def same_shape(self, other: Optional["FieldLayout"]) -> bool:
        return other is not None and self.shape() == other.shape()

    def __repr__(self) -> str:
        return (
            f"FieldLayout({self.name!r}, {self.encoding.value}, "
            f"offset={self.offset}, width={self.width})"
        )


@dataclass(frozen=True)
class SchemaVersion:
    """
    The data layout of one firmware version on one board.

    Attributes:
        board: Board identifier ("x9d", "tx16s", ...)
        family: Board family; conversions never cross families
        variant: Numeric board id stored in the image header
        version: Firmware schema version number
        size: Total image size in bytes
        root: Top-level struct (radio, model_count, models)
    """

    board: str
    family: str
    variant: int
    version: int
    size: int
    root: FieldLayout

    @property
    def key(self) -> Tuple[str, int]:
        return (self.board, self.version)

    @property
    def radio(self) -> FieldLayout:
        return self.root.child("radio")

    @property
    def models(self) -> FieldLayout:
        return self.root.child("models")

    @property
    def model(self) -> FieldLayout:
        return self.models.element

    @property
    def model_capacity(self) -> int:
        return self.models.length

    @property
    def model_count_field(self) -> FieldLayout:
        return self.root.child(self.models.count_field)

    def segments(self) -> Dict[str, Tuple[int, int]]:
        """
        Byte ranges of the image parts, as used by multi-entry containers.

        Returns:
            {"radio": (start, end), "model": (first_start, stride)}
        """
        models = self.models
        return {
            "radio": (0, models.offset // 8),
            "model": (models.offset // 8, models.stride // 8),
        }

    def __repr__(self) -> str:
        return f"SchemaVersion({self.board!r}, v{self.version}, {self.size} bytes)"
