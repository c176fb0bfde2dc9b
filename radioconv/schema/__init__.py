"""Schema version table: declarative field layouts per board and version."""

from radioconv.schema.layout import Encoding, FieldLayout, SchemaVersion, Termination
from radioconv.schema.table import BoardInfo, SchemaTable
from radioconv.schema.loader import default_table, load_schema_table

__all__ = [
    "BoardInfo",
    "Encoding",
    "FieldLayout",
    "SchemaTable",
    "SchemaVersion",
    "Termination",
    "default_table",
    "load_schema_table",
]
