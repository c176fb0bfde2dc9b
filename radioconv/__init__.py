"""
radioconv - storage and cross-version conversion of RC transmitter settings.

This library provides tools to:
- Read and write radio images in raw, hex, legacy compressed, archive,
  YAML document and directory containers
- Decode images bit-exactly into a canonical settings tree, for any
  registered board and schema version
- Convert settings between schema versions and boards of one family,
  recording every field decision in a ledger

Example usage:
    from radioconv import ConversionEngine, default_table, read_image, write_image

    table = default_table()
    image = read_image("backup.bin", table)
    result = ConversionEngine(table).convert(image, target_version=219)
    for event in result.ledger.changes():
        print(event.path, event.outcome.value, event.note)
    write_image(result.image, "backup-219.otx", table)
"""

__version__ = "0.1.0"
__author__ = "radioconv contributors"

from radioconv.config import DEFAULT_OPTIONS, ConversionOptions, load_options
from radioconv.containers import detect_kind, read_image, write_image
from radioconv.converters import ConversionEngine, ConversionLedger, Outcome
from radioconv.models import CanonicalSettings, ContainerKind, RawImage
from radioconv.schema import SchemaTable, default_table, load_schema_table

__all__ = [
    "CanonicalSettings",
    "ContainerKind",
    "ConversionEngine",
    "ConversionLedger",
    "ConversionOptions",
    "DEFAULT_OPTIONS",
    "Outcome",
    "RawImage",
    "SchemaTable",
    "default_table",
    "detect_kind",
    "load_options",
    "load_schema_table",
    "read_image",
    "write_image",
]
