"""
Text document container (.yml, .yaml).

A YAML stream of one radio document followed by one document per model:

    board: x9d
    version: 218
    radio:
      backlight_mode: keys
      vbat_warn: 6.5
      ...
    ---
    name: GLIDER
    timers:
      - {mode: "off", start: 0, countdown_beep: silent}
    ...

The document mapping is driven by the field layouts but never by bit
positions: enums are tags (a plain integer for an undeclared value), flags
are lists of names, fixed-point values are floats. Fields left out of a
document take their defaults. Errors name the offending field path, or the
file and line for YAML syntax errors.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from radioconv.codec.fields import Unknown, default_value, validate_value
from radioconv.codec.image import decode_image, encode_image
from radioconv.config import DEFAULT_OPTIONS, ConversionOptions
from radioconv.containers.common import read_bytes, suffix_of, write_text
from radioconv.errors import DocumentError, InvalidContainerError, UnknownBoardError
from radioconv.models.image import ContainerKind, RawImage
from radioconv.models.settings import CanonicalSettings
from radioconv.schema.layout import Encoding, FieldLayout, SchemaVersion
from radioconv.schema.table import SchemaTable

logger = logging.getLogger(__name__)


# Tree <-> document mapping


def document_from_tree(value: Any, layout: FieldLayout) -> Any:
    """Convert a tree value to plain YAML data."""
    encoding = layout.encoding
    if encoding == Encoding.STRUCT:
        return {child.name: document_from_tree(value[child.name], child) for child in layout.value_fields}
    if encoding == Encoding.ARRAY:
        return [document_from_tree(item, layout.element) for item in value]
    if isinstance(value, Unknown):
        return value.raw
    if encoding == Encoding.FLAGS:
        return list(value)
    return value


def tree_from_document(data: Any, layout: FieldLayout, path: str) -> Any:
    """
    Convert YAML data to a tree value for a layout.

    Args:
        data: Parsed YAML value
        layout: Layout the value must fit
        path: Field path used in errors ("models[2].mixes[0].weight")

    Raises:
        DocumentError: Wrong type, unknown field or value out of range
    """
    encoding = layout.encoding

    if encoding == Encoding.STRUCT:
        if not isinstance(data, dict):
            raise DocumentError(path, f"expected a mapping, got {_type_name(data)}")
        known = {child.name for child in layout.value_fields}
        for key in data:
            if key not in known:
                raise DocumentError(_join(path, str(key)), "unknown field")
        return {
            child.name: (
                tree_from_document(data[child.name], child, _join(path, child.name))
                if child.name in data
                else default_value(child)
            )
            for child in layout.value_fields
        }

    if encoding == Encoding.ARRAY:
        if not isinstance(data, list):
            raise DocumentError(path, f"expected a list, got {_type_name(data)}")
        if len(data) > layout.length:
            raise DocumentError(path, f"{len(data)} items exceed the capacity of {layout.length}")
        items = [
            tree_from_document(item, layout.element, f"{path}[{index}]")
            for index, item in enumerate(data)
        ]
        if layout.is_fixed_count:
            items += [default_value(layout.element) for _ in range(layout.length - len(items))]
        return items

    value = _scalar_from_document(data, layout, path)
    problem = validate_value(value, layout, path)
    if problem is not None:
        raise DocumentError(path, problem.split(": ", 1)[-1])
    return value


def _scalar_from_document(data: Any, layout: FieldLayout, path: str) -> Any:
    encoding = layout.encoding
    if encoding == Encoding.ENUM and isinstance(data, bool):
        # YAML 1.1 reads unquoted on/off/yes/no as booleans
        tag = "on" if data else "off"
        if tag not in layout.tags:
            raise DocumentError(
                path, f"expected one of {list(layout.tags)}, got {data} (quote the tag)"
            )
        return tag
    if encoding == Encoding.ENUM and isinstance(data, int) and not isinstance(data, bool):
        tag = layout.tag_for(data)
        return tag if tag is not None else Unknown(data)
    if encoding == Encoding.FIXED and isinstance(data, int) and not isinstance(data, bool):
        return float(data)
    if encoding == Encoding.STRING and data is None:
        return ""
    if encoding == Encoding.FLAGS and data is None:
        return []
    return data


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _type_name(data: Any) -> str:
    return "nothing" if data is None else type(data).__name__


def settings_from_documents(
    header: Dict[str, Any], models: List[Any], schema: SchemaVersion
) -> CanonicalSettings:
    """Build settings from a parsed radio document and model documents."""
    if len(models) > schema.model_capacity:
        raise DocumentError(
            "models", f"{len(models)} models exceed the capacity of {schema.model_capacity}"
        )
    radio = tree_from_document(header.get("radio") or {}, schema.radio, "radio")
    trees = [
        tree_from_document(model, schema.model, f"models[{index}]")
        for index, model in enumerate(models)
    ]
    return CanonicalSettings(board=schema.board, version=schema.version, radio=radio, models=trees)


def radio_document(settings: CanonicalSettings, schema: SchemaVersion) -> Dict[str, Any]:
    return {
        "board": settings.board,
        "version": settings.version,
        "radio": document_from_tree(settings.radio, schema.radio),
    }


def model_documents(settings: CanonicalSettings, schema: SchemaVersion) -> List[Dict[str, Any]]:
    return [document_from_tree(model, schema.model) for model in settings.models]


def parse_header(
    document: Any, table: SchemaTable, options: ConversionOptions, where: str
) -> SchemaVersion:
    """
    Resolve the schema named by a radio document's board and version.

    Raises:
        DocumentError: Missing or malformed board/version
        UnknownBoardError: Unknown board and no fallback board configured
    """
    if not isinstance(document, dict):
        raise DocumentError(where, "radio document must be a mapping")
    for key in document:
        if key not in ("board", "version", "radio"):
            raise DocumentError(str(key), "unknown field")
    board = document.get("board")
    version = document.get("version")
    if not isinstance(board, str):
        raise DocumentError("board", "missing board name")
    if isinstance(version, bool) or not isinstance(version, int):
        raise DocumentError("version", "missing schema version")

    try:
        table.board_info(board)
    except UnknownBoardError:
        if options.fallback_board is None:
            raise
        logger.warning("%s: unknown board %s, using fallback board %s", where, board, options.fallback_board)
        board = options.fallback_board
    return table.resolve(board, version)


def decode_text(data: bytes, name: str) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DocumentError(name, f"not UTF-8 text at byte {e.start}") from e


def load_yaml_stream(text: str, name: str) -> List[Any]:
    """Parse every document of a YAML stream, reporting syntax errors by line."""
    try:
        return list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise _syntax_error(e, name) from e


def load_yaml(text: str, name: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise _syntax_error(e, name) from e


def _syntax_error(error: yaml.YAMLError, name: str) -> DocumentError:
    mark = getattr(error, "problem_mark", None)
    where = f"{name}:{mark.line + 1}" if mark is not None else name
    problem = getattr(error, "problem", None) or str(error)
    return DocumentError(where, problem)


def dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)


def dump_yaml_stream(documents: List[Any]) -> str:
    return yaml.safe_dump_all(
        documents, sort_keys=False, allow_unicode=True, default_flow_style=False
    )


class DocumentAdapter:
    """
    Reader/writer for YAML settings documents.

    The image is built by encoding the parsed tree, so a document that reads
    successfully always yields a payload of exactly the schema size.

    Example:
        image = DocumentAdapter(default_table()).read("radio.yml")
    """

    kind = ContainerKind.DOCUMENT
    extensions = (".yml", ".yaml")

    def __init__(self, table: SchemaTable, options: Optional[ConversionOptions] = None):
        self.table = table
        self.options = options or DEFAULT_OPTIONS

    @classmethod
    def can_read(cls, path: Union[str, Path]) -> bool:
        path = Path(path)
        return path.is_file() and suffix_of(path) in cls.extensions

    def read(self, source: Union[str, Path]) -> RawImage:
        """
        Read a settings document.

        Raises:
            IoFailureError: File cannot be read
            InvalidContainerError: Document larger than options.max_document_bytes
            DocumentError: Syntax error or a value that does not fit its field
        """
        limit = self.options.max_document_bytes
        data = read_bytes(source, limit + 1)
        if len(data) > limit:
            raise InvalidContainerError(f"document larger than {limit} bytes", str(source))

        name = Path(source).name
        text = decode_text(data, name)
        documents = load_yaml_stream(text, name)
        if not documents:
            raise DocumentError(name, "empty document")
        header, models = documents[0], documents[1:]
        schema = parse_header(header, self.table, self.options, name)
        settings = settings_from_documents(header, models, schema)

        payload = encode_image(settings, schema)
        logger.debug("Read document %s: %s v%d, %d models", source, schema.board, schema.version, len(models))
        return RawImage.create(payload, self.kind, schema.board, schema.version, source=str(source))

    def write(self, image: RawImage, destination: Union[str, Path], progress=None) -> None:
        schema = self.table.resolve(image.board, image.version)
        settings = decode_image(image.payload, schema)
        documents = [radio_document(settings, schema)] + model_documents(settings, schema)
        text = dump_yaml_stream(documents)
        write_text(destination, text)
        if progress is not None:
            progress(len(documents), len(documents))
        logger.debug("Wrote document %s with %d models", destination, len(documents) - 1)
