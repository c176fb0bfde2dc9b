"""
Schema definition loader.

Reads the declarative YAML descriptions under schema/definitions/ (plus any
extra files named by RADIOCONV_SCHEMA_PATH) and builds the read-only
SchemaTable.

Definition format:

    boards:
      x9d: {variant: 0x0101, family: taranis}

    schemas:
      - id: taranis-216
        version: 216
        size: 1024
        model_capacity: 8
        boards: {x9d: {}, x7: {model_capacity: 6}}
        radio:  [<field>, ...]
        model:  [<field>, ...]

      - id: taranis-217
        extends: taranis-216
        version: 217
        radio:
          append:  [<field>, ...]
          replace: [<field>, ...]      # matched by name, keeps position
          remove:  [name, ...]
          rename:  {old: new}

A field without an explicit `offset` starts where the previous field ended,
so removing or widening a field shifts everything after it, like the
packed structs on the radio.
"""

import logging
import os
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from radioconv.errors import SchemaError
from radioconv.schema.layout import Encoding, FieldLayout, SchemaVersion, Termination
from radioconv.schema.table import BoardInfo, SchemaTable

logger = logging.getLogger(__name__)

DEFINITIONS_DIR = Path(__file__).parent / "definitions"
SCHEMA_PATH_ENV = "RADIOCONV_SCHEMA_PATH"

HEADER_BITS = 32
MAX_VERSION = 255


def load_schema_table(paths: Optional[Iterable[Union[str, Path]]] = None) -> SchemaTable:
    """
    Load schema definitions and build the table.

    Args:
        paths: Definition files or directories. Defaults to the bundled
               definitions plus RADIOCONV_SCHEMA_PATH entries.

    Returns:
        Immutable SchemaTable

    Raises:
        SchemaError: A definition is malformed or violates a layout invariant
    """
    files = _definition_files(paths)
    documents = []
    for path in files:
        try:
            with open(path, "r", encoding="utf-8") as f:
                documents.append((path, yaml.safe_load(f) or {}))
        except yaml.YAMLError as e:
            raise SchemaError(f"{path}: {e}")
        except OSError as e:
            raise SchemaError(f"{path}: cannot read definitions: {e}")

    loader = _DefinitionLoader()
    for path, document in documents:
        loader.add_document(path, document)
    table = loader.build()
    logger.debug("Loaded %d schema versions from %d files", len(table), len(files))
    return table


@lru_cache(maxsize=1)
def default_table() -> SchemaTable:
    """The bundled schema table, loaded once per process."""
    return load_schema_table()


def _definition_files(paths) -> List[Path]:
    if paths is None:
        paths = [DEFINITIONS_DIR]
        extra = os.environ.get(SCHEMA_PATH_ENV)
        if extra:
            paths.extend(p for p in extra.split(os.pathsep) if p)

    files = []
    for entry in paths:
        entry = Path(entry)
        if entry.is_dir():
            files.extend(sorted(entry.glob("*.yaml")) + sorted(entry.glob("*.yml")))
        elif entry.exists():
            files.append(entry)
        else:
            raise SchemaError(f"Schema definition path not found: {entry}")
    return files


@dataclass
class _SchemaSpec:
    """One `schemas:` entry with inheritance already applied."""

    id: str
    version: int
    size: int
    model_capacity: int
    boards: Dict[str, Dict[str, Any]]
    radio: List[Dict[str, Any]]
    model: List[Dict[str, Any]]
    origin: str


class _DefinitionLoader:
    def __init__(self):
        self.boards: Dict[str, BoardInfo] = {}
        self.raw_specs: Dict[str, Dict[str, Any]] = {}
        self.origins: Dict[str, str] = {}
        self.resolved: Dict[str, _SchemaSpec] = {}

    def add_document(self, path: Path, document: Dict[str, Any]) -> None:
        if not isinstance(document, dict):
            raise SchemaError(f"{path}: top level must be a mapping")

        for name, info in (document.get("boards") or {}).items():
            if name in self.boards:
                raise SchemaError(f"{path}: board {name} defined twice")
            try:
                self.boards[name] = BoardInfo(
                    name=name,
                    variant=int(info["variant"]),
                    family=str(info["family"]),
                    description=str(info.get("description", "")),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise SchemaError(f"{path}: board {name}: {e}")

        for entry in document.get("schemas") or []:
            schema_id = entry.get("id")
            if not schema_id:
                raise SchemaError(f"{path}: schema entry without id")
            if schema_id in self.raw_specs:
                raise SchemaError(f"{path}: schema {schema_id} defined twice")
            self.raw_specs[schema_id] = entry
            self.origins[schema_id] = str(path)

    def build(self) -> SchemaTable:
        schemas = []
        seen = set()
        for schema_id in self.raw_specs:
            spec = self._resolve(schema_id, ())
            for board, overrides in spec.boards.items():
                schema = self._build_schema(spec, board, overrides or {})
                if schema.key in seen:
                    raise SchemaError(f"{spec.origin}: {board} v{spec.version} defined twice")
                seen.add(schema.key)
                schemas.append(schema)
        return SchemaTable(self.boards, schemas)

    def _resolve(self, schema_id: str, stack: tuple) -> _SchemaSpec:
        if schema_id in self.resolved:
            return self.resolved[schema_id]
        if schema_id in stack:
            raise SchemaError(f"circular extends: {' -> '.join(stack + (schema_id,))}")
        if schema_id not in self.raw_specs:
            raise SchemaError(f"unknown schema {schema_id}")

        entry = self.raw_specs[schema_id]
        origin = f"{self.origins[schema_id]}: {schema_id}"
        parent = None
        if entry.get("extends"):
            parent = self._resolve(entry["extends"], stack + (schema_id,))

        try:
            boards = entry.get("boards", parent.boards if parent else None)
            if isinstance(boards, list):
                boards = {name: {} for name in boards}
            spec = _SchemaSpec(
                id=schema_id,
                version=int(entry["version"]),
                size=int(entry.get("size", parent.size if parent else 0)),
                model_capacity=int(
                    entry.get("model_capacity", parent.model_capacity if parent else 0)
                ),
                boards=dict(boards or {}),
                radio=_apply_changes(entry.get("radio"), parent.radio if parent else None, origin),
                model=_apply_changes(entry.get("model"), parent.model if parent else None, origin),
                origin=origin,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SchemaError(f"{origin}: {e}")

        if not spec.boards:
            raise SchemaError(f"{origin}: no boards")
        if not 0 <= spec.version <= MAX_VERSION:
            raise SchemaError(f"{origin}: version {spec.version} outside 0..{MAX_VERSION}")
        self.resolved[schema_id] = spec
        return spec

    def _build_schema(self, spec: _SchemaSpec, board: str, overrides: Dict[str, Any]) -> SchemaVersion:
        if board not in self.boards:
            raise SchemaError(f"{spec.origin}: unknown board {board}")
        info = self.boards[board]
        origin = f"{spec.origin} [{board}]"
        size = int(overrides.get("size", spec.size))
        capacity = int(overrides.get("model_capacity", spec.model_capacity))

        radio = build_struct("radio", spec.radio, origin)
        model = build_struct("model", spec.model, origin)
        root_fields = [
            {"name": "version", "type": "uint", "width": 8, "default": spec.version},
            {"name": "variant", "type": "uint", "width": 16, "default": info.variant},
            {"name": "model_count", "type": "uint", "width": 8},
        ]
        root = build_struct("", root_fields, origin)
        models = FieldLayout(
            name="models",
            encoding=Encoding.ARRAY,
            offset=HEADER_BITS + radio.width,
            width=model.width * capacity,
            element=model,
            length=capacity,
            count_field="model_count",
            stride=model.width,
        )
        count = replace(root.child("model_count"), maximum=capacity)
        root = replace(
            root,
            fields=(
                root.child("version"),
                root.child("variant"),
                count,
                replace(radio, offset=HEADER_BITS),
                models,
            ),
            width=models.end,
        )

        if capacity < 1 or capacity > 255:
            raise SchemaError(f"{origin}: model capacity {capacity} outside 1..255")
        if root.width > size * 8:
            raise SchemaError(
                f"{origin}: layout needs {(root.width + 7) // 8} bytes, image size is {size}"
            )
        return SchemaVersion(
            board=board,
            family=info.family,
            variant=info.variant,
            version=spec.version,
            size=size,
            root=root,
        )


def _apply_changes(changes, inherited: Optional[List[Dict[str, Any]]], origin: str):
    """Apply an `extends` change set (or a full field list) to inherited fields."""
    if changes is None:
        if inherited is None:
            raise SchemaError(f"{origin}: missing field list")
        return list(inherited)
    if isinstance(changes, list):
        return list(changes)
    if inherited is None:
        raise SchemaError(f"{origin}: change set without a parent schema")

    fields = list(inherited)
    names = [f["name"] for f in fields]

    for name in changes.get("remove", []):
        if name not in names:
            raise SchemaError(f"{origin}: cannot remove unknown field {name}")
        index = names.index(name)
        del fields[index]
        del names[index]

    for old, new in (changes.get("rename") or {}).items():
        if old not in names:
            raise SchemaError(f"{origin}: cannot rename unknown field {old}")
        index = names.index(old)
        fields[index] = dict(fields[index], name=new)
        names[index] = new

    for definition in changes.get("replace", []):
        name = definition["name"]
        if name not in names:
            raise SchemaError(f"{origin}: cannot replace unknown field {name}")
        fields[names.index(name)] = definition

    for definition in changes.get("append", []):
        if definition["name"] in names:
            raise SchemaError(f"{origin}: field {definition['name']} already exists")
        fields.append(definition)
        names.append(definition["name"])

    unknown = set(changes) - {"remove", "rename", "replace", "append"}
    if unknown:
        raise SchemaError(f"{origin}: unknown change keys {sorted(unknown)}")
    return fields


# Field building


def build_struct(name: str, definitions: List[Dict[str, Any]], origin: str = "") -> FieldLayout:
    """
    Build a STRUCT layout from field definitions.

    Fields without an offset are packed after the previous one; the struct
    width is rounded up to whole bytes.
    """
    children = []
    cursor = 0
    for definition in definitions:
        child = build_field(definition, cursor, f"{origin}: {name}" if name else origin)
        children.append(child)
        cursor = max(cursor, child.end)

    _check_struct(name, children, origin)
    width = (cursor + 7) // 8 * 8
    return FieldLayout(name=name, encoding=Encoding.STRUCT, width=width, fields=tuple(children))


def build_field(definition: Dict[str, Any], cursor: int = 0, origin: str = "") -> FieldLayout:
    """Build one FieldLayout from its definition mapping."""
    try:
        name = definition["name"]
        encoding = Encoding(definition["type"])
    except KeyError as e:
        raise SchemaError(f"{origin}: field definition missing {e}")
    except ValueError:
        raise SchemaError(f"{origin}: {definition.get('name')}: unknown type {definition['type']!r}")

    where = f"{origin}.{name}"
    offset = int(definition.get("offset", cursor))
    try:
        builder = _BUILDERS[encoding]
        layout = builder(name, offset, definition, where)
    except (KeyError, TypeError, ValueError) as e:
        raise SchemaError(f"{where}: {e}")

    if layout.width <= 0:
        raise SchemaError(f"{where}: width must be positive")
    _check_default(layout, where)
    return replace(layout, description=str(definition.get("description", "")))


def _numeric(name, offset, d, where) -> FieldLayout:
    encoding = Encoding(d["type"])
    width = int(d["width"])
    scale = float(d.get("scale", 1.0)) if encoding == Encoding.FIXED else 1.0
    signed = encoding == Encoding.INT or (
        encoding == Encoding.FIXED and d.get("min") is not None and float(d["min"]) < 0
    )
    low = -(1 << (width - 1)) if signed else 0
    high = (1 << (width - 1)) - 1 if signed else (1 << width) - 1

    if encoding == Encoding.FIXED:
        minimum = float(d.get("min", low * scale))
        maximum = float(d.get("max", high * scale))
        raw_low, raw_high = round(minimum / scale), round(maximum / scale)
    else:
        minimum = int(d.get("min", low))
        maximum = int(d.get("max", high))
        raw_low, raw_high = minimum, maximum

    if raw_low > raw_high:
        raise SchemaError(f"{where}: min {minimum} above max {maximum}")
    if raw_low < low or raw_high > high:
        raise SchemaError(f"{where}: range {minimum}..{maximum} does not fit {width} bits")

    if "default" in d:
        default = d["default"]
    elif minimum <= 0 <= maximum:
        default = 0.0 if encoding == Encoding.FIXED else 0
    else:
        default = minimum
    return FieldLayout(
        name=name,
        encoding=encoding,
        offset=offset,
        width=width,
        minimum=minimum,
        maximum=maximum,
        default=default,
        scale=scale,
    )


def _bool(name, offset, d, where) -> FieldLayout:
    if int(d.get("width", 1)) != 1:
        raise SchemaError(f"{where}: bool fields are one bit wide")
    return FieldLayout(
        name=name, encoding=Encoding.BOOL, offset=offset, width=1, default=bool(d.get("default", False))
    )


def _enum(name, offset, d, where) -> FieldLayout:
    width = int(d["width"])
    choices = tuple(sorted((int(raw), str(tag)) for raw, tag in d["choices"].items()))
    if not choices:
        raise SchemaError(f"{where}: enum without choices")
    for raw, tag in choices:
        if raw < 0 or raw >> width:
            raise SchemaError(f"{where}: choice {tag}={raw} does not fit {width} bits")
    tags = [tag for _, tag in choices]
    if len(set(tags)) != len(tags):
        raise SchemaError(f"{where}: duplicate enum tags")
    return FieldLayout(
        name=name,
        encoding=Encoding.ENUM,
        offset=offset,
        width=width,
        default=str(d.get("default", choices[0][1])),
        choices=choices,
    )


def _flags(name, offset, d, where) -> FieldLayout:
    names = list(d["names"])
    width = int(d.get("width", len(names)))
    if len(names) > width:
        raise SchemaError(f"{where}: {len(names)} flag names for {width} bits")
    names += [None] * (width - len(names))
    flags = tuple(flag if flag else f"bit{bit}" for bit, flag in enumerate(names))
    return FieldLayout(
        name=name,
        encoding=Encoding.FLAGS,
        offset=offset,
        width=width,
        default=tuple(d.get("default", ())),
        flags=flags,
    )


def _string(name, offset, d, where) -> FieldLayout:
    capacity = int(d["capacity"])
    termination = Termination(d.get("termination", "null"))
    width = capacity * 8 + (8 if termination == Termination.LENGTH else 0)
    if "width" in d and int(d["width"]) != width:
        raise SchemaError(f"{where}: width {d['width']} does not match capacity {capacity}")
    if termination == Termination.LENGTH and capacity > 255:
        raise SchemaError(f"{where}: length-prefixed strings hold at most 255 bytes")
    return FieldLayout(
        name=name,
        encoding=Encoding.STRING,
        offset=offset,
        width=width,
        default=str(d.get("default", "")),
        capacity=capacity,
        termination=termination,
    )


def _struct(name, offset, d, where) -> FieldLayout:
    struct = build_struct(name, d["fields"], where)
    return replace(struct, offset=offset)


def _array(name, offset, d, where) -> FieldLayout:
    element_definition = dict(d["element"])
    element_definition.setdefault("name", name)
    element = replace(build_field(element_definition, 0, where), offset=0)
    length = int(d["length"])
    if length < 1:
        raise SchemaError(f"{where}: array length must be positive")
    return FieldLayout(
        name=name,
        encoding=Encoding.ARRAY,
        offset=offset,
        width=element.width * length,
        element=element,
        length=length,
        count_field=d.get("count_field"),
        stride=element.width,
    )


_BUILDERS = {
    Encoding.UINT: _numeric,
    Encoding.INT: _numeric,
    Encoding.FIXED: _numeric,
    Encoding.BOOL: _bool,
    Encoding.ENUM: _enum,
    Encoding.FLAGS: _flags,
    Encoding.STRING: _string,
    Encoding.STRUCT: _struct,
    Encoding.ARRAY: _array,
}


def _check_struct(name: str, children: List[FieldLayout], origin: str) -> None:
    names = [c.name for c in children]
    duplicates = {n for n in names if names.count(n) > 1}
    if duplicates:
        raise SchemaError(f"{origin}: {name}: duplicate fields {sorted(duplicates)}")

    ordered = sorted(children, key=lambda c: c.offset)
    for before, after in zip(ordered, ordered[1:]):
        if after.offset < before.end:
            raise SchemaError(f"{origin}: {name}: {after.name} overlaps {before.name}")

    for child in children:
        if child.count_field is None:
            continue
        count = next((c for c in children if c.name == child.count_field), None)
        if count is None or count.encoding != Encoding.UINT:
            raise SchemaError(
                f"{origin}: {name}.{child.name}: count field {child.count_field} must be a uint sibling"
            )
        if count.maximum < child.length:
            raise SchemaError(
                f"{origin}: {name}.{child.name}: count field cannot hold {child.length}"
            )


def _check_default(layout: FieldLayout, where: str) -> None:
    # imported here: the codec depends on schema.layout
    from radioconv.codec.fields import validate_value

    if layout.encoding.is_composite:
        return
    problem = validate_value(
        list(layout.default) if layout.encoding == Encoding.FLAGS else layout.default, layout
    )
    if problem:
        raise SchemaError(f"{where}: invalid default: {problem}")
