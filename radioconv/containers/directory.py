"""
Directory-of-files container.

    <root>/RADIO/radio.yml        radio document (board, version, radio)
    <root>/MODELS/models.yml      index: model file names in slot order
    <root>/MODELS/<file>.yml      one model document per index entry
    <root>/MODELS/labels.yml      optional list of labels

The two fixed paths are mandatory and checked before any model file is
looked at. A missing labels file is not an error: the image simply carries
no labels.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from radioconv.codec.image import decode_image, encode_image
from radioconv.config import DEFAULT_OPTIONS, ConversionOptions
from radioconv.containers.common import read_bytes, write_text
from radioconv.containers.document import (
    decode_text,
    dump_yaml,
    load_yaml,
    model_documents,
    parse_header,
    radio_document,
    settings_from_documents,
)
from radioconv.errors import DocumentError, InvalidContainerError, IoFailureError
from radioconv.models.image import ContainerKind, RawImage
from radioconv.schema.table import SchemaTable

logger = logging.getLogger(__name__)

RADIO_FILE = Path("RADIO") / "radio.yml"
INDEX_FILE = Path("MODELS") / "models.yml"
LABELS_FILE = Path("MODELS") / "labels.yml"
MODELS_DIR = Path("MODELS")


class DirectoryAdapter:
    """
    Reader/writer for settings stored as a tree of YAML files.

    Example:
        adapter = DirectoryAdapter(default_table())
        image = adapter.read("backup/")
    """

    kind = ContainerKind.DIRECTORY
    extensions = ()

    def __init__(self, table: SchemaTable, options: Optional[ConversionOptions] = None):
        self.table = table
        self.options = options or DEFAULT_OPTIONS

    @classmethod
    def can_read(cls, path: Union[str, Path]) -> bool:
        return Path(path).is_dir()

    def read(self, source: Union[str, Path]) -> RawImage:
        """
        Read a settings directory.

        Raises:
            InvalidContainerError: A mandatory file is missing, the index is
                malformed or names a missing model file
            DocumentError: A document does not fit the schema
            IoFailureError: A file cannot be read
        """
        root = Path(source)
        if not root.is_dir():
            raise InvalidContainerError("not a directory", str(root))
        for mandatory in (RADIO_FILE, INDEX_FILE):
            if not (root / mandatory).is_file():
                raise InvalidContainerError(f"missing {mandatory.as_posix()}", str(root))

        header = self._load(root, RADIO_FILE)
        schema = parse_header(header, self.table, self.options, RADIO_FILE.as_posix())
        files = self._index(root)

        models = []
        for name in files:
            model_path = MODELS_DIR / name
            if not (root / model_path).is_file():
                raise InvalidContainerError(
                    f"{INDEX_FILE.as_posix()} lists missing file {model_path.as_posix()}", str(root)
                )
            models.append(self._load(root, model_path))

        settings = settings_from_documents(header, models, schema)
        payload = encode_image(settings, schema)
        metadata = {"model_files": files, "labels": self._labels(root)}
        logger.debug("Read directory %s: %s v%d, %d models", root, schema.board, schema.version, len(files))
        return RawImage.create(
            payload, self.kind, schema.board, schema.version, source=str(root), metadata=metadata
        )

    def _load(self, root: Path, relative: Path):
        limit = self.options.max_document_bytes
        data = read_bytes(root / relative, limit + 1)
        if len(data) > limit:
            raise InvalidContainerError(
                f"{relative.as_posix()} larger than {limit} bytes", str(root)
            )
        name = relative.as_posix()
        return load_yaml(decode_text(data, name), name)

    def _index(self, root: Path) -> List[str]:
        index = self._load(root, INDEX_FILE)
        if index is None:
            return []
        if not isinstance(index, list):
            raise InvalidContainerError(f"{INDEX_FILE.as_posix()} must be a list of file names", str(root))
        files = []
        for position, entry in enumerate(index):
            if not isinstance(entry, str) or not entry or "/" in entry or "\\" in entry or entry.startswith("."):
                raise InvalidContainerError(
                    f"{INDEX_FILE.as_posix()} entry {position}: invalid file name {entry!r}", str(root)
                )
            files.append(entry)
        if len(set(files)) != len(files):
            raise InvalidContainerError(f"{INDEX_FILE.as_posix()} lists a file twice", str(root))
        return files

    def _labels(self, root: Path) -> List[str]:
        if not (root / LABELS_FILE).is_file():
            return []
        labels = self._load(root, LABELS_FILE)
        if labels is None:
            return []
        if not isinstance(labels, list):
            raise DocumentError(LABELS_FILE.as_posix(), "expected a list of labels")
        return [str(label) for label in labels]

    def write(self, image: RawImage, destination: Union[str, Path], progress=None) -> None:
        """
        Write a settings directory, creating it if needed.

        Model files keep the names recorded in the image metadata when there
        is one per model, otherwise they are named model00.yml, model01.yml...
        """
        root = Path(destination)
        schema = self.table.resolve(image.board, image.version)
        settings = decode_image(image.payload, schema)
        models = model_documents(settings, schema)

        files = list(image.metadata.get("model_files") or [])
        if len(files) != len(models):
            files = [f"model{number:02d}.yml" for number in range(len(models))]

        outputs = [(RADIO_FILE, radio_document(settings, schema)), (INDEX_FILE, files)]
        outputs += [(MODELS_DIR / name, model) for name, model in zip(files, models)]
        labels = image.metadata.get("labels")
        if labels:
            outputs.append((LABELS_FILE, list(labels)))

        try:
            (root / RADIO_FILE).parent.mkdir(parents=True, exist_ok=True)
            (root / MODELS_DIR).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoFailureError(root, e.strerror or str(e)) from e

        for done, (relative, document) in enumerate(outputs, 1):
            write_text(root / relative, dump_yaml(document))
            if progress is not None:
                progress(done, len(outputs))
        logger.debug("Wrote directory %s with %d models", root, len(models))
