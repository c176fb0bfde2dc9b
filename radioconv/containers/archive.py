"""
Archive container (.otx, .zip).

Entries:

    RADIO/radio.bin       image header + radio settings segment
    MODELS/model00.bin    one model slot each, numbered from 00 without gaps
    MODELS/model01.bin
    META/labels.yml       optional list of model labels

Every entry is extracted to memory and its length checked against the size
recorded in the archive index, so a truncated entry is a SizeMismatchError
rather than a short image. Writing always builds a new archive next to the
destination and moves it into place when complete.
"""

import logging
import os
import re
import zipfile
import zlib
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import yaml

from radioconv.codec.image import MODEL_COUNT_BITS
from radioconv.codec.bits import read_bits
from radioconv.config import DEFAULT_OPTIONS, ConversionOptions
from radioconv.containers.common import check_size, identify, read_bytes, suffix_of
from radioconv.errors import InvalidContainerError, IoFailureError, SizeMismatchError
from radioconv.models.image import ContainerKind, RawImage
from radioconv.schema.table import SchemaTable

logger = logging.getLogger(__name__)

RADIO_ENTRY = "RADIO/radio.bin"
MODEL_ENTRY = "MODELS/model{:02d}.bin"
LABELS_ENTRY = "META/labels.yml"
MODEL_PATTERN = re.compile(r"^MODELS/model(\d{2,3})\.bin$")
ZIP_MAGIC = b"PK\x03\x04"


class ArchiveAdapter:
    """
    Reader/writer for multi-entry zip archives.

    Example:
        adapter = ArchiveAdapter(default_table(), options)
        adapter.write(image, "models.otx", progress=lambda done, total: print(done, total))
    """

    kind = ContainerKind.ARCHIVE
    extensions = (".otx", ".zip")

    def __init__(self, table: SchemaTable, options: Optional[ConversionOptions] = None):
        self.table = table
        self.options = options or DEFAULT_OPTIONS

    @classmethod
    def can_read(cls, path: Union[str, Path]) -> bool:
        path = Path(path)
        if not path.is_file():
            return False
        if suffix_of(path) in cls.extensions:
            return True
        return read_bytes(path, len(ZIP_MAGIC)) == ZIP_MAGIC

    # Reading

    def read(self, source: Union[str, Path]) -> RawImage:
        """
        Read an archive and reassemble the flat image.

        Raises:
            IoFailureError: File cannot be read
            InvalidContainerError: Not a zip file, missing radio entry, model
                numbering gaps, bad entry CRC or unreadable labels
            SizeMismatchError: An entry's extracted size differs from the
                index, or an entry does not match its schema segment size
        """
        try:
            archive = zipfile.ZipFile(source)
        except zipfile.BadZipFile as e:
            raise InvalidContainerError(f"not a zip archive: {e}", str(source)) from e
        except OSError as e:
            raise IoFailureError(source, e.strerror or str(e)) from e

        with archive:
            entries = archive.infolist()
            if len(entries) > self.options.max_archive_entries:
                raise InvalidContainerError(
                    f"{len(entries)} entries, limit is {self.options.max_archive_entries}",
                    str(source),
                )
            index = {info.filename: info for info in entries}
            if RADIO_ENTRY not in index:
                raise InvalidContainerError(f"missing {RADIO_ENTRY}", str(source))

            radio = self._extract(archive, index[RADIO_ENTRY], source)
            models = [
                self._extract(archive, index[name], source)
                for name in self._model_entries(index, source)
            ]
            labels = self._labels(archive, index, source)

        board, version, radio, metadata = identify(self.table, radio, self.options, source)
        payload = self._assemble(board, version, radio, models, source)
        if labels is not None:
            metadata["labels"] = labels
        logger.debug(
            "Read archive %s: %s v%d, %d model entries", source, board, version, len(models)
        )
        return RawImage.create(
            payload, self.kind, board, version, source=str(source), metadata=metadata
        )

    @staticmethod
    def _model_entries(index, source) -> List[str]:
        numbered = []
        for name in index:
            match = MODEL_PATTERN.match(name)
            if match:
                numbered.append((int(match.group(1)), name))
        numbered.sort()
        for expected, (number, name) in enumerate(numbered):
            if number != expected:
                raise InvalidContainerError(
                    f"model entries must be numbered from 00 without gaps, found {name}",
                    str(source),
                )
        return [name for _, name in numbered]

    @staticmethod
    def _extract(archive: zipfile.ZipFile, info: zipfile.ZipInfo, source) -> bytes:
        name = info.filename
        try:
            with archive.open(info) as f:
                data = f.read(info.file_size + 1)
        except zipfile.BadZipFile as e:
            raise InvalidContainerError(f"{name}: {e}", str(source)) from e
        except (EOFError, zlib.error) as e:
            raise SizeMismatchError(info.file_size, 0, f"entry {name}", str(source)) from e
        except OSError as e:
            raise IoFailureError(source, f"{name}: {e}", info.header_offset) from e

        if len(data) != info.file_size:
            raise SizeMismatchError(info.file_size, len(data), f"entry {name}", str(source))
        return data

    @staticmethod
    def _labels(archive, index, source) -> Optional[List[str]]:
        info = index.get(LABELS_ENTRY)
        if info is None:
            return None
        data = ArchiveAdapter._extract(archive, info, source)
        try:
            labels = yaml.safe_load(data.decode("utf-8")) or []
        except (yaml.YAMLError, UnicodeDecodeError) as e:
            raise InvalidContainerError(f"{LABELS_ENTRY}: {e}", str(source)) from e
        if not isinstance(labels, list):
            raise InvalidContainerError(f"{LABELS_ENTRY}: expected a list", str(source))
        return [str(label) for label in labels]

    def _assemble(self, board, version, radio: bytes, models: List[bytes], source) -> bytes:
        schema = self.table.resolve(board, version)
        segments = schema.segments()
        radio_start, radio_end = segments["radio"]
        models_start, stride = segments["model"]

        if len(radio) != radio_end - radio_start:
            raise SizeMismatchError(
                radio_end - radio_start, len(radio), f"entry {RADIO_ENTRY}", str(source)
            )
        count = read_bits(radio, *MODEL_COUNT_BITS)
        if count != len(models):
            raise InvalidContainerError(
                f"header declares {count} models, archive holds {len(models)}", str(source)
            )
        if count > schema.model_capacity:
            raise InvalidContainerError(
                f"{count} models exceed the capacity of {schema.model_capacity}", str(source)
            )

        payload = bytearray(self.table.size_of(schema))
        payload[radio_start:radio_end] = radio
        for number, model in enumerate(models):
            if len(model) != stride:
                raise SizeMismatchError(
                    stride, len(model), f"entry {MODEL_ENTRY.format(number)}", str(source)
                )
            start = models_start + number * stride
            payload[start : start + stride] = model
        return bytes(payload)

    # Writing

    def split(self, image: RawImage) -> List[Tuple[str, bytes]]:
        """Cut an image into archive entries, radio entry first."""
        schema = check_size(self.table, image.board, image.version, image.size)
        segments = schema.segments()
        radio_start, radio_end = segments["radio"]
        models_start, stride = segments["model"]
        payload = image.payload

        entries = [(RADIO_ENTRY, payload[radio_start:radio_end])]
        for number in range(read_bits(payload, *MODEL_COUNT_BITS)):
            start = models_start + number * stride
            entries.append((MODEL_ENTRY.format(number), payload[start : start + stride]))
        labels = image.metadata.get("labels")
        if labels:
            text = yaml.safe_dump(list(labels), allow_unicode=True, default_flow_style=False)
            entries.append((LABELS_ENTRY, text.encode("utf-8")))
        return entries

    def write(
        self,
        image: RawImage,
        destination: Union[str, Path],
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        """
        Write a fresh archive.

        Args:
            image: Image to store
            destination: Archive path; an existing file is replaced only
                once the new archive is complete
            progress: Called as progress(done, total) after each entry, in
                entries or bytes depending on options.progress_unit

        Raises:
            IoFailureError: The archive cannot be written
        """
        destination = Path(destination)
        entries = self.split(image)
        by_bytes = self.options.progress_unit == "bytes"
        total = sum(len(data) for _, data in entries) if by_bytes else len(entries)
        partial = destination.with_name(destination.name + ".partial")

        done = 0
        try:
            with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for name, data in entries:
                    archive.writestr(name, data)
                    done += len(data) if by_bytes else 1
                    if progress is not None:
                        progress(done, total)
            os.replace(partial, destination)
        except OSError as e:
            raise IoFailureError(destination, e.strerror or str(e)) from e
        finally:
            if partial.exists():
                partial.unlink()
        logger.debug("Wrote archive %s with %d entries", destination, len(entries))
