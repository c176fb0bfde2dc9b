"""
Error taxonomy for radio data storage and conversion.

Every error raised by the codec, the schema table, the container adapters
and the conversion engine derives from RadioDataError so callers can catch
the whole family at once. Messages are plain text; formatting for display
belongs to the caller.
"""

from typing import Optional


class RadioDataError(Exception):
    """Base class for all radioconv errors."""

    pass


class SchemaError(RadioDataError):
    """Raised when a schema definition is malformed."""

    pass


class InvalidContainerError(RadioDataError):
    """Wrong magic, missing mandatory entry or broken container structure."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class SizeMismatchError(RadioDataError):
    """Declared and actual byte counts disagree."""

    def __init__(
        self, expected: int, actual: int, what: str = "image", path: Optional[str] = None
    ):
        super().__init__(f"{what} size mismatch: expected {expected} bytes, got {actual}")
        self.expected = expected
        self.actual = actual
        self.what = what
        self.path = path


class UnknownBoardError(RadioDataError):
    """The board (or board variant id) is not in the schema table."""

    def __init__(self, board):
        super().__init__(f"Unknown board: {board}")
        self.board = board


class NoCompatibleVersionError(RadioDataError):
    """No registered schema version is equal to or older than the request."""

    def __init__(self, board: str, version: int):
        super().__init__(f"No compatible schema for board {board} version {version}")
        self.board = board
        self.version = version


class CodecError(RadioDataError):
    """
    Base class for field codec errors.

    Attributes:
        field: Path of the field being decoded/encoded (e.g. "models[1].name")
        offset: Absolute bit offset of the field, when known
    """

    def __init__(self, message: str, field: Optional[str] = None, offset: Optional[int] = None):
        if field:
            message = f"{field}: {message}"
        super().__init__(message)
        self.field = field
        self.offset = offset


class OutOfRangeError(CodecError):
    """A decoded value lies outside the field's valid range."""

    def __init__(self, message: str, field=None, offset=None, raw: Optional[int] = None):
        super().__init__(message, field, offset)
        self.raw = raw


class TruncatedBufferError(CodecError):
    """The buffer ends before the field does."""

    pass


class InvalidEncodingError(CodecError):
    """Bytes that cannot be interpreted under the declared encoding."""

    pass


class ValueOutOfRangeError(CodecError):
    """A value to encode does not fit the field's range or capacity."""

    pass


class TypeMismatchError(CodecError):
    """A value to encode has the wrong Python type for the field."""

    pass


class DocumentError(InvalidEncodingError):
    """
    A text document could not be mapped onto the settings tree.

    Attributes:
        path: Field path ("radio.trainer.mode") or "file:line" for syntax errors
    """

    def __init__(self, path: str, message: str):
        super().__init__(message, field=path)
        self.path = path


class IoFailureError(RadioDataError):
    """An I/O operation failed; carries the path and byte offset involved."""

    def __init__(self, path, message: str, offset: Optional[int] = None):
        where = f"{path}" if offset is None else f"{path}@{offset}"
        super().__init__(f"{where}: {message}")
        self.path = str(path)
        self.offset = offset


class ConversionRejectedError(RadioDataError):
    """
    A conversion run ended in the REJECTED state.

    Attributes:
        state: The state the run was in when it failed
        cause: The underlying error, if any
    """

    def __init__(self, message: str, state=None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.state = state
        self.cause = cause


class LedgerClosedError(RadioDataError):
    """Raised when recording into a ledger whose run has completed."""

    pass
