"""Container decoding and extraction errors."""

from enum import Enum
from typing import Any, Optional

from tmod_extract.common import TModExtractError


class ErrorKind(Enum):
    """Failure categories reported per entry and in diagnostics."""
    UNEXPECTED_EOF = "unexpected_eof"
    INVALID_ENCODING = "invalid_encoding"
    BAD_MAGIC = "bad_magic"
    UNSUPPORTED_VERSION = "unsupported_version"
    CORRUPT_STREAM = "corrupt_stream"
    SIZE_MISMATCH = "size_mismatch"
    TRUNCATED_MANIFEST = "truncated_manifest"
    COUNT_OVERFLOW = "count_overflow"
    INVALID_PATH = "invalid_path"
    PATH_ESCAPE = "path_escape"
    IO_FAILURE = "io_failure"
    HASH_MISMATCH = "hash_mismatch"


class TModError(TModExtractError):
    """Base error for container processing.

    Attributes:
        kind: Failure category of this error class
        offset: Byte offset the failure was detected at, if known
    """

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str, offset: Optional[int] = None, **context: Any) -> None:
        super().__init__(message, **context)
        self.offset = offset

    @property
    def region(self) -> Optional[str]:
        """Buffer the offset refers to ("container" or "payload")."""
        return self.context.get("region")


class DecodeError(TModError):
    """Container bytes cannot be trusted past this point; aborts the run."""
    pass


class UnexpectedEofError(DecodeError):
    """Fewer bytes remain than a read requires."""
    kind = ErrorKind.UNEXPECTED_EOF


class InvalidEncodingError(DecodeError):
    """String bytes or a length prefix are malformed."""
    kind = ErrorKind.INVALID_ENCODING


class BadMagicError(DecodeError):
    """Container does not start with the expected magic tag."""
    kind = ErrorKind.BAD_MAGIC


class UnsupportedVersionError(DecodeError):
    """Version string is not a parseable version."""
    kind = ErrorKind.UNSUPPORTED_VERSION


class CorruptStreamError(DecodeError):
    """Compressed data is malformed or truncated."""
    kind = ErrorKind.CORRUPT_STREAM


class SizeMismatchError(DecodeError):
    """Declared and actual sizes disagree."""
    kind = ErrorKind.SIZE_MISMATCH


class TruncatedManifestError(DecodeError):
    """Entry table or bodies run past the end of the payload."""
    kind = ErrorKind.TRUNCATED_MANIFEST


class CountOverflowError(DecodeError):
    """Declared entry count is implausible."""
    kind = ErrorKind.COUNT_OVERFLOW


class InvalidPathError(DecodeError):
    """Entry path is unusable."""
    kind = ErrorKind.INVALID_PATH


class HashMismatchError(DecodeError):
    """Payload does not match the build hash in the header."""
    kind = ErrorKind.HASH_MISMATCH


class ExtractionError(TModError):
    """Writing an entry to disk failed."""
    pass


class PathEscapeError(ExtractionError):
    """Entry path resolves outside the output root."""
    kind = ErrorKind.PATH_ESCAPE


class IoFailureError(ExtractionError):
    """Filesystem create or write failed."""
    kind = ErrorKind.IO_FAILURE


def classify_error(exception: Exception) -> ErrorKind:
    """
    Classify an exception into an error category.

    Args:
        exception: The exception to classify

    Returns:
        ErrorKind of a TModError, IO_FAILURE for OS errors,
        CORRUPT_STREAM for anything else
    """
    if isinstance(exception, TModError) and exception.kind is not None:
        return exception.kind
    elif isinstance(exception, OSError):
        return ErrorKind.IO_FAILURE
    elif isinstance(exception, UnicodeDecodeError):
        return ErrorKind.INVALID_ENCODING
    else:
        return ErrorKind.CORRUPT_STREAM
