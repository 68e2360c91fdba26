"""Reading and extracting tModLoader mod containers (.tmod)."""

from .container import (
    TModContainer,
    TModUnpacker,
    open_container,
    read_container,
    extract_container,
)
from .cursor import ByteCursor
from .errors import (
    ErrorKind,
    TModError,
    DecodeError,
    ExtractionError,
    UnexpectedEofError,
    InvalidEncodingError,
    BadMagicError,
    UnsupportedVersionError,
    CorruptStreamError,
    SizeMismatchError,
    TruncatedManifestError,
    CountOverflowError,
    InvalidPathError,
    HashMismatchError,
    PathEscapeError,
    IoFailureError,
    classify_error,
)
from .events import (
    HeaderParsed,
    ManifestParsed,
    EntryExtracted,
    EntryFailed,
    RunSummary,
    LoggingEventSink,
    RecordingEventSink,
)
from .extractor import Extractor, ExtractionResult, EntryOutcome
from .header import Header, HeaderDecoder, MAGIC
from .inflater import BlockInflater
from .manifest import FileEntry, Manifest, ManifestParser, Metadata, TableLayout

__all__ = [
    "TModContainer",
    "TModUnpacker",
    "open_container",
    "read_container",
    "extract_container",
    "ByteCursor",
    "ErrorKind",
    "TModError",
    "DecodeError",
    "ExtractionError",
    "UnexpectedEofError",
    "InvalidEncodingError",
    "BadMagicError",
    "UnsupportedVersionError",
    "CorruptStreamError",
    "SizeMismatchError",
    "TruncatedManifestError",
    "CountOverflowError",
    "InvalidPathError",
    "HashMismatchError",
    "PathEscapeError",
    "IoFailureError",
    "classify_error",
    "HeaderParsed",
    "ManifestParsed",
    "EntryExtracted",
    "EntryFailed",
    "RunSummary",
    "LoggingEventSink",
    "RecordingEventSink",
    "Extractor",
    "ExtractionResult",
    "EntryOutcome",
    "Header",
    "HeaderDecoder",
    "MAGIC",
    "BlockInflater",
    "FileEntry",
    "Manifest",
    "ManifestParser",
    "Metadata",
    "TableLayout",
]
