"""Mod metadata and entry table parsing.

The inflated payload holds the mod name and version, an entry count, one
header per entry and then the entry bodies back to back. The shape of an
entry header depends on the container version and is chosen once, as a
:class:`TableLayout`.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple

from packaging.version import Version

from tmod_extract.common import normalize_entry_path, is_escaping_path
from .cursor import ByteCursor
from .errors import (
    CountOverflowError,
    InvalidPathError,
    SizeMismatchError,
    TruncatedManifestError,
    UnexpectedEofError,
)

logger = logging.getLogger(__name__)

# First container version that records stored sizes next to file lengths
SPLIT_SIZES_SINCE = Version("0.11")

DEFAULT_MAX_ENTRIES = 1_000_000


class TableLayout(Enum):
    """Entry header formats."""
    LEGACY = "legacy"  # path, length
    SPLIT_SIZES = "split_sizes"  # path, uncompressed length, stored length

    @classmethod
    def for_version(cls, version: Version) -> "TableLayout":
        """Select the layout a container version writes."""
        if version < SPLIT_SIZES_SINCE:
            return cls.LEGACY
        return cls.SPLIT_SIZES

    @property
    def has_stored_length(self) -> bool:
        return self is TableLayout.SPLIT_SIZES

    @property
    def min_entry_size(self) -> int:
        """Smallest possible encoded entry header in bytes."""
        # one-byte length prefix and the u32 size fields; an empty path still
        # has to reach the path checks
        size_fields = 2 if self.has_stored_length else 1
        return 1 + 4 * size_fields


@dataclass(frozen=True)
class Metadata:
    """Mod identity recorded in the payload."""
    name: str
    version: str


@dataclass(frozen=True)
class FileEntry:
    """One file in the entry table.

    ``payload_offset`` is computed while parsing: the sum of the stored
    lengths of all earlier entries, relative to the body region.
    """
    relative_path: str
    uncompressed_length: int
    stored_length: int
    payload_offset: int = 0

    @property
    def is_compressed(self) -> bool:
        """Entry bytes are their own deflate stream."""
        return self.stored_length != self.uncompressed_length


@dataclass(frozen=True)
class Manifest:
    """Parsed payload: metadata, entry table and the body region it indexes."""
    metadata: Metadata
    entries: Tuple[FileEntry, ...]
    layout: TableLayout
    body: memoryview = field(repr=False, compare=False)

    @property
    def total_uncompressed(self) -> int:
        return sum(entry.uncompressed_length for entry in self.entries)


class ManifestParser:
    """Parses the inflated payload into metadata and entries."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES, reject_unsafe_paths: bool = False):
        """Initialize parser.

        Args:
            max_entries: Hard upper bound on the declared entry count
            reject_unsafe_paths: Fail on traversal or absolute paths here
                instead of leaving them to the extractor
        """
        self.max_entries = max_entries
        self.reject_unsafe_paths = reject_unsafe_paths

    def parse(self, inflated: bytes | memoryview, layout: TableLayout) -> Manifest:
        """Parse the payload.

        Args:
            inflated: Decompressed payload; entries borrow ranges of it
            layout: Entry header layout selected from the container version

        Returns:
            Parsed manifest

        Raises:
            CountOverflowError: If the entry count is implausible
            TruncatedManifestError: If the table or bodies are cut short
            SizeMismatchError: If bytes are left over after the last body
            InvalidPathError: If an entry path is unusable
            UnexpectedEofError: If the metadata strings are cut short
            InvalidEncodingError: If a string is not valid UTF-8
        """
        cursor = ByteCursor(inflated, region="payload")

        metadata = Metadata(name=cursor.read_string(), version=cursor.read_string())
        logger.info(f"Mod: {metadata.name} {metadata.version}")

        count_offset = cursor.position()
        entry_count = cursor.read_u32()
        self._check_count(entry_count, cursor.remaining(), layout, count_offset)
        logger.debug(f"Entry count: {entry_count} ({layout.value} layout)")

        headers = self._read_entry_headers(cursor, entry_count, layout)

        body_start = cursor.position()
        body_size = cursor.remaining()

        entries: List[FileEntry] = []
        running_offset = 0
        for path, uncompressed_length, stored_length in headers:
            entries.append(FileEntry(
                relative_path=path,
                uncompressed_length=uncompressed_length,
                stored_length=stored_length,
                payload_offset=running_offset,
            ))
            running_offset += stored_length

        if running_offset > body_size:
            raise TruncatedManifestError(
                f"Entries need {running_offset} bytes of file data, payload has {body_size}",
                offset=body_start,
                region="payload",
                needed=running_offset,
                available=body_size,
            )
        if running_offset < body_size:
            raise SizeMismatchError(
                f"{body_size - running_offset} bytes of file data are not covered by any entry",
                offset=body_start + running_offset,
                region="payload",
                expected=running_offset,
                actual=body_size,
            )

        return Manifest(
            metadata=metadata,
            entries=tuple(entries),
            layout=layout,
            body=memoryview(inflated)[body_start:],
        )

    def _check_count(self, entry_count: int, remaining: int, layout: TableLayout, offset: int) -> None:
        if entry_count > self.max_entries:
            raise CountOverflowError(
                f"Entry count {entry_count} exceeds the limit of {self.max_entries}",
                offset=offset,
                region="payload",
                entry_count=entry_count,
            )

        needed = entry_count * layout.min_entry_size
        if needed > remaining:
            raise CountOverflowError(
                f"Entry count {entry_count} needs at least {needed} bytes, {remaining} remain",
                offset=offset,
                region="payload",
                entry_count=entry_count,
            )

    def _read_entry_headers(
        self,
        cursor: ByteCursor,
        entry_count: int,
        layout: TableLayout,
    ) -> List[Tuple[str, int, int]]:
        headers = []

        for index in range(entry_count):
            entry_offset = cursor.position()
            try:
                path = cursor.read_string()
                uncompressed_length = cursor.read_u32()
                if layout.has_stored_length:
                    stored_length = cursor.read_u32()
                else:
                    stored_length = uncompressed_length
            except UnexpectedEofError as e:
                raise TruncatedManifestError(
                    f"Entry table ends inside entry {index} of {entry_count}",
                    offset=e.offset,
                    region="payload",
                    entry_index=index,
                ) from e

            self._check_path(path, index, entry_offset)
            logger.debug(f"Entry {index}: {path} ({uncompressed_length} bytes, {stored_length} stored)")
            headers.append((path, uncompressed_length, stored_length))

        return headers

    def _check_path(self, path: str, index: int, offset: int) -> None:
        reason = None
        if "\x00" in path:
            reason = "contains a NUL character"
        elif not normalize_entry_path(path):
            reason = "is empty"
        elif self.reject_unsafe_paths and is_escaping_path(path):
            reason = "escapes the output root"

        if reason:
            raise InvalidPathError(
                f"Path of entry {index} {reason}: {path!r}",
                offset=offset,
                region="payload",
                entry_index=index,
                path=path,
            )
