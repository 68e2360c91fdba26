"""Container decoding pipeline and extraction entry point."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from tmod_extract.common import compute_sha1_hex
from .cursor import ByteCursor
from .errors import HashMismatchError, IoFailureError
from .events import EventSink, HeaderParsed, ManifestParsed
from .extractor import Extractor, ExtractionResult
from .header import Header, HeaderDecoder
from .inflater import BlockInflater, DEFAULT_MAX_INFLATED_SIZE
from .manifest import FileEntry, Manifest, ManifestParser, Metadata, TableLayout, DEFAULT_MAX_ENTRIES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TModContainer:
    """A decoded container: header plus parsed payload."""
    header: Header
    manifest: Manifest

    @property
    def metadata(self) -> Metadata:
        return self.manifest.metadata

    @property
    def entries(self) -> Tuple[FileEntry, ...]:
        return self.manifest.entries

    @property
    def layout(self) -> TableLayout:
        return self.manifest.layout


class TModUnpacker:
    """Decodes containers and extracts their files."""

    def __init__(
        self,
        strict: bool = False,
        workers: int = 1,
        verify_hash: bool = False,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_inflated_size: int = DEFAULT_MAX_INFLATED_SIZE,
        event_sink: Optional[EventSink] = None,
    ):
        """Initialize unpacker.

        Args:
            strict: Reject traversal paths while parsing and abort extraction
                on the first escaping entry
            workers: Number of writer threads
            verify_hash: Check the payload against the header's build hash
            max_entries: Upper bound on the declared entry count
            max_inflated_size: Upper bound on the inflated payload size
            event_sink: Receives diagnostics events
        """
        self.verify_hash = verify_hash
        self.event_sink = event_sink

        self.header_decoder = HeaderDecoder()
        self.inflater = BlockInflater(max_inflated_size=max_inflated_size)
        self.manifest_parser = ManifestParser(max_entries=max_entries, reject_unsafe_paths=strict)
        self.extractor = Extractor(
            inflater=self.inflater,
            strict=strict,
            workers=workers,
            event_sink=event_sink,
        )

    @classmethod
    def from_config(cls, extraction_config, event_sink: Optional[EventSink] = None) -> "TModUnpacker":
        """Build an unpacker from an ExtractionConfig section."""
        return cls(
            strict=extraction_config.strict,
            workers=extraction_config.workers,
            verify_hash=extraction_config.verify_hash,
            max_entries=extraction_config.max_entries,
            max_inflated_size=extraction_config.max_inflated_size,
            event_sink=event_sink,
        )

    def open(self, data: bytes | memoryview) -> TModContainer:
        """Decode a container held in memory.

        Args:
            data: Whole container

        Returns:
            Decoded container; its entries borrow the inflated payload

        Raises:
            DecodeError: On any malformed input
        """
        cursor = ByteCursor(data)
        header = self.header_decoder.decode(cursor)
        self._emit(HeaderParsed(version=header.version, build_hash=header.build_hash_hex))

        payload = cursor.read_fixed(header.payload_length)
        if cursor.remaining():
            logger.warning(f"Ignoring {cursor.remaining()} byte(s) after the payload")

        if self.verify_hash:
            self._verify_build_hash(header, payload)

        inflated = self.inflater.inflate(payload, offset=header.payload_start)
        logger.debug(f"Payload inflated from {header.payload_length} to {len(inflated)} bytes")

        layout = TableLayout.for_version(header.parsed_version)
        manifest = self.manifest_parser.parse(inflated, layout)
        self._emit(ManifestParsed(
            name=manifest.metadata.name,
            version=manifest.metadata.version,
            entry_count=len(manifest.entries),
        ))

        return TModContainer(header=header, manifest=manifest)

    def read(self, input_path: Path) -> TModContainer:
        """Read and decode a container file.

        Raises:
            IoFailureError: If the file cannot be read
            DecodeError: On any malformed input
        """
        input_path = Path(input_path)
        logger.info(f"Reading {input_path}")

        try:
            data = input_path.read_bytes()
        except OSError as e:
            raise IoFailureError(f"Cannot read {input_path}: {e}", path=str(input_path)) from e

        return self.open(data)

    def extract(
        self,
        container: TModContainer,
        output_root: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExtractionResult:
        """Extract a decoded container below ``output_root``."""
        return self.extractor.extract(
            container.entries,
            container.manifest.body,
            Path(output_root),
            cancel_event=cancel_event,
        )

    def run(
        self,
        input_path: Path,
        output_root: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[TModContainer, ExtractionResult]:
        """Read a container file and extract it.

        Args:
            input_path: Container file
            output_root: Directory to extract into
            cancel_event: Cooperative cancellation signal

        Returns:
            Tuple of (container, extraction result)
        """
        container = self.read(input_path)
        result = self.extract(container, output_root, cancel_event=cancel_event)
        logger.info(f"Done! {container.metadata.name} files are in: {Path(output_root)}")
        return container, result

    def _verify_build_hash(self, header: Header, payload: memoryview) -> None:
        actual = compute_sha1_hex(payload)
        if actual != header.build_hash_hex:
            raise HashMismatchError(
                f"Payload hash {actual} does not match build hash {header.build_hash_hex}",
                offset=header.payload_start,
                region="container",
            )
        logger.debug("Build hash verified")

    def _emit(self, event) -> None:
        if self.event_sink is not None:
            self.event_sink(event)


def open_container(
    data: bytes | memoryview,
    *,
    verify_hash: bool = False,
    max_entries: int = DEFAULT_MAX_ENTRIES,
    max_inflated_size: int = DEFAULT_MAX_INFLATED_SIZE,
    reject_unsafe_paths: bool = False,
    event_sink: Optional[EventSink] = None,
) -> TModContainer:
    """Decode a container held in memory.

    Raises:
        DecodeError: On any malformed input
    """
    unpacker = TModUnpacker(
        strict=reject_unsafe_paths,
        verify_hash=verify_hash,
        max_entries=max_entries,
        max_inflated_size=max_inflated_size,
        event_sink=event_sink,
    )
    return unpacker.open(data)


def read_container(input_path: Path, **kwargs) -> TModContainer:
    """Read a container file and decode it; see :func:`open_container`.

    Raises:
        IoFailureError: If the file cannot be read
        DecodeError: On any malformed input
    """
    input_path = Path(input_path)
    try:
        data = input_path.read_bytes()
    except OSError as e:
        raise IoFailureError(f"Cannot read {input_path}: {e}", path=str(input_path)) from e
    return open_container(data, **kwargs)


def extract_container(
    container: TModContainer,
    output_root: Path,
    *,
    strict: bool = False,
    workers: int = 1,
    event_sink: Optional[EventSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ExtractionResult:
    """Extract a decoded container below ``output_root``."""
    extractor = Extractor(strict=strict, workers=workers, event_sink=event_sink)
    return extractor.extract(
        container.entries,
        container.manifest.body,
        Path(output_root),
        cancel_event=cancel_event,
    )
