"""Diagnostics events emitted while decoding and extracting.

Events are plain data. How they are rendered is up to the sink; the
default :class:`LoggingEventSink` forwards them to ``logging`` with the
event fields attached as structured ``extra_fields``.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Callable, Optional, Union

from tmod_extract.common import get_logger


@dataclass(frozen=True)
class HeaderParsed:
    version: str
    build_hash: str


@dataclass(frozen=True)
class ManifestParsed:
    name: str
    version: str
    entry_count: int


@dataclass(frozen=True)
class EntryExtracted:
    path: str
    bytes_written: int


@dataclass(frozen=True)
class EntryFailed:
    path: str
    error_kind: str


@dataclass(frozen=True)
class RunSummary:
    files_written: int
    bytes_written: int
    failures: int


Event = Union[HeaderParsed, ManifestParsed, EntryExtracted, EntryFailed, RunSummary]
EventSink = Callable[[Event], None]


class LoggingEventSink:
    """Renders events as log records."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or get_logger(__name__)

    def __call__(self, event: Event) -> None:
        fields = asdict(event)
        fields["event"] = type(event).__name__

        if isinstance(event, HeaderParsed):
            level, message = logging.INFO, f"Container version {event.version}, build hash {event.build_hash}"
        elif isinstance(event, ManifestParsed):
            level, message = logging.INFO, f"Mod {event.name} {event.version}: {event.entry_count} file(s)"
        elif isinstance(event, EntryExtracted):
            level, message = logging.DEBUG, f"Extracted {event.path} ({event.bytes_written} bytes)"
        elif isinstance(event, EntryFailed):
            level, message = logging.ERROR, f"Failed to extract {event.path}: {event.error_kind}"
        elif isinstance(event, RunSummary):
            level = logging.WARNING if event.failures else logging.INFO
            message = (
                f"Extraction complete: {event.files_written} file(s), "
                f"{event.bytes_written} bytes, {event.failures} failure(s)"
            )
        else:
            level, message = logging.DEBUG, f"Event: {fields}"

        self.logger.log(level, message, extra={"extra_fields": fields})


class RecordingEventSink:
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [event for event in self.events if isinstance(event, event_type)]
