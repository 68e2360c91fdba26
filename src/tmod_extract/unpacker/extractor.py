"""Materializes container entries onto the filesystem."""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from tmod_extract.common import normalize_entry_path, is_escaping_path
from .errors import (
    ErrorKind,
    IoFailureError,
    PathEscapeError,
    SizeMismatchError,
    TModError,
    classify_error,
)
from .events import EntryExtracted, EntryFailed, EventSink, RunSummary
from .inflater import BlockInflater
from .manifest import FileEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryOutcome:
    """Result of extracting one entry."""
    index: int
    path: str
    success: bool
    bytes_written: int = 0
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None


@dataclass
class ExtractionResult:
    """Per-entry outcomes in table order plus aggregates."""
    outcomes: List[EntryOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def files_written(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def bytes_written(self) -> int:
        return sum(outcome.bytes_written for outcome in self.outcomes)

    @property
    def failures(self) -> List[EntryOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def succeeded(self) -> bool:
        """No entry failed and the run was not cancelled."""
        return not self.cancelled and not self.failures

    def summary(self) -> RunSummary:
        return RunSummary(
            files_written=self.files_written,
            bytes_written=self.bytes_written,
            failures=len(self.failures),
        )


@dataclass
class _PlannedEntry:
    index: int
    entry: FileEntry
    target: Optional[Path] = None
    error: Optional[TModError] = None


class Extractor:
    """Writes entries below an output root.

    Entries are handled in table order. With ``workers > 1`` writes run on
    a bounded thread pool; entries sharing a target path stay in one task
    so the last of them still wins, and the result is reported in table
    order either way.
    """

    def __init__(
        self,
        inflater: Optional[BlockInflater] = None,
        strict: bool = False,
        workers: int = 1,
        event_sink: Optional[EventSink] = None,
    ):
        """Initialize extractor.

        Args:
            inflater: Inflater for independently compressed entries
            strict: Abort on the first entry whose path escapes the root
            workers: Number of writer threads (1 writes sequentially)
            event_sink: Receives EntryExtracted, EntryFailed and RunSummary
        """
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")

        self.inflater = inflater or BlockInflater()
        self.strict = strict
        self.workers = workers
        self.event_sink = event_sink

    def extract(
        self,
        entries: Iterable[FileEntry],
        payload: bytes | memoryview,
        output_root: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExtractionResult:
        """Extract entries to ``output_root``.

        Args:
            entries: Entry table in order
            payload: Body region the entries' offsets point into
            output_root: Directory to extract into; created if missing
            cancel_event: Checked before each entry; once set no further
                entry is started

        Returns:
            Outcomes of the entries that ran, in table order

        Raises:
            IoFailureError: If the output root cannot be created or written
            PathEscapeError: In strict mode, for the first escaping entry,
                before anything is written
        """
        root = self._prepare_root(Path(output_root))
        planned = self._plan(entries, root)
        view = memoryview(payload)

        logger.info(f"Extracting {len(planned)} file(s) to {root}")

        if self.workers > 1 and len(planned) > 1:
            outcomes = self._run_pooled(planned, root, view, cancel_event)
        else:
            outcomes = self._run_sequential(planned, view, cancel_event)

        result = ExtractionResult(
            outcomes=outcomes,
            cancelled=len(outcomes) < len(planned),
        )
        if result.cancelled:
            logger.warning(f"Extraction cancelled after {len(outcomes)} of {len(planned)} file(s)")

        self._emit(result.summary())
        return result

    def _prepare_root(self, output_root: Path) -> Path:
        try:
            output_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoFailureError(
                f"Cannot create output directory {output_root}: {e}",
                path=str(output_root),
            ) from e

        if not output_root.is_dir():
            raise IoFailureError(f"Output path is not a directory: {output_root}", path=str(output_root))
        if not os.access(output_root, os.W_OK | os.X_OK):
            raise IoFailureError(f"Output directory is not writable: {output_root}", path=str(output_root))

        return output_root.resolve()

    def _plan(self, entries: Iterable[FileEntry], root: Path) -> List[_PlannedEntry]:
        planned = []

        for index, entry in enumerate(entries):
            try:
                target = self.resolve_target(root, entry.relative_path)
            except PathEscapeError as e:
                if self.strict:
                    logger.error(f"Aborting: {e}")
                    raise
                planned.append(_PlannedEntry(index, entry, error=e))
                continue
            planned.append(_PlannedEntry(index, entry, target=target))

        return planned

    @staticmethod
    def resolve_target(root: Path, relative_path: str) -> Path:
        """Map an entry path to an absolute path below ``root``.

        The string form is checked first, then the resolved path is checked
        again against the resolved root, which also catches symlinks that
        already exist in the output tree.

        Args:
            root: Resolved output root
            relative_path: Entry path as stored in the container

        Returns:
            Resolved target path

        Raises:
            PathEscapeError: If the entry would land outside ``root``
        """
        if is_escaping_path(relative_path):
            raise PathEscapeError(
                f"Entry path escapes the output root: {relative_path!r}",
                path=relative_path,
            )

        normalized = normalize_entry_path(relative_path)
        if not normalized:
            raise PathEscapeError(f"Entry path is empty: {relative_path!r}", path=relative_path)

        target = root.joinpath(*normalized.split("/")).resolve()
        if target == root or not target.is_relative_to(root):
            raise PathEscapeError(
                f"Entry path resolves outside the output root: {relative_path!r} -> {target}",
                path=relative_path,
            )

        return target

    def _run_sequential(
        self,
        planned: List[_PlannedEntry],
        view: memoryview,
        cancel_event: Optional[threading.Event],
    ) -> List[EntryOutcome]:
        outcomes = []
        for item in planned:
            if cancel_event is not None and cancel_event.is_set():
                break
            outcome = self._process(item, view)
            outcomes.append(outcome)
            self._emit_outcome(outcome)
        return outcomes

    def _run_pooled(
        self,
        planned: List[_PlannedEntry],
        root: Path,
        view: memoryview,
        cancel_event: Optional[threading.Event],
    ) -> List[EntryOutcome]:
        # Entries sharing a top-level name run in one task, in table order.
        # Duplicates and file/directory clashes such as "a" and "a/b" always
        # share that name, so they resolve exactly as a sequential run would.
        groups: Dict[str, List[_PlannedEntry]] = {}
        for item in planned:
            if item.target is None:
                key = f"#{item.index}"
            else:
                key = os.path.normcase(item.target.relative_to(root).parts[0])
            groups.setdefault(key, []).append(item)

        logger.debug(f"Extracting {len(groups)} group(s) with {self.workers} worker(s)")

        by_index: Dict[int, EntryOutcome] = {}
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="tmod-extract") as executor:
            futures = [
                executor.submit(self._run_group, group, view, cancel_event)
                for group in groups.values()
            ]
            for future in futures:
                for outcome in future.result():
                    by_index[outcome.index] = outcome

        outcomes = [by_index[index] for index in sorted(by_index)]
        for outcome in outcomes:
            self._emit_outcome(outcome)
        return outcomes

    def _run_group(
        self,
        group: List[_PlannedEntry],
        view: memoryview,
        cancel_event: Optional[threading.Event],
    ) -> List[EntryOutcome]:
        outcomes = []
        for item in group:
            if cancel_event is not None and cancel_event.is_set():
                break
            outcomes.append(self._process(item, view))
        return outcomes

    def _process(self, item: _PlannedEntry, view: memoryview) -> EntryOutcome:
        entry = item.entry
        if item.error is not None:
            return self._failure(item, item.error)

        try:
            data = self._entry_bytes(entry, view)
            item.target.parent.mkdir(parents=True, exist_ok=True)
            with open(item.target, "wb") as f:
                f.write(data)
        except (TModError, OSError) as e:
            return self._failure(item, e)

        return EntryOutcome(
            index=item.index,
            path=entry.relative_path,
            success=True,
            bytes_written=len(data),
        )

    def _entry_bytes(self, entry: FileEntry, view: memoryview) -> bytes | memoryview:
        start = entry.payload_offset
        end = start + entry.stored_length
        if end > len(view):
            raise SizeMismatchError(
                f"Entry needs payload bytes {start}..{end}, payload has {len(view)}",
                offset=start,
                region="payload",
            )

        chunk = view[start:end]
        if entry.is_compressed:
            data = self.inflater.inflate(chunk, expected_size=entry.uncompressed_length, offset=start)
        else:
            data = chunk

        if len(data) != entry.uncompressed_length:
            raise SizeMismatchError(
                f"Entry has {len(data)} bytes, expected {entry.uncompressed_length}",
                offset=start,
                region="payload",
            )
        return data

    def _failure(self, item: _PlannedEntry, error: Exception) -> EntryOutcome:
        kind = classify_error(error)
        if isinstance(error, OSError):
            message = f"{error.strerror or error}: {error.filename or item.target}"
        else:
            message = str(error)

        logger.debug(f"Entry {item.index} ({item.entry.relative_path}) failed: {message}")
        return EntryOutcome(
            index=item.index,
            path=item.entry.relative_path,
            success=False,
            error_kind=kind,
            message=message,
        )

    def _emit_outcome(self, outcome: EntryOutcome) -> None:
        if outcome.success:
            self._emit(EntryExtracted(path=outcome.path, bytes_written=outcome.bytes_written))
        else:
            self._emit(EntryFailed(path=outcome.path, error_kind=outcome.error_kind.value))

    def _emit(self, event) -> None:
        if self.event_sink is not None:
            self.event_sink(event)
