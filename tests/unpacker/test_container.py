"""End-to-end tests for decoding and extracting whole containers."""

import hashlib
import logging

import pytest

from tmod_extract.unpacker.container import (
    TModUnpacker,
    extract_container,
    open_container,
    read_container,
)
from tmod_extract.unpacker.errors import (
    BadMagicError,
    CountOverflowError,
    CorruptStreamError,
    DecodeError,
    HashMismatchError,
    InvalidPathError,
    IoFailureError,
    PathEscapeError,
    SizeMismatchError,
)
from tmod_extract.unpacker.events import HeaderParsed, ManifestParsed, RecordingEventSink, RunSummary
from tmod_extract.unpacker.manifest import TableLayout


class TestOpen:
    """Tests for TModUnpacker.open."""

    def test_example_mod(self, tmod_builder, output_root):
        """Test a single-file container extracts to exactly its bytes."""
        data = tmod_builder.container([("info.json", b"hello world")], version="1.4")
        unpacker = TModUnpacker()

        container = unpacker.open(data)
        result = unpacker.extract(container, output_root)

        assert container.metadata.name == "ExampleMod"
        assert container.metadata.version == "1.0.0"
        assert container.layout is TableLayout.SPLIT_SIZES
        assert [entry.relative_path for entry in container.entries] == ["info.json"]
        assert result.succeeded
        assert (output_root / "info.json").read_bytes() == b"hello world"

    def test_bad_magic_produces_no_output(self, tmod_builder, output_root):
        """Test that a wrong magic tag fails before anything is written."""
        data = tmod_builder.container([("info.json", b"hello world")], magic=b"TMOX")

        with pytest.raises(BadMagicError):
            TModUnpacker().open(data)

        assert list(output_root.iterdir()) == []

    def test_legacy_container(self, tmod_builder, output_root):
        """Test that pre-0.11 containers use the legacy table layout."""
        data = tmod_builder.container(
            [("Info", b"author = someone"), ("Items/Sword.png", b"\x89PNG")],
            version="0.10.1.5",
        )
        unpacker = TModUnpacker()

        container = unpacker.open(data)
        unpacker.extract(container, output_root)

        assert container.layout is TableLayout.LEGACY
        assert (output_root / "Items" / "Sword.png").read_bytes() == b"\x89PNG"

    def test_compressed_entries(self, tmod_builder, output_root):
        """Test entries that are deflated inside the inflated payload."""
        content = b"{ \"key\": \"value\" }\n" * 64
        data = tmod_builder.container([("big.json", content), ("small.txt", b"s")], compress_files=True)
        unpacker = TModUnpacker()

        container = unpacker.open(data)
        unpacker.extract(container, output_root)

        assert container.entries[0].is_compressed
        assert (output_root / "big.json").read_bytes() == content

    def test_empty_container(self, tmod_builder, output_root):
        """Test a container with no entries."""
        unpacker = TModUnpacker()
        container = unpacker.open(tmod_builder.container([]))
        result = unpacker.extract(container, output_root)

        assert container.entries == ()
        assert result.succeeded
        assert result.files_written == 0

    def test_events(self, tmod_builder, output_root):
        """Test that header and manifest events precede extraction events."""
        sink = RecordingEventSink()
        unpacker = TModUnpacker(event_sink=sink)
        data = tmod_builder.container([("a.txt", b"abc")], build_hash=b"\x01" * 20)

        unpacker.extract(unpacker.open(data), output_root)

        assert sink.events[0] == HeaderParsed(version="1.4", build_hash="01" * 20)
        assert sink.events[1] == ManifestParsed(name="ExampleMod", version="1.0.0", entry_count=1)
        assert sink.events[-1] == RunSummary(files_written=1, bytes_written=3, failures=0)

    def test_trailing_bytes_are_ignored(self, tmod_builder, caplog):
        """Test that data after the payload only logs a warning."""
        data = tmod_builder.container([("a.txt", b"a")]) + b"\x00" * 7

        with caplog.at_level(logging.WARNING, logger="tmod_extract.unpacker.container"):
            container = TModUnpacker().open(data)

        assert len(container.entries) == 1
        assert "7 byte(s) after the payload" in caplog.text

    def test_corrupt_payload(self, tmod_builder):
        """Test that an undecodable payload is a CorruptStreamError."""
        data = tmod_builder.container([("a.txt", b"a")], payload_length=4)
        header = data[:len(tmod_builder.header_only())]
        with pytest.raises(CorruptStreamError):
            TModUnpacker().open(header + b"\xff\xff\xff\xff")

    def test_every_truncation_fails_cleanly(self, tmod_builder):
        """Test that no prefix of a container decodes or crashes."""
        data = tmod_builder.container([("a.txt", b"hello"), ("b/c.txt", b"world" * 10, True)])
        for cut in range(len(data)):
            with pytest.raises(DecodeError):
                TModUnpacker().open(data[:cut])

    def test_max_inflated_size(self, tmod_builder):
        """Test that payloads inflating past the limit are rejected."""
        data = tmod_builder.container([("zeros.bin", b"\x00" * 100_000)])
        with pytest.raises(SizeMismatchError):
            TModUnpacker(max_inflated_size=10_000).open(data)


class TestBuildHash:
    """Tests for optional build hash verification."""

    def test_matching_hash(self, tmod_builder):
        """Test that a correct hash verifies."""
        data = tmod_builder.container([("a.txt", b"a")])
        assert TModUnpacker(verify_hash=True).open(data).header.build_hash

    def test_mismatched_hash(self, tmod_builder):
        """Test that a wrong hash fails when verification is on."""
        data = tmod_builder.container([("a.txt", b"a")], build_hash=b"\x00" * 20)
        with pytest.raises(HashMismatchError) as exc_info:
            TModUnpacker(verify_hash=True).open(data)

        segment = data[len(tmod_builder.header_only()):]
        assert f"Payload hash {hashlib.sha1(segment).hexdigest()}" in exc_info.value.message
        assert exc_info.value.message.endswith("00" * 20)

    def test_hash_not_checked_by_default(self, tmod_builder):
        """Test that a wrong hash is accepted without verification."""
        data = tmod_builder.container([("a.txt", b"a")], build_hash=b"\x00" * 20)
        assert len(TModUnpacker().open(data).entries) == 1


class TestStrictMode:
    """Tests for strict handling of unsafe paths."""

    def test_lenient_reports_escape(self, tmod_builder, output_root):
        """Test that a traversal entry fails alone in lenient mode."""
        data = tmod_builder.container([("../../etc/passwd", b"x"), ("ok.txt", b"ok")])
        unpacker = TModUnpacker()

        result = unpacker.extract(unpacker.open(data), output_root)

        assert result.files_written == 1
        assert result.failures[0].path == "../../etc/passwd"

    def test_strict_rejects_while_parsing(self, tmod_builder):
        """Test that strict mode refuses traversal paths while decoding."""
        data = tmod_builder.container([("../../etc/passwd", b"x")])
        with pytest.raises(InvalidPathError):
            TModUnpacker(strict=True).open(data)

    def test_strict_extract_of_lenient_container(self, tmod_builder, output_root):
        """Test that a strict extractor aborts on an escaping entry."""
        container = TModUnpacker().open(tmod_builder.container([("../x", b"x")]))
        with pytest.raises(PathEscapeError):
            TModUnpacker(strict=True).extract(container, output_root)


class TestRun:
    """Tests for reading from and extracting to disk."""

    def test_run(self, tmod_builder, tmp_path):
        """Test reading a file and extracting it."""
        source = tmp_path / "ExampleMod.tmod"
        source.write_bytes(tmod_builder.container([("info.json", b"hello world")]))

        container, result = TModUnpacker(workers=2).run(source, tmp_path / "out")

        assert container.metadata.name == "ExampleMod"
        assert result.succeeded
        assert (tmp_path / "out" / "info.json").read_bytes() == b"hello world"

    def test_missing_input(self, tmp_path):
        """Test that a missing input file is an IoFailureError."""
        with pytest.raises(IoFailureError):
            TModUnpacker().read(tmp_path / "missing.tmod")

    def test_from_config(self):
        """Test building an unpacker from config values."""
        from tmod_extract.unpacker.config import ExtractionConfig

        unpacker = TModUnpacker.from_config(ExtractionConfig(strict=True, workers=3, max_entries=5))

        assert unpacker.extractor.strict is True
        assert unpacker.extractor.workers == 3
        assert unpacker.manifest_parser.max_entries == 5
        assert unpacker.manifest_parser.reject_unsafe_paths is True


class TestModuleFunctions:
    """Tests for the function-style entry points."""

    def test_open_and_extract(self, tmod_builder, output_root):
        """Test open_container followed by extract_container."""
        sink = RecordingEventSink()
        container = open_container(tmod_builder.container([("info.json", b"hello world")]), event_sink=sink)

        result = extract_container(container, output_root, workers=2)

        assert result.succeeded
        assert (output_root / "info.json").read_bytes() == b"hello world"
        assert [type(event) for event in sink.events] == [HeaderParsed, ManifestParsed]

    def test_read_container(self, tmod_builder, tmp_path):
        """Test that keyword options are passed through when reading a file."""
        source = tmp_path / "ExampleMod.tmod"
        source.write_bytes(tmod_builder.container([("a.txt", b"a"), ("b.txt", b"b")]))

        with pytest.raises(CountOverflowError):
            read_container(source, max_entries=1)

    def test_reject_unsafe_paths(self, tmod_builder):
        """Test that unsafe paths can be rejected while decoding."""
        data = tmod_builder.container([("../x", b"x")])
        with pytest.raises(InvalidPathError):
            open_container(data, reject_unsafe_paths=True)

    def test_strict_extract(self, tmod_builder, output_root):
        """Test strict extraction through extract_container."""
        container = open_container(tmod_builder.container([("../x", b"x")]))
        with pytest.raises(PathEscapeError):
            extract_container(container, output_root, strict=True)
