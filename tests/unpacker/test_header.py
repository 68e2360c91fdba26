"""Tests for container header decoding."""

import logging

import pytest
from packaging.version import Version

from tmod_extract.unpacker.cursor import ByteCursor
from tmod_extract.unpacker.errors import (
    BadMagicError,
    InvalidEncodingError,
    UnexpectedEofError,
    UnsupportedVersionError,
)
from tmod_extract.unpacker.header import HeaderDecoder, MAGIC, SIGNATURE_SIZE


class TestHeaderDecoder:
    """Tests for HeaderDecoder.decode."""

    def test_decode_valid_header(self, tmod_builder):
        """Test decoding all header fields."""
        signature = bytes(range(256))
        data = tmod_builder.container([("info.json", b"hello world")], version="1.4", signature=signature)
        cursor = ByteCursor(data)

        header = HeaderDecoder().decode(cursor)

        assert header.magic == MAGIC
        assert header.version == "1.4"
        assert header.parsed_version == Version("1.4")
        assert len(header.build_hash) == 20
        assert header.signature == signature
        assert header.is_signed is True
        assert header.payload_start == cursor.position()
        assert header.payload_length == cursor.remaining()

    def test_hex_accessors(self, tmod_builder):
        """Test that hash and signature are exposed as hex."""
        data = tmod_builder.container([("a", b"a")], build_hash=b"\xab" * 20)
        header = HeaderDecoder().decode(ByteCursor(data))
        assert header.build_hash_hex == "ab" * 20
        assert header.signature_hex == "00" * SIGNATURE_SIZE
        assert header.is_signed is False

    def test_bad_magic(self, tmod_builder):
        """Test that a wrong magic tag fails before anything else is read."""
        data = tmod_builder.container([("info.json", b"hello world")], magic=b"TMOX")
        cursor = ByteCursor(data)

        with pytest.raises(BadMagicError) as exc_info:
            HeaderDecoder().decode(cursor)

        assert exc_info.value.offset == 0
        assert cursor.position() == 4

    def test_unparseable_version(self, tmod_builder):
        """Test that a non-version string is rejected."""
        data = tmod_builder.container([("a", b"a")], version="not a version")
        with pytest.raises(UnsupportedVersionError) as exc_info:
            HeaderDecoder().decode(ByteCursor(data))
        assert exc_info.value.offset == 4

    def test_unknown_but_parseable_version_is_accepted(self, tmod_builder, caplog):
        """Test that versions outside the known range only log a warning."""
        data = tmod_builder.container([("a", b"a")], version="9999.1")

        with caplog.at_level(logging.WARNING, logger="tmod_extract.unpacker.header"):
            header = HeaderDecoder().decode(ByteCursor(data))

        assert header.version == "9999.1"
        assert "outside the known range" in caplog.text

    def test_date_based_version(self, tmod_builder):
        """Test four-part date-based versions."""
        data = tmod_builder.container([("a", b"a")], version="2024.5.3.0")
        header = HeaderDecoder().decode(ByteCursor(data))
        assert header.parsed_version == Version("2024.5.3.0")

    def test_invalid_utf8_version(self):
        """Test that a malformed version string is an encoding error."""
        data = MAGIC + b"\x02\xc3\x28" + b"\x00" * 300
        with pytest.raises(InvalidEncodingError):
            HeaderDecoder().decode(ByteCursor(data))

    def test_payload_length_exceeds_data(self, tmod_builder):
        """Test that a declared payload longer than the file fails."""
        data = tmod_builder.container([("a", b"a")], payload_length=10_000)
        with pytest.raises(UnexpectedEofError):
            HeaderDecoder().decode(ByteCursor(data))


class TestTruncatedHeader:
    """Truncation anywhere in the header must fail cleanly."""

    def test_every_truncation_point(self, tmod_builder):
        """Test that every prefix of the header fails with UnexpectedEofError."""
        header_bytes = tmod_builder.header_only()

        for cut in range(len(header_bytes)):
            with pytest.raises(UnexpectedEofError):
                HeaderDecoder().decode(ByteCursor(header_bytes[:cut]))

    def test_empty_input(self):
        """Test decoding an empty buffer."""
        with pytest.raises(UnexpectedEofError):
            HeaderDecoder().decode(ByteCursor(b""))
