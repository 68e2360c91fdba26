"""Shared fixtures: builds .tmod containers in memory for tests."""

import hashlib
import logging
import os
import struct
import zlib
from typing import Optional, Sequence, Tuple, Union

import pytest

FileSpec = Union[Tuple[str, bytes], Tuple[str, bytes, bool]]


def encode_7bit_int(value: int) -> bytes:
    """Encode an unsigned integer the way .NET BinaryWriter does."""
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_string(text: str) -> bytes:
    raw = text.encode("utf-8")
    return encode_7bit_int(len(raw)) + raw


def raw_deflate(data: bytes) -> bytes:
    compressor = zlib.compressobj(9, zlib.DEFLATED, -zlib.MAX_WBITS)
    return compressor.compress(data) + compressor.flush()


class TModBuilder:
    """Test-only container writer.

    ``files`` items are ``(path, content)`` or ``(path, content, compress)``.
    Layouts: "split_sizes" writes stored lengths, "legacy" does not.
    """

    def payload(
        self,
        files: Sequence[FileSpec],
        mod_name: str = "ExampleMod",
        mod_version: str = "1.0.0",
        layout: str = "split_sizes",
        compress_files: bool = False,
    ) -> bytes:
        """Build the inflated payload (metadata, table, bodies)."""
        table = bytearray()
        bodies = bytearray()

        for item in files:
            path, content = item[0], item[1]
            compress = item[2] if len(item) > 2 else compress_files
            stored = raw_deflate(content) if compress and layout == "split_sizes" else content

            table += encode_string(path)
            table += struct.pack("<I", len(content))
            if layout == "split_sizes":
                table += struct.pack("<I", len(stored))
            bodies += stored

        return (
            encode_string(mod_name)
            + encode_string(mod_version)
            + struct.pack("<I", len(files))
            + bytes(table)
            + bytes(bodies)
        )

    def container(
        self,
        files: Sequence[FileSpec] = (),
        version: str = "1.4",
        magic: bytes = b"TMOD",
        mod_name: str = "ExampleMod",
        mod_version: str = "1.0.0",
        layout: Optional[str] = None,
        compress_files: bool = False,
        payload: Optional[bytes] = None,
        build_hash: Optional[bytes] = None,
        signature: bytes = b"\x00" * 256,
        payload_length: Optional[int] = None,
    ) -> bytes:
        """Build a full container.

        ``payload`` replaces the inflated payload built from ``files``;
        the compressed segment is always derived from it. ``build_hash``
        defaults to the SHA-1 of the compressed segment.
        """
        if layout is None:
            layout = "legacy" if version.startswith("0.") and _before_split(version) else "split_sizes"
        if payload is None:
            payload = self.payload(files, mod_name, mod_version, layout, compress_files)

        segment = raw_deflate(payload)
        if build_hash is None:
            build_hash = hashlib.sha1(segment).digest()
        if payload_length is None:
            payload_length = len(segment)

        return (
            magic
            + encode_string(version)
            + build_hash
            + signature
            + struct.pack("<I", payload_length)
            + segment
        )

    def header_only(self, version: str = "1.4") -> bytes:
        """Everything up to and including the payload length field."""
        data = self.container([("a.txt", b"a")], version=version)
        return data[:4 + len(encode_string(version)) + 20 + 256 + 4]


def _before_split(version: str) -> bool:
    parts = [int(p) for p in version.split(".")[:2] if p.isdigit()]
    return len(parts) == 2 and parts[0] == 0 and parts[1] < 11


@pytest.fixture
def tmod_builder() -> TModBuilder:
    return TModBuilder()


@pytest.fixture
def output_root(tmp_path):
    """Extraction target inside a parent that tests can inspect for escapes."""
    root = tmp_path / "out"
    root.mkdir()
    return root


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Keep ConfigLoader away from real user, system and working-directory config."""
    home = tmp_path / "home"
    home.mkdir()
    workdir = tmp_path / "work"
    workdir.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(workdir)
    monkeypatch.setattr(
        "tmod_extract.common.config.platformdirs.user_config_dir",
        lambda appname=None, appauthor=None: str(home / "user-config"),
    )
    for key in list(os.environ):
        if key.startswith("TMOD_EXTRACT_"):
            monkeypatch.delenv(key)

    return workdir


@pytest.fixture
def deflate():
    return raw_deflate


@pytest.fixture
def encode():
    return encode_string


@pytest.fixture
def restore_root_logger():
    """Put the root logger back after code that calls setup_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
