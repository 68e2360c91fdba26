"""Container header decoding."""

import logging
from dataclasses import dataclass, field

from packaging.specifiers import SpecifierSet
from packaging.version import InvalidVersion, Version

from tmod_extract.common import SHA1_DIGEST_SIZE
from .cursor import ByteCursor
from .errors import BadMagicError, UnexpectedEofError, UnsupportedVersionError

logger = logging.getLogger(__name__)

MAGIC = b"TMOD"
BUILD_HASH_SIZE = SHA1_DIGEST_SIZE
SIGNATURE_SIZE = 256

# Releases this reader has been checked against; others are read anyway
KNOWN_VERSIONS = SpecifierSet(">=0.8,<2100")


@dataclass(frozen=True)
class Header:
    """Fixed and length-prefixed fields preceding the payload."""
    magic: bytes
    version: str
    build_hash: bytes
    signature: bytes
    payload_length: int
    payload_start: int  # Offset of the payload in the container
    parsed_version: Version = field(compare=False)

    @property
    def build_hash_hex(self) -> str:
        return self.build_hash.hex()

    @property
    def signature_hex(self) -> str:
        return self.signature.hex()

    @property
    def is_signed(self) -> bool:
        """True if the signature field holds anything but zeros."""
        return any(self.signature)


class HeaderDecoder:
    """Decodes and validates the container header."""

    def __init__(self, known_versions: SpecifierSet = KNOWN_VERSIONS):
        """Initialize decoder.

        Args:
            known_versions: Versions accepted without a warning
        """
        self.known_versions = known_versions

    def decode(self, cursor: ByteCursor) -> Header:
        """Read the header from the cursor's current position.

        Args:
            cursor: Cursor positioned at the start of the container

        Returns:
            Validated header; the cursor is left at the payload

        Raises:
            BadMagicError: If the magic tag does not match
            UnsupportedVersionError: If the version string is not a version
            UnexpectedEofError: If the header or declared payload is cut short
            InvalidEncodingError: If the version string is malformed
        """
        magic_offset = cursor.position()
        magic = cursor.read_bytes(len(MAGIC))
        if magic != MAGIC:
            raise BadMagicError(
                f"Not a tmod container: expected magic {MAGIC!r}, found {magic!r}",
                offset=magic_offset,
                region=cursor.region,
            )
        logger.debug("TMOD magic found")

        version_offset = cursor.position()
        version = cursor.read_string()
        parsed_version = self._parse_version(version, version_offset, cursor.region)
        logger.debug(f"Container version: {version}")

        build_hash = cursor.read_bytes(BUILD_HASH_SIZE)
        logger.debug(f"Build hash: {build_hash.hex()}")

        signature = cursor.read_bytes(SIGNATURE_SIZE)
        logger.debug(f"Signature: {signature.hex()}")

        payload_length = cursor.read_u32()
        payload_start = cursor.position()
        logger.debug(f"Payload length: {payload_length}")

        if payload_length > cursor.remaining():
            raise UnexpectedEofError(
                f"Payload declares {payload_length} bytes, only {cursor.remaining()} present",
                offset=payload_start,
                region=cursor.region,
                needed=payload_length,
                available=cursor.remaining(),
            )

        return Header(
            magic=magic,
            version=version,
            build_hash=build_hash,
            signature=signature,
            payload_length=payload_length,
            payload_start=payload_start,
            parsed_version=parsed_version,
        )

    def _parse_version(self, version: str, offset: int, region: str) -> Version:
        try:
            parsed = Version(version)
        except InvalidVersion as e:
            raise UnsupportedVersionError(
                f"Unrecognized container version: {version!r}",
                offset=offset,
                region=region,
                version=version,
            ) from e

        if not self.known_versions.contains(parsed, prereleases=True):
            logger.warning(f"Container version {version} is outside the known range ({self.known_versions}), reading anyway")

        return parsed
