"""Checksum utilities for container integrity verification."""

import hashlib

# Width of the build hash stored in container headers
SHA1_DIGEST_SIZE = 20


def compute_sha1(data: bytes | memoryview) -> bytes:
    """
    Compute the SHA-1 digest of an in-memory buffer.

    Used for:
    - Build hash verification (container payload)

    Args:
        data: Bytes to hash

    Returns:
        20-byte digest
    """
    return hashlib.sha1(data).digest()


def compute_sha1_hex(data: bytes | memoryview) -> str:
    """
    Compute the SHA-1 digest of an in-memory buffer as hex string.

    Args:
        data: Bytes to hash

    Returns:
        40-character lowercase hex string
    """
    return compute_sha1(data).hex()
