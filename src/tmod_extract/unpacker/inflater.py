"""Raw deflate decompression with size enforcement."""

import logging
import zlib
from typing import Optional

from .errors import CorruptStreamError, SizeMismatchError

logger = logging.getLogger(__name__)

# Ceiling for streams whose size is not declared up front (1 GiB)
DEFAULT_MAX_INFLATED_SIZE = 1 << 30


class BlockInflater:
    """Inflates raw deflate segments (no zlib or gzip wrapper)."""

    def __init__(self, max_inflated_size: int = DEFAULT_MAX_INFLATED_SIZE):
        """Initialize inflater.

        Args:
            max_inflated_size: Output limit when no expected size is given
        """
        self.max_inflated_size = max_inflated_size

    def inflate(
        self,
        data: bytes | memoryview,
        expected_size: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> bytes:
        """Decompress one complete deflate stream.

        Output is capped one byte past the allowed size, so an oversized
        stream is detected without inflating all of it.

        Args:
            data: Compressed stream
            expected_size: Exact decompressed size, if known
            offset: Offset of ``data`` in its buffer, for error reports

        Returns:
            Decompressed bytes

        Raises:
            CorruptStreamError: If the stream is malformed, truncated or
                followed by trailing bytes
            SizeMismatchError: If the output size differs from
                ``expected_size`` or exceeds the configured maximum
        """
        limit = expected_size if expected_size is not None else self.max_inflated_size
        decompressor = zlib.decompressobj(-zlib.MAX_WBITS)

        try:
            raw = decompressor.decompress(data, limit + 1)
        except zlib.error as e:
            raise CorruptStreamError(f"Malformed deflate stream: {e}", offset=offset) from e

        if len(raw) > limit:
            if expected_size is not None:
                raise SizeMismatchError(
                    f"Stream inflates past its declared size of {expected_size} bytes",
                    offset=offset,
                    expected=expected_size,
                )
            raise SizeMismatchError(
                f"Stream inflates past the {self.max_inflated_size} byte limit",
                offset=offset,
                limit=self.max_inflated_size,
            )

        if not decompressor.eof:
            raise CorruptStreamError(
                f"Deflate stream is truncated after {len(raw)} bytes of output",
                offset=offset,
            )

        if decompressor.unused_data:
            raise CorruptStreamError(
                f"{len(decompressor.unused_data)} trailing bytes after end of deflate stream",
                offset=offset,
            )

        if expected_size is not None and len(raw) != expected_size:
            raise SizeMismatchError(
                f"Stream inflated to {len(raw)} bytes, expected {expected_size}",
                offset=offset,
                expected=expected_size,
                actual=len(raw),
            )

        logger.debug(f"Inflated {len(data)} bytes to {len(raw)} bytes")
        return raw
