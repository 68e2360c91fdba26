"""Sequential, bounds-checked reader over an in-memory buffer.

All multi-byte integers are little-endian. Strings carry a 7-bit encoded
length prefix (the .NET ``BinaryWriter`` convention) followed by UTF-8.
"""

import struct

from .errors import UnexpectedEofError, InvalidEncodingError

_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

# A 7-bit encoded 32-bit integer never needs more than five bytes
MAX_7BIT_INT_BYTES = 5


class ByteCursor:
    """Reads fields one after another from a read-only buffer.

    Every read advances the position by exactly the bytes it consumed and
    raises instead of returning short data.
    """

    def __init__(self, data: bytes | bytearray | memoryview, region: str = "container") -> None:
        """Initialize cursor.

        Args:
            data: Buffer to read; it is borrowed, not copied
            region: Name of the buffer used in error offsets
        """
        self._view = memoryview(data)
        self._pos = 0
        self.region = region

    def position(self) -> int:
        """Current read offset."""
        return self._pos

    def remaining(self) -> int:
        """Number of unread bytes."""
        return len(self._view) - self._pos

    def _take(self, size: int) -> memoryview:
        if size < 0:
            raise ValueError(f"Read size must not be negative: {size}")

        available = self.remaining()
        if size > available:
            raise UnexpectedEofError(
                f"Unexpected end of {self.region}: needed {size} bytes, {available} available",
                offset=self._pos,
                region=self.region,
                needed=size,
                available=available,
            )

        chunk = self._view[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_u32(self) -> int:
        return _U32.unpack(self._take(4))[0]

    def read_u64(self) -> int:
        return _U64.unpack(self._take(8))[0]

    def read_fixed(self, size: int) -> memoryview:
        """Read a fixed-width field as a zero-copy slice."""
        return self._take(size)

    def read_bytes(self, size: int) -> bytes:
        """Read ``size`` bytes into a new ``bytes`` object."""
        return bytes(self._take(size))

    def read_7bit_int(self) -> int:
        """Read a 7-bit encoded unsigned integer (at most 32 bits)."""
        start = self._pos
        value = 0

        for index in range(MAX_7BIT_INT_BYTES):
            byte = self.read_u8()
            value |= (byte & 0x7F) << (7 * index)
            if not byte & 0x80:
                if value > 0xFFFFFFFF:
                    raise InvalidEncodingError(
                        f"7-bit encoded integer does not fit in 32 bits: {value}",
                        offset=start,
                        region=self.region,
                    )
                return value

        raise InvalidEncodingError(
            f"7-bit encoded integer is longer than {MAX_7BIT_INT_BYTES} bytes",
            offset=start,
            region=self.region,
        )

    def read_string(self) -> str:
        """Read a length-prefixed UTF-8 string."""
        length = self.read_7bit_int()
        data_start = self._pos
        raw = self._take(length)

        try:
            return bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidEncodingError(
                f"String is not valid UTF-8: {e.reason}",
                offset=data_start + e.start,
                region=self.region,
            ) from e
