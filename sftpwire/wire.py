"""
Low level field encoding and framing for the SFTP wire format.

Every frame is a 4-byte big-endian length followed by that many bytes.
Integers are fixed-width big-endian and strings are a uint32 length followed
by raw bytes.
"""

import logging
import struct

from .errors import BadMessageError

logger = logging.getLogger(__name__)

UINT32_MAX = 0xFFFFFFFF
UINT64_MAX = 0xFFFFFFFFFFFFFFFF

_UINT8 = struct.Struct("!B")
_UINT32 = struct.Struct("!I")
_UINT64 = struct.Struct("!Q")

NAME_ENCODING = "utf-8"
NAME_ERRORS = "surrogateescape"


class PacketWriter:
    """Accumulates encoded fields for one packet body."""

    def __init__(self):
        self._buf = bytearray()

    def _pack(self, packer: struct.Struct, value: int, what: str) -> "PacketWriter":
        try:
            self._buf += packer.pack(value)
        except struct.error as e:
            raise ValueError(f"{what} out of range: {value!r}") from e
        return self

    def uint8(self, value: int) -> "PacketWriter":
        return self._pack(_UINT8, value, "uint8")

    def uint32(self, value: int) -> "PacketWriter":
        return self._pack(_UINT32, value, "uint32")

    def uint64(self, value: int) -> "PacketWriter":
        return self._pack(_UINT64, value, "uint64")

    def string(self, value: bytes | str) -> "PacketWriter":
        if isinstance(value, str):
            value = value.encode(NAME_ENCODING, NAME_ERRORS)
        self._buf += _UINT32.pack(len(value))
        self._buf += value
        return self

    def raw(self, value: bytes) -> "PacketWriter":
        self._buf += value
        return self

    def body(self) -> bytes:
        return bytes(self._buf)

    def frame(self) -> bytes:
        """Return the body with its length prefix."""
        return _UINT32.pack(len(self._buf)) + bytes(self._buf)


class PacketReader:
    """
    Sequential reader over one packet body.

    Reads never run past the end of the buffer: a field that does not fit in
    the remaining bytes raises BadMessageError.
    """

    def __init__(self, data: bytes):
        self._data = memoryview(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def _take(self, size: int, what: str) -> bytes:
        if size > self.remaining:
            raise BadMessageError(
                f"short packet reading {what}: need {size} bytes, have {self.remaining}"
            )
        chunk = self._data[self._pos : self._pos + size].tobytes()
        self._pos += size
        return chunk

    def uint8(self) -> int:
        return _UINT8.unpack(self._take(1, "uint8"))[0]

    def uint32(self) -> int:
        return _UINT32.unpack(self._take(4, "uint32"))[0]

    def uint64(self) -> int:
        return _UINT64.unpack(self._take(8, "uint64"))[0]

    def string(self) -> bytes:
        length = self.uint32()
        return self._take(length, "string")

    def name(self) -> str:
        return self.string().decode(NAME_ENCODING, NAME_ERRORS)

    def rest(self) -> bytes:
        return self._take(self.remaining, "payload")


def read_exactly(stream, size: int) -> bytes:
    """
    Read exactly size bytes from a stream.

    Raises:
        EOFError: If the stream ends before size bytes arrive.
    """
    chunks = []
    needed = size
    while needed > 0:
        chunk = stream.read(needed)
        if not chunk:
            raise EOFError(f"stream closed after {size - needed} of {size} bytes")
        chunks.append(chunk)
        needed -= len(chunk)
    return b"".join(chunks)


def read_frame(stream, max_size: int) -> bytes:
    """
    Read one length-prefixed frame and return its body.

    Args:
        stream: Object with a read(n) method.
        max_size: Largest body accepted.

    Returns:
        The frame body (type tag onwards).

    Raises:
        EOFError: If the stream ends mid-frame or before one starts.
        BadMessageError: If the length is zero or larger than max_size.
    """
    (length,) = _UINT32.unpack(read_exactly(stream, 4))
    if length == 0:
        raise BadMessageError("zero length frame")
    if length > max_size:
        raise BadMessageError(f"frame of {length} bytes exceeds limit of {max_size}")
    return read_exactly(stream, length)


def unframe(data: bytes) -> bytes:
    """Strip and validate the length prefix of a complete frame held in memory."""
    if len(data) < 4:
        raise BadMessageError(f"frame too short: {len(data)} bytes")
    (length,) = _UINT32.unpack_from(data, 0)
    if length != len(data) - 4:
        raise BadMessageError(
            f"frame length {length} does not match {len(data) - 4} bytes of payload"
        )
    return data[4:]
