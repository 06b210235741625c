"""
Open remote files and directories.

A RemoteFile or RemoteDir owns one server handle and releases it exactly once
on close(). Every other method checks the closed flag first, so a closed
object never touches the wire.
"""

import io
import logging
import posixpath

from .constants import OpenFlag
from .errors import StatusError
from .packets import Attributes
from .remote_fs import FileStats

logger = logging.getLogger(__name__)


class _HandleOwner:
    def __init__(self, client, handle: bytes, path: str):
        self._client = client
        self._handle = handle
        self.path = path
        self._closed = False

    @property
    def handle(self) -> bytes:
        return self._handle

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError(f"I/O operation on closed {self._kind}: {self.path}")

    def close(self) -> None:
        """Release the server handle. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing %s %s", self._kind, self.path)
        self._client._close_handle(self._handle)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{type(self).__name__} {self.path!r} {state}>"


class RemoteFile(_HandleOwner):
    """
    File opened on the server.

    Sequential reads and writes share one offset, advanced only by this
    object's own read/write calls. read_at/write_at neither use nor move it.
    Requests larger than the session's max_packet_size are split into
    several round trips.
    """

    _kind = "file"

    def __init__(self, client, handle: bytes, path: str, flags: OpenFlag):
        super().__init__(client, handle, path)
        self.flags = flags
        self._offset = 0
        self._max_packet = client.max_packet_size

    def readable(self) -> bool:
        return bool(self.flags & OpenFlag.READ)

    def writable(self) -> bool:
        return bool(self.flags & OpenFlag.WRITE)

    def tell(self) -> int:
        self._check_open()
        return self._offset

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Move the sequential offset. SEEK_END asks the server for the size."""
        self._check_open()
        if whence == io.SEEK_SET:
            position = offset
        elif whence == io.SEEK_CUR:
            position = self._offset + offset
        elif whence == io.SEEK_END:
            size = self.stat().size
            if size is None:
                raise OSError("server did not report a file size")
            position = size + offset
        else:
            raise ValueError(f"invalid whence ({whence})")
        if position < 0:
            raise ValueError(f"negative seek position {position}")
        self._offset = position
        return position

    def readinto(self, buffer) -> int:
        """
        Fill buffer from the current offset.

        Returns:
            Bytes read; 0 means end of file.
        """
        self._check_open()
        count = self._readinto_at(buffer, self._offset)
        self._offset += count
        return count

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes, or to end of file when size is negative."""
        self._check_open()
        if size is None or size < 0:
            data = self._readall(self._offset)
        else:
            buffer = bytearray(size)
            data = bytes(buffer[: self._readinto_at(buffer, self._offset)])
        self._offset += len(data)
        return data

    def readinto_at(self, buffer, offset: int) -> int:
        """Fill buffer starting at offset. Returns 0 at or past end of file."""
        self._check_open()
        return self._readinto_at(buffer, offset)

    def read_at(self, size: int, offset: int) -> bytes:
        """Read up to size bytes at offset; b"" at or past end of file."""
        self._check_open()
        buffer = bytearray(size)
        return bytes(buffer[: self._readinto_at(buffer, offset)])

    def _readinto_at(self, buffer, offset: int) -> int:
        view = memoryview(buffer).cast("B")
        total = 0
        while total < len(view):
            length = min(len(view) - total, self._max_packet)
            data = self._client._read_chunk(self._handle, offset + total, length)
            if not data:
                break
            view[total : total + len(data)] = data
            total += len(data)
        return total

    def _readall(self, offset: int) -> bytes:
        chunks = []
        while True:
            data = self._client._read_chunk(self._handle, offset, self._max_packet)
            if not data:
                return b"".join(chunks)
            chunks.append(data)
            offset += len(data)

    def write(self, data) -> int:
        """
        Write data at the current offset.

        Returns:
            len(data). An empty buffer writes nothing and sends nothing.

        Raises:
            StatusError: On failure; its bytes_written tells how much of data
                the server confirmed before the failing chunk. The offset is
                advanced by that amount.
        """
        self._check_open()
        try:
            count = self._write_at(data, self._offset)
        except StatusError as e:
            self._offset += e.bytes_written
            raise
        self._offset += count
        return count

    def write_at(self, data, offset: int) -> int:
        """Write data at offset without touching the sequential offset."""
        self._check_open()
        return self._write_at(data, offset)

    def _write_at(self, data, offset: int) -> int:
        view = memoryview(data).cast("B")
        written = 0
        try:
            while written < len(view):
                chunk = view[written : written + self._max_packet]
                self._client._write_chunk(self._handle, offset + written, chunk.tobytes())
                written += len(chunk)
        except StatusError as e:
            e.bytes_written = written
            raise
        return written

    def stat(self) -> FileStats:
        """Attributes of the open file (FSTAT)."""
        self._check_open()
        attrs = self._client._fstat(self._handle)
        return FileStats.from_attrs(posixpath.basename(self.path), attrs)

    def setstat(self, attrs: Attributes) -> None:
        self._check_open()
        self._client._fsetstat(self._handle, attrs)

    def chmod(self, mode: int) -> None:
        self.setstat(Attributes(permissions=mode))

    def truncate(self, size: int | None = None) -> int:
        """Set the file size; defaults to the current offset like io objects."""
        self._check_open()
        if size is None:
            size = self._offset
        self._client._fsetstat(self._handle, Attributes(size=size))
        return size


class RemoteDir(_HandleOwner):
    """
    Directory opened on the server.

    Entries come in batches; iterating yields them one by one until the
    server reports end of directory. Restart by opening the directory again.
    """

    _kind = "directory"

    def __init__(self, client, handle: bytes, path: str):
        super().__init__(client, handle, path)
        self._exhausted = False

    def readdir(self) -> list[FileStats]:
        """
        Fetch the next batch of entries, "." and ".." excluded.

        Returns:
            A non-empty list, or [] once the directory is exhausted.
        """
        self._check_open()
        while not self._exhausted:
            try:
                entries = self._client.readdir(self._handle)
            except EOFError:
                self._exhausted = True
                break
            batch = [
                FileStats.from_attrs(entry.filename, entry.attrs)
                for entry in entries
                if entry.filename not in (".", "..")
            ]
            if batch:
                return batch
        return []

    def __iter__(self):
        while True:
            batch = self.readdir()
            if not batch:
                return
            yield from batch
