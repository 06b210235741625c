"""
SFTP client operation layer.

Each public method builds one request, sends it through the session's
dispatcher, and turns the reply into a return value or an exception.
Methods are safe to call from several threads at once; each thread waits
only for its own reply.
"""

import logging
import posixpath
import threading
from functools import partial

from . import packets
from .config import SessionConfig
from .constants import OpenFlag, StatusCode
from .errors import BadMessageError, NoConnectionError, StatusError, status_to_error
from .file import RemoteDir, RemoteFile
from .packets import Attributes, NameEntry, Packet
from .remote_fs import FileStats
from .session import Session
from .walk import Walker

logger = logging.getLogger(__name__)


def _raise_for_status(status: packets.Status, eof_is_error: bool = True) -> None:
    error = status_to_error(status)
    if error is None:
        return
    if isinstance(error, EOFError) and eof_is_error:
        raise StatusError(StatusCode.EOF, status.message, status.lang)
    raise error


def _expect(response: Packet, kind: type, eof_is_error: bool = True):
    """Return response if it is of the wanted kind, raise otherwise."""
    if isinstance(response, kind):
        return response
    if isinstance(response, packets.Status):
        _raise_for_status(response, eof_is_error)
        raise BadMessageError(f"expected {kind.TYPE.name}, got OK status")
    raise BadMessageError(f"expected {kind.TYPE.name}, got {response.TYPE.name}")


def _expect_ok(response: Packet) -> None:
    if not isinstance(response, packets.Status):
        raise BadMessageError(f"expected STATUS, got {response.TYPE.name}")
    _raise_for_status(response)


def _basename(path: str) -> str:
    return posixpath.basename(path.rstrip("/")) or path


class SFTPClient:
    """
    Client for one SFTP connection.

    The stream is anything with read(n), write(data) and close(); see
    sftpwire.transport for ready-made ones. The client owns the stream from
    connect() on and closes it on disconnect() or a failed handshake.
    """

    def __init__(self, stream, config: SessionConfig | None = None):
        self.config = config or SessionConfig()
        self._stream = stream
        self._session: Session | None = None
        self._lock = threading.Lock()

    @classmethod
    def open_session(cls, stream, config: SessionConfig | None = None) -> "SFTPClient":
        """Create a client and perform the handshake."""
        client = cls(stream, config)
        client.connect()
        return client

    def connect(self) -> None:
        """Negotiate the protocol version. No-op when already connected."""
        with self._lock:
            if self._session is not None:
                return
            self._session = Session.open(self._stream, self.config)

    def disconnect(self) -> None:
        """Close the session and its stream; pending requests fail."""
        with self._lock:
            session = self._session
        if session is not None:
            session.close()

    close = disconnect

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    @property
    def session(self) -> Session:
        if self._session is None:
            raise NoConnectionError(StatusCode.NO_CONNECTION, "not connected")
        return self._session

    @property
    def version(self) -> int:
        return self.session.version

    @property
    def extensions(self) -> dict[str, bytes]:
        return self.session.extensions

    @property
    def max_packet_size(self) -> int:
        return self.config.max_packet_size

    def _request(self, build) -> Packet:
        return self.session.dispatcher.send(build)

    # Files

    def open(self, path: str) -> RemoteFile:
        """Open a file for reading."""
        return self.open_file(path, OpenFlag.READ)

    def create(self, path: str) -> RemoteFile:
        """Open a file for reading and writing, creating or truncating it."""
        return self.open_file(
            path, OpenFlag.READ | OpenFlag.WRITE | OpenFlag.CREAT | OpenFlag.TRUNC
        )

    def open_file(
        self, path: str, flags: OpenFlag, attrs: Attributes | None = None
    ) -> RemoteFile:
        """
        Open a file with explicit SSH_FXF_* flags.

        Args:
            path: Remote path.
            flags: OpenFlag combination.
            attrs: Initial attributes for newly created files.

        Returns:
            RemoteFile owning the server handle.
        """
        logger.debug("Opening %s (flags=%s)", path, flags)
        response = self._request(
            partial(packets.Open, path=path, pflags=flags, attrs=attrs or Attributes())
        )
        handle = _expect(response, packets.Handle).handle
        return RemoteFile(self, handle, path, flags)

    def _close_handle(self, handle: bytes) -> None:
        _expect_ok(self._request(partial(packets.Close, handle=handle)))

    def _read_chunk(self, handle: bytes, offset: int, length: int) -> bytes:
        """One READ round trip. Returns b"" at end of file."""
        response = self._request(
            partial(packets.Read, handle=handle, offset=offset, length=length)
        )
        try:
            data = _expect(response, packets.Data, eof_is_error=False).data
        except EOFError:
            return b""
        if len(data) > length:
            raise BadMessageError(f"asked for {length} bytes, server sent {len(data)}")
        return data

    def _write_chunk(self, handle: bytes, offset: int, data: bytes) -> None:
        _expect_ok(
            self._request(partial(packets.Write, handle=handle, offset=offset, data=data))
        )

    def _fstat(self, handle: bytes) -> Attributes:
        return _expect(self._request(partial(packets.Fstat, handle=handle)), packets.Attrs).attrs

    def _fsetstat(self, handle: bytes, attrs: Attributes) -> None:
        _expect_ok(self._request(partial(packets.Fsetstat, handle=handle, attrs=attrs)))

    # Paths

    def remove(self, path: str) -> None:
        logger.debug("Removing %s", path)
        _expect_ok(self._request(partial(packets.Remove, path=path)))

    def rename(self, old_path: str, new_path: str) -> None:
        logger.debug("Renaming %s -> %s", old_path, new_path)
        _expect_ok(
            self._request(partial(packets.Rename, old_path=old_path, new_path=new_path))
        )

    def mkdir(self, path: str, mode: int | None = None) -> None:
        logger.debug("Creating directory %s", path)
        attrs = Attributes(permissions=mode)
        _expect_ok(self._request(partial(packets.Mkdir, path=path, attrs=attrs)))

    def rmdir(self, path: str) -> None:
        logger.debug("Removing directory %s", path)
        _expect_ok(self._request(partial(packets.Rmdir, path=path)))

    def stat(self, path: str) -> FileStats:
        """Metadata for path, following symlinks."""
        response = self._request(partial(packets.Stat, path=path))
        return FileStats.from_attrs(_basename(path), _expect(response, packets.Attrs).attrs)

    def lstat(self, path: str) -> FileStats:
        """Metadata for path itself, not its symlink target."""
        response = self._request(partial(packets.Lstat, path=path))
        return FileStats.from_attrs(_basename(path), _expect(response, packets.Attrs).attrs)

    def setstat(self, path: str, attrs: Attributes) -> None:
        _expect_ok(self._request(partial(packets.Setstat, path=path, attrs=attrs)))

    def chmod(self, path: str, mode: int) -> None:
        self.setstat(path, Attributes(permissions=mode))

    def chown(self, path: str, uid: int, gid: int) -> None:
        self.setstat(path, Attributes(uid=uid, gid=gid))

    def utime(self, path: str, atime: int, mtime: int) -> None:
        self.setstat(path, Attributes(atime=int(atime), mtime=int(mtime)))

    def truncate(self, path: str, size: int) -> None:
        self.setstat(path, Attributes(size=size))

    def readlink(self, path: str) -> str:
        entries = _expect(self._request(partial(packets.Readlink, path=path)), packets.Name).entries
        if len(entries) != 1:
            raise BadMessageError(f"READLINK returned {len(entries)} names, expected 1")
        return entries[0].filename

    def symlink(self, target_path: str, link_path: str) -> None:
        """Create link_path pointing at target_path."""
        _expect_ok(
            self._request(
                partial(packets.Symlink, target_path=target_path, link_path=link_path)
            )
        )

    def realpath(self, path: str) -> str:
        entries = _expect(self._request(partial(packets.Realpath, path=path)), packets.Name).entries
        if len(entries) != 1:
            raise BadMessageError(f"REALPATH returned {len(entries)} names, expected 1")
        return entries[0].filename

    # Directories

    def opendir(self, path: str) -> RemoteDir:
        logger.debug("Opening directory %s", path)
        handle = _expect(self._request(partial(packets.Opendir, path=path)), packets.Handle).handle
        return RemoteDir(self, handle, path)

    def readdir(self, handle: bytes) -> list[NameEntry]:
        """
        One READDIR round trip on an open directory handle.

        Raises:
            EOFError: The directory has no more entries.
        """
        response = self._request(partial(packets.Readdir, handle=handle))
        return _expect(response, packets.Name, eof_is_error=False).entries

    def listdir(self, path: str):
        """
        Yield FileStats for each entry of path, "." and ".." excluded.

        The directory is opened on first iteration and closed when the
        generator finishes or is closed.
        """
        with self.opendir(path) as directory:
            yield from directory

    def walk(self, root: str, stop_on_error: bool = False) -> Walker:
        """Depth-first walk of the tree under root."""
        return Walker(self, root, stop_on_error=stop_on_error)
