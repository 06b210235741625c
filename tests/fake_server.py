"""
In-process SFTP v3 server used by the test suite.

Serves the local filesystem (paths are used as given, like OpenSSH's
sftp-server) over one end of a socket pair, using sftpwire's own codec.
Requests are answered one at a time in arrival order.
"""

import errno
import logging
import os
import threading

from sftpwire.constants import SFTP_VERSION, OpenFlag, StatusCode
from sftpwire.packets import (
    Attributes,
    Attrs,
    Close,
    Data,
    Fsetstat,
    Fstat,
    Handle,
    Init,
    Lstat,
    Mkdir,
    Name,
    NameEntry,
    Open,
    Opendir,
    Read,
    Readdir,
    Readlink,
    Realpath,
    Remove,
    Rename,
    Rmdir,
    Setstat,
    Stat,
    Status,
    Symlink,
    Version,
    Write,
    decode_body,
    encode_packet,
)
from sftpwire.transport import SocketStream
from sftpwire.wire import read_frame

logger = logging.getLogger(__name__)

MAX_FRAME = 4 * 1024 * 1024

_WRITE_FLAGS = OpenFlag.WRITE | OpenFlag.CREAT | OpenFlag.TRUNC | OpenFlag.APPEND


def attrs_from_stat(st: os.stat_result) -> Attributes:
    return Attributes(
        size=st.st_size,
        uid=st.st_uid,
        gid=st.st_gid,
        permissions=st.st_mode,
        atime=int(st.st_atime),
        mtime=int(st.st_mtime),
    )


def status_for_oserror(e: OSError) -> int:
    if e.errno == errno.ENOENT:
        return StatusCode.NO_SUCH_FILE
    if e.errno in (errno.EACCES, errno.EPERM):
        return StatusCode.PERMISSION_DENIED
    return StatusCode.FAILURE


class _Denied(Exception):
    pass


class FakeSFTPServer:
    """
    Args:
        sock: Server end of a connected socket pair.
        readonly: Refuse every modifying request with PERMISSION_DENIED.
        readdir_batch: Entries per NAME reply to READDIR.
        version: Version announced in the VERSION reply.
    """

    def __init__(self, sock, readonly=False, readdir_batch=3, version=SFTP_VERSION):
        self.stream = SocketStream(sock)
        self.readonly = readonly
        self.readdir_batch = readdir_batch
        self.version = version
        self.requests = []
        self._handles = {}
        self._next_handle = 0
        self._thread = threading.Thread(target=self.serve, name="fake-sftp-server", daemon=True)
        self._handlers = {
            Open: self._open,
            Close: self._close,
            Read: self._read,
            Write: self._write,
            Lstat: self._lstat,
            Stat: self._stat,
            Fstat: self._fstat,
            Setstat: self._setstat,
            Fsetstat: self._fsetstat,
            Opendir: self._opendir,
            Readdir: self._readdir,
            Remove: self._remove,
            Mkdir: self._mkdir,
            Rmdir: self._rmdir,
            Realpath: self._realpath,
            Rename: self._rename,
            Readlink: self._readlink,
            Symlink: self._symlink,
        }

    def start(self):
        self._thread.start()
        return self

    def join(self, timeout=5):
        self._thread.join(timeout)

    @property
    def open_handles(self) -> int:
        return len(self._handles)

    def serve(self):
        try:
            init = decode_body(read_frame(self.stream, MAX_FRAME))
            assert isinstance(init, Init)
            self._send(Version(self.version, {"posix-rename@openssh.com": b"1"}))
            while True:
                try:
                    body = read_frame(self.stream, MAX_FRAME)
                except EOFError:
                    break
                request = decode_body(body)
                self.requests.append(request)
                self._send(self.handle(request))
        except (OSError, ValueError) as e:
            logger.debug("fake server stopped: %s", e)
        finally:
            for kind, value in self._handles.values():
                if kind == "file":
                    os.close(value)
            self._handles.clear()
            self.stream.close()

    def _send(self, packet):
        self.stream.write(encode_packet(packet))

    def handle(self, request):
        handler = self._handlers.get(type(request))
        if handler is None:
            return Status(request.request_id, StatusCode.OP_UNSUPPORTED, "unsupported")
        try:
            return handler(request)
        except _Denied:
            return Status(request.request_id, StatusCode.PERMISSION_DENIED, "read-only server")
        except KeyError:
            return Status(request.request_id, StatusCode.FAILURE, "invalid handle")
        except OSError as e:
            return Status(request.request_id, status_for_oserror(e), e.strerror or str(e))

    def _ok(self, request):
        return Status(request.request_id, StatusCode.OK, "Success")

    def _check_writable(self):
        if self.readonly:
            raise _Denied()

    def _new_handle(self, kind, value) -> bytes:
        handle = str(self._next_handle).encode()
        self._next_handle += 1
        self._handles[handle] = (kind, value)
        return handle

    def _fd(self, handle) -> int:
        kind, value = self._handles[handle]
        if kind != "file":
            raise KeyError(handle)
        return value

    def _open(self, request):
        if request.pflags & _WRITE_FLAGS:
            self._check_writable()
        if request.pflags & OpenFlag.READ and request.pflags & OpenFlag.WRITE:
            flags = os.O_RDWR
        elif request.pflags & OpenFlag.WRITE:
            flags = os.O_WRONLY
        else:
            flags = os.O_RDONLY
        if request.pflags & OpenFlag.CREAT:
            flags |= os.O_CREAT
        if request.pflags & OpenFlag.TRUNC:
            flags |= os.O_TRUNC
        if request.pflags & OpenFlag.EXCL:
            flags |= os.O_EXCL
        if request.pflags & OpenFlag.APPEND:
            flags |= os.O_APPEND
        mode = request.attrs.permissions if request.attrs.permissions is not None else 0o644
        fd = os.open(request.path, flags, mode)
        return Handle(request.request_id, self._new_handle("file", fd))

    def _close(self, request):
        kind, value = self._handles.pop(request.handle)
        if kind == "file":
            os.close(value)
        return self._ok(request)

    def _read(self, request):
        data = os.pread(self._fd(request.handle), request.length, request.offset)
        if not data:
            return Status(request.request_id, StatusCode.EOF, "EOF")
        return Data(request.request_id, data)

    def _write(self, request):
        self._check_writable()
        os.pwrite(self._fd(request.handle), request.data, request.offset)
        return self._ok(request)

    def _lstat(self, request):
        return Attrs(request.request_id, attrs_from_stat(os.lstat(request.path)))

    def _stat(self, request):
        return Attrs(request.request_id, attrs_from_stat(os.stat(request.path)))

    def _fstat(self, request):
        return Attrs(request.request_id, attrs_from_stat(os.fstat(self._fd(request.handle))))

    def _apply_attrs(self, target, attrs):
        if attrs.size is not None:
            os.truncate(target, attrs.size)
        if attrs.permissions is not None:
            os.chmod(target, attrs.permissions & 0o7777)
        if attrs.uid is not None and attrs.gid is not None:
            os.chown(target, attrs.uid, attrs.gid)
        if attrs.atime is not None and attrs.mtime is not None:
            os.utime(target, (attrs.atime, attrs.mtime))

    def _setstat(self, request):
        self._check_writable()
        self._apply_attrs(request.path, request.attrs)
        return self._ok(request)

    def _fsetstat(self, request):
        self._check_writable()
        self._apply_attrs(self._fd(request.handle), request.attrs)
        return self._ok(request)

    def _opendir(self, request):
        names = [".", ".."] + sorted(os.listdir(request.path))
        entries = []
        for name in names:
            st = os.lstat(os.path.join(request.path, name))
            entries.append(NameEntry(name, name, attrs_from_stat(st)))
        return Handle(request.request_id, self._new_handle("dir", entries))

    def _readdir(self, request):
        kind, entries = self._handles[request.handle]
        if kind != "dir":
            raise KeyError(request.handle)
        if not entries:
            return Status(request.request_id, StatusCode.EOF, "EOF")
        batch = entries[: self.readdir_batch]
        del entries[: self.readdir_batch]
        return Name(request.request_id, batch)

    def _remove(self, request):
        self._check_writable()
        os.remove(request.path)
        return self._ok(request)

    def _mkdir(self, request):
        self._check_writable()
        mode = request.attrs.permissions if request.attrs.permissions is not None else 0o777
        os.mkdir(request.path, mode)
        return self._ok(request)

    def _rmdir(self, request):
        self._check_writable()
        os.rmdir(request.path)
        return self._ok(request)

    def _realpath(self, request):
        path = os.path.realpath(request.path)
        return Name(request.request_id, [NameEntry(path, path)])

    def _rename(self, request):
        self._check_writable()
        if os.path.lexists(request.new_path):
            return Status(request.request_id, StatusCode.FAILURE, "target exists")
        os.rename(request.old_path, request.new_path)
        return self._ok(request)

    def _readlink(self, request):
        target = os.readlink(request.path)
        return Name(request.request_id, [NameEntry(target, target)])

    def _symlink(self, request):
        self._check_writable()
        os.symlink(request.target_path, request.link_path)
        return self._ok(request)
