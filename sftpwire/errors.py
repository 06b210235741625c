"""
Status code to exception mapping.

Server STATUS replies become StatusError subclasses that also derive from the
matching builtin OSError subclass, so callers can catch either
`NoSuchFileError` or plain `FileNotFoundError`. SSH_FX_EOF is not an error:
it maps to the builtin EOFError, which read paths turn into an empty result.
"""

import errno

from .constants import StatusCode, status_name


class StatusError(OSError):
    """
    Failure reported by the server or raised by the protocol engine.

    Attributes:
        code: The numeric SFTP status code (vendor codes are kept as-is).
        message: Human readable text from the server.
        lang: Language tag from the server, usually empty.
        bytes_written: For failed writes, the bytes confirmed before the failure.
    """

    default_errno: int | None = None

    def __init__(self, code: int, message: str = "", lang: str = ""):
        if self.default_errno is not None:
            super().__init__(self.default_errno, message)
        else:
            super().__init__(message)
        self.code = code
        self.message = message
        self.lang = lang
        self.bytes_written = 0

    def __str__(self) -> str:
        return f"sftp: {self.message or 'status'} ({status_name(self.code)})"

    def __reduce__(self):
        return (type(self), (self.code, self.message, self.lang))


class NoSuchFileError(StatusError, FileNotFoundError):
    default_errno = errno.ENOENT


class PermissionDeniedError(StatusError, PermissionError):
    default_errno = errno.EACCES


class FailureError(StatusError):
    pass


class BadMessageError(StatusError):
    """Malformed packet, unexpected reply kind, or bad frame length."""

    default_errno = errno.EBADMSG

    def __init__(self, message: str = "bad message", lang: str = "", code: int = StatusCode.BAD_MESSAGE):
        super().__init__(code, message, lang)

    def __reduce__(self):
        return (type(self), (self.message, self.lang, self.code))


class NoConnectionError(StatusError, ConnectionError):
    default_errno = errno.ENOTCONN


class ConnectionLostError(StatusError, ConnectionError):
    """The session is dead; every pending and later request fails with this."""

    default_errno = errno.ECONNRESET

    def __init__(self, message: str = "connection lost", lang: str = "", code: int = StatusCode.CONNECTION_LOST):
        super().__init__(code, message, lang)

    def __reduce__(self):
        return (type(self), (self.message, self.lang, self.code))


class OperationUnsupportedError(StatusError):
    default_errno = errno.EOPNOTSUPP


_ERRORS_BY_CODE: dict[int, type[StatusError]] = {
    StatusCode.NO_SUCH_FILE: NoSuchFileError,
    StatusCode.PERMISSION_DENIED: PermissionDeniedError,
    StatusCode.FAILURE: FailureError,
    StatusCode.NO_CONNECTION: NoConnectionError,
    StatusCode.OP_UNSUPPORTED: OperationUnsupportedError,
}


def error_for_status(code: int, message: str = "", lang: str = "") -> Exception | None:
    """
    Translate a status code into the exception a caller should see.

    Returns:
        None for SSH_FX_OK, EOFError for SSH_FX_EOF, otherwise a StatusError
        subclass carrying the original code.
    """
    if code == StatusCode.OK:
        return None
    if code == StatusCode.EOF:
        return EOFError(message or "end of file")
    if code == StatusCode.BAD_MESSAGE:
        return BadMessageError(message, lang)
    if code == StatusCode.CONNECTION_LOST:
        return ConnectionLostError(message, lang)
    cls = _ERRORS_BY_CODE.get(code, StatusError)
    return cls(code, message, lang)


def status_to_error(status) -> Exception | None:
    """Map a decoded STATUS packet through error_for_status."""
    return error_for_status(status.code, status.message, status.lang)
