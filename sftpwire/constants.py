"""
Protocol constants for SFTP version 3 (draft-ietf-secsh-filexfer-02).
"""

from enum import IntEnum, IntFlag

SFTP_VERSION = 3

# Largest data payload requested per READ/WRITE. OpenSSH accepts up to 256 KiB
# per message; 32 KiB is what every server handles.
DEFAULT_MAX_PACKET_SIZE = 32 * 1024

# Largest frame body accepted from the server.
DEFAULT_MAX_FRAME_SIZE = 256 * 1024 + 1024


class PacketType(IntEnum):
    INIT = 1
    VERSION = 2
    OPEN = 3
    CLOSE = 4
    READ = 5
    WRITE = 6
    LSTAT = 7
    FSTAT = 8
    SETSTAT = 9
    FSETSTAT = 10
    OPENDIR = 11
    READDIR = 12
    REMOVE = 13
    MKDIR = 14
    RMDIR = 15
    REALPATH = 16
    STAT = 17
    RENAME = 18
    READLINK = 19
    SYMLINK = 20
    STATUS = 101
    HANDLE = 102
    DATA = 103
    NAME = 104
    ATTRS = 105
    EXTENDED = 200
    EXTENDED_REPLY = 201


class StatusCode(IntEnum):
    OK = 0
    EOF = 1
    NO_SUCH_FILE = 2
    PERMISSION_DENIED = 3
    FAILURE = 4
    BAD_MESSAGE = 5
    NO_CONNECTION = 6
    CONNECTION_LOST = 7
    OP_UNSUPPORTED = 8


class OpenFlag(IntFlag):
    READ = 0x00000001
    WRITE = 0x00000002
    APPEND = 0x00000004
    CREAT = 0x00000008
    TRUNC = 0x00000010
    EXCL = 0x00000020


class AttrFlag(IntFlag):
    SIZE = 0x00000001
    UIDGID = 0x00000002
    PERMISSIONS = 0x00000004
    ACMODTIME = 0x00000008
    EXTENDED = 0x80000000


def status_name(code: int) -> str:
    """Return the SSH_FX_* name for a status code, or a generic label for vendor codes."""
    try:
        return f"SSH_FX_{StatusCode(code).name}"
    except ValueError:
        return f"SSH_FX_UNKNOWN({code})"
