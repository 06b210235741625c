__version__ = "0.1.0"

# Public API exports
from .client import SFTPClient
from .config import (
    AppConfig,
    ConnectionConfig,
    LogConfig,
    SessionConfig,
    SSHConfig,
    load_config,
)
from .constants import AttrFlag, OpenFlag, PacketType, StatusCode
from .dispatcher import RequestDispatcher
from .errors import (
    BadMessageError,
    ConnectionLostError,
    FailureError,
    NoConnectionError,
    NoSuchFileError,
    OperationUnsupportedError,
    PermissionDeniedError,
    StatusError,
    error_for_status,
    status_to_error,
)
from .file import RemoteDir, RemoteFile
from .packets import Attributes, NameEntry, decode_packet, encode_packet
from .remote_fs import FileStats, RemoteFS
from .session import Session
from .transport import (
    ChannelStream,
    ProcessStream,
    SocketStream,
    Stream,
    open_ssh_stream,
    spawn_server,
)
from .walk import Walker, WalkEntry

__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "SSHConfig",
    "SessionConfig",
    "ConnectionConfig",
    "LogConfig",
    "load_config",
    # Client
    "SFTPClient",
    "Session",
    "RequestDispatcher",
    "RemoteFile",
    "RemoteDir",
    "RemoteFS",
    "FileStats",
    # Protocol
    "Attributes",
    "NameEntry",
    "AttrFlag",
    "OpenFlag",
    "PacketType",
    "StatusCode",
    "encode_packet",
    "decode_packet",
    # Errors
    "StatusError",
    "NoSuchFileError",
    "PermissionDeniedError",
    "FailureError",
    "BadMessageError",
    "NoConnectionError",
    "ConnectionLostError",
    "OperationUnsupportedError",
    "error_for_status",
    "status_to_error",
    # Transport
    "Stream",
    "SocketStream",
    "ProcessStream",
    "ChannelStream",
    "open_ssh_stream",
    "spawn_server",
    # Walking
    "Walker",
    "WalkEntry",
]
