"""
Version negotiation and the per-connection session.
"""

import logging
import threading

from .config import SessionConfig
from .constants import SFTP_VERSION
from .dispatcher import RequestDispatcher
from .errors import BadMessageError
from .packets import Init, Version, decode_body, encode_packet
from .wire import read_frame

logger = logging.getLogger(__name__)


def handshake(stream, max_frame_size: int) -> tuple[int, dict[str, bytes]]:
    """
    Send INIT and wait for the server's VERSION reply.

    No other traffic may happen until this returns.

    Returns:
        The negotiated version and the extensions the server advertised.

    Raises:
        BadMessageError: If the reply is missing, not a VERSION packet, or
            names a different protocol version.
    """
    stream.write(encode_packet(Init(SFTP_VERSION)))
    flush = getattr(stream, "flush", None)
    if flush is not None:
        flush()

    try:
        body = read_frame(stream, max_frame_size)
    except EOFError as e:
        raise BadMessageError(f"no version reply from server: {e}") from e

    reply = decode_body(body)
    if not isinstance(reply, Version):
        raise BadMessageError(f"expected VERSION, got {reply.TYPE.name}")
    if reply.version != SFTP_VERSION:
        raise BadMessageError(
            f"server speaks SFTP version {reply.version}, need {SFTP_VERSION}"
        )
    if reply.extensions:
        logger.debug("Server extensions: %s", ", ".join(sorted(reply.extensions)))
    return reply.version, reply.extensions


class Session:
    """
    One negotiated SFTP connection.

    Created by Session.open once the handshake succeeds; lives until close()
    or until the stream fails.
    """

    def __init__(
        self,
        stream,
        dispatcher: RequestDispatcher,
        version: int,
        extensions: dict[str, bytes],
        config: SessionConfig,
    ):
        self.stream = stream
        self.dispatcher = dispatcher
        self.version = version
        self.extensions = extensions
        self.config = config
        self._close_lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(cls, stream, config: SessionConfig | None = None) -> "Session":
        """
        Negotiate a session over an already connected stream.

        The stream is closed if negotiation fails.
        """
        config = config or SessionConfig()
        try:
            version, extensions = handshake(stream, config.max_frame_size)
        except BaseException:
            stream.close()
            raise
        dispatcher = RequestDispatcher(stream, config.max_frame_size)
        dispatcher.start()
        logger.info("SFTP session established (version %d)", version)
        return cls(stream, dispatcher, version, extensions, config)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Fail pending requests and release the stream. Safe to call twice."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self.dispatcher.close()
        try:
            self.stream.close()
        finally:
            self.dispatcher.join(timeout=5)
        logger.info("SFTP session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
