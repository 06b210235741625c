"""
Request/response correlation over one shared stream.

Callers submit requests from any thread. Each request gets a fresh id and a
Future registered in the pending table; a single reader thread decodes
incoming frames and resolves the Future whose id matches. Frames are written
under a lock so two senders never interleave bytes.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeoutError

from .constants import DEFAULT_MAX_FRAME_SIZE
from .errors import ConnectionLostError
from .packets import Packet, decode_body, encode_packet
from .wire import UINT32_MAX, read_frame

logger = logging.getLogger(__name__)

RequestBuilder = Callable[[int], Packet]


class RequestDispatcher:
    """
    Owns the stream once the handshake is done.

    The reader thread is the only consumer of the stream's read side. Any
    failure there, or a failed write, is terminal: pending requests and all
    later submissions fail with ConnectionLostError.
    """

    def __init__(self, stream, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE):
        self._stream = stream
        self._max_frame_size = max_frame_size
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._pending: dict[int, Future] = {}
        self._counter = 0
        self._failure: ConnectionLostError | None = None
        self._reader: threading.Thread | None = None

    @property
    def failure(self) -> ConnectionLostError | None:
        """The error that killed the connection, or None while it is healthy."""
        return self._failure

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def start(self) -> None:
        """Start the reader thread."""
        if self._reader is not None:
            return
        self._reader = threading.Thread(
            target=self._read_loop, name="sftpwire-reader", daemon=True
        )
        self._reader.start()

    def next_id(self) -> int:
        """Allocate a request id that is not currently outstanding."""
        with self._lock:
            return self._next_id_locked()

    def _next_id_locked(self) -> int:
        # Wire ids are 32 bits; after wrapping, skip any still in flight.
        for _ in range(len(self._pending) + 1):
            request_id = self._counter & UINT32_MAX
            self._counter += 1
            if request_id not in self._pending:
                return request_id
        raise RuntimeError("no free request id")

    def submit(self, build: RequestBuilder) -> Future:
        """
        Send a request without waiting for its response.

        Args:
            build: Callable taking the request id and returning the packet.

        Returns:
            A Future resolved with the response packet, or with
            ConnectionLostError if the connection dies first.

        Raises:
            ConnectionLostError: If the connection has already failed or the
                write fails.
        """
        future: Future = Future()
        with self._lock:
            if self._failure is not None:
                raise self._lost(self._failure)
            request_id = self._next_id_locked()
            self._pending[request_id] = future

        try:
            packet = build(request_id)
            frame = encode_packet(packet)
        except Exception:
            # Nothing reached the wire, so the id can be reused.
            with self._lock:
                self._pending.pop(request_id, None)
            raise
        logger.debug("-> %s id=%d (%d bytes)", packet.TYPE.name, request_id, len(frame))

        try:
            with self._write_lock:
                if self._failure is not None:
                    raise self._lost(self._failure)
                self._stream.write(frame)
                flush = getattr(self._stream, "flush", None)
                if flush is not None:
                    flush()
        except ConnectionLostError:
            with self._lock:
                self._pending.pop(request_id, None)
            raise
        except (OSError, ValueError) as e:
            # A partial frame may be on the wire; the stream can't be trusted.
            logger.error("Write of request %d failed: %s", request_id, e)
            self._fail(ConnectionLostError(f"write failed: {e}"))
            raise self._lost(self._failure) from e

        return future

    def send(self, build: RequestBuilder, timeout: float | None = None) -> Packet:
        """
        Send a request and block until its response arrives.

        A timeout only stops waiting; the request stays sent and its eventual
        response is discarded.
        """
        future = self.submit(build)
        try:
            return future.result(timeout)
        except FutureTimeoutError:
            future.cancel()
            raise

    def close(self) -> None:
        """Fail everything pending and stop accepting requests."""
        self._fail(ConnectionLostError("connection closed"))

    def join(self, timeout: float | None = None) -> None:
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout)

    def _read_loop(self) -> None:
        try:
            while True:
                body = read_frame(self._stream, self._max_frame_size)
                packet = decode_body(body)
                self._deliver(packet)
        except EOFError as e:
            if self._failure is None:
                logger.error("Connection closed by server: %s", e)
            self._fail(ConnectionLostError("connection closed by server"))
        except Exception as e:
            if self._failure is None:
                logger.error("Reader failed: %s", e)
            self._fail(ConnectionLostError(f"connection lost: {e}"))
        logger.debug("Reader thread exiting")

    def _deliver(self, packet: Packet) -> None:
        request_id = getattr(packet, "request_id", None)
        with self._lock:
            future = self._pending.pop(request_id, None)
        if future is None:
            logger.warning(
                "Dropping %s for unknown request id %s", packet.TYPE.name, request_id
            )
            return
        logger.debug("<- %s id=%d", packet.TYPE.name, request_id)
        try:
            future.set_result(packet)
        except InvalidStateError:
            logger.debug("Discarding response for abandoned request %d", request_id)

    def _fail(self, error: ConnectionLostError) -> None:
        with self._lock:
            if self._failure is None:
                self._failure = error
            pending = self._pending
            self._pending = {}
        for request_id, future in pending.items():
            try:
                future.set_exception(self._lost(self._failure))
            except InvalidStateError:
                logger.debug("Request %d already abandoned", request_id)

    @staticmethod
    def _lost(error: ConnectionLostError) -> ConnectionLostError:
        # Fresh instance per caller so tracebacks don't pile up on one object.
        return ConnectionLostError(error.message)
