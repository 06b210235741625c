"""
Byte streams an SFTPClient can run over.

The protocol engine only needs read(n), write(data) and close(). These
helpers wrap the usual ways of getting such a stream: a local sftp-server
subprocess, a socket, or an SSH channel running the "sftp" subsystem.
"""

import logging
import os
import socket
import subprocess
from pathlib import Path

import paramiko

from .config import ConnectionConfig, SSHConfig

logger = logging.getLogger(__name__)


class Stream:
    """
    Duplex byte stream over a reader/writer pair of binary file objects.

    close() shuts the write side first so the peer sees end of input, then
    unblocks any pending read, closes the read side and releases the
    transport. Calling it twice is a no-op.
    """

    def __init__(self, reader, writer):
        self._reader = reader
        self._writer = writer
        self._closed = False

    def read(self, size: int) -> bytes:
        return self._reader.read(size)

    def write(self, data: bytes) -> None:
        self._writer.write(data)
        self._writer.flush()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.close()
        except OSError as e:
            logger.debug("Error closing stream writer: %s", e)
        try:
            self._shutdown()
        finally:
            self._reader.close()
            self._release()

    def _shutdown(self) -> None:
        """Unblock a reader stuck in read(). Runs before the reader is closed."""

    def _release(self) -> None:
        """Free the underlying transport after both sides are closed."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class SocketStream(Stream):
    """Stream over a connected socket."""

    def __init__(self, sock: socket.socket):
        super().__init__(sock.makefile("rb"), sock.makefile("wb"))
        self._sock = sock

    def _shutdown(self) -> None:
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone
            pass

    def _release(self) -> None:
        self._sock.close()


class ProcessStream(Stream):
    """Stream over the stdin/stdout pipes of a server process."""

    def __init__(self, process: subprocess.Popen, wait_seconds: float = 5):
        super().__init__(process.stdout, process.stdin)
        self.process = process
        self._wait_seconds = wait_seconds

    def _shutdown(self) -> None:
        # The server exits once its stdin closes; that ends our read side.
        try:
            self.process.wait(timeout=self._wait_seconds)
        except subprocess.TimeoutExpired:
            logger.warning("Server process %d did not exit, killing it", self.process.pid)
            self.process.kill()
            self.process.wait()


def spawn_server(argv: list[str], stderr=None) -> ProcessStream:
    """
    Start an SFTP server process (e.g. ["ssh", "-s", "host", "sftp"] or a local
    sftp-server binary) and return a stream over its pipes.
    """
    logger.debug("Starting server process: %s", " ".join(argv))
    try:
        process = subprocess.Popen(
            argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=stderr,
        )
    except OSError as e:
        logger.error("Could not start %s: %s", argv[0], e)
        raise ConnectionError(f"Could not start {argv[0]}: {e}") from e
    return ProcessStream(process)


DEFAULT_KNOWN_HOSTS = Path.home() / ".ssh" / "known_hosts"


class TrustOnFirstUsePolicy(paramiko.MissingHostKeyPolicy):
    """
    Accept a server's key the first time it is seen and remember it.

    A host with no recorded key of the offered type is trusted and the key
    is appended to known_hosts. A host whose recorded key of that type
    differs from the offered one is refused with SSHException.
    """

    def __init__(self, known_hosts_path: Path | None = None):
        self.known_hosts_path = known_hosts_path or DEFAULT_KNOWN_HOSTS

    def missing_host_key(self, client, hostname, key):
        host_keys = client.get_host_keys()
        key_type = key.get_name()
        recorded = (host_keys.lookup(hostname) or {}).get(key_type)
        if recorded is not None and recorded != key:
            raise paramiko.SSHException(
                f"{key_type} key offered by {hostname} does not match the one recorded in "
                f"{self.known_hosts_path}; refusing to connect. Delete that entry if the "
                f"server's key was replaced on purpose."
            )

        logger.info("Trusting new %s key for %s", key_type, hostname)
        host_keys.add(hostname, key_type, key)
        self._save(host_keys)

    def _save(self, host_keys: paramiko.HostKeys) -> None:
        try:
            self.known_hosts_path.parent.mkdir(parents=True, exist_ok=True)
            host_keys.save(str(self.known_hosts_path))
        except OSError as e:
            # The key is still trusted for this connection.
            logger.warning("Could not record host key in %s: %s", self.known_hosts_path, e)


class ChannelStream(Stream):
    """Stream over a paramiko channel; closing it also closes the SSH client."""

    def __init__(self, channel: paramiko.Channel, ssh: paramiko.SSHClient | None = None):
        super().__init__(channel.makefile("rb"), channel.makefile("wb"))
        self.channel = channel
        self._ssh = ssh

    def _shutdown(self) -> None:
        self.channel.close()

    def _release(self) -> None:
        if self._ssh is not None:
            self._ssh.close()


def _connect_kwargs(ssh_config: SSHConfig, conn_config: ConnectionConfig) -> dict:
    connect_kwargs: dict = {
        "hostname": ssh_config.host,
        "port": ssh_config.port,
        "timeout": conn_config.timeout_seconds,
        "allow_agent": ssh_config.use_agent,
    }
    if ssh_config.username:
        connect_kwargs["username"] = ssh_config.username

    # Auth priority: key file -> password -> agent/default keys
    if ssh_config.key_file:
        connect_kwargs["key_filename"] = os.path.expanduser(ssh_config.key_file)
        if ssh_config.key_passphrase:
            connect_kwargs["passphrase"] = ssh_config.key_passphrase
        connect_kwargs["look_for_keys"] = True
    elif ssh_config.password:
        connect_kwargs["password"] = ssh_config.password
        connect_kwargs["look_for_keys"] = False
    else:
        connect_kwargs["look_for_keys"] = True
    return connect_kwargs


def open_ssh_stream(ssh_config: SSHConfig, conn_config: ConnectionConfig) -> ChannelStream:
    """
    Connect over SSH and start the "sftp" subsystem.

    Raises:
        PermissionError: Authentication failed.
        TimeoutError: The connection timed out.
        ConnectionError: Any other network or SSH failure.
    """
    ssh = paramiko.SSHClient()
    try:
        ssh.load_system_host_keys()
        try:
            ssh.load_host_keys(str(DEFAULT_KNOWN_HOSTS))
        except FileNotFoundError:
            pass
        ssh.set_missing_host_key_policy(TrustOnFirstUsePolicy())

        logger.debug("Connecting to SSH %s:%d", ssh_config.host, ssh_config.port)
        ssh.connect(**_connect_kwargs(ssh_config, conn_config))

        transport = ssh.get_transport()
        if conn_config.keepalive_interval_seconds:
            transport.set_keepalive(conn_config.keepalive_interval_seconds)
        channel = transport.open_session(timeout=conn_config.timeout_seconds)
        channel.invoke_subsystem("sftp")
        logger.info("Connected to SSH server %s:%d", ssh_config.host, ssh_config.port)
        return ChannelStream(channel, ssh)

    except paramiko.AuthenticationException as e:
        ssh.close()
        logger.error("SSH authentication failed: %s", e)
        raise PermissionError(f"SSH authentication failed: {e}") from e
    except TimeoutError as e:
        ssh.close()
        logger.error("SSH connection timeout: %s", e)
        raise TimeoutError(f"SSH connection timeout: {e}") from e
    except (OSError, paramiko.SSHException) as e:
        ssh.close()
        logger.error("SSH connection failed: %s", e)
        raise ConnectionError(f"SSH connection failed: {e}") from e
