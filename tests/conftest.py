"""
Shared pytest fixtures for sftpwire tests.
"""

import socket
from collections.abc import Generator
from pathlib import Path

import pytest
from fake_server import FakeSFTPServer

from sftpwire.client import SFTPClient
from sftpwire.config import ConnectionConfig, LogConfig, SessionConfig, SSHConfig
from sftpwire.transport import SocketStream


@pytest.fixture
def tmp_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a temporary INI configuration file for config tests.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[general]
transport = ssh

[ssh]
host = testserver.local
port = 2222
username = testuser
password = testpass
use_agent = false

[connection]
timeout_seconds = 45
keepalive_interval_seconds = 90

[session]
max_packet_size = 16384
max_frame_size = 65536

[logging]
level = DEBUG
file = test.log
console = false
"""
    config_path = tmp_path / "test_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def minimal_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a minimal INI configuration file with only required fields.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[ssh]
host = minimal.server.com
"""
    config_path = tmp_path / "minimal_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def ssh_config() -> SSHConfig:
    """Creates a standard SSHConfig for testing."""
    return SSHConfig(
        host="test.ssh.local",
        port=22,
        username="testuser",
        password="testpass",
        use_agent=False,
    )


@pytest.fixture
def conn_config() -> ConnectionConfig:
    """Creates a standard ConnectionConfig for testing."""
    return ConnectionConfig(timeout_seconds=30, keepalive_interval_seconds=60)


@pytest.fixture
def log_config() -> LogConfig:
    return LogConfig(level="DEBUG", file="", console=False)


@pytest.fixture
def socket_pair() -> Generator[tuple[socket.socket, socket.socket], None, None]:
    """A connected (client, server) socket pair, closed after the test."""
    client_sock, server_sock = socket.socketpair()
    yield client_sock, server_sock
    client_sock.close()
    server_sock.close()


@pytest.fixture
def start_client():
    """
    Factory fixture: start a FakeSFTPServer and return a connected client.

    Usage:
        client, server = start_client(readonly=True)

    Every client and server started this way is torn down after the test.
    """
    started = []

    def _start(readonly=False, readdir_batch=3, max_packet_size=32768):
        client_sock, server_sock = socket.socketpair()
        server = FakeSFTPServer(server_sock, readonly=readonly, readdir_batch=readdir_batch)
        server.start()
        config = SessionConfig(max_packet_size=max_packet_size)
        client = SFTPClient.open_session(SocketStream(client_sock), config)
        started.append((client, server))
        return client, server

    yield _start

    for client, server in started:
        client.disconnect()
        server.join()


@pytest.fixture
def sftp(start_client) -> SFTPClient:
    """Client connected to a read-write fake server."""
    client, _ = start_client()
    return client


@pytest.fixture
def sftp_readonly(start_client) -> SFTPClient:
    """Client connected to a fake server that refuses modifications."""
    client, _ = start_client(readonly=True)
    return client
