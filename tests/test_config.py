"""
Unit tests for sftpwire.config module.

Tests cover:
- Loading configuration from INI files
- Loading configuration from CLI arguments only
- CLI override precedence (CLI wins over INI)
- Missing required field validation
- Missing config file handling
- Transport selection and packet size validation
"""

from pathlib import Path

import pytest

from sftpwire.config import (
    AppConfig,
    ConnectionConfig,
    LogConfig,
    SessionConfig,
    SSHConfig,
    load_config,
)
from sftpwire.constants import DEFAULT_MAX_FRAME_SIZE, DEFAULT_MAX_PACKET_SIZE


class TestLoadConfigWithINIFile:
    """Tests for load_config with INI file."""

    def test_load_config_reads_all_sections(self, tmp_config_file: Path):
        """Test that load_config correctly reads all sections from INI file."""
        config = load_config(str(tmp_config_file))

        # Verify SSH section
        assert config.transport == "ssh"
        assert config.ssh.host == "testserver.local"
        assert config.ssh.port == 2222
        assert config.ssh.username == "testuser"
        assert config.ssh.password == "testpass"
        assert config.ssh.use_agent is False

        # Verify connection section
        assert config.connection.timeout_seconds == 45
        assert config.connection.keepalive_interval_seconds == 90

        # Verify session section
        assert config.session.max_packet_size == 16384
        assert config.session.max_frame_size == 65536
        assert config.session.server_command is None

        # Verify logging section
        assert config.logging.level == "DEBUG"
        assert config.logging.file == "test.log"
        assert config.logging.console is False

    def test_load_config_returns_appconfig_type(self, tmp_config_file: Path):
        """Test that load_config returns correctly typed dataclasses."""
        config = load_config(str(tmp_config_file))

        assert isinstance(config, AppConfig)
        assert isinstance(config.ssh, SSHConfig)
        assert isinstance(config.session, SessionConfig)
        assert isinstance(config.connection, ConnectionConfig)
        assert isinstance(config.logging, LogConfig)

    def test_load_config_minimal_file(self, minimal_config_file: Path):
        """Test that a minimal config file gets defaults for everything else."""
        config = load_config(str(minimal_config_file))

        assert config.ssh.host == "minimal.server.com"
        assert config.ssh.port == 22
        assert config.ssh.username is None
        assert config.ssh.use_agent is True
        assert config.session.max_packet_size == DEFAULT_MAX_PACKET_SIZE
        assert config.session.max_frame_size == DEFAULT_MAX_FRAME_SIZE
        assert config.connection.timeout_seconds == 30
        assert config.logging.level == "INFO"
        assert config.logging.console is True

    def test_server_command_in_file(self, tmp_path: Path):
        """Test that [session] server_command is split into argv."""
        config_path = tmp_path / "sub.ini"
        config_path.write_text(
            "[general]\ntransport = subprocess\n\n"
            "[session]\nserver_command = /usr/lib/openssh/sftp-server -e\n",
            encoding="utf-8",
        )
        config = load_config(str(config_path))

        assert config.transport == "subprocess"
        assert config.session.server_command == ["/usr/lib/openssh/sftp-server", "-e"]
        assert config.ssh is None


class TestLoadConfigCLIOnly:
    """Tests for load_config with CLI arguments only."""

    def test_load_config_cli_only(self):
        """Test loading config purely from CLI arguments."""
        config = load_config(
            host="cli.server.com",
            port=2200,
            username="cliuser",
            password="clipass",
            key_file="~/.ssh/id_ed25519",
            max_packet_size=8192,
        )

        assert config.ssh.host == "cli.server.com"
        assert config.ssh.port == 2200
        assert config.ssh.username == "cliuser"
        assert config.ssh.password == "clipass"
        assert config.ssh.key_file == "~/.ssh/id_ed25519"
        assert config.session.max_packet_size == 8192

    def test_load_config_debug_flag_sets_console_and_level(self):
        """Test that debug flag forces DEBUG level and console output."""
        config = load_config(host="server.com", debug=True)

        assert config.logging.level == "DEBUG"
        assert config.logging.console is True

    def test_server_command_selects_subprocess(self):
        """Test that a server command string switches to the subprocess transport."""
        config = load_config(server_command="ssh -s example.com sftp")

        assert config.transport == "subprocess"
        assert config.session.server_command == ["ssh", "-s", "example.com", "sftp"]

    def test_server_command_list_kept(self):
        config = load_config(server_command=["/bin/sftp-server", "-R"])
        assert config.session.server_command == ["/bin/sftp-server", "-R"]

    def test_none_values_are_ignored(self):
        """Test that unset argparse options do not clobber defaults."""
        config = load_config(host="server.com", port=None, username=None, max_packet_size=None)

        assert config.ssh.port == 22
        assert config.ssh.username is None
        assert config.session.max_packet_size == DEFAULT_MAX_PACKET_SIZE


class TestCLIOverridePrecedence:
    """Tests that CLI arguments override INI file values."""

    def test_cli_overrides_ini_host(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file), host="override.server.com")
        assert config.ssh.host == "override.server.com"

    def test_cli_overrides_ini_port(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file), port=9999)
        assert config.ssh.port == 9999

    def test_cli_overrides_ini_credentials(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file), username="newuser", password="newpass")

        assert config.ssh.username == "newuser"
        assert config.ssh.password == "newpass"

    def test_cli_overrides_packet_size(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file), max_packet_size=4096)
        assert config.session.max_packet_size == 4096

    def test_cli_server_command_overrides_ini_transport(self, tmp_config_file: Path):
        config = load_config(str(tmp_config_file), server_command="sftp-server")

        assert config.transport == "subprocess"
        # The [ssh] section is still parsed
        assert config.ssh.host == "testserver.local"


class TestMissingRequiredFields:
    """Tests for validation of required configuration fields."""

    def test_missing_host_raises_valueerror(self):
        """Test that missing host raises ValueError."""
        with pytest.raises(ValueError) as exc_info:
            load_config()

        assert "host" in str(exc_info.value)

    def test_subprocess_without_command_raises_valueerror(self):
        with pytest.raises(ValueError) as exc_info:
            load_config(transport="subprocess")

        assert "server_command" in str(exc_info.value)

    def test_invalid_transport_raises_valueerror(self):
        with pytest.raises(ValueError, match="Invalid transport"):
            load_config(host="server.com", transport="telnet")

    def test_empty_ini_file_raises_valueerror(self, tmp_path: Path):
        """Test that an empty INI file raises ValueError for missing fields."""
        empty_config = tmp_path / "empty.ini"
        empty_config.write_text("", encoding="utf-8")

        with pytest.raises(ValueError) as exc_info:
            load_config(str(empty_config))

        assert "host" in str(exc_info.value)


class TestMissingConfigFile:
    """Tests for handling missing config files."""

    def test_missing_config_file_raises_filenotfounderror(self):
        """Test that non-existent config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError) as exc_info:
            load_config("/nonexistent/path/config.ini")

        assert "not found" in str(exc_info.value).lower()

    def test_missing_config_file_with_cli_override_still_raises(self):
        """Test that non-existent config file raises even with CLI args."""
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/config.ini", host="server.com")


class TestConfigBooleanParsing:
    """Tests for boolean value parsing in INI files."""

    @pytest.mark.parametrize("value", ["true", "True", "1", "yes", "YES"])
    def test_boolean_true_variations(self, tmp_path: Path, value: str):
        config_path = tmp_path / "bool.ini"
        config_path.write_text(
            f"[ssh]\nhost = server.com\nuse_agent = {value}\n\n[logging]\nconsole = {value}\n",
            encoding="utf-8",
        )
        config = load_config(str(config_path))

        assert config.ssh.use_agent is True
        assert config.logging.console is True

    @pytest.mark.parametrize("value", ["false", "False", "0", "no"])
    def test_boolean_false_variations(self, tmp_path: Path, value: str):
        config_path = tmp_path / "bool.ini"
        config_path.write_text(
            f"[ssh]\nhost = server.com\nuse_agent = {value}\n\n[logging]\nconsole = {value}\n",
            encoding="utf-8",
        )
        config = load_config(str(config_path))

        assert config.ssh.use_agent is False
        assert config.logging.console is False


class TestConfigIntegerParsing:
    """Tests for integer value parsing in INI files."""

    def test_invalid_integer_names_section_and_key(self, tmp_path: Path):
        config_path = tmp_path / "bad.ini"
        config_path.write_text(
            "[ssh]\nhost = server.com\n\n[session]\nmax_packet_size = lots\n",
            encoding="utf-8",
        )
        with pytest.raises(ValueError) as exc_info:
            load_config(str(config_path))

        message = str(exc_info.value)
        assert "max_packet_size" in message
        assert "[session]" in message
        assert "must be an integer" in message

    def test_invalid_port(self, tmp_path: Path):
        config_path = tmp_path / "bad.ini"
        config_path.write_text("[ssh]\nhost = server.com\nport = ssh\n", encoding="utf-8")
        with pytest.raises(ValueError, match="port"):
            load_config(str(config_path))


class TestSessionConfigValidation:
    """Tests for SessionConfig limits."""

    def test_defaults(self):
        config = SessionConfig()
        assert config.max_packet_size == 32 * 1024
        assert config.max_packet_size <= config.max_frame_size

    @pytest.mark.parametrize("size", [0, -1])
    def test_non_positive_packet_size(self, size: int):
        with pytest.raises(ValueError, match="max_packet_size"):
            SessionConfig(max_packet_size=size)

    def test_packet_size_larger_than_frame(self):
        with pytest.raises(ValueError):
            SessionConfig(max_packet_size=2048, max_frame_size=1024)

    def test_cli_packet_size_validated(self):
        with pytest.raises(ValueError):
            load_config(host="server.com", max_packet_size=10 * 1024 * 1024)
