import configparser
from dataclasses import dataclass
from pathlib import Path

from .constants import DEFAULT_MAX_FRAME_SIZE, DEFAULT_MAX_PACKET_SIZE


@dataclass
class SSHConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    key_file: str | None = None  # Path to SSH private key
    key_passphrase: str | None = None  # Passphrase for encrypted keys
    use_agent: bool = True  # Try SSH agent for auth


@dataclass
class ConnectionConfig:
    timeout_seconds: int = 30
    keepalive_interval_seconds: int = 60


@dataclass
class SessionConfig:
    max_packet_size: int = DEFAULT_MAX_PACKET_SIZE  # Data bytes per READ/WRITE
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE  # Largest frame accepted from server
    server_command: list[str] | None = None  # argv for the subprocess transport

    def __post_init__(self):
        if not 0 < self.max_packet_size <= self.max_frame_size:
            raise ValueError(
                f"max_packet_size must be between 1 and {self.max_frame_size}, "
                f"got {self.max_packet_size}"
            )


@dataclass
class LogConfig:
    level: str = "INFO"
    file: str = ""
    console: bool = True


@dataclass
class AppConfig:
    session: SessionConfig
    connection: ConnectionConfig
    logging: LogConfig
    transport: str = "ssh"  # "ssh" or "subprocess"
    ssh: SSHConfig | None = None


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _parse_int(section: str, key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(
            f"Invalid {key} value in [{section}]: '{value}' - must be an integer"
        )


def load_config(config_path: str | None = None, **cli_args) -> AppConfig:
    """
    Load configuration from an INI file and/or CLI arguments.
    CLI arguments take precedence over config file.

    Args:
        config_path: Path to the INI configuration file.
        **cli_args: Key-value pairs from command line arguments.

    Returns:
        AppConfig: The populated configuration object.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If required fields are missing or values are malformed.
    """
    # Initialize with defaults
    ssh_config = {
        "host": None,
        "port": 22,
        "username": None,
        "password": None,
        "key_file": None,
        "key_passphrase": None,
        "use_agent": True,
    }
    connection_config = {
        "timeout_seconds": 30,
        "keepalive_interval_seconds": 60,
    }
    session_config = {
        "max_packet_size": DEFAULT_MAX_PACKET_SIZE,
        "max_frame_size": DEFAULT_MAX_FRAME_SIZE,
        "server_command": None,
    }
    log_config = {
        "level": "INFO",
        "file": "",
        "console": True,
    }
    transport = "ssh"

    # Parse INI file if provided
    if config_path is not None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        parser = configparser.ConfigParser()
        parser.read(config_file, encoding="utf-8")

        # Load [ssh] section
        if parser.has_section("ssh"):
            ssh_section = parser["ssh"]
            for key in ("host", "username", "password", "key_file", "key_passphrase"):
                if ssh_section.get(key):
                    ssh_config[key] = ssh_section.get(key)
            if ssh_section.get("port"):
                ssh_config["port"] = _parse_int("ssh", "port", ssh_section.get("port"))
            if ssh_section.get("use_agent"):
                ssh_config["use_agent"] = _parse_bool(ssh_section.get("use_agent"))

        # Load [connection] section
        if parser.has_section("connection"):
            conn_section = parser["connection"]
            for key in ("timeout_seconds", "keepalive_interval_seconds"):
                if conn_section.get(key):
                    connection_config[key] = _parse_int("connection", key, conn_section.get(key))

        # Load [session] section
        if parser.has_section("session"):
            session_section = parser["session"]
            for key in ("max_packet_size", "max_frame_size"):
                if session_section.get(key):
                    session_config[key] = _parse_int("session", key, session_section.get(key))
            if session_section.get("server_command"):
                session_config["server_command"] = session_section.get("server_command").split()

        # Load [logging] section
        if parser.has_section("logging"):
            log_section = parser["logging"]
            if log_section.get("level"):
                log_config["level"] = log_section.get("level")
            if log_section.get("file"):
                log_config["file"] = log_section.get("file")
            if log_section.get("console"):
                log_config["console"] = _parse_bool(log_section.get("console"))

        if parser.has_section("general") and parser["general"].get("transport"):
            transport = parser["general"]["transport"].lower()

    # Override with CLI arguments (cli_args take precedence)
    if cli_args.get("server_command"):
        server_command = cli_args["server_command"]
        if isinstance(server_command, str):
            server_command = server_command.split()
        session_config["server_command"] = server_command
        transport = "subprocess"
    if cli_args.get("transport") is not None:
        transport = cli_args["transport"].lower()
    if cli_args.get("host") is not None:
        ssh_config["host"] = cli_args["host"]
    if cli_args.get("port") is not None:
        ssh_config["port"] = int(cli_args["port"])
    if cli_args.get("username") is not None:
        ssh_config["username"] = cli_args["username"] or None
    if cli_args.get("password") is not None:
        ssh_config["password"] = cli_args["password"] or None
    if cli_args.get("key_file") is not None:
        ssh_config["key_file"] = cli_args["key_file"]
    if cli_args.get("key_passphrase") is not None:
        ssh_config["key_passphrase"] = cli_args["key_passphrase"]
    if cli_args.get("max_packet_size") is not None:
        session_config["max_packet_size"] = int(cli_args["max_packet_size"])
    if cli_args.get("debug"):
        log_config["level"] = "DEBUG"
        log_config["console"] = True

    # Validate required fields
    if transport not in ("ssh", "subprocess"):
        raise ValueError(f"Invalid transport: {transport}. Must be 'ssh' or 'subprocess'.")
    if transport == "ssh" and not ssh_config["host"]:
        raise ValueError("Missing required configuration fields: host")
    if transport == "subprocess" and not session_config["server_command"]:
        raise ValueError("Missing required configuration fields: server_command")

    ssh_obj = None
    if ssh_config["host"]:
        ssh_obj = SSHConfig(**ssh_config)

    return AppConfig(
        session=SessionConfig(**session_config),
        connection=ConnectionConfig(**connection_config),
        logging=LogConfig(**log_config),
        transport=transport,
        ssh=ssh_obj,
    )
