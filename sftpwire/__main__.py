"""
sftpwire - Main Entry Point

Command line front end: connects over SSH (or a local server command),
performs one file operation and exits.
"""

import argparse
import logging
import sys
from pathlib import Path

from .client import SFTPClient
from .config import load_config
from .errors import StatusError
from .logger import setup_logging
from .transport import open_ssh_stream, spawn_server

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 256 * 1024


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="sftpwire",
        description="sftpwire - SFTP file operations over SSH or a local server process",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sftpwire --host myserver.com --user me ls /home/me
  sftpwire --host myserver.com --key-file ~/.ssh/id_ed25519 get /etc/motd motd.txt
  sftpwire --server-command "/usr/lib/openssh/sftp-server" walk /tmp
  sftpwire --config sftpwire.ini stat /var/log
        """,
    )
    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument("--host", help="SSH host")
    parser.add_argument("--port", type=int, help="SSH port")
    parser.add_argument("--user", help="SSH username")
    parser.add_argument("--password", help="SSH password")
    parser.add_argument("--key-file", help="Path to SSH private key")
    parser.add_argument("--key-passphrase", help="Passphrase for encrypted SSH key")
    parser.add_argument(
        "--server-command", help="Run this command and speak SFTP over its stdin/stdout"
    )
    parser.add_argument("--max-packet-size", type=int, help="Bytes per READ/WRITE request")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    ls_parser = subparsers.add_parser("ls", help="List a directory")
    ls_parser.add_argument("path", nargs="?", default=".")

    stat_parser = subparsers.add_parser("stat", help="Show attributes of a path")
    stat_parser.add_argument("path")

    get_parser = subparsers.add_parser("get", help="Download a file")
    get_parser.add_argument("remote")
    get_parser.add_argument("local")

    put_parser = subparsers.add_parser("put", help="Upload a file")
    put_parser.add_argument("local")
    put_parser.add_argument("remote")

    rm_parser = subparsers.add_parser("rm", help="Remove a file")
    rm_parser.add_argument("path")

    mv_parser = subparsers.add_parser("mv", help="Rename a file or directory")
    mv_parser.add_argument("old")
    mv_parser.add_argument("new")

    mkdir_parser = subparsers.add_parser("mkdir", help="Create a directory")
    mkdir_parser.add_argument("path")

    rmdir_parser = subparsers.add_parser("rmdir", help="Remove an empty directory")
    rmdir_parser.add_argument("path")

    walk_parser = subparsers.add_parser("walk", help="Recursively list a tree")
    walk_parser.add_argument("path")
    walk_parser.add_argument(
        "--stop-on-error", action="store_true", help="Stop at the first unreadable entry"
    )

    return parser.parse_args(argv)


def _format_stats(stats) -> str:
    kind = "d" if stats.is_dir else "l" if stats.is_symlink else "-"
    mode = f"{stats.mode & 0o7777:04o}" if stats.mode is not None else "????"
    size = stats.size if stats.size is not None else "?"
    mtime = stats.mtime.strftime("%Y-%m-%d %H:%M") if stats.mtime else "-"
    return f"{kind}{mode} {size:>12} {mtime} {stats.name}"


def cmd_ls(client, args):
    for stats in sorted(client.listdir(args.path), key=lambda s: s.name):
        print(_format_stats(stats))
    return 0


def cmd_stat(client, args):
    print(_format_stats(client.stat(args.path)))
    return 0


def cmd_get(client, args):
    total = 0
    with client.open(args.remote) as remote, open(args.local, "wb") as local:
        while True:
            data = remote.read(COPY_CHUNK_SIZE)
            if not data:
                break
            local.write(data)
            total += len(data)
    logger.info("Downloaded %d bytes from %s", total, args.remote)
    print(f"[OK] {args.remote} -> {args.local} ({total} bytes)")
    return 0


def cmd_put(client, args):
    total = 0
    with open(args.local, "rb") as local, client.create(args.remote) as remote:
        while True:
            data = local.read(COPY_CHUNK_SIZE)
            if not data:
                break
            total += remote.write(data)
    logger.info("Uploaded %d bytes to %s", total, args.remote)
    print(f"[OK] {args.local} -> {args.remote} ({total} bytes)")
    return 0


def cmd_rm(client, args):
    client.remove(args.path)
    return 0


def cmd_mv(client, args):
    client.rename(args.old, args.new)
    return 0


def cmd_mkdir(client, args):
    client.mkdir(args.path)
    return 0


def cmd_rmdir(client, args):
    client.rmdir(args.path)
    return 0


def cmd_walk(client, args):
    walker = client.walk(args.path, stop_on_error=args.stop_on_error)
    for entry in walker:
        if entry.error is not None:
            print(f"[ERROR] {entry.path}: {entry.error}", file=sys.stderr)
        else:
            print(entry.path)
    return 1 if walker.errors else 0


COMMANDS = {
    "ls": cmd_ls,
    "stat": cmd_stat,
    "get": cmd_get,
    "put": cmd_put,
    "rm": cmd_rm,
    "mv": cmd_mv,
    "mkdir": cmd_mkdir,
    "rmdir": cmd_rmdir,
    "walk": cmd_walk,
}


def open_stream(config):
    """Open the byte stream selected by the configuration."""
    if config.transport == "subprocess":
        return spawn_server(config.session.server_command)
    return open_ssh_stream(config.ssh, config.connection)


def run(args) -> int:
    client = None
    try:
        # 1. Load Configuration
        config = load_config(
            config_path=args.config,
            host=args.host,
            port=args.port,
            username=args.user,
            password=args.password,
            key_file=args.key_file,
            key_passphrase=args.key_passphrase,
            server_command=args.server_command,
            max_packet_size=args.max_packet_size,
            debug=args.verbose,
        )

        # 2. Setup Logging
        setup_logging(config.logging)
        from . import __version__

        logger.info("Starting sftpwire v%s", __version__)

        # 3. Connect
        try:
            stream = open_stream(config)
        except PermissionError as e:
            print(f"[ERROR] Authentication failed: {e}")
            return 1
        except TimeoutError as e:
            print(f"[ERROR] Connection timed out: {e}")
            return 1
        except ConnectionError as e:
            print(f"[ERROR] Could not connect: {e}")
            return 1

        client = SFTPClient.open_session(stream, config.session)

        # 4. Run the command
        return COMMANDS[args.command](client, args)

    except ValueError as e:
        print(f"[ERROR] Configuration error: {e}")
        return 1
    except FileNotFoundError as e:
        print(f"[ERROR] {e}")
        return 1
    except StatusError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"[ERROR] {e}")
        return 1
    except OSError as e:
        print(f"[ERROR] {e}")
        return 1
    finally:
        if client is not None:
            try:
                client.disconnect()
            except StatusError as e:
                logger.warning("Error disconnecting: %s", e)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    if args.command not in COMMANDS:
        print("Usage: sftpwire [options] <command> [args]")
        print()
        print("Commands:")
        for name in COMMANDS:
            print(f"  {name}")
        print()
        print("Run 'sftpwire --help' for more information.")
        return 1

    return run(args)


if __name__ == "__main__":
    sys.exit(main() or 0)
