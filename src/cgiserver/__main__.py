"""
=============================================================================
CGISERVER CLI ENTRY POINT
=============================================================================

    python -m cgiserver PORT ROOT_FOLDER [options]
    cgiserver PORT ROOT_FOLDER [options]

=============================================================================
USAGE
=============================================================================

    # Serve ./www on port 8000
    python -m cgiserver 8000 ./www

    # Loopback only, more workers
    python -m cgiserver 8000 ./www --host 127.0.0.1 --workers 32

    # Kill scripts after 5 seconds
    python -m cgiserver 8000 ./www --script-timeout 5

Settings are layered: defaults, then CGISERVER_* environment variables,
then command-line flags.

=============================================================================
EXIT STATUS
=============================================================================

    0   stopped by Ctrl+C / SIGTERM
    1   bad configuration (port, root folder, ...) or the port cannot be bound
    2   bad command line (argparse)

=============================================================================
"""

import argparse
import sys
from typing import Optional, Sequence

from . import __version__
from .config import LOG_LEVELS, ServerConfig
from .server import HTTPServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cgiserver",
        description="Serve static files, directory listings and CGI-style scripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cgiserver 8000 ./www                     # Serve ./www on :8000
  python -m cgiserver 8000 ./www --host 127.0.0.1    # Loopback only
  python -m cgiserver 8000 ./www --workers 32        # Up to 32 workers
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # POSITIONAL ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("port", type=int, help="Port to listen on (1-65535)")
    parser.add_argument("root", help="Root folder to serve")

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for a client before answering 408 (default: 30)"
    )
    parser.add_argument(
        "--max-request-size",
        type=int,
        default=None,
        help="Largest request in bytes before answering 413 (default: 10 MiB)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: 16)"
    )
    parser.add_argument(
        "--queue-size",
        type=int,
        default=None,
        help="Connections waiting for a worker before answering 503 (default: 100)"
    )
    parser.add_argument(
        "--script-timeout",
        type=float,
        default=None,
        help="Seconds a script may run (default: 30)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Diagnostics level on stderr (default: INFO)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"cgiserver {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any flag given on the command line."""
    config = ServerConfig.from_env()
    config.port = args.port
    config.root_dir = args.root

    if args.host is not None:
        config.host = args.host
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.queue_size is not None:
        config.queue_size = args.queue_size
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.script_timeout is not None:
        config.script_timeout = args.script_timeout
    if args.max_request_size is not None:
        config.max_request_size = args.max_request_size
    if args.log_level is not None:
        config.log_level = args.log_level

    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Parse arguments, build the server and run it until stopped.

    Returns:
        Process exit status.
    """
    args = build_parser().parse_args(argv)

    # =========================================================================
    # CREATE CONFIGURATION
    # =========================================================================

    try:
        config = build_config(args)
        server = HTTPServer(config)  # validates config, resolves root
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # =========================================================================
    # RUN SERVER
    # =========================================================================
    # Blocks until Ctrl+C / SIGTERM

    try:
        server.run()
    except OSError as e:
        print(f"Error: failed to bind {config.host}:{config.port}: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
