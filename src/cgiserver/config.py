"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All tunables in one dataclass, filled from defaults, environment
variables (CGISERVER_*) or the command line, and validated once at
startup so a bad value fails immediately instead of at the first request.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   defaults  ──►  from_env()  ──►  CLI flags  ──►  validate()        │
    └─────────────────────────────────────────────────────────────────────┘

There is no configuration file format.

=============================================================================
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .handlers.paths import (
    DEFAULT_FORBIDDEN_DIRS,
    DEFAULT_FORBIDDEN_FILES,
    DEFAULT_SCRIPTS_DIR,
)


ENV_PREFIX = "CGISERVER_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """
    Configuration for the CGI-style HTTP server.

    Development:
        ServerConfig(port=8080, root_dir="./www", log_level="DEBUG")

    Behind a load balancer:
        ServerConfig(host="0.0.0.0", port=80, root_dir="/srv/www",
                     max_workers=64, queue_size=500)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """IP address to bind to ("0.0.0.0" = all interfaces)."""

    port: int = 8080
    """Port to listen on, 1-65535."""

    backlog: int = 128
    """Connections the kernel queues before refusing new ones."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Per-read socket timeout in seconds; a stalled client gets 408."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB
    """Largest request (headers + body) accepted; larger gets 413."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16
    """Each worker handles one connection at a time, scripts included."""

    queue_size: int = 100
    """Accepted connections waiting for a worker; beyond this, 503."""

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    root_dir: str = "."
    """Root folder; nothing outside it is ever served."""

    scripts_dir: str = DEFAULT_SCRIPTS_DIR
    """Subdirectory of root whose files are executed, never served."""

    forbidden_dirs: tuple[str, ...] = DEFAULT_FORBIDDEN_DIRS
    forbidden_files: tuple[str, ...] = DEFAULT_FORBIDDEN_FILES

    script_timeout: Optional[float] = 30.0
    """Seconds a script may run before it is killed (500)."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Diagnostics level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

            CGISERVER_HOST            Bind address (default: 0.0.0.0)
            CGISERVER_PORT            Port (default: 8080)
            CGISERVER_ROOT            Root folder (default: .)
            CGISERVER_WORKERS         Max worker threads (default: 16)
            CGISERVER_TIMEOUT         Read timeout in seconds (default: 30)
            CGISERVER_SCRIPT_TIMEOUT  Script timeout in seconds (default: 30)
            CGISERVER_LOG_LEVEL       Logging level (default: INFO)

        Raises:
            ValueError: If a numeric variable does not parse.
        """
        def env(name: str, default: str) -> str:
            return os.getenv(ENV_PREFIX + name, default)

        return cls(
            host=env("HOST", "0.0.0.0"),
            port=int(env("PORT", "8080")),
            root_dir=env("ROOT", "."),
            max_workers=int(env("WORKERS", "16")),
            timeout=float(env("TIMEOUT", "30")),
            script_timeout=float(env("SCRIPT_TIMEOUT", "30")),
            log_level=env("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: Naming the first invalid setting.
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_request_size < self.buffer_size:
            raise ValueError("max_request_size must be >= buffer_size")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.script_timeout is not None and self.script_timeout <= 0:
            raise ValueError("script_timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")

    def resolved_root(self) -> Path:
        """
        The root folder as an absolute, symlink-free path.

        Raises:
            ValueError: If it does not exist or is not a directory.
        """
        try:
            root = Path(self.root_dir).resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise ValueError(f"Root folder does not exist: {self.root_dir}") from e

        if not root.is_dir():
            raise ValueError(f"Root folder is not a directory: {root}")

        return root
