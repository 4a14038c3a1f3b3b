"""
=============================================================================
CGI-STYLE HTTP SERVER
=============================================================================

Wires the pieces together: acceptor, worker pool, parser, access log and
router.

=============================================================================
REQUEST FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │  SocketServer (acceptor thread)                                     │
    │      accept() ──► _handle_connection(conn)                          │
    │                        │                                            │
    │                        ├─ pool full ──────────────► 503, close      │
    │                        ▼                                            │
    │  ThreadPool (worker thread)                                         │
    │      _process_connection(conn)                                      │
    │          read_request()   timeout → 408, too big → 413              │
    │          parser.parse()   bad request line → close silently         │
    │                           short POST body → 400                     │
    │          handler(request)                                           │
    │              = AccessLogMiddleware → RequestRouter                  │
    │          send_response()                                            │
    │          close()                                                    │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Exactly one request and one response per connection. Nothing a single
connection does can stop the acceptor: every failure is caught in the
worker that owns the connection.

=============================================================================
"""

import logging
import sys
import threading
from typing import Callable, Optional

from .config import ServerConfig
from .core.connection import Connection, ConnectionState, RequestTimeout, RequestTooLarge
from .core.socket_server import SocketServer
from .core.thread_pool import ThreadPool
from .handlers.listing import DirectoryLister
from .handlers.paths import PathGuard
from .handlers.scripts import ScriptExecutor
from .handlers.static import StaticFileHandler
from .http.request import HTTPParseError, HTTPRequest, RequestParser, format_peer
from .http.response import HTTPResponse, error_response, internal_error
from .http.router import RequestRouter
from .http.status_codes import HTTPStatus
from .middleware.base import MiddlewarePipeline
from .middleware.logging import ACCESS_LOGGER_NAME, UNREAD, AccessLogMiddleware, log_access


logger = logging.getLogger(__name__)

# Version used when the request never got far enough to tell us its own
FALLBACK_VERSION = "HTTP/1.1"


class HTTPServer:
    """
    Static files + CGI-style scripts over HTTP.

    Usage:
        config = ServerConfig(port=8080, root_dir="/srv/www")
        server = HTTPServer(config)
        server.run()            # blocks until Ctrl+C / SIGTERM / shutdown()

    Components:
        - PathGuard, DirectoryLister, StaticFileHandler, ScriptExecutor
        - RequestRouter (dispatch), wrapped in the middleware pipeline
        - SocketServer (accept loop), ThreadPool (workers)
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults serve the current
                    directory on 0.0.0.0:8080.

        Raises:
            ValueError: If the configuration is invalid or the root folder
                        does not exist.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self.root_dir = self.config.resolved_root()

        # ─────────────────────────────────────────────────────────────────
        # APPLICATION COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self.guard = PathGuard(
            self.root_dir,
            forbidden_dirs=self.config.forbidden_dirs,
            forbidden_files=self.config.forbidden_files,
            scripts_dir=self.config.scripts_dir,
        )
        self.router = RequestRouter(
            self.guard,
            DirectoryLister(self.root_dir),
            StaticFileHandler(),
            ScriptExecutor(timeout=self.config.script_timeout),
        )
        self._middleware = MiddlewarePipeline()
        self._middleware.add(AccessLogMiddleware())

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        # Built in run(): middleware wrapping router.handle
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

        # Installed on the access logger by run(), removed again on shutdown
        self._access_handler: Optional[logging.Handler] = None

        self._running = False
        self._ready = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port)."""
        return self._socket_server.address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. Returns False on timeout."""
        return self._ready.wait(timeout)

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start the server (blocking).

        Raises:
            OSError: If the listening socket cannot be bound.
        """
        self._setup_logging()
        self._handler = self._middleware.wrap(self.router.handle)

        print(f"Root folder: {self.root_dir}", flush=True)

        self._socket_server.bind()
        self._thread_pool.start()
        self._running = True

        host, port = self.address
        print(f"Server listening on {host}:{port}", flush=True)
        logger.info(
            "Serving %s with %d-%d workers",
            self.root_dir, self.config.min_workers, self.config.max_workers,
        )
        self._ready.set()

        try:
            self._socket_server.serve(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask the server to stop. Returns immediately; run() then unwinds."""
        self._socket_server.shutdown()

    def _setup_logging(self):
        """
        Diagnostics → stderr via basicConfig at config.log_level.
        Access log → stdout, flushed per line, not propagated to root.
        """
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("cgiserver").setLevel(level)

        access = logging.getLogger(ACCESS_LOGGER_NAME)
        self._remove_access_handler()

        # StreamHandler flushes after every record
        self._access_handler = logging.StreamHandler(sys.stdout)
        self._access_handler.setFormatter(logging.Formatter("%(message)s"))
        access.addHandler(self._access_handler)
        access.setLevel(logging.INFO)
        access.propagate = False

    def _remove_access_handler(self):
        if self._access_handler is not None:
            logging.getLogger(ACCESS_LOGGER_NAME).removeHandler(self._access_handler)
            self._access_handler = None

    def _shutdown(self):
        """Stop accepting, let queued connections finish, stop workers."""
        logger.info("Shutting down server...")
        self._running = False
        self._ready.clear()
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        self._remove_access_handler()
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Hand a connection to the pool (acceptor thread, never blocks)."""
        try:
            submitted = self._thread_pool.submit(
                self._process_connection,
                args=(conn,),
                block=False,
            )
        except RuntimeError:
            submitted = False  # Pool shutting down

        if not submitted:
            logger.warning("[%s] Thread pool full, rejecting connection", conn.id)
            with conn:
                self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)

    def _process_connection(self, conn: Connection):
        """Read, dispatch, answer and close one connection (worker thread)."""
        with conn:  # Context manager ensures connection is closed
            # ─────────────────────────────────────────────────────────────
            # READ REQUEST
            # ─────────────────────────────────────────────────────────────
            try:
                raw_request = conn.read_request()
            except RequestTimeout:
                logger.info("[%s] Request read timeout", conn.id)
                self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                return
            except RequestTooLarge as e:
                logger.warning("[%s] %s", conn.id, e)
                self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                return

            if raw_request is None:
                return  # Client closed without sending anything

            # ─────────────────────────────────────────────────────────────
            # PARSE REQUEST
            # ─────────────────────────────────────────────────────────────
            try:
                request = self._parser.parse(raw_request, conn.address)
            except HTTPParseError as e:
                if not e.respond:
                    logger.debug("[%s] Dropping connection: %s", conn.id, e)
                    return
                logger.info("[%s] Bad request: %s", conn.id, e)
                if e.request_line is None:
                    self._send_error(conn, e.status_code)
                else:
                    method, path, version = e.request_line
                    self._send_error(conn, e.status_code, version, method, path)
                return

            # ─────────────────────────────────────────────────────────────
            # PROCESS REQUEST (Middleware + Router)
            # ─────────────────────────────────────────────────────────────
            conn.state = ConnectionState.PROCESSING
            try:
                response = self._handler(request)
            except Exception:
                logger.exception("[%s] Handler error for %s %s", conn.id, request.method, request.path)
                response = internal_error(request.version)

            conn.send_response(response.to_bytes())

    def _send_error(
        self,
        conn: Connection,
        status: int,
        version: str = FALLBACK_VERSION,
        method: str = UNREAD,
        path: str = UNREAD,
    ):
        """Send and log a bodiless error for failures before the router runs."""
        response = error_response(status, version)
        conn.send_response(response.to_bytes())
        log_access(format_peer(conn.address), response.status, response.status_text, method, path)
