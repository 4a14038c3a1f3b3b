"""
=============================================================================
TCP SOCKET SERVER (CONNECTION ACCEPTOR)
=============================================================================

Owns the listening socket and the accept loop. Every accepted client is
wrapped in a Connection and handed to a callback; the acceptor itself
never reads from or writes to a client.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    socket() ──► setsockopt() ──► bind() ──► listen() ──► accept() loop
                                                              │
                                         ┌────────────────────┘
                                         ▼
                              Connection(client_socket)
                                         │
                                         ▼
                              connection_handler(conn)   (must not block)

The listening socket has a 1 second timeout so the loop wakes up
regularly to notice shutdown():

    while running:
        try:
            accept()          # at most 1s
        except timeout:
            continue          # check running flag again

=============================================================================
SIGNAL HANDLING FOR GRACEFUL SHUTDOWN
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (kill, docker stop) call shutdown(). Python
only allows installing signal handlers from the main thread, so when the
server runs in a worker thread (as in the tests) the handlers are simply
not installed and the owner calls shutdown() itself.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP socket server.

    Usage:
        def handle_connection(conn: Connection):
            pool.submit(process, conn)

        server = SocketServer(config)
        server.bind()                       # raises OSError if the port is taken
        server.serve(handle_connection)     # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        """
        Args:
            config: Server configuration (host, port, backlog, timeouts).

        The socket is created lazily in bind().
        """
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._original_handlers: dict = {}

    @property
    def address(self) -> Tuple[str, int]:
        """Address actually bound (the real port when configured with 0)."""
        if self._socket is not None:
            host, port = self._socket.getsockname()[:2]
            return (host, port)
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restart without waiting for TIME_WAIT to expire
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses are written in one sendall(), send them right away
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # Wake up once a second to check the running flag
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers (main thread only)."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info("Received %s, initiating shutdown...", signal_name)
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen.

        Returns:
            The bound (host, port).

        Raises:
            OSError: If the address cannot be bound (in use, permission).
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error("Failed to bind to %s:%s: %s", self.config.host, self.config.port, e)
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._running = True
        return self.address

    def serve(self, connection_handler: Callable[[Connection], None]):
        """
        Run the accept loop until shutdown() is called.

        Args:
            connection_handler: Receives each new Connection. It must hand
                                the connection off and return quickly.
        """
        if self._socket is None:
            self.bind()

        self._setup_signals()
        host, port = self.address
        logger.info("Accepting connections on %s:%s", host, port)

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break  # Socket closed by shutdown()
                logger.error("Accept error: %s", e)
                continue

            logger.debug("Accepted connection from %s:%s", *client_address[:2])

            try:
                conn = Connection(
                    socket=client_socket,
                    address=client_address[:2] if client_address else None,
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                    max_request_size=self.config.max_request_size,
                )
                connection_handler(conn)
            except Exception:
                # A broken handoff must not take the acceptor down
                logger.exception("Failed to dispatch connection from %s", client_address)
                try:
                    client_socket.close()
                except OSError:
                    pass

    def shutdown(self):
        """Stop the accept loop. Safe to call more than once, from any thread."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        logger.info("Socket server stopped")
