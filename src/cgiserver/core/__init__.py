"""
=============================================================================
CORE NETWORKING
=============================================================================

Sockets and threads, with no HTTP semantics:

    SocketServer   listening socket + accept loop (one thread)
    Connection     one client socket: framed read, sendall, close
    ThreadPool     bounded workers; a full queue means "reject with 503"

    accept() ──► Connection ──► ThreadPool.submit() ──► worker runs the
                                                        HTTP pipeline

One request per connection: the worker reads, answers and closes.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTimeout, RequestTooLarge
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",     # TCP acceptor
    "Connection",       # Wrapper for client socket
    "ConnectionState",  # Connection lifecycle states
    "RequestTimeout",   # Client too slow → 408
    "RequestTooLarge",  # Over max_request_size → 413
    "ThreadPool",       # Worker threads
]
