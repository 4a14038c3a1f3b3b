"""
=============================================================================
CONNECTION HANDLING
=============================================================================

A Connection wraps one accepted client socket for its whole (short)
life: read one request, write one response, close.

=============================================================================
MESSAGE FRAMING
=============================================================================

TCP delivers a byte stream in arbitrary chunks, so one recv() is not one
request. We read until the request is fully delimited:

    ┌─────────────────────────────────────────────────────────────────┐
    │                    read_request() Flow                          │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                 │
    │   while no blank line (\r\n\r\n or \n\n):                       │
    │       recv() → buffer                                           │
    │       EOF with nothing read  → None (client went away)          │
    │       EOF with partial data  → return what we have              │
    │       buffer > max size      → RequestTooLarge                  │
    │                                                                 │
    │   if POST:                                                      │
    │       while body < Content-Length:                              │
    │           recv() → buffer       (EOF stops early)               │
    │                                                                 │
    │   return buffer up to the end of the body                       │
    │                                                                 │
    └─────────────────────────────────────────────────────────────────┘

Every recv() runs under the socket timeout; a client that stalls gets
RequestTimeout instead of holding a worker forever.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING
     │             │                                  │
     │             ▼                                  ▼
     └──────────► CLOSING ─────────────────────► CLOSED

There is no keep-alive: after WRITING the connection always closes.

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..http.request import find_header_end, parse_content_length


logger = logging.getLogger(__name__)


class RequestTooLarge(ValueError):
    """The client sent more than max_request_size bytes."""


class RequestTimeout(TimeoutError):
    """The client did not finish sending its request in time."""


class ConnectionState(Enum):
    """Connection lifecycle states, for logging and debugging."""

    NEW = "new"                # Just accepted, haven't read anything yet
    READING = "reading"        # Reading request data
    PROCESSING = "processing"  # Request parsed, handler is executing
    WRITING = "writing"        # Sending response data
    CLOSING = "closing"        # Shutdown sequence
    CLOSED = "closed"          # Socket released


@dataclass
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple, None if the peer is unknown.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
    """

    # Required parameters
    socket: socket.socket
    address: Optional[tuple[str, int]] = None

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    # Configuration (passed from ServerConfig)
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    max_request_size: int = 10 * 1024 * 1024

    # Internal state (not shown in repr for cleaner logs)
    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        Returns:
            Request bytes, or None if the client closed without sending
            anything.

        Raises:
            RequestTimeout: If a read times out.
            RequestTooLarge: If the request exceeds max_request_size.
        """
        self.state = ConnectionState.READING

        try:
            # ─────────────────────────────────────────────────────────────
            # STEP 1: Read until we have complete headers
            # ─────────────────────────────────────────────────────────────
            while find_header_end(self._buffer) is None:
                chunk = self._recv()
                if not chunk:
                    # Closed early: serve whatever arrived as the header block
                    return self._buffer or None
                self._append(chunk)

            offset, separator = find_header_end(self._buffer)
            header_section = self._buffer[:offset]
            body_start = offset + separator

            # ─────────────────────────────────────────────────────────────
            # STEP 2: Read the body (POST only)
            # ─────────────────────────────────────────────────────────────
            content_length = 0
            if header_section.split(None, 1)[:1] == [b"POST"]:
                content_length = self._parse_content_length(header_section)

            if body_start + content_length > self.max_request_size:
                raise RequestTooLarge(
                    f"Request too large: {body_start + content_length} bytes"
                )

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # Connection closed mid-body, parser answers 400
                self._append(chunk)

            return self._buffer[:body_start + content_length]

        except socket.timeout as e:
            raise RequestTimeout("Request read timeout") from e

    def _append(self, chunk: bytes) -> None:
        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

    def _recv(self) -> bytes:
        """socket.recv() that maps an abrupt disconnect to EOF."""
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """Find Content-Length in raw header bytes (0 if absent or invalid)."""
        header_str = headers.decode("utf-8", errors="replace")
        for line in header_str.splitlines()[1:]:
            name, colon, value = line.partition(":")
            if colon and name.strip().lower() == "content-length":
                return parse_content_length(value)
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes with sendall().

        Returns:
            True if send succeeded, False if the client is gone.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning("[%s] Send failed: %s", self.id, e)
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

            1. shutdown(SHUT_WR)  sends FIN, client sees end of response
            2. drain              read what the client still sends
            3. close()            release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass  # socket.timeout is an OSError too

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            "[%s] Connection closed after %.3fs", self.id, time.time() - self.created_at
        )

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
