"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds the single response written back on each connection.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  STATUS LINE     HTTP/1.0 200 OK\r\n                                │
    │                  ───┬──── ─┬─ ─┬─                                   │
    │                     │      │   └── reason (looked up or overridden) │
    │                     │      └────── status code                      │
    │                     └───────────── echoed from the request          │
    │                                                                     │
    │  HEADERS         Content-Type: text/html; charset=utf-8\r\n         │
    │                  Content-Length: 2\r\n        ← auto, if body       │
    │                  Connection: close\r\n        ← auto, always        │
    │                                                                     │
    │  EMPTY LINE      \r\n                                               │
    │                                                                     │
    │  BODY            hi                                                 │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Headers go out in the order they were set. Error responses produced by
the server itself have no body, so they are just three lines:

    HTTP/1.0 403 Forbidden\r\n
    Connection: close\r\n
    \r\n

No Date or Server header is added.

=============================================================================
BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder(version=request.version)
        .status(HTTPStatus.OK)
        .file(content, "index.html")
        .close_connection()
        .build())

Each method returns `self` so calls chain; build() produces the
HTTPResponse.

=============================================================================
"""

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Dict, Optional, Union

from .status_codes import HTTPStatus, reason_phrase
from .mime_types import get_content_type


DEFAULT_VERSION = "HTTP/1.0"


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    `status` is a plain int so that whatever a script declares (say
    "Status: 299 Custom") can be carried through. `reason` overrides the
    standard phrase when set.

        Handler returns          to_bytes()              Socket sends
        HTTPResponse    ─────►   serializes    ─────►    raw bytes
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = DEFAULT_VERSION
    reason: Optional[str] = None

    @property
    def status_text(self) -> str:
        """Reason phrase sent after the status code."""
        return self.reason or reason_phrase(int(self.status))

    @property
    def status_line(self) -> str:
        """
        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.0 404 Not Found"
        """
        return f"{self.version} {int(self.status)} {self.status_text}"

    def has_header(self, name: str) -> bool:
        """Case-insensitive header presence check."""
        wanted = name.lower()
        return any(key.lower() == wanted for key in self.headers)

    def to_bytes(self) -> bytes:
        """
        Serialize the response for socket.sendall().

            HTTP/1.0 200 OK\r\n          ← Status line
            Content-Type: text/plain\r\n ← Headers in insertion order
            Content-Length: 5\r\n        ← Added when body is non-empty
            Connection: close\r\n        ← Added when missing
            \r\n
            hello
        """
        # Copy headers to avoid modifying original
        response_headers = dict(self.headers)

        if self.body and not self.has_header("Content-Length"):
            response_headers["Content-Length"] = str(len(self.body))

        # One request per connection, always
        if not self.has_header("Connection"):
            response_headers["Connection"] = "close"

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

        builder.status(200).header("X-Key", "val").html(page).build()
        ────────┬───────────────────┬─────────────────┬────────────┬───
                └───────────────────┴─────────────────┴────────────┘
                         All return 'self' except build()
    """

    def __init__(self, version: str = DEFAULT_VERSION):
        """
        Args:
            version: Version token for the status line, normally the
                     one the client sent.
        """
        self._status: int = HTTPStatus.OK
        self._reason: Optional[str] = None
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._version = version

    # =========================================================================
    # STATUS METHODS
    # =========================================================================

    def status(self, status: int, reason: Optional[str] = None) -> "ResponseBuilder":
        """
        Set the HTTP status code.

        Args:
            status: HTTPStatus member or any three-digit int
            reason: Custom reason phrase (standard phrase if None)
        """
        self._status = status
        self._reason = reason
        return self

    # =========================================================================
    # HEADER METHODS
    # =========================================================================

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """Add a single response header."""
        self._headers[name] = value
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Set Connection: close."""
        self._headers["Connection"] = "close"
        return self

    # =========================================================================
    # BODY METHODS
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the response body (string auto-encoded to UTF-8)."""
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def html(self, html: str) -> "ResponseBuilder":
        """Set an HTML response body with a UTF-8 text/html Content-Type."""
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        self._body = html.encode("utf-8")
        return self

    def file(self, content: bytes, filename: Union[str, PurePath]) -> "ResponseBuilder":
        """
        Set a file response body.

        Content-Type comes from the file extension, and Content-Length is
        set explicitly so it follows Content-Type on the wire.
        """
        self._headers["Content-Type"] = get_content_type(filename)
        self._headers["Content-Length"] = str(len(content))
        self._body = content
        return self

    # =========================================================================
    # BUILD METHODS
    # =========================================================================

    def build(self) -> HTTPResponse:
        """Build and return the HTTPResponse object."""
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
            version=self._version,
            reason=self._reason,
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# Errors produced by the server itself carry no body: just the status
# line and Connection: close.

def error_response(
    status: int,
    version: str = DEFAULT_VERSION,
    body: Union[str, bytes] = b"",
) -> HTTPResponse:
    """
    Create a bodiless (or plain) error response.

    Args:
        status: HTTP status code
        version: Version token to echo
        body: Optional body, e.g. a failed script's stderr
    """
    builder = ResponseBuilder(version).status(status).close_connection()
    if body:
        builder.body(body)
    return builder.build()


def forbidden(version: str = DEFAULT_VERSION) -> HTTPResponse:
    """403 Forbidden: the path failed the traversal / name guard."""
    return error_response(HTTPStatus.FORBIDDEN, version)


def not_found(version: str = DEFAULT_VERSION) -> HTTPResponse:
    """404 Not Found."""
    return error_response(HTTPStatus.NOT_FOUND, version)


def method_not_allowed(version: str = DEFAULT_VERSION) -> HTTPResponse:
    """405 Method Not Allowed, sent for anything but GET and POST."""
    return error_response(HTTPStatus.METHOD_NOT_ALLOWED, version)


def internal_error(
    version: str = DEFAULT_VERSION,
    body: Union[str, bytes] = b"",
) -> HTTPResponse:
    """500 Internal Server Error, optionally carrying a body."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, version, body)
