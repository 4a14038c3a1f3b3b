"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

Request parsing, response serialization and dispatch for a one-request-
per-connection HTTP server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │   b"GET /a?x=1 HTTP/1.0\r\n..."  →  HTTPRequest(method="GET", ...)  │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE BUILDER (response.py)                                      │
    │   ResponseBuilder().status(200).html(...)  →  b"HTTP/1.0 200 OK..." │
    ├─────────────────────────────────────────────────────────────────────┤
    │ ROUTER (router.py, import it from cgiserver.http.router)            │
    │   path → forbidden / listing / script / static file / 404           │
    ├─────────────────────────────────────────────────────────────────────┤
    │ STATUS CODES (status_codes.py), MIME TYPES (mime_types.py)          │
    └─────────────────────────────────────────────────────────────────────┘

    REQUEST:                          RESPONSE:
    ─────────                         ──────────
    GET /path HTTP/1.0\r\n            HTTP/1.0 200 OK\r\n
    Header: Value\r\n                 Header: Value\r\n
    \r\n                              Connection: close\r\n
    [body]                            \r\n
                                      [body]

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    error_response,
    forbidden,           # 403 Forbidden
    not_found,           # 404 Not Found
    method_not_allowed,  # 405 Method Not Allowed
    internal_error,      # 500 Internal Server Error
)
from .status_codes import HTTPStatus, reason_phrase, parse_status
from .mime_types import get_mime_type, get_content_type

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "error_response",
    "forbidden",
    "not_found",
    "method_not_allowed",
    "internal_error",

    # Status codes
    "HTTPStatus",
    "reason_phrase",
    "parse_status",

    # MIME types
    "get_mime_type",
    "get_content_type",
]
