"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes read from a connection into an HTTPRequest.

=============================================================================
WHAT A REQUEST LOOKS LIKE
=============================================================================

    POST /scripts/form.sh?lang=en HTTP/1.0\r\n     ← request line
    Host: localhost:8080\r\n                        ← headers
    Content-Type: application/x-www-form-urlencoded\r\n
    Content-Length: 7\r\n
    \r\n                                            ← blank line
    a=1&b=2                                         ← body (POST only)

The request line must have EXACTLY three whitespace-separated tokens:

    METHOD  TARGET                  VERSION
    ──┬───  ──────────┬───────────  ───┬────
      │               │                │
      │               │                └── echoed back in the status line
      │               └── split at the first "?" into path + query
      └── GET and POST are handled, anything else gets 405 later

Anything else on the first line means the client is not speaking HTTP to
us; the connection is dropped without a response.

=============================================================================
LENIENT PARSING
=============================================================================

- Lines may end in CRLF or a bare LF.
- A header line without ":" is ignored.
- Header names keep their case; a repeated header overwrites the earlier
  one (last duplicate wins).
- The version token is not validated, only echoed.

=============================================================================
FORM PARAMETERS
=============================================================================

The query string and (for POST) the body are both decoded as
application/x-www-form-urlencoded pairs and merged into one mapping,
query first, body second, so a body value replaces a query value with
the same name:

    POST /scripts/x?a=1&b=2   body: b=3&c=4
        → {"a": "1", "b": "3", "c": "4"}

The merged mapping is what scripts receive as Query_<name> variables.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
from urllib.parse import parse_qsl, unquote


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code to answer with. When `respond` is False
    the request was not HTTP at all (bad request line) and the server
    closes the connection without writing anything.

        400 Bad Request       - Body shorter than its Content-Length
        413 Payload Too Large - Request exceeds max_request_size

    Once the request line has been read, `request_line` holds its
    (method, path, version) so the answer can echo the client's version.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        respond: bool = True,
        request_line: Optional[Tuple[str, str, str]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.respond = respond
        self.request_line = request_line


# Matches both "\r\n\r\n" and "\n\n" (and the mixed forms)
_HEADER_END = re.compile(rb"\r?\n\r?\n")
_LINE_BREAK = re.compile(r"\r?\n")


def find_header_end(data: bytes) -> Optional[Tuple[int, int]]:
    """
    Locate the blank line that ends the header block.

    Returns:
        (offset, separator_length) or None if the headers are incomplete.
    """
    match = _HEADER_END.search(data)
    if match is None:
        return None
    return match.start(), match.end() - match.start()


def parse_content_length(value: Optional[str]) -> int:
    """Parse a Content-Length value; missing, invalid or negative → 0."""
    if not value:
        return 0
    try:
        length = int(value.strip())
    except ValueError:
        return 0
    return max(length, 0)


def format_peer(address: Optional[Tuple[str, int]]) -> str:
    """Peer as "ip:port" for log lines, or "unknown"."""
    if not address or not address[0]:
        return "unknown"
    return f"{address[0]}:{address[1]}"


@dataclass(frozen=True)
class HTTPRequest:
    """
    A parsed HTTP request.

    Built once per accepted connection and never modified afterwards.

    Attributes:
        method:         Request method token ("GET", "POST", ...)
        target:         Raw request target, query string included
        path:           Target before the first "?", percent-decoded
        version:        Version token, echoed in the response status line
        query_string:   Raw text after the first "?" ("" if none)
        headers:        Header name → value, case preserved
        body:           Raw body bytes (POST only)
        form_params:    Query + form body pairs, body wins on collisions
        client_address: (ip, port) of the peer, None if unknown
    """

    method: str
    target: str
    path: str
    version: str = "HTTP/1.0"
    query_string: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    form_params: Dict[str, str] = field(default_factory=dict)
    client_address: Optional[Tuple[str, int]] = None

    @property
    def peer(self) -> str:
        return format_peer(self.client_address)

    def get_header(self, name: str, default: str = "") -> str:
        """
        Case-insensitive header lookup.

        Headers are stored with their original case (scripts see them
        verbatim), so lookups by the server itself go through here.
        """
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw Request Bytes
              │
              ▼
        ┌───────────────────────────────────────────────────────────────┐
        │  1. Size check            too large → HTTPParseError(413)     │
        │  2. Split at blank line   headers | body                      │
        │  3. Request line          != 3 tokens → drop connection       │
        │  4. Headers               "Name: Value", malformed skipped    │
        │  5. Body (POST only)      exactly Content-Length bytes        │
        │  6. Form params           query pairs, then body pairs        │
        └───────────────────────────────────────────────────────────────┘
              │
              ▼
        HTTPRequest
    """

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        """
        Args:
            max_request_size: Maximum allowed request size in bytes.
        """
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: Optional[Tuple[str, int]] = None,
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw request bytes as read by Connection.read_request().
            client_address: Client's (ip, port) tuple for logging.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        # ─────────────────────────────────────────────────────────────────
        # SPLIT HEADERS AND BODY
        # ─────────────────────────────────────────────────────────────────
        # A client that closed its side without sending the blank line
        # still gets served: everything we have is the header block.
        header_end = find_header_end(data)
        if header_end is None:
            header_bytes, body = data, b""
        else:
            offset, separator = header_end
            header_bytes, body = data[:offset], data[offset + separator:]

        header_section = header_bytes.decode("utf-8", errors="replace")
        lines = _LINE_BREAK.split(header_section)

        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        path_part, _, query_string = target.partition("?")
        path = unquote(path_part)

        # ─────────────────────────────────────────────────────────────────
        # BODY (POST only)
        # ─────────────────────────────────────────────────────────────────
        if method == "POST":
            content_length = parse_content_length(_header(headers, "content-length"))
            if len(body) < content_length:
                raise HTTPParseError(
                    f"Incomplete body: expected {content_length} bytes, got {len(body)}",
                    request_line=(method, path, version),
                )
            body = body[:content_length]
        else:
            body = b""

        return HTTPRequest(
            method=method,
            target=target,
            path=path,
            version=version,
            query_string=query_string,
            headers=headers,
            body=body,
            form_params=self._parse_form_params(query_string, body),
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        """
        Split "METHOD TARGET VERSION" into its three tokens.

        Raises:
            HTTPParseError: (respond=False) unless there are exactly three.
        """
        parts = line.split()
        if len(parts) != 3:
            raise HTTPParseError(
                f"Invalid request line: {line!r}",
                respond=False,
            )
        method, target, version = parts
        return method, target, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse "Name: Value" lines into a dictionary.

        Split once on ":", both sides trimmed. Lines without a colon or
        with an empty name are skipped. Repeated names overwrite.
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                break

            name, colon, value = line.partition(":")
            name = name.strip()
            if not colon or not name:
                continue  # Skip malformed headers (lenient parsing)

            headers[name] = value.strip()

        return headers

    def _parse_form_params(self, query_string: str, body: bytes) -> Dict[str, str]:
        """Merge query-string pairs with form-body pairs, last write wins."""
        params: Dict[str, str] = {}

        for key, value in parse_qsl(query_string, keep_blank_values=True):
            params[key] = value

        if body:
            form = body.decode("utf-8", errors="replace")
            for key, value in parse_qsl(form, keep_blank_values=True):
                params[key] = value

        return params


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    """Case-insensitive lookup on a plain header dict."""
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def parse_request(
    data: bytes,
    client_address: Optional[Tuple[str, int]] = None,
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """
    Parse an HTTP request in one call.

    Use RequestParser directly to parse many requests with the same
    settings.
    """
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address)
