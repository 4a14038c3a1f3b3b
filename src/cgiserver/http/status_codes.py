"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can produce, with their reason phrases.

=============================================================================
STATUS CODES USED BY THE SERVER
=============================================================================

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  200   │ OK - static file, directory listing, successful script   │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  400   │ Bad Request - POST body shorter than Content-Length       │
    │  403   │ Forbidden - path failed the traversal / name guard        │
    │  404   │ Not Found - missing or unreadable file                    │
    │  405   │ Method Not Allowed - anything but GET and POST            │
    │  408   │ Request Timeout - client too slow to send the request     │
    │  413   │ Payload Too Large - request over max_request_size         │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  500   │ Internal Server Error - listing failed, script failed     │
    │  503   │ Service Unavailable - worker queue is full                │
    └────────┴───────────────────────────────────────────────────────────┘

Scripts may declare any other status with a "Status:" header line, so the
response model carries a plain int and looks the phrase up here.

=============================================================================
"""

from enum import IntEnum
from typing import Optional


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    This enum extends IntEnum, so status codes can be used as integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.OK.phrase
        'OK'
    """

    # 2xx SUCCESS
    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204

    # 3xx REDIRECTION
    MOVED_PERMANENTLY = 301
    FOUND = 302
    SEE_OTHER = 303
    NOT_MODIFIED = 304
    TEMPORARY_REDIRECT = 307
    PERMANENT_REDIRECT = 308

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    GONE = 410
    PAYLOAD_TOO_LARGE = 413
    UNSUPPORTED_MEDIA_TYPE = 415
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.0 404 Not Found
                     ─── ─────────
                      │      │
                      │      └── Reason phrase
                      └───────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")


def reason_phrase(code: int, default: str = "Unknown") -> str:
    """
    Look up the reason phrase for any integer status code.

    Codes outside the enum (a script may declare 299 or 599) get `default`.

    Examples:
        >>> reason_phrase(404)
        'Not Found'
        >>> reason_phrase(299)
        'Unknown'
    """
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return default


def parse_status(value: str) -> Optional[tuple[int, Optional[str]]]:
    """
    Parse a status declaration like "404 Not Found" or "201".

    Returns (code, reason) where reason is None when only the code was
    given, or None if the value is not a three-digit code.
    """
    parts = value.strip().split(None, 1)
    if not parts or len(parts[0]) != 3 or not parts[0].isdigit():
        return None

    code = int(parts[0])
    if code < 100:
        return None

    reason = parts[1].strip() if len(parts) > 1 else None
    return code, reason or None


# =============================================================================
# REASON PHRASES
# =============================================================================

_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.ACCEPTED: "Accepted",
    HTTPStatus.NO_CONTENT: "No Content",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.SEE_OTHER: "See Other",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.TEMPORARY_REDIRECT: "Temporary Redirect",
    HTTPStatus.PERMANENT_REDIRECT: "Permanent Redirect",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.CONFLICT: "Conflict",
    HTTPStatus.GONE: "Gone",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.UNSUPPORTED_MEDIA_TYPE: "Unsupported Media Type",
    HTTPStatus.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    HTTPStatus.TOO_MANY_REQUESTS: "Too Many Requests",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.BAD_GATEWAY: "Bad Gateway",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.GATEWAY_TIMEOUT: "Gateway Timeout",
}
