"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

Writes one line per response the server sends:

    GET 127.0.0.1:52144 /index.html -> 200 (OK)
    POST 127.0.0.1:52150 /scripts/form.sh -> 500 (Internal Server Error)
    DELETE unknown /index.html -> 405 (Method Not Allowed)
    ──┬─── ────┬──────────── ─────┬──── ───────┬────────────────────
      │        │                  │            └── final status + text
      │        │                  └── request path (decoded)
      │        └── peer ip:port, "unknown" if the address is not known
      └── method as sent

Requests that never got a request line (timeouts, oversized requests,
rejected connections) are logged with "-" for the method and path.

Control characters in the method or path are written as escapes
("/a\\nb"), so a crafted request cannot add lines of its own.

Lines go to the "cgiserver.access" logger. The server attaches a stdout
StreamHandler to it (flushed after every record) and turns off
propagation, so access lines never mix with diagnostics on stderr.

If the router raises, the request is logged as 500 and the exception
re-raised for the server to answer.

=============================================================================
"""

import logging
import re
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..http.status_codes import HTTPStatus


ACCESS_LOGGER_NAME = "cgiserver.access"

# Placeholder for fields of a request that was never parsed
UNREAD = "-"

logger = logging.getLogger(ACCESS_LOGGER_NAME)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def _escape(text: str) -> str:
    return _CONTROL_CHARS.sub(
        lambda m: m.group().encode("unicode_escape").decode("ascii"), text
    )


@dataclass
class AccessLogEntry:
    """One access log record."""

    method: str
    client: str
    path: str
    status_code: int
    status_text: str

    def to_text(self) -> str:
        """Format as "<METHOD> <client> <path> -> <code> (<text>)"."""
        return (
            f"{_escape(self.method)} {self.client} {_escape(self.path)} "
            f"-> {self.status_code} ({self.status_text})"
        )


def log_access(
    client: str,
    status_code: int,
    status_text: str,
    method: str = UNREAD,
    path: str = UNREAD,
) -> None:
    """Write one access line. Also used by the server for early errors."""
    entry = AccessLogEntry(method, client, path, int(status_code), status_text)
    logger.info(entry.to_text())


class AccessLogMiddleware(Middleware):
    """
    Logs every routed request exactly once, after the response is known.

    Should be FIRST in the pipeline so it sees everything.
    """

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        try:
            response = next(request)
        except Exception:
            status = HTTPStatus.INTERNAL_SERVER_ERROR
            log_access(request.peer, status, status.phrase, request.method, request.path)
            raise

        log_access(
            request.peer, response.status, response.status_text,
            request.method, request.path,
        )
        return response
