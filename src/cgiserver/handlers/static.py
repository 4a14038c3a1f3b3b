"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves regular files from the root folder.

By the time a path gets here PathGuard has already classified it as a
FILE outside the scripts directory, so this module only reads and labels
the bytes:

    HTTP/1.0 200 OK
    Content-Type: text/html; charset=utf-8     ← from the extension
    Content-Length: 2                          ← exact byte count
    Connection: close

    hi

The whole file is read into memory; there is no range or conditional
request support.

=============================================================================
"""

import logging
from pathlib import Path

from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class StaticFileHandler:
    """Reads a file and wraps it in a 200 response."""

    def serve(self, path: Path, version: str = "HTTP/1.0") -> HTTPResponse:
        """
        Build the response for a regular file.

        Args:
            path: Canonical path of the file.
            version: Version token to echo in the status line.

        Raises:
            OSError: If the file cannot be read (removed since it was
                     resolved, permission denied).
        """
        content = path.read_bytes()

        return (ResponseBuilder(version)
            .status(HTTPStatus.OK)
            .file(content, path.name)
            .close_connection()
            .build())
