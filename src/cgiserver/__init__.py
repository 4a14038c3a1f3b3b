"""
=============================================================================
CGISERVER: STATIC FILES AND CGI-STYLE SCRIPTS OVER RAW SOCKETS
=============================================================================

A small multi-threaded HTTP server built on the standard library only.
Given a root folder it:

    GET  /some/dir/          → HTML listing of the directory
    GET  /some/file.css      → file bytes with a MIME type from the extension
    GET  /scripts/hello      → runs the executable, returns its stdout
    POST /scripts/hello      → same, request body on the script's stdin
    anything under forbidden/, secret/, forbidden.html, dot-files → 403

One request per connection, always answered with `Connection: close`.

=============================================================================
PACKAGE LAYOUT
=============================================================================

    cgiserver/
    ├── core/          sockets, connections, worker pool
    ├── http/          request parsing, response building, status codes,
    │                  MIME types, router
    ├── handlers/      path guard, directory listing, static files, scripts
    ├── middleware/    pipeline + access log
    ├── config.py      ServerConfig (defaults / env / CLI)
    ├── server.py      HTTPServer, wires everything together
    └── __main__.py    python -m cgiserver PORT ROOT_FOLDER

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer
from .config import ServerConfig

__all__ = ["HTTPServer", "ServerConfig", "__version__"]
