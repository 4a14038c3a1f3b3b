"""
=============================================================================
REQUEST ROUTER
=============================================================================

Decides how a parsed request is answered. There are no registered routes:
the URL path maps straight onto the filesystem, and the kind of thing it
points at picks the strategy.

=============================================================================
DISPATCH
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        DISPATCH ORDER                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   method not GET/POST ─────────────────────────► 405 (no body)      │
    │        │                                                            │
    │        ▼                                                            │
    │   PathGuard.resolve(request.path)                                   │
    │        │                                                            │
    │        ├─ FORBIDDEN ───────────────────────────► 403                │
    │        ├─ DIRECTORY ── DirectoryLister ────────► 200 text/html      │
    │        │                  └─ OSError ──────────► 500                │
    │        ├─ FILE under scripts/ ── ScriptExecutor► 200 / Status / 500 │
    │        ├─ FILE ─────── StaticFileHandler ──────► 200 + MIME type    │
    │        │                  └─ OSError ──────────► 404                │
    │        └─ MISSING ─────────────────────────────► 404                │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

First match wins. The guard always runs before anything looks at the
filesystem, and files under scripts/ are never served as content.

Every response echoes the request's version token.

=============================================================================
"""

import logging
from typing import Callable

from .request import HTTPRequest
from .response import (
    HTTPResponse,
    ResponseBuilder,
    forbidden,
    internal_error,
    method_not_allowed,
    not_found,
)
from .status_codes import HTTPStatus
from ..handlers.listing import DirectoryLister
from ..handlers.paths import PathGuard, PathKind, ResolvedPath
from ..handlers.scripts import (
    ScriptExecutionError,
    ScriptExecutor,
    build_invocation,
    script_response,
)
from ..handlers.static import StaticFileHandler


logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIASES
# =============================================================================

# Handler: A function that takes a request and returns a response
Handler = Callable[[HTTPRequest], HTTPResponse]

ALLOWED_METHODS = ("GET", "POST")


class RequestRouter:
    """
    Maps requests onto the filesystem under the root folder.

    Example:
        guard = PathGuard("/srv/www")
        router = RequestRouter(
            guard,
            DirectoryLister(guard.root_dir),
            StaticFileHandler(),
            ScriptExecutor(timeout=30.0),
        )
        response = router.handle(request)
    """

    def __init__(
        self,
        guard: PathGuard,
        lister: DirectoryLister,
        static: StaticFileHandler,
        executor: ScriptExecutor,
    ):
        self.guard = guard
        self.lister = lister
        self.static = static
        self.executor = executor

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Produce the response for one request.

        Expected failures (forbidden, missing, unreadable, script errors)
        become error responses here. Anything else propagates.
        """
        version = request.version

        if request.method not in ALLOWED_METHODS:
            return method_not_allowed(version)

        resolved = self.guard.resolve(request.path)

        if resolved.kind is PathKind.FORBIDDEN:
            return forbidden(version)

        if resolved.kind is PathKind.DIRECTORY:
            return self._list_directory(resolved, version)

        if resolved.kind is PathKind.FILE:
            if self.guard.is_script(resolved):
                return self._run_script(resolved, request)
            return self._serve_file(resolved, version)

        return not_found(version)

    def _list_directory(self, resolved: ResolvedPath, version: str) -> HTTPResponse:
        try:
            page = self.lister.render(resolved.path)
        except OSError as e:
            logger.error("Cannot list %s: %s", resolved.path, e)
            return internal_error(version)

        return (ResponseBuilder(version)
            .status(HTTPStatus.OK)
            .html(page)
            .close_connection()
            .build())

    def _run_script(self, resolved: ResolvedPath, request: HTTPRequest) -> HTTPResponse:
        invocation = build_invocation(resolved.path, request)
        try:
            result = self.executor.execute(invocation)
        except ScriptExecutionError as e:
            logger.error("%s", e)
            return internal_error(request.version)

        return script_response(result, request.version)

    def _serve_file(self, resolved: ResolvedPath, version: str) -> HTTPResponse:
        try:
            return self.static.serve(resolved.path, version)
        except OSError as e:
            # Existed when resolved, unreadable now: do not reveal which
            logger.info("Cannot read %s: %s", resolved.path, e)
            return not_found(version)
