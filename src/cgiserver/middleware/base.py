"""
=============================================================================
MIDDLEWARE PIPELINE
=============================================================================

Middleware wraps the router: it sees every request on the way in and
every response on the way out, and may short-circuit or re-raise.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   Request ────────────────────────────────────────►                 │
    │                                                                     │
    │   ┌──────────────┐        ┌──────────────────────┐                  │
    │   │  AccessLog   │──────► │  RequestRouter       │                  │
    │   │  Middleware  │        │  (final handler)     │                  │
    │   └──────┬───────┘        └──────────┬───────────┘                  │
    │          │ [after]                   │                              │
    │          │ one log line              ▼                              │
    │                                                                     │
    │   ◄──────────────────────────────────────────────── Response        │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

First added = outermost:

    pipeline = MiddlewarePipeline().add(AccessLogMiddleware())
    handler = pipeline.wrap(router.handle)
    response = handler(request)

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterator, List

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# NextHandler is the next middleware, or the router at the end of the chain
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

    Implementations receive the request and the next handler; they must
    call next(request) unless they answer the request themselves.

        class Timing(Middleware):
            def __call__(self, request, next):
                started = time.perf_counter()
                response = next(request)
                logger.debug("took %.3fs", time.perf_counter() - started)
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            next: The next handler in the chain

        Returns:
            HTTP response (either from next() or short-circuited)
        """

    @property
    def name(self) -> str:
        """Get the middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """Chains middleware around a final handler, first added outermost."""

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware (innermost so far). Returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug("Added middleware: %s", middleware.name)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap a handler with all middleware in the pipeline.

        Given [MW1, MW2] and handler the result is MW1 → MW2 → handler,
        so the list is wrapped in reverse.
        """
        current = handler

        for middleware in reversed(self._middleware):
            current = self._bind(middleware, current)

        return current

    def _bind(self, middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)
