"""
Middleware wrapped around the request router.

    pipeline = MiddlewarePipeline().add(AccessLogMiddleware())
    handler = pipeline.wrap(router.handle)
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import ACCESS_LOGGER_NAME, AccessLogEntry, AccessLogMiddleware, log_access

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "ACCESS_LOGGER_NAME",
    "AccessLogEntry",
    "AccessLogMiddleware",
    "log_access",
]
