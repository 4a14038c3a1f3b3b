"""
=============================================================================
HANDLERS MODULE
=============================================================================

The filesystem side of the server: deciding what a path is, and turning
it into a response body.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Component          │ Job                                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │ PathGuard          │ Canonicalize, reject traversal / hidden /      │
    │                    │ forbidden names, classify as dir/file/missing  │
    ├─────────────────────────────────────────────────────────────────────┤
    │ DirectoryLister    │ HTML index of a directory                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │ StaticFileHandler  │ File bytes + Content-Type                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │ ScriptExecutor     │ Run scripts/ files, relay their output         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .paths import PathGuard, PathKind, ResolvedPath
from .listing import DirectoryLister
from .static import StaticFileHandler
from .scripts import (
    ScriptExecutor,
    ScriptExecutionError,
    ScriptInvocation,
    ScriptResult,
    build_invocation,
    parse_script_output,
    script_response,
)

__all__ = [
    # Path resolution
    "PathGuard",
    "PathKind",
    "ResolvedPath",

    # Content
    "DirectoryLister",
    "StaticFileHandler",

    # Scripts
    "ScriptExecutor",
    "ScriptExecutionError",
    "ScriptInvocation",
    "ScriptResult",
    "build_invocation",
    "parse_script_output",
    "script_response",
]
