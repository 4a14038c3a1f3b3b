"""
=============================================================================
PATH RESOLVER & GUARD
=============================================================================

Every request path goes through PathGuard.resolve() before anything
touches the filesystem. It is the only place that decides whether a path
may be served.

=============================================================================
SECURITY: PATH TRAVERSAL ATTACK
=============================================================================

    ATTACK ATTEMPT:
    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /../../../etc/passwd HTTP/1.0                                  │
    │  GET /docs/%2e%2e/%2e%2e/etc/passwd HTTP/1.0                        │
    │  GET /link-to-etc/passwd HTTP/1.0     (symlink inside the root)     │
    │                                                                     │
    │  Our protection:                                                    │
    │  1. Join the path onto the canonical root                           │
    │  2. Resolve the result (follow .. and symlinks)                     │
    │  3. If it is not inside the root, it is FORBIDDEN                   │
    └─────────────────────────────────────────────────────────────────────┘

    String checks like path.startswith("scripts/") say nothing about
    where "scripts/../../x" ends up, so containment is decided on the
    CANONICAL path. The name rules are applied twice: to the segments
    the client wrote (so "/secret/../x" and a symlink called ".env" are
    refused) and to the canonical path.

=============================================================================
CLASSIFICATION
=============================================================================

    requested path
          │
    forbidden name among the segments? ────────► FORBIDDEN
          │
          ▼
    ┌──────────────────────────────┐
    │ canonical = resolve(root/p)  │
    └──────────────┬───────────────┘
                   │
        outside root? ─────────────────────────► FORBIDDEN
        segment in forbidden_dirs? ────────────► FORBIDDEN
        last segment in forbidden_files? ──────► FORBIDDEN
        any segment starting with "."? ────────► FORBIDDEN
                   │
                   ▼
              os.stat()
        directory ─────────────────────────────► DIRECTORY
        regular file ──────────────────────────► FILE
        anything else / stat failed ───────────► MISSING

=============================================================================
"""

import logging
import os
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Sequence, Union


logger = logging.getLogger(__name__)


DEFAULT_FORBIDDEN_DIRS = ("forbidden", "secret")
DEFAULT_FORBIDDEN_FILES = ("forbidden.html",)
DEFAULT_SCRIPTS_DIR = "scripts"


class PathKind(Enum):
    """What a requested path turned out to be."""

    FORBIDDEN = "forbidden"
    DIRECTORY = "directory"
    FILE = "file"
    MISSING = "missing"


@dataclass(frozen=True)
class ResolvedPath:
    """
    Result of PathGuard.resolve().

    Attributes:
        kind:      Classification of the path
        path:      Canonical absolute filesystem path
        requested: The request path exactly as the client sent it (decoded)

    A non-FORBIDDEN ResolvedPath always lies inside the canonical root.
    """

    kind: PathKind
    path: Path
    requested: str

    @property
    def is_forbidden(self) -> bool:
        return self.kind is PathKind.FORBIDDEN


class PathGuard:
    """
    Resolves request paths against the root folder and classifies them.

    Example:
        guard = PathGuard("/srv/www")
        guard.resolve("/index.html")      # FILE  /srv/www/index.html
        guard.resolve("/../etc/passwd")   # FORBIDDEN
        guard.resolve("/secret/key.txt")  # FORBIDDEN
        guard.resolve("/.git/config")     # FORBIDDEN
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        forbidden_dirs: Iterable[str] = DEFAULT_FORBIDDEN_DIRS,
        forbidden_files: Iterable[str] = DEFAULT_FORBIDDEN_FILES,
        scripts_dir: str = DEFAULT_SCRIPTS_DIR,
    ):
        """
        Args:
            root_dir: Root folder; must exist and be a directory.
            forbidden_dirs: Names that may not appear as any path segment.
            forbidden_files: Names that may not be the final segment.
            scripts_dir: Subdirectory (relative to root) holding scripts.

        Raises:
            FileNotFoundError: If the root does not exist.
            NotADirectoryError: If the root is not a directory.
        """
        # strict=True: a missing root is a startup error, not a 404
        self.root_dir = Path(root_dir).resolve(strict=True)
        if not self.root_dir.is_dir():
            raise NotADirectoryError(f"Root is not a directory: {self.root_dir}")

        self.forbidden_dirs = frozenset(forbidden_dirs)
        self.forbidden_files = frozenset(forbidden_files)
        self.scripts_root = (self.root_dir / scripts_dir).resolve()

    def resolve(self, requested: str) -> ResolvedPath:
        """
        Resolve and classify a request path.

        Args:
            requested: Decoded request path, e.g. "/docs/index.html".
        """
        # ─────────────────────────────────────────────────────────────────
        # CANONICALIZE
        # ─────────────────────────────────────────────────────────────────
        relative = requested.lstrip("/")
        if "\0" in relative:
            return ResolvedPath(PathKind.FORBIDDEN, self.root_dir, requested)

        # Names in the request itself count, even if ".." or a symlink
        # would take the canonical path somewhere else
        segments = [s for s in relative.split("/") if s not in ("", ".", "..")]
        if self._has_forbidden_name(segments):
            logger.debug("Forbidden path: %r", requested)
            return ResolvedPath(PathKind.FORBIDDEN, self.root_dir / relative, requested)

        try:
            canonical = (self.root_dir / relative).resolve()
        except (OSError, RuntimeError, ValueError) as e:
            # Symlink loops and the like: nothing we can vouch for
            logger.debug("Cannot resolve %r: %s", requested, e)
            return ResolvedPath(PathKind.FORBIDDEN, self.root_dir / relative, requested)

        # ─────────────────────────────────────────────────────────────────
        # GUARD
        # ─────────────────────────────────────────────────────────────────
        if self._is_forbidden(canonical):
            logger.debug("Forbidden path: %r -> %s", requested, canonical)
            return ResolvedPath(PathKind.FORBIDDEN, canonical, requested)

        # ─────────────────────────────────────────────────────────────────
        # CLASSIFY
        # ─────────────────────────────────────────────────────────────────
        try:
            info = os.stat(canonical)
        except (OSError, ValueError):
            return ResolvedPath(PathKind.MISSING, canonical, requested)

        if stat.S_ISDIR(info.st_mode):
            kind = PathKind.DIRECTORY
        elif stat.S_ISREG(info.st_mode):
            kind = PathKind.FILE
        else:
            # Sockets, FIFOs, devices
            kind = PathKind.MISSING

        return ResolvedPath(kind, canonical, requested)

    def is_script(self, resolved: ResolvedPath) -> bool:
        """Check if a resolved FILE lives under the scripts directory."""
        if resolved.kind is not PathKind.FILE:
            return False
        try:
            resolved.path.relative_to(self.scripts_root)
        except ValueError:
            return False
        return True

    def _is_forbidden(self, canonical: Path) -> bool:
        try:
            parts = canonical.relative_to(self.root_dir).parts
        except ValueError:
            logger.warning("Path traversal attempt: %s", canonical)
            return True

        return self._has_forbidden_name(parts)

    def _has_forbidden_name(self, parts: Sequence[str]) -> bool:
        if not parts:
            return False  # The root itself

        if parts[-1] in self.forbidden_files:
            return True

        for part in parts:
            if part in self.forbidden_dirs or part.startswith("."):
                return True

        return False
