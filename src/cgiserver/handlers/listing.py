"""
=============================================================================
DIRECTORY LISTING
=============================================================================

Renders the HTML index returned for a directory request.

    GET /docs/ HTTP/1.0

    <h1>Index of /docs/</h1>
    <ul>
        <li><a href="/">..</a></li>
        <li><a href="/docs/guide.txt">guide.txt</a></li>
        <li><a href="/docs/images/">images/</a></li>
    </ul>

- Direct children only, sorted by name so the page is deterministic.
- Links are absolute paths from the root, forward slashes on every
  platform, percent-encoded; link text is HTML-escaped.
- Directories get a trailing "/" in both the link and the text.
- The ".." entry is left out at the root.

Entries are listed as they are on disk. Whether a link may be followed
is decided by PathGuard when the next request comes in.

=============================================================================
"""

import html
import logging
from pathlib import Path, PurePosixPath
from typing import Union
from urllib.parse import quote


logger = logging.getLogger(__name__)


class DirectoryLister:
    """
    Builds directory index pages relative to a root folder.

    Example:
        lister = DirectoryLister("/srv/www")
        page = lister.render(Path("/srv/www/docs"))
    """

    def __init__(self, root_dir: Union[str, Path]):
        self.root_dir = Path(root_dir).resolve()

    def render(self, directory: Path) -> str:
        """
        Render the listing page for `directory`.

        Raises:
            OSError: If the directory cannot be enumerated (vanished,
                     permission denied). Callers answer with 500.
        """
        url_path = self._url_for(directory, is_dir=True)
        entries = []

        if directory != self.root_dir:
            parent = self._url_for(directory.parent, is_dir=True)
            entries.append(f'<li><a href="{parent}">..</a></li>')

        # Sorted by name for consistent ordering
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            is_dir = entry.is_dir()
            name = entry.name + ("/" if is_dir else "")
            href = self._url_for(entry, is_dir=is_dir)
            entries.append(f'<li><a href="{href}">{html.escape(name)}</a></li>')

        title = html.escape(url_path)
        newline = "\n        "
        return f"""<!DOCTYPE html>
<html>
<head>
    <title>Index of {title}</title>
    <style>
        body {{ font-family: monospace; padding: 20px; }}
        h1 {{ border-bottom: 1px solid #ccc; padding-bottom: 10px; }}
        ul {{ list-style: none; padding: 0; }}
        li {{ padding: 5px 0; }}
        a {{ text-decoration: none; color: #0066cc; }}
        a:hover {{ text-decoration: underline; }}
    </style>
</head>
<body>
    <h1>Index of {title}</h1>
    <ul>
        {newline.join(entries)}
    </ul>
</body>
</html>
"""

    def _url_for(self, path: Path, is_dir: bool) -> str:
        """Root-relative URL for a path: "/" + posix parts, quoted."""
        relative = PurePosixPath(*path.relative_to(self.root_dir).parts)
        url = "/" if str(relative) == "." else "/" + relative.as_posix()
        if is_dir and not url.endswith("/"):
            url += "/"
        return quote(url)
