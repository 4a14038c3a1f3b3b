"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to the Content-Type sent with static files.

    ┌────────────────────────────────────────────────────────────────────┐
    │                    SUPPORTED MIME TYPES                            │
    ├────────────────────────────────────────────────────────────────────┤
    │  .html .htm   → text/html                                         │
    │  .css         → text/css                                          │
    │  .js          → text/javascript                                   │
    │  .txt         → text/plain                                        │
    │  .json        → application/json                                  │
    │  .jpg .jpeg   → image/jpeg                                        │
    │  .png         → image/png                                         │
    │  .gif         → image/gif                                         │
    │  .zip         → application/zip                                   │
    │  (anything else) → application/octet-stream                       │
    └────────────────────────────────────────────────────────────────────┘

Lookups are CASE-SENSITIVE: "page.HTML" is served as
application/octet-stream. The table is exact on purpose so that what a
client gets never depends on how the file happened to be capitalized.

Text types are sent with "; charset=utf-8".

=============================================================================
"""

from pathlib import PurePath
from typing import Optional, Union


MIME_TYPES = {
    # Text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".txt": "text/plain",
    ".json": "application/json",

    # Images
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",

    # Archives
    ".zip": "application/zip",
}

# application/octet-stream = "I don't know what this is, treat as binary"
DEFAULT_MIME_TYPE = "application/octet-stream"


def get_mime_type(path: Union[str, PurePath], default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file based on its extension.

    Args:
        path: File path or name with extension
        default: MIME type for unknown extensions
                 (application/octet-stream if not specified)

    Examples:
        >>> get_mime_type("style.css")
        'text/css'
        >>> get_mime_type("/srv/img/logo.png")
        'image/png'
        >>> get_mime_type("README")
        'application/octet-stream'
        >>> get_mime_type("INDEX.HTML")
        'application/octet-stream'
    """
    suffix = PurePath(path).suffix
    return MIME_TYPES.get(suffix, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    """Check if a MIME type is text/* and should carry a charset."""
    return mime_type.startswith("text/")


def get_content_type(path: Union[str, PurePath], charset: str = "utf-8") -> str:
    """
    Get the full Content-Type header value for a file.

    Examples:
        >>> get_content_type("index.html")
        'text/html; charset=utf-8'
        >>> get_content_type("data.json")
        'application/json'
        >>> get_content_type("photo.jpg")
        'image/jpeg'
    """
    mime_type = get_mime_type(path)

    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"

    return mime_type
