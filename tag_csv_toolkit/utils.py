"""
Utility functions shared by the store, the CSV codec and the MCP server.

Provides BOM handling, element copying, and normalisation of file
references (plain paths, ``file://`` URIs, quoted or percent-encoded
strings) into real filesystem paths.
"""

import copy
import os
from urllib.parse import unquote, urlparse

from lxml import etree


# UTF-8 BOM bytes.  Files written by Windows tools often begin with this.
_UTF8_BOM = b"\xef\xbb\xbf"


def strip_bom(raw: bytes) -> bytes:
    """Return *raw* without a leading UTF-8 BOM."""
    if raw.startswith(_UTF8_BOM):
        return raw[len(_UTF8_BOM):]
    return raw


def deep_copy(element: etree._Element) -> etree._Element:
    """Create an independent deep copy of an lxml element.

    The returned element (and all its descendants) are fully detached from
    the original tree and can be modified without affecting the source.
    """
    return copy.deepcopy(element)


def normalize_path(raw_path: str) -> str:
    """Normalize a file reference into an absolute filesystem path.

    Handles:
    - file:///C:/... URIs (drag-and-drop and resource pickers give these)
    - URL-encoded characters (%20 for spaces, etc.)
    - Forward slashes on Windows
    - Relative paths (resolved against cwd)
    - Surrounding quotes or whitespace

    Returns an empty string for an empty reference so callers can report
    a missing path.
    """
    path = raw_path.strip().strip('"').strip("'")
    if not path:
        return ''

    if path.startswith("file:///"):
        parsed = urlparse(path)
        # On Windows, urlparse gives /C:/path -- strip leading slash
        decoded = unquote(parsed.path)
        if len(decoded) >= 3 and decoded[0] == '/' and decoded[2] == ':':
            decoded = decoded[1:]
        path = decoded
    elif path.startswith("file://"):
        path = unquote(path[7:])

    path = os.path.normpath(path)
    path = os.path.abspath(path)

    return path
