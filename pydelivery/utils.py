"""Utility functions for pydelivery."""

import os
import posixpath
from pathlib import Path
from typing import Union

# =============================================================================
# Constants for file operations
# =============================================================================

# Read size used when hashing and copying local files (1 MB)
DEFAULT_READ_CHUNK_SIZE: int = 1024 * 1024

# Content type used when the extension is unknown
DEFAULT_CONTENT_TYPE: str = "application/octet-stream"


# =============================================================================
# Key and path utilities
# =============================================================================


def join_key(*parts: str) -> str:
    """Join key segments into a normalized object key.

    Empty segments are dropped, duplicate slashes collapse, and the result
    never starts with a slash.

    Args:
        *parts: Key segments (base path, prefix, relative path, ...)

    Returns:
        Normalized key using forward slashes

    Examples:
        >>> join_key("", "output", "data.json")
        'output/data.json'
        >>> join_key("project/", "/assets//app.js")
        'project/assets/app.js'
        >>> join_key("", "")
        ''
    """
    cleaned = (p.replace("\\", "/").strip("/") for p in parts)
    segments = [s for s in cleaned if s]
    if not segments:
        return ""

    key = posixpath.normpath(posixpath.join(*segments)).lstrip("/")
    return "" if key == "." else key


def relative_key(key: str, start: str) -> str:
    """Make ``key`` relative to the ``start`` prefix.

    Args:
        key: Full object key
        start: Prefix to strip (may be empty)

    Returns:
        Key relative to ``start`` using forward slashes

    Examples:
        >>> relative_key("project/output/data.json", "project")
        'output/data.json'
        >>> relative_key("data.json", "")
        'data.json'
    """
    start = join_key(start)
    key = join_key(key)
    if not start:
        return key
    return posixpath.relpath(key, start)


def is_directory_marker(key: str) -> bool:
    """Return True for zero-content keys that only stand in for a folder."""
    return key.endswith("/")


def resolve_path(path: Union[str, Path]) -> Path:
    """Resolve a path relative to the current working directory."""
    return Path(os.getcwd(), path).resolve()


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
