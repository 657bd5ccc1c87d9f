"""Content type detection for uploaded files."""

import mimetypes
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union

from .utils import DEFAULT_CONTENT_TYPE

# Types that are missing or inconsistent across platform mime.types files,
# plus topojson which browsers should treat as plain JSON.
DEFAULT_TYPE_MAP: Mapping[str, str] = MappingProxyType(
    {
        ".html": "text/html",
        ".htm": "text/html",
        ".css": "text/css",
        ".js": "application/javascript",
        ".mjs": "application/javascript",
        ".json": "application/json",
        ".topojson": "application/json",
        ".geojson": "application/geo+json",
        ".map": "application/json",
        ".svg": "image/svg+xml",
        ".webp": "image/webp",
        ".avif": "image/avif",
        ".woff": "font/woff",
        ".woff2": "font/woff2",
        ".wasm": "application/wasm",
        ".csv": "text/csv",
        ".txt": "text/plain",
        ".xml": "application/xml",
    }
)


class ContentTypeDetector:
    """Maps file extensions to MIME types.

    Each detector owns its own ``mimetypes.MimeTypes`` table, so custom
    extensions never leak into the process-wide ``mimetypes`` registry.

    Examples:
        >>> detector = ContentTypeDetector({".geo": "application/json"})
        >>> detector.guess("counties.geo")
        'application/json'
        >>> detector.guess("README")
        'application/octet-stream'
    """

    def __init__(self, extra_types: Optional[Mapping[str, str]] = None):
        """Initialize the detector.

        Args:
            extra_types: Extension to MIME type overrides, e.g.
                ``{".topojson": "application/json"}``. Extensions may be
                given with or without the leading dot.
        """
        self._types = mimetypes.MimeTypes()
        overrides = dict(DEFAULT_TYPE_MAP)
        if extra_types:
            for ext, mime_type in extra_types.items():
                if not ext.startswith("."):
                    ext = f".{ext}"
                overrides[ext.lower()] = mime_type

        for ext, mime_type in overrides.items():
            self._types.add_type(mime_type, ext, strict=True)

    def guess(self, path: Union[str, Path]) -> str:
        """Return the MIME type for ``path``, or octet-stream if unknown."""
        mime_type, _ = self._types.guess_type(Path(path).name.lower(), strict=False)
        return mime_type or DEFAULT_CONTENT_TYPE
