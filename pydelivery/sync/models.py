"""Data types shared by the transfer engine."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class TransferDirection(str, Enum):
    """Direction of a single transfer."""

    UPLOAD = "upload"
    """Local file to remote object"""

    DOWNLOAD = "download"
    """Remote object to local file"""


@dataclass(frozen=True)
class TransferTask:
    """One unit of work inside a batch."""

    local_path: Path
    """File on the local disk (source for uploads, destination for downloads)"""

    remote_key: str
    """Object key relative to the base path"""

    direction: TransferDirection
    """Whether the file goes up or down"""

    known_etag: Optional[str] = None
    """Remote ETag already known from a listing, to avoid a HEAD request"""


@dataclass(frozen=True)
class UploadOutcome:
    """What upload_file and upload_files return for each file."""

    key: str
    """The object's full key in the bucket"""

    etag: str
    """MD5 hex digest of the local file"""

    is_identical: bool
    """True if the remote copy was identical and the upload was skipped"""

    is_public: bool
    """Whether the object was made public on upload"""

    size: int
    """Size of the local file in bytes"""

    content_type: str = "application/octet-stream"
    """Content type sent with the upload"""

    cache_control: Optional[str] = None
    """Cache-Control directive written, or None if none was set or skipped"""


@dataclass(frozen=True)
class DownloadOutcome:
    """What download_file and download_files return for each file."""

    key: str
    """The object's full key in the bucket"""

    is_identical: bool
    """True if the local copy was identical and the download was skipped"""

    path: Optional[Path] = None
    """Where the file lives on the local disk"""

    size: int = 0
    """Bytes written to disk (0 when skipped)"""
