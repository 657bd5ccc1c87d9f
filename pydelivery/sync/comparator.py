"""Content fingerprint comparison between local files and remote objects."""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Optional, Union

from ..store import ObjectStore
from ..utils import DEFAULT_READ_CHUNK_SIZE

logger = logging.getLogger(__name__)


def md5_from_file(path: Union[str, Path], chunk_size: int = DEFAULT_READ_CHUNK_SIZE) -> str:
    """Calculate the MD5 hex digest of a file, reading it in chunks.

    Raises:
        FileNotFoundError: If the file does not exist
        OSError: If the file cannot be read
    """
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def quote_etag(digest: str) -> str:
    """Wrap a hex digest the way S3 formats ETags (``"<hex>"``)."""
    return f'"{digest}"'


class FingerprintComparator:
    """Decides whether a local file and a remote object hold the same bytes.

    Local fingerprints are MD5 hex digests. S3 returns the MD5 of
    single-part uploads as the object's ETag wrapped in double quotes, so
    the local digest is quoted the same way before comparing.
    """

    def __init__(self, store: ObjectStore):
        """Initialize the comparator.

        Args:
            store: Object store used for metadata lookups
        """
        self.store = store

    async def compute_local_fingerprint(self, path: Union[str, Path]) -> str:
        """Hash a local file without blocking the event loop.

        Raises:
            FileNotFoundError: If the file does not exist
            OSError: If the file cannot be read
        """
        return await asyncio.to_thread(md5_from_file, path)

    async def fetch_remote_fingerprint(self, key: str) -> Optional[str]:
        """Return the remote ETag for ``key``, or None if the object is absent."""
        return await self.store.head(key)

    @staticmethod
    def are_identical(local: Optional[str], remote: Optional[str]) -> bool:
        """Compare a local MD5 digest with a remote ETag.

        Args:
            local: Local hex digest, unquoted
            remote: Remote ETag as returned by the store, quoted

        Returns:
            True only if both exist and match after quoting the local digest
        """
        if local is None or remote is None:
            return False
        return quote_etag(local) == remote

    async def local_matches(self, path: Union[str, Path], remote: Optional[str]) -> bool:
        """Check whether an existing local file matches a remote ETag.

        A missing local file simply does not match.

        Raises:
            OSError: If the file exists but cannot be read
        """
        try:
            local = await self.compute_local_fingerprint(path)
        except FileNotFoundError:
            logger.debug("No local copy at %s", path)
            return False
        return self.are_identical(local, remote)
