"""Transfer operations wrapper around the object store."""

import asyncio
import base64
import logging
from pathlib import Path
from typing import Optional

from ..store import ObjectStore

logger = logging.getLogger(__name__)

ACL_PUBLIC = "public-read"
ACL_PRIVATE = "private"


class TransferOperations:
    """Moves files between the local disk and the object store.

    Files are streamed by the store; neither direction holds a whole file
    in memory.
    """

    def __init__(self, store: ObjectStore):
        """Initialize transfer operations.

        Args:
            store: Object store client
        """
        self.store = store

    async def upload_file(
        self,
        local_path: Path,
        key: str,
        *,
        content_type: str,
        is_public: bool = False,
        cache_control: Optional[str] = None,
        md5_hex: Optional[str] = None,
    ) -> None:
        """Upload a local file to ``key``.

        Args:
            local_path: File to upload
            key: Full object key
            content_type: Content type to store with the object
            is_public: Make the object publicly readable
            cache_control: Cache-Control header value, if any
            md5_hex: Known MD5 hex digest, sent as Content-MD5 so the store
                verifies the body it received
        """
        content_md5 = (
            base64.b64encode(bytes.fromhex(md5_hex)).decode("ascii") if md5_hex else None
        )

        await self.store.put(
            key,
            local_path,
            content_type=content_type,
            acl=ACL_PUBLIC if is_public else ACL_PRIVATE,
            cache_control=cache_control,
            content_md5=content_md5,
        )

    async def download_file(self, key: str, local_path: Path) -> int:
        """Download ``key`` to ``local_path``, creating parent directories.

        Returns:
            Number of bytes written
        """
        await asyncio.to_thread(local_path.parent.mkdir, parents=True, exist_ok=True)
        written = await self.store.get(key, local_path)
        logger.debug("Wrote %d bytes to %s", written, local_path)
        return written
