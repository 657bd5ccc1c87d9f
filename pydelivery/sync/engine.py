"""Transfer engine: uploads and downloads with change detection."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Iterable
from pathlib import Path
from typing import Any, Optional, TypeVar, Union

from ..content_types import ContentTypeDetector
from ..exceptions import DeliveryConfigError
from ..store import ObjectStore, S3Store
from ..utils import is_directory_marker, join_key, relative_key, resolve_path
from .cache_policy import CachePolicyResolver, ShouldBeCached, default_should_be_cached
from .comparator import FingerprintComparator
from .events import DOWNLOAD, DOWNLOAD_ALL, UPLOAD, UPLOAD_ALL, EventEmitter
from .models import DownloadOutcome, TransferDirection, TransferTask, UploadOutcome
from .operations import TransferOperations
from .scanner import DirectoryScanner

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_in_order(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Run awaitables concurrently and return results in submission order.

    If any of them fails, the others are cancelled and the first error is
    raised unchanged. Cancelling the caller cancels every child.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class Delivery(EventEmitter):
    """Pushes and pulls files between a local directory and a bucket.

    Subscribe to progress with :meth:`on` using the event names
    ``upload``, ``upload:all``, ``download`` and ``download:all``.

    Examples:
        >>> delivery = Delivery(bucket="apps.example.com", base_path="our-project")
        >>> delivery.on("upload", print)
        >>> outcomes = await delivery.upload_files("./dist", should_cache=True)
    """

    def __init__(
        self,
        bucket: str,
        base_path: str = "",
        use_accelerate_endpoint: bool = False,
        should_be_cached: ShouldBeCached = default_should_be_cached,
        *,
        store: Optional[ObjectStore] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        max_connections: Optional[int] = None,
        content_types: Optional[ContentTypeDetector] = None,
        scanner: Optional[DirectoryScanner] = None,
    ):
        """Initialize the transfer engine.

        Args:
            bucket: The bucket to interact with
            base_path: Key prefix applied to every interaction, usually the
                project's slug
            use_accelerate_endpoint: Use the S3 Transfer Acceleration endpoint
            should_be_cached: Predicate deciding whether a path gets
                long-lived cache headers
            store: Object store client; an S3Store is created when omitted
            region: Signing region for the default S3Store
            endpoint_url: Custom endpoint for S3-compatible stores
            max_connections: Connection pool size for the default S3Store
            content_types: Content type detector
            scanner: Directory scanner used by upload_files; the default
                skips dotfiles

        Raises:
            DeliveryConfigError: If the bucket is missing or options conflict
        """
        super().__init__()

        if not bucket or not bucket.strip():
            raise DeliveryConfigError("A bucket is required to create a Delivery.")

        self.bucket = bucket
        self.base_path = base_path
        self.should_be_cached = should_be_cached
        self.store = store or S3Store(
            bucket,
            region=region,
            endpoint_url=endpoint_url,
            use_accelerate_endpoint=use_accelerate_endpoint,
            max_connections=max_connections,
        )
        self.content_types = content_types or ContentTypeDetector()
        self.scanner = scanner or DirectoryScanner()
        self.comparator = FingerprintComparator(self.store)
        self.cache_policy = CachePolicyResolver(should_be_cached)
        self.operations = TransferOperations(self.store)

    async def close(self) -> None:
        """Close the underlying store client."""
        await self.store.close()

    async def __aenter__(self) -> "Delivery":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # =========================
    # Upload Operations
    # =========================

    async def upload_file(
        self,
        file: Union[str, Path],
        path: str,
        *,
        is_public: bool = False,
        should_cache: bool = False,
        cache_control_override: Optional[str] = None,
    ) -> UploadOutcome:
        """Upload a single file.

        The upload is skipped when the bucket already holds an object with
        the same content under the same key.

        Args:
            file: Path to the file on the local disk
            path: Where to upload the file, relative to the base path
            is_public: Make the object publicly readable
            should_cache: Attach Cache-Control headers
            cache_control_override: Literal Cache-Control value used instead
                of the built-in rules when should_cache is true

        Returns:
            UploadOutcome for the file

        Raises:
            OSError: If the local file cannot be read
            DeliveryAPIError: If the store rejects a request
        """
        task = TransferTask(
            local_path=Path(file),
            remote_key=path,
            direction=TransferDirection.UPLOAD,
        )
        return await self._upload(task, is_public, should_cache, cache_control_override)

    async def _upload(
        self,
        task: TransferTask,
        is_public: bool,
        should_cache: bool,
        cache_control_override: Optional[str],
    ) -> UploadOutcome:
        key = join_key(self.base_path, task.remote_key)
        size = (await asyncio.to_thread(task.local_path.stat)).st_size
        content_type = self.content_types.guess(task.local_path)

        etag = await self.comparator.compute_local_fingerprint(task.local_path)
        remote_etag = await self.comparator.fetch_remote_fingerprint(key)
        is_identical = self.comparator.are_identical(etag, remote_etag)

        cache_control = None
        if is_identical:
            logger.debug("Skipping %s, remote copy is identical", key)
        else:
            policy = self.cache_policy.resolve(
                content_type,
                task.remote_key,
                should_cache,
                explicit_override=cache_control_override,
            )
            cache_control = policy.directive
            await self.operations.upload_file(
                task.local_path,
                key,
                content_type=content_type,
                is_public=is_public,
                cache_control=cache_control,
                md5_hex=etag,
            )
            logger.debug("Uploaded %s (%s)", key, policy.kind.value)

        outcome = UploadOutcome(
            key=key,
            etag=etag,
            is_identical=is_identical,
            is_public=is_public,
            size=size,
            content_type=content_type,
            cache_control=cache_control,
        )
        self.emit(UPLOAD, outcome)
        return outcome

    async def upload_files(
        self,
        local_dir: Union[str, Path],
        *,
        prefix: str = "",
        is_public: bool = False,
        should_cache: bool = False,
        cache_control_override: Optional[str] = None,
    ) -> list[UploadOutcome]:
        """Upload every file in a directory, recursively.

        All files upload concurrently; the connection pool of the store is
        the only limit. Outcomes are returned in directory walk order.

        Args:
            local_dir: The directory to upload
            prefix: Key prefix added after the base path
            is_public: Make every object publicly readable
            should_cache: Attach Cache-Control headers
            cache_control_override: Literal Cache-Control value for every file

        Returns:
            List of UploadOutcome, one per file

        Raises:
            NotADirectoryError: If ``local_dir`` is not a directory
            OSError: If a local file cannot be read
            DeliveryAPIError: If the store rejects any request
        """
        root = resolve_path(local_dir)
        files = await asyncio.to_thread(self.scanner.scan_local, root)
        tasks = [
            TransferTask(
                local_path=f.path,
                remote_key=join_key(prefix, f.relative_path),
                direction=TransferDirection.UPLOAD,
            )
            for f in files
        ]

        logger.debug("Uploading %d file(s) from %s", len(tasks), root)
        start_time = time.time()

        outcomes = await gather_in_order(
            self._upload(task, is_public, should_cache, cache_control_override)
            for task in tasks
        )

        logger.debug(
            "Upload of %d file(s) took %.2fs", len(outcomes), time.time() - start_time
        )
        self.emit(UPLOAD_ALL, outcomes)
        return outcomes

    # =========================
    # Download Operations
    # =========================

    async def download_file(
        self,
        path: str,
        dest: Union[str, Path],
        *,
        s3_etag: Optional[str] = None,
    ) -> DownloadOutcome:
        """Download a single object to the local disk.

        The download is skipped when ``dest`` already holds the same content.

        Args:
            path: Key of the object, relative to the base path
            dest: Where to write the file
            s3_etag: Remote ETag if already known, saves a HEAD request

        Returns:
            DownloadOutcome for the object

        Raises:
            OSError: If the local file exists but cannot be read, or
                cannot be written
            DeliveryAPIError: If the store rejects a request
        """
        task = TransferTask(
            local_path=Path(dest),
            remote_key=path,
            direction=TransferDirection.DOWNLOAD,
            known_etag=s3_etag,
        )
        return await self._download(task)

    async def _download(self, task: TransferTask) -> DownloadOutcome:
        key = join_key(self.base_path, task.remote_key)

        remote_etag = task.known_etag
        if remote_etag is None:
            remote_etag = await self.comparator.fetch_remote_fingerprint(key)

        is_identical = await self.comparator.local_matches(task.local_path, remote_etag)

        size = 0
        if is_identical:
            logger.debug("Skipping %s, local copy is identical", key)
        else:
            size = await self.operations.download_file(key, task.local_path)

        outcome = DownloadOutcome(
            key=key,
            is_identical=is_identical,
            path=task.local_path,
            size=size,
        )
        self.emit(DOWNLOAD, outcome)
        return outcome

    async def download_files(
        self, prefix: str, local_dir: Union[str, Path]
    ) -> list[DownloadOutcome]:
        """Download every object under a prefix.

        Keys keep their structure below ``prefix``, so ``prefix/a/b.json``
        lands at ``local_dir/a/b.json``. Outcomes follow the listing order.

        Args:
            prefix: Key prefix to download from, relative to the base path
            local_dir: Local directory to download into

        Returns:
            List of DownloadOutcome, one per object

        Raises:
            OSError: If a local file cannot be read or written
            DeliveryAPIError: If the store rejects any request
        """
        dest = resolve_path(local_dir)
        objects = await self.store.list(join_key(self.base_path, prefix))

        tasks: list[TransferTask] = []
        for obj in objects:
            if is_directory_marker(obj.key):
                continue

            path = relative_key(obj.key, self.base_path)
            local_relative = relative_key(path, prefix)
            if local_relative in ("", ".", "..") or local_relative.startswith("../"):
                # "out" also matches "output/..." on S3; only keep real children
                logger.debug("Skipping %s, not below prefix %r", obj.key, prefix)
                continue

            tasks.append(
                TransferTask(
                    local_path=dest / local_relative,
                    remote_key=path,
                    direction=TransferDirection.DOWNLOAD,
                    known_etag=obj.etag,
                )
            )

        logger.debug("Downloading %d object(s) to %s", len(tasks), dest)
        outcomes = await gather_in_order(self._download(task) for task in tasks)

        self.emit(DOWNLOAD_ALL, outcomes)
        return outcomes
