"""Object store clients for pydelivery."""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError
from botocore.exceptions import NoCredentialsError, PartialCredentialsError

from .config import config
from .exceptions import (
    DeliveryAPIError,
    DeliveryAuthenticationError,
    DeliveryConfigError,
    DeliveryNetworkError,
    DeliveryNotFoundError,
    DeliveryPermissionError,
    DeliveryRateLimitError,
)
from .utils import DEFAULT_READ_CHUNK_SIZE

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ERROR_CODE_MAP = {
    "404": DeliveryNotFoundError,
    "NoSuchKey": DeliveryNotFoundError,
    "NoSuchBucket": DeliveryNotFoundError,
    "NotFound": DeliveryNotFoundError,
    "401": DeliveryAuthenticationError,
    "InvalidAccessKeyId": DeliveryAuthenticationError,
    "SignatureDoesNotMatch": DeliveryAuthenticationError,
    "ExpiredToken": DeliveryAuthenticationError,
    "403": DeliveryPermissionError,
    "AccessDenied": DeliveryPermissionError,
    "SlowDown": DeliveryRateLimitError,
    "Throttling": DeliveryRateLimitError,
    "TooManyRequests": DeliveryRateLimitError,
}

_STATUS_CODE_MAP = {
    401: DeliveryAuthenticationError,
    403: DeliveryPermissionError,
    404: DeliveryNotFoundError,
    429: DeliveryRateLimitError,
    503: DeliveryRateLimitError,
}


@dataclass(frozen=True)
class ObjectInfo:
    """A remote object as reported by a store listing."""

    key: str
    """Full object key"""

    etag: Optional[str]
    """ETag exactly as the store returned it (including quotes)"""

    size: int = 0
    """Object size in bytes"""


class ObjectStore(ABC):
    """Minimal async interface the transfer engine needs from a store.

    Implementations must report a missing object from :meth:`head` as
    ``None`` and raise for every other failure.
    """

    @abstractmethod
    async def head(self, key: str) -> Optional[str]:
        """Return the ETag of ``key`` (with its quotes), or None if absent."""

    @abstractmethod
    async def put(
        self,
        key: str,
        source: Path,
        *,
        content_type: str,
        acl: str,
        cache_control: Optional[str] = None,
        content_md5: Optional[str] = None,
    ) -> None:
        """Store the content of the local file ``source`` under ``key``."""

    @abstractmethod
    async def get(self, key: str, dest: Path) -> int:
        """Write the content of ``key`` to ``dest`` and return the bytes written."""

    @abstractmethod
    async def list(self, prefix: str) -> list[ObjectInfo]:
        """List every object whose key starts with ``prefix``."""

    async def close(self) -> None:
        """Release any pooled connections."""


class S3Store(ObjectStore):
    """Async wrapper around a boto3 S3 client (AWS S3, MinIO, R2, ...).

    boto3 is blocking, so every call runs on a private thread pool with one
    worker per pooled connection. Requests beyond ``max_connections`` wait
    in the pool's queue for a free worker; waiting never times out.

    The boto3 client is created on first use, inside a worker thread,
    because resolving credentials may query the instance metadata service.
    """

    def __init__(
        self,
        bucket: str,
        *,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        use_accelerate_endpoint: bool = False,
        max_connections: Optional[int] = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        session: Optional[boto3.session.Session] = None,
    ):
        """Initialize the S3 client.

        Args:
            bucket: Bucket name
            region: Signing region (uses config if not provided)
            endpoint_url: Base URL of an S3-compatible service; requests are
                sent path-style
            use_accelerate_endpoint: Use the S3 Transfer Acceleration endpoint
            max_connections: Maximum number of requests in flight
            timeout: Connect and read timeout in seconds
            max_attempts: Attempts per request, including retries
            session: boto3 session to build the client from (default session
                and credential chain when omitted)

        Raises:
            DeliveryConfigError: If the bucket is missing or options conflict
        """
        endpoint_url = endpoint_url or config.endpoint_url
        if not bucket:
            raise DeliveryConfigError("A bucket name is required.")
        if use_accelerate_endpoint and endpoint_url:
            raise DeliveryConfigError(
                "Transfer acceleration cannot be combined with a custom endpoint."
            )
        if use_accelerate_endpoint and "." in bucket:
            raise DeliveryConfigError(
                f"Bucket {bucket!r} contains dots and cannot use transfer acceleration."
            )

        self.bucket = bucket
        self.region = region or config.region
        self.endpoint_url = endpoint_url
        self.use_accelerate_endpoint = use_accelerate_endpoint
        self.max_connections = max_connections or config.max_connections
        if self.max_connections < 1:
            raise DeliveryConfigError("max_connections must be at least 1.")
        self.timeout = timeout
        self.max_attempts = max_attempts

        self._session = session
        self._client: Any = None
        self._client_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def addressing_style(self) -> str:
        """``path`` for custom endpoints and dotted buckets, else ``virtual``.

        The ``*.s3.<region>.amazonaws.com`` certificate does not cover a
        bucket name containing dots, so those buckets go in the path.
        """
        if self.endpoint_url or "." in self.bucket:
            return "path"
        return "virtual"

    def _create_client(self) -> Any:
        client_config = Config(
            region_name=self.region,
            signature_version="s3v4",
            max_pool_connections=self.max_connections,
            connect_timeout=self.timeout,
            read_timeout=self.timeout,
            retries={"max_attempts": self.max_attempts, "mode": "standard"},
            s3={
                "addressing_style": self.addressing_style,
                "use_accelerate_endpoint": self.use_accelerate_endpoint,
            },
        )
        kwargs: dict = {"config": client_config}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url

        logger.debug(
            "Creating S3 client for %s (region=%s, addressing=%s, accelerate=%s)",
            self.bucket,
            self.region,
            self.addressing_style,
            self.use_accelerate_endpoint,
        )
        if self._session is not None:
            return self._session.client("s3", **kwargs)
        return boto3.client("s3", **kwargs)

    def _get_client(self) -> Any:
        """Get or create the boto3 client. Called from worker threads."""
        with self._client_lock:
            if self._client is None:
                self._client = self._create_client()
            return self._client

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_connections,
                thread_name_prefix="pydelivery-s3",
            )
        return self._executor

    async def _run(
        self, operation: str, key: str, func: Callable[..., T], *args: Any
    ) -> T:
        """Run ``func(client, *args)`` on the worker pool."""
        loop = asyncio.get_running_loop()
        call = functools.partial(self._call, operation, key, func, *args)
        return await loop.run_in_executor(self._get_executor(), call)

    def _call(self, operation: str, key: str, func: Callable[..., T], *args: Any) -> T:
        """Invoke ``func`` and map botocore failures to pydelivery errors.

        Raises:
            DeliveryAPIError: If the store answers with an error
            DeliveryAuthenticationError: If no credentials could be found
            DeliveryNetworkError: If no response was received
        """
        target = f"s3://{self.bucket}/{key}"
        try:
            return func(self._get_client(), *args)
        except ClientError as e:
            raise self._translate_error(e, operation, target) from e
        except (NoCredentialsError, PartialCredentialsError) as e:
            raise DeliveryAuthenticationError(f"{operation} {target}: {e}") from e
        except (BotoConnectionError, HTTPClientError) as e:
            raise DeliveryNetworkError(
                f"Network error during {operation} {target}: {e}"
            ) from e

    def _translate_error(
        self, error: ClientError, operation: str, target: str
    ) -> DeliveryAPIError:
        """Translate a ClientError into a pydelivery exception."""
        info = error.response.get("Error", {})
        code = info.get("Code") or None
        message = info.get("Message")
        status_code = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

        exc_cls = _ERROR_CODE_MAP.get(code or "") or _STATUS_CODE_MAP.get(
            status_code, DeliveryAPIError
        )
        detail = f"{code}: {message}" if code and message else (code or message)
        suffix = f" ({detail})" if detail else ""
        return exc_cls(
            f"{operation} {target} failed with status {status_code}{suffix}",
            status_code,
            code,
        )

    async def head(self, key: str) -> Optional[str]:
        """Return the ETag of ``key``, or None if the object does not exist."""
        try:
            response = await self._run("HEAD", key, self._head_object, key)
        except DeliveryNotFoundError:
            return None
        return response.get("ETag")

    def _head_object(self, client: Any, key: str) -> dict:
        return client.head_object(Bucket=self.bucket, Key=key)

    async def put(
        self,
        key: str,
        source: Path,
        *,
        content_type: str,
        acl: str,
        cache_control: Optional[str] = None,
        content_md5: Optional[str] = None,
    ) -> None:
        """Upload the file ``source`` to ``key``, streaming it from disk."""
        params = {"ContentType": content_type, "ACL": acl}
        if cache_control:
            params["CacheControl"] = cache_control
        if content_md5:
            params["ContentMD5"] = content_md5

        logger.debug("PUT %s (%s, cache-control=%s)", key, content_type, cache_control)
        await self._run("PUT", key, self._put_object, key, source, params)

    def _put_object(self, client: Any, key: str, source: Path, params: dict) -> None:
        with open(source, "rb") as body:
            client.put_object(Bucket=self.bucket, Key=key, Body=body, **params)

    async def get(self, key: str, dest: Path) -> int:
        """Download ``key`` to ``dest`` in chunks and return the bytes written."""
        return await self._run("GET", key, self._get_object, key, dest)

    def _get_object(self, client: Any, key: str, dest: Path) -> int:
        response = client.get_object(Bucket=self.bucket, Key=key)
        written = 0
        with open(dest, "wb") as f:
            for chunk in response["Body"].iter_chunks(DEFAULT_READ_CHUNK_SIZE):
                f.write(chunk)
                written += len(chunk)
        return written

    async def list(self, prefix: str) -> list[ObjectInfo]:
        """List all objects under ``prefix`` using the ListObjectsV2 paginator."""
        return await self._run("LIST", prefix, self._list_objects, prefix)

    def _list_objects(self, client: Any, prefix: str) -> list[ObjectInfo]:
        objects: list[ObjectInfo] = []
        paginator = client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                objects.append(
                    ObjectInfo(
                        key=obj["Key"],
                        etag=obj.get("ETag"),
                        size=obj.get("Size", 0),
                    )
                )
        logger.debug("Listed %d object(s) under %r", len(objects), prefix)
        return objects

    async def close(self) -> None:
        """Stop the worker pool and close the client's connections."""
        executor, self._executor = self._executor, None
        if executor is not None:
            await asyncio.to_thread(executor.shutdown, wait=True, cancel_futures=True)

        with self._client_lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()

    async def __aenter__(self) -> "S3Store":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
