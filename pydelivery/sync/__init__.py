"""Transfer engine for pydelivery - change-aware upload and download."""

from .cache_policy import (
    LONG_LIVED_CACHE,
    REQUIRE_REVALIDATION,
    CachePolicy,
    CachePolicyKind,
    CachePolicyResolver,
    default_should_be_cached,
    resolve,
)
from .comparator import FingerprintComparator, md5_from_file, quote_etag
from .engine import Delivery, gather_in_order
from .events import DOWNLOAD, DOWNLOAD_ALL, UPLOAD, UPLOAD_ALL, EventEmitter
from .models import DownloadOutcome, TransferDirection, TransferTask, UploadOutcome
from .operations import TransferOperations
from .scanner import DirectoryScanner, LocalFile

__all__ = [
    "Delivery",
    "gather_in_order",
    "CachePolicy",
    "CachePolicyKind",
    "CachePolicyResolver",
    "LONG_LIVED_CACHE",
    "REQUIRE_REVALIDATION",
    "default_should_be_cached",
    "resolve",
    "FingerprintComparator",
    "md5_from_file",
    "quote_etag",
    "EventEmitter",
    "UPLOAD",
    "UPLOAD_ALL",
    "DOWNLOAD",
    "DOWNLOAD_ALL",
    "DownloadOutcome",
    "TransferDirection",
    "TransferTask",
    "UploadOutcome",
    "TransferOperations",
    "DirectoryScanner",
    "LocalFile",
]
