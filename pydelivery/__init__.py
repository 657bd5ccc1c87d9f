"""pydelivery - push and pull static assets to and from S3."""

__version__ = "0.6.0"

from .content_types import ContentTypeDetector
from .exceptions import (
    DeliveryAPIError,
    DeliveryAuthenticationError,
    DeliveryConfigError,
    DeliveryError,
    DeliveryNetworkError,
    DeliveryNotFoundError,
    DeliveryPermissionError,
    DeliveryRateLimitError,
)
from .store import ObjectStore, S3Store
from .sync import (
    CachePolicy,
    CachePolicyKind,
    Delivery,
    DownloadOutcome,
    UploadOutcome,
    default_should_be_cached,
)

__all__ = [
    "Delivery",
    "ObjectStore",
    "S3Store",
    "ContentTypeDetector",
    "CachePolicy",
    "CachePolicyKind",
    "DownloadOutcome",
    "UploadOutcome",
    "default_should_be_cached",
    "DeliveryError",
    "DeliveryAPIError",
    "DeliveryAuthenticationError",
    "DeliveryConfigError",
    "DeliveryNetworkError",
    "DeliveryNotFoundError",
    "DeliveryPermissionError",
    "DeliveryRateLimitError",
]
