"""Custom exceptions for pydelivery."""

from typing import Optional


class DeliveryError(Exception):
    """Base exception for all pydelivery errors."""


class DeliveryConfigError(DeliveryError):
    """Invalid or missing configuration, raised at construction time."""


class DeliveryAPIError(DeliveryError):
    """The object store rejected a request."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class DeliveryAuthenticationError(DeliveryAPIError):
    """Credentials are missing, invalid or expired."""


class DeliveryPermissionError(DeliveryAPIError):
    """The credentials are valid but not allowed to perform the request."""


class DeliveryNotFoundError(DeliveryAPIError):
    """The requested bucket or object does not exist."""


class DeliveryRateLimitError(DeliveryAPIError):
    """The store asked us to slow down."""


class DeliveryNetworkError(DeliveryError):
    """The request never produced a response (DNS, connect, timeout)."""
