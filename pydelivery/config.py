"""Environment-driven configuration for pydelivery."""

import os
from typing import Optional

from .exceptions import DeliveryConfigError

DEFAULT_REGION = "us-east-1"
DEFAULT_MAX_CONNECTIONS = 50


class Config:
    """Reads configuration from environment variables.

    Values are looked up on every access so that tests and long running
    processes see changes to ``os.environ``.
    """

    @property
    def region(self) -> str:
        """Region used to build endpoints and sign requests."""
        return (
            os.environ.get("DELIVERY_REGION")
            or os.environ.get("AWS_REGION")
            or os.environ.get("AWS_DEFAULT_REGION")
            or DEFAULT_REGION
        )

    @property
    def endpoint_url(self) -> Optional[str]:
        return os.environ.get("DELIVERY_ENDPOINT_URL") or None

    @property
    def max_connections(self) -> int:
        value = os.environ.get("DELIVERY_MAX_CONNECTIONS")
        if not value:
            return DEFAULT_MAX_CONNECTIONS
        try:
            return int(value)
        except ValueError as e:
            raise DeliveryConfigError(
                f"DELIVERY_MAX_CONNECTIONS must be an integer, got {value!r}"
            ) from e


config = Config()
