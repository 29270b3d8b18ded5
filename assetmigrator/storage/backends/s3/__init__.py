"""
S3 storage backends.

Provides S3 and S3-compatible vendor implementations.

Requires: pip install aioboto3
"""

from .provider import AIOBOTO3_AVAILABLE, S3StorageProvider, classify_client_error
from .vendors import (
    BackblazeB2Provider,
    CloudflareR2Provider,
    DigitalOceanSpacesProvider,
    WasabiStorageProvider,
)

__all__ = [
    "AIOBOTO3_AVAILABLE",
    "BackblazeB2Provider",
    "CloudflareR2Provider",
    "DigitalOceanSpacesProvider",
    "S3StorageProvider",
    "WasabiStorageProvider",
    "classify_client_error",
]
