"""
Storage interfaces.

Abstract contract shared by all providers plus the value types that
cross it.
"""

from .provider import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONTENT_TYPE,
    ProviderCapabilities,
    StorageObject,
    StorageProvider,
    WriteOptions,
    guess_content_type,
    negotiate_batch_size,
    normalize_path,
)

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_CONTENT_TYPE",
    "ProviderCapabilities",
    "StorageObject",
    "StorageProvider",
    "WriteOptions",
    "guess_content_type",
    "negotiate_batch_size",
    "normalize_path",
]
