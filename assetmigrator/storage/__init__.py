"""
Storage provider layer.

Uniform, capability-typed access to object stores plus the registry
that builds providers from configuration.

Usage:
    from assetmigrator.storage import create_provider, StorageProvider

    provider = create_provider("s3", config, name="images")
    async with provider:
        exists = await provider.object_exists("2024/logo.png")
"""

from assetmigrator.storage.core import (
    ConnectionTestResult,
    IntegrityError,
    NotFoundError,
    ProviderError,
    ProviderTransportError,
    RateLimitError,
    SerializationError,
    StorageError,
    TransactionError,
    UnsupportedOperationError,
    probe_connection,
)
from assetmigrator.storage.interfaces import (
    ProviderCapabilities,
    StorageObject,
    StorageProvider,
    WriteOptions,
    negotiate_batch_size,
)
from assetmigrator.storage.registry import (
    create_provider,
    get_available_providers,
    register_provider,
    registered_types,
)

__all__ = [
    "ConnectionTestResult",
    "IntegrityError",
    "NotFoundError",
    "ProviderCapabilities",
    "ProviderError",
    "ProviderTransportError",
    "RateLimitError",
    "SerializationError",
    "StorageError",
    "StorageObject",
    "StorageProvider",
    "TransactionError",
    "UnsupportedOperationError",
    "WriteOptions",
    "create_provider",
    "get_available_providers",
    "negotiate_batch_size",
    "probe_connection",
    "register_provider",
    "registered_types",
]
