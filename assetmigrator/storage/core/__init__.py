"""
Storage Core Module.

Provides shared infrastructure for all storage providers:
- Error hierarchy
- Connection probe results
- JSON serialization for persisted state

Usage:
    from assetmigrator.storage.core import (
        # Errors
        StorageError,
        ProviderTransportError,
        NotFoundError,
        IntegrityError,

        # Probes
        ConnectionTestResult,
        probe_connection,

        # Serialization
        serialize,
        deserialize,
    )
"""

from .errors import (
    IntegrityError,
    NotFoundError,
    ProviderError,
    ProviderTransportError,
    RateLimitError,
    SerializationError,
    StorageError,
    TransactionError,
    UnsupportedOperationError,
)
from .health import ConnectionTestResult, HealthStatus, probe_connection
from .serialization import (
    StateEncoder,
    deserialize,
    deserialize_lines,
    serialize,
    serialize_lines,
)

__all__ = [
    # Probes
    "ConnectionTestResult",
    "HealthStatus",
    # Errors
    "IntegrityError",
    "NotFoundError",
    "ProviderError",
    "ProviderTransportError",
    "RateLimitError",
    "SerializationError",
    # Serialization
    "StateEncoder",
    "StorageError",
    "TransactionError",
    "UnsupportedOperationError",
    "deserialize",
    "deserialize_lines",
    "probe_connection",
    "serialize",
    "serialize_lines",
]
