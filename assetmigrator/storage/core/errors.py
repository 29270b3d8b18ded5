"""
Unified error hierarchy for storage provider operations.

All provider-related exceptions inherit from StorageError,
providing consistent error handling across backends.

"Not found" is only raised by operations that must return an object
(metadata, read, size, ...). Existence checks return a value instead.
"""

import re
from typing import Any


class StorageError(Exception):
    """
    Base exception for all storage operations.

    All storage providers raise subclasses of this exception,
    making it easy to catch storage-related errors.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        details = {k: v for k, v in self.details.items() if v is not None}
        if details:
            return f"{self.message} ({details})"
        return self.message


class ProviderError(StorageError):
    """
    Failure reported by a storage provider.

    Carries the provider name and the object path involved, if any.
    """

    retryable = False

    def __init__(
        self,
        message: str = "Storage provider error",
        provider: str | None = None,
        path: str | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={"provider": provider, "path": path, **details},
        )
        self.provider = provider
        self.path = path


class ProviderTransportError(ProviderError):
    """
    Failed to talk to the storage backend.

    Raised when:
    - Network timeout or DNS failure
    - Authentication/authorization failure
    - Endpoint unreachable
    - Unexpected server error
    """

    retryable = True

    def __init__(
        self,
        message: str = "Transport failure talking to storage backend",
        provider: str | None = None,
        path: str | None = None,
        endpoint: str | None = None,
        **details,
    ):
        super().__init__(
            message,
            provider=provider,
            path=path,
            endpoint=self._mask_url(endpoint),
            **details,
        )
        self.endpoint = endpoint

    @staticmethod
    def _mask_url(url: str | None) -> str | None:
        """Mask credentials embedded in an endpoint URL."""
        if not url:
            return None
        return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


class RateLimitError(ProviderTransportError):
    """
    Backend rejected the request because of quota or throttling.

    The migration engine applies a longer backoff for these.
    """

    def __init__(
        self,
        message: str = "Storage backend throttled the request",
        provider: str | None = None,
        path: str | None = None,
        retry_after: float | None = None,
        **details,
    ):
        super().__init__(
            message,
            provider=provider,
            path=path,
            retry_after=retry_after,
            **details,
        )
        self.retry_after = retry_after


class NotFoundError(ProviderError):
    """
    Requested object does not exist.

    Raised when:
    - Metadata requested for a missing object
    - Read of a missing object
    """

    def __init__(
        self,
        message: str = "Object not found",
        provider: str | None = None,
        path: str | None = None,
        **details,
    ):
        super().__init__(message, provider=provider, path=path, **details)


class IntegrityError(ProviderError):
    """
    Object present but its size or metadata does not match.

    Raised when:
    - Post-copy size differs from the source
    - Verification finds a mismatched target object
    - Object exceeds the target's maximum file size
    """

    def __init__(
        self,
        message: str = "Object integrity check failed",
        provider: str | None = None,
        path: str | None = None,
        expected_size: int | None = None,
        actual_size: int | None = None,
        **details,
    ):
        super().__init__(
            message,
            provider=provider,
            path=path,
            expected_size=expected_size,
            actual_size=actual_size,
            **details,
        )
        self.expected_size = expected_size
        self.actual_size = actual_size


class UnsupportedOperationError(ProviderError):
    """Provider does not declare the capability needed for this call."""

    def __init__(
        self,
        message: str = "Operation not supported by provider",
        provider: str | None = None,
        operation: str | None = None,
        **details,
    ):
        super().__init__(message, provider=provider, operation=operation, **details)
        self.operation = operation


class SerializationError(StorageError):
    """
    Failed to serialize or deserialize persisted state.

    Raised when:
    - JSON encoding/decoding fails
    - A checkpoint file is truncated or corrupt
    """

    def __init__(
        self,
        message: str = "Serialization failed",
        operation: str | None = None,  # "serialize" or "deserialize"
        data_type: str | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={"operation": operation, "data_type": data_type, **details},
        )
        self.operation = operation
        self.data_type = data_type


class TransactionError(StorageError):
    """
    Metadata transaction failed and was rolled back.

    Raised when:
    - A volume update fails during switch-over
    - Commit fails
    """

    def __init__(
        self,
        message: str = "Transaction failed",
        operation: str | None = None,  # "update", "commit", "rollback"
        volume: str | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={"operation": operation, "volume": volume, **details},
        )
        self.operation = operation
        self.volume = volume
