"""
Storage Provider Interface

Defines the contract every object-store binding implements (AWS S3,
DigitalOcean Spaces, local filesystem, ...). The migration engine,
switch-over and diagnostics only ever talk to this interface.
"""

import logging
import mimetypes
import posixpath
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from assetmigrator.core.logger import get_logger
from assetmigrator.storage.core import (
    ConnectionTestResult,
    NotFoundError,
    UnsupportedOperationError,
)

DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def normalize_path(path: str) -> str:
    """
    Normalize an object path to the slash-separated, root-relative form.

    Raises:
        ValueError: If the path escapes the provider root
    """
    cleaned = path.replace("\\", "/").strip().lstrip("/")
    if not cleaned:
        return ""

    depth = 0
    for segment in cleaned.split("/"):
        if segment == "..":
            depth -= 1
        elif segment not in ("", "."):
            depth += 1
        if depth < 0:
            msg = f"Path escapes provider root: {path!r}"
            raise ValueError(msg)

    cleaned = posixpath.normpath(cleaned)
    return "" if cleaned == "." else cleaned


def guess_content_type(path: str) -> str:
    """Guess a MIME type from the object path."""
    guessed, _ = mimetypes.guess_type(path)
    return guessed or DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class StorageObject:
    """
    Immutable snapshot of one object within a provider.

    Attributes:
        path: Slash-separated path relative to the provider root
        size: Size in bytes
        content_type: MIME type
        last_modified: Last modification timestamp
        version_id: Version identifier when the backend is versioned
        etag: Backend checksum/etag when available
    """

    path: str
    size: int
    content_type: str = DEFAULT_CONTENT_TYPE
    last_modified: datetime | None = None
    version_id: str | None = None
    etag: str | None = None

    @property
    def basename(self) -> str:
        return posixpath.basename(self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "content_type": self.content_type,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
            "version_id": self.version_id,
            "etag": self.etag,
        }


@dataclass(frozen=True)
class ProviderCapabilities:
    """
    Static description of what a provider instance supports.

    Computed once at provider construction and never changed afterwards.

    Attributes:
        supports_server_side_copy: Copies within the same vendor avoid the caller
        supports_versioning: Backend keeps object versions
        supports_streaming: Reads can be consumed as a byte stream
        max_file_size: Largest object accepted in bytes (None = unbounded)
        optimal_batch_size: Preferred number of objects per batch
        supports_multipart_upload: Large writes can be split into parts
        supports_public_urls: Objects are addressable by URL
    """

    supports_server_side_copy: bool = False
    supports_versioning: bool = False
    supports_streaming: bool = True
    max_file_size: int | None = None
    optimal_batch_size: int = 100
    supports_multipart_upload: bool = False
    supports_public_urls: bool = True

    def __post_init__(self):
        if self.optimal_batch_size < 1:
            msg = f"optimal_batch_size must be >= 1, got {self.optimal_batch_size}"
            raise ValueError(msg)

    def supports(self, capability: str) -> bool:
        """Check a capability by attribute name (e.g. 'supports_versioning')."""
        value = getattr(self, capability, None)
        if isinstance(value, bool):
            return value
        return bool(value)

    def accepts_size(self, size: int) -> bool:
        return self.max_file_size is None or size <= self.max_file_size

    def to_dict(self) -> dict[str, Any]:
        return {
            "supports_server_side_copy": self.supports_server_side_copy,
            "supports_versioning": self.supports_versioning,
            "supports_streaming": self.supports_streaming,
            "max_file_size": self.max_file_size,
            "optimal_batch_size": self.optimal_batch_size,
            "supports_multipart_upload": self.supports_multipart_upload,
            "supports_public_urls": self.supports_public_urls,
        }


def negotiate_batch_size(
    source: ProviderCapabilities,
    target: ProviderCapabilities,
    upper_bound: int | None = None,
) -> int:
    """
    Batch size for a source/target pair.

    The more constrained side wins: the smaller of both optimal sizes,
    further capped by an operator-configured upper bound.
    """
    size = min(source.optimal_batch_size, target.optimal_batch_size)
    if upper_bound is not None and upper_bound > 0:
        size = min(size, upper_bound)
    return max(size, 1)


@dataclass
class WriteOptions:
    """
    Options for a write.

    Attributes:
        content_type: Override for the stored MIME type
        cache_control: Cache-Control header
        acl: Canned ACL (public-read, private, ...)
        metadata: Custom key-value metadata
    """

    content_type: str | None = None
    cache_control: str | None = None
    acl: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class StorageProvider(ABC):
    """
    Base class for all storage providers.

    Provides:
    - Capability-aware copy between providers
    - Convenience metadata accessors built on get_object_metadata()
    - Async context manager support
    - Logging setup

    Subclasses must implement the abstract I/O primitives.
    """

    provider_type: str = "abstract"

    def __init__(
        self,
        name: str | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize base provider.

        Args:
            name: Instance name, usually the filesystem handle it is bound to
            logger: Optional logger instance
        """
        self.name = name or self.provider_type
        self._logger = logger or get_logger(self.__class__.__module__)
        self._closed = False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Identity and capabilities
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def capabilities(self) -> ProviderCapabilities:
        """Capabilities fixed at construction."""
        ...

    def get_capabilities(self) -> ProviderCapabilities:
        return self.capabilities

    @property
    def vendor_key(self) -> str | None:
        """
        Identity of the backend account this provider talks to.

        Two providers with equal, non-None vendor keys can copy
        server-side. None disables server-side copy.
        """
        return None

    def public_url(self, path: str) -> str:
        """Public URL for an object."""
        return self.url_pattern().replace("{path}", normalize_path(path))

    def url_pattern(self) -> str:
        """URL template with a {path} placeholder."""
        return "{path}"

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def head_object(self, path: str) -> StorageObject | None:
        """
        Fetch object metadata without reading its content.

        Returns:
            StorageObject, or None when the object does not exist

        Raises:
            ProviderTransportError: On transport/auth failure
        """
        ...

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """
        Read the full object content.

        Raises:
            NotFoundError: If the object does not exist
        """
        ...

    async def read_stream(
        self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """
        Read the object as a stream of chunks.

        Callers must check capabilities.supports_streaming first.

        Raises:
            UnsupportedOperationError: If the provider cannot stream
            NotFoundError: If the object does not exist
        """
        raise UnsupportedOperationError(
            f"{self.name} does not support streaming reads",
            provider=self.name,
            operation="read_stream",
        )
        yield b""  # pragma: no cover

    @abstractmethod
    async def write(
        self,
        path: str,
        data: bytes | AsyncIterator[bytes],
        options: WriteOptions | None = None,
    ) -> StorageObject:
        """
        Write (fully overwrite) an object.

        Args:
            path: Object path
            data: Full content, or an async iterator of chunks
            options: Content type override and other write options

        Returns:
            Metadata of the written object
        """
        ...

    @abstractmethod
    async def delete_file(self, path: str) -> bool:
        """
        Delete an object.

        Idempotent: deleting a missing object is not an error.

        Returns:
            True if an object was removed, False if there was none
        """
        ...

    @abstractmethod
    def list_objects(
        self,
        prefix: str = "",
        max_keys: int | None = None,
        recursive: bool = True,
    ) -> AsyncIterator[StorageObject]:
        """
        Lazily list objects under a prefix.

        Each call starts a fresh, finite listing; pagination is hidden.

        Args:
            prefix: Path prefix (empty for the whole provider)
            max_keys: Stop after this many objects (None = all)
            recursive: Descend into sub-"directories"
        """
        ...

    @abstractmethod
    async def test_connection(self) -> ConnectionTestResult:
        """
        Verify the provider is reachable with its credentials.

        Never raises; failures are captured into the result.
        """
        ...

    async def close(self) -> None:
        """Release client resources."""
        self._closed = True

    async def __aenter__(self) -> "StorageProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Derived operations
    # ------------------------------------------------------------------

    async def object_exists(self, path: str) -> bool:
        """
        Check whether an object exists.

        Returns False for a missing object; raises only on transport failure.
        """
        return await self.head_object(path) is not None

    async def get_object_metadata(self, path: str) -> StorageObject:
        """
        Fetch object metadata.

        Raises:
            NotFoundError: If the object does not exist
        """
        obj = await self.head_object(path)
        if obj is None:
            raise NotFoundError(
                f"Object not found: {path}", provider=self.name, path=path
            )
        return obj

    async def file_size(self, path: str) -> int:
        return (await self.get_object_metadata(path)).size

    async def mime_type(self, path: str) -> str:
        return (await self.get_object_metadata(path)).content_type

    async def last_modified(self, path: str) -> datetime | None:
        return (await self.get_object_metadata(path)).last_modified

    def can_copy_server_side_to(self, target: "StorageProvider") -> bool:
        """Whether a copy to target can stay inside the backend."""
        return (
            self.capabilities.supports_server_side_copy
            and self.vendor_key is not None
            and self.vendor_key == target.vendor_key
        )

    async def copy_object(
        self,
        source_path: str,
        target_provider: "StorageProvider",
        target_path: str,
    ) -> bool:
        """
        Copy one object from this provider to another.

        Same-vendor pairs with server-side copy support never move bytes
        through this process. Everything else degrades to a streamed
        copy when both sides stream, or a buffered read-then-write.

        Returns:
            True on success

        Raises:
            NotFoundError: If the source object is missing
            ProviderTransportError: On transport failure on either side
        """
        start = time.perf_counter()

        if self.can_copy_server_side_to(target_provider):
            await self._server_side_copy(source_path, target_provider, target_path)
            self._log_operation(
                "copy_server_side",
                source_path,
                target=target_provider.name,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return True

        source_meta = await self.get_object_metadata(source_path)
        options = WriteOptions(content_type=source_meta.content_type)

        if self.capabilities.supports_streaming and target_provider.capabilities.supports_streaming:
            await target_provider.write(target_path, self.read_stream(source_path), options)
            mode = "copy_streamed"
        else:
            await target_provider.write(target_path, await self.read(source_path), options)
            mode = "copy_buffered"

        self._log_operation(
            mode,
            source_path,
            target=target_provider.name,
            size=source_meta.size,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return True

    async def _server_side_copy(
        self,
        source_path: str,
        target_provider: "StorageProvider",
        target_path: str,
    ) -> None:
        """Backend-native copy; providers declaring the capability override this."""
        raise UnsupportedOperationError(
            f"{self.name} does not implement server-side copy",
            provider=self.name,
            operation="server_side_copy",
        )

    def _log_operation(
        self,
        operation: str,
        path: str | None = None,
        **kwargs,
    ) -> None:
        """Log a provider operation at debug level."""
        extra = {"operation": operation, "provider": self.name}
        if path:
            extra["object_path"] = path
        extra.update(kwargs)

        self._logger.debug(f"Provider operation: {operation}", extra=extra)
