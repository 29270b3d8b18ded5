# ============================================
# FILE: assetmigrator/storage/backends/memory.py
# ============================================

"""
In-Memory Storage Provider

Simple in-memory implementation for testing, dry runs and development.
Not suitable for production use.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime

from assetmigrator.storage.core import ConnectionTestResult, NotFoundError
from assetmigrator.storage.interfaces.provider import (
    DEFAULT_CHUNK_SIZE,
    ProviderCapabilities,
    StorageObject,
    StorageProvider,
    WriteOptions,
    guess_content_type,
    normalize_path,
)


@dataclass
class _StoredObject:
    data: bytes
    content_type: str
    last_modified: datetime
    version: int


class InMemoryStorageProvider(StorageProvider):
    """
    In-memory implementation of a storage provider.

    Capabilities are configurable so tests can model any vendor.
    Providers created with the same ``vendor_key`` copy server-side
    (a dictionary copy, no bytes through the caller).

    Example:
        >>> provider = InMemoryStorageProvider("images")
        >>> await provider.write("a.jpg", b"...")
        >>> await provider.object_exists("a.jpg")
        True
    """

    provider_type = "memory"

    def __init__(
        self,
        name: str | None = None,
        capabilities: ProviderCapabilities | None = None,
        vendor_key: str | None = None,
        objects: dict[str, bytes] | None = None,
    ):
        super().__init__(name=name)
        self._capabilities = capabilities or ProviderCapabilities(
            supports_server_side_copy=True,
            supports_versioning=False,
            supports_streaming=True,
        )
        self._vendor_key = vendor_key
        self._objects: dict[str, _StoredObject] = {}
        self._version_counter = 0

        for path, data in (objects or {}).items():
            self._put(normalize_path(path), data, guess_content_type(path))

    @property
    def capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    @property
    def vendor_key(self) -> str | None:
        return self._vendor_key

    def url_pattern(self) -> str:
        return f"memory://{self.name}/{{path}}"

    def _put(self, key: str, data: bytes, content_type: str) -> _StoredObject:
        self._version_counter += 1
        stored = _StoredObject(
            data=data,
            content_type=content_type,
            last_modified=datetime.now(UTC),
            version=self._version_counter,
        )
        self._objects[key] = stored
        return stored

    def _snapshot(self, key: str, stored: _StoredObject) -> StorageObject:
        return StorageObject(
            path=key,
            size=len(stored.data),
            content_type=stored.content_type,
            last_modified=stored.last_modified,
            version_id=str(stored.version) if self._capabilities.supports_versioning else None,
        )

    def paths(self) -> list[str]:
        """All stored paths, sorted."""
        return sorted(self._objects)

    async def head_object(self, path: str) -> StorageObject | None:
        key = normalize_path(path)
        stored = self._objects.get(key)
        if stored is None:
            return None
        return self._snapshot(key, stored)

    async def read(self, path: str) -> bytes:
        key = normalize_path(path)
        stored = self._objects.get(key)
        if stored is None:
            raise NotFoundError(f"Object not found: {path}", provider=self.name, path=path)
        return stored.data

    async def read_stream(
        self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        if not self._capabilities.supports_streaming:
            async for chunk in super().read_stream(path, chunk_size):
                yield chunk  # pragma: no cover
            return

        data = await self.read(path)
        for offset in range(0, len(data), chunk_size):
            yield data[offset : offset + chunk_size]

    async def write(
        self,
        path: str,
        data: bytes | AsyncIterator[bytes],
        options: WriteOptions | None = None,
    ) -> StorageObject:
        key = normalize_path(path)

        if not isinstance(data, bytes | bytearray):
            data = b"".join([chunk async for chunk in data])

        content_type = (options.content_type if options else None) or guess_content_type(key)
        stored = self._put(key, bytes(data), content_type)
        self._log_operation("write", key, size=len(stored.data))
        return self._snapshot(key, stored)

    async def delete_file(self, path: str) -> bool:
        key = normalize_path(path)
        removed = self._objects.pop(key, None) is not None
        self._log_operation("delete", key, removed=removed)
        return removed

    async def list_objects(
        self,
        prefix: str = "",
        max_keys: int | None = None,
        recursive: bool = True,
    ) -> AsyncIterator[StorageObject]:
        base = normalize_path(prefix) if prefix else ""
        emitted = 0

        # Snapshot the keys so concurrent writes do not break iteration
        for key in sorted(self._objects):
            if base and not key.startswith(base):
                continue
            if not recursive and "/" in key[len(base) :].lstrip("/"):
                continue
            stored = self._objects.get(key)
            if stored is None:
                continue
            yield self._snapshot(key, stored)
            emitted += 1
            if max_keys is not None and emitted >= max_keys:
                return

    async def test_connection(self) -> ConnectionTestResult:
        return ConnectionTestResult.ok(
            "In-memory provider ready",
            details={"provider": self.name, "objects": len(self._objects)},
        )

    async def _server_side_copy(
        self,
        source_path: str,
        target_provider: StorageProvider,
        target_path: str,
    ) -> None:
        key = normalize_path(source_path)
        stored = self._objects.get(key)
        if stored is None:
            raise NotFoundError(
                f"Object not found: {source_path}", provider=self.name, path=source_path
            )
        if not isinstance(target_provider, InMemoryStorageProvider):
            await target_provider.write(
                target_path, stored.data, WriteOptions(content_type=stored.content_type)
            )
            return
        target_provider._put(normalize_path(target_path), stored.data, stored.content_type)
