# ============================================
# FILE: assetmigrator/storage/backends/local.py
# ============================================

"""
Local Filesystem Storage Provider

Serves a directory tree as an object store. Useful for staging
migrations, for development, and as a target when assets are pulled
down from a bucket.

Layout:
    root/
    └── {subfolder}/
        └── {object path}

Writes go to a temporary sibling file first and are moved into place
with os.replace, so readers never observe a half-written object.

Example:
    >>> provider = LocalFilesystemProvider(root="/srv/assets", subfolder="images")
    >>> async with provider:
    ...     await provider.write("2024/logo.png", data)
"""

import asyncio
import os
import shutil
import time
import uuid
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path

import aiofiles
import aiofiles.os

from assetmigrator.storage.core import (
    ConnectionTestResult,
    NotFoundError,
    ProviderTransportError,
)
from assetmigrator.storage.interfaces.provider import (
    DEFAULT_CHUNK_SIZE,
    ProviderCapabilities,
    StorageObject,
    StorageProvider,
    WriteOptions,
    guess_content_type,
    normalize_path,
)

TEMP_SUFFIX = ".partial"


class LocalFilesystemProvider(StorageProvider):
    """
    Filesystem-backed storage provider.

    Two local providers share a vendor key when they live on the same
    root, in which case copies use shutil instead of a read/write pair.
    """

    provider_type = "local"

    def __init__(
        self,
        root: str | Path,
        subfolder: str = "",
        base_url: str | None = None,
        name: str | None = None,
        create: bool = True,
    ):
        """
        Initialize local provider.

        Args:
            root: Root directory of the store
            subfolder: Optional prefix applied to every object path
            base_url: Public URL prefix; defaults to a file:// URL
            name: Instance name (filesystem handle)
            create: Create the root directory if it does not exist
        """
        super().__init__(name=name)
        self.root = Path(root).expanduser().resolve()
        self.subfolder = normalize_path(subfolder) if subfolder else ""
        self.base_url = base_url.rstrip("/") if base_url else None

        if create:
            self.base_dir.mkdir(parents=True, exist_ok=True)

        self._capabilities = ProviderCapabilities(
            supports_server_side_copy=True,
            supports_versioning=False,
            supports_streaming=True,
            max_file_size=None,
            optimal_batch_size=500,
        )

    @property
    def base_dir(self) -> Path:
        return self.root / self.subfolder if self.subfolder else self.root

    @property
    def capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    @property
    def vendor_key(self) -> str:
        return f"local:{self.root}"

    def url_pattern(self) -> str:
        if self.base_url:
            return f"{self.base_url}/{{path}}"
        return f"{self.base_dir.as_uri()}/{{path}}"

    def _full_path(self, path: str) -> Path:
        key = normalize_path(path)
        if not key:
            msg = "Object path must not be empty"
            raise ValueError(msg)
        return self.base_dir / key

    def _to_object(self, key: str, stat: os.stat_result) -> StorageObject:
        return StorageObject(
            path=key,
            size=stat.st_size,
            content_type=guess_content_type(key),
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
        )

    async def head_object(self, path: str) -> StorageObject | None:
        full = self._full_path(path)
        try:
            stat = await aiofiles.os.stat(full)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            raise ProviderTransportError(
                f"Failed to stat {path}: {e}", provider=self.name, path=path
            ) from e

        if not os.path.isfile(full):
            return None
        return self._to_object(normalize_path(path), stat)

    async def read(self, path: str) -> bytes:
        full = self._full_path(path)
        try:
            async with aiofiles.open(full, "rb") as f:
                return await f.read()
        except (FileNotFoundError, IsADirectoryError) as e:
            raise NotFoundError(f"Object not found: {path}", provider=self.name, path=path) from e
        except OSError as e:
            raise ProviderTransportError(
                f"Failed to read {path}: {e}", provider=self.name, path=path
            ) from e

    async def read_stream(
        self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        full = self._full_path(path)
        try:
            f = await aiofiles.open(full, "rb")
        except (FileNotFoundError, IsADirectoryError) as e:
            raise NotFoundError(f"Object not found: {path}", provider=self.name, path=path) from e

        try:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await f.close()

    async def write(
        self,
        path: str,
        data: bytes | AsyncIterator[bytes],
        options: WriteOptions | None = None,
    ) -> StorageObject:
        full = self._full_path(path)
        temp = full.with_name(f".{full.name}.{uuid.uuid4().hex[:8]}{TEMP_SUFFIX}")

        try:
            await aiofiles.os.makedirs(full.parent, exist_ok=True)
            async with aiofiles.open(temp, "wb") as f:
                if isinstance(data, bytes | bytearray):
                    await f.write(data)
                else:
                    async for chunk in data:
                        await f.write(chunk)
            await aiofiles.os.replace(temp, full)
        except OSError as e:
            if temp.exists():
                temp.unlink()
            raise ProviderTransportError(
                f"Failed to write {path}: {e}", provider=self.name, path=path
            ) from e

        stat = await aiofiles.os.stat(full)
        self._log_operation("write", path, size=stat.st_size)
        return self._to_object(normalize_path(path), stat)

    async def delete_file(self, path: str) -> bool:
        full = self._full_path(path)
        try:
            await aiofiles.os.remove(full)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ProviderTransportError(
                f"Failed to delete {path}: {e}", provider=self.name, path=path
            ) from e

        self._log_operation("delete", path)
        return True

    def _walk(self, prefix: str, recursive: bool) -> list[tuple[str, os.stat_result]]:
        """Collect (key, stat) pairs under prefix, sorted by key."""
        base = self.base_dir
        if not base.is_dir():
            return []

        # Start from the deepest directory fully named by the prefix
        start = base
        if "/" in prefix:
            start = base / prefix.rsplit("/", 1)[0]
        if not start.is_dir():
            return []

        found = []
        for dirpath, dirnames, filenames in os.walk(start):
            dirnames.sort()
            for filename in filenames:
                if filename.endswith(TEMP_SUFFIX):
                    continue
                full = Path(dirpath) / filename
                key = full.relative_to(base).as_posix()
                if not key.startswith(prefix):
                    continue
                if not recursive and "/" in key[len(prefix) :].lstrip("/"):
                    continue
                found.append((key, full.stat()))
            if not recursive:
                # Direct children of the prefix all live in the start directory
                dirnames[:] = []

        found.sort(key=lambda item: item[0])
        return found

    async def list_objects(
        self,
        prefix: str = "",
        max_keys: int | None = None,
        recursive: bool = True,
    ) -> AsyncIterator[StorageObject]:
        base = normalize_path(prefix) if prefix else ""
        if prefix.endswith("/") and base:
            base += "/"

        entries = await asyncio.to_thread(self._walk, base, recursive)
        for emitted, (key, stat) in enumerate(entries, start=1):
            yield self._to_object(key, stat)
            if max_keys is not None and emitted >= max_keys:
                return

    async def test_connection(self) -> ConnectionTestResult:
        start = time.perf_counter()
        details = {"provider": self.name, "root": str(self.base_dir)}

        if not self.base_dir.is_dir():
            return ConnectionTestResult.failure(
                f"Directory does not exist: {self.base_dir}",
                details=details,
                response_time_seconds=time.perf_counter() - start,
            )
        if not os.access(self.base_dir, os.R_OK | os.W_OK):
            return ConnectionTestResult.failure(
                f"Directory is not readable and writable: {self.base_dir}",
                details=details,
                response_time_seconds=time.perf_counter() - start,
            )

        return ConnectionTestResult.ok(
            "Local directory accessible",
            details=details,
            response_time_seconds=time.perf_counter() - start,
        )

    async def _server_side_copy(
        self,
        source_path: str,
        target_provider: StorageProvider,
        target_path: str,
    ) -> None:
        assert isinstance(target_provider, LocalFilesystemProvider)
        source = self._full_path(source_path)
        target = target_provider._full_path(target_path)

        if not source.is_file():
            raise NotFoundError(
                f"Object not found: {source_path}", provider=self.name, path=source_path
            )

        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        temp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}{TEMP_SUFFIX}")
        try:
            await asyncio.to_thread(shutil.copyfile, source, temp)
            await aiofiles.os.replace(temp, target)
        except OSError as e:
            if temp.exists():
                temp.unlink()
            raise ProviderTransportError(
                f"Failed to copy {source_path}: {e}", provider=self.name, path=source_path
            ) from e
