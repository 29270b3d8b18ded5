"""
Host metadata interfaces.

The content-management system that owns volumes and asset records is
an external collaborator. The migration engine, switch-over and
diagnostics only need the narrow contracts below:

- AssetCatalog: enumerate asset records with a stable id and logical path
- VolumeRepository: list volumes and repoint them inside a transaction
- FilesystemResolver: turn a filesystem handle into a live provider
"""

from __future__ import annotations

import fnmatch
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from assetmigrator.storage.interfaces.provider import StorageProvider


def asset_sort_key(asset_id: str) -> tuple[int, int, str]:
    """Deterministic ordering for asset ids: numeric ids first, numerically."""
    if asset_id.isdigit():
        return (0, int(asset_id), asset_id)
    return (1, 0, asset_id)


@dataclass(frozen=True)
class AssetRecord:
    """
    One asset known to the host system.

    Attributes:
        asset_id: Stable identifier (host primary key)
        volume_handle: Handle of the volume the asset belongs to
        path: Logical path relative to the volume's filesystem root
        size: Size recorded by the host, when known
    """

    asset_id: str
    volume_handle: str
    path: str
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "volume_handle": self.volume_handle,
            "path": self.path,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssetRecord:
        return cls(
            asset_id=str(data["asset_id"]),
            volume_handle=data["volume_handle"],
            path=data["path"],
            size=data.get("size"),
        )


@dataclass
class Volume:
    """
    Host-side logical storage area bound to exactly one filesystem handle.
    """

    volume_id: str
    handle: str
    name: str
    fs_handle: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "volume_id": self.volume_id,
            "handle": self.handle,
            "name": self.name,
            "fs_handle": self.fs_handle,
        }


@dataclass
class AssetFilter:
    """
    Narrows asset enumeration.

    Attributes:
        path_prefix: Only paths starting with this prefix
        pattern: Glob matched against the path (e.g. "*.jpg")
        asset_ids: Only these ids
    """

    path_prefix: str | None = None
    pattern: str | None = None
    asset_ids: frozenset[str] | None = field(default=None)

    def matches(self, asset: AssetRecord) -> bool:
        if self.asset_ids is not None and asset.asset_id not in self.asset_ids:
            return False
        if self.path_prefix and not asset.path.startswith(self.path_prefix):
            return False
        return not (self.pattern and not fnmatch.fnmatch(asset.path, self.pattern))


class AssetCatalog(ABC):
    """Read access to asset records plus the migrated-marker hook."""

    @abstractmethod
    def iter_assets(
        self,
        *,
        fs_handle: str | None = None,
        volume: str | None = None,
        asset_filter: AssetFilter | None = None,
    ) -> AsyncIterator[AssetRecord]:
        """
        Enumerate assets.

        Args:
            fs_handle: Only assets in volumes bound to this filesystem handle
            volume: Only assets of this volume handle
            asset_filter: Additional filter
        """
        ...

    async def count_assets(self, *, fs_handle: str | None = None, volume: str | None = None) -> int:
        count = 0
        async for _ in self.iter_assets(fs_handle=fs_handle, volume=volume):
            count += 1
        return count

    async def migrated_ids(self, target_handle: str) -> set[str]:
        """Assets already recorded as migrated to target_handle."""
        return set()

    async def mark_migrated(self, asset_ids: Iterable[str], target_handle: str) -> None:
        """Record assets as migrated (no-op for hosts that do not track it)."""
        return None

    async def unmark_migrated(self, asset_ids: Iterable[str], target_handle: str) -> None:
        """Forget migrated markers, e.g. after a rollback or failed verification."""
        return None


class VolumeTransaction(ABC):
    """Unit of work over volume bindings."""

    @abstractmethod
    async def update_fs_handle(self, volume: Volume, fs_handle: str) -> None:
        """Repoint a volume to another filesystem handle."""
        ...


class VolumeRepository(ABC):
    """Volume listing and transactional repointing."""

    @abstractmethod
    async def list_volumes(self) -> list[Volume]:
        ...

    async def volumes_for_fs_handle(self, fs_handle: str) -> list[Volume]:
        return [v for v in await self.list_volumes() if v.fs_handle == fs_handle]

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[VolumeTransaction]:
        """
        Open a transaction.

        Leaving the context normally commits; an exception rolls every
        change back and propagates.
        """
        ...


class FilesystemResolver(ABC):
    """Resolves filesystem handles to providers."""

    @abstractmethod
    def resolve(self, handle: str) -> StorageProvider | None:
        """Provider for a handle, or None if the handle does not resolve."""
        ...

    @abstractmethod
    def list_handles(self) -> list[str]:
        ...


class StaticFilesystemResolver(FilesystemResolver):
    """Resolver over a fixed handle -> provider mapping."""

    def __init__(self, providers: dict[str, StorageProvider]):
        self._providers = dict(providers)

    def resolve(self, handle: str) -> StorageProvider | None:
        return self._providers.get(handle)

    def list_handles(self) -> list[str]:
        return sorted(self._providers)
