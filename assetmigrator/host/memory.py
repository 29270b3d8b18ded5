"""
In-Memory Host Metadata

Volumes and asset records held in dictionaries. Transactions snapshot
the volume bindings and restore them on failure.

Suitable for tests and for dry runs driven by a static asset list.
"""

import asyncio
import copy
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from assetmigrator.host.interfaces import (
    AssetCatalog,
    AssetFilter,
    AssetRecord,
    Volume,
    VolumeRepository,
    VolumeTransaction,
    asset_sort_key,
)


class InMemoryVolumeTransaction(VolumeTransaction):
    """Transaction that writes straight into the owning store"""

    def __init__(self, store: "InMemoryHostMetadata"):
        self._store = store
        self.updates: list[tuple[str, str, str]] = []

    async def update_fs_handle(self, volume: Volume, fs_handle: str) -> None:
        current = self._store._volumes.get(volume.volume_id)
        if current is None:
            msg = f"Volume not found: {volume.handle}"
            raise LookupError(msg)
        self.updates.append((volume.volume_id, current.fs_handle, fs_handle))
        current.fs_handle = fs_handle


class InMemoryHostMetadata(AssetCatalog, VolumeRepository):
    """
    In-memory implementation of the host metadata collaborator.

    Example:
        >>> host = InMemoryHostMetadata(
        ...     volumes=[Volume("1", "images", "Images", "images")],
        ...     assets=[AssetRecord("10", "images", "2024/a.jpg", 1024)],
        ... )
    """

    def __init__(
        self,
        volumes: Iterable[Volume] = (),
        assets: Iterable[AssetRecord] = (),
    ):
        self._volumes: dict[str, Volume] = {v.volume_id: copy.copy(v) for v in volumes}
        self._assets: dict[str, AssetRecord] = {a.asset_id: a for a in assets}
        self._migrated: dict[str, set[str]] = {}
        self._tx_lock = asyncio.Lock()
        self.commits = 0
        self.rollbacks = 0

    def add_volume(self, volume: Volume) -> None:
        self._volumes[volume.volume_id] = copy.copy(volume)

    def add_asset(self, asset: AssetRecord) -> None:
        self._assets[asset.asset_id] = asset

    # ------------------------------------------------------------------
    # AssetCatalog
    # ------------------------------------------------------------------

    async def iter_assets(
        self,
        *,
        fs_handle: str | None = None,
        volume: str | None = None,
        asset_filter: AssetFilter | None = None,
    ) -> AsyncIterator[AssetRecord]:
        volume_handles = None
        if fs_handle is not None:
            volume_handles = {v.handle for v in self._volumes.values() if v.fs_handle == fs_handle}

        for asset_id in sorted(self._assets, key=asset_sort_key):
            asset = self._assets[asset_id]
            if volume_handles is not None and asset.volume_handle not in volume_handles:
                continue
            if volume is not None and asset.volume_handle != volume:
                continue
            if asset_filter is not None and not asset_filter.matches(asset):
                continue
            yield asset

    async def migrated_ids(self, target_handle: str) -> set[str]:
        return set(self._migrated.get(target_handle, set()))

    async def mark_migrated(self, asset_ids: Iterable[str], target_handle: str) -> None:
        self._migrated.setdefault(target_handle, set()).update(asset_ids)

    async def unmark_migrated(self, asset_ids: Iterable[str], target_handle: str) -> None:
        self._migrated.get(target_handle, set()).difference_update(asset_ids)

    # ------------------------------------------------------------------
    # VolumeRepository
    # ------------------------------------------------------------------

    async def list_volumes(self) -> list[Volume]:
        return [copy.copy(v) for v in sorted(self._volumes.values(), key=lambda v: v.handle)]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryVolumeTransaction]:
        async with self._tx_lock:
            snapshot = {vid: v.fs_handle for vid, v in self._volumes.items()}
            tx = InMemoryVolumeTransaction(self)
            try:
                yield tx
            except BaseException:
                for vid, fs_handle in snapshot.items():
                    if vid in self._volumes:
                        self._volumes[vid].fs_handle = fs_handle
                self.rollbacks += 1
                raise
            self.commits += 1
