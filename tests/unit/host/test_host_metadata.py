"""
Tests for host metadata backends (in-memory and SQLite) and resolvers.
"""

import pytest
import pytest_asyncio

from assetmigrator.core.config import MigrationConfig
from assetmigrator.host.interfaces import (
    AssetFilter,
    AssetRecord,
    StaticFilesystemResolver,
    Volume,
    asset_sort_key,
)
from assetmigrator.host.memory import InMemoryHostMetadata
from assetmigrator.host.resolver import ConfigFilesystemResolver
from assetmigrator.host.sqlite import SQLiteHostMetadata
from assetmigrator.storage.backends.memory import InMemoryStorageProvider

VOLUMES = [
    Volume("1", "images", "Images", "images"),
    Volume("2", "documents", "Documents", "documents"),
    Volume("3", "avatars", "Avatars", "images"),
]
ASSETS = [
    AssetRecord("10", "images", "2024/05/b.jpg", 20),
    AssetRecord("9", "images", "2024/05/a.jpg", 10),
    AssetRecord("11", "documents", "contracts/deal_1.pdf", 300),
    AssetRecord("12", "avatars", "users/7.png", 5),
    AssetRecord("13", "images", "2024/06/c.png", 7),
]


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def host(request, tmp_path):
    if request.param == "memory":
        yield InMemoryHostMetadata(volumes=VOLUMES, assets=ASSETS)
        return

    sqlite_host = SQLiteHostMetadata(str(tmp_path / "host.db"))
    async with sqlite_host:
        for volume in VOLUMES:
            await sqlite_host.add_volume(volume)
        for asset in ASSETS:
            await sqlite_host.add_asset(asset)
        yield sqlite_host


async def _ids(host, **kwargs):
    return [a.asset_id async for a in host.iter_assets(**kwargs)]


class TestInterfaces:
    def test_sort_key(self):
        ids = ["10", "b", "9", "a", "100"]
        assert sorted(ids, key=asset_sort_key) == ["9", "10", "100", "a", "b"]

    def test_asset_round_trip(self):
        asset = ASSETS[0]
        assert AssetRecord.from_dict(asset.to_dict()) == asset

    def test_filter(self):
        asset = AssetRecord("1", "images", "2024/05/a.jpg")
        assert AssetFilter().matches(asset)
        assert AssetFilter(path_prefix="2024/").matches(asset)
        assert not AssetFilter(path_prefix="2023/").matches(asset)
        assert AssetFilter(pattern="*.jpg").matches(asset)
        assert not AssetFilter(pattern="*.png").matches(asset)
        assert not AssetFilter(asset_ids=frozenset({"2"})).matches(asset)

    def test_static_resolver(self):
        provider = InMemoryStorageProvider("images")
        resolver = StaticFilesystemResolver({"images": provider})
        assert resolver.resolve("images") is provider
        assert resolver.resolve("images_do") is None
        assert resolver.list_handles() == ["images"]


@pytest.mark.asyncio
class TestAssetCatalog:
    """Behaviour shared by every host backend."""

    async def test_ordering(self, host):
        assert await _ids(host) == ["9", "10", "11", "12", "13"]

    async def test_by_fs_handle(self, host):
        assert await _ids(host, fs_handle="images") == ["9", "10", "12", "13"]

    async def test_by_volume(self, host):
        assert await _ids(host, volume="images") == ["9", "10", "13"]

    async def test_filters(self, host):
        assert await _ids(host, asset_filter=AssetFilter(path_prefix="2024/05/")) == ["9", "10"]
        assert await _ids(host, asset_filter=AssetFilter(pattern="*.png")) == ["12", "13"]

    async def test_prefix_with_like_wildcards(self, host):
        assert await _ids(host, asset_filter=AssetFilter(path_prefix="contracts/deal_")) == ["11"]
        assert await _ids(host, asset_filter=AssetFilter(path_prefix="contracts/deal%")) == []

    async def test_records(self, host):
        records = [a async for a in host.iter_assets(volume="documents")]
        assert records == [AssetRecord("11", "documents", "contracts/deal_1.pdf", 300)]

    async def test_count(self, host):
        assert await host.count_assets(fs_handle="images") == 4

    async def test_migrated_markers(self, host):
        assert await host.migrated_ids("images_do") == set()

        await host.mark_migrated(["9", "10"], "images_do")
        await host.mark_migrated(["10"], "images_do")

        assert await host.migrated_ids("images_do") == {"9", "10"}
        assert await host.migrated_ids("other") == set()

    async def test_unmark_migrated(self, host):
        await host.mark_migrated(["9", "10"], "images_do")
        await host.mark_migrated(["9"], "archive")

        await host.unmark_migrated(["9", "404"], "images_do")

        assert await host.migrated_ids("images_do") == {"10"}
        assert await host.migrated_ids("archive") == {"9"}

    async def test_unmark_unknown_target_is_noop(self, host):
        await host.unmark_migrated(["9"], "never-used")
        assert await host.migrated_ids("never-used") == set()


@pytest.mark.asyncio
class TestVolumeRepository:
    async def test_list_sorted_by_handle(self, host):
        volumes = await host.list_volumes()
        assert [v.handle for v in volumes] == ["avatars", "documents", "images"]

    async def test_volumes_for_fs_handle(self, host):
        volumes = await host.volumes_for_fs_handle("images")
        assert sorted(v.handle for v in volumes) == ["avatars", "images"]

    async def test_transaction_commit(self, host):
        volumes = await host.volumes_for_fs_handle("images")
        async with host.transaction() as tx:
            for volume in volumes:
                await tx.update_fs_handle(volume, "images_do")

        assert await host.volumes_for_fs_handle("images") == []
        assert len(await host.volumes_for_fs_handle("images_do")) == 2

    async def test_transaction_rollback(self, host):
        volumes = await host.volumes_for_fs_handle("images")

        with pytest.raises(RuntimeError):
            async with host.transaction() as tx:
                await tx.update_fs_handle(volumes[0], "images_do")
                raise RuntimeError("abort")

        assert len(await host.volumes_for_fs_handle("images")) == 2
        assert await host.volumes_for_fs_handle("images_do") == []

    async def test_unknown_volume(self, host):
        with pytest.raises(LookupError):
            async with host.transaction() as tx:
                await tx.update_fs_handle(Volume("99", "ghost", "Ghost", "images"), "x")

    async def test_list_returns_copies(self, host):
        volumes = await host.list_volumes()
        volumes[0].fs_handle = "tampered"
        assert "tampered" not in {v.fs_handle for v in await host.list_volumes()}


@pytest.mark.asyncio
class TestSQLiteSpecifics:
    async def test_persists_across_connections(self, tmp_path):
        path = str(tmp_path / "host.db")
        async with SQLiteHostMetadata(path) as first:
            await first.add_volume(VOLUMES[0])
            await first.add_asset(ASSETS[0])

        async with SQLiteHostMetadata(path) as second:
            assert [v.handle for v in await second.list_volumes()] == ["images"]
            assert await _ids(second) == ["10"]

    async def test_unknown_volume_for_asset(self):
        async with SQLiteHostMetadata() as host:
            with pytest.raises(LookupError):
                await host.add_asset(AssetRecord("1", "ghost", "a.jpg"))

    async def test_upsert(self):
        async with SQLiteHostMetadata() as host:
            await host.add_volume(VOLUMES[0])
            await host.add_volume(Volume("1", "images", "Renamed", "images_do"))
            volumes = await host.list_volumes()
        assert [(v.name, v.fs_handle) for v in volumes] == [("Renamed", "images_do")]


@pytest.mark.asyncio
class TestInMemorySpecifics:
    async def test_commit_and_rollback_counters(self):
        host = InMemoryHostMetadata(volumes=VOLUMES)
        async with host.transaction():
            pass
        with pytest.raises(ValueError):
            async with host.transaction():
                raise ValueError("x")
        assert (host.commits, host.rollbacks) == (1, 1)


class TestConfigResolver:
    def _config(self, tmp_path):
        return MigrationConfig.from_dict(
            {
                "providers": {
                    "images": {"type": "memory"},
                    "images_do": {"type": "local", "root": str(tmp_path)},
                    "broken": {"type": "s3", "bucket": "b"},
                }
            }
        )

    def test_resolves_and_caches(self, tmp_path):
        resolver = ConfigFilesystemResolver(self._config(tmp_path))
        provider = resolver.resolve("images_do")
        assert provider is not None
        assert provider.name == "images_do"
        assert resolver.resolve("images_do") is provider

    def test_unknown_handle(self, tmp_path):
        assert ConfigFilesystemResolver(self._config(tmp_path)).resolve("avatars") is None

    def test_invalid_definition_does_not_resolve(self, tmp_path):
        assert ConfigFilesystemResolver(self._config(tmp_path)).resolve("broken") is None

    def test_list_handles(self, tmp_path):
        resolver = ConfigFilesystemResolver(self._config(tmp_path))
        assert resolver.list_handles() == ["broken", "images", "images_do"]

    @pytest.mark.asyncio
    async def test_close(self, tmp_path):
        resolver = ConfigFilesystemResolver(self._config(tmp_path))
        provider = resolver.resolve("images")
        await resolver.close()
        assert provider.is_closed
