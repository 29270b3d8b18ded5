"""
Tests for checkpoint stores (in-memory and filesystem).

Both implementations run the same contract tests; filesystem-specific
behaviour (layout, atomic replace, corrupt files) is tested separately.
"""

import json
from datetime import UTC, datetime, timedelta

import pytest
from conftest import make_assets

from assetmigrator.core.exceptions import CheckpointNotFoundError
from assetmigrator.migration.changelog import ChangeLogEntry, ChangeOutcome
from assetmigrator.migration.checkpoint import FailureRecord, MigrationCheckpoint, MigrationPhase
from assetmigrator.migration.lock import MigrationLock
from assetmigrator.migration.store.filesystem import FilesystemCheckpointStore, scope_filename
from assetmigrator.migration.store.memory import InMemoryCheckpointStore
from assetmigrator.storage.core.errors import SerializationError


def _checkpoint(checkpoint_id="20240501-101500-aaaaaaaa", scope="images->images_do", count=4):
    source, target = scope.split("->")
    return MigrationCheckpoint(
        checkpoint_id=checkpoint_id,
        scope=scope,
        source_handle=source,
        target_handle=target,
        manifest=make_assets(count),
    )


def _lock(scope="images->images_do", token="t1", hours=1):
    now = datetime.now(UTC)
    return MigrationLock(scope, token, "host:1", now, now + timedelta(hours=hours))


def _entry(asset_id, outcome=ChangeOutcome.COPIED):
    path = f"2024/05/{asset_id}.jpg"
    return ChangeLogEntry(asset_id, path, path, "images", "images_do", outcome, size=10)


@pytest.fixture(params=["memory", "filesystem"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryCheckpointStore()
    return FilesystemCheckpointStore(tmp_path / "state")


@pytest.mark.asyncio
class TestCheckpointStoreContract:
    """Behaviour shared by every CheckpointStore."""

    async def test_save_and_load(self, any_store):
        checkpoint = _checkpoint()
        checkpoint.mark_completed("1")
        checkpoint.mark_failed("2", FailureRecord("reset", "ProviderTransportError", attempts=4))
        checkpoint.phase = MigrationPhase.COPYING

        await any_store.save(checkpoint)
        loaded = await any_store.load(checkpoint.checkpoint_id)

        assert loaded.completed == {"1"}
        assert loaded.failed["2"].attempts == 4
        assert loaded.phase == MigrationPhase.COPYING
        assert [a.asset_id for a in loaded.manifest] == ["1", "2", "3", "4"]
        assert loaded.manifest[0].size == make_assets(1)[0].size

    async def test_manifest_written_once(self, any_store):
        checkpoint = _checkpoint()
        await any_store.save(checkpoint)
        checkpoint.manifest = make_assets(2)
        await any_store.save(checkpoint)

        loaded = await any_store.load(checkpoint.checkpoint_id)
        assert len(loaded.manifest) == 4

    async def test_save_rejects_completed_and_failed(self, any_store):
        checkpoint = _checkpoint()
        checkpoint.mark_failed("2", FailureRecord("reset", "ProviderTransportError"))
        checkpoint.completed.add("2")

        with pytest.raises(ValueError, match="both completed and failed"):
            await any_store.save(checkpoint)
        assert await any_store.load_status(checkpoint.checkpoint_id) is None

    async def test_save_rejects_ids_outside_manifest(self, any_store):
        checkpoint = _checkpoint()
        checkpoint.mark_completed("1")
        await any_store.save(checkpoint)

        checkpoint.completed.add("99")
        with pytest.raises(ValueError, match="outside manifest"):
            await any_store.save(checkpoint)
        assert (await any_store.load(checkpoint.checkpoint_id)).completed == {"1"}

    async def test_load_missing(self, any_store):
        with pytest.raises(CheckpointNotFoundError):
            await any_store.load("20240101-000000-00000000")
        assert await any_store.load_status("20240101-000000-00000000") is None

    async def test_status_only(self, any_store):
        checkpoint = _checkpoint()
        checkpoint.mark_completed("1")
        await any_store.save(checkpoint)

        status = await any_store.load_status(checkpoint.checkpoint_id)

        assert status.completed_count == 1
        assert status.total == 4

    async def test_list_newest_first_and_by_scope(self, any_store):
        older = _checkpoint("20240501-100000-aaaaaaaa")
        older.created_at = datetime(2024, 5, 1, 10, tzinfo=UTC)
        newer = _checkpoint("20240502-100000-bbbbbbbb")
        newer.created_at = datetime(2024, 5, 2, 10, tzinfo=UTC)
        other = _checkpoint("20240503-100000-cccccccc", scope="documents->documents_do")
        for checkpoint in (older, newer, other):
            await any_store.save(checkpoint)

        statuses = await any_store.list_statuses("images->images_do")

        assert [s.checkpoint_id for s in statuses] == [newer.checkpoint_id, older.checkpoint_id]
        assert (await any_store.latest("images->images_do")).checkpoint_id == newer.checkpoint_id
        assert len(await any_store.list_statuses()) == 3
        assert await any_store.latest("avatars->avatars_do") is None

    async def test_archive(self, any_store):
        checkpoint = _checkpoint()
        await any_store.save(checkpoint)

        assert await any_store.archive(checkpoint.checkpoint_id)
        assert await any_store.load_status(checkpoint.checkpoint_id) is None
        assert await any_store.latest("images->images_do") is None
        assert not await any_store.archive(checkpoint.checkpoint_id)

    async def test_change_log_appends(self, any_store):
        await any_store.append_changes("cp", [_entry("1"), _entry("2")])
        await any_store.append_changes("cp", [_entry("3", ChangeOutcome.SKIPPED)])

        entries = await any_store.read_changes("cp")

        assert [e.asset_id for e in entries] == ["1", "2", "3"]
        assert entries[2].outcome == ChangeOutcome.SKIPPED
        assert await any_store.read_changes("other") == []

    async def test_lock_create_if_absent(self, any_store):
        assert await any_store.write_lock(_lock(token="t1"))
        assert not await any_store.write_lock(_lock(token="t2"))
        assert (await any_store.read_lock("images->images_do")).token == "t1"

    async def test_lock_compare_token(self, any_store):
        await any_store.write_lock(_lock(token="t1"))

        assert not await any_store.write_lock(_lock(token="t2"), expected_token="wrong")
        assert await any_store.write_lock(_lock(token="t2"), expected_token="t1")
        assert (await any_store.read_lock("images->images_do")).token == "t2"

    async def test_delete_lock(self, any_store):
        await any_store.write_lock(_lock(token="t1"))

        assert not await any_store.delete_lock("images->images_do", expected_token="t9")
        assert await any_store.delete_lock("images->images_do", expected_token="t1")
        assert not await any_store.delete_lock("images->images_do")
        assert await any_store.list_locks() == []

    async def test_list_locks(self, any_store):
        await any_store.write_lock(_lock("images->images_do"))
        await any_store.write_lock(_lock("documents->documents_do"))
        scopes = [lock.scope for lock in await any_store.list_locks()]
        assert sorted(scopes) == ["documents->documents_do", "images->images_do"]


@pytest.mark.asyncio
class TestFilesystemStore:
    """Filesystem-specific behaviour."""

    async def test_layout(self, tmp_path):
        store = FilesystemCheckpointStore(tmp_path)
        checkpoint = _checkpoint()
        await store.save(checkpoint)
        await store.append_changes(checkpoint.checkpoint_id, [_entry("1")])
        await store.write_lock(_lock())

        directory = tmp_path / "checkpoints" / checkpoint.checkpoint_id
        assert sorted(p.name for p in directory.iterdir()) == [
            "changelog.jsonl",
            "completed.json",
            "failed.json",
            "manifest.json",
            "status.json",
        ]
        assert (tmp_path / "locks" / scope_filename("images->images_do")).exists()
        pointers = json.loads((tmp_path / "latest.json").read_text())
        assert pointers == {"images->images_do": checkpoint.checkpoint_id}

    async def test_no_temp_files_left(self, tmp_path):
        store = FilesystemCheckpointStore(tmp_path)
        checkpoint = _checkpoint()
        for _ in range(3):
            await store.save(checkpoint)
        assert not list(tmp_path.rglob("*.tmp"))

    async def test_state_survives_new_instance(self, tmp_path):
        checkpoint = _checkpoint()
        checkpoint.mark_completed("2")
        await FilesystemCheckpointStore(tmp_path).save(checkpoint)

        loaded = await FilesystemCheckpointStore(tmp_path).load(checkpoint.checkpoint_id)

        assert loaded.completed == {"2"}

    async def test_archive_moves_directory(self, tmp_path):
        store = FilesystemCheckpointStore(tmp_path)
        checkpoint = _checkpoint()
        await store.save(checkpoint)

        await store.archive(checkpoint.checkpoint_id)

        assert (tmp_path / "archive" / checkpoint.checkpoint_id / "status.json").exists()
        assert not (tmp_path / "checkpoints" / checkpoint.checkpoint_id).exists()

    async def test_corrupt_status_skipped_in_listing(self, tmp_path):
        store = FilesystemCheckpointStore(tmp_path)
        await store.save(_checkpoint())
        broken = tmp_path / "checkpoints" / "20240101-000000-deadbeef"
        broken.mkdir()
        (broken / "status.json").write_text("{not json")

        statuses = await store.list_statuses()

        assert [s.checkpoint_id for s in statuses] == ["20240501-101500-aaaaaaaa"]
        with pytest.raises(SerializationError):
            await store.load_status("20240101-000000-deadbeef")

    async def test_path_traversal_rejected(self, tmp_path):
        store = FilesystemCheckpointStore(tmp_path)
        with pytest.raises(CheckpointNotFoundError):
            await store.load("../etc")


def test_scope_filename():
    assert scope_filename("images->images_do") == "images__images_do.json"
