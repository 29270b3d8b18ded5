"""
Tests for CheckpointJanitor.
"""

from datetime import UTC, datetime, timedelta

import pytest

from assetmigrator.migration.checkpoint import MigrationCheckpoint, MigrationPhase
from assetmigrator.migration.cleanup import CheckpointJanitor
from assetmigrator.migration.lock import LockManager

LATER = datetime.now(UTC) + timedelta(hours=100)


async def _save(store, checkpoint_id, phase, scope="images->images_do"):
    source, target = scope.split("->")
    checkpoint = MigrationCheckpoint(
        checkpoint_id=checkpoint_id,
        scope=scope,
        source_handle=source,
        target_handle=target,
        phase=phase,
    )
    await store.save(checkpoint)
    return checkpoint


@pytest.mark.asyncio
class TestCleanup:
    """Tests for cleanup()."""

    async def test_old_done_archived(self, store):
        await _save(store, "cp-done", MigrationPhase.DONE)
        await _save(store, "cp-failed", MigrationPhase.FAILED)

        result = await CheckpointJanitor(store).cleanup(older_than_hours=72, now=LATER)

        assert sorted(result.archived) == ["cp-done", "cp-failed"]
        assert store.archived_ids() == ["cp-done", "cp-failed"]
        assert await store.list_statuses() == []

    async def test_in_progress_never_archived(self, store):
        await _save(store, "cp-copying", MigrationPhase.COPYING)
        await _save(store, "cp-discovering", MigrationPhase.DISCOVERING)

        result = await CheckpointJanitor(store).cleanup(older_than_hours=0, now=LATER)

        assert result.archived == []
        assert sorted(result.kept) == ["cp-copying", "cp-discovering"]

    async def test_recent_done_kept(self, store):
        await _save(store, "cp-done", MigrationPhase.DONE)
        result = await CheckpointJanitor(store).cleanup(older_than_hours=72)
        assert result.kept == ["cp-done"]

    async def test_scope_restriction(self, store):
        await _save(store, "cp-images", MigrationPhase.DONE)
        await _save(store, "cp-docs", MigrationPhase.DONE, scope="documents->documents_do")

        result = await CheckpointJanitor(store).cleanup(
            older_than_hours=1, scope="documents->documents_do", now=LATER
        )

        assert result.archived == ["cp-docs"]
        assert [s.checkpoint_id for s in await store.list_statuses()] == ["cp-images"]

    async def test_expired_locks_removed_live_kept(self, store):
        await LockManager(store, timeout_seconds=3600).acquire("images->images_do")
        await LockManager(store, timeout_seconds=-1).acquire("documents->documents_do")

        result = await CheckpointJanitor(store).cleanup()

        assert result.locks_removed == ["documents->documents_do"]
        assert await store.read_lock("images->images_do") is not None


@pytest.mark.asyncio
class TestForceCleanup:
    """Tests for force_cleanup()."""

    async def test_removes_live_locks(self, store):
        await LockManager(store).acquire("images->images_do")
        await LockManager(store).acquire("documents->documents_do")

        result = await CheckpointJanitor(store).force_cleanup()

        assert sorted(result.locks_removed) == ["documents->documents_do", "images->images_do"]
        assert await store.list_locks() == []

    async def test_still_keeps_in_progress_checkpoints(self, store):
        await _save(store, "cp-copying", MigrationPhase.COPYING)
        result = await CheckpointJanitor(store).force_cleanup(older_than_hours=0)
        assert result.kept == ["cp-copying"]

    async def test_single_scope(self, store):
        await LockManager(store).acquire("images->images_do")
        await LockManager(store).acquire("documents->documents_do")

        result = await CheckpointJanitor(store).force_cleanup(scope="images->images_do")

        assert result.locks_removed == ["images->images_do"]
        assert await store.read_lock("documents->documents_do") is not None
