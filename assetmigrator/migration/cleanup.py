"""
Checkpoint cleanup.

cleanup() archives terminal checkpoints older than the retention
window and never touches a checkpoint that is still in progress.
force_cleanup() additionally clears every lock, regardless of age.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from assetmigrator.core.logger import get_logger
from assetmigrator.migration.lock import LockManager
from assetmigrator.migration.store.base import CheckpointStore

logger = get_logger(__name__)

DEFAULT_RETENTION_HOURS = 72


@dataclass
class CleanupResult:
    """Checkpoints archived and locks cleared by a cleanup run."""

    archived: list[str] = field(default_factory=list)
    kept: list[str] = field(default_factory=list)
    locks_removed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "archived": self.archived,
            "kept": self.kept,
            "locks_removed": self.locks_removed,
        }


class CheckpointJanitor:
    """
    Purges old migration state.

    Usage:
        >>> janitor = CheckpointJanitor(store, LockManager(store))
        >>> result = await janitor.cleanup(older_than_hours=72)
    """

    def __init__(self, store: CheckpointStore, lock_manager: LockManager | None = None):
        self.store = store
        self.lock_manager = lock_manager or LockManager(store)

    async def cleanup(
        self,
        older_than_hours: float = DEFAULT_RETENTION_HOURS,
        scope: str | None = None,
        now: datetime | None = None,
    ) -> CleanupResult:
        """
        Archive terminal checkpoints last updated more than older_than_hours ago.

        Expired locks are removed too; live locks are left alone.
        """
        now = now or datetime.now(UTC)
        result = CleanupResult()

        for status in await self.store.list_statuses(scope):
            if status.is_terminal and status.age_hours(now) >= older_than_hours:
                if await self.store.archive(status.checkpoint_id):
                    result.archived.append(status.checkpoint_id)
            else:
                result.kept.append(status.checkpoint_id)

        for lock in await self.store.list_locks():
            if scope is not None and lock.scope != scope:
                continue
            if lock.is_expired(now) and await self.store.delete_lock(lock.scope, lock.token):
                result.locks_removed.append(lock.scope)

        logger.info(
            f"Cleanup: archived {len(result.archived)} checkpoints older than "
            f"{older_than_hours}h, kept {len(result.kept)}, "
            f"removed {len(result.locks_removed)} expired locks"
        )
        return result

    async def force_cleanup(
        self,
        older_than_hours: float = DEFAULT_RETENTION_HOURS,
        scope: str | None = None,
    ) -> CleanupResult:
        """
        Operator override for stuck state: cleanup() plus removal of every lock.
        """
        result = await self.cleanup(older_than_hours, scope=scope)
        for removed in await self.lock_manager.force_release(scope):
            if removed not in result.locks_removed:
                result.locks_removed.append(removed)
        return result
