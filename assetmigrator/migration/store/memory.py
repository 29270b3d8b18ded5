"""
In-Memory Checkpoint Store

For testing and development only. State is lost on restart.
Records are kept as serialized dicts so callers never share mutable
state with the store.
"""

import asyncio
from typing import Any

from assetmigrator.core.exceptions import CheckpointNotFoundError
from assetmigrator.host.interfaces import AssetRecord
from assetmigrator.migration.changelog import ChangeLogEntry
from assetmigrator.migration.checkpoint import (
    CheckpointStatus,
    FailureRecord,
    MigrationCheckpoint,
)
from assetmigrator.migration.lock import MigrationLock
from assetmigrator.migration.store.base import CheckpointStore


class InMemoryCheckpointStore(CheckpointStore):
    """
    In-memory checkpoint store.

    Usage:
        >>> store = InMemoryCheckpointStore()
        >>> await store.save(checkpoint)
        >>> loaded = await store.load(checkpoint.checkpoint_id)
    """

    def __init__(self):
        self._statuses: dict[str, dict[str, Any]] = {}
        self._manifests: dict[str, list[dict[str, Any]]] = {}
        self._completed: dict[str, list[str]] = {}
        self._failed: dict[str, dict[str, dict[str, Any]]] = {}
        self._changes: dict[str, list[dict[str, Any]]] = {}
        self._archived: dict[str, dict[str, Any]] = {}
        self._locks: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self.save_count = 0

    async def save(self, checkpoint: MigrationCheckpoint) -> None:
        checkpoint.check_invariants()
        async with self._lock:
            checkpoint_id = checkpoint.checkpoint_id
            if checkpoint_id not in self._manifests:
                self._manifests[checkpoint_id] = [a.to_dict() for a in checkpoint.manifest]
            self._completed[checkpoint_id] = sorted(checkpoint.completed)
            self._failed[checkpoint_id] = {
                asset_id: record.to_dict() for asset_id, record in checkpoint.failed.items()
            }
            self._statuses[checkpoint_id] = checkpoint.status().to_dict()
            self.save_count += 1

    async def load(self, checkpoint_id: str) -> MigrationCheckpoint:
        status = await self.load_status(checkpoint_id)
        if status is None:
            raise CheckpointNotFoundError(checkpoint_id)
        return MigrationCheckpoint.from_parts(
            status,
            manifest=[AssetRecord.from_dict(a) for a in self._manifests.get(checkpoint_id, [])],
            completed=self._completed.get(checkpoint_id, []),
            failed={
                asset_id: FailureRecord.from_dict(data)
                for asset_id, data in self._failed.get(checkpoint_id, {}).items()
            },
        )

    async def load_status(self, checkpoint_id: str) -> CheckpointStatus | None:
        data = self._statuses.get(checkpoint_id)
        return CheckpointStatus.from_dict(data) if data else None

    async def list_statuses(self, scope: str | None = None) -> list[CheckpointStatus]:
        statuses = [CheckpointStatus.from_dict(data) for data in self._statuses.values()]
        if scope is not None:
            statuses = [s for s in statuses if s.scope == scope]
        return sorted(statuses, key=lambda s: (s.created_at, s.checkpoint_id), reverse=True)

    async def archive(self, checkpoint_id: str) -> bool:
        async with self._lock:
            status = self._statuses.pop(checkpoint_id, None)
            if status is None:
                return False
            self._archived[checkpoint_id] = {
                "status": status,
                "manifest": self._manifests.pop(checkpoint_id, []),
                "completed": self._completed.pop(checkpoint_id, []),
                "failed": self._failed.pop(checkpoint_id, {}),
                "changes": self._changes.pop(checkpoint_id, []),
            }
            return True

    def archived_ids(self) -> list[str]:
        return sorted(self._archived)

    async def append_changes(self, checkpoint_id: str, entries: list[ChangeLogEntry]) -> None:
        async with self._lock:
            self._changes.setdefault(checkpoint_id, []).extend(e.to_dict() for e in entries)

    async def read_changes(self, checkpoint_id: str) -> list[ChangeLogEntry]:
        return [ChangeLogEntry.from_dict(e) for e in self._changes.get(checkpoint_id, [])]

    async def read_lock(self, scope: str) -> MigrationLock | None:
        data = self._locks.get(scope)
        return MigrationLock.from_dict(data) if data else None

    async def write_lock(self, lock: MigrationLock, expected_token: str | None = None) -> bool:
        async with self._lock:
            current = self._locks.get(lock.scope)
            if expected_token is None and current is not None:
                return False
            if expected_token is not None and (current is None or current["token"] != expected_token):
                return False
            self._locks[lock.scope] = lock.to_dict()
            return True

    async def delete_lock(self, scope: str, expected_token: str | None = None) -> bool:
        async with self._lock:
            current = self._locks.get(scope)
            if current is None:
                return False
            if expected_token is not None and current["token"] != expected_token:
                return False
            del self._locks[scope]
            return True

    async def list_locks(self) -> list[MigrationLock]:
        return [MigrationLock.from_dict(data) for _, data in sorted(self._locks.items())]
