# ============================================
# FILE: assetmigrator/migration/store/filesystem.py
# ============================================

"""
Filesystem Checkpoint Store

Stores migration state as JSON files under a state directory so that
operators can inspect it with ordinary tools.

Layout:
    state_dir/
    ├── checkpoints/
    │   └── {checkpoint_id}/
    │       ├── status.json       # header, read alone by status queries
    │       ├── manifest.json     # ordered asset enumeration (written once)
    │       ├── completed.json
    │       ├── failed.json
    │       └── changelog.jsonl   # append-only
    ├── locks/
    │   └── {scope}.json
    ├── archive/
    │   └── {checkpoint_id}/
    └── latest.json               # scope -> most recent checkpoint id

Every JSON document is replaced atomically (temp file + rename), so a
crash leaves either the previous or the new version on disk.

Example:
    >>> store = FilesystemCheckpointStore("./.assetmigrator")
    >>> async with store:
    ...     await store.save(checkpoint)
"""

import asyncio
import re
import shutil
import uuid
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from assetmigrator.core.exceptions import CheckpointNotFoundError
from assetmigrator.core.logger import get_logger
from assetmigrator.host.interfaces import AssetRecord
from assetmigrator.migration.changelog import ChangeLogEntry
from assetmigrator.migration.checkpoint import (
    CheckpointStatus,
    FailureRecord,
    MigrationCheckpoint,
)
from assetmigrator.migration.lock import MigrationLock
from assetmigrator.migration.store.base import CheckpointStore
from assetmigrator.storage.core.errors import SerializationError
from assetmigrator.storage.core.serialization import (
    deserialize,
    deserialize_lines,
    serialize,
    serialize_lines,
)

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def scope_filename(scope: str) -> str:
    """Filesystem-safe name for a scope key."""
    return _UNSAFE_CHARS.sub("_", scope) + ".json"


class FilesystemCheckpointStore(CheckpointStore):
    """
    JSON-file checkpoint store.

    Attributes:
        state_dir: Root directory for checkpoints, locks and archive
        pretty_json: Indent JSON documents for readability
    """

    def __init__(self, state_dir: str | Path = "./.assetmigrator", pretty_json: bool = True):
        """
        Initialize the store and create its directory structure.

        Args:
            state_dir: Root directory (created if missing)
            pretty_json: Pretty-print JSON documents (indent=2)
        """
        self.state_dir = Path(state_dir)
        self.pretty_json = pretty_json

        self.checkpoints_dir = self.state_dir / "checkpoints"
        self.locks_dir = self.state_dir / "locks"
        self.archive_dir = self.state_dir / "archive"
        self.latest_path = self.state_dir / "latest.json"

        self.checkpoints_dir.mkdir(parents=True, exist_ok=True)
        self.locks_dir.mkdir(parents=True, exist_ok=True)
        self.archive_dir.mkdir(parents=True, exist_ok=True)

        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _checkpoint_dir(self, checkpoint_id: str) -> Path:
        if not checkpoint_id or "/" in checkpoint_id or checkpoint_id.startswith("."):
            raise CheckpointNotFoundError(checkpoint_id)
        return self.checkpoints_dir / checkpoint_id

    def _lock_path(self, scope: str) -> Path:
        return self.locks_dir / scope_filename(scope)

    async def _write_json(self, path: Path, data: Any) -> None:
        """Atomically replace a JSON document."""
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(serialize(data, pretty=self.pretty_json))
        await aiofiles.os.replace(tmp_path, path)

    async def _read_json(self, path: Path) -> Any:
        async with aiofiles.open(path, encoding="utf-8") as f:
            return deserialize(await f.read())

    async def _read_json_or_none(self, path: Path) -> Any:
        try:
            return await self._read_json(path)
        except FileNotFoundError:
            return None

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def save(self, checkpoint: MigrationCheckpoint) -> None:
        """
        Persist a checkpoint.

        Writes completed/failed first and the status header last, so a
        header never claims more progress than the sets on disk.
        """
        checkpoint.check_invariants()
        directory = self._checkpoint_dir(checkpoint.checkpoint_id)
        async with self._lock:
            await aiofiles.os.makedirs(directory, exist_ok=True)

            manifest_path = directory / "manifest.json"
            if not await aiofiles.os.path.exists(manifest_path):
                await self._write_json(manifest_path, [a.to_dict() for a in checkpoint.manifest])

            await self._write_json(directory / "completed.json", sorted(checkpoint.completed))
            await self._write_json(
                directory / "failed.json",
                {asset_id: record.to_dict() for asset_id, record in checkpoint.failed.items()},
            )
            await self._write_json(directory / "status.json", checkpoint.status().to_dict())
            await self._update_latest(checkpoint.scope, checkpoint.checkpoint_id)

        logger.debug(
            f"Saved checkpoint {checkpoint.checkpoint_id} "
            f"(phase={checkpoint.phase.value}, cursor={checkpoint.cursor})"
        )

    async def _update_latest(self, scope: str, checkpoint_id: str) -> None:
        pointers = await self._read_json_or_none(self.latest_path) or {}
        if pointers.get(scope) == checkpoint_id:
            return
        current = pointers.get(scope)
        if current and current > checkpoint_id and (self.checkpoints_dir / current).exists():
            return
        pointers[scope] = checkpoint_id
        await self._write_json(self.latest_path, pointers)

    async def load(self, checkpoint_id: str) -> MigrationCheckpoint:
        directory = self._checkpoint_dir(checkpoint_id)
        status = await self.load_status(checkpoint_id)
        if status is None:
            raise CheckpointNotFoundError(checkpoint_id)

        manifest = await self._read_json_or_none(directory / "manifest.json") or []
        completed = await self._read_json_or_none(directory / "completed.json") or []
        failed = await self._read_json_or_none(directory / "failed.json") or {}

        try:
            return MigrationCheckpoint.from_parts(
                status,
                manifest=[AssetRecord.from_dict(a) for a in manifest],
                completed=completed,
                failed={k: FailureRecord.from_dict(v) for k, v in failed.items()},
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(
                message=f"Corrupt checkpoint {checkpoint_id}: {e}",
                operation="load",
                data_type="MigrationCheckpoint",
            ) from e

    async def load_status(self, checkpoint_id: str) -> CheckpointStatus | None:
        data = await self._read_json_or_none(self._checkpoint_dir(checkpoint_id) / "status.json")
        if data is None:
            return None
        try:
            return CheckpointStatus.from_dict(data)
        except (KeyError, ValueError) as e:
            raise SerializationError(
                message=f"Corrupt status for checkpoint {checkpoint_id}: {e}",
                operation="load_status",
                data_type="CheckpointStatus",
            ) from e

    async def list_statuses(self, scope: str | None = None) -> list[CheckpointStatus]:
        statuses = []
        for directory in sorted(self.checkpoints_dir.iterdir()):
            if not directory.is_dir():
                continue
            try:
                status = await self.load_status(directory.name)
            except SerializationError as e:
                logger.warning(f"Skipping unreadable checkpoint {directory.name}: {e}")
                continue
            if status is None or (scope is not None and status.scope != scope):
                continue
            statuses.append(status)
        return sorted(statuses, key=lambda s: (s.created_at, s.checkpoint_id), reverse=True)

    async def latest(self, scope: str) -> CheckpointStatus | None:
        pointers = await self._read_json_or_none(self.latest_path) or {}
        checkpoint_id = pointers.get(scope)
        if checkpoint_id:
            status = await self.load_status(checkpoint_id)
            if status is not None:
                return status
        return await super().latest(scope)

    async def archive(self, checkpoint_id: str) -> bool:
        source = self._checkpoint_dir(checkpoint_id)
        async with self._lock:
            if not source.exists():
                return False
            destination = self.archive_dir / checkpoint_id
            if destination.exists():
                await asyncio.to_thread(shutil.rmtree, destination)
            await asyncio.to_thread(shutil.move, str(source), str(destination))

            pointers = await self._read_json_or_none(self.latest_path) or {}
            remaining = {scope: cid for scope, cid in pointers.items() if cid != checkpoint_id}
            if remaining != pointers:
                await self._write_json(self.latest_path, remaining)

        logger.info(f"Archived checkpoint {checkpoint_id}")
        return True

    # ------------------------------------------------------------------
    # Change log
    # ------------------------------------------------------------------

    async def append_changes(self, checkpoint_id: str, entries: list[ChangeLogEntry]) -> None:
        if not entries:
            return
        directory = self._checkpoint_dir(checkpoint_id)
        async with self._lock:
            await aiofiles.os.makedirs(directory, exist_ok=True)
            async with aiofiles.open(directory / "changelog.jsonl", "a", encoding="utf-8") as f:
                await f.write(serialize_lines(entries))
                await f.flush()

    async def read_changes(self, checkpoint_id: str) -> list[ChangeLogEntry]:
        path = self._checkpoint_dir(checkpoint_id) / "changelog.jsonl"
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            return []
        return [ChangeLogEntry.from_dict(record) for record in deserialize_lines(content)]

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    async def read_lock(self, scope: str) -> MigrationLock | None:
        data = await self._read_json_or_none(self._lock_path(scope))
        return MigrationLock.from_dict(data) if data else None

    async def write_lock(self, lock: MigrationLock, expected_token: str | None = None) -> bool:
        path = self._lock_path(lock.scope)
        async with self._lock:
            if expected_token is None:
                # Exclusive create: fails if another process got there first
                try:
                    async with aiofiles.open(path, "x", encoding="utf-8") as f:
                        await f.write(serialize(lock, pretty=self.pretty_json))
                except FileExistsError:
                    return False
                return True

            current = await self._read_json_or_none(path)
            if current is None or current.get("token") != expected_token:
                return False
            await self._write_json(path, lock)
            return True

    async def delete_lock(self, scope: str, expected_token: str | None = None) -> bool:
        path = self._lock_path(scope)
        async with self._lock:
            current = await self._read_json_or_none(path)
            if current is None:
                return False
            if expected_token is not None and current.get("token") != expected_token:
                return False
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                return False
            return True

    async def list_locks(self) -> list[MigrationLock]:
        locks = []
        for path in sorted(self.locks_dir.glob("*.json")):
            data = await self._read_json_or_none(path)
            if data:
                locks.append(MigrationLock.from_dict(data))
        return locks
