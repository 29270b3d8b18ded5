"""
Checkpoint Store - Base interface.

Persists checkpoints, change logs and scope locks. The status header is
stored separately from the completed/failed sets so status queries
never materialize the full checkpoint.
"""

from abc import ABC, abstractmethod

from assetmigrator.migration.changelog import ChangeLogEntry
from assetmigrator.migration.checkpoint import CheckpointStatus, MigrationCheckpoint
from assetmigrator.migration.lock import MigrationLock


class CheckpointStore(ABC):
    """
    Abstract storage for migration state.

    Implementations must guarantee:
    - save() replaces the stored state of one checkpoint atomically
    - append_changes() only ever appends
    - write_lock() is conditional (create-if-absent or compare-token)

    Usage:
        >>> store = FilesystemCheckpointStore("./.assetmigrator")
        >>> await store.save(checkpoint)
        >>> status = await store.load_status(checkpoint.checkpoint_id)
    """

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    @abstractmethod
    async def save(self, checkpoint: MigrationCheckpoint) -> None:
        """
        Persist the full state of a checkpoint.

        The manifest is written on first save only.

        Raises:
            ValueError: The completed and failed sets no longer partition
                the manifest
        """
        ...

    @abstractmethod
    async def load(self, checkpoint_id: str) -> MigrationCheckpoint:
        """
        Load a full checkpoint.

        Raises:
            CheckpointNotFoundError: If no checkpoint has this id
        """
        ...

    @abstractmethod
    async def load_status(self, checkpoint_id: str) -> CheckpointStatus | None:
        """Load only the status header."""
        ...

    @abstractmethod
    async def list_statuses(self, scope: str | None = None) -> list[CheckpointStatus]:
        """Status headers of live (non-archived) checkpoints, newest first."""
        ...

    async def latest(self, scope: str) -> CheckpointStatus | None:
        """Most recent checkpoint for a scope."""
        statuses = await self.list_statuses(scope)
        return statuses[0] if statuses else None

    @abstractmethod
    async def archive(self, checkpoint_id: str) -> bool:
        """
        Move a checkpoint out of the live set.

        Returns:
            True if the checkpoint existed
        """
        ...

    # ------------------------------------------------------------------
    # Change log
    # ------------------------------------------------------------------

    @abstractmethod
    async def append_changes(self, checkpoint_id: str, entries: list[ChangeLogEntry]) -> None:
        """Append change log entries for a checkpoint."""
        ...

    @abstractmethod
    async def read_changes(self, checkpoint_id: str) -> list[ChangeLogEntry]:
        """All change log entries of a checkpoint, in append order."""
        ...

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    @abstractmethod
    async def read_lock(self, scope: str) -> MigrationLock | None:
        """Stored lock for a scope, expired or not."""
        ...

    @abstractmethod
    async def write_lock(self, lock: MigrationLock, expected_token: str | None = None) -> bool:
        """
        Conditionally store a lock.

        Args:
            lock: Lock record to write
            expected_token: None to create only if no lock exists; otherwise
                overwrite only if the stored lock carries this token

        Returns:
            True if the lock was written
        """
        ...

    @abstractmethod
    async def delete_lock(self, scope: str, expected_token: str | None = None) -> bool:
        """
        Delete a scope lock.

        Args:
            expected_token: Only delete if the stored lock carries this token

        Returns:
            True if a lock was deleted
        """
        ...

    @abstractmethod
    async def list_locks(self) -> list[MigrationLock]:
        """Every stored lock."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources held by the store."""

    async def __aenter__(self) -> "CheckpointStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
