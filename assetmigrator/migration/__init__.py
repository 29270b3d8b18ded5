"""
Checkpointed migration engine.

Quick Start:
    >>> from assetmigrator.migration import MigrationEngine, FilesystemCheckpointStore
    >>>
    >>> engine = MigrationEngine(
    ...     source, target, catalog, FilesystemCheckpointStore("./.assetmigrator"),
    ...     source_handle="images", target_handle="images_do",
    ... )
    >>> result = await engine.migrate(dry_run=True)
"""

from assetmigrator.migration.changelog import ChangeLogEntry, ChangeOutcome
from assetmigrator.migration.checkpoint import (
    TERMINAL_PHASES,
    CheckpointPhaseMachine,
    CheckpointStatus,
    FailureRecord,
    MigrationCheckpoint,
    MigrationPhase,
    new_checkpoint_id,
)
from assetmigrator.migration.cleanup import CheckpointJanitor, CleanupResult
from assetmigrator.migration.engine import (
    EXIT_COMPLETED_WITH_ERRORS,
    EXIT_FATAL,
    EXIT_OK,
    MigrationEngine,
    MigrationResult,
    VerificationReport,
)
from assetmigrator.migration.lock import LockManager, MigrationLock
from assetmigrator.migration.progress import MigrationProgress
from assetmigrator.migration.retry import RetryPolicy
from assetmigrator.migration.rollback import RollbackEngine, RollbackResult
from assetmigrator.migration.store import (
    CheckpointStore,
    FilesystemCheckpointStore,
    InMemoryCheckpointStore,
)

__all__ = [
    "EXIT_COMPLETED_WITH_ERRORS",
    "EXIT_FATAL",
    "EXIT_OK",
    "TERMINAL_PHASES",
    "ChangeLogEntry",
    "ChangeOutcome",
    "CheckpointJanitor",
    "CheckpointPhaseMachine",
    "CheckpointStatus",
    "CheckpointStore",
    "CleanupResult",
    "FailureRecord",
    "FilesystemCheckpointStore",
    "InMemoryCheckpointStore",
    "LockManager",
    "MigrationCheckpoint",
    "MigrationEngine",
    "MigrationLock",
    "MigrationPhase",
    "MigrationProgress",
    "MigrationResult",
    "RetryPolicy",
    "RollbackEngine",
    "RollbackResult",
    "VerificationReport",
    "new_checkpoint_id",
]
