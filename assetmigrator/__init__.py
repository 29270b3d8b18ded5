"""
assetmigrator - Resumable migration of asset objects between S3-compatible stores

Moves the objects behind a host system's asset records from one storage
provider to another, then repoints the host's volumes in one transaction:
- Capability-typed providers (AWS S3, DigitalOcean Spaces, Wasabi,
  Cloudflare R2, local filesystem, in-memory) behind one interface
- A batch engine that checkpoints after every batch, skips objects already
  present at the target, and resumes after interruption
- An append-only change log that drives rollback
- A scope lock so only one migration runs per source/target pair
- All-or-nothing volume switch-over, in either direction
- Read-only diagnostics: listings, existence checks with suggestions, comparisons

Quick Start:
    >>> from assetmigrator import MigrationConfig, MigrationEngine
    >>>
    >>> config = MigrationConfig.from_file("assetmigrator.yaml")
    >>> engine = MigrationEngine.from_config(config, catalog)
    >>> result = await engine.migrate(dry_run=True)
    >>> print(result.would_copy, result.would_skip)
"""

__version__ = "1.0.0"

from assetmigrator.core.config import MigrationConfig, MigrationSettings
from assetmigrator.core.exceptions import (
    CheckpointNotFoundError,
    ConfigError,
    InvalidPhaseTransitionError,
    LockConflictError,
    MigratorError,
    MissingDependencyError,
)
from assetmigrator.diagnostics import ComparisonReport, DiagnosticsService
from assetmigrator.migration import (
    CheckpointJanitor,
    FilesystemCheckpointStore,
    InMemoryCheckpointStore,
    MigrationEngine,
    MigrationPhase,
    MigrationResult,
    RollbackEngine,
)
from assetmigrator.storage import (
    IntegrityError,
    NotFoundError,
    ProviderTransportError,
    StorageObject,
    StorageProvider,
    TransactionError,
    create_provider,
)
from assetmigrator.switchover import SwitchDirection, VolumeMapping, VolumeSwitchService

__all__ = [
    "CheckpointJanitor",
    "CheckpointNotFoundError",
    "ComparisonReport",
    "ConfigError",
    "DiagnosticsService",
    "FilesystemCheckpointStore",
    "InMemoryCheckpointStore",
    "IntegrityError",
    "InvalidPhaseTransitionError",
    "LockConflictError",
    "MigrationConfig",
    "MigrationEngine",
    "MigrationPhase",
    "MigrationResult",
    "MigrationSettings",
    "MigratorError",
    "MissingDependencyError",
    "NotFoundError",
    "ProviderTransportError",
    "RollbackEngine",
    "StorageObject",
    "StorageProvider",
    "SwitchDirection",
    "TransactionError",
    "VolumeMapping",
    "VolumeSwitchService",
    "__version__",
]
