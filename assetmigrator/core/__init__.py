# ============================================
# FILE: assetmigrator/core/__init__.py
# ============================================

"""
Core building blocks shared by every layer: configuration, environment
handling, scope-level exceptions and the logger hook.
"""

from assetmigrator.core.config import (
    MigrationConfig,
    MigrationSettings,
    ProviderDefinition,
    migration_scope,
)
from assetmigrator.core.env import EnvManager, get_env
from assetmigrator.core.exceptions import (
    CheckpointNotFoundError,
    ConfigError,
    InvalidPhaseTransitionError,
    LockConflictError,
    MigratorError,
    MissingDependencyError,
)
from assetmigrator.core.logger import configure_default_logging, get_logger, set_logger

__all__ = [
    "CheckpointNotFoundError",
    "ConfigError",
    "EnvManager",
    "InvalidPhaseTransitionError",
    "LockConflictError",
    "MigrationConfig",
    "MigrationSettings",
    "MigratorError",
    "MissingDependencyError",
    "ProviderDefinition",
    "configure_default_logging",
    "get_env",
    "get_logger",
    "migration_scope",
    "set_logger",
]
