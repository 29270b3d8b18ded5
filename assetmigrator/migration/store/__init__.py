"""
Checkpoint persistence.

Available stores:
    - InMemoryCheckpointStore: tests and dry runs
    - FilesystemCheckpointStore: JSON files under a state directory (aiofiles)
"""

from assetmigrator.migration.store.base import CheckpointStore
from assetmigrator.migration.store.filesystem import FilesystemCheckpointStore
from assetmigrator.migration.store.memory import InMemoryCheckpointStore

__all__ = [
    "CheckpointStore",
    "FilesystemCheckpointStore",
    "InMemoryCheckpointStore",
]
