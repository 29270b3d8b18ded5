"""
Host metadata collaborator: volumes, asset records and filesystem handles.
"""

from .interfaces import (
    AssetCatalog,
    AssetFilter,
    AssetRecord,
    FilesystemResolver,
    StaticFilesystemResolver,
    Volume,
    VolumeRepository,
    VolumeTransaction,
    asset_sort_key,
)
from .memory import InMemoryHostMetadata
from .resolver import ConfigFilesystemResolver

__all__ = [
    "AssetCatalog",
    "AssetFilter",
    "AssetRecord",
    "ConfigFilesystemResolver",
    "FilesystemResolver",
    "InMemoryHostMetadata",
    "StaticFilesystemResolver",
    "Volume",
    "VolumeRepository",
    "VolumeTransaction",
    "asset_sort_key",
]
