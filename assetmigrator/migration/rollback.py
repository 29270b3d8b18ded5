"""
Rollback - replay a checkpoint's change log in reverse.

For every ``copied`` entry the target object is deleted, after checking
that the source object is still intact. Entries whose source is gone
keep their target copy and are reported. Failures never stop the
replay of the remaining entries, and re-running a rollback reports
already-deleted objects as ``already_removed``.

When a host catalog is given, assets whose target copy is gone lose
their migrated marker so the next migration discovers them again.

Usage:
    >>> rollback = RollbackEngine(store, resolver, catalog=host)
    >>> result = await rollback.rollback("20240501-101500-1a2b3c4d")
    >>> print(f"{len(result.removed)} removed, {len(result.errors)} errors")
"""

from dataclasses import dataclass, field
from typing import Any

from assetmigrator.core.exceptions import CheckpointNotFoundError
from assetmigrator.core.logger import get_logger
from assetmigrator.host.interfaces import (
    AssetCatalog,
    FilesystemResolver,
    StaticFilesystemResolver,
)
from assetmigrator.migration.changelog import ChangeLogEntry
from assetmigrator.migration.engine import EXIT_COMPLETED_WITH_ERRORS, EXIT_OK
from assetmigrator.migration.store.base import CheckpointStore
from assetmigrator.storage.interfaces.provider import StorageProvider

logger = get_logger(__name__)


@dataclass
class RollbackResult:
    """
    Outcome of a rollback.

    Attributes:
        checkpoint_id: Checkpoint whose change log was replayed
        dry_run: Nothing was deleted
        removed: Target paths deleted
        already_removed: Target paths that were already absent
        would_remove: Dry run only: target paths that would be deleted
        source_missing: Target paths kept because the source copy is gone
        errors: "path: message" for entries that could not be rolled back
        unmarked: Asset ids whose migrated marker was cleared
    """

    checkpoint_id: str
    dry_run: bool = False
    removed: list[str] = field(default_factory=list)
    already_removed: list[str] = field(default_factory=list)
    would_remove: list[str] = field(default_factory=list)
    source_missing: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    unmarked: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return (
            len(self.removed)
            + len(self.already_removed)
            + len(self.would_remove)
            + len(self.source_missing)
            + len(self.errors)
        )

    @property
    def success(self) -> bool:
        return not self.errors and not self.source_missing

    @property
    def exit_code(self) -> int:
        return EXIT_OK if self.success else EXIT_COMPLETED_WITH_ERRORS

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkpoint_id": self.checkpoint_id,
            "dry_run": self.dry_run,
            "removed": self.removed,
            "already_removed": self.already_removed,
            "would_remove": self.would_remove,
            "source_missing": self.source_missing,
            "errors": self.errors,
            "unmarked": self.unmarked,
            "success": self.success,
        }


class RollbackEngine:
    """Best-effort reversal of a migration's copied objects."""

    def __init__(
        self,
        store: CheckpointStore,
        providers: FilesystemResolver | dict[str, StorageProvider],
        catalog: AssetCatalog | None = None,
    ):
        """
        Args:
            store: Store holding the change log
            providers: Resolver (or handle -> provider mapping) for the
                handles named in change log entries
            catalog: Host catalog whose migrated markers are cleared for
                rolled-back assets
        """
        self.store = store
        self.resolver = (
            StaticFilesystemResolver(providers) if isinstance(providers, dict) else providers
        )
        self.catalog = catalog

    async def rollback(self, checkpoint_id: str, dry_run: bool = False) -> RollbackResult:
        """
        Reverse every copied entry of a checkpoint, newest first.

        Raises:
            CheckpointNotFoundError: No checkpoint and no change log under this id
        """
        entries = await self.store.read_changes(checkpoint_id)
        if not entries and await self.store.load_status(checkpoint_id) is None:
            raise CheckpointNotFoundError(checkpoint_id)

        result = RollbackResult(checkpoint_id=checkpoint_id, dry_run=dry_run)
        seen: set[tuple[str, str]] = set()
        reversible = [e for e in reversed(entries) if e.reversible]
        gone: dict[str, list[str]] = {}

        logger.info(
            f"{'Dry-run rollback' if dry_run else 'Rolling back'} checkpoint {checkpoint_id}: "
            f"{len(reversible)} copied entries"
        )

        for entry in reversible:
            key = (entry.target_handle, entry.target_path)
            if key in seen:
                continue
            seen.add(key)
            try:
                if await self._reverse(entry, result):
                    gone.setdefault(entry.target_handle, []).append(entry.asset_id)
            except Exception as e:
                logger.error(f"Rollback of {entry.target_path} failed: {e}")
                result.errors.append(f"{entry.target_path}: {e}")

        if self.catalog is not None and not dry_run:
            for target_handle, asset_ids in gone.items():
                await self.catalog.unmark_migrated(asset_ids, target_handle)
                result.unmarked.extend(asset_ids)

        logger.info(
            f"Rollback of {checkpoint_id} finished: {len(result.removed)} removed, "
            f"{len(result.already_removed)} already removed, {len(result.errors)} errors"
        )
        return result

    async def _reverse(self, entry: ChangeLogEntry, result: RollbackResult) -> bool:
        """Reverse one entry; True when the target copy no longer exists."""
        target = self._resolve(entry.target_handle)
        source = self._resolve(entry.source_handle)

        source_obj = await source.head_object(entry.source_path)
        if source_obj is None or (entry.size is not None and source_obj.size != entry.size):
            logger.warning(
                f"Source copy of {entry.source_path} on '{entry.source_handle}' is not intact; "
                f"keeping {entry.target_path} on '{entry.target_handle}'"
            )
            result.source_missing.append(entry.target_path)
            return False

        if not await target.object_exists(entry.target_path):
            result.already_removed.append(entry.target_path)
            return True

        if result.dry_run:
            result.would_remove.append(entry.target_path)
            return False

        await target.delete_file(entry.target_path)
        result.removed.append(entry.target_path)
        return True

    def _resolve(self, handle: str) -> StorageProvider:
        provider = self.resolver.resolve(handle)
        if provider is None:
            msg = f"Filesystem handle '{handle}' does not resolve"
            raise LookupError(msg)
        return provider
