"""
Migration Engine - checkpointed, resumable batch copy between providers.

Lifecycle of one run:
    1. Discover assets governed by the source handle and not yet migrated
    2. Acquire the scope lock (unless explicitly bypassed)
    3. Copy in batches; persist the checkpoint after every batch
    4. Optionally verify every completed asset at the target
    5. Mark the checkpoint done and release the lock

Usage:
    >>> engine = MigrationEngine(
    ...     source, target, catalog, store,
    ...     source_handle="images", target_handle="images_do",
    ... )
    >>> result = await engine.migrate()
    >>> print(f"{result.copied} copied, {result.skipped} skipped, {result.failed} failed")
    >>>
    >>> # After an interruption
    >>> result = await engine.migrate(resume=True)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from assetmigrator.core.config import MigrationConfig, MigrationSettings, migration_scope
from assetmigrator.core.exceptions import CheckpointNotFoundError, ConfigError
from assetmigrator.core.logger import get_logger
from assetmigrator.host.interfaces import AssetCatalog, AssetFilter, AssetRecord, asset_sort_key
from assetmigrator.migration.changelog import ChangeLogEntry, ChangeOutcome
from assetmigrator.migration.checkpoint import (
    CheckpointPhaseMachine,
    CheckpointStatus,
    FailureRecord,
    MigrationCheckpoint,
    MigrationPhase,
    new_checkpoint_id,
)
from assetmigrator.migration.lock import LockManager, MigrationLock
from assetmigrator.migration.progress import MigrationProgress, ProgressCallback, notify_progress
from assetmigrator.migration.retry import RetryPolicy, with_timeout
from assetmigrator.migration.store.base import CheckpointStore
from assetmigrator.monitoring.logging import MigrationLogger
from assetmigrator.storage.core.errors import IntegrityError, NotFoundError
from assetmigrator.storage.interfaces.provider import StorageProvider, negotiate_batch_size

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_COMPLETED_WITH_ERRORS = 2


@dataclass
class AssetResult:
    """Outcome of processing one asset in a batch."""

    asset: AssetRecord
    outcome: ChangeOutcome
    attempts: int = 1
    size: int | None = None
    error: Exception | None = None


@dataclass
class VerificationReport:
    """
    Result of re-checking completed assets at the target.

    Attributes:
        checkpoint_id: Checkpoint verified
        checked: Completed assets examined
        verified: Assets present with the expected size
        missing: Asset ids absent at target
        mismatched: Asset id -> (expected size, actual size)
        errors: Asset id -> error message for assets that could not be checked
    """

    checkpoint_id: str
    checked: int = 0
    verified: int = 0
    missing: list[str] = field(default_factory=list)
    mismatched: dict[str, tuple[int | None, int | None]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def demoted(self) -> list[str]:
        return [*self.missing, *self.mismatched, *self.errors]

    @property
    def ok(self) -> bool:
        return not self.demoted

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkpoint_id": self.checkpoint_id,
            "checked": self.checked,
            "verified": self.verified,
            "missing": self.missing,
            "mismatched": {k: list(v) for k, v in self.mismatched.items()},
            "errors": self.errors,
            "ok": self.ok,
        }


@dataclass
class MigrationResult:
    """
    Summary of one migrate() call.

    Attributes:
        checkpoint_id: Checkpoint advanced by the run (None for a dry run without one)
        phase: Checkpoint phase at the end of the run
        total: Assets in the checkpoint manifest
        copied: Assets copied by this run
        skipped: Assets already present at target (this run)
        failed: Assets in the checkpoint's failed set at the end of the run
        would_copy: Dry run only: assets that would be copied
        would_skip: Dry run only: assets that would be skipped
        errors: First errors, "asset_id: message"
    """

    checkpoint_id: str | None
    phase: str
    scope: str
    total: int = 0
    copied: int = 0
    skipped: int = 0
    failed: int = 0
    would_copy: int = 0
    would_skip: int = 0
    dry_run: bool = False
    resumed: bool = False
    cancelled: bool = False
    supersedes: str | None = None
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    verification: VerificationReport | None = None

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.cancelled

    @property
    def exit_code(self) -> int:
        if self.cancelled:
            return EXIT_FATAL
        if self.failed:
            return EXIT_COMPLETED_WITH_ERRORS
        return EXIT_OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkpoint_id": self.checkpoint_id,
            "phase": self.phase,
            "scope": self.scope,
            "total": self.total,
            "copied": self.copied,
            "skipped": self.skipped,
            "failed": self.failed,
            "would_copy": self.would_copy,
            "would_skip": self.would_skip,
            "dry_run": self.dry_run,
            "resumed": self.resumed,
            "cancelled": self.cancelled,
            "supersedes": self.supersedes,
            "errors": self.errors,
            "duration_seconds": round(self.duration_seconds, 2),
            "verification": self.verification.to_dict() if self.verification else None,
            "exit_code": self.exit_code,
        }


class MigrationEngine:
    """
    Resumable, at-least-once batch copy from a source to a target provider.

    Batch size is the smaller of both providers' optimal batch sizes,
    capped by ``settings.batch_size``. Within a batch up to
    ``settings.concurrency`` assets are copied at once; the checkpoint is
    written only after every asset of the batch has resolved.
    """

    def __init__(
        self,
        source: StorageProvider,
        target: StorageProvider,
        catalog: AssetCatalog,
        store: CheckpointStore,
        settings: MigrationSettings | None = None,
        *,
        source_handle: str,
        target_handle: str,
        lock_manager: LockManager | None = None,
        progress_callback: ProgressCallback | None = None,
        metrics: Any | None = None,
        retry_policy: RetryPolicy | None = None,
        source_config: dict[str, Any] | None = None,
        target_config: dict[str, Any] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the engine.

        Args:
            source: Provider assets are read from
            target: Provider assets are written to
            catalog: Host asset catalog
            store: Checkpoint, change log and lock persistence
            settings: Engine tunables
            source_handle: Filesystem handle of the source provider
            target_handle: Filesystem handle of the target provider
            lock_manager: Scope lock manager (built on store when omitted)
            progress_callback: Called with a MigrationProgress after each batch
            metrics: Optional MigrationMetrics collector
            retry_policy: Per-asset retry policy (built from settings when omitted)
            source_config: Redacted source definition recorded in checkpoints
            target_config: Redacted target definition recorded in checkpoints
            sleep: Backoff sleep, replaceable in tests
        """
        if source_handle == target_handle:
            msg = "Source and target handles must differ"
            raise ConfigError(msg, key="roles.target")

        self.source = source
        self.target = target
        self.catalog = catalog
        self.store = store
        self.settings = settings or MigrationSettings()
        self.source_handle = source_handle
        self.target_handle = target_handle
        self.lock_manager = lock_manager or LockManager(
            store, timeout_seconds=self.settings.lock_timeout_seconds
        )
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self.metrics = metrics
        self.source_config = source_config or {"type": source.provider_type, "name": source.name}
        self.target_config = target_config or {"type": target.provider_type, "name": target.name}

        self._progress_callback = progress_callback
        self._sleep = sleep
        self._phases = CheckpointPhaseMachine(on_transition=self._on_phase_change)
        self._log = MigrationLogger()
        self._cancelled = False
        self._progress = MigrationProgress()

    @classmethod
    def from_config(
        cls,
        config: MigrationConfig,
        catalog: AssetCatalog,
        store: CheckpointStore | None = None,
        **kwargs: Any,
    ) -> "MigrationEngine":
        """
        Build an engine for the configured source/target roles.

        Raises:
            ConfigError: Missing roles or invalid provider definitions
        """
        from assetmigrator.migration.store.filesystem import FilesystemCheckpointStore

        source_handle = config.require_role("source")
        target_handle = config.require_role("target")
        return cls(
            config.build_provider(source_handle),
            config.build_provider(target_handle),
            catalog,
            store or FilesystemCheckpointStore(config.settings.state_dir),
            config.settings,
            source_handle=source_handle,
            target_handle=target_handle,
            source_config=config.provider_definition(source_handle).redacted(),
            target_config=config.provider_definition(target_handle).redacted(),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def scope(self) -> str:
        return migration_scope(self.source_handle, self.target_handle)

    @property
    def batch_size(self) -> int:
        return negotiate_batch_size(
            self.source.capabilities, self.target.capabilities, self.settings.batch_size
        )

    @property
    def progress(self) -> MigrationProgress:
        return self._progress

    def cancel(self) -> None:
        """Stop after the assets already in flight; the checkpoint is flushed."""
        self._cancelled = True
        logger.info("Migration cancellation requested")

    def _on_phase_change(
        self, checkpoint: MigrationCheckpoint, old: MigrationPhase, new: MigrationPhase
    ) -> None:
        self._log.set_context(phase=new.value)
        logger.info(f"Checkpoint {checkpoint.checkpoint_id}: {old.value} -> {new.value}")

    # ------------------------------------------------------------------
    # Discovery and status
    # ------------------------------------------------------------------

    async def discover(
        self,
        volume: str | None = None,
        asset_filter: AssetFilter | None = None,
    ) -> list[AssetRecord]:
        """
        Enumerate assets still to migrate, ordered by asset id.

        Assets the catalog already records as migrated to the target
        handle are excluded.
        """
        migrated = await self.catalog.migrated_ids(self.target_handle)
        assets = [
            asset
            async for asset in self.catalog.iter_assets(
                fs_handle=self.source_handle, volume=volume, asset_filter=asset_filter
            )
            if asset.asset_id not in migrated
        ]
        assets.sort(key=lambda a: asset_sort_key(a.asset_id))
        logger.info(
            f"Discovered {len(assets)} assets on '{self.source_handle}' "
            f"({len(migrated)} already migrated to '{self.target_handle}')"
        )
        return assets

    async def status(self, checkpoint_id: str | None = None) -> CheckpointStatus | None:
        """Status header of a checkpoint, or of the latest one for this scope."""
        if checkpoint_id:
            return await self.store.load_status(checkpoint_id)
        return await self.store.latest(self.scope)

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    async def migrate(
        self,
        *,
        dry_run: bool = False,
        resume: bool = False,
        checkpoint_id: str | None = None,
        skip_lock: bool = False,
        verify: bool | None = None,
        volume: str | None = None,
        asset_filter: AssetFilter | None = None,
    ) -> MigrationResult:
        """
        Run (or resume) a migration.

        Args:
            dry_run: Decide what would be copied or skipped without writing
                anything to the target or to the checkpoint store
            resume: Continue the latest checkpoint of this scope
            checkpoint_id: Continue this checkpoint (implies resume)
            skip_lock: Proceed even if another run holds the scope lock
            verify: Run the verification pass (default: settings.verify)
            volume: Restrict discovery to one volume handle
            asset_filter: Further restrict discovery

        Returns:
            MigrationResult

        Raises:
            LockConflictError: Scope locked by a live run and skip_lock is False
            CheckpointNotFoundError: checkpoint_id does not exist
            ConfigError: checkpoint belongs to another scope
        """
        start = time.perf_counter()
        self._cancelled = False
        verify = self.settings.verify if verify is None else verify
        resume = resume or checkpoint_id is not None

        if dry_run:
            return await self._dry_run(resume, checkpoint_id, volume, asset_filter, start)

        lock: MigrationLock | None = None
        if skip_lock:
            logger.warning(f"Lock bypassed for scope '{self.scope}'")
        else:
            lock = await self.lock_manager.acquire(self.scope)

        try:
            checkpoint, resumed = await self._prepare(resume, checkpoint_id, volume, asset_filter)
            return await self._run(checkpoint, resumed, verify, lock, start)
        finally:
            if lock is not None:
                await self.lock_manager.release(lock)

    async def _prepare(
        self,
        resume: bool,
        checkpoint_id: str | None,
        volume: str | None,
        asset_filter: AssetFilter | None,
    ) -> tuple[MigrationCheckpoint, bool]:
        """Load the checkpoint to continue, or discover into a new one."""
        supersedes = None
        if resume:
            status = await self._find_resumable(checkpoint_id)
            if status is not None and status.phase != MigrationPhase.DONE and status.total > 0:
                checkpoint = await self.store.load(status.checkpoint_id)
                await self._revalidate(checkpoint)
                return checkpoint, True
            if status is not None:
                supersedes = status.checkpoint_id
                logger.info(
                    f"Checkpoint {status.checkpoint_id} is {status.phase.value}; "
                    f"starting a new checkpoint that supersedes it"
                )

        checkpoint = MigrationCheckpoint(
            checkpoint_id=new_checkpoint_id(),
            scope=self.scope,
            source_handle=self.source_handle,
            target_handle=self.target_handle,
            batch_size=self.batch_size,
            source_config=self.source_config,
            target_config=self.target_config,
            supersedes=supersedes,
            volume=volume,
        )

        try:
            manifest = await self.discover(volume, asset_filter)
            if supersedes is not None:
                manifest = await self._carry_over_failures(supersedes, manifest)
            checkpoint.manifest = manifest
        except Exception as e:
            self._phases.fail(checkpoint, f"Discovery failed: {e}")
            await self.store.save(checkpoint)
            raise

        await self.store.save(checkpoint)
        return checkpoint, False

    async def _carry_over_failures(
        self, previous_id: str, manifest: list[AssetRecord]
    ) -> list[AssetRecord]:
        """Add the failed assets of a superseded checkpoint to a new manifest."""
        previous = await self.store.load(previous_id)
        known = {a.asset_id for a in manifest}
        carried = [
            a for a in previous.manifest if a.asset_id in previous.failed and a.asset_id not in known
        ]
        if not carried:
            return manifest
        logger.info(f"Retrying {len(carried)} failed assets from checkpoint {previous_id}")
        return sorted([*manifest, *carried], key=lambda a: asset_sort_key(a.asset_id))

    async def _find_resumable(self, checkpoint_id: str | None) -> CheckpointStatus | None:
        if checkpoint_id:
            status = await self.store.load_status(checkpoint_id)
            if status is None:
                raise CheckpointNotFoundError(checkpoint_id)
            if status.scope != self.scope:
                msg = (
                    f"Checkpoint {checkpoint_id} belongs to scope '{status.scope}', "
                    f"not '{self.scope}'"
                )
                raise ConfigError(msg, key="checkpoint_id")
            return status

        status = await self.store.latest(self.scope)
        if status is None:
            logger.info(f"No checkpoint to resume for '{self.scope}'; starting fresh")
        return status

    async def _revalidate(self, checkpoint: MigrationCheckpoint) -> list[str]:
        """
        Re-check that completed assets are still present at the target.

        Missing or size-mismatched assets move back to remaining.
        """
        completed = [a for a in checkpoint.manifest if a.asset_id in checkpoint.completed]
        if not completed:
            return []

        semaphore = asyncio.Semaphore(max(self.settings.concurrency, 1))

        async def still_present(asset: AssetRecord) -> bool:
            async with semaphore:
                try:
                    obj = await with_timeout(
                        self.target.head_object(asset.path),
                        self.settings.attempt_timeout_seconds,
                        "head_object",
                        self.target.name,
                    )
                except Exception as e:
                    logger.warning(f"Could not revalidate asset {asset.asset_id}: {e}")
                    return False
                return obj is not None and (asset.size is None or obj.size == asset.size)

        present = await asyncio.gather(*(still_present(a) for a in completed))
        reopened = [a.asset_id for a, ok in zip(completed, present, strict=True) if not ok]
        for asset_id in reopened:
            checkpoint.reopen(asset_id)

        if reopened:
            await self.catalog.unmark_migrated(reopened, self.target_handle)
            logger.warning(
                f"Checkpoint {checkpoint.checkpoint_id}: {len(reopened)} completed assets "
                f"missing at target, reopened"
            )
        return reopened

    def _batches(self, assets: list[AssetRecord]) -> list[list[AssetRecord]]:
        size = self.batch_size
        return [assets[i : i + size] for i in range(0, len(assets), size)]

    async def _run(
        self,
        checkpoint: MigrationCheckpoint,
        resumed: bool,
        verify: bool,
        lock: MigrationLock | None,
        start: float,
    ) -> MigrationResult:
        result = MigrationResult(
            checkpoint_id=checkpoint.checkpoint_id,
            phase=checkpoint.phase.value,
            scope=self.scope,
            total=checkpoint.total,
            resumed=resumed,
            supersedes=checkpoint.supersedes,
        )

        try:
            self._phases.start_copying(checkpoint)
            checkpoint.lock_token = lock.token if lock else None
            checkpoint.batch_size = self.batch_size
            await self.store.save(checkpoint)

            pending = checkpoint.pending_assets()
            batches = self._batches(pending)
            self._progress = MigrationProgress(
                checkpoint_id=checkpoint.checkpoint_id,
                phase=checkpoint.phase.value,
                total=checkpoint.total,
                already_done=len(checkpoint.completed),
                total_batches=len(batches),
            )
            self._log.migration_started(
                checkpoint.checkpoint_id, self.scope, checkpoint.total, resumed=resumed
            )

            for number, batch in enumerate(batches, start=1):
                if self._cancelled:
                    break
                lock = await self._run_batch(checkpoint, batch, number, result, lock)

            if self._cancelled:
                result.cancelled = True
                checkpoint.touch()
                await self.store.save(checkpoint)
                logger.warning(
                    f"Migration cancelled; checkpoint {checkpoint.checkpoint_id} saved at "
                    f"{len(checkpoint.completed)}/{checkpoint.total}"
                )
            else:
                if verify:
                    self._phases.start_verifying(checkpoint)
                    await self.store.save(checkpoint)
                    result.verification = await self.verify(checkpoint)
                    checkpoint.verified_at = datetime.now(UTC)
                self._phases.finish(checkpoint)
                await self.store.save(checkpoint)

        except Exception as e:
            if not checkpoint.is_terminal:
                self._phases.fail(checkpoint, str(e))
                try:
                    await self.store.save(checkpoint)
                except Exception as save_error:
                    logger.error(f"Could not persist failed checkpoint: {save_error}")
            self._log.migration_finished(
                checkpoint.checkpoint_id,
                checkpoint.phase.value,
                result.copied,
                result.skipped,
                len(checkpoint.failed),
                round((time.perf_counter() - start) * 1000, 2),
            )
            raise

        result.phase = checkpoint.phase.value
        result.failed = len(checkpoint.failed)
        result.errors = self._error_summary(checkpoint)
        result.duration_seconds = time.perf_counter() - start

        self._log.migration_finished(
            checkpoint.checkpoint_id,
            result.phase,
            result.copied,
            result.skipped,
            result.failed,
            round(result.duration_seconds * 1000, 2),
        )
        if self.metrics is not None:
            self.metrics.record_run(self.scope, result.phase)
        return result

    async def _run_batch(
        self,
        checkpoint: MigrationCheckpoint,
        batch: list[AssetRecord],
        number: int,
        result: MigrationResult,
        lock: MigrationLock | None,
    ) -> MigrationLock | None:
        """Process one batch, then persist change log and checkpoint."""
        batch_start = time.perf_counter()
        results = await self._process_batch(batch, dry_run=False)

        entries = []
        completed_ids = []
        copied = skipped = failed = 0
        for item in results:
            asset = item.asset
            if item.outcome == ChangeOutcome.FAILED:
                failed += 1
                checkpoint.mark_failed(
                    asset.asset_id, FailureRecord.from_exception(item.error, item.attempts)
                )
                self._log.asset_failed(asset.asset_id, asset.path, item.error, item.attempts)
            else:
                if item.outcome == ChangeOutcome.COPIED:
                    copied += 1
                else:
                    skipped += 1
                checkpoint.mark_completed(asset.asset_id)
                completed_ids.append(asset.asset_id)

            entries.append(
                ChangeLogEntry.for_asset(
                    asset,
                    self.source_handle,
                    self.target_handle,
                    item.outcome,
                    size=item.size,
                    error=str(item.error) if item.error else None,
                )
            )
            if self.metrics is not None:
                self.metrics.record_asset(self.scope, item.outcome.value)

        checkpoint.advance_cursor(item.asset.asset_id for item in results)
        checkpoint.batches_completed += 1
        checkpoint.touch()

        # Change log first: an entry without a checkpoint update is re-validated on resume
        await self.store.append_changes(checkpoint.checkpoint_id, entries)
        await self.store.save(checkpoint)
        if completed_ids:
            await self.catalog.mark_migrated(completed_ids, self.target_handle)
        if lock is not None:
            lock = await self.lock_manager.refresh(lock)

        result.copied += copied
        result.skipped += skipped

        duration = time.perf_counter() - batch_start
        self._log.batch_completed(number, copied, skipped, failed, round(duration * 1000, 2))
        if self.metrics is not None:
            self.metrics.record_batch(
                self.scope, duration, len(checkpoint.manifest) - len(checkpoint.completed)
            )

        self._progress.phase = checkpoint.phase.value
        self._progress.current_batch = number
        self._progress.copied += copied
        self._progress.skipped += skipped
        self._progress.failed += failed
        await notify_progress(self._progress_callback, self._progress)
        return lock

    async def _process_batch(self, batch: list[AssetRecord], dry_run: bool) -> list[AssetResult]:
        """
        Process every asset of a batch.

        Assets not yet started when cancel() is called are left out of
        the result and stay remaining.
        """
        semaphore = asyncio.Semaphore(self.settings.concurrency)

        async def run_one(asset: AssetRecord) -> AssetResult | None:
            async with semaphore:
                if self._cancelled:
                    return None
                return await self._process_asset(asset, dry_run)

        results = await asyncio.gather(*(run_one(asset) for asset in batch))
        return [r for r in results if r is not None]

    async def _process_asset(self, asset: AssetRecord, dry_run: bool) -> AssetResult:
        outcome = await self.retry_policy.run(
            lambda: self._attempt(asset, dry_run),
            description=f"asset {asset.asset_id} ({asset.path})",
            sleep=self._sleep,
        )
        if outcome.ok:
            change, size = outcome.value
            return AssetResult(asset, change, attempts=outcome.attempts, size=size)
        return AssetResult(
            asset, ChangeOutcome.FAILED, attempts=outcome.attempts, error=outcome.error
        )

    async def _bounded(self, awaitable: Awaitable[Any], operation: str, provider: StorageProvider):
        return await with_timeout(
            awaitable, self.settings.attempt_timeout_seconds, operation, provider.name
        )

    async def _attempt(self, asset: AssetRecord, dry_run: bool) -> tuple[ChangeOutcome, int]:
        """
        One copy attempt.

        Raises:
            NotFoundError: Source object missing
            IntegrityError: Object too large for the target, or size mismatch after copy
            ProviderTransportError: Transport failure or timeout (retryable)
        """
        source_obj = await self._bounded(
            self.source.head_object(asset.path), "head_object", self.source
        )
        if source_obj is None:
            raise NotFoundError(
                f"Source object missing: {asset.path}",
                provider=self.source.name,
                path=asset.path,
            )

        target_obj = await self._bounded(
            self.target.head_object(asset.path), "head_object", self.target
        )
        if target_obj is not None and target_obj.size == source_obj.size:
            return ChangeOutcome.SKIPPED, source_obj.size

        capabilities = self.target.capabilities
        if not capabilities.accepts_size(source_obj.size):
            raise IntegrityError(
                f"{asset.path} is {source_obj.size} bytes, above the "
                f"{capabilities.max_file_size} byte limit of '{self.target.name}'",
                provider=self.target.name,
                path=asset.path,
                expected_size=source_obj.size,
            )

        if dry_run:
            return ChangeOutcome.COPIED, source_obj.size

        await self._bounded(
            self.source.copy_object(asset.path, self.target, asset.path),
            "copy_object",
            self.source,
        )

        copied = await self._bounded(
            self.target.head_object(asset.path), "head_object", self.target
        )
        if copied is None or copied.size != source_obj.size:
            raise IntegrityError(
                f"Size mismatch after copying {asset.path}",
                provider=self.target.name,
                path=asset.path,
                expected_size=source_obj.size,
                actual_size=copied.size if copied else None,
            )
        return ChangeOutcome.COPIED, source_obj.size

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    async def _dry_run(
        self,
        resume: bool,
        checkpoint_id: str | None,
        volume: str | None,
        asset_filter: AssetFilter | None,
        start: float,
    ) -> MigrationResult:
        """Decide copy/skip for every pending asset without any write."""
        existing = None
        if resume:
            status = await self._find_resumable(checkpoint_id)
            if status is not None and status.phase != MigrationPhase.DONE and status.total > 0:
                existing = await self.store.load(status.checkpoint_id)

        assets = existing.pending_assets() if existing else await self.discover(volume, asset_filter)
        result = MigrationResult(
            checkpoint_id=existing.checkpoint_id if existing else None,
            phase=existing.phase.value if existing else MigrationPhase.DISCOVERING.value,
            scope=self.scope,
            total=existing.total if existing else len(assets),
            dry_run=True,
            resumed=existing is not None,
        )
        self._progress = MigrationProgress(
            checkpoint_id=result.checkpoint_id or "",
            phase="dry-run",
            total=result.total,
            already_done=len(existing.completed) if existing else 0,
            total_batches=len(self._batches(assets)),
            dry_run=True,
        )

        logger.info(f"Dry run for '{self.scope}': {len(assets)} assets to evaluate")
        for number, batch in enumerate(self._batches(assets), start=1):
            if self._cancelled:
                result.cancelled = True
                break
            for item in await self._process_batch(batch, dry_run=True):
                if item.outcome == ChangeOutcome.COPIED:
                    result.would_copy += 1
                    self._progress.copied += 1
                elif item.outcome == ChangeOutcome.SKIPPED:
                    result.would_skip += 1
                    self._progress.skipped += 1
                else:
                    result.failed += 1
                    self._progress.failed += 1
                    if len(result.errors) < self.settings.max_reported_errors:
                        result.errors.append(f"{item.asset.asset_id}: {item.error}")
            self._progress.current_batch = number
            await notify_progress(self._progress_callback, self._progress)

        result.duration_seconds = time.perf_counter() - start
        logger.info(
            f"Dry run complete: {result.would_copy} would be copied, "
            f"{result.would_skip} would be skipped, {result.failed} would fail"
        )
        return result

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify(self, checkpoint: MigrationCheckpoint | str) -> VerificationReport:
        """
        Re-check target existence and size for every completed asset.

        Mismatches demote the asset to failed with an IntegrityError.
        When given a checkpoint id, the checkpoint is loaded and the
        demotions are persisted.
        """
        persist = isinstance(checkpoint, str)
        if persist:
            checkpoint = await self.store.load(checkpoint)

        report = VerificationReport(checkpoint_id=checkpoint.checkpoint_id)
        completed = [a for a in checkpoint.manifest if a.asset_id in checkpoint.completed]
        semaphore = asyncio.Semaphore(self.settings.concurrency)

        async def check(asset: AssetRecord) -> None:
            async with semaphore:
                try:
                    target_obj = await self._bounded(
                        self.target.head_object(asset.path), "head_object", self.target
                    )
                    if target_obj is None:
                        report.missing.append(asset.asset_id)
                        return
                    expected = asset.size
                    if expected is None:
                        source_obj = await self._bounded(
                            self.source.head_object(asset.path), "head_object", self.source
                        )
                        expected = source_obj.size if source_obj else None
                    if expected is not None and target_obj.size != expected:
                        report.mismatched[asset.asset_id] = (expected, target_obj.size)
                        return
                    report.verified += 1
                except Exception as e:
                    report.errors[asset.asset_id] = str(e)

        await asyncio.gather(*(check(asset) for asset in completed))
        report.checked = len(completed)

        by_id = {a.asset_id: a for a in completed}
        for asset_id in report.missing:
            self._demote(checkpoint, by_id[asset_id], "Missing at target after copy", None, None)
        for asset_id, (expected, actual) in report.mismatched.items():
            self._demote(checkpoint, by_id[asset_id], "Size mismatch at target", expected, actual)
        for asset_id, message in report.errors.items():
            self._demote(checkpoint, by_id[asset_id], f"Verification failed: {message}", None, None)
        if report.demoted:
            await self.catalog.unmark_migrated(report.demoted, self.target_handle)

        if report.ok:
            logger.info(f"Verified {report.verified}/{report.checked} assets at target")
        else:
            logger.warning(
                f"Verification demoted {len(report.demoted)} of {report.checked} assets "
                f"({len(report.missing)} missing, {len(report.mismatched)} mismatched)"
            )

        if persist:
            checkpoint.verified_at = datetime.now(UTC)
            checkpoint.touch()
            await self.store.save(checkpoint)
        return report

    def _demote(
        self,
        checkpoint: MigrationCheckpoint,
        asset: AssetRecord,
        message: str,
        expected: int | None,
        actual: int | None,
    ) -> None:
        error = IntegrityError(
            f"{message}: {asset.path}",
            provider=self.target.name,
            path=asset.path,
            expected_size=expected,
            actual_size=actual,
        )
        checkpoint.mark_failed(asset.asset_id, FailureRecord.from_exception(error, attempts=1))

    def _error_summary(self, checkpoint: MigrationCheckpoint) -> list[str]:
        limit = self.settings.max_reported_errors
        return [
            f"{asset_id}: {record.error}"
            for asset_id, record in list(checkpoint.failed.items())[:limit]
        ]
