"""
Migration progress - a side observer of checkpoint updates.

The engine updates a MigrationProgress after every batch and hands it
to an optional callback. Persistence never depends on the callback.
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from assetmigrator.core.logger import get_logger

logger = get_logger(__name__)


@dataclass
class MigrationProgress:
    """
    Progress information for an ongoing migration.

    Attributes:
        checkpoint_id: Checkpoint being advanced
        phase: Current checkpoint phase value
        total: Assets in the manifest
        copied: Assets copied this run
        skipped: Assets already present at target
        failed: Assets that failed this run
        already_done: Assets completed by earlier runs of the checkpoint
        current_batch: Batch number (1-based)
        total_batches: Batches planned for this run
        dry_run: Whether the run is a simulation
        started_at: Run start time
    """

    checkpoint_id: str = ""
    phase: str = "discovering"
    total: int = 0
    copied: int = 0
    skipped: int = 0
    failed: int = 0
    already_done: int = 0
    current_batch: int = 0
    total_batches: int = 0
    dry_run: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def processed(self) -> int:
        return self.already_done + self.copied + self.skipped + self.failed

    @property
    def remaining(self) -> int:
        return max(self.total - self.processed, 0)

    @property
    def is_complete(self) -> bool:
        return self.processed >= self.total

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return self.processed / self.total * 100

    @property
    def elapsed_seconds(self) -> float:
        return (datetime.now(UTC) - self.started_at).total_seconds()

    @property
    def assets_per_second(self) -> float:
        elapsed = self.elapsed_seconds
        if elapsed == 0:
            return 0.0  # pragma: no cover
        return (self.copied + self.skipped + self.failed) / elapsed

    @property
    def estimated_remaining_seconds(self) -> float:
        rate = self.assets_per_second
        if rate == 0:
            return 0.0
        return self.remaining / rate

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkpoint_id": self.checkpoint_id,
            "phase": self.phase,
            "total": self.total,
            "copied": self.copied,
            "skipped": self.skipped,
            "failed": self.failed,
            "already_done": self.already_done,
            "current_batch": self.current_batch,
            "total_batches": self.total_batches,
            "dry_run": self.dry_run,
            "percent": round(self.percent, 2),
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "assets_per_second": round(self.assets_per_second, 2),
            "estimated_remaining_seconds": round(self.estimated_remaining_seconds, 2),
        }


ProgressCallback = Callable[[MigrationProgress], Awaitable[None] | None]


async def notify_progress(callback: ProgressCallback | None, progress: MigrationProgress) -> None:
    """Invoke a progress callback; its failures are logged, never raised."""
    if callback is None:
        return
    try:
        result = callback(progress)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning(f"Progress callback failed: {e}")
