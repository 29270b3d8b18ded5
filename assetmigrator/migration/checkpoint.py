"""
Migration Checkpoint - resumable state of one migration run.

Phase Diagram:

    ┌─────────────┐
    │ DISCOVERING │ ───────────────────┐
    └──────┬──────┘                    │
           │ manifest recorded         │ unrecoverable error
           ▼                           ▼
    ┌─────────────┐  error      ┌────────────┐
    │   COPYING   │ ──────────► │   FAILED   │
    └──────┬──────┘ ◄────────── └────────────┘
           │          resume
           ▼
    ┌─────────────┐
    │  VERIFYING  │ ──► COPYING (verification demoted assets, resume)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │    DONE     │
    └─────────────┘

Invariant: completed, failed and remaining partition the manifest.
"""

import secrets
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from assetmigrator.core.exceptions import InvalidPhaseTransitionError
from assetmigrator.host.interfaces import AssetRecord


class MigrationPhase(Enum):
    """Checkpoint phase."""

    DISCOVERING = "discovering"
    COPYING = "copying"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (MigrationPhase.DONE, MigrationPhase.FAILED)


TERMINAL_PHASES = frozenset({MigrationPhase.DONE, MigrationPhase.FAILED})


def new_checkpoint_id(now: datetime | None = None) -> str:
    """Time-based checkpoint id: YYYYMMDD-HHMMSS-<8 hex>."""
    now = now or datetime.now(UTC)
    return f"{now.strftime('%Y%m%d-%H%M%S')}-{secrets.token_hex(4)}"


def _parse_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class FailureRecord:
    """Last error recorded for a failed asset."""

    error: str
    error_type: str
    attempts: int = 1
    failed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_exception(cls, error: BaseException, attempts: int) -> "FailureRecord":
        return cls(error=str(error), error_type=type(error).__name__, attempts=attempts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "error_type": self.error_type,
            "attempts": self.attempts,
            "failed_at": self.failed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FailureRecord":
        return cls(
            error=data.get("error", ""),
            error_type=data.get("error_type", "Exception"),
            attempts=int(data.get("attempts", 1)),
            failed_at=_parse_time(data.get("failed_at")) or datetime.now(UTC),
        )


@dataclass
class CheckpointStatus:
    """
    Header of a checkpoint.

    Everything a status query needs, without the completed/failed sets
    or the manifest.
    """

    checkpoint_id: str
    scope: str
    phase: MigrationPhase
    source_handle: str
    target_handle: str
    created_at: datetime
    updated_at: datetime
    total: int = 0
    cursor: int = 0
    completed_count: int = 0
    failed_count: int = 0
    batch_size: int = 0
    batches_completed: int = 0
    source_config: dict[str, Any] = field(default_factory=dict)
    target_config: dict[str, Any] = field(default_factory=dict)
    lock_token: str | None = None
    supersedes: str | None = None
    volume: str | None = None
    last_error: str | None = None
    verified_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def remaining(self) -> int:
        return max(self.total - self.completed_count - self.failed_count, 0)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def progress_percent(self) -> float:
        if self.total == 0:
            return 100.0
        return (self.completed_count + self.failed_count) / self.total * 100

    def age_hours(self, now: datetime | None = None) -> float:
        now = now or datetime.now(UTC)
        return (now - self.updated_at).total_seconds() / 3600

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkpoint_id": self.checkpoint_id,
            "scope": self.scope,
            "phase": self.phase.value,
            "source_handle": self.source_handle,
            "target_handle": self.target_handle,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "total": self.total,
            "cursor": self.cursor,
            "completed_count": self.completed_count,
            "failed_count": self.failed_count,
            "batch_size": self.batch_size,
            "batches_completed": self.batches_completed,
            "source_config": self.source_config,
            "target_config": self.target_config,
            "lock_token": self.lock_token,
            "supersedes": self.supersedes,
            "volume": self.volume,
            "last_error": self.last_error,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckpointStatus":
        return cls(
            checkpoint_id=data["checkpoint_id"],
            scope=data["scope"],
            phase=MigrationPhase(data["phase"]),
            source_handle=data["source_handle"],
            target_handle=data["target_handle"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            total=int(data.get("total", 0)),
            cursor=int(data.get("cursor", 0)),
            completed_count=int(data.get("completed_count", 0)),
            failed_count=int(data.get("failed_count", 0)),
            batch_size=int(data.get("batch_size", 0)),
            batches_completed=int(data.get("batches_completed", 0)),
            source_config=data.get("source_config") or {},
            target_config=data.get("target_config") or {},
            lock_token=data.get("lock_token"),
            supersedes=data.get("supersedes"),
            volume=data.get("volume"),
            last_error=data.get("last_error"),
            verified_at=_parse_time(data.get("verified_at")),
            finished_at=_parse_time(data.get("finished_at")),
        )


@dataclass
class MigrationCheckpoint:
    """
    Full resumable state of a migration run.

    Attributes:
        checkpoint_id: Time-based identifier
        scope: "<source>-><target>" scope key
        manifest: Ordered asset enumeration recorded at discovery
        cursor: Manifest index up to which every asset has been attempted
        completed: Ids copied or found already present at target
        failed: Id -> last failure
    """

    checkpoint_id: str
    scope: str
    source_handle: str
    target_handle: str
    phase: MigrationPhase = MigrationPhase.DISCOVERING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    manifest: list[AssetRecord] = field(default_factory=list)
    cursor: int = 0
    completed: set[str] = field(default_factory=set)
    failed: dict[str, FailureRecord] = field(default_factory=dict)
    batch_size: int = 0
    batches_completed: int = 0
    source_config: dict[str, Any] = field(default_factory=dict)
    target_config: dict[str, Any] = field(default_factory=dict)
    lock_token: str | None = None
    supersedes: str | None = None
    volume: str | None = None
    last_error: str | None = None
    verified_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def total(self) -> int:
        return len(self.manifest)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    def asset(self, asset_id: str) -> AssetRecord | None:
        return self._index().get(asset_id)

    def _index(self) -> dict[str, AssetRecord]:
        return {record.asset_id: record for record in self.manifest}

    def remaining_ids(self) -> list[str]:
        """Manifest ids neither completed nor failed, in manifest order."""
        return [
            record.asset_id
            for record in self.manifest
            if record.asset_id not in self.completed and record.asset_id not in self.failed
        ]

    def pending_assets(self) -> list[AssetRecord]:
        """Assets still to process (remaining plus failed), in manifest order."""
        return [record for record in self.manifest if record.asset_id not in self.completed]

    def mark_completed(self, asset_id: str) -> None:
        self.failed.pop(asset_id, None)
        self.completed.add(asset_id)

    def mark_failed(self, asset_id: str, failure: FailureRecord) -> None:
        self.completed.discard(asset_id)
        self.failed[asset_id] = failure

    def reopen(self, asset_id: str) -> None:
        """Move a completed asset back to remaining."""
        self.completed.discard(asset_id)

    def advance_cursor(self, asset_ids: Iterable[str]) -> None:
        """Move the cursor past the furthest manifest position in asset_ids."""
        positions = {record.asset_id: i for i, record in enumerate(self.manifest)}
        furthest = max((positions[a] for a in asset_ids if a in positions), default=-1)
        self.cursor = max(self.cursor, furthest + 1)

    def touch(self) -> None:
        self.updated_at = datetime.now(UTC)

    def check_invariants(self) -> None:
        """
        Raise ValueError if completed/failed/remaining stop partitioning the manifest.
        """
        ids = [record.asset_id for record in self.manifest]
        if len(ids) != len(set(ids)):
            msg = f"Checkpoint {self.checkpoint_id}: duplicate asset ids in manifest"
            raise ValueError(msg)
        overlap = self.completed & set(self.failed)
        if overlap:
            msg = f"Checkpoint {self.checkpoint_id}: assets both completed and failed: {sorted(overlap)[:5]}"
            raise ValueError(msg)
        unknown = (self.completed | set(self.failed)) - set(ids)
        if unknown:
            msg = f"Checkpoint {self.checkpoint_id}: assets outside manifest: {sorted(unknown)[:5]}"
            raise ValueError(msg)

    def status(self) -> CheckpointStatus:
        return CheckpointStatus(
            checkpoint_id=self.checkpoint_id,
            scope=self.scope,
            phase=self.phase,
            source_handle=self.source_handle,
            target_handle=self.target_handle,
            created_at=self.created_at,
            updated_at=self.updated_at,
            total=self.total,
            cursor=self.cursor,
            completed_count=len(self.completed),
            failed_count=len(self.failed),
            batch_size=self.batch_size,
            batches_completed=self.batches_completed,
            source_config=self.source_config,
            target_config=self.target_config,
            lock_token=self.lock_token,
            supersedes=self.supersedes,
            volume=self.volume,
            last_error=self.last_error,
            verified_at=self.verified_at,
            finished_at=self.finished_at,
        )

    @classmethod
    def from_parts(
        cls,
        status: CheckpointStatus,
        manifest: list[AssetRecord],
        completed: Iterable[str],
        failed: dict[str, FailureRecord],
    ) -> "MigrationCheckpoint":
        return cls(
            checkpoint_id=status.checkpoint_id,
            scope=status.scope,
            source_handle=status.source_handle,
            target_handle=status.target_handle,
            phase=status.phase,
            created_at=status.created_at,
            updated_at=status.updated_at,
            manifest=list(manifest),
            cursor=status.cursor,
            completed=set(completed),
            failed=dict(failed),
            batch_size=status.batch_size,
            batches_completed=status.batches_completed,
            source_config=status.source_config,
            target_config=status.target_config,
            lock_token=status.lock_token,
            supersedes=status.supersedes,
            volume=status.volume,
            last_error=status.last_error,
            verified_at=status.verified_at,
            finished_at=status.finished_at,
        )


class CheckpointPhaseMachine:
    """
    Guards checkpoint phase transitions.

    Valid Transitions:
        DISCOVERING → COPYING, FAILED
        COPYING → VERIFYING, DONE, FAILED
        VERIFYING → DONE, COPYING, FAILED
        FAILED → COPYING (resume)
        DONE → (terminal; a resume supersedes it with a new checkpoint)

    Usage:
        >>> machine = CheckpointPhaseMachine()
        >>> machine.start_copying(checkpoint)
        >>> machine.finish(checkpoint)
    """

    # Valid transitions: from_phase -> [to_phase, ...]
    VALID_TRANSITIONS = {
        MigrationPhase.DISCOVERING: [MigrationPhase.COPYING, MigrationPhase.FAILED],
        MigrationPhase.COPYING: [
            MigrationPhase.VERIFYING,
            MigrationPhase.DONE,
            MigrationPhase.FAILED,
        ],
        MigrationPhase.VERIFYING: [
            MigrationPhase.DONE,
            MigrationPhase.COPYING,
            MigrationPhase.FAILED,
        ],
        MigrationPhase.FAILED: [MigrationPhase.COPYING],
        MigrationPhase.DONE: [],  # Terminal state
    }

    def __init__(
        self,
        on_transition: Callable[[MigrationCheckpoint, MigrationPhase, MigrationPhase], Any]
        | None = None,
    ):
        self._on_transition = on_transition

    def can_transition(self, from_phase: MigrationPhase, to_phase: MigrationPhase) -> bool:
        return to_phase in self.VALID_TRANSITIONS.get(from_phase, [])

    def transition(
        self, checkpoint: MigrationCheckpoint, target_phase: MigrationPhase
    ) -> MigrationCheckpoint:
        """
        Move a checkpoint to target_phase.

        Re-entering the current phase is a no-op.

        Raises:
            InvalidPhaseTransitionError: If the transition is not allowed
        """
        old_phase = checkpoint.phase
        if old_phase == target_phase:
            return checkpoint

        if not self.can_transition(old_phase, target_phase):
            raise InvalidPhaseTransitionError(
                old_phase.value, target_phase.value, checkpoint.checkpoint_id
            )

        checkpoint.phase = target_phase
        checkpoint.touch()
        if target_phase.is_terminal:
            checkpoint.finished_at = checkpoint.updated_at

        if self._on_transition:
            self._on_transition(checkpoint, old_phase, target_phase)

        return checkpoint

    def start_copying(self, checkpoint: MigrationCheckpoint) -> MigrationCheckpoint:
        checkpoint.finished_at = None
        return self.transition(checkpoint, MigrationPhase.COPYING)

    def start_verifying(self, checkpoint: MigrationCheckpoint) -> MigrationCheckpoint:
        return self.transition(checkpoint, MigrationPhase.VERIFYING)

    def finish(self, checkpoint: MigrationCheckpoint) -> MigrationCheckpoint:
        return self.transition(checkpoint, MigrationPhase.DONE)

    def fail(self, checkpoint: MigrationCheckpoint, error: str) -> MigrationCheckpoint:
        checkpoint.last_error = error
        return self.transition(checkpoint, MigrationPhase.FAILED)
