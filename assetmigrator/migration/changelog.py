"""
Change log - append-only ledger of per-object migration outcomes.

Rollback replays the entries of one checkpoint in reverse order.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from assetmigrator.host.interfaces import AssetRecord


class ChangeOutcome(Enum):
    """What happened to one asset during a migration run."""

    COPIED = "copied"
    SKIPPED = "skipped-already-present"
    FAILED = "failed"


@dataclass(frozen=True)
class ChangeLogEntry:
    """One reversible record per processed object."""

    asset_id: str
    source_path: str
    target_path: str
    source_handle: str
    target_handle: str
    outcome: ChangeOutcome
    size: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    error: str | None = None

    @property
    def reversible(self) -> bool:
        """Only copied objects were created by the migration."""
        return self.outcome == ChangeOutcome.COPIED

    @classmethod
    def for_asset(
        cls,
        asset: AssetRecord,
        source_handle: str,
        target_handle: str,
        outcome: ChangeOutcome,
        size: int | None = None,
        error: str | None = None,
    ) -> "ChangeLogEntry":
        return cls(
            asset_id=asset.asset_id,
            source_path=asset.path,
            target_path=asset.path,
            source_handle=source_handle,
            target_handle=target_handle,
            outcome=outcome,
            size=size if size is not None else asset.size,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            "asset_id": self.asset_id,
            "source_path": self.source_path,
            "target_path": self.target_path,
            "source_handle": self.source_handle,
            "target_handle": self.target_handle,
            "outcome": self.outcome.value,
            "size": self.size,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeLogEntry":
        return cls(
            asset_id=str(data["asset_id"]),
            source_path=data["source_path"],
            target_path=data["target_path"],
            source_handle=data["source_handle"],
            target_handle=data["target_handle"],
            outcome=ChangeOutcome(data["outcome"]),
            size=data.get("size"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            error=data.get("error"),
        )
