"""
Volume mapping - directional pairing of filesystem handles.

``TO_TARGET`` applies the configured mapping as written; ``TO_SOURCE``
applies its inverse, so the same table drives both switch-over and its
reversal.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from assetmigrator.core.config import MigrationConfig
from assetmigrator.core.exceptions import ConfigError


class SwitchDirection(Enum):
    """Which way volumes are repointed."""

    TO_TARGET = "to-target"
    TO_SOURCE = "to-source"


@dataclass(frozen=True)
class VolumeMapping:
    """
    Source filesystem handle -> target filesystem handle.

    Invariants:
        - every handle maps to a different handle
        - no two source handles share a target (the inverse is well-defined)
    """

    pairs: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        for source, target in self.pairs.items():
            if not source or not target:
                msg = f"Empty handle in filesystem mapping: {source!r} -> {target!r}"
                raise ConfigError(msg, key="filesystem_mappings")
            if source == target:
                msg = f"Filesystem handle '{source}' is mapped to itself"
                raise ConfigError(msg, key=f"filesystem_mappings.{source}")

        targets = list(self.pairs.values())
        duplicates = sorted({t for t in targets if targets.count(t) > 1})
        if duplicates:
            msg = f"Target handle mapped from more than one source: {', '.join(duplicates)}"
            raise ConfigError(msg, key="filesystem_mappings")

    @classmethod
    def from_config(cls, config: MigrationConfig) -> "VolumeMapping":
        if not config.filesystem_mappings:
            msg = "No filesystem mappings configured"
            raise ConfigError(msg, key="filesystem_mappings")
        return cls(dict(config.filesystem_mappings))

    def inverted(self) -> "VolumeMapping":
        return VolumeMapping({target: source for source, target in self.pairs.items()})

    def for_direction(self, direction: SwitchDirection) -> dict[str, str]:
        """(from_handle -> to_handle) pairs for a direction, sorted by from_handle."""
        pairs = self.pairs if direction == SwitchDirection.TO_TARGET else self.inverted().pairs
        return dict(sorted(pairs.items()))

    @property
    def source_handles(self) -> set[str]:
        return set(self.pairs)

    @property
    def target_handles(self) -> set[str]:
        return set(self.pairs.values())

    def side_of(self, handle: str) -> str:
        """'source', 'target' or 'other' for a filesystem handle."""
        if handle in self.pairs:
            return "source"
        if handle in self.target_handles:
            return "target"
        return "other"

    def to_dict(self) -> dict[str, Any]:
        return dict(self.pairs)
