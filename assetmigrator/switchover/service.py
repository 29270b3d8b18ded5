"""
Volume Switch-over - transactional repointing of host volumes.

Pre-flight resolves every handle before any mutation: a target handle
that does not resolve aborts the whole switch, a source handle that does
not resolve only skips its pair. All volume updates then run inside one
metadata transaction; any failure rolls every update back. Committed and
rolled back are the only observable end states.

Usage:
    >>> service = VolumeSwitchService(host, resolver, VolumeMapping.from_config(config))
    >>> plan = await service.preview(SwitchDirection.TO_TARGET)
    >>> result = await service.switch(SwitchDirection.TO_TARGET)
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from assetmigrator.core.exceptions import ConfigError
from assetmigrator.core.logger import get_logger
from assetmigrator.host.interfaces import (
    AssetCatalog,
    FilesystemResolver,
    Volume,
    VolumeRepository,
)
from assetmigrator.storage.core.errors import TransactionError
from assetmigrator.storage.core.health import ConnectionTestResult, probe_connection
from assetmigrator.switchover.mapping import SwitchDirection, VolumeMapping

logger = get_logger(__name__)


@dataclass
class SwitchPair:
    """One (from_handle -> to_handle) pair of a switch plan."""

    from_handle: str
    to_handle: str
    from_resolves: bool
    to_resolves: bool
    volumes: list[Volume] = field(default_factory=list)
    asset_count: int | None = None

    @property
    def skipped(self) -> bool:
        return not self.from_resolves

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_handle,
            "to": self.to_handle,
            "from_resolves": self.from_resolves,
            "to_resolves": self.to_resolves,
            "volumes": [v.handle for v in self.volumes],
            "asset_count": self.asset_count,
            "skipped": self.skipped,
        }


@dataclass
class SwitchPlan:
    """What a switch in one direction would change."""

    direction: SwitchDirection
    pairs: list[SwitchPair] = field(default_factory=list)

    @property
    def unresolved_targets(self) -> list[str]:
        return [p.to_handle for p in self.pairs if not p.to_resolves]

    @property
    def can_apply(self) -> bool:
        return not self.unresolved_targets

    @property
    def affected_volumes(self) -> list[Volume]:
        return [v for p in self.pairs if not p.skipped for v in p.volumes]

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "can_apply": self.can_apply,
            "unresolved_targets": self.unresolved_targets,
            "pairs": [p.to_dict() for p in self.pairs],
        }


@dataclass
class SwitchResult:
    """Outcome of a committed switch."""

    direction: SwitchDirection
    committed: bool = False
    updated: list[tuple[str, str, str]] = field(default_factory=list)
    skipped_pairs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "committed": self.committed,
            "updated": [
                {"volume": volume, "from": old, "to": new} for volume, old, new in self.updated
            ],
            "skipped_pairs": self.skipped_pairs,
        }


@dataclass
class SwitchVerification:
    """
    Which side of the mapping each volume is bound to.

    state is "source", "target", "mixed" (mapped volumes on both sides)
    or "unmapped" (no volume uses a mapped handle).
    """

    source: list[Volume] = field(default_factory=list)
    target: list[Volume] = field(default_factory=list)
    other: list[Volume] = field(default_factory=list)
    unresolved_handles: list[str] = field(default_factory=list)

    @property
    def state(self) -> str:
        if self.source and self.target:
            return "mixed"
        if self.source:
            return "source"
        if self.target:
            return "target"
        return "unmapped"

    @property
    def ok(self) -> bool:
        return self.state != "mixed" and not self.unresolved_handles

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "source": [v.to_dict() for v in self.source],
            "target": [v.to_dict() for v in self.target],
            "other": [v.to_dict() for v in self.other],
            "unresolved_handles": self.unresolved_handles,
        }


class VolumeSwitchService:
    """
    Repoints volumes between filesystem handles.

    Attributes:
        volumes: Host volume repository (owns the transaction)
        resolver: Turns filesystem handles into live providers
        mapping: Source -> target handle table
        catalog: Optional asset catalog used for preview counts
    """

    def __init__(
        self,
        volumes: VolumeRepository,
        resolver: FilesystemResolver,
        mapping: VolumeMapping,
        catalog: AssetCatalog | None = None,
    ):
        self.volumes = volumes
        self.resolver = resolver
        self.mapping = mapping
        self.catalog = catalog

    async def preview(self, direction: SwitchDirection) -> SwitchPlan:
        """Plan a switch without touching anything."""
        all_volumes = await self.volumes.list_volumes()
        plan = SwitchPlan(direction=direction)

        for from_handle, to_handle in self.mapping.for_direction(direction).items():
            pair = SwitchPair(
                from_handle=from_handle,
                to_handle=to_handle,
                from_resolves=self.resolver.resolve(from_handle) is not None,
                to_resolves=self.resolver.resolve(to_handle) is not None,
                volumes=[v for v in all_volumes if v.fs_handle == from_handle],
            )
            if self.catalog is not None:
                pair.asset_count = await self.catalog.count_assets(fs_handle=from_handle)
            plan.pairs.append(pair)

        return plan

    async def switch(self, direction: SwitchDirection) -> SwitchResult:
        """
        Repoint every volume of every resolvable pair, all or nothing.

        Raises:
            ConfigError: A target handle does not resolve (nothing was changed)
            TransactionError: A volume update or the commit failed (everything rolled back)
        """
        plan = await self.preview(direction)

        if not plan.can_apply:
            msg = (
                f"Switch {direction.value} aborted before any change: target handle(s) "
                f"{', '.join(plan.unresolved_targets)} do not resolve to a provider"
            )
            raise ConfigError(msg, key="filesystem_mappings")

        result = SwitchResult(direction=direction)
        for pair in plan.pairs:
            if pair.skipped:
                logger.warning(
                    f"Skipping {pair.from_handle} -> {pair.to_handle}: "
                    f"source handle does not resolve"
                )
                result.skipped_pairs.append(pair.from_handle)

        updates = [(volume, pair) for pair in plan.pairs if not pair.skipped for volume in pair.volumes]

        try:
            async with self.volumes.transaction() as tx:
                for volume, pair in updates:
                    try:
                        await tx.update_fs_handle(volume, pair.to_handle)
                    except Exception as e:
                        raise TransactionError(
                            f"Switch {direction.value} rolled back: updating volume "
                            f"'{volume.handle}' ({pair.from_handle} -> {pair.to_handle}) failed: {e}",
                            operation="update",
                            volume=volume.handle,
                        ) from e
                    result.updated.append((volume.handle, pair.from_handle, pair.to_handle))
        except TransactionError:
            logger.error(f"Switch {direction.value} rolled back")
            raise
        except Exception as e:
            raise TransactionError(
                f"Switch {direction.value} rolled back: commit failed: {e}",
                operation="commit",
            ) from e

        result.committed = True
        logger.info(
            f"Switch {direction.value} committed: {len(result.updated)} volumes updated, "
            f"{len(result.skipped_pairs)} pairs skipped"
        )
        return result

    async def verify(self) -> SwitchVerification:
        """Classify every volume against the mapping."""
        verification = SwitchVerification()
        for volume in await self.volumes.list_volumes():
            side = self.mapping.side_of(volume.fs_handle)
            getattr(verification, side).append(volume)
            if side != "other" and self.resolver.resolve(volume.fs_handle) is None:
                if volume.fs_handle not in verification.unresolved_handles:
                    verification.unresolved_handles.append(volume.fs_handle)
        return verification

    async def test_connectivity(self, timeout_seconds: float = 10.0) -> dict[str, ConnectionTestResult]:
        """Probe every handle named in the mapping. Never raises."""
        handles = sorted(self.mapping.source_handles | self.mapping.target_handles)

        async def probe(handle: str) -> ConnectionTestResult:
            provider = self.resolver.resolve(handle)
            if provider is None:
                return ConnectionTestResult.failure(
                    f"Filesystem handle '{handle}' does not resolve to a provider",
                    details={"handle": handle},
                )
            return await probe_connection(provider, timeout_seconds)

        results = await asyncio.gather(*(probe(handle) for handle in handles))
        return dict(zip(handles, results, strict=True))
