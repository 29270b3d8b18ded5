"""
Migration Lock - one active migration per source->target scope.

A lock is a small record (scope, token, holder, expiry) kept in the
checkpoint store. Expired locks are reclaimable so a crashed process
never blocks the scope forever.

Usage:
    >>> locks = LockManager(store, timeout_seconds=43200)
    >>> lock = await locks.acquire("images->images_do")
    >>> try:
    ...     ...
    ... finally:
    ...     await locks.release(lock)
"""

import os
import socket
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from assetmigrator.core.exceptions import LockConflictError
from assetmigrator.core.logger import get_logger

if TYPE_CHECKING:
    from assetmigrator.migration.store.base import CheckpointStore

logger = get_logger(__name__)


def default_holder() -> str:
    """host:pid of the current process."""
    return f"{socket.gethostname()}:{os.getpid()}"


@dataclass(frozen=True)
class MigrationLock:
    """Mutual-exclusion record for one migration scope."""

    scope: str
    token: str
    holder: str
    acquired_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "token": self.token,
            "holder": self.holder,
            "acquired_at": self.acquired_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MigrationLock":
        return cls(
            scope=data["scope"],
            token=data["token"],
            holder=data.get("holder", "unknown"),
            acquired_at=datetime.fromisoformat(data["acquired_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


class LockManager:
    """
    Acquires, refreshes and releases scope locks through a CheckpointStore.

    Attributes:
        store: Persistence for lock records
        timeout_seconds: Lifetime of a lock before it becomes reclaimable
        holder: Identity written into acquired locks
    """

    def __init__(
        self,
        store: "CheckpointStore",
        timeout_seconds: float = 43200,
        holder: str | None = None,
    ):
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.holder = holder or default_holder()

    def _new_lock(self, scope: str, token: str | None = None) -> MigrationLock:
        now = datetime.now(UTC)
        return MigrationLock(
            scope=scope,
            token=token or uuid.uuid4().hex,
            holder=self.holder,
            acquired_at=now,
            expires_at=now + timedelta(seconds=self.timeout_seconds),
        )

    async def current(self, scope: str) -> MigrationLock | None:
        """The live lock for a scope, or None if absent or expired."""
        lock = await self.store.read_lock(scope)
        if lock is None or lock.is_expired():
            return None
        return lock

    async def acquire(self, scope: str) -> MigrationLock:
        """
        Take the scope lock.

        An expired lock is reclaimed. The store write is conditional so
        two processes racing for the same scope cannot both win.

        Raises:
            LockConflictError: If a live lock is held
        """
        existing = await self.store.read_lock(scope)
        if existing is not None and not existing.is_expired():
            raise LockConflictError(scope, existing.holder, existing.expires_at)

        if existing is not None:
            logger.warning(
                f"Reclaiming expired lock on '{scope}' held by {existing.holder} "
                f"(expired {existing.expires_at.isoformat()})"
            )

        lock = self._new_lock(scope)
        written = await self.store.write_lock(
            lock, expected_token=existing.token if existing else None
        )
        if not written:
            current = await self.store.read_lock(scope)
            raise LockConflictError(
                scope,
                current.holder if current else None,
                current.expires_at if current else None,
            )

        logger.info(f"Acquired migration lock on '{scope}' ({lock.token[:8]})")
        return lock

    async def refresh(self, lock: MigrationLock) -> MigrationLock:
        """
        Extend a held lock.

        Raises:
            LockConflictError: If the lock was taken over by another holder
        """
        renewed = self._new_lock(lock.scope, token=lock.token)
        renewed = MigrationLock(
            scope=renewed.scope,
            token=renewed.token,
            holder=lock.holder,
            acquired_at=lock.acquired_at,
            expires_at=renewed.expires_at,
        )
        if not await self.store.write_lock(renewed, expected_token=lock.token):
            current = await self.store.read_lock(lock.scope)
            raise LockConflictError(
                lock.scope,
                current.holder if current else None,
                current.expires_at if current else None,
            )
        return renewed

    async def release(self, lock: MigrationLock) -> bool:
        """Release a held lock. A lock taken over by someone else is left alone."""
        released = await self.store.delete_lock(lock.scope, expected_token=lock.token)
        if released:
            logger.info(f"Released migration lock on '{lock.scope}'")
        else:
            logger.warning(f"Lock on '{lock.scope}' was no longer held by token {lock.token[:8]}")
        return released

    async def force_release(self, scope: str | None = None) -> list[str]:
        """
        Delete locks regardless of holder or age.

        Args:
            scope: Only this scope; every lock when None

        Returns:
            Scopes whose lock was removed
        """
        scopes = [scope] if scope else [lock.scope for lock in await self.store.list_locks()]
        removed = []
        for item in scopes:
            if await self.store.delete_lock(item):
                removed.append(item)
        if removed:
            logger.warning(f"Force-released locks: {', '.join(removed)}")
        return removed
