"""
SQLite Host Metadata.

Embedded host metadata store using SQLite with async support via aiosqlite.
Holds volumes, asset records and the migrated-asset markers; volume
switch-over runs inside one BEGIN/COMMIT transaction.

Usage:
    >>> from assetmigrator.host.sqlite import SQLiteHostMetadata
    >>>
    >>> host = SQLiteHostMetadata("./host.db")
    >>> async with host:
    ...     await host.add_volume(Volume("1", "images", "Images", "images"))
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import UTC, datetime

try:
    import aiosqlite

    AIOSQLITE_AVAILABLE = True
except ImportError:  # pragma: no cover
    AIOSQLITE_AVAILABLE = False
    aiosqlite = None  # type: ignore[assignment]

from assetmigrator.core.exceptions import MissingDependencyError
from assetmigrator.core.logger import get_logger
from assetmigrator.host.interfaces import (
    AssetCatalog,
    AssetFilter,
    AssetRecord,
    Volume,
    VolumeRepository,
    VolumeTransaction,
    asset_sort_key,
)

logger = get_logger(__name__)


class SQLiteVolumeTransaction(VolumeTransaction):
    """Volume updates issued on the open transaction's connection"""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def update_fs_handle(self, volume: Volume, fs_handle: str) -> None:
        cursor = await self._conn.execute(
            "UPDATE volumes SET fs_handle = ? WHERE id = ?",
            (fs_handle, volume.volume_id),
        )
        if cursor.rowcount == 0:
            msg = f"Volume not found: {volume.handle}"
            raise LookupError(msg)


class SQLiteHostMetadata(AssetCatalog, VolumeRepository):
    """
    SQLite-based host metadata.

    Attributes:
        db_path: Path to SQLite database file (or ":memory:" for in-memory)
    """

    def __init__(self, db_path: str = ":memory:"):
        """
        Initialize SQLite host metadata.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory
        """
        if not AIOSQLITE_AVAILABLE:  # pragma: no cover
            msg = "aiosqlite"
            raise MissingDependencyError(msg, "SQLite host metadata")

        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize storage (create connection and schema)."""
        await self._get_connection()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._conn is None:
            # isolation_level=None: transactions are opened explicitly with BEGIN
            self._conn = await aiosqlite.connect(self.db_path, isolation_level=None)
            self._conn.row_factory = aiosqlite.Row

        if not self._initialized:
            await self._init_schema()
            self._initialized = True

        return self._conn

    async def _init_schema(self) -> None:
        """Initialize database schema."""
        await self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS volumes (
                id TEXT PRIMARY KEY,
                handle TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                fs_handle TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS assets (
                id TEXT PRIMARY KEY,
                volume_id TEXT NOT NULL REFERENCES volumes(id),
                path TEXT NOT NULL,
                size INTEGER
            );

            CREATE TABLE IF NOT EXISTS migrated_assets (
                asset_id TEXT NOT NULL,
                target_handle TEXT NOT NULL,
                migrated_at TEXT NOT NULL,
                PRIMARY KEY (asset_id, target_handle)
            );

            CREATE INDEX IF NOT EXISTS idx_volumes_fs_handle ON volumes(fs_handle);
            CREATE INDEX IF NOT EXISTS idx_assets_volume ON assets(volume_id);
        """)

    async def __aenter__(self):
        """Async context manager entry."""
        await self._get_connection()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    async def add_volume(self, volume: Volume) -> None:
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO volumes (id, handle, name, fs_handle) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                handle = excluded.handle,
                name = excluded.name,
                fs_handle = excluded.fs_handle
            """,
            (volume.volume_id, volume.handle, volume.name, volume.fs_handle),
        )

    async def add_asset(self, asset: AssetRecord) -> None:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT id FROM volumes WHERE handle = ?", (asset.volume_handle,)
        )
        row = await cursor.fetchone()
        if row is None:
            msg = f"Unknown volume handle: {asset.volume_handle}"
            raise LookupError(msg)

        await conn.execute(
            """
            INSERT INTO assets (id, volume_id, path, size) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                volume_id = excluded.volume_id,
                path = excluded.path,
                size = excluded.size
            """,
            (asset.asset_id, row["id"], asset.path, asset.size),
        )

    # ------------------------------------------------------------------
    # AssetCatalog
    # ------------------------------------------------------------------

    async def iter_assets(
        self,
        *,
        fs_handle: str | None = None,
        volume: str | None = None,
        asset_filter: AssetFilter | None = None,
    ) -> AsyncIterator[AssetRecord]:
        conn = await self._get_connection()

        query = """
            SELECT a.id, a.path, a.size, v.handle AS volume_handle
            FROM assets a JOIN volumes v ON v.id = a.volume_id
            WHERE 1 = 1
        """
        params: list[str] = []
        if fs_handle is not None:
            query += " AND v.fs_handle = ?"
            params.append(fs_handle)
        if volume is not None:
            query += " AND v.handle = ?"
            params.append(volume)
        if asset_filter is not None and asset_filter.path_prefix:
            query += " AND a.path LIKE ? ESCAPE '\\'"
            escaped = (
                asset_filter.path_prefix.replace("\\", "\\\\")
                .replace("%", "\\%")
                .replace("_", "\\_")
            )
            params.append(escaped + "%")

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        records = [
            AssetRecord(
                asset_id=str(row["id"]),
                volume_handle=row["volume_handle"],
                path=row["path"],
                size=row["size"],
            )
            for row in rows
        ]
        records.sort(key=lambda r: asset_sort_key(r.asset_id))

        for record in records:
            if asset_filter is not None and not asset_filter.matches(record):
                continue
            yield record

    async def migrated_ids(self, target_handle: str) -> set[str]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT asset_id FROM migrated_assets WHERE target_handle = ?",
            (target_handle,),
        )
        return {row["asset_id"] for row in await cursor.fetchall()}

    async def mark_migrated(self, asset_ids: Iterable[str], target_handle: str) -> None:
        conn = await self._get_connection()
        now = datetime.now(UTC).isoformat()
        await conn.executemany(
            """
            INSERT INTO migrated_assets (asset_id, target_handle, migrated_at) VALUES (?, ?, ?)
            ON CONFLICT(asset_id, target_handle) DO UPDATE SET migrated_at = excluded.migrated_at
            """,
            [(asset_id, target_handle, now) for asset_id in asset_ids],
        )

    async def unmark_migrated(self, asset_ids: Iterable[str], target_handle: str) -> None:
        conn = await self._get_connection()
        await conn.executemany(
            "DELETE FROM migrated_assets WHERE asset_id = ? AND target_handle = ?",
            [(asset_id, target_handle) for asset_id in asset_ids],
        )

    # ------------------------------------------------------------------
    # VolumeRepository
    # ------------------------------------------------------------------

    async def list_volumes(self) -> list[Volume]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT id, handle, name, fs_handle FROM volumes ORDER BY handle")
        return [
            Volume(
                volume_id=str(row["id"]),
                handle=row["handle"],
                name=row["name"],
                fs_handle=row["fs_handle"],
            )
            for row in await cursor.fetchall()
        ]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteVolumeTransaction]:
        conn = await self._get_connection()
        await conn.execute("BEGIN IMMEDIATE")
        try:
            yield SQLiteVolumeTransaction(conn)
        except BaseException:
            await conn.execute("ROLLBACK")
            logger.warning("Volume transaction rolled back")
            raise
        await conn.execute("COMMIT")
