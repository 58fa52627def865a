"""Async SQLite store for per-user weight measurements with backup/restore."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import aiosqlite

from myhealth.storage.config import StoreOptions
from myhealth.storage.errors import (
    EmptyResultError,
    EngineError,
    OperationTimeoutError,
    StoreClosedError,
)
from myhealth.storage.migrations import (
    MIGRATIONS,
    MigrationStep,
    apply_migrations,
    get_last_migration_id,
)
from myhealth.storage.models import Backup, Weight, WeightBackup

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WeightStore:
    """Async SQLite store owning a single connection for its whole lifetime.

    Usage:
        store = WeightStore("data/myhealth.db")
        await store.initialize()
        # ... use store ...
        await store.close()

    or, scoped:
        async with WeightStore("data/myhealth.db") as store:
            ...

    Every operation holds the store lock, so readers sharing the connection
    never see rows of an uncommitted restore.
    """

    def __init__(
        self,
        db_path: str,
        options: Optional[StoreOptions] = None,
        migrations: Sequence[MigrationStep] = MIGRATIONS,
    ):
        self.db_path = db_path
        self.options = options or StoreOptions()
        self._migrations = migrations
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database, configure pragmas and apply migrations.

        On any failure the connection is closed again and the error propagates.
        """
        if self._conn is not None:
            logger.debug("Store already open: %s", self.db_path)
            return

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = await aiosqlite.connect(self.db_path)
        except sqlite3.Error as exc:
            raise EngineError(f"Cannot open {self.db_path}: {exc}") from exc
        conn.row_factory = aiosqlite.Row

        try:
            await conn.execute(f"PRAGMA journal_mode={self.options.journal_mode}")
            await conn.execute(f"PRAGMA synchronous={self.options.synchronous}")
            await conn.execute(f"PRAGMA cache_size=-{self.options.cache_size_mb * 1000}")
            await conn.execute(f"PRAGMA busy_timeout={int(self.options.busy_timeout_ms)}")
            await conn.execute("PRAGMA temp_store=MEMORY")
            await apply_migrations(conn, self._migrations)
        except sqlite3.Error as exc:
            await conn.close()
            raise EngineError(f"Cannot configure {self.db_path}: {exc}") from exc
        except BaseException:
            await conn.close()
            raise

        self._conn = conn
        logger.info("Store opened: %s", self.db_path)

    async def close(self) -> None:
        """Close the database connection. Closing twice is a no-op."""
        async with self._lock:
            if self._conn:
                await self._conn.close()
                self._conn = None
                logger.info("Store closed: %s", self.db_path)

    async def __aenter__(self) -> WeightStore:
        if self._conn is None:
            await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreClosedError(f"Store {self.db_path} is not open")
        return self._conn

    async def _run(self, name: str, operation: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run an operation under the store lock, its deadline and error mapping."""

        async def locked() -> T:
            async with self._lock:
                return await operation(self._require_conn(), *args)

        timeout = self.options.operation_timeout
        try:
            if timeout is None:
                return await locked()
            return await asyncio.wait_for(locked(), timeout)
        except asyncio.TimeoutError as exc:
            raise OperationTimeoutError(f"{name} did not finish within {timeout}s") from exc
        except (sqlite3.Error, OverflowError) as exc:
            raise EngineError(f"{name} failed: {exc}") from exc

    @asynccontextmanager
    async def _transaction(self, conn: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
        """Begin an immediate transaction, rolling back on any exception."""
        try:
            await conn.execute("BEGIN IMMEDIATE")
            yield conn
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise

    # --- Migrations ---

    async def get_last_migration_id(self) -> int:
        """Return the last applied schema migration ID."""
        return await self._run("get_last_migration_id", get_last_migration_id)

    # --- Weight ---

    async def set_weight(self, user_id: int, weight: Weight) -> None:
        """Insert or overwrite the measurement at (user_id, weight.timestamp)."""
        await self._run("set_weight", self._set_weight, user_id, weight)

    async def _set_weight(self, conn: aiosqlite.Connection, user_id: int, weight: Weight) -> None:
        async with self._transaction(conn):
            await conn.execute(
                """INSERT INTO weight (userid, timestamp, value)
                   VALUES (?, ?, ?)
                   ON CONFLICT(userid, timestamp) DO UPDATE SET
                       value=excluded.value""",
                weight.to_row(user_id),
            )

    async def get_weight_list(self, user_id: int, from_ts: int, to_ts: int) -> List[Weight]:
        """Get measurements with from_ts <= timestamp <= to_ts, oldest first.

        Raises EmptyResultError when nothing matches, including when
        from_ts > to_ts.
        """
        return await self._run("get_weight_list", self._get_weight_list, user_id, from_ts, to_ts)

    async def _get_weight_list(
        self, conn: aiosqlite.Connection, user_id: int, from_ts: int, to_ts: int
    ) -> List[Weight]:
        t0 = time.monotonic()
        cursor = await conn.execute(
            """SELECT timestamp, value FROM weight
               WHERE userid = ? AND timestamp >= ? AND timestamp <= ?
               ORDER BY timestamp ASC""",
            (user_id, from_ts, to_ts),
        )
        rows = await cursor.fetchall()
        logger.debug(
            "Weight list for user %d [%d, %d]: %d rows in %.3fs",
            user_id, from_ts, to_ts, len(rows), time.monotonic() - t0,
        )
        if not rows:
            raise EmptyResultError(f"No weight for user {user_id} in [{from_ts}, {to_ts}]")
        return [Weight.from_row(dict(r)) for r in rows]

    async def delete_weight(self, user_id: int, timestamp: int) -> None:
        """Delete the measurement at (user_id, timestamp) if present."""
        await self._run("delete_weight", self._delete_weight, user_id, timestamp)

    async def _delete_weight(self, conn: aiosqlite.Connection, user_id: int, timestamp: int) -> None:
        async with self._transaction(conn):
            await conn.execute(
                "DELETE FROM weight WHERE userid = ? AND timestamp = ?",
                (user_id, timestamp),
            )

    # --- Backup/restore ---

    async def backup(self) -> Backup:
        """Snapshot every weight record of every user, ordered by (user, timestamp)."""
        return await self._run("backup", self._backup)

    async def _backup(self, conn: aiosqlite.Connection) -> Backup:
        cursor = await conn.execute(
            "SELECT userid, timestamp, value FROM weight ORDER BY userid, timestamp"
        )
        rows = await cursor.fetchall()
        backup = Backup(
            timestamp=int(time.time()),
            weight=[WeightBackup.from_row(dict(r)) for r in rows],
        )
        logger.info("Backup created: %d weight records", len(backup.weight))
        return backup

    async def restore(self, backup: Backup) -> None:
        """Replace all weight records with the ones in backup.

        Delete and insert run in one transaction; on failure or cancellation
        the previous data is kept.
        """
        await self._run("restore", self._restore, backup)

    async def _restore(self, conn: aiosqlite.Connection, backup: Backup) -> None:
        records = backup.weight
        async with self._transaction(conn):
            await conn.execute("DELETE FROM weight")
            for i in range(0, len(records), self.options.batch_size):
                batch = records[i : i + self.options.batch_size]
                await conn.executemany(
                    "INSERT INTO weight (userid, timestamp, value) VALUES (?, ?, ?)",
                    [w.to_row() for w in batch],
                )
        logger.info("Restored %d weight records from backup %d", len(records), backup.timestamp)

    # --- Maintenance ---

    async def vacuum(self) -> None:
        """Run VACUUM to reclaim space and defragment."""
        await self._run("vacuum", self._vacuum)

    async def _vacuum(self, conn: aiosqlite.Connection) -> None:
        await conn.execute("VACUUM")

    async def integrity_check(self) -> bool:
        """Run integrity check on the database."""
        return await self._run("integrity_check", self._integrity_check)

    async def _integrity_check(self, conn: aiosqlite.Connection) -> bool:
        cursor = await conn.execute("PRAGMA integrity_check")
        row = await cursor.fetchone()
        return row is not None and row[0] == "ok"

    async def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        return await self._run("get_stats", self._get_stats)

    async def _get_stats(self, conn: aiosqlite.Connection) -> Dict[str, Any]:
        stats: Dict[str, Any] = {}

        cursor = await conn.execute("SELECT COUNT(*), COUNT(DISTINCT userid) FROM weight")
        row = await cursor.fetchone()
        stats["total_weight"] = row[0] if row else 0
        stats["total_users"] = row[1] if row else 0

        stats["last_migration_id"] = await get_last_migration_id(conn)

        cursor = await conn.execute(
            "SELECT page_count * page_size as size FROM pragma_page_count(), pragma_page_size()"
        )
        row = await cursor.fetchone()
        stats["db_size_bytes"] = row[0] if row else 0

        return stats


async def open_store(db_path: str, options: Optional[StoreOptions] = None) -> WeightStore:
    """Create a store and bring its schema up to date."""
    store = WeightStore(db_path, options)
    await store.initialize()
    return store
