"""Version-controlled schema migrations for the myhealth storage layer.

The last applied migration ID is kept in the single-row `system` table.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence, Tuple

import aiosqlite

from myhealth.storage.errors import MigrationError

logger = logging.getLogger(__name__)

# Each migration is (id, description, list_of_sql_statements)
MigrationStep = Tuple[int, str, List[str]]

NO_MIGRATIONS_APPLIED = 0

MIGRATIONS: List[MigrationStep] = [
    (
        1,
        "Create weight table keyed by (userid, timestamp)",
        [
            """CREATE TABLE weight (
                   userid    INTEGER NOT NULL,
                   timestamp INTEGER NOT NULL,
                   value     REAL    NOT NULL,
                   PRIMARY KEY (userid, timestamp)
               )""",
        ],
    ),
    (
        2,
        "Index weight.timestamp",
        [
            "CREATE INDEX IF NOT EXISTS idx_weight_timestamp ON weight(timestamp)",
        ],
    ),
]

LATEST_MIGRATION_ID = MIGRATIONS[-1][0]


async def get_last_migration_id(conn: aiosqlite.Connection) -> int:
    """Return the last applied migration ID.

    Creates the tracking table when missing, in which case the result is
    NO_MIGRATIONS_APPLIED.
    """
    await conn.execute(
        "CREATE TABLE IF NOT EXISTS system (migration_id INTEGER NOT NULL)"
    )
    cursor = await conn.execute("SELECT migration_id FROM system")
    row = await cursor.fetchone()
    if row is not None:
        return row[0]

    await conn.execute(
        "INSERT INTO system (migration_id) VALUES (?)", (NO_MIGRATIONS_APPLIED,)
    )
    await conn.commit()
    return NO_MIGRATIONS_APPLIED


def _check_order(migrations: Sequence[MigrationStep]) -> None:
    previous = NO_MIGRATIONS_APPLIED
    for migration_id, _, _ in migrations:
        if migration_id <= previous:
            raise MigrationError(
                f"Migration IDs must be strictly increasing: {migration_id} after {previous}"
            )
        previous = migration_id


async def apply_migrations(
    conn: aiosqlite.Connection,
    migrations: Sequence[MigrationStep] = MIGRATIONS,
) -> int:
    """Apply all pending migrations. Returns the final migration ID.

    Each migration runs in its own transaction together with the update of
    the tracked ID, so a failure leaves the schema at the previous version.
    """
    _check_order(migrations)
    current = await get_last_migration_id(conn)
    applied = 0

    for migration_id, description, statements in migrations:
        if migration_id <= current:
            continue

        logger.info("Applying migration %d: %s", migration_id, description)
        try:
            await conn.execute("BEGIN IMMEDIATE")
            for sql in statements:
                await conn.execute(sql)
            await conn.execute("UPDATE system SET migration_id = ?", (migration_id,))
            await conn.commit()
        except asyncio.CancelledError:
            await conn.rollback()
            raise
        except Exception as exc:
            await conn.rollback()
            logger.exception("Migration %d failed", migration_id)
            raise MigrationError(
                f"Migration {migration_id} ({description}) failed: {exc}"
            ) from exc

        current = migration_id
        applied += 1

    if applied:
        logger.info("Applied %d migration(s). Schema at %d", applied, current)
    else:
        logger.info("Schema up to date at %d", current)

    return current
