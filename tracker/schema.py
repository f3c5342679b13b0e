"""
Centralized SQLite Schema Initialization.

Defines the local cache schema and a single entry-point,
:func:`initialize_schema`, that creates it idempotently.  A single-row
``schema_version`` table tracks applied migrations.

Migration Strategy
~~~~~~~~~~~~~~~~~~
- **Fresh databases** (version 0): every table is created from
  :data:`_TABLE_DEFINITIONS`.
- **Existing databases** (version N > 0): only the migrations registered
  in :data:`_MIGRATIONS` for versions in ``(N, CURRENT_SCHEMA_VERSION]``
  are executed.
- The whole upgrade runs in one SQLite transaction.  On failure the
  database stays at version N and the next startup retries.

Adding a New Migration
~~~~~~~~~~~~~~~~~~~~~~
1. Bump :data:`CURRENT_SCHEMA_VERSION`.
2. Update the DDL in :data:`_TABLE_DEFINITIONS` for fresh installs.
3. Write ``_migrate_vN_to_vN+1()`` guarded by :func:`_column_exists`.
4. Register it in :data:`_MIGRATIONS`.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from tracker.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 2

# Decimal percentages are stored as TEXT so they round-trip exactly.
_TABLE_DEFINITIONS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_queue (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_name TEXT NOT NULL,
        operation TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        payload TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        attempts INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        attempted_at TIMESTAMP,
        error_message TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS incentive_rules (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        description TEXT NOT NULL DEFAULT '',
        commission_rate_min TEXT NOT NULL,
        commission_rate_max TEXT NOT NULL,
        min_commission_threshold INTEGER NOT NULL DEFAULT 0,
        base_revenue_threshold INTEGER NOT NULL DEFAULT 0,
        tiers TEXT NOT NULL DEFAULT '[]',
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL,
        email TEXT NOT NULL DEFAULT '',
        phone TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'active'
               CHECK (status IN ('active', 'inactive')),
        payment_data TEXT NOT NULL DEFAULT 'pending',
        account_code TEXT NOT NULL UNIQUE,
        category_id TEXT,
        commission_rate TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sales_data (
        id TEXT PRIMARY KEY,
        account_id TEXT NOT NULL,
        date TEXT NOT NULL,
        clicks INTEGER NOT NULL DEFAULT 0,
        orders INTEGER NOT NULL DEFAULT 0,
        gross_commission INTEGER NOT NULL DEFAULT 0,
        products_sold INTEGER NOT NULL DEFAULT 0,
        total_purchases INTEGER NOT NULL DEFAULT 0,
        new_buyers INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_sales_data_account_date
        ON sales_data (account_id, date)
    """,
    """
    CREATE TABLE IF NOT EXISTS evaluation_results (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        account_id TEXT NOT NULL,
        matched_rule_id TEXT,
        matched_tier_index INTEGER,
        incentive_amount INTEGER NOT NULL DEFAULT 0,
        incentive_rate TEXT,
        reason TEXT NOT NULL,
        period_commission INTEGER NOT NULL,
        period_revenue INTEGER NOT NULL,
        commission_rate TEXT NOT NULL,
        period_start TEXT,
        period_end TEXT,
        evaluated_at TEXT NOT NULL
    )
    """,
]


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create ``schema_version`` before any version check."""
    conn.execute(_TABLE_DEFINITIONS[0])
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the stored schema version, ``0`` for a fresh database."""
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return row[0] if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the version tracker.  Does not commit."""
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def _create_all_tables(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    for ddl in _TABLE_DEFINITIONS:
        conn.execute(ddl)
    logger.info("All %d schema objects created or verified.", len(_TABLE_DEFINITIONS))


_ALLOWED_TABLES: frozenset[str] = frozenset({
    "schema_version",
    "sync_queue",
    "audit_log",
    "incentive_rules",
    "categories",
    "accounts",
    "sales_data",
    "evaluation_results",
})
"""Tables that may appear in dynamic PRAGMA queries."""


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    """Check whether *column* exists in *table*.

    Raises:
        ValueError: If *table* is not in :data:`_ALLOWED_TABLES`.
    """
    if table not in _ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table!r}.")
    cursor = conn.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cursor.fetchall())


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------

def _migrate_v1_to_v2(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Add the nominal ``commission_rate`` to accounts and sync retry counts.

    Tables and indexes missing in v1 (including the sales lookup index)
    are created first.
    """
    for ddl in _TABLE_DEFINITIONS:
        conn.execute(ddl)
    if not _column_exists(conn, "accounts", "commission_rate"):
        conn.execute("ALTER TABLE accounts ADD COLUMN commission_rate TEXT")
        logger.info("Migration v1->v2: added commission_rate column to accounts.")
    if not _column_exists(conn, "sync_queue", "attempts"):
        conn.execute("ALTER TABLE sync_queue ADD COLUMN attempts INTEGER NOT NULL DEFAULT 0")
        logger.info("Migration v1->v2: added attempts column to sync_queue.")


MigrationFunc = Callable[[sqlite3.Connection, StructuredLogger], None]

_MIGRATIONS: dict[int, MigrationFunc] = {
    2: _migrate_v1_to_v2,
}


def _run_incremental_migrations(
    conn: sqlite3.Connection,
    logger: StructuredLogger,
    from_version: int,
    to_version: int,
) -> None:
    """Apply registered migrations in ``(from_version, to_version]``.  Does not commit."""
    versions_to_apply: list[int] = sorted(
        v for v in _MIGRATIONS if from_version < v <= to_version
    )
    if not versions_to_apply:
        logger.info("No incremental migrations to apply.")
        return

    for version in versions_to_apply:
        logger.info("Running migration to version %d", version)
        _MIGRATIONS[version](conn, logger)


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Bring the local SQLite cache up to :data:`CURRENT_SCHEMA_VERSION`.

    Safe to call on every startup.  A fresh database gets every table; an
    older one gets its pending migrations.  Either path is committed
    atomically together with the version bump and rolled back on error.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info("Schema is up to date (version %d).", current)
        return

    logger.info("Upgrading schema from version %d to %d", current, CURRENT_SCHEMA_VERSION)
    try:
        if current == 0:
            _create_all_tables(conn, logger)
        else:
            _run_incremental_migrations(conn, logger, current, CURRENT_SCHEMA_VERSION)
        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error("Schema migration failed; rolled back to version %d.", current)
        raise

    logger.info("Schema initialised at version %d.", CURRENT_SCHEMA_VERSION)
