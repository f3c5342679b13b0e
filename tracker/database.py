"""
Database Connections.

The tracker keeps two stores:

- **Supabase** (cloud Postgres, via PostgREST): the shared, authoritative
  copy of rules, accounts, sales data and stored evaluations.
- **SQLite** (local file or ``:memory:``): a cache that answers reads
  while offline and holds unsent writes in ``sync_queue`` until
  :class:`~tracker.services.sync_service.SyncService` replays them.

Only connection handling lives here; SQL lives in the repositories.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from supabase import Client as SupabaseClient
from supabase import create_client

from tracker.logger import StructuredLogger

if TYPE_CHECKING:
    from tracker.config import AppConfig


class DatabaseManager:
    """Owns the SQLite connection and, when configured, the Supabase client.

    Without a URL and key the tracker runs offline: :attr:`supabase`
    raises ``RuntimeError`` and the repositories fall back to SQLite.

    SQLite writes from any thread go through :attr:`write_lock`; several
    writes can share one commit inside :meth:`batch_write`.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Path,
        logger: StructuredLogger,
    ) -> None:
        self._logger = logger
        self._write_lock = threading.RLock()
        self._in_batch = False
        self._closed = False
        self._supabase: Optional[SupabaseClient] = self._connect_supabase(
            supabase_url, supabase_key,
        )
        self._sqlite_conn: sqlite3.Connection = self._connect_sqlite(sqlite_path)

    @classmethod
    def from_config(cls, config: AppConfig, logger: StructuredLogger) -> DatabaseManager:
        """Build a manager from ``SUPABASE_*`` and ``SQLITE_PATH`` settings."""
        return cls(
            supabase_url=config.SUPABASE_URL,
            supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
            sqlite_path=config.SQLITE_PATH,
            logger=logger,
        )

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> SupabaseClient:
        """The Supabase client.

        Raises:
            RuntimeError: When running offline.
        """
        if self._supabase is None:
            raise RuntimeError("Supabase is not configured; the tracker is offline.")
        return self._supabase

    @property
    def is_online(self) -> bool:
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._sqlite_conn

    # ------------------------------------------------------------------
    # Write coordination
    # ------------------------------------------------------------------

    @property
    def write_lock(self) -> threading.RLock:
        """Hold around SQLite reads that must not interleave with a batch."""
        return self._write_lock

    @contextmanager
    def batch_write(self) -> Iterator[None]:
        """Group SQLite writes into one transaction.

        Commits once on normal exit and rolls back (re-raising) on error.
        A nested block on the same thread joins the outer one.
        """
        with self._write_lock:
            if self._in_batch:
                yield
                return

            self._in_batch = True
            try:
                yield
            except Exception:
                self._sqlite_conn.rollback()
                self._logger.error("Batch write rolled back.", exc_info=True)
                raise
            else:
                self._sqlite_conn.commit()
            finally:
                self._in_batch = False

    # ------------------------------------------------------------------
    # Sync queue status
    # ------------------------------------------------------------------

    def sync_queue_counts(self) -> dict[str, int]:
        """Number of ``sync_queue`` rows per status."""
        with self._write_lock:
            rows = self._sqlite_conn.execute(
                "SELECT status, COUNT(*) AS cnt FROM sync_queue GROUP BY status",
            ).fetchall()
        return {row["status"]: int(row["cnt"]) for row in rows}

    def get_pending_sync_count(self) -> int:
        """Writes still waiting to reach Supabase."""
        return self.sync_queue_counts().get("pending", 0)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the SQLite connection.  Safe to call more than once."""
        with self._write_lock:
            if self._closed:
                return
            self._sqlite_conn.close()
            self._closed = True
        self._logger.info("SQLite connection closed.")

    def _connect_supabase(self, url: str, key: str) -> Optional[SupabaseClient]:
        if not (url and key):
            self._logger.warning("Supabase credentials not configured; running offline.")
            return None
        try:
            client = create_client(url, key)
        except Exception as exc:
            self._logger.error(
                "Supabase initialization failed: %s. Running offline.", exc, exc_info=True,
            )
            return None
        self._logger.info("Supabase client initialized.")
        return client

    def _connect_sqlite(self, path: Path) -> sqlite3.Connection:
        """Open the local cache with WAL journaling and enforced foreign keys.

        Raises:
            PermissionError: If the file or its directory is not writable.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
        except (PermissionError, sqlite3.OperationalError) as exc:
            msg = f"Cannot open the local database at '{path}': {exc}"
            self._logger.error(msg)
            raise PermissionError(msg) from exc
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys = ON;")
        self._logger.info("SQLite cache opened at %s", path)
        return conn
