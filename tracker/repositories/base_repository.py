"""
Base Repository.

Shared infrastructure for all repositories:
- DatabaseManager and logger references
- Supabase-first reads with SQLite fallback
- Write-through to Supabase with a local cache and an offline sync queue
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Mapping
from typing import Callable, Optional, TypeVar

from supabase import Client as SupabaseClient

from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger
from tracker.utils.general import JsonSafeType, convert_to_json_safe

T = TypeVar("T")

Payload = dict[str, JsonSafeType]


class BaseRepository:
    """Base class for all repositories.  Receives dependencies via __init__."""

    TABLE: str = ""
    COLUMNS: tuple[str, ...] = ()

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> SupabaseClient:
        """Supabase client; raises ``RuntimeError`` when offline."""
        return self._db.supabase

    @property
    def sqlite(self) -> sqlite3.Connection:
        """SQLite connection for the local cache."""
        return self._db.sqlite

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def _execute_with_fallback(
        self,
        supabase_op: Callable[[], Optional[T]],
        sqlite_op: Callable[[], Optional[T]],
        default_factory: Callable[[], T],
        *,
        operation_name: str,
        on_supabase_success: Optional[Callable[[T], None]] = None,
    ) -> T:
        """Run a read with Supabase-first, SQLite-fallback semantics.

        1. ``supabase_op()``; a non-``None`` result is returned after the
           optional ``on_supabase_success`` cache-warming callback.
        2. ``sqlite_op()``; a non-``None`` result is returned.
        3. ``default_factory()``.

        Not for write paths.
        """
        try:
            result = supabase_op()
            if result is not None:
                if on_supabase_success is not None:
                    try:
                        on_supabase_success(result)
                    except sqlite3.Error as cache_exc:
                        self._logger.warning(
                            "Cache warm-up failed for %s: %s", operation_name, cache_exc,
                        )
                return result
        except Exception as exc:
            self._logger.warning("Supabase unavailable for %s: %s", operation_name, exc)

        try:
            result = sqlite_op()
            if result is not None:
                return result
        except sqlite3.Error as sqlite_exc:
            self._logger.error(
                "SQLite fallback also failed for %s: %s", operation_name, sqlite_exc,
            )

        return default_factory()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def _to_payload(self, data: Mapping[str, object]) -> Payload:
        """Project *data* onto :attr:`COLUMNS` as JSON-safe values."""
        return {
            column: convert_to_json_safe(data.get(column))  # type: ignore[arg-type]
            for column in self.COLUMNS
            if column in data
        }

    def _upsert_remote(self, payload: Payload) -> Optional[Payload]:
        """Upsert into Supabase; returns the stored row or ``None`` when offline.

        Failures are logged, cached locally by the caller and queued.
        """
        try:
            response = self.supabase.table(self.TABLE).upsert(payload).execute()
            return response.data[0] if response.data else payload
        except Exception as exc:
            self._logger.warning(
                "Supabase write failed for %s/%s: %s", self.TABLE, payload.get("id"), exc,
            )
            return None

    def _write_through(self, operation: str, payload: Payload) -> Payload:
        """Upsert remotely, then mirror the row into the SQLite cache.

        When Supabase is unreachable the local row is kept and the write is
        queued in ``sync_queue`` for later replay.
        """
        stored: Optional[Payload] = self._upsert_remote(payload)
        with self._db.batch_write():
            self._cache_row(stored if stored is not None else payload)
            if stored is None:
                self._queue_pending_sync(operation, str(payload.get("id")), payload)
        return stored if stored is not None else payload

    def _delete_through(self, entity_id: str, column: str = "id") -> None:
        """Delete remotely (or queue the delete) and from the local cache."""
        try:
            self.supabase.table(self.TABLE).delete().eq(column, entity_id).execute()
            queued = False
        except Exception as exc:
            self._logger.warning(
                "Supabase delete failed for %s/%s: %s", self.TABLE, entity_id, exc,
            )
            queued = True

        with self._db.batch_write():
            self.sqlite.execute(f"DELETE FROM {self.TABLE} WHERE {column} = ?", (entity_id,))
            if queued:
                self._queue_pending_sync("delete", entity_id, {column: entity_id})

    def _cache_row(self, row: Mapping[str, JsonSafeType]) -> None:
        """Insert or replace *row* in the local cache table.

        Nested values (lists, dicts) are stored as JSON text.
        """
        columns = [column for column in self.COLUMNS if column in row]
        values = [
            json.dumps(row[column]) if isinstance(row[column], (list, dict)) else row[column]
            for column in columns
        ]
        assignments = ", ".join(
            f"{column} = excluded.{column}" for column in columns if column != "id"
        )
        self.sqlite.execute(
            f"""
            INSERT INTO {self.TABLE} ({", ".join(columns)})
            VALUES ({", ".join("?" for _ in columns)})
            ON CONFLICT(id) DO UPDATE SET {assignments}
            """,
            values,
        )

    def _queue_pending_sync(self, operation: str, entity_id: str, payload: Payload) -> None:
        """Record a write that still has to reach Supabase.  Does not commit."""
        self.sqlite.execute(
            """
            INSERT INTO sync_queue (table_name, operation, entity_id, payload)
            VALUES (?, ?, ?, ?)
            """,
            (self.TABLE, operation, entity_id, json.dumps(payload, default=str)),
        )
        self._logger.info("Queued pending sync: %s %s/%s", operation, self.TABLE, entity_id)

    def _warm_cache(self, entities: object) -> None:
        """Mirror Supabase read results into SQLite.

        Accepts a single Pydantic model or a list of them.  Keeps foreign
        keys in the cache satisfiable when rows were created elsewhere.
        """
        items = entities if isinstance(entities, list) else [entities]
        with self._db.batch_write():
            for item in items:
                self._cache_row(self._to_payload(item.model_dump()))
