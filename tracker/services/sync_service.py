"""
Sync Service.

Replays writes that were made while Supabase was unreachable.  Every
repository write that fails remotely is cached in SQLite and appended to
``sync_queue``; :meth:`SyncService.flush` sends those rows to Supabase in
the order they were queued.

An entry that keeps failing is retried on later flushes until it has
been attempted ``max_attempts`` times, then parked as ``failed`` for an
operator to inspect.
"""

from __future__ import annotations

import json
from typing import Optional

from pydantic import BaseModel

from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger
from tracker.services.base_service import BaseService

_PAYLOAD_TABLES: frozenset[str] = frozenset({
    "incentive_rules",
    "categories",
    "accounts",
    "sales_data",
    "evaluation_results",
})


class SyncReport(BaseModel):
    """Outcome of one :meth:`SyncService.flush` call."""

    attempted: int = 0
    synced: int = 0
    failed: int = 0
    remaining: int = 0


class SyncService(BaseService):
    """Drains ``sync_queue`` to Supabase on demand."""

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        batch_size: int = 100,
        max_attempts: int = 5,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._batch_size = batch_size
        self._max_attempts = max_attempts

    def flush(self) -> SyncReport:
        """Replay up to ``batch_size`` pending entries.

        Offline, nothing is attempted and the pending count is reported.
        """
        if not self._db.is_online:
            return SyncReport(remaining=self._db.get_pending_sync_count())

        with self._db.write_lock:
            rows = self._db.sqlite.execute(
                """
                SELECT id, table_name, operation, entity_id, payload, attempts
                FROM sync_queue
                WHERE status = 'pending'
                ORDER BY id
                LIMIT ?
                """,
                (self._batch_size,),
            ).fetchall()

        report = SyncReport(attempted=len(rows))
        for row in rows:
            try:
                payload: dict[str, object] = json.loads(row["payload"])
                self._replay(row["table_name"], row["operation"], row["entity_id"], payload)
            except Exception as exc:
                report.failed += 1
                self._logger.warning(
                    "Sync of queue row %d (%s %s/%s) failed: %s",
                    row["id"], row["operation"], row["table_name"], row["entity_id"], exc,
                )
                self._mark(row["id"], row["attempts"] + 1, str(exc))
                continue
            report.synced += 1
            self._mark(row["id"], row["attempts"] + 1, None)

        report.remaining = self._db.get_pending_sync_count()
        if rows:
            self._logger.info(
                "Sync flush: %d/%d synced, %d still pending",
                report.synced, report.attempted, report.remaining,
            )
        return report

    def _replay(
        self,
        table: str,
        operation: str,
        entity_id: str,
        payload: dict[str, object],
    ) -> None:
        if table not in _PAYLOAD_TABLES:
            raise ValueError(f"Table '{table}' is not synced.")

        query = self._db.supabase.table(table)
        if operation == "upsert":
            query.upsert(payload).execute()
        elif operation == "insert":
            query.insert(payload).execute()
        elif operation == "delete":
            (column, value), = payload.items()
            query.delete().eq(column, value).execute()
        elif operation == "delete_range":
            request = query.delete().eq("account_id", payload["account_id"])
            if "start_date" in payload:
                request = request.gte("date", payload["start_date"])
            if "end_date" in payload:
                request = request.lte("date", payload["end_date"])
            request.execute()
        else:
            raise ValueError(f"Unknown sync operation '{operation}' for {entity_id}.")

    def _mark(self, queue_id: int, attempts: int, error: Optional[str]) -> None:
        if error is None:
            status = "synced"
        elif attempts >= self._max_attempts:
            status = "failed"
        else:
            status = "pending"
        with self._db.batch_write():
            self._db.sqlite.execute(
                """
                UPDATE sync_queue
                SET status = ?, attempts = ?, attempted_at = CURRENT_TIMESTAMP,
                    error_message = ?
                WHERE id = ?
                """,
                (status, attempts, error, queue_id),
            )
