"""
Sales Data Repository.

Daily per-account sales rows.  Row ids are ``<account_id>:<YYYY-MM-DD>``
so re-uploading a day replaces that day's figures instead of doubling
them.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger
from tracker.models.sales_data import SalesRecord
from tracker.repositories.base_repository import BaseRepository, Payload
from tracker.utils.string_helpers import normalize_keys


def sales_record_id(account_id: str, day: date) -> str:
    """Deterministic id for an account's row on *day*."""
    return f"{account_id}:{day.isoformat()}"


class SalesDataRepository(BaseRepository):
    """Data access layer for SalesRecord entities."""

    TABLE = "sales_data"
    COLUMNS = (
        "id",
        "account_id",
        "date",
        "clicks",
        "orders",
        "gross_commission",
        "products_sold",
        "total_purchases",
        "new_buyers",
        "created_at",
    )

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_records(
        self,
        account_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[SalesRecord]:
        """Fetch rows, newest first, optionally filtered by account and window.

        Both window bounds are inclusive.
        """
        def _supabase() -> list[SalesRecord]:
            query = self.supabase.table(self.TABLE).select("*").order("date", desc=True)
            if account_id:
                query = query.eq("account_id", account_id)
            if start_date:
                query = query.gte("date", start_date.isoformat())
            if end_date:
                query = query.lte("date", end_date.isoformat())
            response = query.execute()
            return [SalesRecord(**normalize_keys(row)) for row in response.data]

        def _sqlite() -> list[SalesRecord]:
            sql, params = self._filtered_sql("SELECT *", account_id, start_date, end_date)
            rows = self.sqlite.execute(sql + " ORDER BY date DESC", params).fetchall()
            return [SalesRecord(**dict(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="get_records (sales_data)",
        )

    def save_many(self, records: list[SalesRecord]) -> list[SalesRecord]:
        """Upsert a batch of rows in one Supabase call and one local commit."""
        if not records:
            return []
        payloads: list[Payload] = [self._to_payload(r.model_dump()) for r in records]

        try:
            response = self.supabase.table(self.TABLE).upsert(payloads).execute()
            stored: list[Payload] = response.data or payloads
            queued = False
        except Exception as exc:
            self._logger.warning(
                "Supabase bulk write failed for %d sales rows: %s", len(payloads), exc,
            )
            stored = payloads
            queued = True

        with self._db.batch_write():
            for payload in stored:
                self._cache_row(payload)
                if queued:
                    self._queue_pending_sync("upsert", str(payload["id"]), payload)

        self._logger.info("Saved %d sales row(s)", len(stored))
        return [SalesRecord(**normalize_keys(dict(row))) for row in stored]

    def delete_records(
        self,
        account_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> int:
        """Delete an account's rows, optionally only inside a window.

        Returns the number of rows removed from the local cache.
        """
        filters: Payload = {"account_id": account_id}
        try:
            query = self.supabase.table(self.TABLE).delete().eq("account_id", account_id)
            if start_date:
                query = query.gte("date", start_date.isoformat())
            if end_date:
                query = query.lte("date", end_date.isoformat())
            query.execute()
            queued = False
        except Exception as exc:
            self._logger.warning(
                "Supabase delete failed for sales of %s: %s", account_id, exc,
            )
            queued = True

        sql, params = self._filtered_sql("DELETE", account_id, start_date, end_date)
        with self._db.batch_write():
            deleted: int = self.sqlite.execute(sql, params).rowcount
            if queued:
                if start_date:
                    filters["start_date"] = start_date.isoformat()
                if end_date:
                    filters["end_date"] = end_date.isoformat()
                self._queue_pending_sync("delete_range", account_id, filters)
        return deleted

    def _filtered_sql(
        self,
        verb: str,
        account_id: Optional[str],
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> tuple[str, list[str]]:
        clauses: list[str] = []
        params: list[str] = []
        if account_id:
            clauses.append("account_id = ?")
            params.append(account_id)
        if start_date:
            clauses.append("date >= ?")
            params.append(start_date.isoformat())
        if end_date:
            clauses.append("date <= ?")
            params.append(end_date.isoformat())
        sql = f"{verb} FROM {self.TABLE}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        return sql, params
