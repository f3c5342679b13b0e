"""
Evaluation Result Repository.

Append-only audit store for computed incentives.  Rows are never
rewritten when a rule changes or is deleted; recomputing a period
appends a new row.
"""

from __future__ import annotations

from typing import Optional

from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger
from tracker.models.evaluation import EvaluationResult
from tracker.repositories.base_repository import BaseRepository
from tracker.utils.string_helpers import normalize_keys


class EvaluationResultRepository(BaseRepository):
    """Data access layer for stored EvaluationResult records."""

    TABLE = "evaluation_results"
    COLUMNS = (
        "account_id",
        "matched_rule_id",
        "matched_tier_index",
        "incentive_amount",
        "incentive_rate",
        "reason",
        "period_commission",
        "period_revenue",
        "commission_rate",
        "period_start",
        "period_end",
        "evaluated_at",
    )

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def create(self, result: EvaluationResult) -> EvaluationResult:
        """Append a result.  Offline inserts are queued for sync."""
        payload = self._to_payload(result.model_dump())
        try:
            self.supabase.table(self.TABLE).insert(payload).execute()
            queued = False
        except Exception as exc:
            self._logger.warning(
                "Supabase insert failed for evaluation of %s: %s", result.account_id, exc,
            )
            queued = True

        columns = list(payload)
        with self._db.batch_write():
            cursor = self.sqlite.execute(
                f"INSERT INTO {self.TABLE} ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                [payload[column] for column in columns],
            )
            if queued:
                self._queue_pending_sync("insert", str(cursor.lastrowid), payload)
        return result

    def get_history(
        self,
        account_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[EvaluationResult]:
        """Most recent stored results first, optionally for one account."""
        def _supabase() -> list[EvaluationResult]:
            query = (
                self.supabase.table(self.TABLE)
                .select("*")
                .order("evaluated_at", desc=True)
                .limit(limit)
            )
            if account_id:
                query = query.eq("account_id", account_id)
            response = query.execute()
            return [EvaluationResult(**normalize_keys(row)) for row in response.data]

        def _sqlite() -> list[EvaluationResult]:
            sql = f"SELECT * FROM {self.TABLE}"
            params: list[object] = []
            if account_id:
                sql += " WHERE account_id = ?"
                params.append(account_id)
            sql += " ORDER BY evaluated_at DESC, id DESC LIMIT ?"
            params.append(limit)
            rows = self.sqlite.execute(sql, params).fetchall()
            return [EvaluationResult(**dict(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="get_history (evaluation_results)",
        )
