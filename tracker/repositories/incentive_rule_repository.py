"""
Incentive Rule Repository.

Persistence adapter for ``IncentiveRule`` records.  Tiers are stored
inline as a JSON array (``jsonb`` in Supabase, TEXT in the local cache)
so a rule always loads as one consistent unit.
"""

from __future__ import annotations

import json
from typing import Optional

from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger
from tracker.models.incentive_rule import IncentiveRule
from tracker.repositories.base_repository import BaseRepository
from tracker.utils.string_helpers import JsonValue, normalize_keys


class IncentiveRuleRepository(BaseRepository):
    """Data access layer for IncentiveRule entities."""

    TABLE = "incentive_rules"
    COLUMNS = (
        "id",
        "name",
        "description",
        "commission_rate_min",
        "commission_rate_max",
        "min_commission_threshold",
        "base_revenue_threshold",
        "tiers",
        "is_active",
        "created_at",
        "updated_at",
    )

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    @staticmethod
    def _row_to_rule(row: dict[str, JsonValue]) -> IncentiveRule:
        data = normalize_keys(row)
        tiers = data.get("tiers")
        if isinstance(tiers, str):
            data["tiers"] = json.loads(tiers)
        return IncentiveRule.model_validate(data)

    def get_all(self) -> list[IncentiveRule]:
        """Fetch every stored rule, active or not, oldest first."""
        def _supabase() -> list[IncentiveRule]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .order("created_at")
                .execute()
            )
            return [self._row_to_rule(row) for row in response.data]

        def _sqlite() -> list[IncentiveRule]:
            rows = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} ORDER BY created_at"
            ).fetchall()
            return [self._row_to_rule(dict(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="get_all (incentive_rules)",
            on_supabase_success=self._refresh_cache,
        )

    def get_by_id(self, rule_id: str) -> Optional[IncentiveRule]:
        """Fetch one rule by id."""
        def _supabase() -> Optional[IncentiveRule]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", rule_id)
                .maybe_single()
                .execute()
            )
            return self._row_to_rule(response.data) if response and response.data else None

        def _sqlite() -> Optional[IncentiveRule]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (rule_id,)
            ).fetchone()
            return self._row_to_rule(dict(row)) if row else None

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: None,
            operation_name="get_by_id (incentive_rules)",
        )

    def save(self, rule: IncentiveRule) -> IncentiveRule:
        """Insert or replace a rule.  The rule must already carry an id."""
        if rule.id is None:
            raise ValueError("Cannot persist an incentive rule without an id.")
        stored = self._write_through("upsert", self._to_payload(rule.model_dump()))
        self._logger.info("Incentive rule saved: %s", rule.id)
        return self._row_to_rule(dict(stored))

    def delete(self, rule_id: str) -> None:
        """Delete a rule.  Stored evaluation results keep their rule id."""
        self._delete_through(rule_id)
        self._logger.info("Incentive rule deleted: %s", rule_id)

    def _refresh_cache(self, rules: list[IncentiveRule]) -> None:
        """Mirror the authoritative rule list into SQLite."""
        with self._db.batch_write():
            self.sqlite.execute(f"DELETE FROM {self.TABLE}")
            for rule in rules:
                self._cache_row(self._to_payload(rule.model_dump()))
