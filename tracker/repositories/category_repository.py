"""
Category Repository.

Product categories used to group accounts.  Deleting a category leaves
its accounts in place with ``category_id`` cleared.
"""

from __future__ import annotations

from typing import Optional

from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger
from tracker.models.account import Category
from tracker.repositories.base_repository import BaseRepository
from tracker.utils.string_helpers import normalize_keys


class CategoryRepository(BaseRepository):
    """Data access layer for Category entities."""

    TABLE = "categories"
    COLUMNS = ("id", "name", "description", "created_at")

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_all(self) -> list[Category]:
        """Fetch all categories ordered by name."""
        def _supabase() -> list[Category]:
            response = self.supabase.table(self.TABLE).select("*").order("name").execute()
            return [Category(**normalize_keys(row)) for row in response.data]

        def _sqlite() -> list[Category]:
            rows = self.sqlite.execute(f"SELECT * FROM {self.TABLE} ORDER BY name").fetchall()
            return [Category(**dict(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="get_all (categories)",
            on_supabase_success=self._warm_cache,
        )

    def get_by_id(self, category_id: str) -> Optional[Category]:
        """Fetch a single category by id."""
        def _supabase() -> Optional[Category]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", category_id)
                .maybe_single()
                .execute()
            )
            return Category(**normalize_keys(response.data)) if response and response.data else None

        def _sqlite() -> Optional[Category]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (category_id,)
            ).fetchone()
            return Category(**dict(row)) if row else None

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: None,
            operation_name="get_by_id (categories)",
            on_supabase_success=self._warm_cache,
        )

    def save(self, category: Category) -> Category:
        """Insert or update a category.  The category must carry an id."""
        if category.id is None:
            raise ValueError("Cannot persist a category without an id.")
        stored = self._write_through("upsert", self._to_payload(category.model_dump()))
        return Category(**normalize_keys(dict(stored)))

    def delete(self, category_id: str) -> None:
        """Delete a category."""
        self._delete_through(category_id)
        self._logger.info("Category deleted: %s", category_id)
