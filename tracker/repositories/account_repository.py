"""
Account Repository.

Handles data access for affiliate accounts.  Deleting an account also
deletes its sales rows (``ON DELETE CASCADE`` in both stores).
"""

from __future__ import annotations

from typing import Optional

from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger
from tracker.models.account import Account
from tracker.repositories.base_repository import BaseRepository
from tracker.utils.string_helpers import normalize_keys


class AccountRepository(BaseRepository):
    """Data access layer for Account entities."""

    TABLE = "accounts"
    COLUMNS = (
        "id",
        "username",
        "email",
        "phone",
        "status",
        "payment_data",
        "account_code",
        "category_id",
        "commission_rate",
        "created_at",
    )

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_all(self) -> list[Account]:
        """Fetch all accounts, newest first."""
        def _supabase() -> list[Account]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .order("created_at", desc=True)
                .execute()
            )
            return [Account(**normalize_keys(row)) for row in response.data]

        def _sqlite() -> list[Account]:
            rows = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} ORDER BY created_at DESC"
            ).fetchall()
            return [Account(**dict(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="get_all (accounts)",
            on_supabase_success=self._warm_cache,
        )

    def get_by_id(self, account_id: str) -> Optional[Account]:
        """Fetch a single account by id."""
        def _supabase() -> Optional[Account]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", account_id)
                .maybe_single()
                .execute()
            )
            return Account(**normalize_keys(response.data)) if response and response.data else None

        def _sqlite() -> Optional[Account]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (account_id,)
            ).fetchone()
            return Account(**dict(row)) if row else None

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: None,
            operation_name="get_by_id (accounts)",
            on_supabase_success=self._warm_cache,
        )

    def get_account_codes(self) -> list[str]:
        """Return every account code in use, for sequential code assignment."""
        return [account.account_code for account in self.get_all()]

    def save(self, account: Account) -> Account:
        """Insert or update an account.  The account must carry an id."""
        if account.id is None:
            raise ValueError("Cannot persist an account without an id.")
        stored = self._write_through("upsert", self._to_payload(account.model_dump()))
        return Account(**normalize_keys(dict(stored)))

    def delete(self, account_id: str) -> None:
        """Delete an account and, by cascade, its sales data."""
        self._delete_through(account_id)
        self._logger.info("Account deleted: %s", account_id)
