"""
Account Service.

CRUD for affiliate accounts and their product categories.  New accounts
get the next sequential code (``AC001``, ``AC002``, ...).  Deleting an
account removes its sales data; deleting a category leaves its accounts
uncategorised.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from tracker.exceptions import NotFoundError, TrackerError, ValidationError
from tracker.logger import StructuredLogger
from tracker.models.account import Account, Category
from tracker.models.service_models import ServiceResult
from tracker.models.user import CurrentUser
from tracker.repositories.account_repository import AccountRepository
from tracker.repositories.category_repository import CategoryRepository
from tracker.repositories.sales_data_repository import SalesDataRepository
from tracker.services.base_service import BaseService
from tracker.utils.audit import log_audit_event

_CODE_PATTERN = re.compile(r"^AC(\d+)$")
_READ_ONLY_FIELDS = frozenset({"id", "account_code", "created_at"})


def next_account_code(existing: list[str]) -> str:
    """Return the code after the highest ``ACnnn`` in *existing*."""
    highest = 0
    for code in existing:
        match = _CODE_PATTERN.match(code or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"AC{highest + 1:03d}"


class AccountService(BaseService):
    """Manages accounts and categories."""

    def __init__(
        self,
        account_repo: AccountRepository,
        category_repo: CategoryRepository,
        sales_repo: SalesDataRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._account_repo = account_repo
        self._category_repo = category_repo
        self._sales_repo = sales_repo

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def list_accounts(self, category_id: Optional[str] = None) -> ServiceResult:
        """All accounts, newest first, optionally in one category."""
        try:
            accounts = self._account_repo.get_all()
        except Exception as exc:
            return self._storage_error(exc, "Fetching accounts")
        if category_id:
            accounts = [a for a in accounts if a.category_id == category_id]
        return ServiceResult(success=True, data=accounts)

    def get_account(self, account_id: str) -> ServiceResult:
        try:
            return ServiceResult(success=True, data=self._require_account(account_id))
        except TrackerError as exc:
            return self._domain_error(exc, "Fetching account")
        except Exception as exc:
            return self._storage_error(exc, "Fetching account")

    def add_account(
        self, data: Mapping[str, object], current_user: CurrentUser,
    ) -> ServiceResult:
        """Create an account with a fresh id and the next account code."""
        try:
            fields = {k: v for k, v in data.items() if k not in _READ_ONLY_FIELDS}
            self._check_category(fields.get("category_id"))
            account = self._validate_account(
                {
                    **fields,
                    "id": uuid.uuid4().hex,
                    "account_code": next_account_code(self._account_repo.get_account_codes()),
                    "created_at": datetime.now(timezone.utc),
                }
            )
            saved = self._account_repo.save(account)
        except TrackerError as exc:
            return self._domain_error(exc, "Rejected account")
        except Exception as exc:
            return self._storage_error(exc, "Creating account")

        self._audit("CREATE_ACCOUNT", "Account", str(saved.id), current_user,
                    {"account_code": saved.account_code, "username": saved.username})
        return ServiceResult(success=True, data=saved, status_code=201)

    def update_account(
        self,
        account_id: str,
        changes: Mapping[str, object],
        current_user: CurrentUser,
    ) -> ServiceResult:
        """Apply *changes*; id, code and creation time cannot change."""
        try:
            current = self._require_account(account_id)
            updates = {k: v for k, v in changes.items() if k not in _READ_ONLY_FIELDS}
            if "category_id" in updates:
                self._check_category(updates["category_id"])
            account = self._validate_account({**current.model_dump(), **updates})
            saved = self._account_repo.save(account)
        except TrackerError as exc:
            return self._domain_error(exc, "Rejected account update")
        except Exception as exc:
            return self._storage_error(exc, "Updating account")

        self._audit("UPDATE_ACCOUNT", "Account", account_id, current_user,
                    {"fields": ", ".join(sorted(updates))})
        return ServiceResult(success=True, data=saved)

    def delete_account(self, account_id: str, current_user: CurrentUser) -> ServiceResult:
        """Delete an account together with all of its sales data.

        The account goes first; the local cache cascades to its sales rows
        and the remote rows are cleared afterwards.
        """
        try:
            account = self._require_account(account_id)
            removed_rows = len(self._sales_repo.get_records(account_id))
            self._account_repo.delete(account_id)
            self._sales_repo.delete_records(account_id)
        except TrackerError as exc:
            return self._domain_error(exc, "Deleting account")
        except Exception as exc:
            return self._storage_error(exc, "Deleting account")

        self._audit("DELETE_ACCOUNT", "Account", account_id, current_user,
                    {"account_code": account.account_code, "sales_rows": removed_rows})
        return ServiceResult(success=True, data=account)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def list_categories(self) -> ServiceResult:
        try:
            return ServiceResult(success=True, data=self._category_repo.get_all())
        except Exception as exc:
            return self._storage_error(exc, "Fetching categories")

    def add_category(
        self, name: str, current_user: CurrentUser, description: str = "",
    ) -> ServiceResult:
        try:
            category = self._validate_category(
                {
                    "id": uuid.uuid4().hex,
                    "name": name,
                    "description": description,
                    "created_at": datetime.now(timezone.utc),
                }
            )
            self._check_unique_name(category)
            saved = self._category_repo.save(category)
        except TrackerError as exc:
            return self._domain_error(exc, "Rejected category")
        except Exception as exc:
            return self._storage_error(exc, "Creating category")

        self._audit("CREATE_CATEGORY", "Category", str(saved.id), current_user,
                    {"name": saved.name})
        return ServiceResult(success=True, data=saved, status_code=201)

    def update_category(
        self,
        category_id: str,
        changes: Mapping[str, object],
        current_user: CurrentUser,
    ) -> ServiceResult:
        try:
            current = self._category_repo.get_by_id(category_id)
            if current is None:
                raise NotFoundError(f"Category '{category_id}' not found.")
            updates = {k: v for k, v in changes.items() if k not in {"id", "created_at"}}
            category = self._validate_category({**current.model_dump(), **updates})
            self._check_unique_name(category)
            saved = self._category_repo.save(category)
        except TrackerError as exc:
            return self._domain_error(exc, "Rejected category update")
        except Exception as exc:
            return self._storage_error(exc, "Updating category")

        self._audit("UPDATE_CATEGORY", "Category", category_id, current_user,
                    {"name": saved.name})
        return ServiceResult(success=True, data=saved)

    def delete_category(self, category_id: str, current_user: CurrentUser) -> ServiceResult:
        """Delete a category.  Its accounts keep existing without one."""
        try:
            category = self._category_repo.get_by_id(category_id)
            if category is None:
                raise NotFoundError(f"Category '{category_id}' not found.")
            for account in self._account_repo.get_all():
                if account.category_id == category_id:
                    self._account_repo.save(account.model_copy(update={"category_id": None}))
            self._category_repo.delete(category_id)
        except TrackerError as exc:
            return self._domain_error(exc, "Deleting category")
        except Exception as exc:
            return self._storage_error(exc, "Deleting category")

        self._audit("DELETE_CATEGORY", "Category", category_id, current_user,
                    {"name": category.name})
        return ServiceResult(success=True, data=category)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_account(self, account_id: str) -> Account:
        account = self._account_repo.get_by_id(account_id)
        if account is None:
            raise NotFoundError(f"Account '{account_id}' not found.")
        return account

    def _check_category(self, category_id: object) -> None:
        if category_id and self._category_repo.get_by_id(str(category_id)) is None:
            raise NotFoundError(f"Category '{category_id}' not found.")

    def _check_unique_name(self, category: Category) -> None:
        for other in self._category_repo.get_all():
            if other.id != category.id and other.name.lower() == category.name.lower():
                raise ValidationError(f"Category '{category.name}' already exists.")

    @staticmethod
    def _validate_account(data: Mapping[str, object]) -> Account:
        try:
            return Account.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid account: {exc}", original_error=exc) from exc

    @staticmethod
    def _validate_category(data: Mapping[str, object]) -> Category:
        try:
            return Category.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid category: {exc}", original_error=exc) from exc

    def _audit(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        current_user: CurrentUser,
        details: dict[str, str | int | None],
    ) -> None:
        log_audit_event(
            logger=self._logger,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=current_user.id,
            details=details,
            conn=self._account_repo.sqlite,
        )
