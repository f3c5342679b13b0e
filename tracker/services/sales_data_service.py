"""
Sales Data Service.

Ingests daily sales rows for an account.  Rows arrive as decoded dicts
from the platform export, so header spelling varies (``grossCommission``,
``Total Purchases``); keys are normalised to snake_case before
validation.  A batch is validated as a whole: one bad row rejects the
upload and nothing is written.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from tracker.exceptions import InvalidInputError, NotFoundError, TrackerError, ValidationError
from tracker.logger import StructuredLogger
from tracker.models.sales_data import SalesRecord
from tracker.models.service_models import ServiceResult
from tracker.models.user import CurrentUser
from tracker.repositories.account_repository import AccountRepository
from tracker.repositories.sales_data_repository import SalesDataRepository, sales_record_id
from tracker.services.base_service import BaseService
from tracker.utils.audit import log_audit_event
from tracker.utils.string_helpers import normalize_keys


class SalesDataService(BaseService):
    """Upload, list and delete daily sales rows."""

    def __init__(
        self,
        sales_repo: SalesDataRepository,
        account_repo: AccountRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._sales_repo = sales_repo
        self._account_repo = account_repo

    def upload(
        self,
        account_id: str,
        rows: Sequence[Mapping[str, object]],
        current_user: CurrentUser,
    ) -> ServiceResult:
        """Validate and store *rows* for *account_id*.

        Uploading a day that already has data replaces that day's figures.
        """
        try:
            self._require_account(account_id)
            records = self._parse_rows(account_id, rows)
            saved = self._sales_repo.save_many(records)
        except TrackerError as exc:
            return self._domain_error(exc, "Rejected sales upload")
        except Exception as exc:
            return self._storage_error(exc, "Uploading sales data")

        log_audit_event(
            logger=self._logger,
            action="UPLOAD_SALES",
            entity_type="SalesData",
            entity_id=account_id,
            user_id=current_user.id,
            details={
                "rows": len(saved),
                "first_date": min(r.date for r in saved).isoformat() if saved else None,
                "last_date": max(r.date for r in saved).isoformat() if saved else None,
            },
            conn=self._sales_repo.sqlite,
        )
        return ServiceResult(success=True, data=saved, status_code=201)

    def list_sales(
        self,
        account_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> ServiceResult:
        """Rows newest first, filtered by account and inclusive window."""
        if start_date and end_date and start_date > end_date:
            return self._domain_error(
                InvalidInputError(f"Start date {start_date} is after end date {end_date}."),
                "Listing sales data",
            )
        try:
            records = self._sales_repo.get_records(account_id, start_date, end_date)
        except Exception as exc:
            return self._storage_error(exc, "Fetching sales data")
        return ServiceResult(success=True, data=records)

    def delete_sales(
        self,
        account_id: str,
        current_user: CurrentUser,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> ServiceResult:
        """Delete an account's rows, all of them or those inside a window."""
        try:
            self._require_account(account_id)
            deleted = self._sales_repo.delete_records(account_id, start_date, end_date)
        except TrackerError as exc:
            return self._domain_error(exc, "Deleting sales data")
        except Exception as exc:
            return self._storage_error(exc, "Deleting sales data")

        log_audit_event(
            logger=self._logger,
            action="DELETE_SALES",
            entity_type="SalesData",
            entity_id=account_id,
            user_id=current_user.id,
            details={
                "rows": deleted,
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
            },
            conn=self._sales_repo.sqlite,
        )
        return ServiceResult(success=True, data={"deleted": deleted})

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_account(self, account_id: str) -> None:
        if self._account_repo.get_by_id(account_id) is None:
            raise NotFoundError(f"Account '{account_id}' not found.")

    @staticmethod
    def _parse_rows(
        account_id: str, rows: Sequence[Mapping[str, object]],
    ) -> list[SalesRecord]:
        if not rows:
            raise ValidationError("Upload contains no rows.")

        records: list[SalesRecord] = []
        seen: set[date] = set()
        for index, row in enumerate(rows, start=1):
            data = normalize_keys(dict(row))
            data.pop("id", None)
            data["account_id"] = account_id
            try:
                record = SalesRecord.model_validate(data)
            except PydanticValidationError as exc:
                raise ValidationError(f"Row {index}: {exc}", original_error=exc) from exc
            if record.date in seen:
                raise ValidationError(f"Row {index}: date {record.date} appears twice.")
            seen.add(record.date)
            records.append(
                record.model_copy(update={"id": sales_record_id(account_id, record.date)})
            )
        return records
