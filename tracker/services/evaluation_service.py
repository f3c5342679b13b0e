"""
Evaluation Service.

Feeds the incentive engine from stored sales data and, on request,
appends the results to ``evaluation_results``.  The engine itself stays
pure; this module owns the I/O around it.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from tracker.exceptions import InvalidInputError, NotFoundError, TrackerError
from tracker.logger import StructuredLogger
from tracker.models.account import Account
from tracker.models.evaluation import EvaluationInput, EvaluationResult
from tracker.models.service_models import ServiceResult
from tracker.models.user import CurrentUser
from tracker.repositories.account_repository import AccountRepository
from tracker.repositories.evaluation_result_repository import EvaluationResultRepository
from tracker.repositories.sales_data_repository import SalesDataRepository
from tracker.services import incentive_engine
from tracker.services.aggregation import aggregate_sales, to_evaluation_input
from tracker.services.base_service import BaseService
from tracker.services.rule_registry import RuleRegistry
from tracker.utils.audit import log_audit_event


class EvaluationService(BaseService):
    """Computes incentives for single inputs, one account, or every account."""

    def __init__(
        self,
        registry: RuleRegistry,
        account_repo: AccountRepository,
        sales_repo: SalesDataRepository,
        result_repo: EvaluationResultRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._registry = registry
        self._account_repo = account_repo
        self._sales_repo = sales_repo
        self._result_repo = result_repo

    def evaluate(self, data: EvaluationInput) -> ServiceResult:
        """Evaluate a caller-supplied aggregate.  Nothing is stored."""
        try:
            result = incentive_engine.evaluate(
                data, self._registry, logger=self._logger.bind(account_id=data.account_id),
            )
        except TrackerError as exc:
            return self._domain_error(exc, "Evaluation rejected")
        return ServiceResult(success=True, data=result)

    def evaluate_account(
        self,
        account_id: str,
        start_date: date,
        end_date: date,
        persist: bool = False,
        current_user: Optional[CurrentUser] = None,
    ) -> ServiceResult:
        """Aggregate one account's sales over the window and evaluate them."""
        try:
            self._check_window(start_date, end_date)
            account: Optional[Account] = self._account_repo.get_by_id(account_id)
            if account is None:
                raise NotFoundError(f"Account '{account_id}' not found.")
            result = self._evaluate_account(account, start_date, end_date)
        except TrackerError as exc:
            return self._domain_error(exc, "Account evaluation rejected")
        except Exception as exc:
            return self._storage_error(exc, "Evaluating account")

        if persist:
            stored = self._store([result], current_user)
            if stored is not None:
                return stored
        return ServiceResult(success=True, data=result)

    def evaluate_all(
        self,
        start_date: date,
        end_date: date,
        persist: bool = False,
        current_user: Optional[CurrentUser] = None,
    ) -> ServiceResult:
        """Evaluate every account against one consistent rule snapshot.

        Returns the results in account order (newest account first).
        """
        try:
            self._check_window(start_date, end_date)
            accounts: list[Account] = self._account_repo.get_all()
            records = self._sales_repo.get_records(start_date=start_date, end_date=end_date)
            rate_by_account = {account.id: account.commission_rate for account in accounts}
            inputs = [
                to_evaluation_input(
                    aggregate_sales(str(account.id), records, start_date, end_date),
                    nominal_rate=rate_by_account[account.id],
                )
                for account in accounts
            ]
            results = incentive_engine.evaluate_many(inputs, self._registry, logger=self._logger)
        except TrackerError as exc:
            return self._domain_error(exc, "Bulk evaluation rejected")
        except Exception as exc:
            return self._storage_error(exc, "Evaluating all accounts")

        eligible = sum(1 for result in results if result.is_eligible)
        self._logger.info(
            "Evaluated %d account(s) for %s..%s: %d eligible",
            len(results), start_date, end_date, eligible,
        )

        if persist:
            stored = self._store(results, current_user)
            if stored is not None:
                return stored
        return ServiceResult(success=True, data=results)

    def get_history(self, account_id: Optional[str] = None, limit: int = 100) -> ServiceResult:
        """Stored results, newest first."""
        try:
            history: list[EvaluationResult] = self._result_repo.get_history(account_id, limit)
        except Exception as exc:
            return self._storage_error(exc, "Fetching evaluation history")
        return ServiceResult(success=True, data=history)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_window(start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise InvalidInputError(f"Start date {start_date} is after end date {end_date}.")

    def _evaluate_account(
        self, account: Account, start_date: date, end_date: date,
    ) -> EvaluationResult:
        account_id = str(account.id)
        records = self._sales_repo.get_records(account_id, start_date, end_date)
        performance = aggregate_sales(account_id, records, start_date, end_date)
        return incentive_engine.evaluate(
            to_evaluation_input(performance, nominal_rate=account.commission_rate),
            self._registry,
            logger=self._logger.bind(account_id=account_id),
        )

    def _store(
        self,
        results: list[EvaluationResult],
        current_user: Optional[CurrentUser],
    ) -> Optional[ServiceResult]:
        """Append *results*; returns an error result on failure, else ``None``."""
        try:
            for result in results:
                self._result_repo.create(result)
                log_audit_event(
                    logger=self._logger,
                    action="STORE_EVALUATION",
                    entity_type="EvaluationResult",
                    entity_id=result.account_id,
                    user_id=current_user.id if current_user else "system",
                    details={
                        "reason": result.reason.value,
                        "incentive_amount": result.incentive_amount,
                        "matched_rule_id": result.matched_rule_id,
                    },
                    conn=self._result_repo.sqlite,
                )
        except Exception as exc:
            return self._storage_error(exc, "Storing evaluation results")
        return None
