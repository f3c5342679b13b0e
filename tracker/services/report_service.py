"""
Report Service.

Dashboard metrics: per-account performance plus totals for clicks,
orders, commission, revenue and conversion rate over a date window.

Date filters use the same presets as the dashboard (7/30/90 days ending
today) or an explicit inclusive range.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from tracker.config import AppConfig
from tracker.exceptions import TrackerError
from tracker.logger import StructuredLogger
from tracker.models.enums import AccountStatus
from tracker.models.service_models import AccountPerformance, DashboardSummary, ServiceResult
from tracker.repositories.account_repository import AccountRepository
from tracker.repositories.sales_data_repository import SalesDataRepository
from tracker.services.aggregation import aggregate_sales, resolve_window
from tracker.services.base_service import BaseService


class ReportService(BaseService):
    """
    Service layer for dashboard reporting.

    Reads accounts and sales once per call and aggregates in memory.
    """

    def __init__(
        self,
        account_repo: AccountRepository,
        sales_repo: SalesDataRepository,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._account_repo = account_repo
        self._sales_repo = sales_repo
        self._config = config

    def get_dashboard_summary(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        preset_days: Optional[int] = None,
        today: Optional[date] = None,
    ) -> ServiceResult:
        """
        Consolidated dashboard fetch.

        Args:
            start_date: Inclusive window start; wins over *preset_days*.
            end_date: Inclusive window end.
            preset_days: Window of this many days ending *today*.  Falls
                back to ``DEFAULT_WINDOW_DAYS`` when no filter is given.
            today: Reference date for presets (defaults to the local date).

        Returns:
            ServiceResult with a ``DashboardSummary`` on success.
        """
        if start_date is None and end_date is None and preset_days is None:
            preset_days = self._config.DEFAULT_WINDOW_DAYS
        try:
            start, end = resolve_window(
                today or date.today(),
                preset_days=preset_days,
                start_date=start_date,
                end_date=end_date,
            )
        except TrackerError as exc:
            return self._domain_error(exc, "Invalid dashboard window")

        try:
            accounts = self._account_repo.get_all()
            records = self._sales_repo.get_records(start_date=start, end_date=end)
        except Exception as exc:
            return self._storage_error(exc, "Building dashboard summary")

        performances: list[AccountPerformance] = [
            aggregate_sales(str(account.id), records, start, end) for account in accounts
        ]
        total_clicks = sum(p.clicks for p in performances)
        total_orders = sum(p.orders for p in performances)
        conversion = (
            Decimal(total_orders) * Decimal("100") / Decimal(total_clicks)
            if total_clicks
            else Decimal("0")
        )

        summary = DashboardSummary(
            start_date=start,
            end_date=end,
            account_count=len(accounts),
            active_account_count=sum(
                1 for account in accounts if account.status == AccountStatus.ACTIVE
            ),
            total_clicks=total_clicks,
            total_orders=total_orders,
            total_commission=sum(p.period_commission for p in performances),
            total_revenue=sum(p.period_revenue for p in performances),
            conversion_rate=conversion,
            accounts=performances,
        )
        return ServiceResult(success=True, data=summary)
