"""
Service Layer Data Transfer Objects.

Pydantic models for validated input/output at service boundaries.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

__all__ = [
    "AccountPerformance",
    "DashboardSummary",
    "ServiceResult",
]


class AccountPerformance(BaseModel):
    """Sales aggregated for one account over an inclusive date window."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    start_date: date
    end_date: date
    record_count: int = 0
    clicks: int = 0
    orders: int = 0
    products_sold: int = 0
    new_buyers: int = 0
    period_commission: int = 0
    period_revenue: int = 0
    commission_rate: Decimal = Decimal("0")

    @property
    def conversion_rate(self) -> Decimal:
        """Orders as a percentage of clicks, ``0`` without clicks."""
        if self.clicks == 0:
            return Decimal("0")
        return Decimal(self.orders) * Decimal("100") / Decimal(self.clicks)


class DashboardSummary(BaseModel):
    """Totals across all accounts for the dashboard header cards."""

    start_date: date
    end_date: date
    account_count: int = 0
    active_account_count: int = 0
    total_clicks: int = 0
    total_orders: int = 0
    total_commission: int = 0
    total_revenue: int = 0
    conversion_rate: Decimal = Decimal("0")
    accounts: list[AccountPerformance] = Field(default_factory=list)


class ServiceResult(BaseModel, Generic[T]):
    """
    Standard service return envelope.

    Every public service method returns this so callers get a uniform
    success/error contract.  ``status_code`` follows HTTP semantics.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200
