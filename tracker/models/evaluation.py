"""
Evaluation Models.

``EvaluationInput`` is what the aggregation feed hands to the engine;
``EvaluationResult`` is what the engine returns and what
``evaluation_results`` stores as an audit row.

Input amounts are deliberately unconstrained: a negative aggregate is a
data error that the engine reports as ``InvalidInputError``.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tracker.models.enums import EvaluationReason

_HUNDRED: Decimal = Decimal("100")

RATE_PRECISION: Decimal = Decimal("0.01")
"""Rule bands are written to two decimal places; derived rates match that."""


def derive_commission_rate(commission: int, revenue: int) -> Decimal:
    """Commission as a percentage of revenue, rounded half-up to two places.

    Returns ``0`` when there is no revenue.
    """
    if revenue <= 0:
        return Decimal("0")
    rate = Decimal(commission) * _HUNDRED / Decimal(revenue)
    return rate.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)


class EvaluationInput(BaseModel):
    """Aggregated performance of one account over one period."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    period_commission: int
    period_revenue: int
    commission_rate: Optional[Decimal] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None

    def effective_commission_rate(self) -> Decimal:
        """Rate used to pick the rule band.

        An explicit ``commission_rate`` wins.  Otherwise the rate is
        commission as a percentage of revenue, and ``0`` when there is no
        revenue.
        """
        if self.commission_rate is not None:
            return self.commission_rate
        return derive_commission_rate(self.period_commission, self.period_revenue)


class EvaluationResult(BaseModel):
    """Outcome of evaluating one ``EvaluationInput``."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    account_id: str
    matched_rule_id: Optional[str] = None
    matched_tier_index: Optional[int] = None
    incentive_amount: int = 0
    incentive_rate: Optional[Decimal] = None
    reason: EvaluationReason
    period_commission: int
    period_revenue: int
    commission_rate: Decimal
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_eligible(self) -> bool:
        return self.reason == EvaluationReason.ELIGIBLE

    def same_outcome(self, other: EvaluationResult) -> bool:
        """Compare everything except the evaluation timestamp."""
        return self.model_dump(exclude={"evaluated_at"}) == other.model_dump(
            exclude={"evaluated_at"}
        )
