"""
Incentive Rule Models.

``IncentiveTier`` and ``IncentiveRule`` are immutable value objects.
Field-level bounds are enforced here; cross-field invariants (tier
ordering, rate band bounds, band overlap) are enforced by
:class:`~tracker.services.rule_registry.RuleRegistry` so that a
malformed rule can still be represented and rejected with a domain
error.

Monetary amounts are integers in the smallest currency unit.  Rates are
percentages held as ``Decimal`` (``Decimal("0.4")`` means 0.4%).
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncentiveTier(BaseModel):
    """A (revenue threshold, incentive rate) step in a rule's ladder."""

    model_config = ConfigDict(frozen=True)

    revenue_threshold: int = Field(ge=0)
    incentive_rate: Decimal = Field(ge=0)


class IncentiveRule(BaseModel):
    """An incentive rule scoped to a commission-rate band."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[str] = None
    name: str = ""
    description: str = ""
    commission_rate_min: Decimal = Field(ge=0, le=100)
    commission_rate_max: Decimal = Field(ge=0, le=100)
    min_commission_threshold: int = Field(default=0, ge=0)
    base_revenue_threshold: int = Field(default=0, ge=0)
    tiers: tuple[IncentiveTier, ...] = ()
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("name", "description", mode="before")
    @classmethod
    def _strip_whitespace(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v

    def covers(self, rate: Decimal) -> bool:
        """``True`` when *rate* lies in the closed band ``[min, max]``."""
        return self.commission_rate_min <= rate <= self.commission_rate_max

    def overlaps(self, other: IncentiveRule) -> bool:
        """``True`` when the two closed rate bands share at least one point."""
        return (
            self.commission_rate_min <= other.commission_rate_max
            and other.commission_rate_min <= self.commission_rate_max
        )

    def band_label(self) -> str:
        """Human-readable band, e.g. ``5% - 7.99%`` or ``8% - ∞``."""
        upper = "∞" if self.commission_rate_max == Decimal("100") else f"{self.commission_rate_max}%"
        return f"{self.commission_rate_min}% - {upper}"
