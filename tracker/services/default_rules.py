"""
Default Incentive Rules.

The two bands the dashboard ships with.  Seeded through the normal
``RuleRegistry.add`` path when storage holds no rules yet; never read
directly by the engine.

Amounts are in whole Rupiah, rates in percent.
"""

from __future__ import annotations

from decimal import Decimal

from tracker.models.incentive_rule import IncentiveRule, IncentiveTier


def _tiers(*pairs: tuple[int, str]) -> tuple[IncentiveTier, ...]:
    return tuple(
        IncentiveTier(revenue_threshold=threshold, incentive_rate=Decimal(rate))
        for threshold, rate in pairs
    )


def default_rules() -> list[IncentiveRule]:
    """Fresh copies of the default rule set (ids are assigned on add)."""
    return [
        IncentiveRule(
            name="Standard Commission (5% - 7.99%)",
            description="Incentive for accounts earning 5% up to 7.99% commission.",
            commission_rate_min=Decimal("5"),
            commission_rate_max=Decimal("7.99"),
            min_commission_threshold=50_000,
            base_revenue_threshold=80_000_000,
            tiers=_tiers(
                (80_000_000, "0.4"),
                (90_000_000, "0.6"),
                (100_000_000, "0.8"),
                (110_000_000, "1.0"),
                (120_000_000, "1.2"),
                (130_000_000, "1.5"),
            ),
        ),
        IncentiveRule(
            name="High Commission (8%+)",
            description="Incentive for accounts earning 8% commission or more.",
            commission_rate_min=Decimal("8"),
            commission_rate_max=Decimal("100"),
            min_commission_threshold=50_000,
            base_revenue_threshold=50_000_000,
            tiers=_tiers(
                (50_000_000, "0.4"),
                (60_000_000, "0.6"),
                (70_000_000, "0.8"),
                (80_000_000, "1.0"),
                (90_000_000, "1.2"),
                (100_000_000, "1.5"),
            ),
        ),
    ]
