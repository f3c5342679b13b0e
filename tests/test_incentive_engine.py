"""Incentive engine: band selection, eligibility gates, tier ladder and payout."""

from __future__ import annotations

from decimal import Decimal

import pytest

from tests.factories import make_rule
from tracker.exceptions import InvalidInputError
from tracker.models.enums import EvaluationReason
from tracker.models.evaluation import EvaluationInput
from tracker.services.incentive_engine import (
    calculate_incentive,
    evaluate,
    evaluate_many,
    select_tier,
)
from tracker.services.rule_registry import RuleRegistry


@pytest.fixture
def standard_registry() -> RuleRegistry:
    rule = make_rule(
        "std",
        "5",
        "7.99",
        tiers=((80_000_000, "0.4"), (90_000_000, "0.6"), (100_000_000, "0.8")),
        min_commission_threshold=50_000,
        base_revenue_threshold=80_000_000,
    )
    return RuleRegistry([rule])


def _input(commission: int, revenue: int, rate: str | None = "6") -> EvaluationInput:
    return EvaluationInput(
        account_id="acc-1",
        period_commission=commission,
        period_revenue=revenue,
        commission_rate=Decimal(rate) if rate is not None else None,
    )


def test_eligible_account_gets_the_highest_tier_reached(standard_registry: RuleRegistry) -> None:
    """95M revenue reaches the 90M tier and pays 0.6% of all revenue."""
    result = evaluate(_input(60_000, 95_000_000), standard_registry)

    assert result.reason == EvaluationReason.ELIGIBLE
    assert result.matched_rule_id == "std"
    assert result.matched_tier_index == 1
    assert result.incentive_rate == Decimal("0.6")
    assert result.incentive_amount == 570_000


def test_revenue_below_base_threshold_is_ineligible(standard_registry: RuleRegistry) -> None:
    result = evaluate(_input(60_000, 79_999_999), standard_registry)

    assert result.reason == EvaluationReason.BELOW_BASE_REVENUE
    assert result.incentive_amount == 0
    assert result.matched_rule_id == "std"
    assert result.matched_tier_index is None


def test_commission_below_minimum_is_ineligible(standard_registry: RuleRegistry) -> None:
    result = evaluate(_input(40_000, 95_000_000), standard_registry)

    assert result.reason == EvaluationReason.BELOW_MINIMUM_COMMISSION
    assert result.incentive_amount == 0


def test_rate_outside_every_band_has_no_matching_rule(standard_registry: RuleRegistry) -> None:
    result = evaluate(_input(60_000, 95_000_000, rate="3"), standard_registry)

    assert result.reason == EvaluationReason.NO_MATCHING_RATE_BAND
    assert result.matched_rule_id is None
    assert result.incentive_amount == 0


def test_revenue_exactly_on_a_threshold_reaches_that_tier(
    standard_registry: RuleRegistry,
) -> None:
    result = evaluate(_input(60_000, 100_000_000), standard_registry)

    assert result.matched_tier_index == 2
    assert result.incentive_amount == 800_000


def test_band_edges_are_inclusive(standard_registry: RuleRegistry) -> None:
    for rate in ("5", "7.99"):
        result = evaluate(_input(60_000, 95_000_000, rate=rate), standard_registry)
        assert result.reason == EvaluationReason.ELIGIBLE, rate


def test_rate_is_derived_from_sales_when_not_given() -> None:
    """6M commission on 100M revenue is a 6% rate, inside the 5-7.99 band."""
    registry = RuleRegistry([make_rule("std", tiers=((1, "1"),))])

    result = evaluate(_input(6_000_000, 100_000_000, rate=None), registry)

    assert result.commission_rate == Decimal("6")
    assert result.reason == EvaluationReason.ELIGIBLE


def test_zero_revenue_without_rate_matches_no_band(standard_registry: RuleRegistry) -> None:
    result = evaluate(_input(0, 0, rate=None), standard_registry)

    assert result.commission_rate == Decimal("0")
    assert result.reason == EvaluationReason.NO_MATCHING_RATE_BAND


def test_base_threshold_below_first_tier_leaves_a_gap() -> None:
    """Revenue past the base threshold but under the first tier still pays nothing."""
    registry = RuleRegistry(
        [make_rule("gap", tiers=((1_000, "1"),), base_revenue_threshold=500)]
    )

    result = evaluate(_input(0, 700), registry)

    assert result.reason == EvaluationReason.BELOW_BASE_REVENUE
    assert result.incentive_amount == 0


@pytest.mark.parametrize(
    ("commission", "revenue"),
    [(-1, 95_000_000), (60_000, -1)],
)
def test_negative_aggregates_are_rejected(
    standard_registry: RuleRegistry, commission: int, revenue: int,
) -> None:
    with pytest.raises(InvalidInputError) as excinfo:
        evaluate(_input(commission, revenue), standard_registry)
    assert excinfo.value.status_code == 422


def test_evaluation_is_idempotent(standard_registry: RuleRegistry) -> None:
    data = _input(60_000, 95_000_000)

    first = evaluate(data, standard_registry)
    second = evaluate(data, standard_registry)

    assert first.same_outcome(second)


def test_evaluation_does_not_mutate_the_registry(standard_registry: RuleRegistry) -> None:
    before = standard_registry.snapshot()
    evaluate(_input(60_000, 95_000_000), standard_registry)
    assert standard_registry.snapshot() is before


def test_evaluate_many_uses_one_snapshot(standard_registry: RuleRegistry) -> None:
    inputs = [_input(60_000, 95_000_000), _input(60_000, 79_999_999), _input(1, 1, rate="3")]

    results = evaluate_many(inputs, standard_registry)

    assert [r.reason for r in results] == [
        EvaluationReason.ELIGIBLE,
        EvaluationReason.BELOW_BASE_REVENUE,
        EvaluationReason.NO_MATCHING_RATE_BAND,
    ]


def test_select_tier_below_first_threshold_is_none() -> None:
    tiers = make_rule(tiers=((10, "1"), (20, "2"))).tiers
    assert select_tier(tiers, 9) is None
    assert select_tier(tiers, 10) == 0
    assert select_tier(tiers, 10**12) == 1


def test_calculate_incentive_rounds_half_up() -> None:
    assert calculate_incentive(125, Decimal("0.4")) == 1  # 0.5 -> 1
    assert calculate_incentive(124, Decimal("0.4")) == 0  # 0.496 -> 0
    assert calculate_incentive(0, Decimal("1.5")) == 0


def test_default_bands_pick_the_high_commission_rule(registry: RuleRegistry) -> None:
    """An 8% account with 100M revenue lands in the top tier of the 8%+ band."""
    result = evaluate(_input(8_000_000, 100_000_000, rate="8"), registry)

    assert result.matched_rule_id == "high"
    assert result.matched_tier_index == 5
    assert result.incentive_amount == 1_500_000


@pytest.mark.parametrize(
    ("commission", "expected_rate", "expected_rule"),
    [
        (7_994_000, Decimal("7.99"), "standard"),
        (7_995_000, Decimal("8.00"), "high"),
        (7_999_999, Decimal("8.00"), "high"),
    ],
)
def test_derived_rate_between_default_bands_still_matches_one(
    registry: RuleRegistry, commission: int, expected_rate: Decimal, expected_rule: str,
) -> None:
    """Observed rates are rounded to the bands' two places, so 7.99..8 has no gap."""
    result = evaluate(_input(commission, 100_000_000, rate=None), registry)

    assert result.commission_rate == expected_rate
    assert result.matched_rule_id == expected_rule
    assert result.reason != EvaluationReason.NO_MATCHING_RATE_BAND
