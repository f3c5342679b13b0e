"""
Incentive Engine.

Pure functions that turn an account's aggregated performance into an
incentive payout.  No I/O and no side effects: the registry is only
read, never mutated.

Flat-tier model: the single matched tier's rate applies to the whole
period revenue.

    incentive = period_revenue * incentive_rate / 100

The result is rounded half-up to the smallest currency unit.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from tracker.exceptions import InvalidInputError
from tracker.logger import StructuredLogger
from tracker.models.enums import EvaluationReason
from tracker.models.evaluation import EvaluationInput, EvaluationResult
from tracker.models.incentive_rule import IncentiveTier
from tracker.services.rule_registry import RuleRegistry

_HUNDRED: Decimal = Decimal("100")
_UNIT: Decimal = Decimal("1")


def select_tier(tiers: Sequence[IncentiveTier], revenue: int) -> Optional[int]:
    """Index of the last tier whose threshold does not exceed *revenue*.

    *tiers* must be sorted ascending by threshold.  Revenue equal to a
    threshold reaches that tier.  Returns ``None`` below the first tier.
    """
    selected: Optional[int] = None
    for index, tier in enumerate(tiers):
        if tier.revenue_threshold <= revenue:
            selected = index
        else:
            break
    return selected


def calculate_incentive(revenue: int, incentive_rate: Decimal) -> int:
    """Apply a percentage rate to revenue, rounded to a whole currency unit."""
    amount: Decimal = Decimal(revenue) * incentive_rate / _HUNDRED
    return int(amount.quantize(_UNIT, rounding=ROUND_HALF_UP))


def evaluate(
    data: EvaluationInput,
    registry: RuleRegistry,
    logger: Optional[StructuredLogger] = None,
) -> EvaluationResult:
    """
    Evaluate one account's incentive for one period.

    Steps:
        1. Reject negative aggregates.
        2. Pick the active rule whose band contains the commission rate.
        3. Require the rule's minimum commission.
        4. Require the rule's base revenue.
        5. Take the highest tier reached and pay its rate on all revenue.

    Args:
        data: Aggregated commission and revenue for the account.
        registry: Rule set to evaluate against (read only).
        logger: Optional logger for ineligibility diagnostics.

    Returns:
        An ``EvaluationResult``.  Ineligibility is a normal result with a
        zero amount, never an exception.

    Raises:
        InvalidInputError: If revenue or commission is negative.
    """
    if data.period_revenue < 0 or data.period_commission < 0:
        raise InvalidInputError(
            f"Account {data.account_id}: period revenue ({data.period_revenue}) and "
            f"commission ({data.period_commission}) must not be negative."
        )

    rate: Decimal = data.effective_commission_rate()
    base = {
        "account_id": data.account_id,
        "period_commission": data.period_commission,
        "period_revenue": data.period_revenue,
        "commission_rate": rate,
        "period_start": data.period_start,
        "period_end": data.period_end,
    }

    rule = registry.find_by_commission_rate(rate)
    if rule is None:
        if logger is not None:
            logger.debug("Account %s: no active rule covers %s%%", data.account_id, rate)
        return EvaluationResult(reason=EvaluationReason.NO_MATCHING_RATE_BAND, **base)

    if data.period_commission < rule.min_commission_threshold:
        return EvaluationResult(
            matched_rule_id=rule.id,
            reason=EvaluationReason.BELOW_MINIMUM_COMMISSION,
            **base,
        )

    if data.period_revenue < rule.base_revenue_threshold:
        return EvaluationResult(
            matched_rule_id=rule.id,
            reason=EvaluationReason.BELOW_BASE_REVENUE,
            **base,
        )

    tier_index: Optional[int] = select_tier(rule.tiers, data.period_revenue)
    if tier_index is None:
        # Base threshold sits below the first tier and revenue is in the gap.
        return EvaluationResult(
            matched_rule_id=rule.id,
            reason=EvaluationReason.BELOW_BASE_REVENUE,
            **base,
        )

    tier: IncentiveTier = rule.tiers[tier_index]
    amount: int = calculate_incentive(data.period_revenue, tier.incentive_rate)
    if logger is not None:
        logger.debug(
            "Account %s: rule %s tier %d (%s%%) pays %d",
            data.account_id,
            rule.id,
            tier_index,
            tier.incentive_rate,
            amount,
        )
    return EvaluationResult(
        matched_rule_id=rule.id,
        matched_tier_index=tier_index,
        incentive_amount=amount,
        incentive_rate=tier.incentive_rate,
        reason=EvaluationReason.ELIGIBLE,
        **base,
    )


def evaluate_many(
    inputs: Iterable[EvaluationInput],
    registry: RuleRegistry,
    logger: Optional[StructuredLogger] = None,
) -> list[EvaluationResult]:
    """Evaluate several inputs against one consistent view of *registry*."""
    frozen = RuleRegistry(registry.snapshot())
    return [evaluate(item, frozen, logger=logger) for item in inputs]
