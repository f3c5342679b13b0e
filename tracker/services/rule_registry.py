"""
Incentive Rule Registry.

In-memory holder of the active rule set.  Every mutation sorts and
validates the rule before it is stored:

- tiers are non-empty, strictly increasing in ``revenue_threshold`` and
  non-decreasing in ``incentive_rate``;
- ``commission_rate_min <= commission_rate_max``;
- an active rule's rate band does not overlap any other active band.

Writers are serialised by a lock and publish a fresh immutable tuple,
so a reader always sees either the whole edit or none of it.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from tracker.exceptions import NotFoundError, ValidationError
from tracker.logger import StructuredLogger
from tracker.models.incentive_rule import IncentiveRule, IncentiveTier

RuleLike = Union[IncentiveRule, Mapping[str, object]]

# Fields a caller may not overwrite through ``update``.
_IMMUTABLE_FIELDS: frozenset[str] = frozenset({"id", "created_at"})


def _coerce_rule(rule: RuleLike) -> IncentiveRule:
    """Build an ``IncentiveRule`` from a model or a mapping."""
    if isinstance(rule, IncentiveRule):
        return rule
    try:
        return IncentiveRule.model_validate(dict(rule))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid incentive rule: {exc}", original_error=exc) from exc


def _coerce_rate(rate: Union[Decimal, int, float, str]) -> Decimal:
    try:
        value = rate if isinstance(rate, Decimal) else Decimal(str(rate))
    except InvalidOperation as exc:
        raise ValidationError(f"Commission rate {rate!r} is not a number.") from exc
    if not value.is_finite():
        raise ValidationError(f"Commission rate {rate!r} is not finite.")
    return value


def normalize_rule(rule: IncentiveRule) -> IncentiveRule:
    """Return *rule* with tiers sorted by threshold, or raise ``ValidationError``."""
    if rule.commission_rate_min > rule.commission_rate_max:
        raise ValidationError(
            f"commission_rate_min ({rule.commission_rate_min}) is greater than "
            f"commission_rate_max ({rule.commission_rate_max})."
        )
    if not rule.tiers:
        raise ValidationError("An incentive rule needs at least one tier.")

    tiers: tuple[IncentiveTier, ...] = tuple(
        sorted(rule.tiers, key=lambda tier: tier.revenue_threshold)
    )
    for previous, current in zip(tiers, tiers[1:]):
        if current.revenue_threshold <= previous.revenue_threshold:
            raise ValidationError(
                f"Tier thresholds must be strictly increasing; "
                f"{current.revenue_threshold} is repeated."
            )
        if current.incentive_rate < previous.incentive_rate:
            raise ValidationError(
                f"Tier at threshold {current.revenue_threshold} pays "
                f"{current.incentive_rate}%, less than the "
                f"{previous.incentive_rate}% of the tier below it."
            )

    if tiers == rule.tiers:
        return rule
    return rule.model_copy(update={"tiers": tiers})


class RuleRegistry:
    """Validated, snapshot-consistent collection of incentive rules."""

    def __init__(
        self,
        rules: Iterable[RuleLike] = (),
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._rules: tuple[IncentiveRule, ...] = ()
        self._logger: Optional[StructuredLogger] = logger
        if rules:
            self.load(rules)

    # ------------------------------------------------------------------
    # Reads (lock-free: the tuple reference is swapped atomically)
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[IncentiveRule, ...]:
        """Return the current rule set as an immutable tuple."""
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[IncentiveRule]:
        return iter(self._rules)

    def get(self, rule_id: str) -> IncentiveRule:
        """Return the rule with *rule_id*.

        Raises:
            NotFoundError: If no rule has that id.
        """
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        raise NotFoundError(f"Incentive rule '{rule_id}' not found.")

    def list_rules(self, active_only: bool = False) -> list[IncentiveRule]:
        """Return rules in insertion order, optionally only the active ones."""
        return [rule for rule in self._rules if rule.is_active or not active_only]

    def find_by_commission_rate(
        self, rate: Union[Decimal, int, float, str],
    ) -> Optional[IncentiveRule]:
        """Return the active rule whose band contains *rate*, if any.

        Raises:
            ValidationError: If more than one active band contains *rate*.
        """
        value: Decimal = _coerce_rate(rate)
        matches: list[IncentiveRule] = [
            rule for rule in self._rules if rule.is_active and rule.covers(value)
        ]
        if len(matches) > 1:
            raise ValidationError(
                f"Commission rate {value}% matches {len(matches)} active rules: "
                f"{', '.join(str(rule.id) for rule in matches)}."
            )
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, rule: RuleLike) -> IncentiveRule:
        """Validate and store a new rule, assigning an id when it has none.

        Raises:
            ValidationError: On malformed tiers or bands, an overlapping
                active band, or a duplicate id.
        """
        candidate: IncentiveRule = normalize_rule(_coerce_rule(rule))
        with self._lock:
            rule_id: str = candidate.id or uuid.uuid4().hex
            if any(existing.id == rule_id for existing in self._rules):
                raise ValidationError(f"Incentive rule id '{rule_id}' already exists.")
            candidate = candidate.model_copy(update={"id": rule_id})
            self._check_overlap(candidate, self._rules)
            self._rules = (*self._rules, candidate)

        self._log("Incentive rule added: %s (%s)", rule_id, candidate.band_label())
        return candidate

    def update(self, rule_id: str, changes: RuleLike) -> IncentiveRule:
        """Merge *changes* into a stored rule and re-validate it.

        The rule is excluded from its own overlap check.

        Raises:
            NotFoundError: If *rule_id* is unknown.
            ValidationError: If the merged rule is invalid.
        """
        if isinstance(changes, IncentiveRule):
            updates: dict[str, object] = changes.model_dump(exclude_unset=True)
        else:
            updates = dict(changes)

        with self._lock:
            current: IncentiveRule = self.get(rule_id)
            data: dict[str, object] = current.model_dump()
            data.update(
                {key: value for key, value in updates.items() if key not in _IMMUTABLE_FIELDS}
            )
            data["updated_at"] = datetime.now(timezone.utc)

            candidate: IncentiveRule = normalize_rule(_coerce_rule(data))
            others = tuple(rule for rule in self._rules if rule.id != rule_id)
            self._check_overlap(candidate, others)
            self._rules = tuple(
                candidate if rule.id == rule_id else rule for rule in self._rules
            )

        self._log("Incentive rule updated: %s", rule_id)
        return candidate

    def remove(self, rule_id: str) -> IncentiveRule:
        """Drop a rule.  Stored evaluation results are not touched.

        Raises:
            NotFoundError: If *rule_id* is unknown.
        """
        with self._lock:
            removed: IncentiveRule = self.get(rule_id)
            self._rules = tuple(rule for rule in self._rules if rule.id != rule_id)

        self._log("Incentive rule removed: %s", rule_id)
        return removed

    def set_active(self, rule_id: str, active: bool) -> IncentiveRule:
        """Include or exclude a rule from evaluation.

        Activating re-runs the overlap check against the other active rules.
        """
        return self.update(rule_id, {"is_active": active})

    def load(self, rules: Iterable[RuleLike]) -> None:
        """Replace the whole rule set, validating every rule.

        The swap happens only if all rules pass; otherwise the current
        set is left untouched.
        """
        staged: list[IncentiveRule] = []
        for rule in rules:
            candidate = normalize_rule(_coerce_rule(rule))
            if candidate.id is None:
                candidate = candidate.model_copy(update={"id": uuid.uuid4().hex})
            if any(existing.id == candidate.id for existing in staged):
                raise ValidationError(f"Incentive rule id '{candidate.id}' appears twice.")
            self._check_overlap(candidate, staged)
            staged.append(candidate)

        with self._lock:
            self._rules = tuple(staged)
        self._log("Incentive rule set loaded: %d rule(s)", len(staged))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_overlap(candidate: IncentiveRule, others: Iterable[IncentiveRule]) -> None:
        if not candidate.is_active:
            return
        for other in others:
            if other.is_active and candidate.overlaps(other):
                raise ValidationError(
                    f"Rate band {candidate.band_label()} overlaps active rule "
                    f"'{other.name or other.id}' ({other.band_label()})."
                )

    def _log(self, msg: str, *args: object) -> None:
        if self._logger is not None:
            self._logger.info(msg, *args)
