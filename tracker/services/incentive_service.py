"""
Incentive Rule Service.

Administrative surface over the in-memory ``RuleRegistry``.  Every write
is validated by the registry first, then persisted through
``IncentiveRuleRepository`` and recorded in the audit trail.  If the
save fails the registry is restored to its previous snapshot, so the
evaluator never sees a rule that storage does not hold.

Reads are open to every user; writes require a superadmin.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Optional

from tracker.config import AppConfig
from tracker.exceptions import TrackerError
from tracker.logger import StructuredLogger
from tracker.models.incentive_rule import IncentiveRule
from tracker.models.service_models import ServiceResult
from tracker.models.user import CurrentUser
from tracker.repositories.incentive_rule_repository import IncentiveRuleRepository
from tracker.services.base_service import BaseService
from tracker.services.default_rules import default_rules
from tracker.services.rule_registry import RuleLike, RuleRegistry
from tracker.utils.audit import log_audit_event

_ENTITY = "IncentiveRule"


class IncentiveRuleService(BaseService):
    """Loads, seeds and edits the incentive rule set."""

    def __init__(
        self,
        registry: RuleRegistry,
        repo: IncentiveRuleRepository,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._registry = registry
        self._repo = repo
        self._config = config

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def load_rules(self) -> ServiceResult:
        """Fill the registry from storage, seeding defaults when empty.

        Stored rules that fail validation leave the registry untouched and
        are reported as a 400 so the operator can fix the data.
        """
        try:
            stored: list[IncentiveRule] = self._repo.get_all()
        except Exception as exc:
            return self._storage_error(exc, "Loading incentive rules")

        if not stored and self._config.SEED_DEFAULT_RULES:
            return self._seed_defaults()

        try:
            self._registry.load(stored)
        except TrackerError as exc:
            return self._domain_error(exc, "Stored incentive rules are invalid")
        return ServiceResult(success=True, data=self._dump(self._registry.list_rules()))

    def _seed_defaults(self) -> ServiceResult:
        """Add and save each default rule; any failure undoes the whole seed.

        Rules already written before the failure are deleted again so the
        next startup finds empty storage and seeds from scratch.
        """
        previous = self._registry.snapshot()
        seeded: list[IncentiveRule] = []
        try:
            for rule in default_rules():
                added = self._registry.add(rule)
                seeded.append(self._repo.save(added))
        except TrackerError as exc:
            self._undo_seed(previous, seeded)
            return self._domain_error(exc, "Seeding default incentive rules")
        except Exception as exc:
            self._undo_seed(previous, seeded)
            return self._storage_error(exc, "Seeding default incentive rules")

        self._logger.info("Seeded %d default incentive rule(s)", len(seeded))
        return ServiceResult(success=True, data=self._dump(seeded), status_code=201)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_rules(self, active_only: bool = False) -> ServiceResult:
        """List rules in insertion order."""
        return ServiceResult(
            success=True,
            data=self._dump(self._registry.list_rules(active_only=active_only)),
        )

    def get_rule(self, rule_id: str) -> ServiceResult:
        try:
            rule = self._registry.get(rule_id)
        except TrackerError as exc:
            return self._domain_error(exc, "Fetching incentive rule")
        return ServiceResult(success=True, data=rule.model_dump())

    # ------------------------------------------------------------------
    # Writes (superadmin only)
    # ------------------------------------------------------------------

    def add_rule(self, rule: RuleLike, current_user: CurrentUser) -> ServiceResult:
        """Validate, store and persist a new rule."""
        denied = self._forbidden_unless_super_admin(current_user, "add incentive rules")
        if denied:
            return denied

        previous = self._registry.snapshot()
        try:
            added: IncentiveRule = self._registry.add(rule)
        except TrackerError as exc:
            return self._domain_error(exc, "Rejected incentive rule")

        saved = self._persist(added, previous, "Saving incentive rule")
        if isinstance(saved, ServiceResult):
            return saved

        self._audit("CREATE_RULE", saved, current_user)
        return ServiceResult(success=True, data=saved.model_dump(), status_code=201)

    def update_rule(
        self,
        rule_id: str,
        changes: RuleLike,
        current_user: CurrentUser,
    ) -> ServiceResult:
        """Merge *changes* into a rule, re-validate and persist it."""
        denied = self._forbidden_unless_super_admin(current_user, "edit incentive rules")
        if denied:
            return denied

        previous = self._registry.snapshot()
        try:
            updated: IncentiveRule = self._registry.update(rule_id, changes)
        except TrackerError as exc:
            return self._domain_error(exc, "Rejected incentive rule update")

        saved = self._persist(updated, previous, "Updating incentive rule")
        if isinstance(saved, ServiceResult):
            return saved

        changed = sorted(changes) if isinstance(changes, Mapping) else []
        self._audit("UPDATE_RULE", saved, current_user, {"fields": ", ".join(changed)})
        return ServiceResult(success=True, data=saved.model_dump())

    def set_rule_active(
        self,
        rule_id: str,
        active: bool,
        current_user: CurrentUser,
    ) -> ServiceResult:
        """Include a rule in, or exclude it from, evaluation."""
        denied = self._forbidden_unless_super_admin(current_user, "toggle incentive rules")
        if denied:
            return denied

        previous = self._registry.snapshot()
        try:
            updated: IncentiveRule = self._registry.set_active(rule_id, active)
        except TrackerError as exc:
            return self._domain_error(exc, "Rejected incentive rule toggle")

        saved = self._persist(updated, previous, "Toggling incentive rule")
        if isinstance(saved, ServiceResult):
            return saved

        self._audit(
            "ACTIVATE_RULE" if active else "DEACTIVATE_RULE", saved, current_user,
        )
        return ServiceResult(success=True, data=saved.model_dump())

    def remove_rule(self, rule_id: str, current_user: CurrentUser) -> ServiceResult:
        """Delete a rule.  Stored evaluation results keep referencing its id."""
        denied = self._forbidden_unless_super_admin(current_user, "remove incentive rules")
        if denied:
            return denied

        previous = self._registry.snapshot()
        try:
            removed: IncentiveRule = self._registry.remove(rule_id)
        except TrackerError as exc:
            return self._domain_error(exc, "Removing incentive rule")

        try:
            self._repo.delete(rule_id)
        except Exception as exc:
            self._registry.load(previous)
            return self._storage_error(exc, "Deleting incentive rule")

        self._audit("DELETE_RULE", removed, current_user)
        return ServiceResult(success=True, data=removed.model_dump())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _undo_seed(
        self,
        previous: tuple[IncentiveRule, ...],
        seeded: list[IncentiveRule],
    ) -> None:
        self._registry.load(previous)
        for rule in seeded:
            try:
                self._repo.delete(str(rule.id))
            except Exception as exc:
                self._logger.warning("Could not remove seeded rule %s: %s", rule.id, exc)

    def _persist(
        self,
        rule: IncentiveRule,
        previous: tuple[IncentiveRule, ...],
        context: str,
    ) -> IncentiveRule | ServiceResult:
        """Save *rule*; on failure restore *previous* and return the error."""
        try:
            return self._repo.save(rule)
        except Exception as exc:
            self._registry.load(previous)
            return self._storage_error(exc, context)

    def _audit(
        self,
        action: str,
        rule: IncentiveRule,
        current_user: CurrentUser,
        extra: Optional[dict[str, str]] = None,
    ) -> None:
        details: dict[str, str | bool] = {
            "name": rule.name,
            "band": rule.band_label(),
            "is_active": rule.is_active,
        }
        if extra:
            details.update(extra)
        log_audit_event(
            logger=self._logger,
            action=action,
            entity_type=_ENTITY,
            entity_id=str(rule.id),
            user_id=current_user.id,
            details=details,
            conn=self._repo.sqlite,
        )

    @staticmethod
    def _dump(rules: list[IncentiveRule]) -> list[dict[str, object]]:
        return [rule.model_dump() for rule in rules]
