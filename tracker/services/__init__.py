"""
Business Logic Services Package.

Services depend on the Repository layer for data access and receive the
acting user explicitly.  The rule registry and incentive engine are the
pure core; everything else orchestrates I/O around them.

The ``create_services()`` factory wires every repository and service
together, returning a typed dict that the application layer can consume
without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import TypedDict

from tracker.config import AppConfig
from tracker.database import DatabaseManager
from tracker.logger import get_logger
from tracker.repositories.account_repository import AccountRepository
from tracker.repositories.category_repository import CategoryRepository
from tracker.repositories.evaluation_result_repository import EvaluationResultRepository
from tracker.repositories.incentive_rule_repository import IncentiveRuleRepository
from tracker.repositories.sales_data_repository import SalesDataRepository
from tracker.services.account_service import AccountService
from tracker.services.evaluation_service import EvaluationService
from tracker.services.incentive_service import IncentiveRuleService
from tracker.services.report_service import ReportService
from tracker.services.rule_registry import RuleRegistry
from tracker.services.sales_data_service import SalesDataService
from tracker.services.sync_service import SyncService


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    rule_registry: RuleRegistry
    incentive_rule_service: IncentiveRuleService
    evaluation_service: EvaluationService
    account_service: AccountService
    sales_data_service: SalesDataService
    report_service: ReportService
    sync_service: SyncService


def create_services(db: DatabaseManager, config: AppConfig) -> ServiceContainer:
    """
    Wire all repositories and services together.

    The registry starts empty; call
    ``container["incentive_rule_service"].load_rules()`` once to fill it
    from storage (seeding the defaults when storage is empty).

    Args:
        db: Initialised DatabaseManager with the schema in place.
        config: Application configuration.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services")

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    rule_repo = IncentiveRuleRepository(db=db, logger=logger)
    account_repo = AccountRepository(db=db, logger=logger)
    category_repo = CategoryRepository(db=db, logger=logger)
    sales_repo = SalesDataRepository(db=db, logger=logger)
    result_repo = EvaluationResultRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Shared in-memory rule set
    # ------------------------------------------------------------------
    registry = RuleRegistry(logger=logger)

    # ------------------------------------------------------------------
    # 3. Services
    # ------------------------------------------------------------------
    return ServiceContainer(
        rule_registry=registry,
        incentive_rule_service=IncentiveRuleService(
            registry=registry, repo=rule_repo, config=config, logger=logger,
        ),
        evaluation_service=EvaluationService(
            registry=registry,
            account_repo=account_repo,
            sales_repo=sales_repo,
            result_repo=result_repo,
            logger=logger,
        ),
        account_service=AccountService(
            account_repo=account_repo,
            category_repo=category_repo,
            sales_repo=sales_repo,
            logger=logger,
        ),
        sales_data_service=SalesDataService(
            sales_repo=sales_repo, account_repo=account_repo, logger=logger,
        ),
        sync_service=SyncService(db=db, logger=logger),
        report_service=ReportService(
            account_repo=account_repo, sales_repo=sales_repo, config=config, logger=logger,
        ),
    )
