"""
Repository Layer Package.

Data-access abstractions over Supabase (cloud) and SQLite (local cache).
Services never touch ``db.supabase`` or ``db.sqlite`` directly.
"""

from tracker.repositories.account_repository import AccountRepository
from tracker.repositories.base_repository import BaseRepository
from tracker.repositories.category_repository import CategoryRepository
from tracker.repositories.evaluation_result_repository import EvaluationResultRepository
from tracker.repositories.incentive_rule_repository import IncentiveRuleRepository
from tracker.repositories.sales_data_repository import SalesDataRepository

__all__ = [
    "AccountRepository",
    "BaseRepository",
    "CategoryRepository",
    "EvaluationResultRepository",
    "IncentiveRuleRepository",
    "SalesDataRepository",
]
