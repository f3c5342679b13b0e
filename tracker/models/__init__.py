"""
Data Models Package.

Re-exports all Pydantic models:
    from tracker.models import IncentiveRule, IncentiveTier, EvaluationInput
    from tracker.models import Account, Category, SalesRecord, User
"""

from tracker.models.account import Account, Category
from tracker.models.enums import AccountStatus, EvaluationReason, PaymentStatus, UserRole
from tracker.models.evaluation import EvaluationInput, EvaluationResult
from tracker.models.incentive_rule import IncentiveRule, IncentiveTier
from tracker.models.sales_data import SalesRecord
from tracker.models.service_models import AccountPerformance, DashboardSummary, ServiceResult
from tracker.models.user import CurrentUser, User

__all__ = [
    "Account",
    "AccountPerformance",
    "AccountStatus",
    "Category",
    "CurrentUser",
    "DashboardSummary",
    "EvaluationInput",
    "EvaluationReason",
    "EvaluationResult",
    "IncentiveRule",
    "IncentiveTier",
    "PaymentStatus",
    "SalesRecord",
    "ServiceResult",
    "User",
    "UserRole",
]
