"""
Shared Enumerations for tracker models.

StrEnum values compare equal to their string equivalents, so rows read
back from Supabase or SQLite can be compared directly.
"""

from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    """Dashboard roles.  Only ``SUPERADMIN`` may edit incentive rules."""

    USER = "user"
    SUPERADMIN = "superadmin"


class AccountStatus(StrEnum):
    """Affiliate account lifecycle states."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class PaymentStatus(StrEnum):
    """Payout handling flag stored in ``accounts.payment_data``.

    ``disetujui`` means the payout details are approved; ``utamakan``
    marks the account for priority payout.
    """

    PENDING = "pending"
    APPROVED = "disetujui"
    PRIORITISED = "utamakan"


class EvaluationReason(StrEnum):
    """Outcome of a single incentive evaluation."""

    ELIGIBLE = "eligible"
    BELOW_MINIMUM_COMMISSION = "below-minimum-commission"
    BELOW_BASE_REVENUE = "below-base-revenue"
    NO_MATCHING_RATE_BAND = "no-matching-rate-band"
