"""
Account and Category Models.

An account is one affiliate (worker) whose sales are tracked.  Accounts
are grouped into product categories.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from tracker.models.enums import AccountStatus, PaymentStatus


class Category(BaseModel):
    """A product category such as ``Electronics`` or ``Fashion``."""

    id: Optional[str] = None
    name: str = Field(min_length=1)
    description: str = ""
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("name", mode="before")
    @classmethod
    def _strip_whitespace(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v


class Account(BaseModel):
    """Represents an affiliate account.

    ``account_code`` is assigned by the account service (``AC001``,
    ``AC002``, ...).  ``commission_rate`` is the nominal rate agreed with
    the affiliate; when present it selects the incentive band instead of
    the rate derived from sales data.
    """

    id: Optional[str] = None
    username: str = Field(min_length=1)
    email: str = ""
    phone: str = ""
    status: AccountStatus = AccountStatus.ACTIVE
    payment_data: PaymentStatus = PaymentStatus.PENDING
    account_code: str = ""
    category_id: Optional[str] = None
    commission_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("username", "email", mode="before")
    @classmethod
    def _strip_whitespace(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v
