"""
Sales Data Model.

One row per account per day, as uploaded from the affiliate platform's
export.  ``gross_commission`` and ``total_purchases`` are integer
amounts in the smallest currency unit; ``total_purchases`` is the
revenue figure fed to incentive evaluation.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field


class SalesRecord(BaseModel):
    """Daily performance figures for one account."""

    id: Optional[str] = None
    account_id: str
    date: dt.date
    clicks: int = Field(default=0, ge=0)
    orders: int = Field(default=0, ge=0)
    gross_commission: int = Field(default=0, ge=0)
    products_sold: int = Field(default=0, ge=0)
    total_purchases: int = Field(default=0, ge=0)
    new_buyers: int = Field(default=0, ge=0)
    created_at: Optional[dt.datetime] = None

    model_config = {"from_attributes": True}
