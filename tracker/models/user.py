"""
User Model.

Mirrors the Supabase ``profiles`` table.  The authenticated user is
passed explicitly into every service method that mutates state so the
audit trail can record who acted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from tracker.models.enums import UserRole


class User(BaseModel):
    """Represents a dashboard operator."""

    id: str  # Supabase UUID
    email: str
    full_name: str = ""
    role: UserRole = UserRole.USER
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPERADMIN


# Alias used in service signatures for the acting user.
CurrentUser = User
