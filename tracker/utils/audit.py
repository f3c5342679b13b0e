"""
Structured Audit Logging Utility.

Every state change (rule edits, account changes, uploads, stored
evaluations) is written as a validated JSON audit line and, when a
SQLite connection is supplied, persisted to ``audit_log``.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Union

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from tracker.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event", "persist_audit_event"]

# Flat scalars only; nested structures belong in their own tables.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> AuditEvent:
    """Log a structured audit event, optionally persisting it to SQLite.

    Args:
        logger: Where the JSON line is written.
        action: What happened, e.g. ``"CREATE_RULE"``.
        entity_type: e.g. ``"IncentiveRule"``, ``"Account"``.
        entity_id: Primary key of the affected entity.
        user_id: Id of the acting user.
        details: Flat context such as old/new values.
        conn: When given, the event is also inserted into ``audit_log``.
            A failed insert is logged and does not fail the caller.
    """
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))

    if conn is not None:
        try:
            persist_audit_event(conn, event)
        except sqlite3.Error as db_err:
            logger.warning("Failed to persist audit event to SQLite: %s", db_err)
    return event


def persist_audit_event(conn: sqlite3.Connection, event: AuditEvent) -> None:
    """Insert a validated :class:`AuditEvent` into ``audit_log`` and commit."""
    conn.execute(
        """
        INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            event.timestamp,
            event.action,
            event.entity_type,
            event.entity_id,
            event.user_id,
            json.dumps(event.details, default=str),
        ),
    )
    conn.commit()
