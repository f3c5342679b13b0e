"""Shared utility functions for the tracker.

Convenience re-exports so consumers can import from ``tracker.utils``
directly.
"""

from tracker.utils.audit import AuditEvent, log_audit_event
from tracker.utils.general import convert_to_json_safe
from tracker.utils.string_helpers import normalize_keys, to_snake_case

__all__ = [
    "AuditEvent",
    "convert_to_json_safe",
    "log_audit_event",
    "normalize_keys",
    "to_snake_case",
]
