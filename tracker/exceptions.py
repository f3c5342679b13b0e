"""
Domain Exceptions.

Raised by the rule registry, the incentive engine and the aggregation
feed.  The service layer translates them into ``ServiceResult`` errors.
"""

from __future__ import annotations

from typing import Optional


class TrackerError(Exception):
    """Base class for all tracker domain errors."""

    status_code: int = 400

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class ValidationError(TrackerError):
    """A rule definition is malformed or overlaps an active rule."""

    status_code = 400


class NotFoundError(TrackerError):
    """An operation referenced an unknown id."""

    status_code = 404


class InvalidInputError(TrackerError):
    """A negative monetary aggregate was passed to evaluation."""

    status_code = 422
