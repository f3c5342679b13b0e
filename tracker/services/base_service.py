"""
Base Service Class.

Minimal base class standardizing the logger pattern for all services,
plus the translation of domain errors into ``ServiceResult`` envelopes.
Services extend this and add their own repository dependencies via __init__.
"""

from __future__ import annotations

from typing import Optional

from tracker.exceptions import TrackerError
from tracker.logger import StructuredLogger
from tracker.models.service_models import ServiceResult
from tracker.models.user import CurrentUser


class BaseService:
    """Base class for all service classes. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    @staticmethod
    def _forbidden_unless_super_admin(
        current_user: CurrentUser, action: str,
    ) -> Optional[ServiceResult]:
        """Return a 403 result when *current_user* may not perform *action*."""
        if current_user.is_super_admin:
            return None
        return ServiceResult(
            success=False,
            error=f"Permission denied. Only a superadmin can {action}.",
            status_code=403,
        )

    def _domain_error(self, exc: TrackerError, context: str) -> ServiceResult:
        """Wrap a domain error in a failed result carrying its status code."""
        self._logger.warning("%s: %s", context, exc.message)
        return ServiceResult(success=False, error=exc.message, status_code=exc.status_code)

    def _storage_error(self, exc: Exception, context: str) -> ServiceResult:
        """Wrap an unexpected persistence failure in a 500 result."""
        self._logger.error("%s: %s", context, exc, exc_info=True)
        return ServiceResult(
            success=False,
            error=f"Database error during {context.lower()}: {exc}",
            status_code=500,
        )
