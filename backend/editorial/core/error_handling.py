"""
Error taxonomy for the editorial workflow.

Every failure raised by the workflow services is an ``ApplicationError``
carrying a category, a stable error code and a human-readable message.
Guards are evaluated before any mutation, so the records involved are left
untouched whenever one of these errors is raised. DOI deposit attempts are
the one exception: the failed attempt is recorded before the error is
reported.
"""

import logging
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import status

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    PRECONDITION_FAILED = "precondition_failed"
    EXTERNAL = "external"
    SYSTEM = "system"


class ErrorSeverity(str, Enum):
    """Decides the log level; CRITICAL errors also hide their details from clients."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def _detail(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


class ApplicationError(Exception):
    """
    Base workflow error.

    Subclasses pin ``error_code``, ``category`` and ``severity`` as class
    attributes. Keyword arguments other than ``cause``, ``details`` and
    ``error_code`` are folded into ``details`` so callers can attach the
    offending field, state or resource without building the dict themselves.
    """

    error_code = "APPLICATION_ERROR"
    category = ErrorCategory.SYSTEM
    severity = ErrorSeverity.HIGH

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
        **context: Any
    ):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.cause = cause
        self.details = dict(details or {})
        self.details.update({key: _detail(value) for key, value in context.items() if value is not None})
        self.error_id = uuid.uuid4().hex[:8]

        logger.log(
            _LOG_LEVELS[self.severity],
            f"{self.error_code} [{self.error_id}]: {message}",
            extra={
                "error_id": self.error_id,
                "error_code": self.error_code,
                "category": self.category.value,
                "details": self.details,
            },
            exc_info=cause,
        )


class NotFoundError(ApplicationError):
    """Entity id does not resolve."""
    error_code = "NOT_FOUND"
    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.LOW


class UnauthorizedError(ApplicationError):
    """Caller lacks the role or ownership required."""
    error_code = "UNAUTHORIZED"
    category = ErrorCategory.AUTHORIZATION
    severity = ErrorSeverity.MEDIUM


class ValidationError(ApplicationError):
    error_code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW


class PreconditionFailedError(ApplicationError):
    """A state machine guard was not met."""
    error_code = "PRECONDITION_FAILED"
    category = ErrorCategory.PRECONDITION_FAILED
    severity = ErrorSeverity.LOW


class AlreadyRespondedError(PreconditionFailedError):
    error_code = "ALREADY_RESPONDED"


class AlreadyCompletedError(PreconditionFailedError):
    error_code = "ALREADY_COMPLETED"


class ConflictError(ApplicationError):
    """Duplicate identifier or conflicting state."""
    error_code = "CONFLICT"
    category = ErrorCategory.CONFLICT
    severity = ErrorSeverity.LOW


class AlreadyPublishedError(ConflictError):
    error_code = "ALREADY_PUBLISHED"


class IssueLockedError(ConflictError):
    """Published issues cannot be modified."""
    error_code = "ISSUE_LOCKED"


class ExternalFailureError(ApplicationError):
    """Notifier, registrar or blob store call failed."""
    error_code = "EXTERNAL_FAILURE"
    category = ErrorCategory.EXTERNAL
    severity = ErrorSeverity.HIGH


STATUS_CODE_MAPPING = {
    ErrorCategory.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.PRECONDITION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.EXTERNAL: status.HTTP_502_BAD_GATEWAY,
}


def status_code_for(error: ApplicationError) -> int:
    return STATUS_CODE_MAPPING.get(error.category, status.HTTP_500_INTERNAL_SERVER_ERROR)
