"""
Infrastructure exceptions for emailgate.

Purpose
-------
Structured exceptions for engineering-level failures: the database, the mail
relay and the Discord gateway misbehaving or not answering in time. These are
never caused by the member; cogs render them with a generic "try again"
message from the template registry.

Design Notes
------------
- All infrastructure exceptions inherit from `EmailGateInfrastructureException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and `error_code`, and serializes with `to_dict()` for structured logs.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"
    INFO = "info"  # Expected member-facing outcome (wrong code, bad domain)
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class EmailGateInfrastructureException(Exception):
    """
    Base exception for all infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        suffix = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{suffix}"


class DatabaseError(EmailGateInfrastructureException):
    """
    Raised when a database operation fails.

    Args:
        operation: Name of the operation that failed (e.g. "create_schema")
        original_error: The underlying driver or SQLAlchemy exception
    """

    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Optional[Exception] = None) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Database operation '{operation}' failed",
            details={
                "operation": operation,
                "original_error": repr(original_error) if original_error else None,
            },
            error_code="DATABASE_ERROR",
        )


class ExternalServiceError(EmailGateInfrastructureException):
    """
    Raised when a collaborator (store, mailer, chat platform) fails or does
    not answer within the external call timeout.

    Terminal for the verification session that hit it.

    Args:
        service: Collaborator name ("store", "mailer", "platform")
        operation: Method that was being called
        timed_out: True when the call exceeded its deadline
        original_error: The underlying exception, if any
    """

    def __init__(
        self,
        service: str,
        operation: str,
        *,
        timed_out: bool = False,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.service = service
        self.operation = operation
        self.timed_out = timed_out
        self.original_error = original_error
        reason = "timed out" if timed_out else "failed"
        super().__init__(
            f"{service}.{operation} {reason}",
            details={
                "service": service,
                "operation": operation,
                "timed_out": timed_out,
                "original_error": repr(original_error) if original_error else None,
            },
            severity=ErrorSeverity.WARNING if timed_out else ErrorSeverity.ERROR,
            error_code="EXTERNAL_SERVICE_ERROR",
        )


__all__ = [
    "ErrorSeverity",
    "EmailGateInfrastructureException",
    "DatabaseError",
    "ExternalServiceError",
]
