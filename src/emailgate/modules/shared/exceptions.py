"""
Domain exceptions for emailgate.

Purpose
-------
Member-facing outcomes of the verification flow and of the settings
commands. Services raise these; the session manager turns them into exactly
one terminal DM and the cogs turn them into channel replies, both through
the template registry.

Exception Hierarchy
-------------------
EmailGateDomainException
├── ValidationError
└── VerificationError
    ├── SessionAlreadyActive
    ├── InsufficientPermissions
    ├── AlreadyVerified
    ├── ResponseTimeout
    ├── DomainNotAllowed
    ├── EmailDeliveryFailed
    ├── InvalidCode
    ├── RoleAssignmentFailed
    └── RoleCreationFailed
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from emailgate.core.exceptions import ErrorSeverity


class EmailGateDomainException(Exception):
    """
    Base exception for all domain-level errors.

    Args:
        message: Human-readable error message (operator-facing)
        details: Additional structured data, also used for template interpolation
        severity: Error severity level for logging handlers
        is_retryable: Whether the member may simply try again
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.INFO
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
        """Convert exception to dictionary for logging/serialization."""
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

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r})"
        )


class ValidationError(EmailGateDomainException):
    """
    Raised when a settings command receives an unusable value.

    Args:
        field: Name of the field that failed validation
        message: What is wrong with it
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(
            f"Validation failed for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code="VALIDATION_ERROR",
        )


# ============================================================================
# Verification outcomes
# ============================================================================


class VerificationError(EmailGateDomainException):
    """Base for every terminal outcome of a verification session."""

    def __init__(
        self,
        user_id: int,
        guild_id: Optional[int],
        message: str,
        details: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        self.user_id = user_id
        self.guild_id = guild_id
        merged = {"user_id": user_id, "guild_id": guild_id}
        merged.update(details or {})
        super().__init__(message, details=merged, **kwargs)


class SessionAlreadyActive(VerificationError):
    DEFAULT_SEVERITY = ErrorSeverity.DEBUG

    def __init__(self, user_id: int, guild_id: Optional[int] = None) -> None:
        super().__init__(
            user_id, guild_id, "Verification already in progress",
            error_code="SESSION_ALREADY_ACTIVE",
        )


class InsufficientPermissions(VerificationError):
    """The bot lacks Manage Roles / View Channel, or cannot see the guild."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(
        self, user_id: int, guild_id: Optional[int], missing: Sequence[str] = ()
    ) -> None:
        self.missing: List[str] = list(missing)
        super().__init__(
            user_id, guild_id, "Bot is missing required permissions",
            details={"missing": self.missing},
            error_code="INSUFFICIENT_PERMISSIONS",
        )


class AlreadyVerified(VerificationError):
    def __init__(self, user_id: int, guild_id: Optional[int]) -> None:
        super().__init__(
            user_id, guild_id, "Member already verified in this guild",
            error_code="ALREADY_VERIFIED",
        )


class ResponseTimeout(VerificationError):
    """
    The member did not answer in time.

    `phase` selects the wording: "email" while waiting for the address,
    "otp" once the code has been sent.
    """

    def __init__(self, user_id: int, guild_id: Optional[int], phase: str) -> None:
        self.phase = phase
        super().__init__(
            user_id, guild_id, f"Timed out waiting for {phase}",
            details={"phase": phase},
            is_retryable=True,
            error_code="RESPONSE_TIMEOUT",
        )


class DomainNotAllowed(VerificationError):
    def __init__(
        self,
        user_id: int,
        guild_id: Optional[int],
        domain: str,
        allowed: Sequence[str] = (),
    ) -> None:
        self.domain = domain
        self.allowed: List[str] = list(allowed)
        super().__init__(
            user_id, guild_id, f"Email domain '{domain}' is not allowed",
            details={
                "domain": domain,
                "allowed_domains": ", ".join(self.allowed) if self.allowed else "None configured",
            },
            error_code="DOMAIN_NOT_ALLOWED",
        )


class EmailDeliveryFailed(VerificationError):
    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, user_id: int, guild_id: Optional[int], email: str) -> None:
        self.email = email
        super().__init__(
            user_id, guild_id, "Verification email could not be sent",
            details={"email": email},
            error_code="EMAIL_DELIVERY_FAILED",
        )


class InvalidCode(VerificationError):
    def __init__(self, user_id: int, guild_id: Optional[int]) -> None:
        super().__init__(
            user_id, guild_id, "Submitted code did not match a live record",
            error_code="INVALID_CODE",
        )


class RoleAssignmentFailed(VerificationError):
    """
    The verified role could not be added.

    `reason` is one of "member_not_found", "hierarchy", "add_failed".
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(
        self, user_id: int, guild_id: Optional[int], role_name: str, reason: str
    ) -> None:
        self.role_name = role_name
        self.reason = reason
        super().__init__(
            user_id, guild_id, f"Could not assign role '{role_name}': {reason}",
            details={"role_name": role_name, "reason": reason},
            error_code="ROLE_ASSIGNMENT_FAILED",
        )


class RoleCreationFailed(VerificationError):
    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, user_id: int, guild_id: Optional[int], role_name: str) -> None:
        self.role_name = role_name
        super().__init__(
            user_id, guild_id, f"Could not create role '{role_name}'",
            details={"role_name": role_name},
            error_code="ROLE_CREATION_FAILED",
        )


__all__ = [
    "EmailGateDomainException",
    "ValidationError",
    "VerificationError",
    "SessionAlreadyActive",
    "InsufficientPermissions",
    "AlreadyVerified",
    "ResponseTimeout",
    "DomainNotAllowed",
    "EmailDeliveryFailed",
    "InvalidCode",
    "RoleAssignmentFailed",
    "RoleCreationFailed",
]
