"""
Exception message template registry for emailgate.

Purpose
-------
Single source of truth for the text a member sees when something ends a
verification session or a settings command. No cog or service builds these
strings itself, and `str(exc)` (which is operator-facing) is never shown.

Design Notes
------------
Each template contains:
- title: Short title used when the message is rendered as an embed
- template: Message text with {placeholder} interpolation from `exc.details`
- variants: Optional alternative texts keyed by one detail field
- severity: ErrorSeverity level for visual styling

Lookup walks the exception's MRO, so a subclass without its own entry falls
back to its nearest registered ancestor.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from emailgate.core.exceptions import (
    EmailGateInfrastructureException,
    ErrorSeverity,
    ExternalServiceError,
)
from emailgate.modules.shared.exceptions import (
    AlreadyVerified,
    DomainNotAllowed,
    EmailDeliveryFailed,
    EmailGateDomainException,
    InsufficientPermissions,
    InvalidCode,
    ResponseTimeout,
    RoleAssignmentFailed,
    RoleCreationFailed,
    SessionAlreadyActive,
    ValidationError,
)

GENERIC_VERIFICATION_FAILURE = (
    "❌ Verification failed. Please use `.verify` to try again, "
    "or contact an administrator if this keeps happening."
)
GENERIC_ERROR = "❌ An error occurred. Please try again."


class ExceptionTemplate:
    """Template for formatting exception messages."""

    def __init__(
        self,
        title: str,
        template: str,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        variant_field: Optional[str] = None,
        variants: Optional[Dict[str, str]] = None,
    ):
        self.title = title
        self.template = template
        self.severity = severity
        self.variant_field = variant_field
        self.variants = variants or {}

    def render(self, exception: Exception) -> str:
        """Return the member-facing text for `exception`."""
        details: Dict[str, Any] = {}
        if isinstance(exception, (EmailGateDomainException, EmailGateInfrastructureException)):
            details = dict(exception.details)

        text = self.template
        if self.variant_field is not None:
            text = self.variants.get(str(details.get(self.variant_field)), text)

        try:
            return text.format(**details)
        except (KeyError, IndexError):
            return text

    def format(self, exception: Exception) -> Dict[str, Any]:
        """Structured form used by the embed builders."""
        return {
            "title": self.title,
            "description": self.render(exception),
            "severity": self.severity,
        }


# ============================================================================
# EXCEPTION TEMPLATE REGISTRY
# ============================================================================

EXCEPTION_TEMPLATES: Dict[type, ExceptionTemplate] = {
    SessionAlreadyActive: ExceptionTemplate(
        title="Verification In Progress",
        template="⏳ You already have an active verification process. Please complete it first.",
        severity=ErrorSeverity.DEBUG,
    ),
    InsufficientPermissions: ExceptionTemplate(
        title="Missing Permissions",
        template=(
            "❌ Bot is missing required permissions. Please contact an administrator to:\n"
            "1. Ensure bot role is ABOVE the verified role\n"
            "2. Enable 'Manage Roles' permission for the bot"
        ),
        severity=ErrorSeverity.WARNING,
    ),
    AlreadyVerified: ExceptionTemplate(
        title="Already Verified",
        template="✅ You are already verified in this server.",
        severity=ErrorSeverity.INFO,
    ),
    ResponseTimeout: ExceptionTemplate(
        title="Timed Out",
        template="⏰ Verification timed out. Please use `.verify` again.",
        severity=ErrorSeverity.INFO,
        variant_field="phase",
        variants={
            "email": "⏰ You took too long to respond. Please use `.verify` again.",
            "otp": "⏰ Verification timed out. Please use `.verify` again.",
        },
    ),
    DomainNotAllowed: ExceptionTemplate(
        title="Domain Not Allowed",
        template="❌ The email domain is not allowed. Allowed domains: {allowed_domains}",
        severity=ErrorSeverity.INFO,
    ),
    EmailDeliveryFailed: ExceptionTemplate(
        title="Email Not Sent",
        template="❌ Failed to send verification email. Please try again later.",
        severity=ErrorSeverity.WARNING,
    ),
    InvalidCode: ExceptionTemplate(
        title="Verification Failed",
        template=GENERIC_VERIFICATION_FAILURE,
        severity=ErrorSeverity.INFO,
    ),
    RoleAssignmentFailed: ExceptionTemplate(
        title="Verification Failed",
        template=GENERIC_VERIFICATION_FAILURE,
        severity=ErrorSeverity.WARNING,
    ),
    RoleCreationFailed: ExceptionTemplate(
        title="Verification Failed",
        template=GENERIC_VERIFICATION_FAILURE,
        severity=ErrorSeverity.WARNING,
    ),
    ValidationError: ExceptionTemplate(
        title="Invalid Input",
        template="❌ **{field}**: {validation_message}",
        severity=ErrorSeverity.INFO,
    ),
    ExternalServiceError: ExceptionTemplate(
        title="Something Went Wrong",
        template=GENERIC_ERROR,
        severity=ErrorSeverity.ERROR,
    ),
}

_FALLBACK_TEMPLATE = ExceptionTemplate(
    title="Something Went Wrong",
    template=GENERIC_ERROR,
    severity=ErrorSeverity.ERROR,
)


def get_exception_template(exception: Exception) -> ExceptionTemplate:
    """
    Get the template for an exception, walking its class hierarchy.

    Unknown exception types get the generic error template.
    """
    for cls in type(exception).__mro__:
        template = EXCEPTION_TEMPLATES.get(cls)
        if template is not None:
            return template
    return _FALLBACK_TEMPLATE


def user_message(exception: Exception) -> str:
    """Member-facing text for an exception."""
    return get_exception_template(exception).render(exception)
