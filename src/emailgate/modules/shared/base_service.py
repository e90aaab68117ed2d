"""
Base Service Foundation

Common logging helpers for the domain services (session manager, guild
config). Services hold no Discord objects and raise domain exceptions from
`emailgate.modules.shared.exceptions`.
"""

from __future__ import annotations

from logging import Logger
from typing import Any


class BaseService:
    """
    Base class for domain services.

    Args:
        logger: Structured logger instance, usually `get_logger(__name__)`
    """

    def __init__(self, logger: Logger) -> None:
        self.log = logger

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(self, operation: str, error: BaseException, **context: Any) -> None:
        self.log.error(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                **context,
            },
        )
