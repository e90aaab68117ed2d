"""
Configuration error hierarchy for emailgate.

Exception Hierarchy
-------------------
ConfigError (base)
└── ConfigValidationError (missing or malformed settings)
"""

from typing import List, Optional


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     Config.validate()
    ... except ConfigError as e:
    ...     logger.critical(f"Cannot start: {e}")
    """


class ConfigValidationError(ConfigError):
    """
    Raised when configuration validation fails.

    Carries the names of missing required settings (if any) so the bootstrap
    can print an enumerated list before exiting.
    """

    def __init__(self, message: str, missing: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.missing: List[str] = list(missing or [])


__all__ = [
    "ConfigError",
    "ConfigValidationError",
]
