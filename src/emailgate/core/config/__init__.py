"""
emailgate Configuration

Static, environment-driven configuration and its error types.
"""

from emailgate.core.config.config import Config
from emailgate.core.config.errors import ConfigError, ConfigValidationError

__all__ = [
    "Config",
    "ConfigError",
    "ConfigValidationError",
]
