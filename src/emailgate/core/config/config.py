"""
Static configuration management for emailgate.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. Values are read
once at startup; there is no database-backed or runtime-mutable configuration.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to all static configuration values
- Report every missing required setting so bootstrap can fail fast
- Track which values came from the environment versus defaults

Non-Responsibilities
--------------------
- Per-guild settings (stored in the guild_configs table)
- Secrets management (use environment variables)

Architecture Notes
------------------
- Singleton pattern via class methods (no instantiation)
- `missing_required()` is the single source of truth for the required list
- `validate()` raises ConfigValidationError naming every missing setting

Environment Variables
---------------------
Required:
- DISCORD_TOKEN: Bot authentication token
- DATABASE_URL: SQLAlchemy async URL (postgresql+asyncpg://...)
- SMTP_HOST, SMTP_USER, SMTP_PASS: only when MAIL_BACKEND=smtp

Optional (with defaults):
- MAIL_BACKEND: smtp | console (default: smtp)
- SMTP_PORT: SMTP port (default: 587)
- SMTP_SECURE: implicit TLS instead of STARTTLS (default: False)
- COMMAND_PREFIX: Command prefix (default: ".")
- PORT: Health endpoint port (default: 3000)
- EMAIL_RESPONSE_TIMEOUT_SECONDS: Wait for the email reply (default: 60)
- OTP_TTL_SECONDS: Code lifetime and record TTL (default: 600)

See individual attributes for the complete list.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from emailgate.core.config.errors import ConfigValidationError

# Load environment variables from .env file
load_dotenv()


# ============================================================================
# Configuration Metrics Tracker
# ============================================================================


class _ConfigLoadMetrics:
    """
    Internal metrics tracker for configuration loading.

    Tracks which configuration values came from environment variables
    versus defaults, and any validation errors encountered.
    """

    def __init__(self):
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}

    def record_env_load(self, key: str, from_env: bool, default: Any):
        """Record whether a config value came from environment."""
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str):
        """Record a validation error."""
        self.validation_errors[key] = error

    def get_summary(self) -> Dict[str, Any]:
        """Get configuration loading summary."""
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": sum(1 for v in self.env_vars_loaded.values() if v),
            "from_defaults": sum(1 for v in self.env_vars_loaded.values() if not v),
            "validation_errors": len(self.validation_errors),
            "defaults_used": list(self.defaults_used.keys()),
        }


# ============================================================================
# Main Configuration Class
# ============================================================================


class Config:
    """
    Centralized static configuration for the emailgate Discord bot.

    Usage
    -----
    >>> Config.load()
    >>> missing = Config.missing_required()
    >>> if missing:
    ...     raise SystemExit(1)
    >>> token = Config.DISCORD_TOKEN
    """

    _metrics: Optional[_ConfigLoadMetrics] = None
    _validated: bool = False

    # =========================================================================
    # Discord Configuration
    # =========================================================================

    DISCORD_TOKEN: str = ""
    COMMAND_PREFIX: str = "."

    # =========================================================================
    # Database Configuration
    # =========================================================================

    DATABASE_URL: str = ""
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False
    DATABASE_POOL_RECYCLE: int = 1800

    # =========================================================================
    # Mail Configuration
    # =========================================================================

    MAIL_BACKEND: str = "smtp"
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    MAIL_FROM_NAME: str = "Email Verification"

    # =========================================================================
    # HTTP Health Endpoint
    # =========================================================================

    PORT: int = 3000

    # =========================================================================
    # Environment Configuration
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOGS_DIR: Path = Path("logs")

    # =========================================================================
    # Verification Tunables
    # =========================================================================

    EMAIL_RESPONSE_TIMEOUT_SECONDS: int = 60
    OTP_TTL_SECONDS: int = 600
    SESSION_SWEEP_INTERVAL_SECONDS: int = 60
    EXTERNAL_CALL_TIMEOUT_SECONDS: int = 15
    DEFAULT_VERIFIED_ROLE: str = "Verified"
    VERIFIED_ROLE_COLOR: int = 0x00FF00

    # =========================================================================
    # Bot Metadata
    # =========================================================================

    BOT_NAME: str = "emailgate"
    BOT_VERSION: str = "1.0.0"
    BOT_DESCRIPTION: str = "Verifies member email addresses and grants a role"

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _init_metrics(cls):
        if cls._metrics is None:
            cls._metrics = _ConfigLoadMetrics()

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
        base: int = 10,
    ) -> int:
        """
        Safely parse integer from environment with validation.

        Out-of-range or malformed values fall back to the default and are
        recorded as validation errors. With `base=16` an optional `0x`
        prefix is accepted.

        Example
        -------
        >>> Config._safe_int("DATABASE_POOL_SIZE", 5, min_val=1, max_val=200)
        5
        """
        cls._init_metrics()

        raw_value = os.getenv(key)

        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        try:
            value = int(raw_value, base)
        except ValueError:
            error = f"{key}='{raw_value}' is not a valid integer, using default {default}"
            logging.warning(error)
            cls._metrics.record_validation_error(key, error)
            return default

        if min_val is not None and value < min_val:
            error = f"{key}={value} is below minimum {min_val}, using default {default}"
            logging.warning(error)
            cls._metrics.record_validation_error(key, error)
            return default

        if max_val is not None and value > max_val:
            error = f"{key}={value} exceeds maximum {max_val}, using default {default}"
            logging.warning(error)
            cls._metrics.record_validation_error(key, error)
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """
        Safely parse boolean from environment.

        Recognizes: true/false, yes/no, 1/0, on/off (case-insensitive).
        """
        cls._init_metrics()

        raw_value = os.getenv(key)

        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        normalized = raw_value.lower().strip()

        if normalized in {"true", "yes", "1", "on"}:
            value = True
        elif normalized in {"false", "no", "0", "off"}:
            value = False
        else:
            error = f"{key}='{raw_value}' is not a valid boolean, using default {default}"
            logging.warning(error)
            cls._metrics.record_validation_error(key, error)
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        """Safely get string from environment."""
        cls._init_metrics()

        value = os.getenv(key, default)
        cls._metrics.record_env_load(key, key in os.environ, default)
        return value

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """Load all configuration from environment variables."""
        cls._init_metrics()

        # Discord
        cls.DISCORD_TOKEN = cls._safe_str("DISCORD_TOKEN", "")
        cls.COMMAND_PREFIX = cls._safe_str("COMMAND_PREFIX", ".")

        # Database
        cls.DATABASE_URL = cls._safe_str("DATABASE_URL", "")
        cls.DATABASE_POOL_SIZE = cls._safe_int(
            "DATABASE_POOL_SIZE", 5, min_val=1, max_val=200
        )
        cls.DATABASE_MAX_OVERFLOW = cls._safe_int(
            "DATABASE_MAX_OVERFLOW", 10, min_val=0, max_val=200
        )
        cls.DATABASE_ECHO = cls._safe_bool("DATABASE_ECHO", False)
        cls.DATABASE_POOL_RECYCLE = cls._safe_int(
            "DATABASE_POOL_RECYCLE", 1800, min_val=60
        )

        # Mail
        cls.MAIL_BACKEND = cls._safe_str("MAIL_BACKEND", "smtp").lower()
        cls.SMTP_HOST = cls._safe_str("SMTP_HOST", "")
        cls.SMTP_PORT = cls._safe_int("SMTP_PORT", 587, min_val=1, max_val=65535)
        cls.SMTP_SECURE = cls._safe_bool("SMTP_SECURE", False)
        cls.SMTP_USER = cls._safe_str("SMTP_USER", "")
        cls.SMTP_PASS = cls._safe_str("SMTP_PASS", "")
        cls.MAIL_FROM_NAME = cls._safe_str("MAIL_FROM_NAME", "Email Verification")

        # Health endpoint
        cls.PORT = cls._safe_int("PORT", 3000, min_val=1, max_val=65535)

        # Environment
        cls.ENVIRONMENT = cls._safe_str("ENVIRONMENT", "development")
        cls.DEBUG = cls._safe_bool("DEBUG", False)
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO")
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)
        cls.LOGS_DIR = Path(cls._safe_str("LOGS_DIR", "logs"))

        # Verification tunables
        cls.EMAIL_RESPONSE_TIMEOUT_SECONDS = cls._safe_int(
            "EMAIL_RESPONSE_TIMEOUT_SECONDS", 60, min_val=5, max_val=900
        )
        cls.OTP_TTL_SECONDS = cls._safe_int(
            "OTP_TTL_SECONDS", 600, min_val=60, max_val=86400
        )
        cls.SESSION_SWEEP_INTERVAL_SECONDS = cls._safe_int(
            "SESSION_SWEEP_INTERVAL_SECONDS", 60, min_val=1, max_val=3600
        )
        cls.EXTERNAL_CALL_TIMEOUT_SECONDS = cls._safe_int(
            "EXTERNAL_CALL_TIMEOUT_SECONDS", 15, min_val=1, max_val=120
        )
        cls.DEFAULT_VERIFIED_ROLE = cls._safe_str("DEFAULT_VERIFIED_ROLE", "Verified")
        cls.VERIFIED_ROLE_COLOR = cls._safe_int(
            "VERIFIED_ROLE_COLOR", 0x00FF00, min_val=0, max_val=0xFFFFFF, base=16
        )

    @classmethod
    def required_keys(cls) -> List[str]:
        """Names of the settings that must be present for the bot to start."""
        keys = ["DISCORD_TOKEN", "DATABASE_URL"]
        if cls.MAIL_BACKEND == "smtp":
            keys.extend(["SMTP_HOST", "SMTP_USER", "SMTP_PASS"])
        return keys

    @classmethod
    def missing_required(cls) -> List[str]:
        """Return every required setting that is unset or empty."""
        return [key for key in cls.required_keys() if not getattr(cls, key, "")]

    @classmethod
    def validate(cls) -> None:
        """
        Load and validate configuration on startup.

        Raises
        ------
        ConfigValidationError
            If any required setting is missing, or the mail backend is unknown.
        """
        if cls._validated:
            return

        logger = logging.getLogger(__name__)
        cls.load()

        if cls.MAIL_BACKEND not in ("smtp", "console"):
            raise ConfigValidationError(
                f"MAIL_BACKEND must be 'smtp' or 'console', got '{cls.MAIL_BACKEND}'"
            )

        missing = cls.missing_required()
        if missing:
            raise ConfigValidationError(
                "Missing required environment variables: " + ", ".join(missing),
                missing=missing,
            )

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if cls.LOG_LEVEL.upper() not in valid_log_levels:
            logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
            cls.LOG_LEVEL = "INFO"

        if cls.is_production() and cls.MAIL_BACKEND == "console":
            logger.warning("Console mail backend enabled in production; no email will be sent")

        cls._validated = True

        if cls._metrics:
            logger.info(f"Configuration loaded: {cls._metrics.get_summary()}")
            if cls._metrics.validation_errors:
                logger.warning(f"Configuration warnings: {cls._metrics.validation_errors}")

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment."""
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def is_testing(cls) -> bool:
        """Check if running in testing environment."""
        return cls.ENVIRONMENT.lower() == "testing"

    # =========================================================================
    # Summary
    # =========================================================================

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Get non-sensitive configuration summary for debugging."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "mail_backend": cls.MAIL_BACKEND,
            "command_prefix": cls.COMMAND_PREFIX,
            "otp_ttl_seconds": cls.OTP_TTL_SECONDS,
            "email_response_timeout_seconds": cls.EMAIL_RESPONSE_TIMEOUT_SECONDS,
            "discord_token_set": bool(cls.DISCORD_TOKEN),
            "database_url_set": bool(cls.DATABASE_URL),
            "smtp_password_set": bool(cls.SMTP_PASS),
        }
