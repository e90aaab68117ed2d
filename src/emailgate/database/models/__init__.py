"""
Database Models Package

SQLAlchemy ORM models for emailgate. Schema only, no business logic; the
verification store owns every query and the TTL rules.
"""

from emailgate.core.database.base import Base

from .guild_config import DEFAULT_ROLE_NAME, GuildConfig
from .verification_record import VerificationRecord

__all__ = [
    "Base",
    "DEFAULT_ROLE_NAME",
    "GuildConfig",
    "VerificationRecord",
]
