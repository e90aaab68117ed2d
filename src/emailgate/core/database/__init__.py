from emailgate.core.database.base import Base
from emailgate.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "DatabaseService",
]
