"""Database utilities and session management."""

from talkarchive.db.base import (
    Base,
    BaseModel,
    StrEnumType,
    String50,
    String100,
    String255,
    String500,
    String1000,
)
from talkarchive.db.session import (
    check_db_health,
    close_db,
    create_engine,
    create_session_factory,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "StrEnumType",
    # String types
    "String50",
    "String100",
    "String255",
    "String500",
    "String1000",
    # Engine and session lifecycle
    "create_engine",
    "create_session_factory",
    "init_db",
    "close_db",
    "check_db_health",
]
