"""Repository package for database access."""

from .sessions import SqliteEnhancedSessionStore, SqliteSessionStore
from .events import SqliteEventRepository
from .analytics import SqliteAnalyticsRepository

__all__ = [
    "SqliteSessionStore",
    "SqliteEnhancedSessionStore",
    "SqliteEventRepository",
    "SqliteAnalyticsRepository",
]
