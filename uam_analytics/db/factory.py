"""Repository factory keyed on the connection type."""
from __future__ import annotations

from typing import Any

import aiosqlite

from uam_analytics.db.repositories.analytics import SqliteAnalyticsRepository
from uam_analytics.db.repositories.events import SqliteEventRepository
from uam_analytics.db.repositories.sessions import (
    SqliteEnhancedSessionStore,
    SqliteSessionStore,
)


def _unsupported(db: Any) -> TypeError:
    return TypeError(f"Unsupported database connection: {type(db).__name__}")


def get_session_store(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteSessionStore(db)
    raise _unsupported(db)


def get_enhanced_session_store(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteEnhancedSessionStore(db)
    raise _unsupported(db)


def get_event_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteEventRepository(db)
    raise _unsupported(db)


def get_analytics_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteAnalyticsRepository(db)
    raise _unsupported(db)
