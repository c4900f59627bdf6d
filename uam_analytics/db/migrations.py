"""Database migration dispatcher.

Routes migration calls to the schema runner for the connection type.
"""
from __future__ import annotations

import logging
from typing import Any

import aiosqlite

from uam_analytics.db import sqlite_migrations

logger = logging.getLogger("uam.db")


async def run_migrations(db: Any) -> None:
    """Run migrations on the provided database connection."""
    if isinstance(db, aiosqlite.Connection):
        logger.info("Running SQLite migrations...")
        await sqlite_migrations.run_migrations(db)
        return

    logger.warning("Unknown database connection type: %s", type(db))
