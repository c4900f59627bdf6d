#!/usr/bin/env python3
"""Create or upgrade the collector database.

Usage:
  python -m uam_analytics.scripts.init_database
  python -m uam_analytics.scripts.init_database --db-path /var/lib/uam/analytics.db
"""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from uam_analytics import config
from uam_analytics.db import connection, migrations
from uam_analytics.db.sqlite_migrations import SCHEMA_VERSION


async def _run(db_path: Path | None) -> int:
    if db_path is not None:
        config.DB_PATH = db_path
    db = await connection.get_connection()
    try:
        await migrations.run_migrations(db)
        async with db.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ) as cur:
            tables = [row[0] for row in await cur.fetchall()]
    finally:
        await connection.close_connection()

    print(f"Database ready at {config.DB_PATH} (schema version {SCHEMA_VERSION})")
    for name in tables:
        print(f"  - {name}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialise the analytics database schema")
    parser.add_argument("--db-path", default="", help="Database file (default: UAM_DB_PATH)")
    args = parser.parse_args()
    return asyncio.run(_run(Path(args.db_path) if args.db_path else None))


if __name__ == "__main__":
    raise SystemExit(main())
