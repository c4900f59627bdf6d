"""Shared timestamp helpers.

Rows are stored with SQLite's ``CURRENT_TIMESTAMP`` layout
(``YYYY-MM-DD HH:MM:SS``, UTC) so ``DATE()`` grouping and string comparison
both work on the raw column.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_db_timestamp(value: datetime) -> str:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(DB_TIMESTAMP_FORMAT)


def db_now() -> str:
    return format_db_timestamp(utc_now())


def window_start(days: int, now: datetime | None = None) -> str:
    """Lower bound of a rolling ``days`` window ending at ``now``."""
    anchor = now or utc_now()
    return format_db_timestamp(anchor - timedelta(days=days))


def parse_client_timestamp(value: Any) -> str | None:
    """Normalize a client-supplied timestamp (epoch millis or ISO string)."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return format_db_timestamp(datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        token = value.strip()
        if token.isdigit():
            return parse_client_timestamp(int(token))
        try:
            return format_db_timestamp(datetime.fromisoformat(token.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None
