"""SQLite implementation of the session stores."""
from __future__ import annotations

from typing import Any

import aiosqlite

from uam_analytics.date_utils import db_now

# Columns a tracker payload may set on an extended session row.
ENHANCED_FIELDS = frozenset({
    "first_visit",
    "user_agent", "device_type", "browser", "os",
    "country", "city", "region", "language", "timezone",
    "screen_resolution", "viewport_size",
    "is_returning",
    "referrer", "traffic_source",
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "exit_intent_detected", "bot_detected", "suspicious_activity", "consent_given",
})
ENHANCED_COUNTERS = frozenset({"form_interactions", "social_shares"})


class SqliteSessionStore:
    """One mutable row per visitor session, updated as page views arrive."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self, session_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM user_sessions WHERE session_id = ?", (session_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def record_page_view(
        self,
        session_id: str,
        page_url: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        device_type: str | None = None,
        browser: str | None = None,
        os: str | None = None,
        now: str | None = None,
    ) -> None:
        """Create the session on its first view, otherwise count the view.

        A single statement, so concurrent first views for the same session
        cannot create duplicate rows or lose an increment.
        """
        ts = now or db_now()
        await self.db.execute(
            """INSERT INTO user_sessions (
                session_id, first_visit, last_activity, total_page_views,
                ip_address, user_agent, device_type, browser, os,
                is_bounce, entry_page, exit_page
            ) VALUES (?, ?, ?, 1, ?, ?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                last_activity=excluded.last_activity,
                total_page_views=user_sessions.total_page_views + 1,
                is_bounce=0,
                exit_page=excluded.exit_page,
                ip_address=COALESCE(excluded.ip_address, user_sessions.ip_address),
                user_agent=COALESCE(excluded.user_agent, user_sessions.user_agent),
                device_type=COALESCE(excluded.device_type, user_sessions.device_type),
                browser=COALESCE(excluded.browser, user_sessions.browser),
                os=COALESCE(excluded.os, user_sessions.os)
            """,
            (
                session_id, ts, ts,
                ip_address, user_agent, device_type, browser, os,
                page_url, page_url,
            ),
        )
        await self.db.commit()

    async def record_session_end(
        self, session_id: str, total_time_spent: float | None, *, now: str | None = None
    ) -> bool:
        """Store the tracker's cumulative time for a known session."""
        spent = max(0, int(round(total_time_spent or 0)))
        cursor = await self.db.execute(
            """UPDATE user_sessions
               SET total_time_spent = MAX(COALESCE(total_time_spent, 0), ?),
                   last_activity = ?
               WHERE session_id = ?""",
            (spent, now or db_now(), session_id),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def list_recent(self, limit: int = 50) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM user_sessions ORDER BY last_activity DESC LIMIT ?", (limit,)
        ) as cur:
            rows = await cur.fetchall()
            return [dict(r) for r in rows]


class SqliteEnhancedSessionStore:
    """Marketing, consent and engagement attributes keyed by session."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self, session_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM enhanced_sessions WHERE session_id = ?", (session_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def merge(
        self,
        session_id: str,
        fields: dict[str, Any] | None = None,
        increments: dict[str, int] | None = None,
        *,
        now: str | None = None,
    ) -> None:
        """Upsert attributes (last write wins) and bump counters in one statement."""
        fields = dict(fields or {})
        increments = dict(increments or {})
        unknown = (set(fields) - ENHANCED_FIELDS) | (set(increments) - ENHANCED_COUNTERS)
        if unknown:
            raise ValueError(f"Unknown enhanced session columns: {sorted(unknown)}")

        ts = now or db_now()
        columns = ["session_id", "last_activity", *fields.keys(), *increments.keys()]
        values: list[Any] = [session_id, ts, *fields.values(), *(int(v) for v in increments.values())]
        updates = ["last_activity=excluded.last_activity"]
        updates.extend(f"{column}=excluded.{column}" for column in fields)
        updates.extend(
            f"{column}=COALESCE(enhanced_sessions.{column}, 0) + excluded.{column}"
            for column in increments
        )

        placeholders = ", ".join("?" for _ in columns)
        await self.db.execute(
            f"""INSERT INTO enhanced_sessions ({", ".join(columns)})
                VALUES ({placeholders})
                ON CONFLICT(session_id) DO UPDATE SET {", ".join(updates)}""",
            values,
        )
        await self.db.commit()
