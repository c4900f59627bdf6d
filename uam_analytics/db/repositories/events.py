"""SQLite implementation of the append-only event tables."""
from __future__ import annotations

import json
from typing import Any

import aiosqlite

from uam_analytics.date_utils import db_now
from uam_analytics.ingest import EventRow
from uam_analytics.models import ErrorPayload, PageViewPayload, PerformancePayload


def _dump_json(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _whole_ms(value: float | None) -> int | None:
    """Round a browser timing (fractional milliseconds) for an INTEGER column."""
    if value is None:
        return None
    return int(round(value))


class SqliteEventRepository:
    """Inserts into page_views, events, performance_metrics and errors."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def insert_page_view(
        self,
        payload: PageViewPayload,
        *,
        ip_address: str | None = None,
        now: str | None = None,
    ) -> int:
        async with self.db.execute(
            """INSERT INTO page_views (
                session_id, page_url, page_title, referrer, user_agent, ip_address,
                timestamp, time_on_page, scroll_depth, device_type, browser, os,
                screen_resolution, viewport_size
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                payload.sessionId, payload.pageUrl, payload.pageTitle,
                payload.referrer, payload.userAgent, ip_address,
                now or db_now(),
                _whole_ms(payload.timeOnPage), payload.scrollDepth,
                payload.deviceType, payload.browser, payload.os,
                payload.screenResolution, payload.viewportSize,
            ),
        ) as cursor:
            await self.db.commit()
            return cursor.lastrowid

    async def _execute_event(self, row: EventRow, ip_address: str | None) -> int:
        async with self.db.execute(
            """INSERT INTO events (
                session_id, kind, event_type, event_category, event_action,
                event_label, event_value, page_url, timestamp, custom_data, ip_address
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                row.session_id, row.kind, row.event_type,
                row.event_category, row.event_action, row.event_label,
                row.event_value, row.page_url,
                row.timestamp or db_now(),
                _dump_json(row.custom_data),
                ip_address,
            ),
        ) as cursor:
            return cursor.lastrowid

    async def insert_event(self, row: EventRow, *, ip_address: str | None = None) -> int:
        event_id = await self._execute_event(row, ip_address)
        await self.db.commit()
        return event_id

    async def insert_events(self, rows: list[EventRow], *, ip_address: str | None = None) -> int:
        """Insert a batch of rows with a single commit. Returns the row count."""
        for row in rows:
            await self._execute_event(row, ip_address)
        if rows:
            await self.db.commit()
        return len(rows)

    async def insert_performance(
        self,
        payload: PerformancePayload,
        *,
        now: str | None = None,
    ) -> int:
        async with self.db.execute(
            """INSERT INTO performance_metrics (
                session_id, page_url, load_time, dom_content_loaded,
                first_contentful_paint, largest_contentful_paint, first_input_delay,
                cumulative_layout_shift, time_to_interactive, timestamp,
                connection_type, device_memory
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                payload.sessionId, payload.pageUrl,
                _whole_ms(payload.loadTime), _whole_ms(payload.domContentLoaded),
                _whole_ms(payload.firstContentfulPaint), _whole_ms(payload.largestContentfulPaint),
                _whole_ms(payload.firstInputDelay), payload.cumulativeLayoutShift,
                _whole_ms(payload.timeToInteractive),
                now or db_now(),
                payload.connectionType, payload.deviceMemory,
            ),
        ) as cursor:
            await self.db.commit()
            return cursor.lastrowid

    async def insert_error(
        self,
        payload: ErrorPayload,
        *,
        ip_address: str | None = None,
        now: str | None = None,
    ) -> int:
        async with self.db.execute(
            """INSERT INTO errors (
                session_id, error_type, error_message, error_stack, page_url,
                timestamp, user_agent, ip_address
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                payload.sessionId, payload.errorType, payload.errorMessage,
                payload.errorStack, payload.pageUrl,
                now or db_now(),
                payload.userAgent, ip_address,
            ),
        ) as cursor:
            await self.db.commit()
            return cursor.lastrowid
