"""SQLite implementation of AnalyticsRepository.

Every query is read-only and filtered to rows at or after ``since`` (a
``YYYY-MM-DD HH:MM:SS`` UTC string). Session-shaped tables are windowed on
``first_visit`` for user_sessions and ``last_activity`` for enhanced_sessions.
"""
from __future__ import annotations

import logging
from typing import Any

import aiosqlite

logger = logging.getLogger("uam.db.analytics")


class SqliteAnalyticsRepository:
    """Grouped rollups over the raw event tables."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def _fetch_all(self, query: str, params: tuple[Any, ...]) -> list[dict]:
        async with self.db.execute(query, params) as cur:
            return [dict(row) for row in await cur.fetchall()]

    async def _fetch_one(self, query: str, params: tuple[Any, ...]) -> dict:
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
            return dict(row) if row else {}

    async def _scalar(self, query: str, params: tuple[Any, ...]) -> Any:
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
            return row[0] if row else None

    # ── Core metrics ───────────────────────────────────────────────

    async def overview(self, since: str, top_pages_limit: int = 10) -> dict[str, Any]:
        page_totals = await self._fetch_one(
            """
            SELECT COUNT(DISTINCT session_id) AS visitors, COUNT(*) AS views
            FROM page_views
            WHERE timestamp >= ?
            """,
            (since,),
        )
        session_totals = await self._fetch_one(
            """
            SELECT
                COUNT(*) AS sessions,
                AVG(CASE WHEN is_bounce THEN 1.0 ELSE 0.0 END) AS bounce_rate,
                AVG(total_time_spent) AS avg_duration
            FROM user_sessions
            WHERE first_visit >= ?
            """,
            (since,),
        )
        top_pages = await self._fetch_all(
            """
            SELECT page_url, COUNT(*) AS views
            FROM page_views
            WHERE timestamp >= ?
            GROUP BY page_url
            ORDER BY views DESC, page_url ASC
            LIMIT ?
            """,
            (since, top_pages_limit),
        )
        devices = await self._fetch_all(
            """
            SELECT device_type, COUNT(*) AS count
            FROM user_sessions
            WHERE first_visit >= ?
            GROUP BY device_type
            ORDER BY count DESC
            """,
            (since,),
        )
        browsers = await self._fetch_all(
            """
            SELECT browser, COUNT(*) AS count
            FROM user_sessions
            WHERE first_visit >= ?
            GROUP BY browser
            ORDER BY count DESC
            """,
            (since,),
        )
        return {
            "total_visitors": page_totals.get("visitors"),
            "total_page_views": page_totals.get("views"),
            "total_sessions": session_totals.get("sessions"),
            "bounce_rate": session_totals.get("bounce_rate"),
            "avg_session_duration": session_totals.get("avg_duration"),
            "top_pages": top_pages,
            "device_breakdown": devices,
            "browser_breakdown": browsers,
        }

    async def page_views_by_day(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                DATE(timestamp) AS date,
                COUNT(*) AS views,
                COUNT(DISTINCT session_id) AS unique_visitors
            FROM page_views
            WHERE timestamp >= ?
            GROUP BY DATE(timestamp)
            ORDER BY date DESC
            """,
            (since,),
        )

    async def event_counts(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT event_type, event_category, event_action, COUNT(*) AS count
            FROM events
            WHERE timestamp >= ?
            GROUP BY event_type, event_category, event_action
            ORDER BY count DESC
            """,
            (since,),
        )

    async def performance_averages(self, since: str) -> dict[str, Any]:
        return await self._fetch_one(
            """
            SELECT
                AVG(load_time) AS avg_load_time,
                AVG(dom_content_loaded) AS avg_dom_loaded,
                AVG(first_contentful_paint) AS avg_fcp,
                AVG(largest_contentful_paint) AS avg_lcp,
                AVG(first_input_delay) AS avg_fid,
                AVG(cumulative_layout_shift) AS avg_cls,
                AVG(time_to_interactive) AS avg_tti
            FROM performance_metrics
            WHERE timestamp >= ?
            """,
            (since,),
        )

    async def web_vitals_by_day(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                DATE(timestamp) AS date,
                AVG(largest_contentful_paint) AS avg_lcp,
                AVG(first_input_delay) AS avg_fid,
                AVG(cumulative_layout_shift) AS avg_cls
            FROM performance_metrics
            WHERE timestamp >= ?
            GROUP BY DATE(timestamp)
            ORDER BY date DESC
            """,
            (since,),
        )

    async def error_counts(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                error_type,
                error_message,
                COUNT(*) AS count,
                MAX(timestamp) AS last_occurrence
            FROM errors
            WHERE timestamp >= ?
            GROUP BY error_type, error_message
            ORDER BY count DESC
            """,
            (since,),
        )

    # ── Traffic & audience ─────────────────────────────────────────

    async def session_count(self, since: str) -> int:
        value = await self._scalar(
            "SELECT COUNT(DISTINCT session_id) FROM page_views WHERE timestamp >= ?",
            (since,),
        )
        return int(value or 0)

    async def traffic_sources(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT COALESCE(traffic_source, 'direct') AS source, COUNT(*) AS sessions
            FROM enhanced_sessions
            WHERE last_activity >= ?
            GROUP BY COALESCE(traffic_source, 'direct')
            ORDER BY sessions DESC
            """,
            (since,),
        )

    async def click_counts(self, since: str, limit: int = 20) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                COALESCE(event_label, event_category) AS element,
                COUNT(*) AS clicks,
                COUNT(DISTINCT session_id) AS sessions
            FROM events
            WHERE kind = 'click' AND timestamp >= ?
            GROUP BY COALESCE(event_label, event_category)
            ORDER BY clicks DESC
            LIMIT ?
            """,
            (since, limit),
        )

    async def scroll_depth_buckets(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            WITH depths AS (
                SELECT session_id, page_url, MAX(event_value) AS depth
                FROM events
                WHERE kind = 'scroll' AND timestamp >= ? AND event_value IS NOT NULL
                GROUP BY session_id, page_url
            )
            SELECT
                CASE
                    WHEN depth < 25 THEN '0-25'
                    WHEN depth < 50 THEN '25-50'
                    WHEN depth < 75 THEN '50-75'
                    ELSE '75-100'
                END AS bucket,
                COUNT(*) AS count
            FROM depths
            GROUP BY bucket
            ORDER BY bucket ASC
            """,
            (since,),
        )

    async def geographic(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT COALESCE(country, 'Unknown') AS country, COUNT(*) AS sessions
            FROM enhanced_sessions
            WHERE last_activity >= ?
            GROUP BY COALESCE(country, 'Unknown')
            ORDER BY sessions DESC
            """,
            (since,),
        )

    async def visitor_types(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                CASE WHEN is_returning THEN 'returning' ELSE 'new' END AS visitor_type,
                COUNT(*) AS sessions
            FROM enhanced_sessions
            WHERE last_activity >= ?
            GROUP BY visitor_type
            ORDER BY sessions DESC
            """,
            (since,),
        )

    async def screen_resolutions(self, since: str, limit: int = 20) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT screen_resolution, COUNT(DISTINCT session_id) AS sessions
            FROM page_views
            WHERE timestamp >= ? AND screen_resolution IS NOT NULL
            GROUP BY screen_resolution
            ORDER BY sessions DESC
            LIMIT ?
            """,
            (since, limit),
        )

    # ── Conversions & behavior ─────────────────────────────────────

    async def conversion_goals(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                event_label AS goal_name,
                event_category AS goal_type,
                COUNT(*) AS conversions,
                COUNT(DISTINCT session_id) AS sessions,
                COALESCE(SUM(event_value), 0) AS total_value
            FROM events
            WHERE kind = 'conversion' AND timestamp >= ?
            GROUP BY event_label, event_category
            ORDER BY conversions DESC
            """,
            (since,),
        )

    async def funnel_steps(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                COALESCE(event_category, 'default') AS funnel_name,
                CAST(event_value AS INTEGER) AS step,
                COUNT(DISTINCT session_id) AS sessions
            FROM events
            WHERE kind = 'navigation' AND timestamp >= ? AND event_value IS NOT NULL
            GROUP BY funnel_name, step
            ORDER BY funnel_name ASC, step ASC
            """,
            (since,),
        )

    async def heatmap(self, since: str, limit: int = 200) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                page_url,
                event_label AS element,
                event_category AS type,
                COUNT(*) AS interactions,
                AVG(json_extract(custom_data, '$.x')) AS avg_x,
                AVG(json_extract(custom_data, '$.y')) AS avg_y
            FROM events
            WHERE kind = 'heatmap' AND timestamp >= ?
            GROUP BY page_url, event_label, event_category
            ORDER BY interactions DESC
            LIMIT ?
            """,
            (since, limit),
        )

    async def form_analytics(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                event_category AS form_id,
                event_action AS action_type,
                COUNT(*) AS count,
                COUNT(DISTINCT session_id) AS sessions,
                AVG(event_value) AS avg_completion_time
            FROM events
            WHERE kind = 'form' AND timestamp >= ?
            GROUP BY event_category, event_action
            ORDER BY count DESC
            """,
            (since,),
        )

    async def user_journeys(self, since: str, limit: int = 20) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT entry_page, exit_page, COUNT(*) AS sessions
            FROM user_sessions
            WHERE first_visit >= ?
            GROUP BY entry_page, exit_page
            ORDER BY sessions DESC
            LIMIT ?
            """,
            (since, limit),
        )

    # ── Content ────────────────────────────────────────────────────

    async def content_performance(self, since: str, limit: int = 20) -> list[dict]:
        return await self._fetch_all(
            """
            WITH views AS (
                SELECT page_url, COUNT(*) AS views, COUNT(DISTINCT session_id) AS visitors
                FROM page_views
                WHERE timestamp >= ?
                GROUP BY page_url
            ),
            engagement AS (
                SELECT
                    page_url,
                    AVG(event_value) AS avg_time_on_page,
                    AVG(json_extract(custom_data, '$.scrollDepth')) AS avg_scroll_depth
                FROM events
                WHERE kind = 'engagement' AND timestamp >= ?
                GROUP BY page_url
            )
            SELECT
                v.page_url,
                v.views,
                v.visitors,
                e.avg_time_on_page,
                e.avg_scroll_depth
            FROM views v
            LEFT JOIN engagement e ON e.page_url = v.page_url
            ORDER BY v.views DESC
            LIMIT ?
            """,
            (since, since, limit),
        )

    async def exit_intents(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            WITH exits AS (
                SELECT page_url, COUNT(*) AS exits, AVG(event_value) AS avg_time_on_page
                FROM events
                WHERE kind = 'exit_intent' AND timestamp >= ?
                GROUP BY page_url
            ),
            views AS (
                SELECT page_url, COUNT(*) AS views
                FROM page_views
                WHERE timestamp >= ?
                GROUP BY page_url
            )
            SELECT x.page_url, x.exits, x.avg_time_on_page, COALESCE(v.views, 0) AS views
            FROM exits x
            LEFT JOIN views v ON v.page_url = x.page_url
            ORDER BY x.exits DESC
            """,
            (since, since),
        )

    async def media_engagement(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                event_category AS media_type,
                event_action AS engagement_type,
                COUNT(*) AS count,
                AVG(event_value) AS avg_value
            FROM events
            WHERE kind = 'media' AND timestamp >= ?
            GROUP BY event_category, event_action
            ORDER BY count DESC
            """,
            (since,),
        )

    # ── Marketing ──────────────────────────────────────────────────

    async def utm_campaigns(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT utm_source, utm_medium, utm_campaign, COUNT(*) AS sessions
            FROM enhanced_sessions
            WHERE last_activity >= ? AND utm_campaign IS NOT NULL
            GROUP BY utm_source, utm_medium, utm_campaign
            ORDER BY sessions DESC
            """,
            (since,),
        )

    async def search_keywords(self, since: str, limit: int = 20) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                event_label AS query,
                event_category AS type,
                COUNT(*) AS searches,
                SUM(CASE WHEN json_extract(custom_data, '$.clickedResult') IS NOT NULL THEN 1 ELSE 0 END) AS clicks
            FROM events
            WHERE kind = 'search' AND timestamp >= ?
            GROUP BY event_label, event_category
            ORDER BY searches DESC
            LIMIT ?
            """,
            (since, limit),
        )

    # ── Security & compliance ──────────────────────────────────────

    async def security_events(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                event_category AS event_type,
                event_action AS severity,
                COUNT(*) AS count,
                MAX(timestamp) AS last_seen
            FROM events
            WHERE kind = 'security' AND timestamp >= ?
            GROUP BY event_category, event_action
            ORDER BY count DESC
            """,
            (since,),
        )

    async def bot_detection(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                CASE WHEN bot_detected THEN 'bot' ELSE 'human' END AS label,
                COUNT(*) AS sessions
            FROM enhanced_sessions
            WHERE last_activity >= ?
            GROUP BY label
            ORDER BY sessions DESC
            """,
            (since,),
        )

    async def consent_states(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                CASE WHEN consent_given THEN 'granted' ELSE 'not_granted' END AS label,
                COUNT(*) AS sessions
            FROM enhanced_sessions
            WHERE last_activity >= ?
            GROUP BY label
            ORDER BY sessions DESC
            """,
            (since,),
        )

    # ── Advanced ───────────────────────────────────────────────────

    async def ai_insights(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT insight_type, insight_category, insight_data, confidence_score,
                   impact_score, recommendation, created_at
            FROM ai_insights
            WHERE created_at >= ? AND (expires_at IS NULL OR expires_at >= ?)
            ORDER BY impact_score DESC
            """,
            (since, since),
        )

    async def user_segments(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT event_label AS segment, COUNT(DISTINCT session_id) AS sessions
            FROM events
            WHERE kind = 'segment' AND timestamp >= ?
            GROUP BY event_label
            ORDER BY sessions DESC
            """,
            (since,),
        )

    async def churn_risk(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                COALESCE(event_label, 'unknown') AS risk,
                COUNT(DISTINCT session_id) AS sessions,
                AVG(event_value) AS avg_engagement_score
            FROM events
            WHERE kind = 'churn' AND timestamp >= ?
            GROUP BY COALESCE(event_label, 'unknown')
            ORDER BY sessions DESC
            """,
            (since,),
        )

    async def feature_usage(self, since: str) -> list[dict]:
        return await self._fetch_all(
            """
            SELECT
                event_label AS feature_name,
                event_category AS feature_category,
                COALESCE(SUM(event_value), 0) AS uses,
                COUNT(DISTINCT session_id) AS sessions
            FROM events
            WHERE kind = 'feature_usage' AND timestamp >= ?
            GROUP BY event_label, event_category
            ORDER BY uses DESC
            """,
            (since,),
        )
