import unittest
from datetime import datetime, timezone

import aiosqlite

from uam_analytics.db.repositories.analytics import SqliteAnalyticsRepository
from uam_analytics.db.repositories.events import SqliteEventRepository
from uam_analytics.db.repositories.sessions import SqliteEnhancedSessionStore, SqliteSessionStore
from uam_analytics.db.sqlite_migrations import run_migrations
from uam_analytics.errors import NotFoundError, StorageError
from uam_analytics.ingest import EventRow
from uam_analytics.models import PageViewPayload, PerformancePayload
from uam_analytics.services import rollups

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


class ResolvePeriodTests(unittest.TestCase):
    def test_known_periods(self) -> None:
        self.assertEqual(rollups.resolve_period("1d"), ("1d", 1))
        self.assertEqual(rollups.resolve_period("30d"), ("30d", 30))
        self.assertEqual(rollups.resolve_period("90D"), ("90d", 90))

    def test_unknown_or_missing_period_falls_back_to_a_week(self) -> None:
        self.assertEqual(rollups.resolve_period("13d"), ("7d", 7))
        self.assertEqual(rollups.resolve_period(""), ("7d", 7))
        self.assertEqual(rollups.resolve_period(None), ("7d", 7))


class RollupTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.events = SqliteEventRepository(self.db)
        self.sessions = SqliteSessionStore(self.db)
        self.enhanced = SqliteEnhancedSessionStore(self.db)
        self.repo = SqliteAnalyticsRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def _view(self, session_id: str, page_url: str, at: str, **fields) -> None:
        payload = PageViewPayload(sessionId=session_id, pageUrl=page_url, **fields)
        await self.events.insert_page_view(payload, now=at)
        await self.sessions.record_page_view(
            session_id,
            page_url,
            device_type=payload.deviceType,
            browser=payload.browser,
            now=at,
        )

    async def _metric(self, metric: str, period: str = "7d"):
        return await rollups.build_metric(self.repo, metric, period, now=NOW)

    async def test_single_view_overview(self) -> None:
        await self._view("s1", "/home", "2026-03-10 11:00:00", deviceType="desktop", browser="Firefox")

        overview = await self._metric("overview", "1d")
        self.assertEqual(overview["totalVisitors"], 1)
        self.assertEqual(overview["totalPageViews"], 1)
        self.assertEqual(overview["totalSessions"], 1)
        self.assertEqual(overview["bounceRate"], 100)
        self.assertEqual(overview["topPages"], [{"page_url": "/home", "views": 1}])
        self.assertEqual(overview["deviceBreakdown"], [{"device_type": "desktop", "count": 1}])
        self.assertEqual(overview["browserBreakdown"], [{"browser": "Firefox", "count": 1}])

    async def test_second_session_with_two_views_halves_bounce_rate(self) -> None:
        await self._view("s1", "/home", "2026-03-10 11:00:00")
        await self._view("s2", "/home", "2026-03-10 11:05:00")
        await self._view("s2", "/pricing", "2026-03-10 11:06:00")

        overview = await self._metric("overview", "1d")
        self.assertEqual(overview["totalVisitors"], 2)
        self.assertEqual(overview["totalPageViews"], 3)
        self.assertEqual(overview["bounceRate"], 50)
        self.assertEqual(overview["topPages"][0], {"page_url": "/home", "views": 2})

    async def test_empty_window_returns_zeros(self) -> None:
        overview = await self._metric("overview")
        self.assertEqual(overview["totalVisitors"], 0)
        self.assertEqual(overview["bounceRate"], 0)
        self.assertEqual(overview["avgSessionDuration"], 0)
        self.assertEqual(overview["topPages"], [])

        performance = await self._metric("performance")
        self.assertEqual(performance["performance"]["avg_load_time"], 0)
        self.assertEqual(performance["performance"]["avg_cls"], 0)
        self.assertEqual(performance["webVitals"], [])

    async def test_invalid_period_uses_seven_day_window(self) -> None:
        await self._view("recent", "/", "2026-03-08 12:00:00")
        await self._view("older", "/", "2026-02-28 12:00:00")

        fallback = await self._metric("overview", "13d")
        week = await self._metric("overview", "7d")
        month = await self._metric("overview", "30d")
        self.assertEqual(fallback, week)
        self.assertEqual(fallback["totalVisitors"], 1)
        self.assertEqual(month["totalVisitors"], 2)

    async def test_performance_average_round_trip(self) -> None:
        await self.events.insert_performance(
            PerformancePayload(sessionId="s1", pageUrl="/", loadTime=1200, cumulativeLayoutShift=0.05),
            now="2026-03-10 10:00:00",
        )

        performance = await self._metric("performance", "1d")
        self.assertEqual(performance["performance"]["avg_load_time"], 1200)
        self.assertEqual(performance["performance"]["avg_cls"], 0.05)
        self.assertEqual(performance["webVitals"][0]["date"], "2026-03-10")

    async def test_pageviews_are_grouped_by_day_newest_first(self) -> None:
        await self._view("s1", "/", "2026-03-08 09:00:00")
        await self._view("s1", "/a", "2026-03-09 09:00:00")
        await self._view("s2", "/a", "2026-03-09 10:00:00")

        result = await self._metric("pageviews")
        self.assertEqual(
            result["pageViews"],
            [
                {"date": "2026-03-09", "views": 2, "unique_visitors": 2},
                {"date": "2026-03-08", "views": 1, "unique_visitors": 1},
            ],
        )

    async def test_events_metric_counts_every_kind(self) -> None:
        rows = [
            EventRow(session_id="s1", kind="custom", event_type="signup", event_category="cta", timestamp="2026-03-10 09:00:00"),
            EventRow(session_id="s2", kind="custom", event_type="signup", event_category="cta", timestamp="2026-03-10 09:10:00"),
            EventRow(session_id="s1", kind="click", event_type="click", event_category="button", event_action="click", timestamp="2026-03-10 09:20:00"),
        ]
        await self.events.insert_events(rows)

        result = await self._metric("events")
        self.assertEqual(result["events"][0]["event_type"], "signup")
        self.assertEqual(result["events"][0]["count"], 2)
        self.assertEqual({row["event_type"] for row in result["events"]}, {"signup", "click"})

    async def test_traffic_click_through_rate(self) -> None:
        await self._view("s1", "/", "2026-03-10 09:00:00")
        await self._view("s2", "/", "2026-03-10 09:00:00")
        await self.events.insert_event(
            EventRow(session_id="s1", kind="click", event_type="click", event_label="Buy now", timestamp="2026-03-10 09:01:00")
        )
        await self.enhanced.merge("s1", {"traffic_source": "google"}, now="2026-03-10 09:00:00")

        traffic = await self._metric("traffic", "1d")
        self.assertEqual(traffic["ctrData"], [{"element": "Buy now", "clicks": 1, "ctr": 50}])
        self.assertEqual(traffic["trafficSources"], [{"source": "google", "sessions": 1}])

    async def test_search_and_exit_rates(self) -> None:
        await self._view("s1", "/blog", "2026-03-10 09:00:00")
        await self._view("s2", "/blog", "2026-03-10 09:00:00")
        await self.events.insert_events([
            EventRow(session_id="s1", kind="exit_intent", event_type="exit_intent", page_url="/blog", event_value=3000, timestamp="2026-03-10 09:05:00"),
            EventRow(session_id="s1", kind="search", event_type="search", event_label="pricing", event_category="site", custom_data={"clickedResult": 1}, timestamp="2026-03-10 09:06:00"),
            EventRow(session_id="s2", kind="search", event_type="search", event_label="pricing", event_category="site", custom_data={"organic": True}, timestamp="2026-03-10 09:07:00"),
        ])

        content = await self._metric("content", "1d")
        self.assertEqual(content["exitIntent"][0]["exit_rate"], 50)
        self.assertEqual(content["exitIntent"][0]["avg_time_on_page"], 3000)

        marketing = await self._metric("marketing", "1d")
        keyword = marketing["searchKeywords"][0]
        self.assertEqual((keyword["query"], keyword["searches"], keyword["clicks"], keyword["ctr"]), ("pricing", 2, 1, 50))

    async def test_funnel_rates_are_relative_to_first_step(self) -> None:
        await self.events.insert_events([
            EventRow(session_id=f"s{i}", kind="navigation", event_type="navigation", event_category="checkout", event_value=1, timestamp="2026-03-10 09:00:00")
            for i in range(4)
        ] + [
            EventRow(session_id="s0", kind="navigation", event_type="navigation", event_category="checkout", event_value=2, timestamp="2026-03-10 09:01:00"),
        ])

        conversions = await self._metric("conversions", "1d")
        self.assertEqual(
            conversions["funnel"],
            [
                {"funnel_name": "checkout", "step": 1, "sessions": 4, "rate": 100},
                {"funnel_name": "checkout", "step": 2, "sessions": 1, "rate": 25},
            ],
        )

    async def test_advanced_insights_are_empty_without_a_writer(self) -> None:
        advanced = await self._metric("advanced")
        self.assertEqual(advanced["aiInsights"], [])
        self.assertEqual(advanced["featureUsage"], [])

    async def test_every_section_builds_on_an_empty_database(self) -> None:
        for metric in rollups.METRICS:
            with self.subTest(metric=metric):
                self.assertIsInstance(await self._metric(metric), dict)

    async def test_unknown_metric_is_rejected(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            await self._metric("revenue")
        self.assertEqual(ctx.exception.message, "Invalid metric type")
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_query_failure_becomes_storage_error(self) -> None:
        class _BrokenRepo:
            async def overview(self, since, top_pages_limit=10):
                raise aiosqlite.OperationalError("database is locked")

        with self.assertRaises(StorageError) as ctx:
            await rollups.build_metric(_BrokenRepo(), "overview", "7d", now=NOW)
        self.assertEqual(ctx.exception.message, "Failed to fetch analytics data")
        self.assertEqual(ctx.exception.detail, "database is locked")


if __name__ == "__main__":
    unittest.main()
