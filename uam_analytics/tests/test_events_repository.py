import json
import unittest

import aiosqlite

from uam_analytics.db.repositories.events import SqliteEventRepository
from uam_analytics.db.sqlite_migrations import run_migrations
from uam_analytics.ingest import EventRow
from uam_analytics.models import ErrorPayload, PageViewPayload, PerformancePayload


class EventRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.repo = SqliteEventRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def _count(self, table: str) -> int:
        async with self.db.execute(f"SELECT COUNT(*) FROM {table}") as cur:
            return (await cur.fetchone())[0]

    async def _events_of_kind(self, kind: str) -> list[dict]:
        async with self.db.execute("SELECT * FROM events WHERE kind = ? ORDER BY id", (kind,)) as cur:
            rows = [dict(row) for row in await cur.fetchall()]
        for row in rows:
            row["custom_data"] = json.loads(row["custom_data"]) if row["custom_data"] else None
        return rows

    async def test_event_rows_keep_kind_and_json_payload(self) -> None:
        await self.repo.insert_event(
            EventRow(
                session_id="s1",
                kind="search",
                event_type="search",
                event_label="blue shoes",
                custom_data={"organic": True, "clickedResult": 2},
            ),
            ip_address="203.0.113.0",
        )

        rows = await self._events_of_kind("search")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["event_label"], "blue shoes")
        self.assertEqual(rows[0]["custom_data"], {"organic": True, "clickedResult": 2})
        self.assertEqual(rows[0]["ip_address"], "203.0.113.0")
        self.assertEqual(await self._events_of_kind("click"), [])

    async def test_batch_insert_returns_row_count(self) -> None:
        rows = [
            EventRow(session_id="s1", kind="heatmap", event_type="heatmap", event_label=f"el-{i}")
            for i in range(3)
        ]
        self.assertEqual(await self.repo.insert_events(rows), 3)
        self.assertEqual(await self.repo.insert_events([]), 0)
        self.assertEqual(await self._count("events"), 3)

    async def test_explicit_timestamp_is_stored_verbatim(self) -> None:
        await self.repo.insert_event(
            EventRow(session_id="s1", kind="conversion", event_type="conversion", timestamp="2026-01-01 00:00:00")
        )
        rows = await self._events_of_kind("conversion")
        self.assertEqual(rows[0]["timestamp"], "2026-01-01 00:00:00")

    async def test_page_view_performance_and_error_rows(self) -> None:
        await self.repo.insert_page_view(
            PageViewPayload(sessionId="s1", pageUrl="/home", screenResolution="1920x1080"),
            ip_address="198.51.100.0",
        )
        await self.repo.insert_performance(PerformancePayload(sessionId="s1", pageUrl="/home", loadTime=1200))
        await self.repo.insert_error(ErrorPayload(errorType="TypeError", errorMessage="x is undefined"))

        self.assertEqual(await self._count("page_views"), 1)
        self.assertEqual(await self._count("performance_metrics"), 1)
        async with self.db.execute("SELECT session_id, error_type FROM errors") as cur:
            row = await cur.fetchone()
        self.assertIsNone(row["session_id"])
        self.assertEqual(row["error_type"], "TypeError")


if __name__ == "__main__":
    unittest.main()
