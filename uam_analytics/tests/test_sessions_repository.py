import asyncio
import unittest

import aiosqlite

from uam_analytics.db.repositories.sessions import SqliteEnhancedSessionStore, SqliteSessionStore
from uam_analytics.db.sqlite_migrations import run_migrations


class SessionStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.store = SqliteSessionStore(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_first_view_creates_bounced_session(self) -> None:
        await self.store.record_page_view("s1", "/home", device_type="desktop", now="2026-03-01 10:00:00")

        row = await self.store.get("s1")
        self.assertIsNotNone(row)
        self.assertEqual(row["total_page_views"], 1)
        self.assertEqual(row["is_bounce"], 1)
        self.assertEqual(row["entry_page"], "/home")
        self.assertEqual(row["exit_page"], "/home")
        self.assertEqual(row["first_visit"], "2026-03-01 10:00:00")
        self.assertEqual(row["last_activity"], "2026-03-01 10:00:00")

    async def test_repeat_views_count_and_clear_bounce(self) -> None:
        pages = ["/home", "/pricing", "/signup", "/thanks"]
        for index, page in enumerate(pages):
            await self.store.record_page_view("s1", page, now=f"2026-03-01 10:0{index}:00")

        row = await self.store.get("s1")
        self.assertEqual(row["total_page_views"], len(pages))
        self.assertEqual(row["is_bounce"], 0)
        self.assertEqual(row["entry_page"], "/home")
        self.assertEqual(row["exit_page"], "/thanks")
        self.assertEqual(row["first_visit"], "2026-03-01 10:00:00")
        self.assertEqual(row["last_activity"], "2026-03-01 10:03:00")

    async def test_null_device_fields_do_not_clear_stored_values(self) -> None:
        await self.store.record_page_view("s1", "/a", device_type="mobile", browser="Safari", os="iOS")
        await self.store.record_page_view("s1", "/b")
        await self.store.record_page_view("s1", "/c", browser="Chrome")

        row = await self.store.get("s1")
        self.assertEqual(row["device_type"], "mobile")
        self.assertEqual(row["os"], "iOS")
        self.assertEqual(row["browser"], "Chrome")

    async def test_concurrent_first_views_create_a_single_row(self) -> None:
        await asyncio.gather(*(self.store.record_page_view("s1", f"/p{i}") for i in range(5)))

        async with self.db.execute("SELECT COUNT(*) FROM user_sessions WHERE session_id = 's1'") as cur:
            count = (await cur.fetchone())[0]
        row = await self.store.get("s1")
        self.assertEqual(count, 1)
        self.assertEqual(row["total_page_views"], 5)
        self.assertEqual(row["is_bounce"], 0)

    async def test_session_end_keeps_the_longest_reported_time(self) -> None:
        await self.store.record_page_view("s1", "/home")

        self.assertTrue(await self.store.record_session_end("s1", 4000))
        self.assertTrue(await self.store.record_session_end("s1", 2500))

        row = await self.store.get("s1")
        self.assertEqual(row["total_time_spent"], 4000)

    async def test_session_end_for_unknown_session_is_a_noop(self) -> None:
        self.assertFalse(await self.store.record_session_end("missing", 1000))
        self.assertIsNone(await self.store.get("missing"))

    async def test_list_recent_orders_by_last_activity(self) -> None:
        await self.store.record_page_view("old", "/", now="2026-03-01 09:00:00")
        await self.store.record_page_view("new", "/", now="2026-03-01 11:00:00")

        rows = await self.store.list_recent(limit=10)
        self.assertEqual([row["session_id"] for row in rows], ["new", "old"])


class EnhancedSessionStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.store = SqliteEnhancedSessionStore(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_merge_creates_then_overwrites_fields(self) -> None:
        await self.store.merge("s1", {"country": "DE", "language": "de-DE"})
        await self.store.merge("s1", {"country": "AT"})

        row = await self.store.get("s1")
        self.assertEqual(row["country"], "AT")
        self.assertEqual(row["language"], "de-DE")

    async def test_merge_increments_counters(self) -> None:
        await self.store.merge("s1", increments={"social_shares": 1})
        await self.store.merge("s1", increments={"social_shares": 1, "form_interactions": 2})

        row = await self.store.get("s1")
        self.assertEqual(row["social_shares"], 2)
        self.assertEqual(row["form_interactions"], 2)

    async def test_merge_rejects_unknown_columns(self) -> None:
        with self.assertRaises(ValueError):
            await self.store.merge("s1", {"session_id": "other"})
        with self.assertRaises(ValueError):
            await self.store.merge("s1", increments={"country": 1})
        self.assertIsNone(await self.store.get("s1"))


if __name__ == "__main__":
    unittest.main()
