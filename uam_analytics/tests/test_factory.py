import unittest

import aiosqlite

from uam_analytics.db import factory
from uam_analytics.db.repositories import (
    SqliteAnalyticsRepository,
    SqliteEnhancedSessionStore,
    SqliteEventRepository,
    SqliteSessionStore,
)


class RepositoryFactoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_sqlite_connection_gets_sqlite_repositories(self) -> None:
        db = await aiosqlite.connect(":memory:")
        try:
            self.assertIsInstance(factory.get_session_store(db), SqliteSessionStore)
            self.assertIsInstance(factory.get_enhanced_session_store(db), SqliteEnhancedSessionStore)
            self.assertIsInstance(factory.get_event_repository(db), SqliteEventRepository)
            self.assertIsInstance(factory.get_analytics_repository(db), SqliteAnalyticsRepository)
        finally:
            await db.close()

    async def test_other_connections_are_rejected(self) -> None:
        for getter in (
            factory.get_session_store,
            factory.get_enhanced_session_store,
            factory.get_event_repository,
            factory.get_analytics_repository,
        ):
            with self.subTest(getter=getter.__name__):
                with self.assertRaises(TypeError):
                    getter(object())


if __name__ == "__main__":
    unittest.main()
