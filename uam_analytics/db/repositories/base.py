"""Storage interfaces used by the routers and rollup service."""
from __future__ import annotations

from typing import Any, Protocol

from uam_analytics.ingest import EventRow
from uam_analytics.models import ErrorPayload, PageViewPayload, PerformancePayload


class SessionStore(Protocol):
    async def get(self, session_id: str) -> dict | None: ...

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
    ) -> None: ...

    async def record_session_end(
        self, session_id: str, total_time_spent: float | None, *, now: str | None = None
    ) -> bool: ...

    async def list_recent(self, limit: int = 50) -> list[dict]: ...


class EnhancedSessionStore(Protocol):
    async def get(self, session_id: str) -> dict | None: ...

    async def merge(
        self,
        session_id: str,
        fields: dict[str, Any] | None = None,
        increments: dict[str, int] | None = None,
        *,
        now: str | None = None,
    ) -> None: ...


class EventRepository(Protocol):
    async def insert_page_view(
        self, payload: PageViewPayload, *, ip_address: str | None = None, now: str | None = None
    ) -> int: ...

    async def insert_event(self, row: EventRow, *, ip_address: str | None = None) -> int: ...

    async def insert_events(self, rows: list[EventRow], *, ip_address: str | None = None) -> int: ...

    async def insert_performance(self, payload: PerformancePayload, *, now: str | None = None) -> int: ...

    async def insert_error(
        self, payload: ErrorPayload, *, ip_address: str | None = None, now: str | None = None
    ) -> int: ...


class AnalyticsRepository(Protocol):
    async def overview(self, since: str, top_pages_limit: int = 10) -> dict[str, Any]: ...

    async def page_views_by_day(self, since: str) -> list[dict]: ...

    async def event_counts(self, since: str) -> list[dict]: ...

    async def performance_averages(self, since: str) -> dict[str, Any]: ...

    async def web_vitals_by_day(self, since: str) -> list[dict]: ...

    async def error_counts(self, since: str) -> list[dict]: ...

    async def session_count(self, since: str) -> int: ...

    async def traffic_sources(self, since: str) -> list[dict]: ...

    async def click_counts(self, since: str, limit: int = 20) -> list[dict]: ...

    async def scroll_depth_buckets(self, since: str) -> list[dict]: ...

    async def geographic(self, since: str) -> list[dict]: ...

    async def visitor_types(self, since: str) -> list[dict]: ...

    async def screen_resolutions(self, since: str, limit: int = 20) -> list[dict]: ...

    async def conversion_goals(self, since: str) -> list[dict]: ...

    async def funnel_steps(self, since: str) -> list[dict]: ...

    async def heatmap(self, since: str, limit: int = 200) -> list[dict]: ...

    async def form_analytics(self, since: str) -> list[dict]: ...

    async def user_journeys(self, since: str, limit: int = 20) -> list[dict]: ...

    async def content_performance(self, since: str, limit: int = 20) -> list[dict]: ...

    async def exit_intents(self, since: str) -> list[dict]: ...

    async def media_engagement(self, since: str) -> list[dict]: ...

    async def utm_campaigns(self, since: str) -> list[dict]: ...

    async def search_keywords(self, since: str, limit: int = 20) -> list[dict]: ...

    async def security_events(self, since: str) -> list[dict]: ...

    async def bot_detection(self, since: str) -> list[dict]: ...

    async def consent_states(self, since: str) -> list[dict]: ...

    async def ai_insights(self, since: str) -> list[dict]: ...

    async def user_segments(self, since: str) -> list[dict]: ...

    async def churn_risk(self, since: str) -> list[dict]: ...

    async def feature_usage(self, since: str) -> list[dict]: ...
