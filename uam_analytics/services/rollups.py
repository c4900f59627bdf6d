"""Dashboard rollups behind ``GET /api/analytics/data``.

Each metric name maps to a builder that runs a handful of grouped queries
over a rolling window and shapes the rows into the camelCase payload the
dashboard reads. Missing aggregates come back as ``0`` and percentages are
integer percents.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable

import aiosqlite

from uam_analytics import config
from uam_analytics.date_utils import window_start
from uam_analytics.db.repositories.base import AnalyticsRepository
from uam_analytics.errors import NotFoundError, StorageError
from uam_analytics.observability import record_query, start_span

logger = logging.getLogger("uam.rollups")

PERIOD_DAYS: dict[str, int] = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
FALLBACK_PERIOD = "7d"

MetricBuilder = Callable[[AnalyticsRepository, str], Awaitable[dict[str, Any]]]


def resolve_period(value: str | None) -> tuple[str, int]:
    """Map a period token to ``(period, days)``; unknown tokens become 7d."""
    token = (value or "").strip().lower()
    if token in PERIOD_DAYS:
        return token, PERIOD_DAYS[token]
    default = config.DEFAULT_PERIOD if config.DEFAULT_PERIOD in PERIOD_DAYS else FALLBACK_PERIOD
    return default, PERIOD_DAYS[default]


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        if value is None:
            return default
        return int(round(float(value)))
    except (TypeError, ValueError):
        return default


def _safe_float(value: Any, default: float = 0.0, digits: int = 2) -> float:
    try:
        if value is None:
            return default
        return round(float(value), digits)
    except (TypeError, ValueError):
        return default


def _percent(part: Any, whole: Any) -> int:
    total = _safe_int(whole)
    if total <= 0:
        return 0
    return _safe_int(100.0 * _safe_int(part) / total)


# ── Core metrics ───────────────────────────────────────────────────

async def _overview(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    totals = await repo.overview(since, top_pages_limit=config.TOP_PAGES_LIMIT)
    bounce = totals.get("bounce_rate")
    return {
        "totalVisitors": _safe_int(totals.get("total_visitors")),
        "totalPageViews": _safe_int(totals.get("total_page_views")),
        "totalSessions": _safe_int(totals.get("total_sessions")),
        # Running approximation: a session counts as a bounce until its second view.
        "bounceRate": _safe_int(100.0 * bounce) if bounce is not None else 0,
        "avgSessionDuration": _safe_int(totals.get("avg_session_duration")),
        "topPages": totals.get("top_pages") or [],
        "deviceBreakdown": totals.get("device_breakdown") or [],
        "browserBreakdown": totals.get("browser_breakdown") or [],
    }


async def _pageviews(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    return {"pageViews": await repo.page_views_by_day(since)}


async def _events(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    return {"events": await repo.event_counts(since)}


async def _performance(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    averages = await repo.performance_averages(since)
    vitals = await repo.web_vitals_by_day(since)
    return {
        "performance": {
            "avg_load_time": _safe_float(averages.get("avg_load_time")),
            "avg_dom_loaded": _safe_float(averages.get("avg_dom_loaded")),
            "avg_fcp": _safe_float(averages.get("avg_fcp")),
            "avg_lcp": _safe_float(averages.get("avg_lcp")),
            "avg_fid": _safe_float(averages.get("avg_fid")),
            "avg_cls": _safe_float(averages.get("avg_cls"), digits=4),
            "avg_tti": _safe_float(averages.get("avg_tti")),
        },
        "webVitals": [
            {
                "date": row.get("date"),
                "avg_lcp": _safe_float(row.get("avg_lcp")),
                "avg_fid": _safe_float(row.get("avg_fid")),
                "avg_cls": _safe_float(row.get("avg_cls"), digits=4),
            }
            for row in vitals
        ],
    }


async def _errors(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    return {"errors": await repo.error_counts(since)}


# ── Dashboard sections ─────────────────────────────────────────────

async def _traffic(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    sessions = await repo.session_count(since)
    clicks = await repo.click_counts(since)
    return {
        "trafficSources": await repo.traffic_sources(since),
        "ctrData": [
            {
                "element": row.get("element") or "unknown",
                "clicks": _safe_int(row.get("clicks")),
                "ctr": _percent(row.get("sessions"), sessions),
            }
            for row in clicks
        ],
        "scrollDepth": await repo.scroll_depth_buckets(since),
    }


async def _audience(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    return {
        "geographic": await repo.geographic(since),
        "visitorTypes": await repo.visitor_types(since),
        "screenResolutions": await repo.screen_resolutions(since),
    }


def _funnel_rates(rows: list[dict]) -> list[dict]:
    entry: dict[str, int] = {}
    shaped = []
    for row in rows:
        name = row.get("funnel_name") or "default"
        sessions = _safe_int(row.get("sessions"))
        entry.setdefault(name, sessions)
        shaped.append({
            "funnel_name": name,
            "step": _safe_int(row.get("step")),
            "sessions": sessions,
            "rate": _percent(sessions, entry[name]),
        })
    return shaped


async def _conversions(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    goals = await repo.conversion_goals(since)
    for goal in goals:
        goal["total_value"] = _safe_float(goal.get("total_value"))
    return {
        "goals": goals,
        "funnel": _funnel_rates(await repo.funnel_steps(since)),
    }


async def _behavior(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    heatmap = await repo.heatmap(since)
    for point in heatmap:
        point["avg_x"] = _safe_int(point.get("avg_x"))
        point["avg_y"] = _safe_int(point.get("avg_y"))
    forms = await repo.form_analytics(since)
    for form in forms:
        form["avg_completion_time"] = _safe_int(form.get("avg_completion_time"))
    return {
        "heatmap": heatmap,
        "formAnalytics": forms,
        "userJourney": await repo.user_journeys(since),
    }


async def _content(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    pages = await repo.content_performance(since)
    for page in pages:
        page["avg_time_on_page"] = _safe_int(page.get("avg_time_on_page"))
        page["avg_scroll_depth"] = _safe_int(page.get("avg_scroll_depth"))
    exits = await repo.exit_intents(since)
    for row in exits:
        row["avg_time_on_page"] = _safe_int(row.get("avg_time_on_page"))
        row["exit_rate"] = _percent(row.get("exits"), row.get("views"))
    media = await repo.media_engagement(since)
    for row in media:
        row["avg_value"] = _safe_float(row.get("avg_value"))
    return {
        "contentPerformance": pages,
        "exitIntent": exits,
        "mediaEngagement": media,
    }


async def _marketing(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    keywords = await repo.search_keywords(since)
    for row in keywords:
        row["clicks"] = _safe_int(row.get("clicks"))
        row["ctr"] = _percent(row["clicks"], row.get("searches"))
    return {
        "utmCampaigns": await repo.utm_campaigns(since),
        "searchKeywords": keywords,
    }


async def _security(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    return {
        "securityEvents": await repo.security_events(since),
        "botDetection": await repo.bot_detection(since),
        "consent": await repo.consent_states(since),
    }


async def _advanced(repo: AnalyticsRepository, since: str) -> dict[str, Any]:
    churn = await repo.churn_risk(since)
    for row in churn:
        row["avg_engagement_score"] = _safe_float(row.get("avg_engagement_score"))
    usage = await repo.feature_usage(since)
    for row in usage:
        row["uses"] = _safe_int(row.get("uses"))
    return {
        "aiInsights": await repo.ai_insights(since),
        "userSegments": await repo.user_segments(since),
        "churnPrediction": churn,
        "featureUsage": usage,
    }


METRICS: dict[str, MetricBuilder] = {
    "overview": _overview,
    "pageviews": _pageviews,
    "events": _events,
    "performance": _performance,
    "errors": _errors,
    "traffic": _traffic,
    "audience": _audience,
    "conversions": _conversions,
    "behavior": _behavior,
    "content": _content,
    "marketing": _marketing,
    "security": _security,
    "advanced": _advanced,
}


async def build_metric(
    repo: AnalyticsRepository,
    metric: str | None,
    period: str | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run one metric rollup over the resolved window.

    Raises ``NotFoundError`` for an unknown metric and ``StorageError`` when
    any underlying query fails; no partial result is returned.
    """
    metric_name = (metric or "overview").strip().lower()
    builder = METRICS.get(metric_name)
    if builder is None:
        raise NotFoundError("Invalid metric type")

    resolved, days = resolve_period(period)
    since = window_start(days, now)
    started = time.perf_counter()
    try:
        with start_span("analytics.rollup", {"metric": metric_name, "period": resolved}):
            result = await builder(repo, since)
    except aiosqlite.Error as exc:
        elapsed = (time.perf_counter() - started) * 1000.0
        record_query(metric_name, resolved, "error", elapsed)
        logger.exception("Rollup %s failed for period %s", metric_name, resolved)
        raise StorageError("Failed to fetch analytics data", detail=str(exc)) from exc

    elapsed = (time.perf_counter() - started) * 1000.0
    record_query(metric_name, resolved, "success", elapsed)
    logger.debug("Rollup %s (%s) took %.1fms", metric_name, resolved, elapsed)
    return result
