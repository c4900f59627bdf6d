"""Tracker ingest endpoints.

Every endpoint validates its required fields before touching storage, writes
one or more rows, and answers ``{"success": true}``.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable

import aiosqlite
from fastapi import APIRouter, Body, Request

from uam_analytics.date_utils import db_now
from uam_analytics.db import connection
from uam_analytics.db.factory import (
    get_enhanced_session_store,
    get_event_repository,
    get_session_store,
)
from uam_analytics.errors import StorageError, ValidationError
from uam_analytics.ingest import (
    P,
    EventRow,
    churn_event,
    click_event,
    client_ip,
    conversion_event,
    custom_event,
    consent_fields,
    device_fields,
    engagement_event,
    exit_intent_event,
    feature_usage_event,
    form_event,
    geographic_fields,
    heatmap_events,
    looks_like_bot,
    media_event,
    navigation_event,
    parse_payload,
    scroll_event,
    search_event,
    security_event,
    segment_event,
    social_share_event,
    traffic_fields,
    visitor_fields,
)
from uam_analytics.models import (
    ChurnPredictionPayload,
    ClickPayload,
    ConsentPayload,
    ContentEngagementPayload,
    ConversionGoalPayload,
    DeviceInfoPayload,
    ErrorPayload,
    EventPayload,
    ExitIntentPayload,
    FeatureUsagePayload,
    FormAnalyticsPayload,
    GeographicInfoPayload,
    HeatmapPayload,
    MediaEngagementPayload,
    NavigationPathPayload,
    PageViewPayload,
    PerformancePayload,
    ScrollPayload,
    SearchPayload,
    SecurityEventPayload,
    SessionEndPayload,
    SocialSharePayload,
    TrafficSourcePayload,
    UserSegmentPayload,
    VisitorTypePayload,
)
from uam_analytics.observability import record_ingestion, start_span

logger = logging.getLogger("uam.ingest")

ingest_router = APIRouter(prefix="/api/analytics", tags=["ingest"])

_ELEVATED_SEVERITIES = {"high", "critical"}

SUCCESS = {"success": True}


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


def _parse(kind: str, model: type[P], body: Any, *required: str) -> P:
    try:
        return parse_payload(model, body, *required)
    except ValidationError as exc:
        record_ingestion(kind, "rejected", 0.0)
        logger.info("Rejected %s payload: %s", kind, exc.message)
        raise


async def _write(kind: str, label: str, operation: Callable[[aiosqlite.Connection], Awaitable[Any]]) -> dict:
    """Run ``operation`` against the shared connection, mapping driver errors."""
    started = time.perf_counter()
    try:
        with start_span(f"ingest.{kind}", {"kind": kind}):
            db = await connection.get_connection()
            await operation(db)
    except aiosqlite.Error as exc:
        record_ingestion(kind, "error", _elapsed_ms(started))
        logger.exception("Failed to track %s", label)
        raise StorageError(f"Failed to track {label}", detail=str(exc)) from exc
    record_ingestion(kind, "success", _elapsed_ms(started))
    return SUCCESS


def _user_agent(request: Request, reported: str | None) -> str | None:
    if reported:
        return reported
    headers = getattr(request, "headers", None) or {}
    return headers.get("user-agent")


async def _track_rows(kind: str, label: str, request: Request, ip_reported: str | None, rows: list[EventRow]) -> dict:
    ip = client_ip(request, ip_reported)

    async def write(db: aiosqlite.Connection) -> None:
        await get_event_repository(db).insert_events(rows, ip_address=ip)

    return await _write(kind, label, write)


# ── Core tracking ──────────────────────────────────────────────────

@ingest_router.post("/pageview")
async def track_pageview(request: Request, body: Any = Body(None)):
    payload = _parse("pageview", PageViewPayload, body, "sessionId", "pageUrl")
    ip = client_ip(request, payload.ipAddress)
    payload.userAgent = _user_agent(request, payload.userAgent)

    async def write(db: aiosqlite.Connection) -> None:
        now = db_now()
        await get_event_repository(db).insert_page_view(payload, ip_address=ip, now=now)
        await get_session_store(db).record_page_view(
            payload.sessionId,
            payload.pageUrl,
            ip_address=ip,
            user_agent=payload.userAgent,
            device_type=payload.deviceType,
            browser=payload.browser,
            os=payload.os,
            now=now,
        )

    return await _write("pageview", "page view", write)


@ingest_router.post("/event")
async def track_event(request: Request, body: Any = Body(None)):
    payload = _parse("custom", EventPayload, body, "sessionId", "eventType")
    return await _track_rows("custom", "event", request, payload.ipAddress, [custom_event(payload)])


@ingest_router.post("/performance")
async def track_performance(request: Request, body: Any = Body(None)):
    payload = _parse("performance", PerformancePayload, body, "sessionId", "pageUrl")

    async def write(db: aiosqlite.Connection) -> None:
        await get_event_repository(db).insert_performance(payload)

    return await _write("performance", "performance", write)


@ingest_router.post("/error")
async def track_error(request: Request, body: Any = Body(None)):
    payload = _parse("error", ErrorPayload, body, "errorType", "errorMessage")
    ip = client_ip(request, payload.ipAddress)
    payload.userAgent = _user_agent(request, payload.userAgent)

    async def write(db: aiosqlite.Connection) -> None:
        await get_event_repository(db).insert_error(payload, ip_address=ip)

    return await _write("error", "error", write)


@ingest_router.post("/session-end")
async def track_session_end(request: Request, body: Any = Body(None)):
    payload = _parse("session_end", SessionEndPayload, body, "sessionId")

    async def write(db: aiosqlite.Connection) -> None:
        found = await get_session_store(db).record_session_end(payload.sessionId, payload.totalTimeSpent)
        if not found:
            logger.debug("session-end for unknown session %s", payload.sessionId)

    return await _write("session_end", "session end", write)


# ── Traffic & engagement ───────────────────────────────────────────

@ingest_router.post("/click-tracking")
async def track_click(request: Request, body: Any = Body(None)):
    payload = _parse("click", ClickPayload, body, "sessionId", "elementType")
    return await _track_rows("click", "click", request, payload.ipAddress, [click_event(payload)])


@ingest_router.post("/scroll-tracking")
async def track_scroll(request: Request, body: Any = Body(None)):
    payload = _parse("scroll", ScrollPayload, body, "sessionId", "pageUrl")
    return await _track_rows("scroll", "scroll", request, payload.ipAddress, [scroll_event(payload)])


@ingest_router.post("/navigation-path")
async def track_navigation_path(request: Request, body: Any = Body(None)):
    payload = _parse("navigation", NavigationPathPayload, body, "sessionId", "pageUrl")
    return await _track_rows(
        "navigation", "navigation path", request, payload.ipAddress, [navigation_event(payload)]
    )


# ── Audience ───────────────────────────────────────────────────────

async def _merge_session(kind: str, label: str, session_id: str, fields: dict[str, Any], increments: dict[str, int] | None = None) -> dict:
    async def write(db: aiosqlite.Connection) -> None:
        await get_enhanced_session_store(db).merge(session_id, fields, increments)

    return await _write(kind, label, write)


@ingest_router.post("/device-info")
async def track_device_info(request: Request, body: Any = Body(None)):
    payload = _parse("device", DeviceInfoPayload, body, "sessionId")
    payload.userAgent = _user_agent(request, payload.userAgent)
    return await _merge_session("device", "device info", payload.sessionId, device_fields(payload))


@ingest_router.post("/geographic-info")
async def track_geographic_info(request: Request, body: Any = Body(None)):
    payload = _parse("geographic", GeographicInfoPayload, body, "sessionId")
    return await _merge_session("geographic", "geographic info", payload.sessionId, geographic_fields(payload))


@ingest_router.post("/visitor-type")
async def track_visitor_type(request: Request, body: Any = Body(None)):
    payload = _parse("visitor", VisitorTypePayload, body, "sessionId")
    return await _merge_session("visitor", "visitor type", payload.sessionId, visitor_fields(payload))


# ── Conversions & behavior ─────────────────────────────────────────

@ingest_router.post("/conversion-goal")
async def track_conversion_goal(request: Request, body: Any = Body(None)):
    payload = _parse("conversion", ConversionGoalPayload, body, "sessionId", "goalName")
    return await _track_rows(
        "conversion", "conversion goal", request, payload.ipAddress, [conversion_event(payload)]
    )


@ingest_router.post("/heatmap")
async def track_heatmap(request: Request, body: Any = Body(None)):
    payload = _parse("heatmap", HeatmapPayload, body, "sessionId", "pageUrl")
    return await _track_rows("heatmap", "heatmap", request, payload.ipAddress, heatmap_events(payload))


@ingest_router.post("/form-analytics")
async def track_form_analytics(request: Request, body: Any = Body(None)):
    payload = _parse("form", FormAnalyticsPayload, body, "sessionId", "formId")
    ip = client_ip(request, payload.ipAddress)
    row = form_event(payload)

    async def write(db: aiosqlite.Connection) -> None:
        await get_event_repository(db).insert_event(row, ip_address=ip)
        await get_enhanced_session_store(db).merge(payload.sessionId, increments={"form_interactions": 1})

    return await _write("form", "form analytics", write)


# ── Content ────────────────────────────────────────────────────────

@ingest_router.post("/content-engagement")
async def track_content_engagement(request: Request, body: Any = Body(None)):
    payload = _parse("engagement", ContentEngagementPayload, body, "sessionId", "pageUrl")
    return await _track_rows(
        "engagement", "content engagement", request, payload.ipAddress, [engagement_event(payload)]
    )


@ingest_router.post("/exit-intent")
async def track_exit_intent(request: Request, body: Any = Body(None)):
    payload = _parse("exit_intent", ExitIntentPayload, body, "sessionId", "pageUrl")
    ip = client_ip(request, payload.ipAddress)
    row = exit_intent_event(payload)

    async def write(db: aiosqlite.Connection) -> None:
        await get_enhanced_session_store(db).merge(payload.sessionId, {"exit_intent_detected": True})
        await get_event_repository(db).insert_event(row, ip_address=ip)

    return await _write("exit_intent", "exit intent", write)


@ingest_router.post("/social-share")
async def track_social_share(request: Request, body: Any = Body(None)):
    payload = _parse("social_share", SocialSharePayload, body, "sessionId", "platform")
    ip = client_ip(request, payload.ipAddress)
    row = social_share_event(payload)

    async def write(db: aiosqlite.Connection) -> None:
        await get_enhanced_session_store(db).merge(payload.sessionId, increments={"social_shares": 1})
        await get_event_repository(db).insert_event(row, ip_address=ip)

    return await _write("social_share", "social share", write)


@ingest_router.post("/media-engagement")
async def track_media_engagement(request: Request, body: Any = Body(None)):
    payload = _parse("media", MediaEngagementPayload, body, "sessionId", "mediaType", "engagementType")
    return await _track_rows("media", "media engagement", request, payload.ipAddress, [media_event(payload)])


# ── Marketing ──────────────────────────────────────────────────────

@ingest_router.post("/traffic-source")
async def track_traffic_source(request: Request, body: Any = Body(None)):
    payload = _parse("traffic", TrafficSourcePayload, body, "sessionId")
    return await _merge_session("traffic", "traffic source", payload.sessionId, traffic_fields(payload))


@ingest_router.post("/search")
async def track_search(request: Request, body: Any = Body(None)):
    payload = _parse("search", SearchPayload, body, "sessionId", "searchQuery")
    return await _track_rows("search", "search", request, payload.ipAddress, [search_event(payload)])


# ── Security & compliance ──────────────────────────────────────────

@ingest_router.post("/security-event")
async def track_security_event(request: Request, body: Any = Body(None)):
    payload = _parse("security", SecurityEventPayload, body, "sessionId", "eventType")
    ip = client_ip(request, payload.ipAddress)
    payload.userAgent = _user_agent(request, payload.userAgent)
    row = security_event(payload)
    flags: dict[str, Any] = {}
    if (payload.severity or "").lower() in _ELEVATED_SEVERITIES:
        flags["suspicious_activity"] = True
    if looks_like_bot(payload.userAgent):
        flags["bot_detected"] = True

    async def write(db: aiosqlite.Connection) -> None:
        await get_event_repository(db).insert_event(row, ip_address=ip)
        if flags:
            await get_enhanced_session_store(db).merge(payload.sessionId, flags)

    return await _write("security", "security event", write)


@ingest_router.post("/consent")
async def track_consent(request: Request, body: Any = Body(None)):
    payload = _parse("consent", ConsentPayload, body, "sessionId")
    return await _merge_session("consent", "consent", payload.sessionId, consent_fields(payload))


# ── Advanced ───────────────────────────────────────────────────────

@ingest_router.post("/user-segment")
async def track_user_segment(request: Request, body: Any = Body(None)):
    payload = _parse("segment", UserSegmentPayload, body, "sessionId", "segment")
    return await _track_rows("segment", "user segment", request, payload.ipAddress, [segment_event(payload)])


@ingest_router.post("/feature-usage")
async def track_feature_usage(request: Request, body: Any = Body(None)):
    payload = _parse("feature_usage", FeatureUsagePayload, body, "sessionId", "featureName")
    return await _track_rows(
        "feature_usage", "feature usage", request, payload.ipAddress, [feature_usage_event(payload)]
    )


@ingest_router.post("/churn-prediction")
async def track_churn_prediction(request: Request, body: Any = Body(None)):
    payload = _parse("churn", ChurnPredictionPayload, body, "sessionId")
    return await _track_rows("churn", "churn prediction", request, payload.ipAddress, [churn_event(payload)])
