"""Payload validation and normalisation for the tracker endpoints.

Each endpoint takes an untyped JSON object. ``parse_payload`` enforces the
endpoint's required fields, coerces the rest into a payload model, and the
``*_event`` helpers flatten the specialised payloads into generic ``events``
rows tagged with a ``kind``.
"""
from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from uam_analytics import config
from uam_analytics.date_utils import parse_client_timestamp
from uam_analytics.errors import MissingFieldError, ValidationError
from uam_analytics.models import (
    ChurnPredictionPayload,
    ClickPayload,
    ConsentPayload,
    ContentEngagementPayload,
    ConversionGoalPayload,
    DeviceInfoPayload,
    EventPayload,
    ExitIntentPayload,
    FeatureUsagePayload,
    FormAnalyticsPayload,
    GeographicInfoPayload,
    HeatmapPayload,
    MediaEngagementPayload,
    NavigationPathPayload,
    ScrollPayload,
    SearchPayload,
    SecurityEventPayload,
    SocialSharePayload,
    TrafficSourcePayload,
    UserSegmentPayload,
    VisitorTypePayload,
)

P = TypeVar("P", bound=BaseModel)

_BOT_UA_RE = re.compile(r"bot|crawl|spider|slurp|headless|phantomjs|lighthouse", re.IGNORECASE)


@dataclass
class EventRow:
    session_id: str
    kind: str
    event_type: str
    event_category: str | None = None
    event_action: str | None = None
    event_label: str | None = None
    event_value: float | None = None
    page_url: str | None = None
    custom_data: Any = None
    timestamp: str | None = None


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def require_fields(body: Any, *names: str) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    if any(_is_missing(body.get(name)) for name in names):
        raise MissingFieldError(names)
    return body


def parse_payload(model: type[P], body: Any, *required: str) -> P:
    """Validate ``body`` against ``model`` after the required-field check."""
    data = require_fields(body, *required)
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        errors = exc.errors()
        location = errors[0].get("loc", ()) if errors else ()
        field_name = ".".join(str(part) for part in location) or "body"
        raise ValidationError(f"Invalid value for {field_name}") from exc


def anonymize_ip(value: str) -> str:
    try:
        parsed = ipaddress.ip_address(value)
    except ValueError:
        return value
    if parsed.version == 4:
        network = ipaddress.ip_network(f"{parsed}/24", strict=False)
    else:
        network = ipaddress.ip_network(f"{parsed}/48", strict=False)
    return str(network.network_address)


def client_ip(request: Any, reported: str | None = None) -> str | None:
    """Peer address of the request (or the tracker-reported one), anonymised per config."""
    raw = (reported or "").strip()
    if not raw:
        client = getattr(request, "client", None)
        raw = (getattr(client, "host", "") or "").strip()
    if not raw:
        return None
    return anonymize_ip(raw) if config.ANONYMIZE_IP else raw


def looks_like_bot(user_agent: str | None) -> bool:
    return bool(user_agent and _BOT_UA_RE.search(user_agent))


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


# ── Generic event rows ─────────────────────────────────────────────

def custom_event(payload: EventPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="custom",
        event_type=payload.eventType,
        event_category=payload.eventCategory,
        event_action=payload.eventAction,
        event_label=payload.eventLabel,
        event_value=payload.eventValue,
        page_url=payload.pageUrl,
        custom_data=payload.customData,
    )


def click_event(payload: ClickPayload) -> EventRow:
    is_cta = bool(payload.isCta)
    return EventRow(
        session_id=payload.sessionId or "",
        kind="click",
        event_type="click",
        event_category=payload.elementType,
        event_action="cta_click" if is_cta else "click",
        event_label=payload.elementText or payload.elementId,
        page_url=payload.pageUrl,
        custom_data=_compact({
            "elementId": payload.elementId,
            "elementClass": payload.elementClass,
            "elementText": payload.elementText,
            "clickX": payload.clickX,
            "clickY": payload.clickY,
            "isCta": is_cta,
            "conversionGoal": payload.conversionGoal,
            "customData": payload.customData,
        }),
    )


def scroll_event(payload: ScrollPayload) -> EventRow:
    depth = payload.maxScrollDepth if payload.maxScrollDepth is not None else payload.scrollDepth
    return EventRow(
        session_id=payload.sessionId or "",
        kind="scroll",
        event_type="scroll",
        event_action="scroll",
        event_value=depth,
        page_url=payload.pageUrl,
        custom_data=_compact({
            "scrollDepth": payload.scrollDepth,
            "maxScrollDepth": payload.maxScrollDepth,
            "timeToScroll": payload.timeToScroll,
            "viewportHeight": payload.viewportHeight,
            "pageHeight": payload.pageHeight,
        }),
    )


def navigation_event(payload: NavigationPathPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="navigation",
        event_type="navigation",
        event_category=payload.funnelName,
        event_action="step",
        event_label=payload.pageTitle,
        event_value=payload.stepNumber,
        page_url=payload.pageUrl,
        custom_data=_compact({
            "pathSequence": payload.pathSequence,
            "stepNumber": payload.stepNumber,
            "timeOnPage": payload.timeOnPage,
            "isEntry": bool(payload.isEntry),
            "isExit": bool(payload.isExit),
            "funnelName": payload.funnelName,
            "conversionStep": payload.conversionStep,
        }),
    )


def conversion_event(payload: ConversionGoalPayload) -> EventRow:
    goal_data = payload.goalData or {}
    value = goal_data.get("value")
    try:
        numeric_value = float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        numeric_value = 0.0
    return EventRow(
        session_id=payload.sessionId or "",
        kind="conversion",
        event_type="conversion",
        event_category=str(goal_data.get("type") or "custom"),
        event_action="goal",
        event_label=payload.goalName,
        event_value=numeric_value,
        page_url=payload.pageUrl,
        custom_data=goal_data,
        timestamp=parse_client_timestamp(payload.timestamp),
    )


def heatmap_events(payload: HeatmapPayload) -> list[EventRow]:
    rows: list[EventRow] = []
    for point in payload.heatmapData or []:
        rows.append(
            EventRow(
                session_id=payload.sessionId or "",
                kind="heatmap",
                event_type="heatmap",
                event_category=point.type or "click",
                event_action="interaction",
                event_label=point.element or "",
                event_value=point.hoverDuration,
                page_url=payload.pageUrl,
                custom_data=_compact({
                    "x": point.x or 0,
                    "y": point.y or 0,
                    "hoverDuration": point.hoverDuration or 0,
                    "scrollPosition": point.scrollPosition or 0,
                    "viewportWidth": payload.viewportWidth,
                    "viewportHeight": payload.viewportHeight,
                    "deviceType": payload.deviceType,
                }),
            )
        )
    return rows


def form_event(payload: FormAnalyticsPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="form",
        event_type="form",
        event_category=payload.formId,
        event_action=payload.actionType or "interaction",
        event_label=payload.fieldName,
        event_value=payload.completionTime,
        custom_data=_compact({
            "formName": payload.formName,
            "fieldType": payload.fieldType,
            "fieldValue": payload.fieldValue,
            "dropOffStep": payload.dropOffStep,
            "validationErrors": payload.validationErrors,
            "conversionGoal": payload.conversionGoal,
        }),
    )


def engagement_event(payload: ContentEngagementPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="engagement",
        event_type="engagement",
        event_action="content_engagement",
        event_label=payload.pageTitle,
        event_value=payload.timeOnPage,
        page_url=payload.pageUrl,
        custom_data=_compact({
            "timeOnPage": payload.timeOnPage,
            "scrollDepth": payload.scrollDepth,
            "clickCount": payload.clickCount,
        }),
    )


def exit_intent_event(payload: ExitIntentPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="exit_intent",
        event_type="exit_intent",
        event_action="exit_intent",
        event_value=payload.timeOnPage,
        page_url=payload.pageUrl,
        custom_data=_compact({"timeOnPage": payload.timeOnPage}),
    )


def social_share_event(payload: SocialSharePayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="social_share",
        event_type="social_share",
        event_category=payload.platform,
        event_action="share",
        event_label=payload.shareUrl,
        page_url=payload.pageUrl,
        custom_data=_compact({"shareUrl": payload.shareUrl}),
    )


def media_event(payload: MediaEngagementPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="media",
        event_type="media",
        event_category=payload.mediaType,
        event_action=payload.engagementType,
        event_label=payload.mediaId,
        event_value=payload.engagementValue,
        page_url=payload.pageUrl,
        custom_data=_compact({
            "mediaUrl": payload.mediaUrl,
            "duration": payload.duration,
            "customData": payload.customData,
        }),
    )


def search_event(payload: SearchPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="search",
        event_type="search",
        event_category=payload.searchType or "site",
        event_action=payload.searchEngine or "internal",
        event_label=payload.searchQuery,
        event_value=payload.resultsCount,
        page_url=payload.pageUrl,
        custom_data=_compact({
            "organic": True if payload.organic is None else payload.organic,
            "clickedResult": payload.clickedResult,
        }),
    )


def security_event(payload: SecurityEventPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="security",
        event_type="security",
        event_category=payload.eventType,
        event_action=payload.severity or "info",
        event_label=payload.actionTaken,
        page_url=payload.pageUrl,
        custom_data=_compact({
            "eventData": payload.eventData,
            "userAgent": payload.userAgent,
        }),
    )


def segment_event(payload: UserSegmentPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="segment",
        event_type="segment",
        event_category="behavioral",
        event_action="assign",
        event_label=payload.segment,
        custom_data=payload.attributes,
    )


def feature_usage_event(payload: FeatureUsagePayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="feature_usage",
        event_type="feature_usage",
        event_category=payload.featureCategory,
        event_action="use",
        event_label=payload.featureName,
        event_value=payload.usageCount if payload.usageCount is not None else 1,
        custom_data=_compact({
            "firstUsed": parse_client_timestamp(payload.firstUsed),
            "lastUsed": parse_client_timestamp(payload.lastUsed),
        }),
    )


def churn_event(payload: ChurnPredictionPayload) -> EventRow:
    return EventRow(
        session_id=payload.sessionId or "",
        kind="churn",
        event_type="churn",
        event_action="score",
        event_label=payload.churnRisk,
        event_value=payload.engagementScore,
        custom_data=_compact({"riskFactors": payload.riskFactors}),
    )


# ── Extended session attributes ────────────────────────────────────

def device_fields(payload: DeviceInfoPayload) -> dict[str, Any]:
    fields = _compact({
        "device_type": payload.deviceType,
        "browser": payload.browser,
        "os": payload.os,
        "user_agent": payload.userAgent,
        "screen_resolution": payload.screenResolution,
        "viewport_size": payload.viewportSize,
    })
    if payload.userAgent:
        fields["bot_detected"] = looks_like_bot(payload.userAgent)
    return fields


def geographic_fields(payload: GeographicInfoPayload) -> dict[str, Any]:
    return _compact({
        "timezone": payload.timezone,
        "language": payload.language,
        "country": payload.country,
        "region": payload.region,
        "city": payload.city,
    })


def visitor_fields(payload: VisitorTypePayload) -> dict[str, Any]:
    return _compact({
        "is_returning": payload.isReturning,
        "first_visit": parse_client_timestamp(payload.firstVisit),
    })


def consent_fields(payload: ConsentPayload) -> dict[str, Any]:
    return _compact({"consent_given": payload.consent})


def traffic_fields(payload: TrafficSourcePayload) -> dict[str, Any]:
    utm = payload.utmParams
    source = payload.trafficSource
    if not source and payload.isDirect:
        source = "direct"
    return _compact({
        "referrer": payload.referrer,
        "traffic_source": source,
        "utm_source": utm.utm_source if utm else None,
        "utm_medium": utm.utm_medium if utm else None,
        "utm_campaign": utm.utm_campaign if utm else None,
        "utm_term": utm.utm_term if utm else None,
        "utm_content": utm.utm_content if utm else None,
    })
