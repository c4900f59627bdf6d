"""Pydantic models for tracker payloads (camelCase, matching the client script)."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class IngestPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    sessionId: Optional[str] = None
    ipAddress: Optional[str] = None


# ── Core tracking ──────────────────────────────────────────────────

class PageViewPayload(IngestPayload):
    pageUrl: str
    pageTitle: Optional[str] = None
    referrer: Optional[str] = None
    userAgent: Optional[str] = None
    timeOnPage: Optional[float] = None
    scrollDepth: Optional[float] = None
    deviceType: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    screenResolution: Optional[str] = None
    viewportSize: Optional[str] = None


class EventPayload(IngestPayload):
    eventType: str
    eventCategory: Optional[str] = None
    eventAction: Optional[str] = None
    eventLabel: Optional[str] = None
    eventValue: Optional[float] = None
    pageUrl: Optional[str] = None
    customData: Any = None


class PerformancePayload(IngestPayload):
    pageUrl: str
    loadTime: Optional[float] = None
    domContentLoaded: Optional[float] = None
    firstContentfulPaint: Optional[float] = None
    largestContentfulPaint: Optional[float] = None
    firstInputDelay: Optional[float] = None
    cumulativeLayoutShift: Optional[float] = None
    timeToInteractive: Optional[float] = None
    connectionType: Optional[str] = None
    deviceMemory: Optional[int] = None


class ErrorPayload(IngestPayload):
    errorType: str
    errorMessage: str
    errorStack: Optional[str] = None
    pageUrl: Optional[str] = None
    userAgent: Optional[str] = None


class SessionEndPayload(IngestPayload):
    totalTimeSpent: Optional[float] = None
    totalClicks: Optional[int] = None
    maxScrollDepth: Optional[float] = None
    navigationPath: Optional[list[Any]] = None


# ── Traffic & engagement ───────────────────────────────────────────

class ClickPayload(IngestPayload):
    elementType: str
    elementId: Optional[str] = None
    elementClass: Optional[str] = None
    elementText: Optional[str] = None
    pageUrl: Optional[str] = None
    clickX: Optional[float] = None
    clickY: Optional[float] = None
    isCta: Optional[bool] = None
    conversionGoal: Optional[str] = None
    customData: Any = None


class ScrollPayload(IngestPayload):
    pageUrl: str
    scrollDepth: Optional[float] = None
    maxScrollDepth: Optional[float] = None
    timeToScroll: Optional[float] = None
    viewportHeight: Optional[int] = None
    pageHeight: Optional[int] = None


class NavigationPathPayload(IngestPayload):
    pageUrl: str
    pathSequence: Optional[str] = None
    stepNumber: Optional[int] = None
    pageTitle: Optional[str] = None
    timeOnPage: Optional[float] = None
    isEntry: Optional[bool] = None
    isExit: Optional[bool] = None
    funnelName: Optional[str] = None
    conversionStep: Optional[int] = None


# ── Audience ───────────────────────────────────────────────────────

class DeviceInfoPayload(IngestPayload):
    deviceType: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    userAgent: Optional[str] = None
    screenResolution: Optional[str] = None
    viewportSize: Optional[str] = None
    colorDepth: Optional[int] = None
    pixelRatio: Optional[float] = None
    touchSupport: Optional[bool] = None
    connectionType: Optional[str] = None
    deviceMemory: Optional[int] = None


class GeographicInfoPayload(IngestPayload):
    timezone: Optional[str] = None
    language: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None


class VisitorTypePayload(IngestPayload):
    isReturning: Optional[bool] = None
    firstVisit: Any = None


# ── Conversions & behavior ─────────────────────────────────────────

class ConversionGoalPayload(IngestPayload):
    goalName: str
    goalData: Optional[dict[str, Any]] = None
    pageUrl: Optional[str] = None
    timestamp: Any = None


class HeatmapPoint(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    element: Optional[str] = None
    type: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    hoverDuration: Optional[float] = None
    scrollPosition: Optional[float] = None


class HeatmapPayload(IngestPayload):
    pageUrl: str
    heatmapData: Optional[list[HeatmapPoint]] = None
    viewportWidth: Optional[int] = None
    viewportHeight: Optional[int] = None
    deviceType: Optional[str] = None


class FormAnalyticsPayload(IngestPayload):
    formId: str
    formName: Optional[str] = None
    fieldName: Optional[str] = None
    fieldType: Optional[str] = None
    fieldValue: Optional[str] = None
    actionType: Optional[str] = None
    completionTime: Optional[float] = None
    dropOffStep: Optional[int] = None
    validationErrors: Any = None
    conversionGoal: Optional[str] = None


# ── Content ────────────────────────────────────────────────────────

class ContentEngagementPayload(IngestPayload):
    pageUrl: str
    pageTitle: Optional[str] = None
    timeOnPage: Optional[float] = None
    scrollDepth: Optional[float] = None
    clickCount: Optional[int] = None


class ExitIntentPayload(IngestPayload):
    pageUrl: str
    timeOnPage: Optional[float] = None


class SocialSharePayload(IngestPayload):
    platform: str
    pageUrl: Optional[str] = None
    shareUrl: Optional[str] = None


class MediaEngagementPayload(IngestPayload):
    mediaType: str
    engagementType: str
    mediaId: Optional[str] = None
    mediaUrl: Optional[str] = None
    engagementValue: Optional[float] = None
    duration: Optional[float] = None
    pageUrl: Optional[str] = None
    customData: Any = None


# ── Marketing ──────────────────────────────────────────────────────

class UtmParams(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None


class TrafficSourcePayload(IngestPayload):
    referrer: Optional[str] = None
    trafficSource: Optional[str] = None
    isDirect: Optional[bool] = None
    utmParams: Optional[UtmParams] = None


class SearchPayload(IngestPayload):
    searchQuery: str
    searchType: Optional[str] = None
    pageUrl: Optional[str] = None
    searchEngine: Optional[str] = None
    resultsCount: Optional[int] = None
    clickedResult: Optional[int] = None
    organic: Optional[bool] = None


# ── Security & compliance ──────────────────────────────────────────

class SecurityEventPayload(IngestPayload):
    eventType: str
    severity: Optional[str] = None
    userAgent: Optional[str] = None
    eventData: Any = None
    actionTaken: Optional[str] = None
    pageUrl: Optional[str] = None


class ConsentPayload(IngestPayload):
    consent: Optional[bool] = None
    timestamp: Any = None


# ── Advanced ───────────────────────────────────────────────────────

class UserSegmentPayload(IngestPayload):
    segment: str
    attributes: Any = None


class FeatureUsagePayload(IngestPayload):
    featureName: str
    featureCategory: Optional[str] = None
    usageCount: Optional[int] = None
    firstUsed: Any = None
    lastUsed: Any = None


class ChurnPredictionPayload(IngestPayload):
    engagementScore: Optional[float] = None
    churnRisk: Optional[str] = None
    riskFactors: Any = None
