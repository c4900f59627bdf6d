"""Observability helpers."""

from uam_analytics.observability.otel import (
    initialize,
    is_enabled,
    shutdown,
    start_span,
    record_ingestion,
    record_query,
)

__all__ = [
    "initialize",
    "is_enabled",
    "shutdown",
    "start_span",
    "record_ingestion",
    "record_query",
]
