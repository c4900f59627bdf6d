"""Error taxonomy for the collector API.

Every handler-level failure is raised as one of these and rendered by
``main.py`` as a ``{"error": message}`` envelope with the class status code.
"""
from __future__ import annotations


class AnalyticsError(Exception):
    status_code = 500

    def __init__(self, message: str, *, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(AnalyticsError):
    status_code = 400


class MissingFieldError(ValidationError):
    """A required field was absent, null, or an empty string."""

    def __init__(self, fields: list[str] | tuple[str, ...]):
        self.fields = list(fields)
        super().__init__(_required_message(self.fields))


class NotFoundError(AnalyticsError):
    # Unknown metric names are a client error, not a missing resource.
    status_code = 400


class StorageError(AnalyticsError):
    status_code = 500


class AuthError(AnalyticsError):
    status_code = 401


def _required_message(fields: list[str]) -> str:
    if not fields:
        return "Required fields are missing"
    if len(fields) == 1:
        return f"{fields[0]} is required"
    if len(fields) == 2:
        return f"{fields[0]} and {fields[1]} are required"
    return f"{', '.join(fields[:-1])}, and {fields[-1]} are required"
