"""UAM Analytics collector configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


# Project root (one level up from uam_analytics/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

ENVIRONMENT = os.getenv("UAM_ENVIRONMENT", "production").strip().lower()

# Database
DB_PATH = Path(os.getenv("UAM_DB_PATH", str(PROJECT_ROOT / "data" / "analytics.db")))

# Server settings
HOST = os.getenv("UAM_HOST", "0.0.0.0")
PORT = _env_int("UAM_PORT", 3001)
MAX_BODY_BYTES = _env_int("UAM_MAX_BODY_BYTES", 10 * 1024 * 1024)

# CORS
FRONTEND_ORIGINS = _env_list(
    "UAM_FRONTEND_ORIGINS",
    [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8080",
    ],
)

# Dashboard read gate. Empty disables it.
API_TOKEN = os.getenv("UAM_API_TOKEN", "").strip()

# Privacy
ANONYMIZE_IP = _env_bool("UAM_ANONYMIZE_IP", True)

# Rollups
DEFAULT_PERIOD = os.getenv("UAM_DEFAULT_PERIOD", "7d")
TOP_PAGES_LIMIT = _env_int("UAM_TOP_PAGES_LIMIT", 10)

# Observability
OTEL_ENABLED = _env_bool("UAM_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("UAM_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("UAM_OTEL_SERVICE_NAME", "uam-analytics")
PROM_PORT = _env_int("UAM_PROM_PORT", 9464)

# Beacon client
BEACON_ENDPOINT = os.getenv("UAM_BEACON_ENDPOINT", "http://localhost:3001/api/analytics")
BEACON_MAX_RETRIES = _env_int("UAM_BEACON_MAX_RETRIES", 3)
BEACON_RETRY_DELAY_SECONDS = _env_float("UAM_BEACON_RETRY_DELAY_SECONDS", 1.0)
BEACON_TIMEOUT_SECONDS = _env_float("UAM_BEACON_TIMEOUT_SECONDS", 5.0)


def is_development() -> bool:
    return ENVIRONMENT == "development"
