"""Dashboard read endpoint."""
from __future__ import annotations

import hmac

from fastapi import APIRouter, Header, Query

from uam_analytics import config
from uam_analytics.db import connection
from uam_analytics.db.factory import get_analytics_repository
from uam_analytics.errors import AuthError
from uam_analytics.services.rollups import build_metric

analytics_router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def _check_token(authorization: str | None) -> None:
    expected = config.API_TOKEN
    if not expected:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), expected):
        raise AuthError("Unauthorized")


@analytics_router.get("/data")
async def get_analytics_data(
    period: str | None = Query(None),
    metric: str | None = Query(None),
    authorization: str | None = Header(None),
):
    """Grouped rollups for one dashboard section over a rolling window."""
    _check_token(authorization)
    db = await connection.get_connection()
    repo = get_analytics_repository(db)
    return await build_metric(repo, metric, period)
