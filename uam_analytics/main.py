"""UAM Analytics collector: FastAPI application entry point."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from uam_analytics import config
from uam_analytics.date_utils import utc_now
from uam_analytics.db import connection, migrations
from uam_analytics.errors import AnalyticsError, StorageError
from uam_analytics.observability import initialize as initialize_observability, shutdown as shutdown_observability
from uam_analytics.routers.analytics import analytics_router
from uam_analytics.routers.ingest import ingest_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uam")

_started_at = time.monotonic()


class BodySizeLimitMiddleware:
    """Answer 413 when a request body exceeds ``config.MAX_BODY_BYTES``.

    A declared Content-Length is checked before anything is read. Otherwise
    the body is buffered as it streams in, so chunked uploads are counted too,
    and replayed to the app once it is known to fit.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = config.MAX_BODY_BYTES
        declared = _header(scope, b"content-length")
        if declared:
            try:
                size = int(declared)
            except ValueError:
                await JSONResponse(status_code=400, content={"error": "Invalid Content-Length header"})(scope, receive, send)
                return
            if size > limit:
                await _too_large(scope, receive, send, size)
                return

        chunks: list[bytes] = []
        received = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > limit:
                await _too_large(scope, receive, send, received)
                return
            chunks.append(chunk)
            if not message.get("more_body", False):
                break

        replayed = False

        async def replay():
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": b"".join(chunks), "more_body": False}

        await self.app(scope, replay, send)


def _header(scope, name: bytes) -> str | None:
    for key, value in scope.get("headers", []):
        if key.lower() == name:
            return value.decode("latin-1")
    return None


async def _too_large(scope, receive, send, size: int) -> None:
    logger.warning("Rejected %s %s: body of at least %s bytes", scope.get("method"), scope.get("path"), size)
    await JSONResponse(status_code=413, content={"error": "Request body too large"})(scope, receive, send)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("UAM analytics collector starting up (environment=%s)", config.ENVIRONMENT)
    initialize_observability(app)

    db = await connection.get_connection()
    await migrations.run_migrations(db)

    yield

    logger.info("UAM analytics collector shutting down")
    shutdown_observability(app)
    await connection.close_connection()


app = FastAPI(
    title="UAM Analytics API",
    description="Collector and rollup API for the UAM website analytics tracker",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(BodySizeLimitMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(AnalyticsError)
async def analytics_error_handler(request: Request, exc: AnalyticsError):
    content = {"error": exc.message}
    if isinstance(exc, StorageError) and exc.detail and config.is_development():
        content["message"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.info("Invalid request body on %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(ingest_router)
app.include_router(analytics_router)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "uptime": round(time.monotonic() - _started_at, 3),
        "db": "connected" if connection.is_connected() else "disconnected",
    }


if __name__ == "__main__":
    uvicorn.run("uam_analytics.main:app", host=config.HOST, port=config.PORT)
