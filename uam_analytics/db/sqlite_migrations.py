"""Database schema creation and versioning.

All CREATE TABLE statements for the collector.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("uam.db")

SCHEMA_VERSION = 1

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Page views (append-only) ────────────────────────────────────
CREATE TABLE IF NOT EXISTS page_views (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id        TEXT NOT NULL,
    page_url          TEXT NOT NULL,
    page_title        TEXT,
    referrer          TEXT,
    user_agent        TEXT,
    ip_address        TEXT,
    timestamp         DATETIME DEFAULT CURRENT_TIMESTAMP,
    time_on_page      INTEGER,
    scroll_depth      REAL,
    device_type       TEXT,
    browser           TEXT,
    os                TEXT,
    screen_resolution TEXT,
    viewport_size     TEXT
);

CREATE INDEX IF NOT EXISTS idx_page_views_session_id ON page_views(session_id);
CREATE INDEX IF NOT EXISTS idx_page_views_timestamp  ON page_views(timestamp);
CREATE INDEX IF NOT EXISTS idx_page_views_page_url   ON page_views(page_url);

-- ── 2. Sessions (one mutable row per visit) ────────────────────────
CREATE TABLE IF NOT EXISTS user_sessions (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id       TEXT UNIQUE NOT NULL,
    first_visit      DATETIME DEFAULT CURRENT_TIMESTAMP,
    last_activity    DATETIME DEFAULT CURRENT_TIMESTAMP,
    total_page_views INTEGER DEFAULT 1,
    total_time_spent INTEGER DEFAULT 0,
    ip_address       TEXT,
    user_agent       TEXT,
    device_type      TEXT,
    browser          TEXT,
    os               TEXT,
    country          TEXT,
    city             TEXT,
    is_bounce        BOOLEAN DEFAULT 1,
    entry_page       TEXT,
    exit_page        TEXT
);

CREATE INDEX IF NOT EXISTS idx_sessions_first_visit ON user_sessions(first_visit);

-- Marketing / consent / engagement attributes per session
CREATE TABLE IF NOT EXISTS enhanced_sessions (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id           TEXT UNIQUE NOT NULL,
    first_visit          DATETIME DEFAULT CURRENT_TIMESTAMP,
    last_activity        DATETIME DEFAULT CURRENT_TIMESTAMP,
    user_agent           TEXT,
    device_type          TEXT,
    browser              TEXT,
    os                   TEXT,
    country              TEXT,
    city                 TEXT,
    region               TEXT,
    language             TEXT,
    timezone             TEXT,
    screen_resolution    TEXT,
    viewport_size        TEXT,
    is_returning         BOOLEAN DEFAULT 0,
    referrer             TEXT,
    traffic_source       TEXT,
    utm_source           TEXT,
    utm_medium           TEXT,
    utm_campaign         TEXT,
    utm_term             TEXT,
    utm_content          TEXT,
    form_interactions    INTEGER DEFAULT 0,
    social_shares        INTEGER DEFAULT 0,
    exit_intent_detected BOOLEAN DEFAULT 0,
    bot_detected         BOOLEAN DEFAULT 0,
    suspicious_activity  BOOLEAN DEFAULT 0,
    consent_given        BOOLEAN DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_enhanced_sessions_activity ON enhanced_sessions(last_activity);

-- ── 3. Generic interaction events (append-only, tagged by kind) ────
CREATE TABLE IF NOT EXISTS events (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id     TEXT NOT NULL,
    kind           TEXT NOT NULL DEFAULT 'custom',
    event_type     TEXT NOT NULL,
    event_category TEXT,
    event_action   TEXT,
    event_label    TEXT,
    event_value    REAL,
    page_url       TEXT,
    timestamp      DATETIME DEFAULT CURRENT_TIMESTAMP,
    custom_data    TEXT,
    ip_address     TEXT
);

CREATE INDEX IF NOT EXISTS idx_events_session_id ON events(session_id);
CREATE INDEX IF NOT EXISTS idx_events_timestamp  ON events(timestamp);
CREATE INDEX IF NOT EXISTS idx_events_type       ON events(event_type);

-- ── 4. Performance metrics (append-only) ───────────────────────────
CREATE TABLE IF NOT EXISTS performance_metrics (
    id                       INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id               TEXT NOT NULL,
    page_url                 TEXT NOT NULL,
    load_time                INTEGER,
    dom_content_loaded       INTEGER,
    first_contentful_paint   INTEGER,
    largest_contentful_paint INTEGER,
    first_input_delay        INTEGER,
    cumulative_layout_shift  REAL,
    time_to_interactive      INTEGER,
    timestamp                DATETIME DEFAULT CURRENT_TIMESTAMP,
    connection_type          TEXT,
    device_memory            INTEGER
);

CREATE INDEX IF NOT EXISTS idx_performance_session_id ON performance_metrics(session_id);
CREATE INDEX IF NOT EXISTS idx_performance_timestamp  ON performance_metrics(timestamp);

-- ── 5. Errors (append-only) ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS errors (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id    TEXT,
    error_type    TEXT NOT NULL,
    error_message TEXT,
    error_stack   TEXT,
    page_url      TEXT,
    timestamp     DATETIME DEFAULT CURRENT_TIMESTAMP,
    user_agent    TEXT,
    ip_address    TEXT
);

CREATE INDEX IF NOT EXISTS idx_errors_timestamp ON errors(timestamp);

-- ── 6. Derived tables (batch-written, no request write path) ───────
CREATE TABLE IF NOT EXISTS daily_summary (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    date                 DATE NOT NULL,
    total_visitors       INTEGER DEFAULT 0,
    total_page_views     INTEGER DEFAULT 0,
    total_sessions       INTEGER DEFAULT 0,
    bounce_rate          REAL DEFAULT 0,
    avg_session_duration INTEGER DEFAULT 0,
    top_pages            TEXT,
    top_referrers        TEXT,
    device_breakdown     TEXT,
    browser_breakdown    TEXT,
    country_breakdown    TEXT,
    UNIQUE(date)
);

CREATE TABLE IF NOT EXISTS ai_insights (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    insight_type      TEXT NOT NULL,
    insight_category  TEXT NOT NULL,
    insight_data      TEXT NOT NULL,
    confidence_score  REAL,
    impact_score      REAL,
    recommendation    TEXT,
    created_at        DATETIME DEFAULT CURRENT_TIMESTAMP,
    expires_at        DATETIME,
    applied           BOOLEAN DEFAULT 0
);
"""


async def _table_columns(db: aiosqlite.Connection, table: str) -> set[str]:
    async with db.execute(f"PRAGMA table_info({table})") as cur:
        rows = await cur.fetchall()
    return {str(row[1]) for row in rows}


async def _ensure_column(db: aiosqlite.Connection, table: str, column: str, ddl: str) -> None:
    columns = await _table_columns(db, table)
    if column in columns:
        return
    await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")


async def _ensure_index(db: aiosqlite.Connection, ddl: str) -> None:
    await db.execute(ddl)


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables and indexes. Idempotent."""
    # Check current schema version
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.Error:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info("Schema is up to date (version %s)", current_version)
        return

    logger.info("Running migrations: %s -> %s", current_version, SCHEMA_VERSION)

    # Execute all CREATE TABLE statements
    await db.executescript(_TABLES)

    # Databases written by the legacy collector predate the kind discriminator.
    await _ensure_column(db, "events", "kind", "TEXT NOT NULL DEFAULT 'custom'")
    await _ensure_index(db, "CREATE INDEX IF NOT EXISTS idx_events_kind ON events(kind, timestamp)")

    # Record schema version
    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info("Migrations complete, schema version %s", SCHEMA_VERSION)
