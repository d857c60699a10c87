"""
SQLite database layer for the CloudPrep API server.

Uses raw sqlite3 with WAL mode and parameterized queries.
A schema_version table handles migrations.
"""

from __future__ import annotations

import fcntl
import sqlite3
from datetime import datetime
from pathlib import Path

from flask import current_app, g


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Certification tracks
CREATE TABLE IF NOT EXISTS exam_types (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    display_name TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    domains TEXT NOT NULL DEFAULT '[]',
    passing_score INTEGER NOT NULL DEFAULT 70,
    time_limit INTEGER NOT NULL DEFAULT 90,
    question_count INTEGER NOT NULL DEFAULT 65,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);

-- Question bank (only approved rows are served to clients)
CREATE TABLE IF NOT EXISTS questions (
    id TEXT PRIMARY KEY,
    exam_type_id TEXT NOT NULL REFERENCES exam_types(id),
    text TEXT NOT NULL,
    type TEXT NOT NULL,
    domain TEXT NOT NULL,
    difficulty TEXT NOT NULL,
    options TEXT NOT NULL,
    correct_answers TEXT NOT NULL,
    explanation TEXT NOT NULL DEFAULT '',
    explanation_blocks TEXT,
    status TEXT NOT NULL DEFAULT 'draft'
        CHECK (status IN ('draft', 'pending', 'approved', 'archived')),
    version INTEGER NOT NULL DEFAULT 1,
    created_by TEXT,
    approved_by TEXT,
    approved_at TEXT,
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_questions_exam_type ON questions(exam_type_id);
CREATE INDEX IF NOT EXISTS idx_questions_feed ON questions(exam_type_id, status, version);
CREATE INDEX IF NOT EXISTS idx_questions_domain ON questions(domain);

-- Completed attempts uploaded by devices, queued for cloud archival
CREATE TABLE IF NOT EXISTS exam_attempts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    exam_type_id TEXT NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    score INTEGER,
    passed INTEGER,
    total_questions INTEGER NOT NULL,
    remaining_time_ms INTEGER NOT NULL DEFAULT 0,
    answers TEXT NOT NULL DEFAULT '[]',
    sync_status TEXT NOT NULL DEFAULT 'pending'
        CHECK (sync_status IN ('pending', 'synced', 'failed')),
    sync_retries INTEGER NOT NULL DEFAULT 0,
    synced_at TEXT,
    sync_error TEXT,
    received_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_exam_attempts_user ON exam_attempts(user_id);
CREATE INDEX IF NOT EXISTS idx_exam_attempts_sync ON exam_attempts(sync_status, sync_retries);

-- Lifetime counters per user (MAX-merged)
CREATE TABLE IF NOT EXISTS user_stats (
    user_id TEXT PRIMARY KEY,
    total_exams INTEGER NOT NULL DEFAULT 0,
    total_practice INTEGER NOT NULL DEFAULT 0,
    total_questions INTEGER NOT NULL DEFAULT 0,
    total_time_spent_ms INTEGER NOT NULL DEFAULT 0,
    last_activity_at TEXT,
    updated_at TEXT NOT NULL DEFAULT ''
);
"""


MIGRATIONS: list[tuple[int, str]] = [
    # Version 1 = base schema.
    # -----------------------------------------------------------
    # Migration 2: track when the sync pipeline last touched an attempt
    (2, """
        ALTER TABLE exam_attempts ADD COLUMN last_sync_attempt_at TEXT;
        CREATE INDEX IF NOT EXISTS idx_exam_attempts_synced_at ON exam_attempts(synced_at);
    """),
    # Migration 3: per-attempt domain breakdown for reporting
    (3, """
        ALTER TABLE exam_attempts ADD COLUMN domain_breakdown TEXT NOT NULL DEFAULT '[]';
    """),
]


def connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def get_db() -> sqlite3.Connection:
    """Return a DB connection from Flask g, creating if needed."""
    if "db" not in g:
        g.db = connect(current_app.config.get("DATABASE", str(Path(__file__).parent / "cloudprep.db")))
    return g.db


def close_db(e=None) -> None:
    """Teardown handler — close DB connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db() -> None:
    """Execute schema DDL to create all tables."""
    db = get_db()
    db.executescript(SCHEMA)
    row = db.execute("SELECT version FROM schema_version WHERE version = 1").fetchone()
    if row is None:
        db.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (1, ?)",
            (datetime.now().isoformat(),),
        )
    db.commit()


def run_migrations() -> None:
    """Apply any unapplied versioned migrations.

    Uses file-based locking to prevent race conditions when multiple
    Gunicorn workers start simultaneously.
    """
    db_url = current_app.config.get("DATABASE", str(Path(__file__).parent / "cloudprep.db"))
    lock_file = None

    if db_url != ":memory:":
        lock_path = Path(db_url).with_suffix(".migration.lock")
        try:
            lock_file = open(lock_path, "w")
            fcntl.flock(lock_file, fcntl.LOCK_EX)
        except OSError:
            lock_file = None

    try:
        db = get_db()
        applied = {
            row["version"]
            for row in db.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version not in applied:
                try:
                    db.executescript(sql)
                except sqlite3.OperationalError as e:
                    err_msg = str(e).lower()
                    if "duplicate column" not in err_msg and "already exists" not in err_msg:
                        raise
                db.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now().isoformat()),
                )
                db.commit()
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def ensure_db() -> None:
    init_db()
    run_migrations()


def init_app(app) -> None:
    """Register teardown and auto-init on first request."""
    app.teardown_appcontext(close_db)

    @app.before_request
    def _ensure_db():
        if not getattr(app, "_db_initialized", False):
            ensure_db()
            app._db_initialized = True
