"""
Database Session Management

SQLAlchemy engine + sessionmaker. Reads DATABASE_URL from environment.
Provides get_db() generator for FastAPI Depends injection.
"""

import os
from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from healer.logger import log

load_dotenv()

DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    "postgresql://localhost:5432/workflowhealer",
)

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
    connect_args={"connect_timeout": 5},
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

SCHEMA = [
    """CREATE TABLE IF NOT EXISTS heal_runs (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        identity TEXT,
        workflow_name TEXT NOT NULL,
        fix_count INTEGER NOT NULL DEFAULT 0,
        confidence FLOAT NOT NULL,
        fixes JSONB DEFAULT '[]'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )""",
    "CREATE INDEX IF NOT EXISTS idx_heal_runs_identity ON heal_runs(identity)",
    """CREATE TABLE IF NOT EXISTS deployments (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        heal_run_id UUID REFERENCES heal_runs(id) ON DELETE CASCADE,
        identity TEXT,
        target TEXT NOT NULL DEFAULT 'n8n',
        external_id TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        message TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )""",
    "CREATE INDEX IF NOT EXISTS idx_deployments_identity ON deployments(identity)",
]


def get_db():
    """FastAPI dependency — yields a session, closes on teardown."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db():
    """Verify database connectivity. Logs warning on failure instead of crashing."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        log("db.connected")
        _ensure_schema()
    except Exception as e:
        log("db.unreachable", level="warning", error=str(e))


def _ensure_schema():
    """Create tables if missing (idempotent)."""
    try:
        with engine.begin() as conn:
            for sql in SCHEMA:
                conn.execute(text(sql))
        log("db.schema_ready")
    except Exception as e:
        log("db.schema_warning", level="warning", error=str(e))
