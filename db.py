import itertools
import logging
import sqlite3
from contextlib import contextmanager
from typing import Optional

from fastapi import Request

from config import DB_PATH

logger = logging.getLogger(__name__)

_memory_ids = itertools.count(1)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        username      TEXT    NOT NULL UNIQUE,
        email         TEXT    NOT NULL UNIQUE,
        password_hash TEXT    NOT NULL,
        full_name     TEXT,
        date_of_birth TEXT,
        created_at    TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at    TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reports (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id     INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        file_name   TEXT    NOT NULL,
        file_path   TEXT    NOT NULL,
        file_type   TEXT    NOT NULL,
        report_type TEXT    NOT NULL,
        report_date TEXT    NOT NULL,
        description TEXT,
        created_at  TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at  TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vitals (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id     INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        vital_type  TEXT    NOT NULL,
        value       REAL    NOT NULL,
        unit        TEXT    NOT NULL,
        measured_at TEXT    NOT NULL,
        notes       TEXT,
        created_at  TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS shares (
        id                  INTEGER PRIMARY KEY AUTOINCREMENT,
        report_id           INTEGER NOT NULL REFERENCES reports(id) ON DELETE CASCADE,
        owner_id            INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        shared_with_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        access_level        TEXT    NOT NULL DEFAULT 'viewer',
        created_at          TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP,
        expires_at          TEXT,
        UNIQUE (report_id, shared_with_user_id)
    )
    """,
    # Indexes for common query patterns
    "CREATE INDEX IF NOT EXISTS idx_reports_user_id ON reports(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_vitals_user_type ON vitals(user_id, vital_type, measured_at)",
    "CREATE INDEX IF NOT EXISTS idx_shares_grantee ON shares(shared_with_user_id)",
)


class Database:
    """The record store: one SQLite database with an explicit lifecycle.

    ``open()`` creates the schema and must be called before ``connect()``;
    ``close()`` releases it. ``":memory:"`` gives a private in-memory
    database that lives until ``close()``.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = str(path or DB_PATH)
        self._uri = None
        if self.path == ":memory:":
            self._uri = f"file:health_wallet_mem_{next(_memory_ids)}?mode=memory&cache=shared"
        self._anchor: Optional[sqlite3.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._anchor is not None

    def _new_connection(self) -> sqlite3.Connection:
        if self._uri:
            conn = sqlite3.connect(self._uri, uri=True, check_same_thread=False)
        else:
            conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def open(self):
        if self._anchor is not None:
            return self
        # The anchor keeps a shared in-memory database alive between connections.
        self._anchor = self._new_connection()
        for statement in SCHEMA:
            self._anchor.execute(statement)
        self._anchor.commit()
        logger.info("Database ready at %s", self.path)
        return self

    def close(self):
        if self._anchor is not None:
            self._anchor.close()
            self._anchor = None
            logger.info("Database closed")

    @contextmanager
    def connect(self):
        if self._anchor is None:
            raise RuntimeError("Database is not open")
        conn = self._new_connection()
        try:
            yield conn
        finally:
            conn.close()


def get_db(request: Request):
    """FastAPI dependency: one connection per request from the app's Database."""
    with request.app.state.db.connect() as conn:
        yield conn
