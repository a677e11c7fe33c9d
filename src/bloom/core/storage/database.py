"""SQLite database management for the Bloom score store.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One immutable row per score calculation
CREATE TABLE IF NOT EXISTS health_scores (
    id                  TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    timestamp           TEXT NOT NULL,
    method              TEXT NOT NULL,

    -- Normalized 0-10 factors (unencrypted for longitudinal queries)
    symptom_score       REAL NOT NULL,
    vital_score         REAL NOT NULL,
    activity_score      REAL NOT NULL,
    nutrition_score     REAL NOT NULL,
    pcos_score          REAL NOT NULL,
    sleep_score         REAL,
    stress_level        REAL,

    -- Result
    final_score         REAL NOT NULL,
    status              TEXT NOT NULL,
    balance_status      TEXT NOT NULL,
    equilibrium_factor  REAL NOT NULL,
    flower_level        INTEGER NOT NULL,
    raw_score           REAL,
    standard_deviation  REAL,
    recommendations_json TEXT,

    -- Iterative / remote metadata
    iterations          INTEGER,
    equilibrium_reached INTEGER,
    fallback_used       INTEGER NOT NULL DEFAULT 0,

    -- Encrypted JSON blob (raw observations, when scored from them)
    observations_enc    TEXT,

    created_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_scores_user    ON health_scores(user_id);
CREATE INDEX IF NOT EXISTS idx_scores_user_ts ON health_scores(user_id, timestamp);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    user_ref        TEXT,
    scoring_method  TEXT,
    fallback_used   INTEGER DEFAULT 0,
    record_id       TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_tool      ON audit_log(tool_name);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class ScoreDatabase:
    """SQLite database manager for stored health scores.

    Supports both file-based and in-memory (`:memory:`) databases.

    Usage::

        with ScoreDatabase(":memory:") as db:
            db.connection.execute(...)
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    @property
    def path(self) -> str:
        return self._db_path

    def initialize(self) -> None:
        """Open the connection and ensure the schema exists. Idempotent."""
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file))
        else:
            self._conn = sqlite3.connect(":memory:")

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Score database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        conn = self.connection
        conn.executescript(_SCHEMA_V1)

        current_version = self.get_schema_version()

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version (0 for a fresh database)."""
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Score database closed")

    def __enter__(self) -> ScoreDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
