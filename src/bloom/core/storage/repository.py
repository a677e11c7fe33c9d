"""Score repository: append-only store of health score calculations.

Mediates between ScoreRecord and SQLite, using FieldEncryptor for the raw
observations. There is deliberately no update path; a new calculation is
a new row.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from bloom.core.storage.database import ScoreDatabase
from bloom.core.storage.encryption import FieldEncryptor
from bloom.core.storage.models import ScoreRecord

logger = logging.getLogger(__name__)

# Columns that may be read as a time series. Anything interpolated into SQL
# must come from this set.
HISTORY_COLUMNS = {
    "final_score",
    "symptom_score",
    "vital_score",
    "activity_score",
    "nutrition_score",
    "pcos_score",
    "sleep_score",
    "stress_level",
    "equilibrium_factor",
}


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class ScoreRepository:
    """Insert / query repository for stored health scores.

    Usage::

        db = ScoreDatabase(":memory:")
        db.initialize()
        repo = ScoreRepository(db, FieldEncryptor(key="..."))

        record_id = repo.insert(record)
        latest = repo.get_latest("user-1")
    """

    def __init__(self, database: ScoreDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Insert / query
    # ------------------------------------------------------------------

    def insert(self, record: ScoreRecord) -> str:
        """Persist a score record.

        Empty ``id``, ``timestamp`` or ``created_at`` are filled in.

        Returns:
            The record ID.

        Raises:
            RepositoryError: If the record has no user_id.
        """
        if not record.user_id:
            raise RepositoryError("Score records require a user_id")

        conn = self._db.connection
        rid = record.id or self._new_id()
        now = self._now_iso()

        conn.execute(
            """INSERT INTO health_scores (
                id, user_id, timestamp, method,
                symptom_score, vital_score, activity_score, nutrition_score, pcos_score,
                sleep_score, stress_level,
                final_score, status, balance_status, equilibrium_factor, flower_level,
                raw_score, standard_deviation, recommendations_json,
                iterations, equilibrium_reached, fallback_used,
                observations_enc, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                rid,
                record.user_id,
                record.timestamp or now,
                record.method,
                record.symptom_score,
                record.vital_score,
                record.activity_score,
                record.nutrition_score,
                record.pcos_score,
                record.sleep_score,
                record.stress_level,
                record.final_score,
                record.status,
                record.balance_status,
                record.equilibrium_factor,
                record.flower_level,
                record.raw_score,
                record.standard_deviation,
                json.dumps(list(record.recommendations)),
                record.iterations,
                None if record.equilibrium_reached is None else int(record.equilibrium_reached),
                int(record.fallback_used),
                self._enc.encrypt(record.observations),
                record.created_at or now,
            ),
        )
        conn.commit()
        logger.info("Saved score %s (method=%s, score=%s)", rid, record.method, record.final_score)
        return rid

    def get(self, record_id: str) -> ScoreRecord | None:
        row = self._db.connection.execute(
            "SELECT * FROM health_scores WHERE id = ?", (record_id,)
        ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def get_latest(self, user_id: str) -> ScoreRecord | None:
        """Most recent record for a user, or None."""
        results = self.get_history(user_id, limit=1)
        return results[0] if results else None

    def get_history(
        self,
        user_id: str,
        *,
        since: str | None = None,
        limit: int = 30,
    ) -> list[ScoreRecord]:
        """Records for a user, newest first.

        Args:
            user_id: Owner of the records.
            since: Optional ISO 8601 lower bound (inclusive).
            limit: Maximum results.
        """
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        query = (
            "SELECT * FROM health_scores WHERE "
            + " AND ".join(conditions)
            + " ORDER BY timestamp DESC, created_at DESC LIMIT ?"
        )
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_factor_history(
        self,
        user_id: str,
        column: str,
        *,
        limit: int = 90,
    ) -> list[tuple[str, float]]:
        """Time series of one stored value for a user, newest first.

        Args:
            user_id: Owner of the records.
            column: ``final_score`` or one of the factor columns.
            limit: Maximum results.

        Returns:
            List of (timestamp, value) tuples; NULL values are skipped.

        Raises:
            RepositoryError: If the column is not a known history column.
        """
        if column not in HISTORY_COLUMNS:
            raise RepositoryError(
                f"Invalid history column: {column!r}. Valid: {sorted(HISTORY_COLUMNS)}"
            )

        # Column name is safe, validated above
        query = (
            f"SELECT timestamp, {column} FROM health_scores "
            f"WHERE user_id = ? AND {column} IS NOT NULL "
            "ORDER BY timestamp DESC, created_at DESC LIMIT ?"
        )
        rows = self._db.connection.execute(query, (user_id, limit)).fetchall()
        return [(row[0], row[1]) for row in rows]

    def count_records(self, user_id: str | None = None) -> int:
        conn = self._db.connection
        if user_id is None:
            row = conn.execute("SELECT COUNT(*) FROM health_scores").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) FROM health_scores WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Deletion / data retention
    # ------------------------------------------------------------------

    def delete_record(self, record_id: str) -> bool:
        """Delete one record. Returns False if it did not exist."""
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM health_scores WHERE id = ?", (record_id,))
        conn.commit()
        if cursor.rowcount == 0:
            return False
        logger.info("Deleted score record %s", record_id)
        return True

    def delete_user_records(self, user_id: str) -> int:
        """Delete every record of a user. Returns the number removed."""
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM health_scores WHERE user_id = ?", (user_id,))
        conn.commit()
        logger.warning("Deleted all score records of one user: %d removed", cursor.rowcount)
        return cursor.rowcount

    def purge_before(self, before_timestamp: str) -> int:
        """Delete records with ``timestamp < before_timestamp``.

        Returns:
            Number of records deleted.
        """
        conn = self._db.connection
        cursor = conn.execute(
            "DELETE FROM health_scores WHERE timestamp < ?", (before_timestamp,)
        )
        conn.commit()
        if cursor.rowcount:
            logger.info("Purged %d score records older than %s", cursor.rowcount, before_timestamp)
        return cursor.rowcount

    def purge_before_days(self, days: int) -> int:
        """Delete records older than ``now - days``."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        return self.purge_before(cutoff)

    # ------------------------------------------------------------------
    # Key rotation
    # ------------------------------------------------------------------

    def rotate_encryption(self) -> int:
        """Re-encrypt stored observations under the primary key.

        Returns:
            Number of rows re-encrypted.
        """
        conn = self._db.connection
        rows = conn.execute(
            "SELECT id, observations_enc FROM health_scores "
            "WHERE observations_enc IS NOT NULL AND observations_enc != ''"
        ).fetchall()
        for row in rows:
            conn.execute(
                "UPDATE health_scores SET observations_enc = ? WHERE id = ?",
                (self._enc.rotate(row["observations_enc"]), row["id"]),
            )
        conn.commit()
        logger.info("Rotated encryption for %d score records", len(rows))
        return len(rows)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _row_to_record(self, row: Any) -> ScoreRecord:
        recommendations: tuple[str, ...] = ()
        if row["recommendations_json"]:
            try:
                recommendations = tuple(json.loads(row["recommendations_json"]))
            except (json.JSONDecodeError, TypeError):
                logger.warning("Unreadable recommendations on score record %s", row["id"])

        reached = row["equilibrium_reached"]
        return ScoreRecord(
            id=row["id"],
            user_id=row["user_id"],
            timestamp=row["timestamp"],
            method=row["method"],
            symptom_score=row["symptom_score"],
            vital_score=row["vital_score"],
            activity_score=row["activity_score"],
            nutrition_score=row["nutrition_score"],
            pcos_score=row["pcos_score"],
            sleep_score=row["sleep_score"],
            stress_level=row["stress_level"],
            final_score=row["final_score"],
            status=row["status"],
            balance_status=row["balance_status"],
            equilibrium_factor=row["equilibrium_factor"],
            flower_level=row["flower_level"],
            raw_score=row["raw_score"],
            standard_deviation=row["standard_deviation"],
            recommendations=recommendations,
            iterations=row["iterations"],
            equilibrium_reached=None if reached is None else bool(reached),
            fallback_used=bool(row["fallback_used"]),
            observations=self._enc.decrypt(row["observations_enc"] or ""),
            created_at=row["created_at"],
        )
