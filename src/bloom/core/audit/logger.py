"""Audit logger: PHI-free trail of tool invocations and deletions.

* ``tool_input_hash`` is the SHA-256 of the canonical JSON input; raw
  factors and observations never reach the audit table.
* ``user_ref`` is a truncated SHA-256 of the user id, enough to group
  events per user without storing the id itself.
* ``fallback_used`` records whether a remote scoring failure forced the
  local weighted formula.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from bloom.core.storage.database import DatabaseError, ScoreDatabase

logger = logging.getLogger(__name__)

USER_REF_LENGTH = 16


def _hash_input(data: Any) -> str:
    """SHA-256 of canonical JSON, or empty string if not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


def user_ref(user_id: str) -> str:
    """Pseudonymous reference for a user id ('' for anonymous calls)."""
    if not user_id:
        return ""
    return hashlib.sha256(user_id.encode()).hexdigest()[:USER_REF_LENGTH]


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'tool_invocation' | 'data_access' | 'data_delete'
    tool_name: str = ""
    tool_input_hash: str = ""
    user_ref: str = ""
    scoring_method: str | None = None    # 'weighted' | 'iterative'
    fallback_used: bool = False
    record_id: str | None = None
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    Writes are committed immediately. A failed write is logged and
    reported as an empty event id; it never fails the tool call.

    Usage::

        audit = AuditLogger(score_db)
        audit.log_tool_call(
            tool_name="calculate_health_score",
            tool_input={"factors": {...}},
            user_id="user-1",
            scoring_method="iterative",
            fallback_used=True,
        )
    """

    def __init__(self, database: ScoreDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its UUID.

        A failed write is logged and swallowed so auditing never breaks a
        tool call.

        Args:
            event: Fully populated ``AuditEvent``.

        Returns:
            The generated event ID (UUID4), or '' if the write failed.
        """
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"))
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, tool_name, tool_input_hash,
                    user_ref, scoring_method, fallback_used, record_id,
                    duration_ms, status, error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.tool_name or None,
                    event.tool_input_hash or None,
                    event.user_ref or None,
                    event.scoring_method,
                    1 if event.fallback_used else 0,
                    event.record_id,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except (sqlite3.Error, DatabaseError):
            logger.exception("Failed to write audit event, event lost")
            return ""

        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        user_id: str = "",
        scoring_method: str | None = None,
        fallback_used: bool = False,
        record_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Convenience wrapper for logging a tool invocation.

        Args:
            tool_name: Name of the MCP tool.
            tool_input: Tool input data (hashed, never stored raw).
            user_id: Caller's user id, stored only as a pseudonymous ref.
            scoring_method: Scoring method that ran ('weighted' or 'iterative').
            fallback_used: Whether a remote iterative call fell back to
                the local weighted score.
            record_id: ID of any persisted score record.
            duration_ms: Tool execution duration in milliseconds.
            status: 'success' or 'failure'.
            error_type: Exception class name on failure.
            metadata: Additional non-PHI metadata.

        Returns:
            The generated event ID.
        """
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            user_ref=user_ref(user_id),
            scoring_method=scoring_method,
            fallback_used=fallback_used,
            record_id=record_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        user_id: str = "",
        record_id: str | None = None,
        count: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a data deletion event.

        Args:
            tool_name: Tool that initiated the delete.
            user_id: Owner of the deleted records, if known.
            record_id: Specific record deleted (if applicable).
            count: Number of records deleted.
            metadata: Additional context.

        Returns:
            The generated event ID.
        """
        return self.log_event(AuditEvent(
            action="data_delete",
            tool_name=tool_name,
            user_ref=user_ref(user_id),
            record_id=record_id,
            metadata={**(metadata or {}), "records_deleted": count},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters.

        Rows are PHI-free: tool input is hashed and users appear only as
        pseudonymous refs.

        Args:
            action: Filter by action type.
            tool_name: Filter by tool name.
            since: ISO 8601 timestamp lower bound.
            limit: Maximum events to return.

        Returns:
            List of event dicts, newest first.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if tool_name:
            conditions.append("tool_name = ?")
            params.append(tool_name)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, since: str | None = None) -> int:
        """Count audit events, optionally since a timestamp.

        Args:
            since: Optional ISO 8601 lower bound.

        Returns:
            Number of matching events.
        """
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE timestamp >= ?", (since,)
            ).fetchone()
        else:
            row = self._db.connection.execute("SELECT COUNT(*) FROM audit_log").fetchone()
        return row[0]

    def count_fallbacks(self, *, since: str | None = None) -> int:
        """Count scoring calls that fell back to the local weighted formula.

        A rising count means the remote scoring service is unhealthy.

        Args:
            since: Optional ISO 8601 lower bound.

        Returns:
            Number of events with ``fallback_used = 1``.
        """
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE fallback_used = 1 AND timestamp >= ?",
                (since,),
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE fallback_used = 1"
            ).fetchone()
        return row[0]
