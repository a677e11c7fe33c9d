"""Tests for the AuditLogger and related utilities."""

from __future__ import annotations

import json

import pytest

from bloom.core.audit.logger import AuditEvent, AuditLogger, _hash_input, user_ref
from bloom.core.storage.database import ScoreDatabase


# ---------------------------------------------------------------------------
# Hashing helpers
# ---------------------------------------------------------------------------

class TestHashInput:
    def test_hashes_dict(self):
        h = _hash_input({"key": "value"})
        assert len(h) == 64  # SHA-256 hex

    def test_order_independent(self):
        """Canonical JSON sorts keys, so order doesn't matter."""
        assert _hash_input({"z": 1, "a": 2}) == _hash_input({"a": 2, "z": 1})

    def test_different_inputs_differ(self):
        assert _hash_input({"a": 1}) != _hash_input({"a": 2})

    def test_non_serializable_returns_empty(self):
        assert _hash_input(object()) == ""


class TestUserRef:
    def test_truncated_and_stable(self):
        ref = user_ref("user-1")
        assert len(ref) == 16
        assert ref == user_ref("user-1")
        assert ref != user_ref("user-2")
        assert "user" not in ref

    def test_anonymous(self):
        assert user_ref("") == ""


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

class TestLogToolCall:
    def test_returns_event_id(self, audit_logger):
        event_id = audit_logger.log_tool_call("calculate_health_score", {"factors": {}})
        assert len(event_id) == 36

    def test_no_phi_stored(self, audit_logger, score_db):
        audit_logger.log_tool_call(
            "calculate_health_score",
            {"factors": {"vital_score": 3.3}, "user_id": "alice@example.com"},
            user_id="alice@example.com",
        )
        row = dict(score_db.connection.execute("SELECT * FROM audit_log").fetchone())
        dumped = json.dumps(row)
        assert "alice" not in dumped
        assert "3.3" not in dumped
        assert row["user_ref"] == user_ref("alice@example.com")
        assert len(row["tool_input_hash"]) == 64

    def test_records_scoring_metadata(self, audit_logger):
        audit_logger.log_tool_call(
            "calculate_health_score",
            user_id="u",
            scoring_method="iterative",
            fallback_used=True,
            record_id="rec-1",
            duration_ms=12.5,
        )
        event = audit_logger.get_events()[0]
        assert event["scoring_method"] == "iterative"
        assert event["fallback_used"] == 1
        assert event["record_id"] == "rec-1"
        assert event["duration_ms"] == 12.5
        assert event["status"] == "success"

    def test_failure_status(self, audit_logger):
        audit_logger.log_tool_call(
            "calculate_health_score", status="failure", error_type="InvalidFactorError",
        )
        event = audit_logger.get_events()[0]
        assert event["status"] == "failure"
        assert event["error_type"] == "InvalidFactorError"

    def test_write_failure_returns_empty(self):
        # Never initialized, so the connection is unavailable
        logger = AuditLogger(ScoreDatabase(":memory:"))
        assert logger.log_event(AuditEvent(action="tool_invocation")) == ""


class TestLogDataDelete:
    def test_delete_event(self, audit_logger):
        audit_logger.log_data_delete(
            tool_name="delete_user_scores", user_id="u", count=3,
        )
        event = audit_logger.get_events(action="data_delete")[0]
        assert event["tool_name"] == "delete_user_scores"
        assert json.loads(event["metadata_json"]) == {"records_deleted": 3}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestQueries:
    def test_filters(self, audit_logger):
        audit_logger.log_tool_call("calculate_health_score")
        audit_logger.log_tool_call("latest_health_score")
        audit_logger.log_data_delete(tool_name="delete_health_score", record_id="r")

        assert len(audit_logger.get_events()) == 3
        assert len(audit_logger.get_events(tool_name="latest_health_score")) == 1
        assert len(audit_logger.get_events(action="tool_invocation")) == 2
        assert len(audit_logger.get_events(limit=1)) == 1

    def test_counts(self, audit_logger):
        audit_logger.log_tool_call("calculate_health_score", fallback_used=True)
        audit_logger.log_tool_call("calculate_health_score")
        assert audit_logger.count_events() == 2
        assert audit_logger.count_fallbacks() == 1

    def test_since_filter(self, audit_logger):
        audit_logger.log_tool_call("calculate_health_score", fallback_used=True)
        assert audit_logger.count_events(since="2999-01-01") == 0
        assert audit_logger.count_fallbacks(since="2000-01-01") == 1
        assert audit_logger.get_events(since="2999-01-01") == []


# ---------------------------------------------------------------------------
# Public API documentation
# ---------------------------------------------------------------------------

class TestDocumented:
    @pytest.mark.parametrize(
        "method",
        ["log_event", "log_tool_call", "log_data_delete", "get_events", "count_events", "count_fallbacks"],
    )
    def test_public_methods_document_returns(self, method):
        doc = getattr(AuditLogger, method).__doc__ or ""
        assert "Returns:" in doc
        assert "Args:" in doc
