"""Tests for the TrendAnalyzer — longitudinal score analysis."""

from __future__ import annotations

import pytest

from bloom.core.storage.models import ScoreRecord
from bloom.domains.maternal_health.domain_logic.trend_analyzer import TrendAnalyzer, _direction


def _record(
    timestamp: str,
    score: float = 7.0,
    symptom: float = 7.0,
    vital: float = 7.0,
    user_id: str = "user-1",
) -> ScoreRecord:
    return ScoreRecord(
        id="",
        user_id=user_id,
        timestamp=timestamp,
        method="weighted",
        symptom_score=symptom,
        vital_score=vital,
        activity_score=7.0,
        nutrition_score=7.0,
        pcos_score=7.0,
        final_score=score,
        status="Caution",
        balance_status="Harmonious",
        equilibrium_factor=3.0,
        flower_level=3,
    )


class TestDirection:
    def test_needs_two_points(self):
        assert _direction([7.0]) == "insufficient_data"

    def test_short_series_compares_ends(self):
        assert _direction([8.0, 7.0]) == "improving"
        assert _direction([6.0, 7.0]) == "declining"
        assert _direction([7.1, 7.0]) == "stable"

    def test_long_series_compares_halves(self):
        assert _direction([8.0, 8.0, 6.0, 6.0]) == "improving"
        assert _direction([5.0, 5.0, 7.0, 7.0]) == "declining"


class TestComputeScoreTrend:
    def test_no_data(self, score_repository):
        result = TrendAnalyzer(score_repository).compute_score_trend("user-1")
        assert result["data_points"] == 0
        assert result["status"] == "no_data"

    def test_single_point(self, score_repository):
        score_repository.insert(_record("2026-02-01T00:00:00+00:00", score=6.5))
        result = TrendAnalyzer(score_repository).compute_score_trend("user-1")
        assert result["data_points"] == 1
        assert result["current"] == 6.5
        assert result["direction"] == "insufficient_data"
        assert result["std_dev"] == 0.0

    def test_improving_trend(self, score_repository):
        for day, score in enumerate([5.0, 5.5, 7.0, 7.5], start=1):
            score_repository.insert(_record(f"2026-01-0{day}T00:00:00+00:00", score=score))
        result = TrendAnalyzer(score_repository).compute_score_trend("user-1")
        assert result["direction"] == "improving"
        assert result["current"] == 7.5
        assert result["min"] == 5.0
        assert result["max"] == 7.5
        assert result["data_points"] == 4

    def test_limit_applies(self, score_repository):
        for day in range(1, 8):
            score_repository.insert(_record(f"2026-01-0{day}T00:00:00+00:00"))
        result = TrendAnalyzer(score_repository).compute_score_trend("user-1", limit=3)
        assert result["data_points"] == 3

    def test_scoped_to_user(self, score_repository):
        score_repository.insert(_record("2026-01-01T00:00:00+00:00", user_id="other"))
        result = TrendAnalyzer(score_repository).compute_score_trend("user-1")
        assert result["status"] == "no_data"


class TestFactorTrend:
    def test_declining_factor(self, score_repository):
        for day, vital in enumerate([9.0, 8.0, 6.0, 5.0], start=1):
            score_repository.insert(_record(f"2026-01-0{day}T00:00:00+00:00", vital=vital))
        result = TrendAnalyzer(score_repository).compute_factor_trend("user-1", "vital_score")
        assert result["series"] == "vital_score"
        assert result["direction"] == "declining"

    def test_unknown_factor(self, score_repository):
        with pytest.raises(ValueError, match="Unknown factor"):
            TrendAnalyzer(score_repository).compute_factor_trend("user-1", "mood_score")


class TestDivergence:
    def test_detects_opposite_trends(self, score_repository):
        series = [(4.0, 9.0), (5.0, 8.0), (7.0, 6.0), (8.0, 5.0)]
        for day, (symptom, vital) in enumerate(series, start=1):
            score_repository.insert(_record(
                f"2026-01-0{day}T00:00:00+00:00", symptom=symptom, vital=vital,
            ))
        divergences = TrendAnalyzer(score_repository).detect_divergence_patterns("user-1")
        assert len(divergences) == 1
        pattern = divergences[0]
        assert pattern["improving_factor"] == "symptom_score"
        assert pattern["declining_factor"] == "vital_score"
        assert pattern["improving_current"] == 8.0
        assert "Symptoms is improving" in pattern["description"]

    def test_no_divergence_when_flat(self, score_repository):
        for day in range(1, 5):
            score_repository.insert(_record(f"2026-01-0{day}T00:00:00+00:00"))
        assert TrendAnalyzer(score_repository).detect_divergence_patterns("user-1") == []


class TestHistorySummary:
    def test_no_history(self, score_repository):
        summary = TrendAnalyzer(score_repository).get_history_summary("user-1")
        assert summary == {"records_available": 0, "status": "no_history"}

    def test_summary(self, score_repository):
        score_repository.insert(_record("2026-01-01T00:00:00+00:00", score=5.0))
        score_repository.insert(_record("2026-01-09T00:00:00+00:00", score=8.0))
        summary = TrendAnalyzer(score_repository).get_history_summary("user-1")
        assert summary["records_available"] == 2
        assert summary["latest_score"] == 8.0
        assert summary["oldest_timestamp"].startswith("2026-01-01")
        assert summary["latest_timestamp"].startswith("2026-01-09")
