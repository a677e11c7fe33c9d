"""Longitudinal trend analysis over a user's stored health scores.

Computes score and factor trends, and detects divergences (one factor
improving while another declines).
"""

from __future__ import annotations

import logging
import statistics
from typing import Any

from bloom.core.storage.repository import ScoreRepository
from bloom.domains.maternal_health.domain_logic.factor_models import FACTOR_AREAS, FACTOR_NAMES

logger = logging.getLogger(__name__)

# Movement (in 0-10 points) between the half-means that counts as a change.
DIRECTION_THRESHOLD = 0.3


def _direction(values: list[float]) -> str:
    """Direction of a newest-first series."""
    if len(values) >= 4:
        mid = len(values) // 2
        diff = statistics.mean(values[:mid]) - statistics.mean(values[mid:])
    elif len(values) >= 2:
        diff = values[0] - values[-1]
    else:
        return "insufficient_data"

    if diff > DIRECTION_THRESHOLD:
        return "improving"
    if diff < -DIRECTION_THRESHOLD:
        return "declining"
    return "stable"


class TrendAnalyzer:
    """Computes trends and patterns from a user's score history.

    Usage::

        analyzer = TrendAnalyzer(repository)
        trend = analyzer.compute_score_trend("user-1")
        divergences = analyzer.detect_divergence_patterns("user-1")
    """

    def __init__(self, repository: ScoreRepository) -> None:
        self._repo = repository

    def compute_series_trend(
        self,
        user_id: str,
        column: str,
        *,
        limit: int = 30,
    ) -> dict[str, Any]:
        """Trend statistics for one stored series.

        Returns:
            Dict with: current, mean, median, min, max, std_dev, direction,
            volatility, data_points (or ``status: no_data``).
        """
        history = self._repo.get_factor_history(user_id, column, limit=limit)

        if not history:
            return {"series": column, "data_points": 0, "status": "no_data"}

        values = [v for _, v in history]
        mean_val = statistics.mean(values)
        std_val = statistics.stdev(values) if len(values) > 1 else 0.0
        # Coefficient of variation
        volatility = std_val / mean_val if mean_val > 0 else 0.0

        return {
            "series": column,
            "current": round(values[0], 2),
            "mean": round(mean_val, 2),
            "median": round(statistics.median(values), 2),
            "min": round(min(values), 2),
            "max": round(max(values), 2),
            "std_dev": round(std_val, 4),
            "direction": _direction(values),
            "volatility": round(volatility, 4),
            "data_points": len(values),
            "latest_timestamp": history[0][0],
        }

    def compute_score_trend(self, user_id: str, *, limit: int = 30) -> dict[str, Any]:
        return self.compute_series_trend(user_id, "final_score", limit=limit)

    def compute_factor_trend(self, user_id: str, factor: str, *, limit: int = 30) -> dict[str, Any]:
        """Trend of one factor; raises ValueError for an unknown factor."""
        if factor not in FACTOR_NAMES:
            raise ValueError(f"Unknown factor {factor!r}. Valid: {', '.join(FACTOR_NAMES)}")
        return self.compute_series_trend(user_id, factor, limit=limit)

    def detect_divergence_patterns(
        self,
        user_id: str,
        *,
        limit: int = 30,
    ) -> list[dict[str, Any]]:
        """Factor pairs trending in opposite directions.

        Returns:
            List of dicts with improving_factor, declining_factor, their
            current values and a description.
        """
        trends = {}
        for name in FACTOR_NAMES:
            trend = self.compute_series_trend(user_id, name, limit=limit)
            if trend.get("data_points", 0) >= 2:
                trends[name] = trend

        improving = [n for n, t in trends.items() if t["direction"] == "improving"]
        declining = [n for n, t in trends.items() if t["direction"] == "declining"]

        divergences = []
        for up in improving:
            for down in declining:
                divergences.append({
                    "improving_factor": up,
                    "declining_factor": down,
                    "improving_current": trends[up]["current"],
                    "declining_current": trends[down]["current"],
                    "description": (
                        f"{FACTOR_AREAS[up].capitalize()} is improving while "
                        f"{FACTOR_AREAS[down]} is declining; "
                        "this divergence may deserve attention."
                    ),
                })
        return divergences

    def get_history_summary(self, user_id: str) -> dict[str, Any]:
        """Summary of a user's stored history for longitudinal context."""
        count = self._repo.count_records(user_id)
        if count == 0:
            return {"records_available": 0, "status": "no_history"}

        latest = self._repo.get_latest(user_id)
        oldest = self._repo.get_history(user_id, limit=count)[-1]

        return {
            "records_available": count,
            "latest_timestamp": latest.timestamp if latest else None,
            "oldest_timestamp": oldest.timestamp,
            "latest_score": latest.final_score if latest else None,
            "latest_status": latest.status if latest else None,
        }
