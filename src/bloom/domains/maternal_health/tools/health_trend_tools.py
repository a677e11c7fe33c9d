"""MCP tools for longitudinal health score trends.

These tools query a user's stored scores for trends and divergences
between factors.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from bloom.core.audit.logger import AuditLogger
    from bloom.domains.maternal_health.domain_logic.trend_analyzer import TrendAnalyzer

from bloom.domains.maternal_health.domain_logic.factor_models import FACTOR_NAMES

logger = logging.getLogger(__name__)


def register_health_trend_tools(
    mcp: FastMCP,
    trend_analyzer: TrendAnalyzer,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register longitudinal trend tools on the MCP server."""

    @mcp.tool
    async def health_score_trend(
        ctx: Context,
        user_id: str,
        limit: int = 30,
    ) -> str:
        """Analyze how a user's health score and factors have moved over time.

        Requires at least 2 stored scores. Reports the direction and
        volatility of the overall score and each factor, and factors moving
        in opposite directions.

        Args:
            user_id: Owner of the scores.
            limit: Number of most recent scores to analyze (default: 30).
        """
        start_time = time.monotonic()
        summary = trend_analyzer.get_history_summary(user_id)

        if summary["records_available"] < 2:
            return json.dumps({
                "status": "insufficient_data",
                "records_available": summary["records_available"],
                "message": (
                    "At least 2 stored health scores are needed for trend analysis. "
                    "Calculate a score with a user_id to start a history."
                ),
            })

        factor_trends = {
            name: trend_analyzer.compute_factor_trend(user_id, name, limit=limit)
            for name in FACTOR_NAMES
        }
        divergences = trend_analyzer.detect_divergence_patterns(user_id, limit=limit)

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="health_score_trend",
                tool_input={"user_id": user_id, "limit": limit},
                user_id=user_id,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

        return json.dumps({
            "status": "ok",
            "records_available": summary["records_available"],
            "oldest_score": summary["oldest_timestamp"],
            "latest_score": summary["latest_timestamp"],
            "score_trend": trend_analyzer.compute_score_trend(user_id, limit=limit),
            "factor_trends": factor_trends,
            "divergence_patterns": divergences,
            "divergence_count": len(divergences),
        }, indent=2)

    @mcp.tool
    async def factor_trend(
        ctx: Context,
        user_id: str,
        factor: str,
        limit: int = 30,
    ) -> str:
        """Show the trend of a single health factor over time.

        Args:
            user_id: Owner of the scores.
            factor: One of symptom_score, vital_score, activity_score,
                nutrition_score, pcos_score.
            limit: Maximum number of historical values to include.
        """
        start_time = time.monotonic()
        trend = trend_analyzer.compute_factor_trend(user_id, factor, limit=limit)

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="factor_trend",
                tool_input={"user_id": user_id, "factor": factor, "limit": limit},
                user_id=user_id,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

        return json.dumps(trend, indent=2)
