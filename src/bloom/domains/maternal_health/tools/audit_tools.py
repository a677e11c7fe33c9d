"""MCP tools for viewing the audit trail.

The audit log is PHI-free: it holds hashed inputs and pseudonymous user
references, never factors or observations.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from bloom.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
    ) -> str:
        """View recent tool usage and how often scoring fell back to the local formula.

        Args:
            days: Number of days to look back (default: 30).
        """
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        display_events = [
            {
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "tool_name": event.get("tool_name"),
                "scoring_method": event.get("scoring_method"),
                "fallback_used": bool(event.get("fallback_used")),
                "status": event.get("status"),
                "duration_ms": event.get("duration_ms"),
            }
            for event in audit_logger.get_events(since=since, limit=20)
        ]

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": audit_logger.count_events(since=since),
            "scoring_fallbacks": audit_logger.count_fallbacks(since=since),
            "recent_events": display_events,
            "note": "This audit trail contains no health data.",
        }, indent=2)
