"""MCP tools for score data management (deletion, purge, retention).

Users can delete single scores or their whole history. All deletions are
audit-logged.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from bloom.core.audit.logger import AuditLogger
    from bloom.core.storage.repository import ScoreRepository

logger = logging.getLogger(__name__)


def register_data_management_tools(
    mcp: FastMCP,
    repository: ScoreRepository,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register data management tools on the MCP server."""

    @mcp.tool
    async def delete_health_score(
        ctx: Context,
        record_id: str,
    ) -> str:
        """Permanently delete one stored health score.

        Args:
            record_id: The UUID of the score record to delete.
        """
        start_time = time.monotonic()
        deleted = repository.delete_record(record_id)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if not deleted:
            return json.dumps({
                "status": "not_found",
                "record_id": record_id,
                "message": "No health score found with that ID.",
            })

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_health_score",
                record_id=record_id,
                count=1,
            )
        return json.dumps({
            "status": "deleted",
            "record_id": record_id,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def delete_user_scores(
        ctx: Context,
        user_id: str,
        confirm: str = "",
    ) -> str:
        """Permanently delete every stored health score of a user.

        Args:
            user_id: Owner of the scores.
            confirm: Must be exactly 'DELETE_ALL' to proceed.
        """
        if confirm != "DELETE_ALL":
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete all scores of this user, call this tool with "
                    "confirm='DELETE_ALL'. This action cannot be undone."
                ),
            })

        start_time = time.monotonic()
        count = repository.delete_user_records(user_id)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_user_scores",
                user_id=user_id,
                count=count,
                metadata={"confirmed": True},
            )

        return json.dumps({
            "status": "all_deleted",
            "records_deleted": count,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def purge_old_scores(
        ctx: Context,
        older_than_days: int = 365,
    ) -> str:
        """Delete all stored scores older than a number of days.

        Args:
            older_than_days: Delete scores older than this many days (default: 365).
        """
        if older_than_days < 1:
            return json.dumps({
                "status": "error",
                "message": "older_than_days must be at least 1.",
            })

        start_time = time.monotonic()
        count = repository.purge_before_days(older_than_days)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None and count > 0:
            audit_logger.log_data_delete(
                tool_name="purge_old_scores",
                count=count,
                metadata={"older_than_days": older_than_days},
            )

        return json.dumps({
            "status": "purged",
            "records_deleted": count,
            "older_than_days": older_than_days,
            "duration_ms": round(elapsed_ms, 1),
        })
