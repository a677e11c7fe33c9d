"""MCP client for a remote iterative scoring service.

The remote service is another Bloom server (or anything exposing a
wire-compatible ``calculate_health_score_iterative`` tool). Requests use
the ``{factors, userId}`` shape; responses carry at least ``score``,
``status``, ``equilibriumReached``, ``recommendations`` and ``iterations``.

Every failure surfaces as a ``ScoringServiceError`` subclass so callers can
fall back to the local weighted formula.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from bloom.domains.maternal_health.domain_logic.factor_models import (
    DEFAULT_CONVERGENCE_THRESHOLD,
    DEFAULT_MAX_ITERATIONS,
    HealthFactors,
    IterativeHealthResult,
)

logger = logging.getLogger(__name__)

ITERATIVE_TOOL = "calculate_health_score_iterative"


class ScoringServiceClient:
    """Client for a remote iterative scoring MCP server.

    Usage::

        from fastmcp import Client
        service = ScoringServiceClient(Client("http://127.0.0.1:8004/mcp"), timeout_s=10)
        result = await service.score_iterative(factors, user_id="user-1")
    """

    def __init__(self, mcp_client: Any, *, timeout_s: float = 10.0) -> None:
        """Initialise with a fastmcp.Client (or compatible)."""
        self._client = mcp_client
        self._timeout_s = timeout_s

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def score_iterative(
        self,
        factors: HealthFactors,
        *,
        user_id: str = "",
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        convergence_threshold: float = DEFAULT_CONVERGENCE_THRESHOLD,
    ) -> IterativeHealthResult:
        """Score factors remotely with the iterative method.

        Raises:
            ScoringServiceUnavailableError: Unreachable or timed out.
            ScoringServiceResponseError: Malformed or error response.
        """
        wire_factors = {_camel(name): value for name, value in factors.as_dict().items()}
        payload = await self._call_tool(
            ITERATIVE_TOOL,
            {
                "factors": wire_factors,
                "userId": user_id,
                "max_iterations": max_iterations,
                "convergence_threshold": convergence_threshold,
            },
        )

        if payload.get("success") is False:
            raise ScoringServiceResponseError(
                f"Scoring service returned error: {_format_error(payload.get('error'))}"
            )

        try:
            return IterativeHealthResult.from_wire(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise ScoringServiceResponseError(
                f"Malformed response from {ITERATIVE_TOOL}: {exc!r}"
            ) from exc

    async def health_check(self) -> dict[str, Any]:
        return await self._call_tool("health_check", {})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_tool(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Call a remote tool and return its JSON object payload."""
        logger.debug("Calling scoring service tool %s", tool_name)

        try:
            async with self._client:
                result = await asyncio.wait_for(
                    self._client.call_tool(tool_name, arguments),
                    timeout=self._timeout_s,
                )
        except asyncio.TimeoutError:
            raise ScoringServiceUnavailableError(
                f"Scoring service tool '{tool_name}' timed out after {self._timeout_s:g}s"
            ) from None
        except Exception as exc:
            logger.exception("Failed to call scoring service tool %s", tool_name)
            raise ScoringServiceUnavailableError(
                f"Failed to call scoring service tool '{tool_name}'. "
                "Is the scoring service running?"
            ) from exc

        if not result:
            raise ScoringServiceResponseError(f"Empty response from {tool_name}")

        payload = _extract_payload(result)
        if payload is None:
            raise ScoringServiceResponseError(f"No usable content in response from {tool_name}")

        if isinstance(payload, str):
            try:
                parsed: Any = json.loads(payload)
            except (json.JSONDecodeError, TypeError) as exc:
                raise ScoringServiceResponseError(f"Invalid JSON from {tool_name}: {exc}") from exc
        else:
            parsed = payload

        if not isinstance(parsed, dict):
            raise ScoringServiceResponseError(
                f"Expected JSON object from {tool_name}, got {type(parsed).__name__}"
            )
        return parsed


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------

class ScoringServiceError(Exception):
    """Base exception for remote scoring failures."""


class ScoringServiceUnavailableError(ScoringServiceError):
    """Could not reach the scoring service, or it timed out."""


class ScoringServiceResponseError(ScoringServiceError):
    """The scoring service answered with something unusable."""


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _extract_payload(result: Any) -> Any | None:
    """Extract a usable payload from a fastmcp tool result.

    Handles ``CallToolResult`` objects (``structured_content`` / ``content``),
    lists of content blocks, single blocks, raw strings and dicts.
    """
    if isinstance(result, dict):
        return result
    if isinstance(result, str):
        return result

    content = getattr(result, "content", None)
    if content is not None:
        return _extract_payload(list(content))

    if isinstance(result, list):
        for block in result:
            payload = _payload_from_block(block)
            if payload is not None:
                return payload
        return None

    return _payload_from_block(result)


def _payload_from_block(block: Any) -> Any | None:
    if isinstance(block, dict):
        for key in ("data", "json", "text"):
            if key in block:
                return block[key]
        return None
    if isinstance(block, str):
        return block
    if hasattr(block, "text"):
        return block.text
    for attr in ("data", "json"):
        if hasattr(block, attr):
            return getattr(block, attr)
    return None


def _format_error(error: Any) -> str:
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        msg = error.get("message") or error.get("code")
        return msg if isinstance(msg, str) and msg else str(error)
    return str(error)
