"""MCP tools for health factor derivation and score calculation."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from bloom.core.audit.logger import AuditLogger
    from bloom.core.scoring_service.client import ScoringServiceClient
    from bloom.core.storage.repository import ScoreRepository

from bloom.core.scoring_service.client import ScoringServiceError
from bloom.core.storage.models import ScoreRecord
from bloom.domains.maternal_health.domain_logic.equilibrium import (
    compute_score_iterative,
    validate_iteration_params,
)
from bloom.domains.maternal_health.domain_logic.factor_derivation import derive_factors
from bloom.domains.maternal_health.domain_logic.factor_models import (
    DEFAULT_CONVERGENCE_THRESHOLD,
    DEFAULT_MAX_ITERATIONS,
    SCORING_METHODS,
    HealthFactors,
    HealthResult,
    IterativeHealthResult,
    ScoringMethod,
)
from bloom.domains.maternal_health.domain_logic.score_engine import compute_score

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _validate_method(value: str | None, default: ScoringMethod) -> ScoringMethod:
    if value in (None, ""):
        return default
    if value not in SCORING_METHODS:
        raise ValueError("method must be one of: weighted | iterative")
    return value  # type: ignore[return-value]


def build_score_record(
    user_id: str,
    factors: HealthFactors,
    result: HealthResult,
    *,
    fallback_used: bool = False,
    observations: dict[str, Any] | None = None,
) -> ScoreRecord:
    """Flatten factors and a result into an insertable ScoreRecord."""
    iterative = isinstance(result, IterativeHealthResult)
    return ScoreRecord(
        id="",  # auto-generated UUID
        user_id=user_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
        method=result.method,
        symptom_score=factors.symptom_score,
        vital_score=factors.vital_score,
        activity_score=factors.activity_score,
        nutrition_score=factors.nutrition_score,
        pcos_score=factors.pcos_score,
        sleep_score=factors.sleep_score,
        stress_level=factors.stress_level,
        final_score=result.final_score,
        status=result.status,
        balance_status=result.balance_status,
        equilibrium_factor=result.equilibrium_factor,
        flower_level=result.flower_level,
        raw_score=result.raw_score,
        standard_deviation=result.standard_deviation,
        recommendations=result.recommendations,
        iterations=result.iterations if iterative else None,
        equilibrium_reached=result.equilibrium_reached if iterative else None,
        fallback_used=fallback_used,
        observations=observations,
    )


def register_health_score_tools(
    mcp: FastMCP,
    repository: ScoreRepository | None = None,
    audit_logger: AuditLogger | None = None,
    scoring_service: ScoringServiceClient | None = None,
    *,
    default_method: ScoringMethod = "weighted",
    default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
    default_convergence_threshold: float = DEFAULT_CONVERGENCE_THRESHOLD,
) -> None:
    """Register derivation and scoring tools on the MCP server.

    When a repository is provided and a ``user_id`` is given, each score is
    persisted. When a scoring service is provided, iterative requests go to
    it first and fall back to the local weighted formula on failure.
    """

    def _persist(
        user_id: str,
        factors: HealthFactors,
        result: HealthResult,
        *,
        store: bool,
        fallback_used: bool = False,
        observations: dict[str, Any] | None = None,
    ) -> str | None:
        if repository is None or not store or not user_id:
            return None
        try:
            return repository.insert(build_score_record(
                user_id,
                factors,
                result,
                fallback_used=fallback_used,
                observations=observations,
            ))
        except Exception:
            logger.exception("Failed to persist health score, continuing")
            return None

    async def _score(
        factors: HealthFactors,
        *,
        user_id: str,
        method: ScoringMethod,
        max_iterations: int,
        convergence_threshold: float,
    ) -> tuple[HealthResult, bool]:
        """Run the selected method. Returns (result, fallback_used)."""
        if method == "weighted":
            return compute_score(factors), False

        # Bad loop parameters fail here instead of falling back remotely.
        validate_iteration_params(max_iterations, convergence_threshold)

        if scoring_service is None:
            return compute_score_iterative(
                factors,
                max_iterations=max_iterations,
                convergence_threshold=convergence_threshold,
            ), False

        try:
            result = await scoring_service.score_iterative(
                factors,
                user_id=user_id,
                max_iterations=max_iterations,
                convergence_threshold=convergence_threshold,
            )
            return result, False
        except ScoringServiceError:
            logger.exception("Remote iterative scoring failed, falling back to weighted score")
            return compute_score(factors), True

    def _audit(tool_name: str, tool_input: Any, start_time: float, **kwargs: Any) -> None:
        if audit_logger is None:
            return
        audit_logger.log_tool_call(
            tool_name=tool_name,
            tool_input=tool_input,
            duration_ms=(time.monotonic() - start_time) * 1000,
            **kwargs,
        )

    @mcp.tool
    async def derive_health_factors(ctx: Context, observations: dict) -> str:
        """Derive the five 0-10 health factors from raw observations.

        Args:
            observations: Object with ``symptoms`` (list of names),
                ``vitals`` (systolic, diastolic, fasting_blood_sugar),
                ``activity`` (daily_steps, exercise_minutes), ``nutrition``
                (water_glasses, meal_quality 1-5), optional ``pcos``
                (has_pcos, management_actions) and optional ``sleep_score``
                / ``stress_level`` (0-10).
        """
        factors = derive_factors(observations)
        return json.dumps({"status": "ok", "factors": factors.as_dict()})

    @mcp.tool
    async def calculate_health_score(
        ctx: Context,
        factors: dict,
        user_id: str = "",
        method: str | None = None,
        scale: int = 10,
        max_iterations: int | None = None,
        convergence_threshold: float | None = None,
        store: bool = True,
    ) -> str:
        """Calculate the balanced health score from five health factors.

        Combines symptoms, vitals, activity, nutrition and PCOS management
        into a 0-10 score, penalized when the factors are unevenly spread,
        with a status, balance classification, flower tier and
        recommendations.

        Args:
            factors: ``symptom_score``, ``vital_score``, ``activity_score``,
                ``nutrition_score``, ``pcos_score`` (camelCase accepted);
                optional ``sleep_score`` and ``stress_level``.
            user_id: Owner of the score. Required for the score to be stored.
            method: 'weighted' (default) or 'iterative'.
            scale: 10 (default) or 100, the scale the factors are given on.
            max_iterations: Iteration cap for the iterative method.
            convergence_threshold: Convergence threshold for the iterative method.
            store: Persist the result when storage is enabled.
        """
        start_time = time.monotonic()
        tool_input = {"factors": factors, "method": method, "scale": scale}
        effective_method: ScoringMethod | None = None
        try:
            effective_method = _validate_method(method, default_method)
            health_factors = HealthFactors.from_mapping(factors, scale=scale)
            result, fallback_used = await _score(
                health_factors,
                user_id=user_id,
                method=effective_method,
                max_iterations=default_max_iterations if max_iterations is None else max_iterations,
                convergence_threshold=(
                    default_convergence_threshold
                    if convergence_threshold is None
                    else convergence_threshold
                ),
            )
            record_id = _persist(
                user_id, health_factors, result, store=store, fallback_used=fallback_used
            )
        except Exception as exc:
            _audit(
                "calculate_health_score",
                tool_input,
                start_time,
                user_id=user_id,
                scoring_method=effective_method,
                status="failure",
                error_type=type(exc).__name__,
            )
            raise

        _audit(
            "calculate_health_score",
            tool_input,
            start_time,
            user_id=user_id,
            scoring_method=effective_method,
            fallback_used=fallback_used,
            record_id=record_id,
        )
        return json.dumps({
            "status": "ok",
            "requested_method": effective_method,
            "fallback_used": fallback_used,
            "result": result.to_dict(),
            "record_id": record_id,
            "stored": record_id is not None,
        })

    @mcp.tool
    async def calculate_health_score_iterative(
        ctx: Context,
        factors: dict,
        userId: str = "",  # noqa: N803 (wire name)
        max_iterations: int | None = None,
        convergence_threshold: float | None = None,
        scale: int = 10,
    ) -> str:
        """Iterative equilibrium scoring, wire-compatible request/response.

        Request ``{factors, userId}``; response ``{score, status,
        equilibriumReached, recommendations, iterations, ...}`` with the
        score on the 0-10 scale. Always computed locally.

        Args:
            factors: Health factors (camelCase or snake_case keys).
            userId: Owner of the score. Required for the score to be stored.
            max_iterations: Iteration cap (default 50).
            convergence_threshold: Convergence threshold (default 0.001).
            scale: 10 (default) or 100.
        """
        start_time = time.monotonic()
        tool_input = {"factors": factors, "scale": scale}
        try:
            health_factors = HealthFactors.from_mapping(factors, scale=scale)
            result = compute_score_iterative(
                health_factors,
                max_iterations=default_max_iterations if max_iterations is None else max_iterations,
                convergence_threshold=(
                    default_convergence_threshold
                    if convergence_threshold is None
                    else convergence_threshold
                ),
            )
            record_id = _persist(userId, health_factors, result, store=True)
        except Exception as exc:
            _audit(
                "calculate_health_score_iterative",
                tool_input,
                start_time,
                user_id=userId,
                scoring_method="iterative",
                status="failure",
                error_type=type(exc).__name__,
            )
            raise

        _audit(
            "calculate_health_score_iterative",
            tool_input,
            start_time,
            user_id=userId,
            scoring_method="iterative",
            record_id=record_id,
            metadata={"iterations": result.iterations, "equilibrium_reached": result.equilibrium_reached},
        )
        return json.dumps(result.to_wire())

    @mcp.tool
    async def score_observations(
        ctx: Context,
        observations: dict,
        user_id: str = "",
        method: str | None = None,
        store: bool = True,
    ) -> str:
        """Derive factors from raw observations and score them in one call.

        The raw observations are stored encrypted alongside the score.

        Args:
            observations: Same shape as for ``derive_health_factors``.
            user_id: Owner of the score. Required for the score to be stored.
            method: 'weighted' (default) or 'iterative'.
            store: Persist the result when storage is enabled.
        """
        start_time = time.monotonic()
        effective_method: ScoringMethod | None = None
        try:
            effective_method = _validate_method(method, default_method)
            health_factors = derive_factors(observations)
            result, fallback_used = await _score(
                health_factors,
                user_id=user_id,
                method=effective_method,
                max_iterations=default_max_iterations,
                convergence_threshold=default_convergence_threshold,
            )
            record_id = _persist(
                user_id,
                health_factors,
                result,
                store=store,
                fallback_used=fallback_used,
                observations=observations,
            )
        except Exception as exc:
            _audit(
                "score_observations",
                observations,
                start_time,
                user_id=user_id,
                scoring_method=effective_method,
                status="failure",
                error_type=type(exc).__name__,
            )
            raise

        _audit(
            "score_observations",
            observations,
            start_time,
            user_id=user_id,
            scoring_method=effective_method,
            fallback_used=fallback_used,
            record_id=record_id,
        )
        return json.dumps({
            "status": "ok",
            "factors": health_factors.as_dict(),
            "fallback_used": fallback_used,
            "result": result.to_dict(),
            "record_id": record_id,
            "stored": record_id is not None,
        })

    if repository is None:
        return

    @mcp.tool
    async def latest_health_score(ctx: Context, user_id: str) -> str:
        """Return the most recent stored health score for a user.

        Args:
            user_id: Owner of the scores.
        """
        start_time = time.monotonic()
        record = repository.get_latest(user_id)
        _audit(
            "latest_health_score",
            {"user_id": user_id},
            start_time,
            user_id=user_id,
            record_id=record.id if record else None,
        )
        if record is None:
            return json.dumps({
                "status": "no_data",
                "message": "No stored health score for this user yet.",
            })
        return json.dumps({"status": "ok", "record": record.to_dict()})

    @mcp.tool
    async def health_score_history(ctx: Context, user_id: str, limit: int = 10) -> str:
        """List a user's stored health scores, newest first.

        Args:
            user_id: Owner of the scores.
            limit: Maximum number of records (1-100).
        """
        if limit < 1 or limit > 100:
            raise ValueError("limit must be between 1 and 100")
        start_time = time.monotonic()
        records = repository.get_history(user_id, limit=limit)
        _audit("health_score_history", {"user_id": user_id, "limit": limit}, start_time, user_id=user_id)
        return json.dumps({
            "status": "ok",
            "count": len(records),
            "records": [r.to_dict() for r in records],
        })
