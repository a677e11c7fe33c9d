"""MCP resource exposing the scoring constants."""

from __future__ import annotations

import json
from typing import Any

from fastmcp import FastMCP

from bloom.domains.maternal_health.domain_logic import equilibrium
from bloom.domains.maternal_health.domain_logic.factor_models import (
    BALANCE_PENALTY_RATE,
    CAUTION_THRESHOLD,
    DEFAULT_CONVERGENCE_THRESHOLD,
    DEFAULT_MAX_ITERATIONS,
    EQUILIBRIUM_CEILING,
    FACTOR_WEIGHTS,
    FLOWER_TIERS,
    IMBALANCED_SD,
    MODERATE_SD,
    STABLE_THRESHOLD,
)


def scoring_constants() -> dict[str, Any]:
    """Every constant a client needs to reproduce or explain a score."""
    return {
        "weighted": {
            "factor_weights": FACTOR_WEIGHTS,
            "balance_penalty_rate": BALANCE_PENALTY_RATE,
            "equilibrium_ceiling": EQUILIBRIUM_CEILING,
        },
        "status_thresholds": {"stable": STABLE_THRESHOLD, "caution": CAUTION_THRESHOLD},
        "balance_thresholds": {"moderate_sd": MODERATE_SD, "imbalanced_sd": IMBALANCED_SD},
        "flower_tiers": [
            {"level": level, "emoji": emoji, "label": label}
            for level, (emoji, label) in sorted(FLOWER_TIERS.items())
        ],
        "iterative": {
            "initial_weights": equilibrium.INITIAL_WEIGHTS,
            "max_iterations": DEFAULT_MAX_ITERATIONS,
            "convergence_threshold": DEFAULT_CONVERGENCE_THRESHOLD,
            "variance_trigger": equilibrium.VARIANCE_TRIGGER,
            "weight_bounds": [equilibrium.MIN_WEIGHT, equilibrium.MAX_WEIGHT],
        },
    }


def register_scoring_resources(mcp: FastMCP) -> None:
    """Register scoring discovery resources on the MCP server."""

    @mcp.resource("scoring://constants")
    def scoring_constants_resource() -> str:
        """Weights, thresholds and flower tiers used by the score engine."""
        return json.dumps(scoring_constants(), indent=2, ensure_ascii=False)
