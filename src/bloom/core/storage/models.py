"""Data models for the score persistence layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ScoreRecord:
    """One stored score calculation. Rows are written once and never updated.

    Factors and results are stored unencrypted for history queries. Raw
    observations, when the score was derived from them, are stored
    encrypted at rest.
    """

    id: str
    user_id: str
    timestamp: str  # ISO 8601
    method: str  # 'weighted' | 'iterative'

    symptom_score: float
    vital_score: float
    activity_score: float
    nutrition_score: float
    pcos_score: float

    final_score: float
    status: str
    balance_status: str
    equilibrium_factor: float
    flower_level: int

    sleep_score: float | None = None
    stress_level: float | None = None
    raw_score: float | None = None
    standard_deviation: float | None = None
    recommendations: tuple[str, ...] = ()

    iterations: int | None = None
    equilibrium_reached: bool | None = None
    fallback_used: bool = False

    observations: dict[str, Any] | None = field(default=None, compare=False)
    created_at: str = ""

    def factor_values(self) -> dict[str, float]:
        return {
            "symptom_score": self.symptom_score,
            "vital_score": self.vital_score,
            "activity_score": self.activity_score,
            "nutrition_score": self.nutrition_score,
            "pcos_score": self.pcos_score,
        }

    def to_dict(self, *, include_observations: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "user_id": self.user_id,
            "timestamp": self.timestamp,
            "method": self.method,
            "factors": self.factor_values(),
            "final_score": self.final_score,
            "status": self.status,
            "balance_status": self.balance_status,
            "equilibrium_factor": self.equilibrium_factor,
            "flower_level": self.flower_level,
            "recommendations": list(self.recommendations),
            "fallback_used": self.fallback_used,
        }
        if self.sleep_score is not None:
            data["factors"]["sleep_score"] = self.sleep_score
        if self.stress_level is not None:
            data["factors"]["stress_level"] = self.stress_level
        if self.iterations is not None:
            data["iterations"] = self.iterations
            data["equilibrium_reached"] = self.equilibrium_reached
        if include_observations and self.observations is not None:
            data["observations"] = self.observations
        return data
