"""Health factor models, scoring constants and engine errors."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Literal, Mapping

# ---------------------------------------------------------------------------
# Domain constants (shared by every scoring path)
# ---------------------------------------------------------------------------

FACTOR_NAMES = [
    "symptom_score",
    "vital_score",
    "activity_score",
    "nutrition_score",
    "pcos_score",
]

OPTIONAL_FACTOR_NAMES = [
    "sleep_score",
    "stress_level",
]

# Human-readable area per factor, in FACTOR_NAMES order.
FACTOR_AREAS = {
    "symptom_score": "symptoms",
    "vital_score": "vitals",
    "activity_score": "activity",
    "nutrition_score": "nutrition",
    "pcos_score": "PCOS management",
}

# Symptoms and vitals carry most of the clinical signal; PCOS only applies
# to a subset of users.
FACTOR_WEIGHTS = {
    "symptom_score": 0.30,
    "vital_score": 0.30,
    "activity_score": 0.15,
    "nutrition_score": 0.15,
    "pcos_score": 0.10,
}

FACTOR_MAX = 10.0
BALANCE_PENALTY_RATE = 0.3
EQUILIBRIUM_CEILING = 3.0

STABLE_THRESHOLD = 7.5
CAUTION_THRESHOLD = 5.0

IMBALANCED_SD = 2.5
MODERATE_SD = 1.5
PERFECT_BALANCE_SD = 1.0

# Factor value below which a dimension is no longer considered "good".
GOOD_FACTOR_THRESHOLD = 6.0

DEFAULT_MAX_ITERATIONS = 50
DEFAULT_CONVERGENCE_THRESHOLD = 0.001

ScoreStatus = Literal["Stable", "Caution", "Critical"]
BalanceStatus = Literal["Harmonious", "Moderate", "Imbalanced"]
ScoringMethod = Literal["weighted", "iterative"]

SCORING_METHODS = ("weighted", "iterative")

# tier -> (emoji, label); only the order is meaningful
FLOWER_TIERS = {
    1: ("🌱", "seedling"),
    2: ("🌿", "sprout"),
    3: ("🌸", "blossom"),
    4: ("🌷", "tulip"),
    5: ("🌺", "full_bloom"),
}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ScoringError(Exception):
    """Base class for health score engine errors."""


class InvalidFactorError(ScoringError):
    """A factor is missing, non-numeric, or outside its declared range."""

    def __init__(self, factor: str, message: str) -> None:
        super().__init__(f"{factor}: {message}")
        self.factor = factor


class InvalidObservationError(ScoringError):
    """A raw observation cannot be turned into a factor."""


class ConvergenceNotReachedError(ScoringError):
    """The iterative refinement stopped without reaching equilibrium.

    Carries the best available result so callers can still display it.
    """

    def __init__(self, result: IterativeHealthResult) -> None:
        reason = "oscillation detected" if result.oscillation_detected else "iteration cap reached"
        super().__init__(
            f"No equilibrium after {result.iterations} iterations ({reason}); "
            f"last score {result.final_score}"
        )
        self.result = result


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _coerce_factor(name: str, value: Any, scale: float) -> float:
    """Validate one caller-supplied factor and normalize it to 0-10."""
    if value is None:
        raise InvalidFactorError(name, "missing required factor")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidFactorError(name, f"expected a number, got {type(value).__name__}")
    number = float(value)
    if not math.isfinite(number):
        raise InvalidFactorError(name, f"expected a finite number, got {number!r}")
    if number < 0 or number > scale:
        raise InvalidFactorError(name, f"{number:g} is outside the range 0-{scale:g}")
    return number * FACTOR_MAX / scale


# ---------------------------------------------------------------------------
# Input / result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HealthFactors:
    """Normalized 0-10 health factors, ready for scoring.

    The five core factors are required. ``sleep_score`` and ``stress_level``
    are optional refinements used by the iterative variant only;
    ``stress_level`` is the one factor where higher means worse.
    """

    symptom_score: float
    vital_score: float
    activity_score: float
    nutrition_score: float
    pcos_score: float
    sleep_score: float | None = None
    stress_level: float | None = None

    def __post_init__(self) -> None:
        for name in FACTOR_NAMES:
            object.__setattr__(self, name, _coerce_factor(name, getattr(self, name), FACTOR_MAX))
        for name in OPTIONAL_FACTOR_NAMES:
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, _coerce_factor(name, value, FACTOR_MAX))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, scale: float = FACTOR_MAX) -> HealthFactors:
        """Build factors from a plain mapping (e.g. a JSON request body).

        Accepts snake_case keys and the camelCase keys used by existing
        callers (``symptomScore``). ``scale`` is 10 or 100.

        Raises:
            InvalidFactorError: If a required factor is missing or invalid.
        """
        if scale not in (10, 100):
            raise ValueError("scale must be 10 or 100")
        if not isinstance(data, Mapping):
            raise InvalidFactorError("factors", f"expected an object, got {type(data).__name__}")

        values: dict[str, float | None] = {}
        for name in FACTOR_NAMES + OPTIONAL_FACTOR_NAMES:
            raw = data.get(name, data.get(_camel(name)))
            if raw is None and name in OPTIONAL_FACTOR_NAMES:
                values[name] = None
                continue
            values[name] = _coerce_factor(name, raw, float(scale))
        return cls(**values)

    def as_values(self) -> list[float]:
        """Return the five core factors in FACTOR_NAMES order."""
        return [getattr(self, name) for name in FACTOR_NAMES]

    def as_dict(self) -> dict[str, float]:
        data = {name: getattr(self, name) for name in FACTOR_NAMES}
        for name in OPTIONAL_FACTOR_NAMES:
            if getattr(self, name) is not None:
                data[name] = getattr(self, name)
        return data


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass(frozen=True)
class HealthResult:
    """Outcome of one scoring call. Never mutated after construction."""

    final_score: float
    status: ScoreStatus
    balance_status: BalanceStatus
    equilibrium_factor: float
    recommendations: tuple[str, ...]
    flower_level: int
    raw_score: float
    standard_deviation: float
    method: ScoringMethod = "weighted"

    @property
    def flower(self) -> str:
        return FLOWER_TIERS[self.flower_level][0]

    @property
    def flower_label(self) -> str:
        return FLOWER_TIERS[self.flower_level][1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "final_score": self.final_score,
            "status": self.status,
            "balance_status": self.balance_status,
            "equilibrium_factor": self.equilibrium_factor,
            "recommendations": list(self.recommendations),
            "flower_level": self.flower_level,
            "flower": self.flower,
            "raw_score": round(self.raw_score, 4),
            "standard_deviation": round(self.standard_deviation, 4),
            "method": self.method,
        }


@dataclass(frozen=True)
class IterativeHealthResult(HealthResult):
    """HealthResult of the iterative refinement plus convergence metadata."""

    iterations: int = 0
    equilibrium_reached: bool = False
    oscillation_detected: bool = False
    factor_weights: tuple[tuple[str, float], ...] = ()
    method: ScoringMethod = "iterative"

    def __post_init__(self) -> None:
        # Ordered (name, weight) pairs; results must stay hashable.
        weights = self.factor_weights
        if isinstance(weights, Mapping):
            weights = weights.items()
        object.__setattr__(
            self, "factor_weights", tuple((str(k), float(v)) for k, v in weights),
        )

    @property
    def weights(self) -> dict[str, float]:
        """Final factor weights as a fresh dict."""
        return dict(self.factor_weights)

    def require_equilibrium(self) -> IterativeHealthResult:
        """Return self, or raise if the iteration did not converge.

        Raises:
            ConvergenceNotReachedError: If ``equilibrium_reached`` is False.
        """
        if not self.equilibrium_reached:
            raise ConvergenceNotReachedError(self)
        return self

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "iterations": self.iterations,
            "equilibrium_reached": self.equilibrium_reached,
            "oscillation_detected": self.oscillation_detected,
            "factor_weights": {k: round(v, 4) for k, v in self.factor_weights},
        })
        return data

    def to_wire(self) -> dict[str, Any]:
        """Response body of the iterative scoring service.

        Keeps the keys existing callers read (score, status,
        equilibriumReached, recommendations, iterations) and adds the rest.
        """
        return {
            "success": True,
            "score": self.final_score,
            "status": self.status,
            "equilibriumReached": self.equilibrium_reached,
            "recommendations": list(self.recommendations),
            "iterations": self.iterations,
            "balanceStatus": self.balance_status,
            "equilibriumFactor": self.equilibrium_factor,
            "flowerLevel": self.flower_level,
            "rawScore": self.raw_score,
            "standardDeviation": self.standard_deviation,
            "oscillationDetected": self.oscillation_detected,
            "factorWeights": self.weights,
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> IterativeHealthResult:
        """Parse a response body produced by :meth:`to_wire`.

        Raises:
            KeyError: If a required key is missing.
        """
        return cls(
            final_score=float(data["score"]),
            status=data["status"],
            balance_status=data["balanceStatus"],
            equilibrium_factor=float(data["equilibriumFactor"]),
            recommendations=tuple(data.get("recommendations") or ()),
            flower_level=int(data["flowerLevel"]),
            raw_score=float(data["rawScore"]),
            standard_deviation=float(data["standardDeviation"]),
            iterations=int(data["iterations"]),
            equilibrium_reached=bool(data["equilibriumReached"]),
            oscillation_detected=bool(data.get("oscillationDetected", False)),
            factor_weights=tuple((data.get("factorWeights") or {}).items()),
        )
