"""Iterative equilibrium refinement of the health score.

A heuristic inspired by best-response dynamics, not a game-theoretic
equilibrium solver. The five core factors (plus optional sleep and stress)
are projected onto a seven-factor 0-100 view. Each iteration:

1. Computes cross-influences between factors (good sleep lifts exercise
   and vitals, stress drags them down, ...). Influences are always
   computed from the original view, so only the weights evolve.
2. Scores the influenced view with the current adaptive weights.
3. Stops if the score moved less than the convergence threshold since the
   previous iteration (equilibrium), or if it is bouncing between two
   values (period-2 oscillation).
4. While the influenced factors are widely spread around the midpoint,
   shifts weight towards under-performers and away from strong ones.

The final score is brought back to the 0-10 scale; every classification
reuses ``score_engine`` so both methods agree on thresholds.
"""

from __future__ import annotations

from bloom.domains.maternal_health.domain_logic.factor_models import (
    DEFAULT_CONVERGENCE_THRESHOLD,
    DEFAULT_MAX_ITERATIONS,
    FACTOR_MAX,
    HealthFactors,
    IterativeHealthResult,
)
from bloom.domains.maternal_health.domain_logic.score_engine import (
    classify_balance,
    classify_status,
    equilibrium_factor,
    flower_level,
    generate_recommendations,
    standard_deviation,
    weighted_raw_score,
)

VIEW_MAX = 100.0

EQUILIBRIUM_FACTORS = [
    "sleep",
    "nutrition",
    "stress",
    "exercise",
    "vitals",
    "symptoms",
    "pcos",
]

INITIAL_WEIGHTS = {
    "sleep": 0.20,
    "nutrition": 0.18,
    "stress": 0.15,
    "exercise": 0.17,
    "vitals": 0.15,
    "symptoms": 0.10,
    "pcos": 0.05,
}

# Re-weighting kicks in while sum((v - 50)^2) over the view exceeds this.
VARIANCE_TRIGGER = 1000.0
VARIANCE_CENTER = 50.0

TARGET_LEVEL = 75.0
STRONG_MARGIN = 10.0
WEIGHT_BOOST = 1.1
WEIGHT_DAMPEN = 0.9
MAX_WEIGHT = 0.3
MIN_WEIGHT = 0.05

# Sleep proxy when no sleep score is supplied: activity * 7 + 30.
SLEEP_PROXY_SLOPE = 7.0
SLEEP_PROXY_BASE = 30.0


def _clamp(value: float, lo: float = 0.0, hi: float = VIEW_MAX) -> float:
    return max(lo, min(hi, value))


def equilibrium_view(factors: HealthFactors) -> dict[str, float]:
    """Project factors onto the seven-factor 0-100 view.

    ``stress`` and ``symptoms`` are burdens here: higher means worse.
    """
    if factors.sleep_score is not None:
        sleep = factors.sleep_score * 10
    else:
        sleep = factors.activity_score * SLEEP_PROXY_SLOPE + SLEEP_PROXY_BASE

    burden = VIEW_MAX - factors.symptom_score * 10
    if factors.stress_level is not None:
        stress = factors.stress_level * 10
    else:
        stress = burden

    return {
        "sleep": _clamp(sleep),
        "nutrition": factors.nutrition_score * 10,
        "stress": _clamp(stress),
        "exercise": factors.activity_score * 10,
        "vitals": factors.vital_score * 10,
        "symptoms": _clamp(burden),
        "pcos": factors.pcos_score * 10,
    }


def cross_influences(view: dict[str, float]) -> dict[str, float]:
    """Apply cross-factor influences; every output is higher-is-better."""
    sleep = view["sleep"]
    nutrition = view["nutrition"]
    stress = view["stress"]
    exercise = view["exercise"]
    vitals = view["vitals"]
    symptoms = view["symptoms"]
    pcos = view["pcos"]

    stress_left = _clamp(stress - sleep * 0.4 - exercise * 0.3)
    symptoms_left = _clamp(symptoms - nutrition * 0.2 - sleep * 0.3)

    if pcos > 0:
        pcos_influenced = _clamp(pcos + nutrition * 0.3 + exercise * 0.4 - stress * 0.3)
    else:
        pcos_influenced = 0.0

    return {
        "sleep": _clamp(sleep + exercise * 0.3 - stress * 0.4),
        "nutrition": _clamp(nutrition + exercise * 0.2 - symptoms * 0.3),
        "stress": VIEW_MAX - stress_left,
        "exercise": _clamp(exercise + sleep * 0.2 - stress * 0.2),
        "vitals": _clamp(vitals + nutrition * 0.3 + exercise * 0.2 - stress * 0.4),
        "symptoms": VIEW_MAX - symptoms_left,
        "pcos": pcos_influenced,
    }


def redistribute_weights(
    influenced: dict[str, float],
    weights: dict[str, float],
) -> dict[str, float]:
    """Boost under-performers, dampen strong performers, renormalize to 1."""
    adjusted = dict(weights)
    for name, value in influenced.items():
        if value < TARGET_LEVEL:
            adjusted[name] = min(MAX_WEIGHT, weights[name] * WEIGHT_BOOST)
        elif value > TARGET_LEVEL + STRONG_MARGIN:
            adjusted[name] = max(MIN_WEIGHT, weights[name] * WEIGHT_DAMPEN)

    total = sum(adjusted.values())
    return {name: weight / total for name, weight in adjusted.items()}


def _spread(influenced: dict[str, float]) -> float:
    return sum((value - VARIANCE_CENTER) ** 2 for value in influenced.values())


def _is_oscillating(history: list[float], score: float, threshold: float) -> bool:
    """True if score returned to the value of two iterations ago but not the last."""
    if len(history) < 2:
        return False
    return abs(score - history[-2]) < threshold and abs(score - history[-1]) >= threshold


def validate_iteration_params(max_iterations: int, convergence_threshold: float) -> None:
    """Check the refinement loop parameters.

    Raises:
        ValueError: If ``max_iterations`` is not an integer >= 1 or
            ``convergence_threshold`` is not > 0.
    """
    if isinstance(max_iterations, bool) or not isinstance(max_iterations, int) or max_iterations < 1:
        raise ValueError("max_iterations must be an integer >= 1")
    if not convergence_threshold > 0:
        raise ValueError("convergence_threshold must be > 0")


def compute_score_iterative(
    factors: HealthFactors,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    convergence_threshold: float = DEFAULT_CONVERGENCE_THRESHOLD,
) -> IterativeHealthResult:
    """Refine the score with adaptive weights until it stabilizes.

    Args:
        factors: Validated health factors.
        max_iterations: Hard cap on refinement iterations (>= 1).
        convergence_threshold: Minimum score movement (0-100 scale) that
            still counts as change.

    Returns:
        IterativeHealthResult. ``equilibrium_reached`` is False when the
        cap is hit or an oscillation is detected; the last score is still
        returned.

    Raises:
        ValueError: If the loop parameters are invalid.
    """
    validate_iteration_params(max_iterations, convergence_threshold)

    view = equilibrium_view(factors)
    weights = dict(INITIAL_WEIGHTS)
    history: list[float] = []
    reached = False
    oscillating = False
    score = 0.0
    scored_weights = weights

    # Influences depend only on the view, which never changes.
    influenced = cross_influences(view)

    for _ in range(max_iterations):
        score = sum(influenced[name] * weights[name] for name in EQUILIBRIUM_FACTORS)
        scored_weights = weights

        if history and abs(score - history[-1]) < convergence_threshold:
            reached = True
            history.append(score)
            break
        if _is_oscillating(history, score, convergence_threshold):
            oscillating = True
            history.append(score)
            break

        history.append(score)

        if _spread(influenced) > VARIANCE_TRIGGER:
            weights = redistribute_weights(influenced, weights)

    final = round(_clamp(score / 10, 0.0, FACTOR_MAX), 1)
    sd = standard_deviation(factors.as_values())
    balance = classify_balance(sd)

    return IterativeHealthResult(
        final_score=final,
        status=classify_status(final),
        balance_status=balance,
        equilibrium_factor=equilibrium_factor(sd),
        recommendations=tuple(generate_recommendations(factors, sd, balance)),
        flower_level=flower_level(final, balance),
        raw_score=weighted_raw_score(factors),
        standard_deviation=sd,
        iterations=len(history),
        equilibrium_reached=reached,
        oscillation_detected=oscillating,
        factor_weights=tuple(scored_weights.items()),
    )
