"""Weighted health score with balance penalty.

The score is the weighted mean of the five factors minus a penalty
proportional to their spread, so a user with one badly neglected area
cannot score as well as one with the same mean spread evenly. Every
scoring path (local, iterative, remote fallback) classifies through the
functions in this module.
"""

from __future__ import annotations

import statistics
from typing import Sequence

from bloom.domains.maternal_health.domain_logic.factor_models import (
    BALANCE_PENALTY_RATE,
    CAUTION_THRESHOLD,
    EQUILIBRIUM_CEILING,
    FACTOR_AREAS,
    FACTOR_MAX,
    FACTOR_NAMES,
    FACTOR_WEIGHTS,
    GOOD_FACTOR_THRESHOLD,
    IMBALANCED_SD,
    MODERATE_SD,
    PERFECT_BALANCE_SD,
    STABLE_THRESHOLD,
    BalanceStatus,
    HealthFactors,
    HealthResult,
    ScoreStatus,
)

MSG_RESTORE_BALANCE = "Focus on improving {area} to restore balance"
MSG_VITALS_ATTENTION = "Your vitals need attention despite feeling okay - consult your doctor"
MSG_SYMPTOM_COMFORT = "Your vitals are great! Let's work on symptom management for comfort"
MSG_PERFECT_BALANCE = "Amazing balance! You're in perfect health equilibrium"
MSG_MOVEMENT_NUTRITION = (
    "Gentle movement and good nutrition work together - start with one to boost both"
)

# Only used when none of the balance rules above fire.
FACTOR_TIPS = {
    "symptom_score": "Track symptoms and discuss patterns with your doctor for better management",
    "vital_score": "Monitor blood pressure and blood sugar regularly with your healthcare provider",
    "activity_score": "Gentle prenatal exercises can improve multiple health factors simultaneously",
    "nutrition_score": "Focus on balanced nutrition with prenatal vitamins for optimal health balance",
    "pcos_score": "Continue PCOS management strategies for hormonal balance",
}

# Gap (in factor points) between vitals and symptoms that warrants a note.
VITAL_SYMPTOM_GAP = 2.0
LOW_LIFESTYLE_THRESHOLD = 5.0


def _clamp(value: float, lo: float = 0.0, hi: float = FACTOR_MAX) -> float:
    return max(lo, min(hi, value))


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation (divide by n, not n - 1)."""
    return statistics.pstdev(values)


def weighted_raw_score(factors: HealthFactors) -> float:
    """Weighted sum of the five core factors, before any penalty."""
    return sum(getattr(factors, name) * FACTOR_WEIGHTS[name] for name in FACTOR_NAMES)


def classify_status(final_score: float) -> ScoreStatus:
    if final_score >= STABLE_THRESHOLD:
        return "Stable"
    if final_score >= CAUTION_THRESHOLD:
        return "Caution"
    return "Critical"


def classify_balance(sd: float) -> BalanceStatus:
    if sd > IMBALANCED_SD:
        return "Imbalanced"
    if sd > MODERATE_SD:
        return "Moderate"
    return "Harmonious"


def equilibrium_factor(sd: float) -> float:
    """How much headroom remains before dispersion dominates, 0-3."""
    return round(max(0.0, EQUILIBRIUM_CEILING - sd), 1)


def flower_level(final_score: float, balance: BalanceStatus) -> int:
    """Map a final score to a flower tier (1 seedling .. 5 full bloom).

    Full bloom also requires a harmonious balance.
    """
    if final_score >= 9 and balance == "Harmonious":
        return 5
    if final_score >= 8:
        return 4
    if final_score >= 7:
        return 3
    if final_score >= 5:
        return 2
    return 1


def generate_recommendations(
    factors: HealthFactors,
    sd: float,
    balance: BalanceStatus,
) -> list[str]:
    """Derive ordered recommendations; each rule fires at most once."""
    recommendations: list[str] = []
    values = factors.as_values()
    lowest = FACTOR_NAMES[values.index(min(values))]

    if balance == "Imbalanced":
        recommendations.append(MSG_RESTORE_BALANCE.format(area=FACTOR_AREAS[lowest]))

    if factors.vital_score < factors.symptom_score - VITAL_SYMPTOM_GAP:
        recommendations.append(MSG_VITALS_ATTENTION)

    if factors.symptom_score < factors.vital_score - VITAL_SYMPTOM_GAP:
        recommendations.append(MSG_SYMPTOM_COMFORT)

    if sd < PERFECT_BALANCE_SD:
        recommendations.append(MSG_PERFECT_BALANCE)

    if (
        factors.activity_score < LOW_LIFESTYLE_THRESHOLD
        and factors.nutrition_score < LOW_LIFESTYLE_THRESHOLD
    ):
        recommendations.append(MSG_MOVEMENT_NUTRITION)

    if not recommendations and getattr(factors, lowest) < GOOD_FACTOR_THRESHOLD:
        recommendations.append(FACTOR_TIPS[lowest])

    return recommendations


def compute_score(factors: HealthFactors) -> HealthResult:
    """Score validated factors with the weighted, balance-penalized formula.

    ``final = round(clamp(raw - 0.3 * sd, 0, 10), 1)``; status and flower
    tier are classified from the rounded value.
    """
    values = factors.as_values()
    raw = weighted_raw_score(factors)
    sd = standard_deviation(values)

    final = round(_clamp(raw - BALANCE_PENALTY_RATE * sd), 1)
    balance = classify_balance(sd)

    return HealthResult(
        final_score=final,
        status=classify_status(final),
        balance_status=balance,
        equilibrium_factor=equilibrium_factor(sd),
        recommendations=tuple(generate_recommendations(factors, sd, balance)),
        flower_level=flower_level(final, balance),
        raw_score=raw,
        standard_deviation=sd,
        method="weighted",
    )
