"""Deterministic factor derivation: raw observations -> 0-10 health factors.

Each derive function is pure and maps one observation category onto the
0-10 factor scale through fixed bands. Results are always clamped to
[0, 10]. Malformed observations raise ``InvalidObservationError``; they are
never replaced by a default.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from bloom.domains.maternal_health.domain_logic.factor_models import (
    FACTOR_MAX,
    HealthFactors,
    InvalidObservationError,
)

# Severity weight per logged symptom; anything unlisted counts as 1.
SYMPTOM_SEVERITY = {
    "fatigue": 2,
    "nausea": 1,
    "headache": 3,
    "pain": 4,
    "bleeding": 5,
    "fever": 4,
}
DEFAULT_SYMPTOM_SEVERITY = 1


def _clamp(value: float, lo: float = 0.0, hi: float = FACTOR_MAX) -> float:
    """Clamp a value to [lo, hi]."""
    return max(lo, min(hi, value))


def _num(label: str, value: Any, *, minimum: float = 0.0, maximum: float | None = None) -> float:
    """Validate a numeric observation, raising on anything unusable."""
    if value is None:
        raise InvalidObservationError(f"{label} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidObservationError(f"{label} must be a number, got {type(value).__name__}")
    number = float(value)
    if not math.isfinite(number):
        raise InvalidObservationError(f"{label} must be finite")
    if number < minimum:
        raise InvalidObservationError(f"{label} must be >= {minimum:g}, got {number:g}")
    if maximum is not None and number > maximum:
        raise InvalidObservationError(f"{label} must be <= {maximum:g}, got {number:g}")
    return number


# ---------------------------------------------------------------------------
# Factor 1: Symptoms
# ---------------------------------------------------------------------------

def derive_symptom_score(symptoms: Iterable[str]) -> float:
    """Score logged symptoms by total severity (fewer/milder = higher).

    Bands on the summed severity: 0 -> 10, <=3 -> 8, <=6 -> 6, <=10 -> 4,
    otherwise 2. An empty log is a perfect 10.
    """
    total = 0
    for symptom in symptoms:
        if not isinstance(symptom, str):
            raise InvalidObservationError(
                f"symptom names must be strings, got {type(symptom).__name__}"
            )
        total += SYMPTOM_SEVERITY.get(symptom.strip().lower(), DEFAULT_SYMPTOM_SEVERITY)

    if total == 0:
        return 10.0
    if total <= 3:
        return 8.0
    if total <= 6:
        return 6.0
    if total <= 10:
        return 4.0
    return 2.0


# ---------------------------------------------------------------------------
# Factor 2: Vitals
# ---------------------------------------------------------------------------

def derive_vital_score(systolic: float, diastolic: float, fasting_blood_sugar: float) -> float:
    """Score blood pressure and fasting blood sugar against clinical targets.

    Starts at 10. Blood pressure: -4 hypertensive (>140/90), else -2
    elevated (>130/85), else -3 hypotensive (<90/60). Fasting sugar: -4 if
    >125, else -2 if >100, else -3 if <70 mg/dL.
    """
    systolic = _num("vitals.systolic", systolic)
    diastolic = _num("vitals.diastolic", diastolic)
    sugar = _num("vitals.fasting_blood_sugar", fasting_blood_sugar)

    score = 10.0

    if systolic > 140 or diastolic > 90:
        score -= 4
    elif systolic > 130 or diastolic > 85:
        score -= 2
    elif systolic < 90 or diastolic < 60:
        score -= 3

    if sugar > 125:
        score -= 4
    elif sugar > 100:
        score -= 2
    elif sugar < 70:
        score -= 3

    return _clamp(score)


# ---------------------------------------------------------------------------
# Factor 3: Activity
# ---------------------------------------------------------------------------

def _step_band(steps: float) -> int:
    if steps >= 8000:
        return 5
    if steps >= 5000:
        return 4
    if steps >= 3000:
        return 3
    if steps >= 1000:
        return 2
    return 1


def _exercise_band(minutes: float) -> int:
    if minutes >= 30:
        return 5
    if minutes >= 20:
        return 4
    if minutes >= 10:
        return 3
    if minutes >= 5:
        return 2
    return 1


def derive_activity_score(daily_steps: float, exercise_minutes: float) -> float:
    """Score movement: step band (1-5) plus gentle-exercise band (1-5)."""
    steps = _num("activity.daily_steps", daily_steps)
    minutes = _num("activity.exercise_minutes", exercise_minutes)
    return _clamp(float(_step_band(steps) + _exercise_band(minutes)))


# ---------------------------------------------------------------------------
# Factor 4: Nutrition
# ---------------------------------------------------------------------------

def derive_nutrition_score(water_glasses: float, meal_quality: float) -> float:
    """Score hydration band (2-5) plus self-reported meal quality (1-5)."""
    water = _num("nutrition.water_glasses", water_glasses)
    quality = _num("nutrition.meal_quality", meal_quality, minimum=1, maximum=5)

    if water >= 8:
        hydration = 5
    elif water >= 6:
        hydration = 4
    elif water >= 4:
        hydration = 3
    else:
        hydration = 2

    return _clamp(hydration + quality)


# ---------------------------------------------------------------------------
# Factor 5: PCOS management
# ---------------------------------------------------------------------------

def derive_pcos_score(has_pcos: bool, management_actions: float = 0) -> float:
    """Score PCOS management; users without the condition score 10.

    ``management_actions`` counts adherence behaviours (medication taken,
    diet plan followed, ...). Each one adds 1.5 on top of a base of 3.
    """
    if not isinstance(has_pcos, bool):
        raise InvalidObservationError("pcos.has_pcos must be true or false")
    if not has_pcos:
        return 10.0
    actions = _num("pcos.management_actions", management_actions)
    return _clamp(3 + actions * 1.5)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def _section(observations: Mapping[str, Any], key: str, *, required: bool) -> Mapping[str, Any]:
    section = observations.get(key)
    if section is None:
        if required:
            raise InvalidObservationError(f"missing required observation: {key}")
        return {}
    if not isinstance(section, Mapping):
        raise InvalidObservationError(f"{key} must be an object")
    return section


def _symptom_names(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str) or not isinstance(raw, Iterable):
        raise InvalidObservationError("symptoms must be a list")
    names = []
    for item in raw:
        if isinstance(item, Mapping):
            item = item.get("name")
        names.append(item)
    return names


def derive_factors(observations: Mapping[str, Any]) -> HealthFactors:
    """Derive all health factors from one set of raw observations.

    Expected shape::

        {
            "symptoms": ["fatigue", "headache"],
            "vitals": {"systolic": 118, "diastolic": 76, "fasting_blood_sugar": 88},
            "activity": {"daily_steps": 6200, "exercise_minutes": 25},
            "nutrition": {"water_glasses": 7, "meal_quality": 4},
            "pcos": {"has_pcos": false},
            "sleep_score": 7,      # optional, 0-10
            "stress_level": 3,     # optional, 0-10 (higher = more stress)
        }

    ``symptoms`` and ``pcos`` may be omitted (nothing logged / condition
    absent). ``vitals``, ``activity`` and ``nutrition`` are required.

    Raises:
        InvalidObservationError: If a required observation is missing or
            malformed.
    """
    if not isinstance(observations, Mapping):
        raise InvalidObservationError("observations must be an object")

    vitals = _section(observations, "vitals", required=True)
    activity = _section(observations, "activity", required=True)
    nutrition = _section(observations, "nutrition", required=True)
    pcos = _section(observations, "pcos", required=False)

    sleep = observations.get("sleep_score")
    stress = observations.get("stress_level")

    return HealthFactors(
        symptom_score=derive_symptom_score(_symptom_names(observations.get("symptoms"))),
        vital_score=derive_vital_score(
            vitals.get("systolic"),
            vitals.get("diastolic"),
            vitals.get("fasting_blood_sugar"),
        ),
        activity_score=derive_activity_score(
            activity.get("daily_steps"),
            activity.get("exercise_minutes"),
        ),
        nutrition_score=derive_nutrition_score(
            nutrition.get("water_glasses"),
            nutrition.get("meal_quality"),
        ),
        pcos_score=derive_pcos_score(
            pcos.get("has_pcos", False),
            pcos.get("management_actions", 0),
        ),
        sleep_score=None if sleep is None else _num("sleep_score", sleep, maximum=FACTOR_MAX),
        stress_level=None if stress is None else _num("stress_level", stress, maximum=FACTOR_MAX),
    )
