"""Tests for the iterative equilibrium refinement."""

from __future__ import annotations

import math

import pytest

from bloom.domains.maternal_health.domain_logic.equilibrium import (
    INITIAL_WEIGHTS,
    MAX_WEIGHT,
    MIN_WEIGHT,
    _is_oscillating,
    compute_score_iterative,
    cross_influences,
    equilibrium_view,
    redistribute_weights,
    validate_iteration_params,
)
from bloom.domains.maternal_health.domain_logic.factor_models import (
    ConvergenceNotReachedError,
    HealthFactors,
)
from bloom.domains.maternal_health.domain_logic.score_engine import compute_score


def _uniform(value: float, **optional) -> HealthFactors:
    return HealthFactors(
        symptom_score=value,
        vital_score=value,
        activity_score=value,
        nutrition_score=value,
        pcos_score=value,
        **optional,
    )


class TestView:
    def test_proxies_when_sleep_and_stress_absent(self):
        view = equilibrium_view(_uniform(2))
        assert view["sleep"] == 44.0
        assert view["stress"] == 80.0
        assert view["symptoms"] == 80.0
        assert view["vitals"] == 20.0

    def test_explicit_sleep_and_stress(self):
        view = equilibrium_view(_uniform(5, sleep_score=9, stress_level=2))
        assert view["sleep"] == 90.0
        assert view["stress"] == 20.0

    def test_influences_are_clamped(self):
        influenced = cross_influences(equilibrium_view(_uniform(10)))
        assert all(0.0 <= v <= 100.0 for v in influenced.values())
        assert influenced["vitals"] == 100.0

    def test_no_pcos_contribution_at_zero(self):
        factors = HealthFactors(
            symptom_score=8, vital_score=8, activity_score=8, nutrition_score=8, pcos_score=0
        )
        assert cross_influences(equilibrium_view(factors))["pcos"] == 0.0


class TestWeights:
    def test_redistribution_stays_normalized(self):
        influenced = {"sleep": 10, "nutrition": 95, "stress": 50, "exercise": 80,
                      "vitals": 20, "symptoms": 99, "pcos": 60}
        weights = redistribute_weights(influenced, INITIAL_WEIGHTS)
        assert math.isclose(sum(weights.values()), 1.0)
        assert weights["sleep"] > INITIAL_WEIGHTS["sleep"]
        assert weights["nutrition"] < INITIAL_WEIGHTS["nutrition"]

    def test_caps_applied_before_normalization(self):
        weights = dict(INITIAL_WEIGHTS, sleep=MAX_WEIGHT)
        influenced = dict.fromkeys(INITIAL_WEIGHTS, 90.0)
        influenced["sleep"] = 10.0
        adjusted = redistribute_weights(influenced, weights)
        # sleep capped at MAX_WEIGHT, pcos floored at MIN_WEIGHT, then renormalized
        total = MAX_WEIGHT + MIN_WEIGHT + sum(
            INITIAL_WEIGHTS[n] * 0.9 for n in INITIAL_WEIGHTS if n not in ("sleep", "pcos")
        )
        assert math.isclose(adjusted["sleep"], MAX_WEIGHT / total)
        assert math.isclose(adjusted["pcos"], MIN_WEIGHT / total)


class TestOscillation:
    def test_detects_period_two(self):
        assert _is_oscillating([60.0, 61.0], 60.0, 0.001)

    def test_not_oscillating_when_converging(self):
        assert not _is_oscillating([60.0, 61.0], 61.0, 0.001)
        assert not _is_oscillating([60.0], 60.0, 0.001)


class TestComputeScoreIterative:
    def test_low_factors_converge(self):
        result = compute_score_iterative(_uniform(2))
        assert result.equilibrium_reached is True
        assert result.iterations == 2
        assert result.final_score == 1.7
        assert result.status == "Critical"
        assert result.flower_level == 1

    def test_perfect_factors_converge(self):
        result = compute_score_iterative(_uniform(10))
        assert result.equilibrium_reached is True
        assert result.iterations == 2
        assert result.final_score == 10.0
        assert result.status == "Stable"

    def test_cap_reached_without_equilibrium(self):
        result = compute_score_iterative(_uniform(5), max_iterations=2)
        assert result.iterations == 2
        assert result.equilibrium_reached is False
        assert 0.0 <= result.final_score <= 10.0
        with pytest.raises(ConvergenceNotReachedError):
            result.require_equilibrium()

    def test_single_iteration_never_converges(self):
        result = compute_score_iterative(_uniform(10), max_iterations=1)
        assert result.iterations == 1
        assert result.equilibrium_reached is False

    def test_iterations_bounded(self):
        for value in (0, 3, 5, 6.5, 8):
            result = compute_score_iterative(_uniform(value))
            assert 1 <= result.iterations <= 50
            assert 0.0 <= result.final_score <= 10.0

    def test_weights_normalized(self):
        result = compute_score_iterative(_uniform(5))
        weights = result.weights
        assert math.isclose(sum(weights.values()), 1.0)
        assert set(weights) == set(INITIAL_WEIGHTS)
        assert [name for name, _ in result.factor_weights] == list(INITIAL_WEIGHTS)

    def test_classification_matches_weighted(self):
        factors = HealthFactors(
            symptom_score=2, vital_score=10, activity_score=10, nutrition_score=10, pcos_score=10
        )
        iterative = compute_score_iterative(factors)
        weighted = compute_score(factors)
        assert iterative.balance_status == weighted.balance_status
        assert iterative.equilibrium_factor == weighted.equilibrium_factor
        assert iterative.recommendations == weighted.recommendations
        assert iterative.method == "iterative"

    def test_deterministic(self):
        factors = _uniform(6, sleep_score=4, stress_level=7)
        assert compute_score_iterative(factors) == compute_score_iterative(factors)

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_iterations": 0}, {"max_iterations": 2.5}, {"convergence_threshold": 0}],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            compute_score_iterative(_uniform(5), **kwargs)

    def test_result_is_hashable(self):
        result = compute_score_iterative(_uniform(6, sleep_score=4, stress_level=7))
        assert hash(result) == hash(compute_score_iterative(_uniform(6, sleep_score=4, stress_level=7)))


class TestValidateIterationParams:
    def test_accepts_defaults(self):
        assert validate_iteration_params(50, 0.001) is None

    @pytest.mark.parametrize(
        ("max_iterations", "threshold", "message"),
        [
            (0, 0.001, "max_iterations"),
            (-3, 0.001, "max_iterations"),
            (2.5, 0.001, "max_iterations"),
            (True, 0.001, "max_iterations"),
            (50, 0, "convergence_threshold"),
            (50, -0.1, "convergence_threshold"),
        ],
    )
    def test_rejects_invalid(self, max_iterations, threshold, message):
        with pytest.raises(ValueError, match=message):
            validate_iteration_params(max_iterations, threshold)
