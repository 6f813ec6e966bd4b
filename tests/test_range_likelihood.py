"""
Tests for the occlusion-aware range sensor model.
"""

import math

import numpy as np
import pytest
from scipy.integrate import trapezoid

from robot_tracking.config import RangeLikelihoodParameters
from robot_tracking.models import RangeLikelihoodModel, SensorModel


@pytest.fixture
def model():
    return RangeLikelihoodModel()


class TestVisibleBranch:
    """Tests for unoccluded pixels."""

    def test_peak_value(self, model):
        """Density at the prediction matches the Gaussian peak plus the tail."""
        sigma = 0.003 + 0.00142478
        expected = 0.99 / (math.sqrt(2 * math.pi) * sigma) + 0.01 / 6.0
        assert model.probability(1.0, 1.0, False) == pytest.approx(expected, rel=1e-9)
        assert model.probability(1.0, 1.0, False) == pytest.approx(89.26, rel=1e-3)

    def test_maximum_at_prediction(self, model):
        """Density decreases as the observation moves away from the prediction."""
        p = 2.0
        at_prediction = model.probability(p, p, False)
        for offset in (0.001, 0.005, 0.02):
            assert model.probability(p, p + offset, False) < at_prediction
            assert model.probability(p, p - offset, False) < at_prediction

    def test_far_from_prediction_is_tail(self, model):
        """Far away from the prediction only the tail remains."""
        assert model.probability(1.0, 5.0, False) == pytest.approx(model.tail_density, rel=1e-9)
        assert model.tail_density == pytest.approx(0.01 / 6.0)

    def test_unbounded_prediction_is_tail(self, model):
        """No model surface along the ray leaves only the tail."""
        assert model.probability(np.inf, 2.0, False) == pytest.approx(model.tail_density)

    def test_integrates_to_one(self, model):
        """Density over [0, max_range] integrates to about one."""
        r = np.linspace(0.0, 6.0, 120001)
        density = model.probability(2.0, r, False)
        assert trapezoid(density, r) == pytest.approx(1.0, abs=1e-2)


class TestOccludedBranch:
    """Tests for occluded pixels."""

    def test_unbounded_prediction_closed_form(self, model):
        """Infinite prediction reduces to the exponential-times-Gaussian form."""
        rate = math.log(2.0)
        for r in (0.0, 0.5, 1.0, 3.0, 6.0):
            sigma = 0.003 + 0.00142478 * r**2
            expected = 0.99 * rate * math.exp(-rate * r + 0.5 * rate**2 * sigma**2) + 0.01 / 6.0
            value = model.probability(np.inf, r, True)
            assert np.isfinite(value)
            assert value == pytest.approx(expected, rel=1e-9)

    def test_integrates_to_one(self, model):
        """Truncated exponential plus tail integrates to about one."""
        r = np.linspace(0.0, 6.0, 120001)
        density = model.probability(2.0, r, True)
        assert trapezoid(density, r) == pytest.approx(1.0, abs=1e-2)

    def test_nearer_than_prediction_favored(self, model):
        """Occluded pixels prefer observations in front of the prediction."""
        assert model.probability(2.0, 1.0, True) > model.probability(2.0, 3.0, True)
        assert model.probability(2.0, 1.0, True) > model.probability(2.0, 1.0, False)

    def test_zero_prediction_uses_visible_branch(self, model):
        """A zero-range prediction cannot be occluded."""
        assert model.probability(0.0, 0.0, True) == model.probability(0.0, 0.0, False)


class TestEdgeCases:
    """Tests for degenerate inputs."""

    def test_positive_and_finite_on_grid(self, model):
        predictions = np.array([0.0, 0.1, 1.0, 2.5, 6.0, np.inf])
        observations = np.linspace(0.0, 6.0, 61)
        for occluded in (False, True):
            density = model.probability(predictions[:, None], observations[None, :], occluded)
            assert density.shape == (6, 61)
            assert np.all(np.isfinite(density))
            assert np.all(density > 0)

    def test_non_finite_observation_scores_tail(self, model):
        for occluded in (False, True):
            assert model.probability(2.0, np.inf, occluded) == pytest.approx(model.tail_density)
            assert model.probability(2.0, np.nan, occluded) == pytest.approx(model.tail_density)

    @pytest.mark.parametrize('observed', [500.0, 1000.0, 1e4])
    def test_saturated_observation_keeps_tail(self, model, observed):
        """Far readings overflow the occluded closed form but still score the tail."""
        for predicted in (2.0, np.inf):
            density = model.probability(predicted, observed, True)
            assert np.isfinite(density)
            assert density >= model.tail_density
            assert density > 0
            assert np.isfinite(model.log_probability(predicted, observed, True))

    def test_log_of_zero_is_negative_infinity(self):
        """Without a tail, a far observation has zero density and log -inf."""
        model = RangeLikelihoodModel(RangeLikelihoodParameters(tail_weight=0.0))
        assert model.probability(1.0, 5.0, False) == 0.0
        assert model.log_probability(1.0, 5.0, False) == -np.inf

    def test_log_probability_matches_probability(self, model):
        r = np.array([0.5, 1.0, 1.01, 4.0])
        np.testing.assert_allclose(model.log_probability(1.0, r, False),
                                   np.log(model.probability(1.0, r, False)))

    def test_scalar_inputs_return_float(self, model):
        assert isinstance(model.probability(1.0, 1.0, False), float)
        assert isinstance(model.log_probability(1.0, 1.0, True), float)

    def test_occlusion_flags_broadcast(self, model):
        flags = np.array([[True, False], [False, True]])
        density = model.probability(np.full((2, 2), 2.0), np.full((2, 2), 1.5), flags)
        assert density[0, 0] == density[1, 1]
        assert density[0, 1] == density[1, 0]
        assert density[0, 0] != density[0, 1]


class TestConditioning:
    """Tests for set_prediction / conditional_* queries."""

    def test_conditional_matches_direct(self, model):
        predicted = np.array([[1.0, 2.0], [np.inf, 3.0]])
        occluded = np.array([[False, True], [True, False]])
        observed = np.array([[1.01, 1.5], [2.0, 3.0]])

        model.set_prediction(predicted, occluded)
        np.testing.assert_allclose(model.conditional_probability(observed),
                                   model.probability(predicted, observed, occluded))
        np.testing.assert_allclose(model.conditional_log_probability(observed),
                                   model.log_probability(predicted, observed, occluded))

    def test_unprimed_model_raises(self, model):
        with pytest.raises(RuntimeError):
            model.conditional_probability(1.0)

    def test_satisfies_sensor_model_protocol(self, model):
        assert isinstance(model, SensorModel)
