"""
Tests for the per-joint Kalman filter bank.
"""

import numpy as np
import pytest

from robot_tracking.builder import create_joint_filter_bank
from robot_tracking.config import JointFilterParameters
from robot_tracking.exceptions import ConfigurationError
from robot_tracking.filters import JointFilter, JointFilterBank


def make_parameters(**overrides):
    settings = dict(joint_sigma=0.1, bias_sigma=0.01, bias_factor=1.0, observation_sigma=0.001)
    settings.update(overrides)
    return JointFilterParameters(**settings)


class TestJointFilter:
    """Tests for a single joint filter."""

    def test_predict_grows_uncertainty(self):
        joint_filter = JointFilter(make_parameters())
        P_before = joint_filter.P.copy()
        joint_filter.predict(0.5)
        assert joint_filter.P[0, 0] == pytest.approx(P_before[0, 0] + 0.1**2 * 0.5)
        assert joint_filter.P[1, 1] == pytest.approx(P_before[1, 1] + 0.01**2 * 0.5)

    def test_non_positive_dt_is_noop(self):
        joint_filter = JointFilter(make_parameters())
        joint_filter.reset(0.3, 0.05)
        joint_filter.predict(0.0)
        joint_filter.predict(-1.0)
        np.testing.assert_allclose(joint_filter.x, [0.3, 0.05])

    def test_bias_decays_with_factor(self):
        joint_filter = JointFilter(make_parameters(bias_factor=0.5))
        joint_filter.reset(0.0, 0.2)
        joint_filter.predict(2.0)
        assert joint_filter.bias == pytest.approx(0.2 * 0.25)

    def test_covariance_stays_symmetric(self):
        joint_filter = JointFilter(make_parameters())
        for k in range(200):
            joint_filter.predict(0.001)
            joint_filter.update(0.2)
            if k % 20 == 0:
                joint_filter.correct_bias(0.01, 0.02)
        np.testing.assert_allclose(joint_filter.P, joint_filter.P.T)
        assert np.all(np.linalg.eigvalsh(joint_filter.P) >= -1e-12)

    def test_bias_correction_shifts_angle(self):
        """A positive residual lowers the bias and raises the angle."""
        joint_filter = JointFilter(make_parameters())
        joint_filter.reset(0.0, 0.0)
        for _ in range(50):
            joint_filter.predict(0.001)
            joint_filter.update(0.2)
        angle, bias = joint_filter.x

        joint_filter.correct_bias(0.05, 0.02)
        assert joint_filter.bias < bias
        assert joint_filter.angle > angle
        assert joint_filter.angle + joint_filter.bias == pytest.approx(angle + bias, abs=1e-3)


class TestJointFilterBank:
    """Tests for the factorized bank."""

    def test_converges_to_constant_reading(self, two_link_arm):
        """Noise-free readings of a fixed state are tracked within tolerance."""
        bank = JointFilterBank(two_link_arm, [make_parameters()] * 2)
        bank.reset(np.zeros(2))
        truth = np.array([0.3, -0.2])

        errors = []
        for _ in range(1000):
            estimate = bank.advance(0.001, truth)
            errors.append(np.max(np.abs(estimate - truth)))

        assert errors[10] < 1e-2
        assert max(errors[10:]) < 1e-2

    def test_nan_reading_marks_joint_stale(self, two_link_arm):
        """A missing reading predicts that joint only."""
        bank = JointFilterBank(two_link_arm, [make_parameters()] * 2)
        bank.reset(np.zeros(2))
        for _ in range(20):
            bank.advance(0.001, np.array([0.3, -0.2]))

        before = bank.estimate()
        variance_before = bank.variances()
        estimate = bank.advance(0.001, np.array([np.nan, -0.25]))

        np.testing.assert_array_equal(bank.stale(), [True, False])
        assert estimate[0] == pytest.approx(before[0])
        assert estimate[1] != pytest.approx(before[1])
        assert bank.variances()[0] > variance_before[0]

        bank.advance(0.001, np.array([0.3, -0.25]))
        np.testing.assert_array_equal(bank.stale(), [False, False])

    def test_joints_are_independent(self, two_link_arm):
        bank = JointFilterBank(two_link_arm, [make_parameters()] * 2)
        bank.reset(np.zeros(2))
        bank.advance(0.001, np.array([0.4, 0.0]))
        assert bank.estimate()[1] == pytest.approx(0.0)

    def test_correct_biases_skips_non_finite(self, two_link_arm):
        bank = JointFilterBank(two_link_arm, [make_parameters()] * 2)
        bank.reset(np.zeros(2))
        bank.correct_biases(np.array([0.05, np.nan]), 0.02)
        biases = bank.biases()
        assert biases[0] < 0.0
        assert biases[1] == 0.0

    def test_parameter_count_mismatch(self, two_link_arm):
        with pytest.raises(ConfigurationError):
            JointFilterBank(two_link_arm, [make_parameters()])

    def test_wrong_reading_length(self, two_link_arm):
        bank = JointFilterBank(two_link_arm, [make_parameters()] * 2)
        with pytest.raises(ConfigurationError):
            bank.advance(0.001, np.zeros(3))

    def test_built_from_parameter_tree(self, two_link_arm, params):
        bank = create_joint_filter_bank(params, two_link_arm)
        assert len(bank) == 2
        assert bank.filters[0].parameters.observation_sigma == pytest.approx(0.001)

    def test_missing_required_option(self, two_link_arm, params):
        del params['joint_transition']['bias_factors']
        with pytest.raises(ConfigurationError, match='bias_factors'):
            create_joint_filter_bank(params, two_link_arm)
