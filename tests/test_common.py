"""
Tests for angle helpers, residuals and the timestamped history.
"""

import numpy as np
import pytest

from robot_tracking.common import (StateHistory, angle_diff, circular_mean, normalize_angle,
                                   state_residual)


class TestAngles:
    def test_normalize_angle(self):
        assert normalize_angle(3 * np.pi / 2) == pytest.approx(-np.pi / 2)
        np.testing.assert_allclose(normalize_angle(np.array([0.1, 2 * np.pi + 0.1])), [0.1, 0.1])

    def test_angle_diff_wraps(self):
        assert angle_diff(np.pi - 0.1, -np.pi + 0.1) == pytest.approx(-0.2)

    def test_circular_mean_across_boundary(self):
        angles = np.array([np.pi - 0.1, -np.pi + 0.1])
        assert abs(circular_mean(angles)) == pytest.approx(np.pi)

    def test_weighted_circular_mean_per_column(self):
        angles = np.array([[0.0, 1.0], [0.2, 1.0]])
        mean = circular_mean(angles, weights=np.array([0.5, 0.5]))
        np.testing.assert_allclose(mean, [0.1, 1.0], atol=1e-12)


class TestStateResidual:
    def test_plain_joints(self):
        np.testing.assert_allclose(state_residual([1.0, 2.0], [0.5, 2.5]), [0.5, -0.5])

    def test_continuous_joints_wrap(self):
        y = state_residual([3.1, 3.1], [-3.1, -3.1], continuous=[True, False])
        assert y[0] == pytest.approx(6.2 - 2 * np.pi)
        assert y[1] == pytest.approx(6.2)

    def test_batch(self):
        y = state_residual(np.array([[3.1], [0.0]]), np.array([-3.1]), continuous=[True])
        assert y.shape == (2, 1)
        assert y[0, 0] == pytest.approx(6.2 - 2 * np.pi)


class TestStateHistory:
    def test_interpolation(self):
        history = StateHistory(10)
        history.append(0.0, [0.0, 1.0])
        history.append(1.0, [1.0, 3.0])
        np.testing.assert_allclose(history.at(0.25), [0.25, 1.5])

    def test_clamped_outside_window(self):
        history = StateHistory(10)
        history.append(1.0, [1.0])
        history.append(2.0, [2.0])
        np.testing.assert_allclose(history.at(0.0), [1.0])
        np.testing.assert_allclose(history.at(5.0), [2.0])

    def test_older_entries_rejected(self):
        history = StateHistory(10)
        assert history.append(2.0, [2.0])
        assert not history.append(1.0, [1.0])
        assert history.append(2.0, [2.5])
        assert len(history) == 2
        assert history.latest()[1][0] == 2.5

    def test_bounded(self):
        history = StateHistory(3)
        for k in range(10):
            history.append(float(k), [float(k)])
        assert len(history) == 3
        np.testing.assert_allclose(history.at(0.0), [7.0])

    def test_continuous_interpolation(self):
        history = StateHistory(10, continuous=[True])
        history.append(0.0, [np.pi - 0.1])
        history.append(1.0, [-np.pi + 0.1])
        assert abs(history.at(0.5)[0]) == pytest.approx(np.pi)

    def test_empty(self):
        history = StateHistory(5)
        assert history.at(1.0) is None
        assert history.latest() is None
