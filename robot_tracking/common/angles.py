"""
Angle utilities for joint states.

Continuous (unbounded revolute) joints wrap around at ±pi, so their
differences and averages must be computed on the circle.
"""

import numpy as np


def normalize_angle(angle):
    """
    Normalize angle to [-pi, pi].

    Parameters
    ----------
    angle : float or np.ndarray
        Angle(s) in radians

    Returns
    -------
    float or np.ndarray
        Normalized angle(s) in [-pi, pi]
    """
    return np.arctan2(np.sin(angle), np.cos(angle))


def angle_diff(angle1, angle2):
    """
    Smallest signed difference angle1 - angle2, in [-pi, pi].

    Examples
    --------
    >>> angle_diff(np.pi, -np.pi)
    0.0
    >>> angle_diff(0.1, -0.1)
    0.2
    """
    return normalize_angle(np.asarray(angle1) - np.asarray(angle2))


def circular_mean(angles, weights=None, axis=0):
    """
    Weighted circular mean along an axis.

    Uses atan2(sum(w sin), sum(w cos)) so that hypotheses on both sides
    of ±pi average correctly.

    Parameters
    ----------
    angles : np.ndarray
        Angles in radians
    weights : np.ndarray, optional
        Weights along ``axis``. Uniform if None.
    axis : int, optional
        Axis to reduce

    Returns
    -------
    float or np.ndarray
        Mean angle(s) in [-pi, pi]
    """
    angles = np.asarray(angles, dtype=float)
    if weights is None:
        weights = np.ones(angles.shape[axis])
    weights = np.asarray(weights, dtype=float)

    sin_sum = np.tensordot(weights, np.sin(angles), axes=([0], [axis]))
    cos_sum = np.tensordot(weights, np.cos(angles), axes=([0], [axis]))

    return np.arctan2(sin_sum, cos_sum)
