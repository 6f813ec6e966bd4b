"""
Residuals between joint states.

Differences of continuous joints are wrapped to [-pi, pi]; bounded
revolute and prismatic joints are plain differences.
"""

import numpy as np

from .angles import normalize_angle


def state_residual(a, b, continuous=None):
    """
    Compute the residual y = a - b between two joint states.

    Parameters
    ----------
    a : np.ndarray
        First state (joint_count,) or (N, joint_count)
    b : np.ndarray
        Second state, broadcastable to ``a``
    continuous : np.ndarray of bool, optional
        Mask of continuous joints (joint_count,)

    Returns
    -------
    np.ndarray
        Residual with continuous joints wrapped

    Examples
    --------
    >>> state_residual([3.1, 1.0], [-3.1, 0.5], continuous=[True, False])
    array([-0.0831..., 0.5])
    """
    y = np.asarray(a, dtype=float) - np.asarray(b, dtype=float)

    if continuous is not None:
        continuous = np.asarray(continuous, dtype=bool)
        if np.any(continuous):
            y[..., continuous] = normalize_angle(y[..., continuous])

    return y

