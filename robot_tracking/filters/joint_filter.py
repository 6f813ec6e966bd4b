"""
Factorized joint filter bank.

One independent linear Kalman filter per joint tracks the joint angle and
the encoder bias:

    state       x = [angle, bias]
    transition  angle' = angle + w_a,             Var(w_a) = joint_sigma**2 * dt
                bias'  = bias_factor**dt * bias + w_b,  Var(w_b) = bias_sigma**2 * dt
    observation reading = angle + bias + v,       Var(v) = observation_sigma**2

Filters never share state, so a missing reading on one joint only affects
that joint, and each update is a handful of 2x2 operations.
"""

import logging

import numpy as np

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_H_READING = np.array([[1.0, 1.0]])
_H_BIAS = np.array([[0.0, 1.0]])


class JointFilter:
    """
    Kalman filter over [angle, bias] of a single joint.

    Parameters
    ----------
    parameters : JointFilterParameters
        Transition and observation noise of this joint

    Attributes
    ----------
    x : np.ndarray
        Mean [angle, bias]
    P : np.ndarray
        Covariance (2, 2)
    stale : bool
        True when the last advance had no valid reading
    """

    def __init__(self, parameters):
        self.parameters = parameters
        self.x = np.zeros(2)
        self.P = np.diag([parameters.initial_joint_sigma**2,
                          parameters.initial_bias_sigma**2])
        self.stale = False

    def reset(self, angle, bias=0.0):
        params = self.parameters
        self.x = np.array([angle, bias], dtype=float)
        self.P = np.diag([params.initial_joint_sigma**2, params.initial_bias_sigma**2])
        self.stale = False

    @property
    def angle(self):
        return self.x[0]

    @property
    def bias(self):
        return self.x[1]

    def predict(self, dt):
        """
        Propagate the belief over a time step without a reading.

        Parameters
        ----------
        dt : float
            Time step in seconds (non-negative)
        """
        if dt <= 0.0:
            return
        params = self.parameters
        F = np.array([[1.0, 0.0],
                      [0.0, params.bias_factor**dt]])
        Q = np.diag([params.joint_sigma**2 * dt, params.bias_sigma**2 * dt])

        self.x = F @ self.x
        self.P = F @ self.P @ F.T + Q

    def update(self, reading):
        """Fuse one encoder reading (angle + bias)."""
        self._correct(_H_READING, reading, self.parameters.observation_sigma**2)
        self.stale = False

    def correct_bias(self, residual, sigma):
        """
        Fuse an external angle correction as an observation of the bias.

        A residual r = true angle - estimated angle implies the encoder
        bias is r lower than estimated, so the bias is observed as
        ``bias - r`` with standard deviation ``sigma``.
        """
        self._correct(_H_BIAS, self.x[1] - residual, sigma**2)

    def _correct(self, H, z, R):
        y = z - (H @ self.x)[0]
        S = (H @ self.P @ H.T)[0, 0] + R
        K = (self.P @ H.T)[:, 0] / S

        self.x = self.x + K * y

        # Joseph form keeps P symmetric positive semi-definite
        I_KH = np.eye(2) - np.outer(K, H[0])
        self.P = I_KH @ self.P @ I_KH.T + R * np.outer(K, K)


class JointFilterBank:
    """
    Fixed-size collection of independent joint filters, indexed by joint.

    Parameters
    ----------
    kinematics : RobotKinematics
        Shared joint layout
    parameters : list of JointFilterParameters
        One entry per joint

    Examples
    --------
    >>> bank = JointFilterBank(kinematics, joint_filter_parameters(params, 2))
    >>> bank.reset(np.zeros(2))
    >>> bank.advance(0.001, np.array([0.10, -0.05]))
    >>> bank.estimate()
    """

    def __init__(self, kinematics, parameters):
        parameters = list(parameters)
        if len(parameters) != kinematics.joint_count:
            raise ConfigurationError(
                f"{len(parameters)} joint filter parameter sets for "
                f"{kinematics.joint_count} joints"
            )
        self.kinematics = kinematics
        self.filters = [JointFilter(p) for p in parameters]

    def __len__(self):
        return len(self.filters)

    def reset(self, state, bias=None):
        """Re-initialize every joint belief at the given angles (and biases)."""
        state = self.kinematics.check_state(state)
        if bias is None:
            bias = np.zeros(len(self.filters))
        bias = self.kinematics.check_state(bias)
        for joint_filter, angle, b in zip(self.filters, state, bias):
            joint_filter.reset(angle, b)

    def predict(self, dt):
        for joint_filter in self.filters:
            joint_filter.predict(dt)

    def advance(self, dt, readings):
        """
        Predict over dt and fuse one encoder sample.

        Joints whose reading is NaN (or infinite) are only predicted and
        flagged stale; the other joints update normally.

        Parameters
        ----------
        dt : float
            Time since the previous sample (s)
        readings : np.ndarray
            Raw encoder angles (joint_count,)

        Returns
        -------
        np.ndarray
            Updated angle estimate (joint_count,)
        """
        readings = self.kinematics.check_state(readings)
        for i, (joint_filter, reading) in enumerate(zip(self.filters, readings)):
            joint_filter.predict(dt)
            if np.isfinite(reading):
                joint_filter.update(reading)
            else:
                if not joint_filter.stale:
                    logger.debug("No valid reading for joint %s, predicting only",
                                 self.kinematics.joint_names[i])
                joint_filter.stale = True
        return self.estimate()

    def correct_biases(self, residual, sigmas):
        """
        Fold a per-joint angle residual into the bias estimates.

        Joints with a non-finite residual are left untouched.
        """
        residual = np.asarray(residual, dtype=float)
        sigmas = np.broadcast_to(np.asarray(sigmas, dtype=float), residual.shape)
        for joint_filter, r, sigma in zip(self.filters, residual, sigmas):
            if np.isfinite(r):
                joint_filter.correct_bias(r, sigma)

    def estimate(self):
        """Mean joint angles (joint_count,)."""
        return np.array([f.x[0] for f in self.filters])

    def biases(self):
        return np.array([f.x[1] for f in self.filters])

    def variances(self):
        """Angle variances (joint_count,)."""
        return np.array([f.P[0, 0] for f in self.filters])

    def stale(self):
        return np.array([f.stale for f in self.filters], dtype=bool)
