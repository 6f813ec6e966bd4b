"""
Read-only kinematic context shared by all tracking components.

The context is constructed once at setup and handed to every component
that needs the joint layout. Its arrays are immutable, so sharing one
instance between threads needs no locking.
"""

import numpy as np

from ..exceptions import ConfigurationError


def _readonly(values):
    array = np.array(values, dtype=float)
    array.setflags(write=False)
    return array


class RobotKinematics:
    """
    Joint layout of an articulated robot.

    Parameters
    ----------
    joint_names : sequence of str
        Joint names in state-vector order
    lower_limits, upper_limits : array_like, optional
        Joint limits. Unbounded (-inf, inf) if None.
    continuous : array_like of bool, optional
        Joints that wrap around at ±pi
    """

    def __init__(self, joint_names, lower_limits=None, upper_limits=None, continuous=None):
        self._joint_names = tuple(str(name) for name in joint_names)
        n = len(self._joint_names)
        if n == 0:
            raise ConfigurationError("A robot needs at least one joint")
        if len(set(self._joint_names)) != n:
            raise ConfigurationError(f"Duplicate joint names in {self._joint_names}")

        self._index = {name: i for i, name in enumerate(self._joint_names)}

        lower = np.full(n, -np.inf) if lower_limits is None else np.asarray(lower_limits, dtype=float)
        upper = np.full(n, np.inf) if upper_limits is None else np.asarray(upper_limits, dtype=float)
        if lower.shape != (n,) or upper.shape != (n,):
            raise ConfigurationError(f"Joint limits must have {n} entries")
        if np.any(lower > upper):
            raise ConfigurationError("Lower joint limit above upper limit")

        if continuous is None:
            continuous = np.zeros(n, dtype=bool)
        continuous = np.array(continuous, dtype=bool)
        if continuous.shape != (n,):
            raise ConfigurationError(f"Continuous-joint mask must have {n} entries")
        continuous.setflags(write=False)

        self._lower = _readonly(lower)
        self._upper = _readonly(upper)
        self._continuous = continuous

    @property
    def joint_count(self):
        return len(self._joint_names)

    @property
    def joint_names(self):
        return self._joint_names

    @property
    def lower_limits(self):
        return self._lower

    @property
    def upper_limits(self):
        return self._upper

    @property
    def continuous(self):
        return self._continuous

    def index_of(self, name):
        try:
            return self._index[name]
        except KeyError:
            raise KeyError(f"Unknown joint '{name}'") from None

    def check_state(self, state):
        """
        Validate a state vector against the joint layout.

        Raises
        ------
        ConfigurationError
            If the vector length does not match the joint count
        """
        state = np.asarray(state, dtype=float)
        if state.shape != (self.joint_count,):
            raise ConfigurationError(
                f"State has shape {state.shape}, expected ({self.joint_count},)"
            )
        return state

    def clip(self, states):
        """Clip one state (joint_count,) or a batch (N, joint_count) to the joint limits."""
        return np.clip(states, self._lower, self._upper)

    def forward_kinematics(self, state):
        """
        Points along the robot for one state, used by renderers.

        The joint layout alone does not define a geometry: subclasses
        such as PlanarArm override this. The base class serves trackers
        and filters that only need names, limits and wrapping.

        Returns
        -------
        np.ndarray
            Point coordinates (M, 2) in the camera frame
        """
        raise NotImplementedError(
            f"{type(self).__name__} has no geometry; use a subclass such as PlanarArm"
        )


class PlanarArm(RobotKinematics):
    """
    Serial planar arm moving in the camera's x-z plane.

    Joint k rotates link k; the link direction is the cumulative joint
    angle measured from the +x axis toward +z (away from the camera).
    With all joints at zero the arm lies flat at the base depth.

    Parameters
    ----------
    link_lengths : array_like
        Length of each link in meters (one link per joint)
    base : tuple of float, optional
        Base position (x, z) in the camera frame (default: (-0.5, 1.5))
    joint_names : sequence of str, optional
        Defaults to joint_1, joint_2, ...
    lower_limits, upper_limits, continuous : optional
        Forwarded to RobotKinematics
    """

    def __init__(self, link_lengths, base=(-0.5, 1.5), joint_names=None,
                 lower_limits=None, upper_limits=None, continuous=None):
        lengths = np.asarray(link_lengths, dtype=float)
        if lengths.ndim != 1 or len(lengths) == 0 or np.any(lengths <= 0):
            raise ConfigurationError("link_lengths must be a non-empty vector of positive lengths")
        if joint_names is None:
            joint_names = [f'joint_{i + 1}' for i in range(len(lengths))]
        if len(joint_names) != len(lengths):
            raise ConfigurationError(
                f"{len(joint_names)} joint names given for {len(lengths)} links"
            )

        super().__init__(joint_names, lower_limits, upper_limits, continuous)
        self._lengths = _readonly(lengths)
        self._base = _readonly(base)

    @property
    def link_lengths(self):
        return self._lengths

    @property
    def base(self):
        return self._base

    def forward_kinematics(self, state):
        """
        Joint and end-effector positions.

        Parameters
        ----------
        state : np.ndarray
            Joint angles (joint_count,)

        Returns
        -------
        np.ndarray
            Positions (joint_count + 1, 2) as (x, z), base first
        """
        state = self.check_state(state)
        heading = np.cumsum(state)
        steps = self._lengths[:, None] * np.column_stack([np.cos(heading), np.sin(heading)])

        points = np.zeros((self.joint_count + 1, 2))
        points[0] = self._base
        points[1:] = self._base + np.cumsum(steps, axis=0)
        return points
