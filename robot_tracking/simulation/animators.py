"""
Robot animators driving the emulated ground truth.
"""

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class RobotAnimator(Protocol):
    """Moves the reference state forward by one emulator step."""

    def animate(self, current, dt, dilation): ...


class SinusoidalAnimator:
    """
    Oscillates selected joints with a sinusoidal velocity.

    Each step adds ``amplitude * dt / dilation * sin(t / dilation)`` to the
    animated joints, so the joint angles follow
    ``-amplitude * cos(t / dilation)`` around their starting offset.

    Parameters
    ----------
    amplitude : float, optional
        Velocity amplitude in rad/s at unit dilation (default: 0.1)
    joints : sequence of int, optional
        Indices of animated joints. All joints if None.
    """

    def __init__(self, amplitude=0.1, joints=None):
        self.amplitude = float(amplitude)
        self.joints = None if joints is None else np.asarray(joints, dtype=int)
        self.t = 0.0

    def animate(self, current, dt, dilation):
        self.t += dt
        step = self.amplitude * dt / dilation * np.sin(self.t / dilation)

        next_state = np.array(current, dtype=float)
        if self.joints is None:
            next_state += step
        else:
            next_state[self.joints] += step
        return next_state

    def reset(self):
        self.t = 0.0


class StaticAnimator:
    """Keeps the robot still."""

    def animate(self, current, dt, dilation):
        return np.array(current, dtype=float)
