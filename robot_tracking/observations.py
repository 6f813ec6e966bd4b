"""
Observation and estimate records exchanged with the transport layer.

All records are immutable: array payloads are copied on construction and
marked read-only, so a record can be handed to several threads safely.
"""

from dataclasses import dataclass, field

import numpy as np


def _frozen_array(values, ndim):
    array = np.array(values, dtype=float, ndmin=ndim)
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class EncoderSample:
    """
    Raw joint encoder reading.

    Attributes
    ----------
    timestamp : float
        Acquisition time in seconds
    positions : np.ndarray
        One raw angle per joint (joint_count,). NaN marks a joint
        without a valid reading in this sample.
    """
    timestamp: float
    positions: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'timestamp', float(self.timestamp))
        object.__setattr__(self, 'positions', _frozen_array(self.positions, 1))


@dataclass(frozen=True)
class DepthFrame:
    """
    Depth image from the range camera.

    Attributes
    ----------
    timestamp : float
        Capture time in seconds (not arrival time)
    ranges : np.ndarray
        Range per pixel (rows, cols). ``inf`` means no return.
    """
    timestamp: float
    ranges: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'timestamp', float(self.timestamp))
        object.__setattr__(self, 'ranges', _frozen_array(self.ranges, 2))

    @property
    def resolution(self):
        return self.ranges.shape


@dataclass(frozen=True, eq=False)
class FusedEstimate:
    """
    Published robot state.

    Attributes
    ----------
    timestamp : float
        Time of the newest observation folded into the estimate
    state : np.ndarray
        Joint angles (joint_count,)
    stale : tuple of bool
        Joints whose last encoder reading was missing
    """
    timestamp: float
    state: np.ndarray
    stale: tuple = field(default=())

    def __post_init__(self):
        object.__setattr__(self, 'timestamp', float(self.timestamp))
        object.__setattr__(self, 'state', _frozen_array(self.state, 1))
        object.__setattr__(self, 'stale', tuple(bool(s) for s in self.stale))

    def __eq__(self, other):
        if not isinstance(other, FusedEstimate):
            return NotImplemented
        return (self.timestamp == other.timestamp
                and self.stale == other.stale
                and np.array_equal(self.state, other.state))

    __hash__ = None
