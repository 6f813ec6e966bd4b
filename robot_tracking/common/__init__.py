"""
Common utilities shared by the trackers.

Includes angle handling, joint-state residuals and the timestamped
estimate history used to align asynchronous sensor streams.
"""

from .angles import normalize_angle, angle_diff, circular_mean
from .residuals import state_residual
from .history import StateHistory

__all__ = [
    'normalize_angle',
    'angle_diff',
    'circular_mean',
    'state_residual',
    'StateHistory',
]
