"""
Synthetic robot for exercising the trackers without real sensors.
"""

from .animators import RobotAnimator, SinusoidalAnimator, StaticAnimator
from .emulator import RobotEmulator

__all__ = [
    'RobotAnimator',
    'SinusoidalAnimator',
    'StaticAnimator',
    'RobotEmulator',
]
