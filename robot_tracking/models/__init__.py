"""
Robot and sensor models.

Provides the read-only kinematic context, the depth renderer used by the
emulator, and the occlusion-aware range sensor likelihood.
"""

from ..config import RangeLikelihoodParameters
from .kinematics import RobotKinematics, PlanarArm
from .rendering import Renderer, OrthographicDepthRenderer
from .range_likelihood import SensorModel, RangeLikelihoodModel

__all__ = [
    'RobotKinematics',
    'PlanarArm',
    'Renderer',
    'OrthographicDepthRenderer',
    'SensorModel',
    'RangeLikelihoodModel',
    'RangeLikelihoodParameters',
]
