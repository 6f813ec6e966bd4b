"""
Robot Tracking Library

Estimates the joint state of an articulated robot by fusing high-rate
joint encoders with a low-rate depth camera. Joint angles are tracked by
per-joint Kalman filters; a particle filter over rendered depth images
keeps the encoder biases aligned with what the camera sees.
"""

__version__ = "1.0.0"

from .exceptions import RobotTrackingError, ConfigurationError, LifecycleError
from .observations import EncoderSample, DepthFrame, FusedEstimate
from .models.kinematics import RobotKinematics, PlanarArm
from .models.rendering import OrthographicDepthRenderer
from .models.range_likelihood import RangeLikelihoodModel
from .filters.joint_filter import JointFilterBank
from .filters.particle import VisualParticleTracker, AdvanceStatus
from .fusion.controller import FusionController, RunState
from .builder import create_joint_filter_bank, create_visual_tracker, create_fusion_controller
from .simulation.emulator import RobotEmulator

__all__ = [
    'RobotTrackingError',
    'ConfigurationError',
    'LifecycleError',
    'EncoderSample',
    'DepthFrame',
    'FusedEstimate',
    'RobotKinematics',
    'PlanarArm',
    'OrthographicDepthRenderer',
    'RangeLikelihoodModel',
    'JointFilterBank',
    'VisualParticleTracker',
    'AdvanceStatus',
    'FusionController',
    'RunState',
    'create_joint_filter_bank',
    'create_visual_tracker',
    'create_fusion_controller',
    'RobotEmulator',
]
