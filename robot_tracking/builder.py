"""
Builders assembling the tracking components from a parameter tree.

Example parameter tree::

    params = {
        'joint_transition': {
            'joint_sigmas': 0.1,
            'bias_sigmas': 0.01,
            'bias_factors': 1.0,
        },
        'joint_observation': {'joint_sigmas': 0.001},
        'visual_transition': {'joint_sigmas': 0.5},
        'particle_filter': {'particle_count': 100},
        'sensor_model': {'tail_weight': 0.01},
        'fusion': {'visual_correction_sigmas': 0.02},
    }

Per-joint options take either a scalar or one value per joint.
"""

import logging

from .config import (FusionConfig, ParticleTrackerConfig, RangeLikelihoodParameters,
                     joint_filter_parameters)
from .filters.joint_filter import JointFilterBank
from .filters.particle import VisualParticleTracker
from .fusion.controller import FusionController
from .models.range_likelihood import RangeLikelihoodModel

logger = logging.getLogger(__name__)


def create_joint_filter_bank(params, kinematics):
    """
    Build the encoder-rate joint filter bank.

    Raises
    ------
    ConfigurationError
        If a required joint option is missing or has the wrong length
    """
    parameters = joint_filter_parameters(params, kinematics.joint_count)
    return JointFilterBank(kinematics, parameters)


def create_sensor_model(params):
    return RangeLikelihoodModel(RangeLikelihoodParameters.from_dict(params))


def create_visual_tracker(params, kinematics, renderer, rng=None):
    """
    Build the visual particle tracker with its range sensor model.

    Parameters
    ----------
    params : Mapping
        Parameter tree
    kinematics : RobotKinematics
        Shared joint layout
    renderer : Renderer
        Depth renderer for particle hypotheses
    rng : np.random.Generator, optional
        Random source of the particle filter
    """
    config = ParticleTrackerConfig.from_dict(params, kinematics.joint_count)
    return VisualParticleTracker(kinematics, renderer, create_sensor_model(params), config, rng=rng)


def create_fusion_controller(params, kinematics, renderer, rng=None, synchronous=False):
    """
    Build a fusion controller with both trackers.

    Parameters
    ----------
    params : Mapping
        Parameter tree
    kinematics : RobotKinematics
        Shared joint layout
    renderer : Renderer
        Depth renderer for particle hypotheses
    rng : np.random.Generator, optional
        Random source of the particle filter
    synchronous : bool, optional
        Process observations in the calling thread (default: False)

    Returns
    -------
    FusionController
        Stopped controller; call initialize() and run() next
    """
    bank = create_joint_filter_bank(params, kinematics)
    tracker = create_visual_tracker(params, kinematics, renderer, rng=rng)
    config = FusionConfig.from_dict(params, kinematics.joint_count)

    logger.info("Created fusion controller: %d joints, %d particles, %dx%d depth image",
                kinematics.joint_count, tracker.N, *renderer.resolution)
    return FusionController(bank, tracker, kinematics, config, synchronous=synchronous)
