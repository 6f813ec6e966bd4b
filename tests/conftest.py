"""
Shared fixtures: a one- and a two-joint planar arm in front of a small
orthographic depth camera, and a parameter tree for the builders.
"""

import numpy as np
import pytest

from robot_tracking.config import ParticleTrackerConfig
from robot_tracking.models import OrthographicDepthRenderer, PlanarArm, RangeLikelihoodModel
from robot_tracking.filters import VisualParticleTracker


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def arm():
    return PlanarArm([1.0], lower_limits=[-1.0], upper_limits=[1.0])


@pytest.fixture
def two_link_arm():
    return PlanarArm([0.6, 0.4], lower_limits=[-1.0, -1.5], upper_limits=[1.0, 1.5])


@pytest.fixture
def renderer(arm):
    return OrthographicDepthRenderer(arm, width=64, height=8)


@pytest.fixture
def params():
    return {
        'joint_transition': {
            'joint_sigmas': 0.1,
            'bias_sigmas': 0.01,
            'bias_factors': 1.0,
        },
        'joint_observation': {'joint_sigmas': 0.001},
        'visual_transition': {'joint_sigmas': 0.5},
        'particle_filter': {
            'particle_count': 64,
            'initial_sigmas': 0.05,
        },
        'fusion': {'visual_correction_sigmas': 0.02},
    }


@pytest.fixture
def make_tracker(arm, renderer, rng):
    """Factory for a particle tracker on the one-joint arm."""
    def factory(**overrides):
        settings = dict(particle_count=64, joint_sigmas=(0.5,), initial_sigmas=(0.05,))
        settings.update(overrides)
        return VisualParticleTracker(arm, renderer, RangeLikelihoodModel(),
                                     ParticleTrackerConfig(**settings), rng=rng)
    return factory
