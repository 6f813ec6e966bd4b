"""
Tests for parameter lookup and validation.
"""

import numpy as np
import pytest

from robot_tracking.config import (EmulatorConfig, FusionConfig, JointFilterParameters,
                                   ParticleTrackerConfig, RangeLikelihoodParameters,
                                   joint_filter_parameters, joint_vector, lookup)
from robot_tracking.exceptions import ConfigurationError, RobotTrackingError


class TestLookup:
    def test_nested_and_flat_keys(self):
        nested = {'joint_transition': {'joint_sigmas': [1.0, 2.0]}}
        flat = {'joint_transition/joint_sigmas': [1.0, 2.0]}
        assert lookup(nested, 'joint_transition/joint_sigmas') == [1.0, 2.0]
        assert lookup(flat, 'joint_transition/joint_sigmas') == [1.0, 2.0]

    def test_default_for_optional(self):
        assert lookup({}, 'sensor_model/tail_weight', 0.01) == 0.01

    def test_missing_required(self):
        with pytest.raises(ConfigurationError, match='joint_observation/joint_sigmas'):
            lookup({'joint_observation': {}}, 'joint_observation/joint_sigmas')

    def test_error_hierarchy(self):
        assert issubclass(ConfigurationError, RobotTrackingError)
        assert issubclass(ConfigurationError, ValueError)


class TestJointVector:
    def test_scalar_broadcast(self):
        vector = joint_vector(0.5, 3, 'x')
        np.testing.assert_array_equal(vector, [0.5, 0.5, 0.5])
        assert not vector.flags.writeable

    def test_wrong_length(self):
        with pytest.raises(ConfigurationError, match='expected 3'):
            joint_vector([0.1, 0.2], 3, 'x')

    def test_negative_and_non_numeric(self):
        with pytest.raises(ConfigurationError):
            joint_vector([0.1, -0.2], 2, 'x')
        with pytest.raises(ConfigurationError):
            joint_vector('abc', 2, 'x')
        with pytest.raises(ConfigurationError):
            joint_vector([0.0, 1.0], 2, 'x', allow_zero=False)


class TestParameterObjects:
    def test_sensor_model_defaults(self):
        parameters = RangeLikelihoodParameters()
        assert parameters.tail_weight == 0.01
        assert parameters.model_sigma == 0.003
        assert parameters.sigma_factor == 0.00142478
        assert parameters.occlusion_half_life == 1.0
        assert parameters.max_range == 6.0
        assert parameters.exponential_rate == pytest.approx(np.log(2.0))

    def test_sensor_model_from_dict(self):
        parameters = RangeLikelihoodParameters.from_dict({'sensor_model/max_range': 4.0})
        assert parameters.max_range == 4.0
        assert parameters.tail_weight == 0.01

    @pytest.mark.parametrize('field, value', [
        ('tail_weight', 1.5),
        ('tail_weight', -0.1),
        ('model_sigma', 0.0),
        ('occlusion_half_life', -1.0),
        ('max_range', float('inf')),
    ])
    def test_sensor_model_invalid(self, field, value):
        with pytest.raises(ConfigurationError):
            RangeLikelihoodParameters(**{field: value})

    def test_parameters_are_immutable(self):
        parameters = RangeLikelihoodParameters()
        with pytest.raises(AttributeError):
            parameters.tail_weight = 0.5

    def test_joint_filter_parameters_per_joint(self, params):
        params['joint_transition']['bias_factors'] = [1.0, 0.9]
        parameters = joint_filter_parameters(params, 2)
        assert len(parameters) == 2
        assert all(isinstance(p, JointFilterParameters) for p in parameters)
        assert parameters[1].bias_factor == pytest.approx(0.9)
        assert parameters[0].joint_sigma == pytest.approx(0.1)

    def test_observation_sigma_must_be_positive(self, params):
        params['joint_observation']['joint_sigmas'] = 0.0
        with pytest.raises(ConfigurationError):
            joint_filter_parameters(params, 1)

    def test_particle_tracker_config(self, params):
        config = ParticleTrackerConfig.from_dict(params, 2)
        assert config.particle_count == 64
        assert config.joint_sigmas == (0.5, 0.5)
        assert config.resampling == 'systematic'

    @pytest.mark.parametrize('overrides', [
        {'particle_count': 0},
        {'resampling': 'stratified-ish'},
        {'estimate': 'median'},
        {'resample_threshold': 1.5},
        {'trim_fraction': 1.0},
    ])
    def test_particle_tracker_invalid(self, overrides):
        with pytest.raises(ConfigurationError):
            ParticleTrackerConfig(**overrides)

    def test_fusion_config_defaults(self):
        config = FusionConfig.from_dict({}, 2)
        assert config.visual_correction_sigmas == (0.02, 0.02)
        assert config.joint_queue_size == 1000

    @pytest.mark.parametrize('overrides', [
        {'history_length': 0},
        {'history_length': 1},
        {'joint_queue_size': 0},
        {'shutdown_timeout': 0.0},
        {'shutdown_timeout': -1.0},
        {'visual_correction_sigmas': (0.02, 0.0)},
    ])
    def test_fusion_config_invalid(self, overrides):
        with pytest.raises(ConfigurationError):
            FusionConfig(**overrides)

    def test_fusion_config_direct_construction(self):
        config = FusionConfig(visual_correction_sigmas=[0.05], shutdown_timeout=2)
        assert config.visual_correction_sigmas == (0.05,)
        assert config.shutdown_timeout == 2.0

    def test_emulator_config_requires_rates(self):
        with pytest.raises(ConfigurationError, match='visual_sensor_rate'):
            EmulatorConfig.from_dict({'emulator': {'joint_sensor_rate': 1000}})
        config = EmulatorConfig.from_dict({'emulator/joint_sensor_rate': 1000,
                                           'emulator/visual_sensor_rate': 30})
        assert config.dilation == 1.0
        assert config.visual_sensor_delay == 0.0
