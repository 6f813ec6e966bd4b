"""
Configuration surface of the tracker.

Parameters arrive as a nested mapping (as loaded from a parameter file or
parameter server) and are turned into immutable parameter objects here.
Lookups accept either nested keys or slash-separated names, so both

    {'joint_transition': {'joint_sigmas': [...]}}

and

    {'joint_transition/joint_sigmas': [...]}

resolve to the same option. Missing required options and malformed values
raise ConfigurationError at setup time.
"""

import math
from dataclasses import dataclass

import numpy as np

from .exceptions import ConfigurationError

_MISSING = object()


def lookup(params, name, default=_MISSING):
    """
    Look up an option by slash-separated name.

    Parameters
    ----------
    params : Mapping
        Parameter tree
    name : str
        Option name, e.g. 'joint_transition/joint_sigmas'
    default : optional
        Value returned when the option is absent. If omitted the option
        is required.

    Returns
    -------
    object
        Option value

    Raises
    ------
    ConfigurationError
        If the option is required and absent
    """
    if name in params:
        return params[name]

    node = params
    for key in name.split('/'):
        if not hasattr(node, 'get') or key not in node:
            node = _MISSING
            break
        node = node[key]

    if node is _MISSING:
        if default is _MISSING:
            raise ConfigurationError(f"Missing required option '{name}'")
        return default
    return node


def positive_float(value, name, allow_zero=False):
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Option '{name}' must be a number, got {value!r}")
    if not math.isfinite(value) or value < 0 or (value == 0 and not allow_zero):
        bound = '>= 0' if allow_zero else '> 0'
        raise ConfigurationError(f"Option '{name}' must be finite and {bound}, got {value}")
    return value


def joint_vector(value, joint_count, name, allow_zero=True):
    """
    Convert a per-joint option to a read-only vector of length joint_count.

    A scalar is broadcast to every joint.
    """
    try:
        vector = np.array(value, dtype=float)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Option '{name}' must be numeric, got {value!r}")

    if vector.ndim == 0:
        vector = np.full(joint_count, float(vector))
    if vector.ndim != 1 or len(vector) != joint_count:
        raise ConfigurationError(
            f"Option '{name}' has {vector.size} entries, expected {joint_count} (one per joint)"
        )
    if not np.all(np.isfinite(vector)):
        raise ConfigurationError(f"Option '{name}' contains non-finite values")
    if np.any(vector < 0) or (not allow_zero and np.any(vector == 0)):
        raise ConfigurationError(f"Option '{name}' must be non-negative")

    vector.setflags(write=False)
    return vector


@dataclass(frozen=True)
class RangeLikelihoodParameters:
    """
    Parameters of the depth sensor model.

    Attributes
    ----------
    tail_weight : float
        Mass of the uniform outlier component over [0, max_range]
    model_sigma : float
        Base standard deviation of the range noise (m)
    sigma_factor : float
        Growth of the standard deviation with squared range (1/m)
    occlusion_half_life : float
        Distance (m) over which the chance of an occluder halves
    max_range : float
        Maximum sensor range (m)
    """
    tail_weight: float = 0.01
    model_sigma: float = 0.003
    sigma_factor: float = 0.00142478
    occlusion_half_life: float = 1.0
    max_range: float = 6.0

    def __post_init__(self):
        tail_weight = positive_float(self.tail_weight, 'tail_weight', allow_zero=True)
        if tail_weight > 1.0:
            raise ConfigurationError(f"tail_weight must be in [0, 1], got {tail_weight}")
        object.__setattr__(self, 'tail_weight', tail_weight)
        object.__setattr__(self, 'model_sigma', positive_float(self.model_sigma, 'model_sigma'))
        object.__setattr__(self, 'sigma_factor',
                           positive_float(self.sigma_factor, 'sigma_factor', allow_zero=True))
        object.__setattr__(self, 'occlusion_half_life',
                           positive_float(self.occlusion_half_life, 'occlusion_half_life'))
        object.__setattr__(self, 'max_range', positive_float(self.max_range, 'max_range'))

    @property
    def exponential_rate(self):
        return math.log(2.0) / self.occlusion_half_life

    @classmethod
    def from_dict(cls, params, prefix='sensor_model/'):
        defaults = cls()
        return cls(
            tail_weight=lookup(params, prefix + 'tail_weight', defaults.tail_weight),
            model_sigma=lookup(params, prefix + 'model_sigma', defaults.model_sigma),
            sigma_factor=lookup(params, prefix + 'sigma_factor', defaults.sigma_factor),
            occlusion_half_life=lookup(params, prefix + 'occlusion_half_life',
                                       defaults.occlusion_half_life),
            max_range=lookup(params, prefix + 'max_range', defaults.max_range),
        )


@dataclass(frozen=True)
class JointFilterParameters:
    """
    Transition and observation noise of a single joint filter.

    Noise intensities are per second: the transition variance over a
    step of length dt is sigma**2 * dt.
    """
    joint_sigma: float
    bias_sigma: float
    bias_factor: float
    observation_sigma: float
    initial_joint_sigma: float = 1.0
    initial_bias_sigma: float = 0.1

    def __post_init__(self):
        object.__setattr__(self, 'joint_sigma',
                           positive_float(self.joint_sigma, 'joint_sigma', allow_zero=True))
        object.__setattr__(self, 'bias_sigma',
                           positive_float(self.bias_sigma, 'bias_sigma', allow_zero=True))
        object.__setattr__(self, 'bias_factor',
                           positive_float(self.bias_factor, 'bias_factor', allow_zero=True))
        object.__setattr__(self, 'observation_sigma',
                           positive_float(self.observation_sigma, 'observation_sigma'))
        object.__setattr__(self, 'initial_joint_sigma',
                           positive_float(self.initial_joint_sigma, 'initial_joint_sigma',
                                          allow_zero=True))
        object.__setattr__(self, 'initial_bias_sigma',
                           positive_float(self.initial_bias_sigma, 'initial_bias_sigma',
                                          allow_zero=True))


def joint_filter_parameters(params, joint_count):
    """
    Build one JointFilterParameters per joint.

    Required options: joint_transition/joint_sigmas,
    joint_transition/bias_sigmas, joint_transition/bias_factors and
    joint_observation/joint_sigmas.
    """
    joint_sigmas = joint_vector(lookup(params, 'joint_transition/joint_sigmas'),
                                joint_count, 'joint_transition/joint_sigmas')
    bias_sigmas = joint_vector(lookup(params, 'joint_transition/bias_sigmas'),
                               joint_count, 'joint_transition/bias_sigmas')
    bias_factors = joint_vector(lookup(params, 'joint_transition/bias_factors'),
                                joint_count, 'joint_transition/bias_factors')
    observation_sigmas = joint_vector(lookup(params, 'joint_observation/joint_sigmas'),
                                      joint_count, 'joint_observation/joint_sigmas',
                                      allow_zero=False)
    initial_joint = joint_vector(lookup(params, 'joint_transition/initial_joint_sigmas', 1.0),
                                 joint_count, 'joint_transition/initial_joint_sigmas')
    initial_bias = joint_vector(lookup(params, 'joint_transition/initial_bias_sigmas', 0.1),
                                joint_count, 'joint_transition/initial_bias_sigmas')

    return [
        JointFilterParameters(
            joint_sigma=joint_sigmas[i],
            bias_sigma=bias_sigmas[i],
            bias_factor=bias_factors[i],
            observation_sigma=observation_sigmas[i],
            initial_joint_sigma=initial_joint[i],
            initial_bias_sigma=initial_bias[i],
        )
        for i in range(joint_count)
    ]


@dataclass(frozen=True)
class ParticleTrackerConfig:
    """Settings of the visual particle tracker."""
    particle_count: int = 100
    joint_sigmas: tuple = ()
    initial_sigmas: tuple = ()
    resample_threshold: float = 0.5
    resampling: str = 'systematic'
    estimate: str = 'mean'
    trim_fraction: float = 0.0
    occlusion_probability: float = 0.1
    occlusion_relaxation: float = 0.2

    def __post_init__(self):
        if int(self.particle_count) < 1:
            raise ConfigurationError(f"particle_count must be >= 1, got {self.particle_count}")
        object.__setattr__(self, 'particle_count', int(self.particle_count))
        if self.resampling not in ('systematic', 'multinomial'):
            raise ConfigurationError(f"Unknown resampling scheme: {self.resampling}")
        if self.estimate not in ('mean', 'max_weight'):
            raise ConfigurationError(f"Unknown estimate policy: {self.estimate}")
        for name in ('resample_threshold', 'occlusion_probability', 'occlusion_relaxation'):
            value = float(getattr(self, name))
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
            object.__setattr__(self, name, value)
        if not 0.0 <= float(self.trim_fraction) < 1.0:
            raise ConfigurationError(f"trim_fraction must be in [0, 1), got {self.trim_fraction}")
        object.__setattr__(self, 'trim_fraction', float(self.trim_fraction))

    @classmethod
    def from_dict(cls, params, joint_count, prefix='particle_filter/'):
        defaults = cls()
        joint_sigmas = joint_vector(lookup(params, 'visual_transition/joint_sigmas', 0.5),
                                    joint_count, 'visual_transition/joint_sigmas')
        initial_sigmas = joint_vector(lookup(params, prefix + 'initial_sigmas', 0.05),
                                      joint_count, prefix + 'initial_sigmas')
        return cls(
            particle_count=lookup(params, prefix + 'particle_count', defaults.particle_count),
            joint_sigmas=tuple(joint_sigmas),
            initial_sigmas=tuple(initial_sigmas),
            resample_threshold=lookup(params, prefix + 'resample_threshold',
                                      defaults.resample_threshold),
            resampling=lookup(params, prefix + 'resampling', defaults.resampling),
            estimate=lookup(params, prefix + 'estimate', defaults.estimate),
            trim_fraction=lookup(params, prefix + 'trim_fraction', defaults.trim_fraction),
            occlusion_probability=lookup(params, prefix + 'occlusion_probability',
                                         defaults.occlusion_probability),
            occlusion_relaxation=lookup(params, prefix + 'occlusion_relaxation',
                                        defaults.occlusion_relaxation),
        )


@dataclass(frozen=True)
class FusionConfig:
    """Settings of the fusion controller."""
    visual_correction_sigmas: tuple = ()
    joint_queue_size: int = 1000
    history_length: int = 4000
    shutdown_timeout: float = 1.0

    def __post_init__(self):
        sigmas = tuple(positive_float(s, 'visual_correction_sigmas')
                       for s in self.visual_correction_sigmas)
        object.__setattr__(self, 'visual_correction_sigmas', sigmas)
        if int(self.joint_queue_size) < 1 or int(self.history_length) < 2:
            raise ConfigurationError("joint_queue_size must be >= 1 and history_length >= 2")
        object.__setattr__(self, 'joint_queue_size', int(self.joint_queue_size))
        object.__setattr__(self, 'history_length', int(self.history_length))
        object.__setattr__(self, 'shutdown_timeout',
                           positive_float(self.shutdown_timeout, 'shutdown_timeout'))

    @classmethod
    def from_dict(cls, params, joint_count, prefix='fusion/'):
        sigmas = joint_vector(lookup(params, prefix + 'visual_correction_sigmas', 0.02),
                              joint_count, prefix + 'visual_correction_sigmas',
                              allow_zero=False)
        return cls(
            visual_correction_sigmas=tuple(float(s) for s in sigmas),
            joint_queue_size=lookup(params, prefix + 'joint_queue_size', 1000),
            history_length=lookup(params, prefix + 'history_length', 4000),
            shutdown_timeout=lookup(params, prefix + 'shutdown_timeout', 1.0),
        )


@dataclass(frozen=True)
class EmulatorConfig:
    """Sensor rates and timing of the robot emulator."""
    joint_sensor_rate: float
    visual_sensor_rate: float
    visual_sensor_delay: float = 0.0
    dilation: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, 'joint_sensor_rate',
                           positive_float(self.joint_sensor_rate, 'joint_sensor_rate'))
        object.__setattr__(self, 'visual_sensor_rate',
                           positive_float(self.visual_sensor_rate, 'visual_sensor_rate'))
        object.__setattr__(self, 'visual_sensor_delay',
                           positive_float(self.visual_sensor_delay, 'visual_sensor_delay',
                                          allow_zero=True))
        object.__setattr__(self, 'dilation', positive_float(self.dilation, 'dilation'))

    @classmethod
    def from_dict(cls, params, prefix='emulator/'):
        return cls(
            joint_sensor_rate=lookup(params, prefix + 'joint_sensor_rate'),
            visual_sensor_rate=lookup(params, prefix + 'visual_sensor_rate'),
            visual_sensor_delay=lookup(params, prefix + 'visual_sensor_delay', 0.0),
            dilation=lookup(params, prefix + 'dilation', 1.0),
        )
