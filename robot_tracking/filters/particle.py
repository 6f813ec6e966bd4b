"""
Visual particle tracker.

A Sequential Importance Resampling (SIR) particle filter over the full
joint state, driven by depth frames. Every particle is rendered into a
predicted range image and scored pixel-wise with the range sensor model;
weights are updated multiplicatively in the log domain and the set is
resampled when the effective sample size drops below a threshold.

Each pixel carries an occlusion probability. The pixel likelihood is the
mixture of the occluded and visible branches of the sensor model, and
after every informative frame the occlusion probabilities are replaced
by their posterior under the best particle, relaxed toward the prior.
"""

import enum
import logging
import threading

import numpy as np
from scipy.special import logsumexp

from ..common.angles import circular_mean
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class AdvanceStatus(enum.Enum):
    """Outcome of VisualParticleTracker.advance."""
    UPDATED = 'updated'
    NO_EVIDENCE = 'no_evidence'
    CANCELLED = 'cancelled'


class VisualParticleTracker:
    """
    Particle filter scoring rendered joint hypotheses against depth frames.

    Parameters
    ----------
    kinematics : RobotKinematics
        Shared joint layout
    renderer : Renderer
        Maps a joint state to a predicted range image
    sensor_model : SensorModel
        Per-pixel likelihood (e.g. RangeLikelihoodModel)
    config : ParticleTrackerConfig
        Particle count, noise, resampling and estimate policy
    rng : np.random.Generator, optional
        Random source (seeded generators make runs reproducible)

    Attributes
    ----------
    N : int
        Number of particles (fixed)
    resample_threshold : float
        Resample when ESS < resample_threshold * N

    Examples
    --------
    >>> tracker = VisualParticleTracker(kinematics, renderer, RangeLikelihoodModel(), config)
    >>> tracker.initialize(np.zeros(kinematics.joint_count))
    >>> tracker.advance(frame, motion=joint_delta, dt=1 / 30)
    >>> tracker.estimate()
    """

    def __init__(self, kinematics, renderer, sensor_model, config, rng=None):
        n = kinematics.joint_count
        if len(config.joint_sigmas) != n or len(config.initial_sigmas) != n:
            raise ConfigurationError(
                f"Particle tracker noise must have one entry per joint ({n})"
            )

        self.kinematics = kinematics
        self.renderer = renderer
        self.sensor_model = sensor_model
        self.config = config
        self.rng = np.random.default_rng() if rng is None else rng

        self.N = config.particle_count
        self.resample_threshold = config.resample_threshold
        self._joint_sigmas = np.asarray(config.joint_sigmas, dtype=float)
        self._initial_sigmas = np.asarray(config.initial_sigmas, dtype=float)

        self._particles = np.zeros((self.N, n))
        self._weights = np.ones(self.N) / self.N
        self._occlusion = np.full(renderer.resolution, config.occlusion_probability)
        self._estimate = np.zeros(n)

        # Guards the committed particle set; advance() builds the next set
        # outside the lock and swaps it in.
        self._lock = threading.Lock()
        self._advance_lock = threading.Lock()

    def initialize(self, state, sigmas=None):
        """
        Spread particles around an initial state.

        Parameters
        ----------
        state : np.ndarray
            Initial joint angles (joint_count,)
        sigmas : np.ndarray, optional
            Per-joint spread. Defaults to the configured initial sigmas.
        """
        state = self.kinematics.check_state(state)
        sigmas = self._initial_sigmas if sigmas is None else np.asarray(sigmas, dtype=float)

        particles = state + self.rng.standard_normal((self.N, len(state))) * sigmas
        particles[0] = state
        particles = self.kinematics.clip(particles)
        weights = np.ones(self.N) / self.N
        occlusion = np.full(self.renderer.resolution, self.config.occlusion_probability)

        with self._lock:
            self._particles = particles
            self._weights = weights
            self._occlusion = occlusion
            self._estimate = self._compute_estimate(particles, weights)

    def advance(self, frame, motion=None, dt=0.0, cancel=None):
        """
        Propagate the particles and reweight them against a depth frame.

        Parameters
        ----------
        frame : DepthFrame
            Observed ranges; non-finite pixels are ignored
        motion : np.ndarray, optional
            Joint displacement since the previous frame, applied to every
            particle before diffusion (e.g. from the joint filters)
        dt : float, optional
            Time since the previous frame, scales the diffusion noise
        cancel : callable, optional
            Polled between particles; returning True aborts the advance
            without committing anything

        Returns
        -------
        AdvanceStatus
            UPDATED when weights changed, NO_EVIDENCE when the frame had no
            usable pixel (particles moved, weights unchanged), CANCELLED
            when aborted
        """
        observed = np.asarray(frame.ranges, dtype=float)
        if observed.shape != tuple(self.renderer.resolution):
            raise ValueError(
                f"Frame resolution {observed.shape} does not match renderer "
                f"resolution {tuple(self.renderer.resolution)}"
            )

        with self._advance_lock:
            with self._lock:
                particles = self._particles.copy()
                weights = self._weights.copy()
                occlusion = self._occlusion.copy()

            particles = self._propagate(particles, motion, dt)

            usable = np.isfinite(observed)
            if not np.any(usable):
                logger.debug("Frame at t=%.3f has no usable pixels", frame.timestamp)
                self._commit(particles, weights, occlusion)
                return AdvanceStatus.NO_EVIDENCE

            p_occ = occlusion[usable]
            obs = observed[usable]
            log_likelihood = np.zeros(self.N)
            predictions = []
            for i in range(self.N):
                if cancel is not None and cancel():
                    logger.debug("Visual advance at t=%.3f cancelled", frame.timestamp)
                    return AdvanceStatus.CANCELLED

                predicted = np.asarray(self.renderer.render(particles[i]), dtype=float)[usable]
                predictions.append(predicted)
                log_likelihood[i] = self._score(predicted, obs, p_occ)

            log_weights = np.log(np.maximum(weights, 1e-300)) + log_likelihood
            norm = logsumexp(log_weights)
            if not np.isfinite(norm):
                # Every particle scored zero: keep the prior weights
                logger.warning("All particle likelihoods vanished at t=%.3f, weights kept",
                               frame.timestamp)
                self._commit(particles, weights, occlusion)
                return AdvanceStatus.NO_EVIDENCE

            weights = np.exp(log_weights - norm)
            weights /= np.sum(weights)

            best = int(np.argmax(weights))
            occlusion[usable] = self._occlusion_posterior(predictions[best], obs, p_occ)

            if self._effective_sample_size(weights) < self.resample_threshold * self.N:
                indices = self._resample_indices(weights)
                particles = particles[indices]
                weights = np.ones(self.N) / self.N

            self._commit(particles, weights, occlusion)
            return AdvanceStatus.UPDATED

    def estimate(self):
        """
        Current state estimate (copy).

        Weighted mean (circular for continuous joints) or the heaviest
        particle, depending on the configured policy.
        """
        with self._lock:
            return self._estimate.copy()

    def effective_sample_size(self):
        """
        Effective sample size 1 / sum(w**2), in [1, N].
        """
        with self._lock:
            weights = self._weights
        return self._effective_sample_size(weights)

    def get_particles(self):
        """
        Snapshot of the particle set.

        Returns
        -------
        particles : np.ndarray
            Particle states (N, joint_count)
        weights : np.ndarray
            Particle weights (N,)
        """
        with self._lock:
            return self._particles.copy(), self._weights.copy()

    def occlusion_map(self):
        with self._lock:
            return self._occlusion.copy()

    def _commit(self, particles, weights, occlusion):
        estimate = self._compute_estimate(particles, weights)
        with self._lock:
            self._particles = particles
            self._weights = weights
            self._occlusion = occlusion
            self._estimate = estimate

    def _propagate(self, particles, motion, dt):
        if motion is not None:
            particles = particles + np.asarray(motion, dtype=float)
        if dt > 0.0:
            noise = self.rng.standard_normal(particles.shape) * self._joint_sigmas * np.sqrt(dt)
            particles = particles + noise
        return self.kinematics.clip(particles)

    def _score(self, predicted, observed, p_occ):
        """
        Robustified log-likelihood of one particle over the usable pixels.
        """
        model = self.sensor_model
        p_visible = model.probability(predicted, observed, False)
        p_occluded = model.probability(predicted, observed, True)
        with np.errstate(divide='ignore'):
            pixel_ll = np.log(p_occ * p_occluded + (1.0 - p_occ) * p_visible)

        trim = int(self.config.trim_fraction * pixel_ll.size)
        if trim > 0:
            # Drop the worst pixels to bound the influence of outliers
            pixel_ll = np.partition(pixel_ll, trim)[trim:]
        return float(np.sum(pixel_ll))

    def _occlusion_posterior(self, predicted, observed, p_occ):
        model = self.sensor_model
        occluded = p_occ * model.probability(predicted, observed, True)
        visible = (1.0 - p_occ) * model.probability(predicted, observed, False)
        total = occluded + visible

        posterior = np.where(total > 0, occluded / np.where(total > 0, total, 1.0), p_occ)
        relaxation = self.config.occlusion_relaxation
        prior = self.config.occlusion_probability
        return (1.0 - relaxation) * posterior + relaxation * prior

    def _compute_estimate(self, particles, weights):
        if self.config.estimate == 'max_weight':
            return particles[int(np.argmax(weights))].copy()

        estimate = np.average(particles, weights=weights, axis=0)
        continuous = self.kinematics.continuous
        if np.any(continuous):
            estimate[continuous] = circular_mean(particles[:, continuous], weights)
        return estimate

    def _effective_sample_size(self, weights):
        return min(float(self.N), 1.0 / float(np.sum(weights**2)))

    def _resample_indices(self, weights):
        if self.config.resampling == 'multinomial':
            return self._multinomial_resample(weights)
        return self._systematic_resample(weights)

    def _systematic_resample(self, weights):
        """
        Systematic resampling: one uniform offset, N evenly spaced positions.
        """
        positions = (np.arange(self.N) + self.rng.random()) / self.N
        cumsum = np.cumsum(weights)
        cumsum[-1] = 1.0
        return np.searchsorted(cumsum, positions, side='right')

    def _multinomial_resample(self, weights):
        cumsum = np.cumsum(weights)
        cumsum[-1] = 1.0
        return np.searchsorted(cumsum, self.rng.random(self.N), side='right')
