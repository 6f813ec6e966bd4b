"""
Probabilistic range sensor model.

Models a depth camera pixel as a three-part mixture over the observed
range r given the range p predicted by rendering the robot model:

1. A uniform tail over [0, max_range] with total mass ``tail_weight``
   covering sensor failures and unmodeled artifacts.
2. Visible pixel: a Gaussian around p whose standard deviation grows
   with the observed range,

       sigma(r) = model_sigma + sigma_factor * r**2

3. Occluded pixel: the true surface lies in front of p at a distance
   drawn from an exponential distribution (rate ln(2) / half_life)
   truncated to [0, p], convolved with the same Gaussian noise:

       lambda * exp(-lambda r + lambda**2 sigma**2 / 2)
       * Phi((p - r + lambda sigma**2) / sigma) / (1 - exp(-lambda p))

For an unbounded prediction (no model surface along the ray) the visible
term vanishes and the occluded term reduces to
``lambda * exp(-lambda r + lambda**2 sigma**2 / 2)``.

The returned values are densities over range: they integrate to one over
[0, max_range] (up to the Gaussian mass spilling below zero) and can
exceed one where sigma is small.
"""

import math
from typing import Protocol, runtime_checkable

import numpy as np
from scipy.special import log_ndtr

from ..config import RangeLikelihoodParameters

_SQRT_2PI = math.sqrt(2.0 * math.pi)


@runtime_checkable
class SensorModel(Protocol):
    """Per-pixel observation model used to score rendered hypotheses."""

    def probability(self, predicted_range, observed_range, occluded): ...

    def log_probability(self, predicted_range, observed_range, occluded): ...

    def set_prediction(self, predicted_range, occluded): ...

    def conditional_probability(self, observed_range): ...

    def conditional_log_probability(self, observed_range): ...


class RangeLikelihoodModel:
    """
    Occlusion-aware depth sensor likelihood.

    All evaluation methods are vectorized: predictions, observations and
    occlusion flags broadcast against each other, and scalar inputs give
    a float back.

    Parameters
    ----------
    parameters : RangeLikelihoodParameters, optional
        Sensor parameters (defaults match a structured-light depth camera)

    Examples
    --------
    >>> model = RangeLikelihoodModel()
    >>> model.probability(1.0, 1.0, False)
    89.26...
    >>> model.set_prediction(np.full((2, 3), 1.5), occluded=False)
    >>> model.conditional_log_probability(observed_image)
    """

    def __init__(self, parameters=None):
        if parameters is None:
            parameters = RangeLikelihoodParameters()
        self.parameters = parameters
        self._rate = parameters.exponential_rate
        self._tail = parameters.tail_weight / parameters.max_range

        self._prediction = None
        self._occluded = None

    @property
    def tail_density(self):
        """Density of the uniform outlier component."""
        return self._tail

    def sigma(self, observed_range):
        """Noise standard deviation at an observed range."""
        observed_range = np.asarray(observed_range, dtype=float)
        return self.parameters.model_sigma + self.parameters.sigma_factor * observed_range**2

    def probability(self, predicted_range, observed_range, occluded):
        """
        Density of an observed range given the prediction.

        Parameters
        ----------
        predicted_range : float or np.ndarray
            Rendered range, ``inf`` where the model has no surface
        observed_range : float or np.ndarray
            Measured range. Non-finite values score as outliers.
        occluded : bool or np.ndarray of bool
            Whether the pixel is assumed occluded

        Returns
        -------
        float or np.ndarray
            Non-negative density, never NaN
        """
        p, r, occ = np.broadcast_arrays(
            np.asarray(predicted_range, dtype=float),
            np.asarray(observed_range, dtype=float),
            np.asarray(occluded, dtype=bool),
        )
        density = self._evaluate(p, r, occ)
        if density.ndim == 0:
            return float(density)
        return density

    def log_probability(self, predicted_range, observed_range, occluded):
        """
        Log density; ``-inf`` where the density is zero.
        """
        density = np.asarray(self.probability(predicted_range, observed_range, occluded))
        with np.errstate(divide='ignore'):
            log_density = np.log(density)
        if log_density.ndim == 0:
            return float(log_density)
        return log_density

    def set_prediction(self, predicted_range, occluded):
        """
        Condition the model on a rendered prediction.

        Subsequent ``conditional_*`` calls evaluate observations against
        this prediction, so a scoring loop renders once and queries many
        times.
        """
        self._prediction = np.asarray(predicted_range, dtype=float)
        self._occluded = np.asarray(occluded, dtype=bool)

    def conditional_probability(self, observed_range):
        if self._prediction is None:
            raise RuntimeError("set_prediction() must be called before conditional_probability()")
        return self.probability(self._prediction, observed_range, self._occluded)

    def conditional_log_probability(self, observed_range):
        if self._prediction is None:
            raise RuntimeError("set_prediction() must be called before conditional_log_probability()")
        return self.log_probability(self._prediction, observed_range, self._occluded)

    def _evaluate(self, p, r, occ):
        tail = self._tail
        weight = 1.0 - self.parameters.tail_weight
        rate = self._rate

        component = np.zeros(p.shape, dtype=float)
        valid = np.isfinite(r)
        if not np.any(valid):
            return np.full(p.shape, tail, dtype=float)

        with np.errstate(over='ignore', under='ignore', invalid='ignore', divide='ignore'):
            sigma = self.sigma(np.where(valid, r, 0.0))
            finite = np.isfinite(p)

            # An occluder in front of a zero-range prediction can only sit
            # at the prediction itself, which is the visible case.
            occluded = occ & ~(finite & (p <= 0.0))

            visible = valid & ~occluded & finite
            if np.any(visible):
                z = (p[visible] - r[visible]) / sigma[visible]
                component[visible] = np.exp(-0.5 * z**2) / (_SQRT_2PI * sigma[visible])

            occ_inf = valid & occluded & ~finite
            if np.any(occ_inf):
                s = sigma[occ_inf]
                component[occ_inf] = np.exp(
                    math.log(rate) - rate * r[occ_inf] + 0.5 * rate**2 * s**2)

            occ_fin = valid & occluded & finite
            if np.any(occ_fin):
                s = sigma[occ_fin]
                pf = p[occ_fin]
                rf = r[occ_fin]
                log_cdf = log_ndtr((pf - rf + rate * s**2) / s)
                log_norm = np.log(-np.expm1(-rate * pf))
                component[occ_fin] = np.exp(
                    math.log(rate) - rate * rf + 0.5 * rate**2 * s**2 + log_cdf - log_norm)

        # At saturated ranges the noise term lambda**2 sigma**2 / 2 overflows
        # the closed form; such pixels keep only the tail.
        component[~np.isfinite(component)] = 0.0
        return tail + weight * np.maximum(component, 0.0)
