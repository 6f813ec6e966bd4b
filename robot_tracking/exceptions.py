"""
Exception types raised by the robot tracking library.

Only setup and lifecycle problems are raised. Observation-level problems
(out-of-order samples, malformed payloads, frames without usable pixels)
are absorbed by the component that sees them and reported through logging
and statistics counters.
"""


class RobotTrackingError(Exception):
    """Base class for all library errors."""


class ConfigurationError(RobotTrackingError, ValueError):
    """Missing or invalid parameter, or a joint-count mismatch at setup."""


class LifecycleError(RobotTrackingError, RuntimeError):
    """Run-state transition that is not allowed in the current state."""
