"""
Recursive Bayesian filters for robot state tracking.

This module provides:
- JointFilterBank: independent per-joint Kalman filters over angle and
  encoder bias, advanced at encoder rate
- VisualParticleTracker: particle filter over the full joint state,
  advanced on depth frames
"""

from .joint_filter import JointFilter, JointFilterBank
from .particle import VisualParticleTracker, AdvanceStatus

__all__ = [
    'JointFilter',
    'JointFilterBank',
    'VisualParticleTracker',
    'AdvanceStatus',
]
