"""
Visualization tools for tracking results.
"""

from .joints import plot_joint_tracks, plot_sensor_model

__all__ = ['plot_joint_tracks', 'plot_sensor_model']
