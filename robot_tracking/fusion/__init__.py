"""
Fusion of encoder-rate joint filters with the visual particle tracker.
"""

from .controller import FusionController, RunState

__all__ = ['FusionController', 'RunState']
