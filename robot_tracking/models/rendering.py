"""
Depth rendering of the robot model.

The tracker only depends on the Renderer protocol: a pure function from
joint state to a range image at a fixed resolution. The orthographic
renderer below draws a PlanarArm and is what the emulator and the tests
use in place of a mesh rasterizer.
"""

import math
from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class Renderer(Protocol):
    """Maps a robot state to predicted ranges, ``inf`` where nothing is hit."""

    @property
    def resolution(self): ...

    def render(self, state): ...


class OrthographicDepthRenderer:
    """
    Orthographic depth camera looking along +z at a planar arm.

    Columns span x in [-field_width/2, field_width/2]; rows span the
    height axis. Links are bars of ``link_thickness`` centered on the
    arm plane, so the rows they cover show the link depth and every
    other pixel shows no return.

    Parameters
    ----------
    kinematics : PlanarArm
        Arm model providing forward kinematics
    width, height : int, optional
        Image resolution in pixels (default: 64 x 8)
    field_width, field_height : float, optional
        Metric extent of the image (default: 2.0 x 0.2 m)
    link_thickness : float, optional
        Bar thickness of every link (default: 0.1 m)
    """

    def __init__(self, kinematics, width=64, height=8, field_width=2.0,
                 field_height=0.2, link_thickness=0.1):
        if width < 1 or height < 1:
            raise ValueError("Image resolution must be positive")
        self.kinematics = kinematics
        self.width = int(width)
        self.height = int(height)
        self.field_width = float(field_width)
        self.field_height = float(field_height)

        self._pixel_width = self.field_width / self.width
        rows = (np.arange(self.height) + 0.5) * (self.field_height / self.height) - self.field_height / 2
        self._link_rows = np.abs(rows) <= link_thickness / 2

        longest = float(np.max(kinematics.link_lengths))
        self._samples = max(2, int(math.ceil(2.0 * longest / self._pixel_width)) + 1)
        self._t = np.linspace(0.0, 1.0, self._samples)

    @property
    def resolution(self):
        return (self.height, self.width)

    def render(self, state):
        """
        Render predicted ranges for a joint state.

        Parameters
        ----------
        state : np.ndarray
            Joint angles (joint_count,)

        Returns
        -------
        np.ndarray
            Range image (height, width)
        """
        points = self.kinematics.forward_kinematics(state)
        starts = points[:-1]
        spans = points[1:] - starts
        samples = starts[:, None, :] + self._t[None, :, None] * spans[:, None, :]
        xs = samples[..., 0].ravel()
        zs = samples[..., 1].ravel()

        cols = np.floor((xs + self.field_width / 2) / self._pixel_width).astype(int)
        hit = (cols >= 0) & (cols < self.width) & (zs > 0)

        scanline = np.full(self.width, np.inf)
        np.minimum.at(scanline, cols[hit], zs[hit])

        image = np.full((self.height, self.width), np.inf)
        image[self._link_rows] = scanline
        return image
