# -*- coding: utf-8 -*-
"""
Displacement Diagnostics - Dense views of a distortion grid for inspection.

Author
------
Duane Smalley, PhD
duane.d.smalley@gmail.com

License
-------
MIT License
Copyright (c) 2024 geoint.org
See LICENSE file for full text.

Created
-------
2026-03-11

Modified
--------
2026-03-11
"""

# Standard library
from typing import NamedTuple

# Third-party
import numpy as np

# dedistort internal
from dedistort.distortion.grid import DistortionGrid


class DisplacementPanels(NamedTuple):
    """Normalized per-pixel displacement maps.

    Attributes
    ----------
    dx, dy : np.ndarray
        Signed components divided by ``max_amplitude``, in ``[-1, 1]``.
    amplitude : np.ndarray
        ``hypot(dx, dy) / max_amplitude``, in ``[0, sqrt(2)]``.
    max_amplitude : float
        Largest absolute component over the image, in pixels. 0 for an
        identity field, in which case the panels are all zero.
    """

    dx: np.ndarray
    dy: np.ndarray
    amplitude: np.ndarray
    max_amplitude: float


def displacement_panels(grid: DistortionGrid) -> DisplacementPanels:
    """Dense, normalized displacement panels of *grid*."""
    dx, dy = grid.dense_field()
    finite = np.isfinite(dx) & np.isfinite(dy)
    if np.any(finite):
        max_amp = float(max(np.abs(dx[finite]).max(), np.abs(dy[finite]).max()))
    else:
        max_amp = 0.0
    if max_amp == 0.0:
        zeros = np.zeros_like(dx)
        return DisplacementPanels(zeros, zeros.copy(), zeros.copy(), 0.0)
    ndx = np.where(finite, dx / max_amp, 0.0)
    ndy = np.where(finite, dy / max_amp, 0.0)
    return DisplacementPanels(ndx, ndy, np.hypot(ndx, ndy), max_amp)
