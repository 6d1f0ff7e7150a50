# -*- coding: utf-8 -*-
"""
Bicubic Resampler - Catmull-Rom cubic convolution.

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
2026-03-03

Modified
--------
2026-03-03
"""

# Third-party
import numpy as np

# dedistort internal
from dedistort.interpolation.base import KernelResampler

#: Catmull-Rom cubic convolution parameter.
CATMULL_ROM_A = -0.5


def cubic_weights(t: np.ndarray, a: float = CATMULL_ROM_A) -> np.ndarray:
    """Cubic convolution kernel evaluated at distances *t*.

    ``(a+2)|t|^3 - (a+3)|t|^2 + 1`` for ``|t| <= 1``,
    ``a|t|^3 - 5a|t|^2 + 8a|t| - 4a`` for ``1 < |t| < 2``, zero otherwise.

    Parameters
    ----------
    t : np.ndarray
        Distances in sample units.
    a : float
        Kernel parameter. ``-0.5`` gives Catmull-Rom.

    Returns
    -------
    np.ndarray
        Weights, same shape as ``t``.
    """
    t = np.abs(np.asarray(t, dtype=np.float64))
    t2 = t * t
    t3 = t2 * t
    near = (a + 2.0) * t3 - (a + 3.0) * t2 + 1.0
    far = a * t3 - 5.0 * a * t2 + 8.0 * a * t - 4.0 * a
    return np.where(t <= 1.0, near, np.where(t < 2.0, far, 0.0))


class BicubicResampler(KernelResampler):
    """Catmull-Rom bicubic resampler over a 4x4 neighbourhood.

    Parameters
    ----------
    a : float
        Cubic convolution parameter. Default ``-0.5``.
    """

    def __init__(self, a: float = CATMULL_ROM_A) -> None:
        self.a = a
        super().__init__(kernel_length=4)

    def _compute_weights(self, t: np.ndarray) -> np.ndarray:
        return cubic_weights(t, self.a)
