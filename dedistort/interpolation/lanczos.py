# -*- coding: utf-8 -*-
"""
Lanczos Resampler - Lanczos-windowed sinc image resampling.

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


def lanczos_weights(t: np.ndarray, a: int = 3) -> np.ndarray:
    """Lanczos kernel ``sinc(t) * sinc(t / a)`` for ``|t| < a``, else 0."""
    t = np.asarray(t, dtype=np.float64)
    weights = np.sinc(t) * np.sinc(t / a)
    return np.where(np.abs(t) >= a, 0.0, weights)


class LanczosResampler(KernelResampler):
    """Lanczos-windowed sinc resampler.

    Kernel: ``sinc(x) * sinc(x / a)`` for ``|x| < a``, zero otherwise.

    Parameters
    ----------
    a : int
        Number of lobes; the kernel uses ``2 * a`` taps per axis.
        Default is 3 (36 taps per output pixel).

    Examples
    --------
    >>> resample = LanczosResampler(a=3)
    >>> values = resample(image, x, y)
    """

    def __init__(self, a: int = 3) -> None:
        if a < 1:
            raise ValueError(f"a must be >= 1, got {a}")
        self.a = a
        super().__init__(kernel_length=2 * a)

    def _compute_weights(self, t: np.ndarray) -> np.ndarray:
        """Compute Lanczos kernel weights."""
        return lanczos_weights(t, self.a)
