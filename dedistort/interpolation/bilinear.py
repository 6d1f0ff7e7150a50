# -*- coding: utf-8 -*-
"""
Bilinear Resampler - Two-tap triangle kernel.

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


def triangle_weights(t: np.ndarray) -> np.ndarray:
    """Triangle kernel ``max(0, 1 - |t|)``."""
    return np.maximum(0.0, 1.0 - np.abs(np.asarray(t, dtype=np.float64)))


class BilinearResampler(KernelResampler):
    """Bilinear resampler over a 2x2 neighbourhood."""

    def __init__(self) -> None:
        super().__init__(kernel_length=2)

    def _compute_weights(self, t: np.ndarray) -> np.ndarray:
        return triangle_weights(t)
