# -*- coding: utf-8 -*-
"""
Interpolation - Separable kernel resampling of 2D images.

Provides kernel resamplers with a uniform callable signature
``(image, x, y) -> values``. All resamplers normalize their weights and
clamp neighbours that fall outside the image to the nearest edge pixel.

Available resamplers:

- ``BicubicResampler`` - Catmull-Rom cubic convolution, 4x4 taps.
- ``LanczosResampler`` - Lanczos-windowed sinc, ``2a x 2a`` taps.
- ``BilinearResampler`` - Triangle kernel, 2x2 taps.

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

from dedistort.interpolation.base import Resampler, KernelResampler
from dedistort.interpolation.bicubic import (
    BicubicResampler,
    CATMULL_ROM_A,
    cubic_weights,
)
from dedistort.interpolation.bilinear import BilinearResampler, triangle_weights
from dedistort.interpolation.lanczos import LanczosResampler, lanczos_weights
from dedistort.interpolation.factory import get_resampler, interpolation_method

__all__ = [
    'Resampler',
    'KernelResampler',
    'BicubicResampler',
    'BilinearResampler',
    'LanczosResampler',
    'CATMULL_ROM_A',
    'cubic_weights',
    'lanczos_weights',
    'triangle_weights',
    'get_resampler',
    'interpolation_method',
]
