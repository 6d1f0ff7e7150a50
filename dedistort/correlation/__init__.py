# -*- coding: utf-8 -*-
"""
Correlation - FFT phase correlation of image tiles.

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
2026-03-04

Modified
--------
2026-03-04
"""

from dedistort.correlation.phase import (
    CorrelationResult,
    PhaseCorrelator,
    correlate,
    cross_power_surfaces,
    gaussian_peak_offsets,
    hann_window,
    locate_peaks,
    parabolic_axis_offset,
    peak_confidence,
    refine_from_neighbours,
    refine_peaks,
)

__all__ = [
    'CorrelationResult',
    'PhaseCorrelator',
    'correlate',
    'cross_power_surfaces',
    'gaussian_peak_offsets',
    'hann_window',
    'locate_peaks',
    'parabolic_axis_offset',
    'peak_confidence',
    'refine_from_neighbours',
    'refine_peaks',
]
