# -*- coding: utf-8 -*-
"""
Distortion - Distortion grids, their filters, sampling and sparse fields.

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
2026-03-05

Modified
--------
2026-03-09
"""

from dedistort.distortion.grid import DistortionGrid, FilterReport
from dedistort.distortion.sparse import SparseDistortionField
from dedistort.distortion.sampling import (
    GridSamplingStrategy,
    InterestPointSamplingStrategy,
    SamplePositions,
    SamplingStrategy,
    get_sampling_strategy,
)
from dedistort.distortion.builder import assemble_grid, extract_tiles

__all__ = [
    'DistortionGrid',
    'FilterReport',
    'SparseDistortionField',
    'GridSamplingStrategy',
    'InterestPointSamplingStrategy',
    'SamplePositions',
    'SamplingStrategy',
    'get_sampling_strategy',
    'assemble_grid',
    'extract_tiles',
]
