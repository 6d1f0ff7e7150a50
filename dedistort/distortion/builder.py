# -*- coding: utf-8 -*-
"""
Grid Assembly - Shared host-side stages of a distortion grid build.

Every backend measures displacements its own way, but tile extraction
layout, conversion of measurements to grid nodes and the filter pipeline
are common and live here, so CPU and device builds produce identical grids
from identical measurements.

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
2026-03-06

Modified
--------
2026-03-13
"""

# Standard library
import logging
from typing import List, Tuple

# Third-party
import numpy as np

# dedistort internal
from dedistort.distortion.grid import DistortionGrid, FilterReport
from dedistort.distortion.sampling import SamplePositions
from dedistort.distortion.sparse import SparseDistortionField
from dedistort.vocabulary import SamplingStrategyKind

logger = logging.getLogger(__name__)


def extract_tiles(
    image: np.ndarray,
    x0: np.ndarray,
    y0: np.ndarray,
    size: int,
) -> np.ndarray:
    """Copy square tiles into a contiguous ``(B, size, size)`` float64 stack.

    Parameters
    ----------
    image : np.ndarray
        Source image.
    x0, y0 : np.ndarray
        Top-left corners, shape ``(B,)``. Tiles must lie inside the image.
    size : int
        Tile edge.
    """
    offsets = np.arange(size)
    rows = np.asarray(y0)[:, np.newaxis] + offsets
    cols = np.asarray(x0)[:, np.newaxis] + offsets
    return image[rows[:, :, np.newaxis], cols[:, np.newaxis, :]].astype(
        np.float64,
    )


def chunk_indices(indices: np.ndarray, chunk: int) -> List[np.ndarray]:
    """Split *indices* into consecutive, disjoint chunks of at most *chunk*."""
    chunk = max(1, int(chunk))
    return [indices[i:i + chunk] for i in range(0, indices.size, chunk)]


def assemble_grid(
    width: int,
    height: int,
    step: int,
    positions: SamplePositions,
    displacements: np.ndarray,
    strategy: SamplingStrategyKind,
    base_sigma: float,
) -> Tuple[DistortionGrid, FilterReport]:
    """Turn per-tile correlator output into a filtered distortion grid.

    Correlator output moves the target onto the reference, so the stored
    sampling offset is its negation.

    Parameters
    ----------
    width, height : int
        Image size.
    step : int
        Node spacing.
    positions : SamplePositions
        Tile centres that were measured.
    displacements : np.ndarray
        ``(S, 2)`` correlator ``(dx, dy)`` per position.
    strategy : SamplingStrategyKind
        Lattice measurements map to nearest nodes; scattered measurements
        are rasterized through a ``SparseDistortionField``.
    base_sigma : float
        Smoothing sigma at a 64 pixel step.

    Returns
    -------
    grid : DistortionGrid
    report : FilterReport
    """
    offsets = -np.asarray(displacements, dtype=np.float64).reshape(-1, 2)
    offsets_x = offsets[:, 0]
    offsets_y = offsets[:, 1]

    if strategy is SamplingStrategyKind.INTEREST_POINTS:
        field = SparseDistortionField(
            width, height, positions.x, positions.y, offsets_x, offsets_y,
            tile_sizes=positions.sizes,
        )
        grid = field.to_regular_grid(step, filter_and_smooth=False)
    else:
        grid = DistortionGrid(width, height, step)
        if positions.count:
            grid.record_displacements(
                positions.x, positions.y, offsets_x, offsets_y,
            )

    report = grid.filter_and_smooth(base_sigma=base_sigma)
    logger.debug("Assembled %r from %d measurements", grid, positions.count)
    return grid, report
