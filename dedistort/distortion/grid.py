# -*- coding: utf-8 -*-
"""
Distortion Grid - Sparse-to-dense field of local displacement vectors.

A ``DistortionGrid`` stores one displacement per node of a regular lattice
laid over an image, node ``(gx, gy)`` sitting at pixel
``(gx * step, gy * step)``. Values are *sampling offsets*: the corrected
image at ``(x, y)`` is the target image sampled at
``(x + dx(x, y), y + dy(x, y))``.

Node storage is flat (``gy * grid_width + gx``) float64 arrays, so filter
passes and tile workers touch disjoint slices without allocating per node.
Each node is either *sampled* (measured) or *derived* (filled); the
``sampled`` mask keeps that provenance after filtering.

Dependencies
------------
numpy

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
2026-03-14
"""

# Standard library
import logging
import math
from typing import Any, Dict, NamedTuple, Optional, Sequence, Tuple, Union

# Third-party
import numpy as np

# dedistort internal
from dedistort.distortion.filters import (
    DEFAULT_HALF_WINDOW,
    DEFAULT_MAD_THRESHOLD,
    DEFAULT_SEARCH_RADIUS,
    fill_gaps,
    gaussian_smooth,
    reject_global_outliers,
    reject_local_outliers,
)
from dedistort.exceptions import ValidationError
from dedistort.image import DisplacementVector
from dedistort.interpolation.bicubic import BicubicResampler

logger = logging.getLogger(__name__)

# Step at which the base smoothing sigma applies unscaled.
SIGMA_REFERENCE_STEP = 64.0

_BICUBIC = BicubicResampler()


class FilterReport(NamedTuple):
    """Node counts from one :meth:`DistortionGrid.filter_and_smooth` call."""

    sampled_before: int
    global_outliers: int
    local_outliers: int
    filled: int
    uninterpolated: int


def axis_weight_matrix(coords: np.ndarray, nodes: int) -> np.ndarray:
    """Dense Catmull-Rom weight matrix from node values to coordinates.

    Row ``i`` holds the weights that interpolate node values along one
    axis at ``coords[i]`` (in node units), with node indices clamped to
    ``[0, nodes - 1]``. ``W @ values`` evaluates the 1D interpolant.

    Parameters
    ----------
    coords : np.ndarray
        Coordinates in node units, shape ``(M,)``.
    nodes : int
        Number of grid nodes along the axis.

    Returns
    -------
    np.ndarray
        ``(M, nodes)`` float64 matrix.
    """
    base, weights = _BICUBIC.axis_weights(np.asarray(coords, dtype=np.float64))
    idx = np.clip(base[:, np.newaxis] + _BICUBIC.offsets, 0, nodes - 1)
    matrix = np.zeros((coords.shape[0], nodes), dtype=np.float64)
    rows = np.repeat(np.arange(coords.shape[0]), idx.shape[1])
    np.add.at(matrix, (rows, idx.ravel()), weights.ravel())
    return matrix


class DistortionGrid:
    """Displacement field sampled on a regular lattice of nodes.

    Parameters
    ----------
    width, height : int
        Size in pixels of the image the grid covers.
    step : int
        Pixel spacing between nodes.

    Attributes
    ----------
    grid_width, grid_height : int
        ``ceil(width / step) + 1`` and ``ceil(height / step) + 1``.
    dx, dy : np.ndarray
        Flat float64 node displacements.
    sampled : np.ndarray
        Flat bool mask of measured nodes.
    uninterpolated : np.ndarray
        Flat bool mask of nodes gap filling could not reach.

    Raises
    ------
    ValidationError
        If the dimensions or step are not positive.
    """

    def __init__(self, width: int, height: int, step: int) -> None:
        if width <= 0 or height <= 0:
            raise ValidationError(
                f"Grid image size must be positive, got {width}x{height}"
            )
        if step <= 0:
            raise ValidationError(f"Grid step must be positive, got {step}")
        self.width = int(width)
        self.height = int(height)
        self.step = int(step)
        self.grid_width = int(math.ceil(self.width / self.step)) + 1
        self.grid_height = int(math.ceil(self.height / self.step)) + 1
        n = self.grid_width * self.grid_height
        self.dx = np.zeros(n, dtype=np.float64)
        self.dy = np.zeros(n, dtype=np.float64)
        self.sampled = np.zeros(n, dtype=bool)
        self.uninterpolated = np.zeros(n, dtype=bool)

    # -----------------------------------------------------------------
    # Construction helpers
    # -----------------------------------------------------------------
    @classmethod
    def from_arrays(
        cls,
        width: int,
        height: int,
        step: int,
        dx: np.ndarray,
        dy: np.ndarray,
        sampled: Optional[np.ndarray] = None,
    ) -> 'DistortionGrid':
        """Build a grid from 2D node arrays ``(grid_height, grid_width)``.

        Raises
        ------
        ValidationError
            If the arrays do not match the grid dimensions.
        """
        grid = cls(width, height, step)
        shape = grid.shape
        for name, arr in (('dx', dx), ('dy', dy)):
            if np.shape(arr) != shape:
                raise ValidationError(
                    f"{name} must have shape {shape}, got {np.shape(arr)}"
                )
        grid.dx[:] = np.asarray(dx, dtype=np.float64).ravel()
        grid.dy[:] = np.asarray(dy, dtype=np.float64).ravel()
        if sampled is not None:
            grid.sampled[:] = np.asarray(sampled, dtype=bool).ravel()
        return grid

    def copy(self) -> 'DistortionGrid':
        """Deep copy of the grid."""
        other = DistortionGrid(self.width, self.height, self.step)
        other.dx[:] = self.dx
        other.dy[:] = self.dy
        other.sampled[:] = self.sampled
        other.uninterpolated[:] = self.uninterpolated
        return other

    # -----------------------------------------------------------------
    # Node access
    # -----------------------------------------------------------------
    @property
    def shape(self) -> Tuple[int, int]:
        """``(grid_height, grid_width)``."""
        return self.grid_height, self.grid_width

    @property
    def dx_2d(self) -> np.ndarray:
        """Writable 2D view of ``dx``."""
        return self.dx.reshape(self.shape)

    @property
    def dy_2d(self) -> np.ndarray:
        """Writable 2D view of ``dy``."""
        return self.dy.reshape(self.shape)

    @property
    def sampled_2d(self) -> np.ndarray:
        """Writable 2D view of ``sampled``."""
        return self.sampled.reshape(self.shape)

    @property
    def sampled_count(self) -> int:
        """Number of measured nodes."""
        return int(np.count_nonzero(self.sampled))

    def index(self, gx: int, gy: int) -> int:
        """Flat index of node ``(gx, gy)``.

        Raises
        ------
        IndexError
            If the node lies outside the grid.
        """
        if not (0 <= gx < self.grid_width and 0 <= gy < self.grid_height):
            raise IndexError(
                f"Node ({gx}, {gy}) outside grid of "
                f"{self.grid_width}x{self.grid_height}"
            )
        return gy * self.grid_width + gx

    def get(self, gx: int, gy: int) -> DisplacementVector:
        """Displacement stored at node ``(gx, gy)``."""
        i = self.index(gx, gy)
        return DisplacementVector(float(self.dx[i]), float(self.dy[i]))

    def set(
        self,
        gx: int,
        gy: int,
        dx: float,
        dy: float,
        sampled: bool = True,
    ) -> None:
        """Store a displacement at node ``(gx, gy)``."""
        i = self.index(gx, gy)
        self.dx[i] = dx
        self.dy[i] = dy
        self.sampled[i] = sampled

    def node_position(self, gx: int, gy: int) -> Tuple[int, int]:
        """Pixel position ``(x, y)`` of node ``(gx, gy)``."""
        return gx * self.step, gy * self.step

    def nearest_node(self, px: float, py: float) -> Tuple[int, int]:
        """Node nearest to pixel ``(px, py)``, clipped into the grid."""
        gx = int(round(px / self.step))
        gy = int(round(py / self.step))
        gx = min(max(gx, 0), self.grid_width - 1)
        gy = min(max(gy, 0), self.grid_height - 1)
        return gx, gy

    def record_displacement(
        self,
        px: float,
        py: float,
        dx: float,
        dy: float,
    ) -> None:
        """Record a measurement taken at pixel ``(px, py)``.

        The value goes to the nearest node, which becomes sampled.
        """
        gx, gy = self.nearest_node(px, py)
        self.set(gx, gy, dx, dy, sampled=True)

    def record_displacements(
        self,
        px: np.ndarray,
        py: np.ndarray,
        dx: np.ndarray,
        dy: np.ndarray,
    ) -> None:
        """Vectorized :meth:`record_displacement`."""
        gx = np.clip(np.rint(np.asarray(px) / self.step).astype(np.int64),
                     0, self.grid_width - 1)
        gy = np.clip(np.rint(np.asarray(py) / self.step).astype(np.int64),
                     0, self.grid_height - 1)
        idx = gy * self.grid_width + gx
        self.dx[idx] = dx
        self.dy[idx] = dy
        self.sampled[idx] = True

    # -----------------------------------------------------------------
    # Filtering
    # -----------------------------------------------------------------
    def smoothing_sigma(self, base_sigma: float = 1.0) -> float:
        """Smoothing sigma in nodes, ``base_sigma * step / 64``."""
        return base_sigma * (self.step / SIGMA_REFERENCE_STEP)

    def filter_and_smooth(
        self,
        base_sigma: float = 1.0,
        search_radius: int = DEFAULT_SEARCH_RADIUS,
        half_window: int = DEFAULT_HALF_WINDOW,
        mad_threshold: float = DEFAULT_MAD_THRESHOLD,
    ) -> FilterReport:
        """Reject outliers, fill gaps and smooth, in place.

        Stages, in order: global MAD rejection on magnitude, local MAD
        rejection per component, inverse-squared-distance gap filling
        within ``search_radius`` nodes, then separable Gaussian smoothing
        with ``sigma = base_sigma * step / 64``. Rejected nodes lose their
        ``sampled`` flag; after the call every node holds a finite value.

        Parameters
        ----------
        base_sigma : float
            Smoothing sigma at a 64 pixel step. 0 disables smoothing.
        search_radius : int
            Gap filling radius in nodes.
        half_window : int
            Half size of the local MAD window in nodes.
        mad_threshold : float
            Rejection distance in scaled MADs.

        Returns
        -------
        FilterReport
        """
        dx = self.dx_2d
        dy = self.dy_2d
        sampled = self.sampled_2d.copy()
        sampled_before = int(np.count_nonzero(sampled))

        global_out = reject_global_outliers(dx, dy, sampled, mad_threshold)
        sampled &= ~global_out
        local_out = reject_local_outliers(
            dx, dy, sampled, half_window, mad_threshold,
        )
        sampled &= ~local_out

        filled_dx, filled_dy, uninterpolated = fill_gaps(
            dx, dy, sampled, search_radius,
        )
        smooth_dx, smooth_dy = gaussian_smooth(
            filled_dx, filled_dy, self.smoothing_sigma(base_sigma),
        )

        self.dx[:] = smooth_dx.ravel()
        self.dy[:] = smooth_dy.ravel()
        self.sampled[:] = sampled.ravel()
        self.uninterpolated[:] = uninterpolated.ravel()

        report = FilterReport(
            sampled_before=sampled_before,
            global_outliers=int(np.count_nonzero(global_out)),
            local_outliers=int(np.count_nonzero(local_out)),
            filled=int(np.count_nonzero(~sampled & ~uninterpolated)),
            uninterpolated=int(np.count_nonzero(uninterpolated)),
        )
        logger.debug(
            "Grid %dx%d (step %d): %d sampled, %d global / %d local "
            "outliers, %d filled, %d uninterpolated",
            self.grid_width, self.grid_height, self.step,
            report.sampled_before, report.global_outliers,
            report.local_outliers, report.filled, report.uninterpolated,
        )
        return report

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------
    def displacement_at(
        self,
        px: Union[float, np.ndarray],
        py: Union[float, np.ndarray],
    ) -> Union[DisplacementVector, Tuple[np.ndarray, np.ndarray]]:
        """Catmull-Rom bicubic displacement at pixel ``(px, py)``.

        Interpolates the 4x4 nodes around ``(px / step, py / step)`` with
        node indices clamped to the grid.

        Parameters
        ----------
        px, py : float or np.ndarray
            Pixel coordinates.

        Returns
        -------
        DisplacementVector or tuple of np.ndarray
            A vector for scalar input, ``(dx, dy)`` arrays otherwise.
        """
        scalar = np.isscalar(px) and np.isscalar(py)
        gx = np.asarray(px, dtype=np.float64) / self.step
        gy = np.asarray(py, dtype=np.float64) / self.step
        gx, gy = np.broadcast_arrays(gx, gy)
        dx = _BICUBIC(self.dx_2d, gx, gy)
        dy = _BICUBIC(self.dy_2d, gx, gy)
        if scalar:
            return DisplacementVector(float(dx), float(dy))
        return dx, dy

    def weight_matrices(self) -> Tuple[np.ndarray, np.ndarray]:
        """Row and column interpolation matrices for the full image.

        ``wy @ node_values @ wx.T`` equals :meth:`displacement_at`
        evaluated at every pixel.

        Returns
        -------
        wy : np.ndarray
            ``(height, grid_height)``.
        wx : np.ndarray
            ``(width, grid_width)``.
        """
        wy = axis_weight_matrix(
            np.arange(self.height, dtype=np.float64) / self.step,
            self.grid_height,
        )
        wx = axis_weight_matrix(
            np.arange(self.width, dtype=np.float64) / self.step,
            self.grid_width,
        )
        return wy, wx

    def dense_field(self) -> Tuple[np.ndarray, np.ndarray]:
        """Per-pixel displacement arrays of shape ``(height, width)``."""
        wy, wx = self.weight_matrices()
        return wy @ self.dx_2d @ wx.T, wy @ self.dy_2d @ wx.T

    def total_distortion(self) -> float:
        """Sum of displacement magnitudes over all nodes."""
        return float(np.sum(np.hypot(self.dx, self.dy)))

    def mean_distortion(self) -> float:
        """Mean displacement magnitude per node.

        Comparable between grids of different steps, unlike
        :meth:`total_distortion`.
        """
        return float(np.mean(np.hypot(self.dx, self.dy)))

    def max_displacement(self) -> float:
        """Largest node displacement magnitude."""
        return float(np.max(np.hypot(self.dx, self.dy)))

    # -----------------------------------------------------------------
    # Grid algebra
    # -----------------------------------------------------------------
    def negate(self) -> 'DistortionGrid':
        """Grid with every displacement negated."""
        other = self.copy()
        other.dx *= -1.0
        other.dy *= -1.0
        return other

    def __neg__(self) -> 'DistortionGrid':
        return self.negate()

    def resampled(self, step: int) -> 'DistortionGrid':
        """This field evaluated on a lattice of spacing *step*.

        Every node of the result is derived (unsampled).
        """
        other = DistortionGrid(self.width, self.height, step)
        gy, gx = np.mgrid[0:other.grid_height, 0:other.grid_width]
        dx, dy = self.displacement_at(
            (gx * step).astype(np.float64), (gy * step).astype(np.float64),
        )
        other.dx[:] = dx.ravel()
        other.dy[:] = dy.ravel()
        return other

    @staticmethod
    def _check_compatible(grids: Sequence['DistortionGrid']) -> None:
        if not grids:
            raise ValidationError("At least one grid is required")
        w, h = grids[0].width, grids[0].height
        for g in grids[1:]:
            if (g.width, g.height) != (w, h):
                raise ValidationError(
                    f"Grids cover different image sizes: {w}x{h} and "
                    f"{g.width}x{g.height}"
                )

    @classmethod
    def average(cls, grids: Sequence['DistortionGrid']) -> 'DistortionGrid':
        """Node-wise mean of grids sharing size and step.

        A node of the result is sampled when it was sampled in any input.

        Raises
        ------
        ValidationError
            If *grids* is empty or the grids are not aligned.
        """
        cls._check_compatible(grids)
        step = grids[0].step
        if any(g.step != step for g in grids):
            raise ValidationError("Grids to average must share one step")
        out = cls(grids[0].width, grids[0].height, step)
        out.dx[:] = np.mean([g.dx for g in grids], axis=0)
        out.dy[:] = np.mean([g.dy for g in grids], axis=0)
        out.sampled[:] = np.any([g.sampled for g in grids], axis=0)
        return out

    @classmethod
    def synthesize(
        cls,
        grids: Sequence['DistortionGrid'],
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> 'DistortionGrid':
        """Sum of several fields on the finest step among them.

        Coarser grids are evaluated at the fine nodes with
        :meth:`displacement_at` before summing.

        Parameters
        ----------
        grids : sequence of DistortionGrid
            Fields covering the same image.
        width, height : int, optional
            Image size; defaults to that of the first grid.
        """
        cls._check_compatible(grids)
        width = grids[0].width if width is None else width
        height = grids[0].height if height is None else height
        step = min(g.step for g in grids)
        out = cls(width, height, step)
        for g in grids:
            fine = g if g.step == step else g.resampled(step)
            out.dx += fine.dx
            out.dy += fine.dy
        return out

    def describe(self) -> Dict[str, Any]:
        """Summary statistics for diagnostics."""
        return {
            'grid_width': self.grid_width,
            'grid_height': self.grid_height,
            'step': self.step,
            'sampled': self.sampled_count,
            'uninterpolated': int(np.count_nonzero(self.uninterpolated)),
            'total_distortion': self.total_distortion(),
            'mean_distortion': self.mean_distortion(),
            'max_displacement': self.max_displacement(),
        }

    def __repr__(self) -> str:
        return (
            f"DistortionGrid(width={self.width}, height={self.height}, "
            f"step={self.step}, nodes={self.grid_width}x{self.grid_height}, "
            f"sampled={self.sampled_count})"
        )
