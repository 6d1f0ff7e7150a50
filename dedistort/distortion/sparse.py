# -*- coding: utf-8 -*-
"""
Sparse Distortion Field - Displacements measured at scattered positions.

Holds displacement samples at arbitrary pixel positions (as produced by
interest-point sampling) and answers point queries by weighting the ``k``
nearest samples, found through a ``scipy.spatial.cKDTree``:

- ``idw`` - inverse distance to the power ``idw_power``.
- ``gaussian_rbf`` - ``exp(-(eps * d)^2)``, optionally widened for samples
  measured on larger tiles.
- ``thin_plate`` - ``1 / (1 + |d^2 ln d|)``, optionally scaled by the
  squared tile-size ratio.

``to_regular_grid`` rasterizes the field onto a ``DistortionGrid``.

Dependencies
------------
scipy

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
2026-03-09

Modified
--------
2026-03-12
"""

# Standard library
import logging
from typing import Optional, Tuple, Union

# Third-party
import numpy as np
from scipy.spatial import cKDTree

# dedistort internal
from dedistort.distortion.grid import DistortionGrid
from dedistort.exceptions import ValidationError
from dedistort.vocabulary import SparseInterpolationMethod

logger = logging.getLogger(__name__)

DEFAULT_NEIGHBOURS = 8
DEFAULT_RBF_EPSILON = 0.01
DEFAULT_IDW_POWER = 2.0
DEFAULT_BASE_TILE_SIZE = 64

# Queries closer than this to a sample return the sample itself.
_COINCIDENT_SQ = 1e-10


class SparseDistortionField:
    """Scattered displacement samples with k-nearest-neighbour queries.

    Parameters
    ----------
    width, height : int
        Size of the image the samples were measured on.
    x, y : np.ndarray
        Sample positions in pixels, shape ``(S,)``.
    dx, dy : np.ndarray
        Sample displacements, shape ``(S,)``.
    tile_sizes : np.ndarray, optional
        Tile size each sample was measured with. Used only when
        ``tile_weighting`` is enabled.
    method : str or SparseInterpolationMethod
        Query weighting. Default ``'gaussian_rbf'``.
    neighbours : int
        Samples consulted per query.
    rbf_epsilon : float
        Gaussian RBF shape parameter.
    idw_power : float
        Inverse distance power.
    base_tile_size : int
        Tile size at which no tile weighting applies.
    tile_weighting : bool
        Let samples from larger tiles influence a wider area.
    """

    def __init__(
        self,
        width: int,
        height: int,
        x: np.ndarray,
        y: np.ndarray,
        dx: np.ndarray,
        dy: np.ndarray,
        tile_sizes: Optional[np.ndarray] = None,
        method: Union[str, SparseInterpolationMethod] = (
            SparseInterpolationMethod.GAUSSIAN_RBF
        ),
        neighbours: int = DEFAULT_NEIGHBOURS,
        rbf_epsilon: float = DEFAULT_RBF_EPSILON,
        idw_power: float = DEFAULT_IDW_POWER,
        base_tile_size: int = DEFAULT_BASE_TILE_SIZE,
        tile_weighting: bool = False,
    ) -> None:
        self.x = np.asarray(x, dtype=np.float64).ravel()
        self.y = np.asarray(y, dtype=np.float64).ravel()
        self.dx = np.asarray(dx, dtype=np.float64).ravel()
        self.dy = np.asarray(dy, dtype=np.float64).ravel()
        n = self.x.size
        if not (self.y.size == self.dx.size == self.dy.size == n):
            raise ValidationError(
                "Sample arrays x, y, dx, dy must have the same length"
            )
        if tile_sizes is None:
            tile_sizes = np.full(n, base_tile_size)
        self.tile_sizes = np.asarray(tile_sizes, dtype=np.float64).ravel()
        if self.tile_sizes.size != n:
            raise ValidationError("tile_sizes must have one entry per sample")
        if neighbours < 1:
            raise ValidationError(f"neighbours must be >= 1, got {neighbours}")

        try:
            self.method = SparseInterpolationMethod(
                method.value if isinstance(method, SparseInterpolationMethod)
                else method
            )
        except ValueError:
            raise ValidationError(
                f"Unknown sparse interpolation method {method!r}"
            ) from None

        self.width = int(width)
        self.height = int(height)
        self.neighbours = int(neighbours)
        self.rbf_epsilon = float(rbf_epsilon)
        self.idw_power = float(idw_power)
        self.base_tile_size = float(base_tile_size)
        self.tile_weighting = tile_weighting
        self._tree = cKDTree(np.column_stack([self.x, self.y])) if n else None

    @property
    def sample_count(self) -> int:
        """Number of samples."""
        return int(self.x.size)

    def total_distortion(self) -> float:
        """Sum of sample displacement magnitudes."""
        return float(np.sum(np.hypot(self.dx, self.dy)))

    def _weights(self, dist_sq: np.ndarray, idx: np.ndarray) -> np.ndarray:
        ratio = self.tile_sizes[idx] / self.base_tile_size
        if self.method is SparseInterpolationMethod.IDW:
            dist = np.sqrt(np.maximum(dist_sq, _COINCIDENT_SQ))
            return 1.0 / dist ** self.idw_power
        if self.method is SparseInterpolationMethod.GAUSSIAN_RBF:
            eps = self.rbf_epsilon
            if self.tile_weighting:
                eps = eps / ratio
            return np.exp(-(eps * eps) * dist_sq)
        safe = np.maximum(dist_sq, _COINCIDENT_SQ)
        phi = safe * np.log(np.sqrt(safe))
        weights = 1.0 / (1.0 + np.abs(phi))
        if self.tile_weighting:
            weights = weights * ratio * ratio
        return weights

    def query(
        self,
        px: Union[float, np.ndarray],
        py: Union[float, np.ndarray],
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Interpolated displacement at pixel positions.

        Parameters
        ----------
        px, py : float or np.ndarray
            Query positions.

        Returns
        -------
        dx, dy : np.ndarray
            Displacements with the broadcast shape of the inputs. An empty
            field answers zero everywhere.
        """
        px, py = np.broadcast_arrays(
            np.asarray(px, dtype=np.float64), np.asarray(py, dtype=np.float64),
        )
        shape = px.shape
        if self._tree is None:
            return np.zeros(shape), np.zeros(shape)

        k = min(self.neighbours, self.sample_count)
        points = np.column_stack([px.ravel(), py.ravel()])
        dist, idx = self._tree.query(points, k=k)
        if k == 1:
            dist = dist[:, np.newaxis]
            idx = idx[:, np.newaxis]
        dist_sq = dist * dist

        weights = self._weights(dist_sq, idx)
        wsum = weights.sum(axis=1)
        out_dx = np.where(
            wsum > 1e-10,
            (weights * self.dx[idx]).sum(axis=1) / np.maximum(wsum, 1e-300),
            0.0,
        )
        out_dy = np.where(
            wsum > 1e-10,
            (weights * self.dy[idx]).sum(axis=1) / np.maximum(wsum, 1e-300),
            0.0,
        )

        if self.method is not SparseInterpolationMethod.GAUSSIAN_RBF:
            coincident = dist_sq[:, 0] < _COINCIDENT_SQ
            out_dx[coincident] = self.dx[idx[coincident, 0]]
            out_dy[coincident] = self.dy[idx[coincident, 0]]

        return out_dx.reshape(shape), out_dy.reshape(shape)

    def to_regular_grid(
        self,
        step: int,
        filter_and_smooth: bool = True,
        base_sigma: float = 1.0,
    ) -> DistortionGrid:
        """Rasterize the field onto a grid of spacing *step*.

        Every node receives the interpolated displacement; nodes whose
        nearest sample is within one step are marked sampled, the rest are
        left to gap filling.

        Parameters
        ----------
        step : int
            Node spacing in pixels.
        filter_and_smooth : bool
            Run :meth:`DistortionGrid.filter_and_smooth` on the result.
        base_sigma : float
            Smoothing sigma passed to the filter.

        Returns
        -------
        DistortionGrid
        """
        grid = DistortionGrid(self.width, self.height, step)
        if self._tree is None:
            logger.debug("Empty sparse field rasterized to a zero grid")
            return grid
        gy, gx = np.mgrid[0:grid.grid_height, 0:grid.grid_width]
        px = (gx * step).astype(np.float64)
        py = (gy * step).astype(np.float64)
        dx, dy = self.query(px, py)
        nearest, _ = self._tree.query(
            np.column_stack([px.ravel(), py.ravel()]), k=1,
        )
        grid.dx[:] = dx.ravel()
        grid.dy[:] = dy.ravel()
        grid.sampled[:] = nearest <= step
        if filter_and_smooth:
            grid.filter_and_smooth(base_sigma=base_sigma)
        return grid
