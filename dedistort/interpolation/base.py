# -*- coding: utf-8 -*-
"""
Resampling Base Classes - ABCs for 2D image sampling at fractional coordinates.

Defines the ``Resampler`` ABC (callable interface) and ``KernelResampler``
(template for separable kernel methods that share neighbour gathering,
per-axis weight normalization, and clamp-to-edge boundary handling).

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
2026-03-10
"""

# Standard library
from abc import ABC, abstractmethod
from typing import Tuple

# Third-party
import numpy as np

# dedistort internal
from dedistort.exceptions import ValidationError

# Output samples gathered per vectorized chunk.
_CHUNK_ELEMENTS = 1 << 18


class Resampler(ABC):
    """Abstract base class for 2D image resampling.

    All resamplers are callable with signature ``(image, x, y) -> values``.

    Parameters
    ----------
    image : np.ndarray
        2D source image, shape ``(rows, cols)``.
    x : np.ndarray
        Column coordinates of the samples, any shape.
    y : np.ndarray
        Row coordinates of the samples, same shape as ``x``.

    Returns
    -------
    np.ndarray
        float64 sample values, same shape as ``x``.
    """

    @abstractmethod
    def __call__(
        self,
        image: np.ndarray,
        x: np.ndarray,
        y: np.ndarray,
    ) -> np.ndarray:
        """Sample ``image`` at ``(x, y)``."""
        ...


class KernelResampler(Resampler):
    """Base class for separable kernel resamplers.

    Handles the common boilerplate: integer base index and fractional
    offset per axis, neighbour gathering, weight normalization (so a
    constant image resamples to itself), and clamp-to-edge for
    neighbours outside the image. Subclasses only implement
    :meth:`_compute_weights`.

    Parameters
    ----------
    kernel_length : int
        Taps per axis. Must be an even number >= 2.
    """

    def __init__(self, kernel_length: int) -> None:
        if kernel_length < 2 or kernel_length % 2:
            raise ValueError(
                f"kernel_length must be an even number >= 2, "
                f"got {kernel_length}"
            )
        self._kernel_length = kernel_length
        self._half = kernel_length // 2
        self._offsets = np.arange(-self._half + 1, self._half + 1)

    @property
    def kernel_length(self) -> int:
        """Taps per axis."""
        return self._kernel_length

    @property
    def offsets(self) -> np.ndarray:
        """Neighbour offsets relative to ``floor(coordinate)``."""
        return self._offsets

    @abstractmethod
    def _compute_weights(self, t: np.ndarray) -> np.ndarray:
        """Compute kernel weights from signed distances.

        Parameters
        ----------
        t : np.ndarray
            Distances from sample coordinates to their neighbours, in
            pixels, shape ``(M, kernel_length)``.

        Returns
        -------
        np.ndarray
            Kernel weights, same shape as ``t``.
        """
        ...

    def axis_weights(self, coord: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Base indices and normalized weights along one axis.

        Parameters
        ----------
        coord : np.ndarray
            1D array of fractional coordinates, shape ``(M,)``.

        Returns
        -------
        base : np.ndarray
            ``floor(coord)`` as int64, shape ``(M,)``.
        weights : np.ndarray
            Normalized weights, shape ``(M, kernel_length)``.
        """
        base = np.floor(coord)
        frac = coord - base
        t = frac[:, np.newaxis] - self._offsets[np.newaxis, :]
        weights = self._compute_weights(t)
        sums = np.sum(weights, axis=1, keepdims=True)
        sums = np.where(np.abs(sums) < 1e-15, 1.0, sums)
        return base.astype(np.int64), weights / sums

    def __call__(
        self,
        image: np.ndarray,
        x: np.ndarray,
        y: np.ndarray,
    ) -> np.ndarray:
        """Resample with the kernel, clamping neighbours to the image edge.

        Parameters
        ----------
        image : np.ndarray
            2D source image.
        x, y : np.ndarray
            Column and row coordinates, same shape.

        Returns
        -------
        np.ndarray
            float64 samples with the shape of ``x``.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        if x.shape != y.shape:
            raise ValidationError(
                f"x and y must have the same shape, got {x.shape} and {y.shape}"
            )
        if image.ndim != 2:
            raise ValidationError(f"image must be 2D, got shape {image.shape}")

        rows, cols = image.shape
        xf = x.ravel()
        yf = y.ravel()
        out = np.empty(xf.shape, dtype=np.float64)
        chunk = max(1, _CHUNK_ELEMENTS // (self._kernel_length ** 2))

        for start in range(0, xf.size, chunk):
            stop = min(start + chunk, xf.size)
            bx, wx = self.axis_weights(xf[start:stop])
            by, wy = self.axis_weights(yf[start:stop])
            ix = np.clip(bx[:, np.newaxis] + self._offsets, 0, cols - 1)
            iy = np.clip(by[:, np.newaxis] + self._offsets, 0, rows - 1)
            # (M, L_y, L_x) neighbourhood per sample
            values = image[iy[:, :, np.newaxis], ix[:, np.newaxis, :]]
            out[start:stop] = np.einsum(
                'mi,mij,mj->m', wy, values.astype(np.float64, copy=False), wx,
            )

        return out.reshape(x.shape)
