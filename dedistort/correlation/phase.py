# -*- coding: utf-8 -*-
"""
Phase Correlation - Sub-pixel translation between equally sized tiles.

Estimates the shift between a reference tile and a target tile from the
normalized cross-power spectrum of their Hann-windowed FFTs, then refines
the integer peak with a Gaussian fit on the log of its 3x3 neighbourhood,
falling back to a parabola on axes whose neighbours are near zero.
Magnitude normalization makes the estimate insensitive to brightness
differences and additive noise between frames.

Sign convention: a target whose content is translated by ``(+tx, +ty)``
relative to the reference yields ``(-tx, -ty)``, the motion that brings
the target back onto the reference.

The batch helpers (``cross_power_surfaces``, ``locate_peaks``,
``refine_from_neighbours``) are shared with the device backend so that both
paths refine peaks with identical arithmetic.

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
2026-03-04

Modified
--------
2026-03-13
"""

# Standard library
import logging
from functools import lru_cache
from typing import NamedTuple, Tuple

# Third-party
import numpy as np

# dedistort internal
from dedistort.exceptions import ValidationError
from dedistort.image import DisplacementVector
from dedistort.versioning import algorithm_version

logger = logging.getLogger(__name__)

# Cross-power bins with a squared magnitude at or below this are zeroed.
MAGNITUDE_EPSILON = 1e-20

# Fit denominators smaller than this leave the axis unrefined.
DENOMINATOR_EPSILON = 1e-10

# Peak neighbourhood values are floored here before taking the log.
LOG_FLOOR = 1e-10

# An axis whose neighbours fall below this fraction of the peak value is
# refined with a parabolic fit instead of the log Gaussian.
GAUSSIAN_MIN_RATIO = 0.1


class CorrelationResult(NamedTuple):
    """Displacement estimate with peak diagnostics.

    Attributes
    ----------
    dx, dy : float
        Displacement, same convention as :meth:`PhaseCorrelator.correlate`.
    confidence : float
        Peak-to-sidelobe based sharpness score in ``[0, 1]``.
    refined : bool
        False when the estimate fell back to integer precision.
    """

    dx: float
    dy: float
    confidence: float
    refined: bool


# ===================================================================
# Shared batch helpers
# ===================================================================

@lru_cache(maxsize=16)
def hann_window(size: int) -> np.ndarray:
    """Separable 2D Hann window ``w1(i) * w1(j)``.

    ``w1(i) = 0.5 * (1 - cos(2 pi i / (N - 1)))``. The returned array is
    shared between callers and marked read-only.
    """
    w1 = np.hanning(size)
    window = np.outer(w1, w1)
    window.setflags(write=False)
    return window


def cross_power_surfaces(
    reference: np.ndarray,
    target: np.ndarray,
) -> np.ndarray:
    """Centred phase-correlation surfaces of tile stacks.

    Parameters
    ----------
    reference, target : np.ndarray
        Tiles of shape ``(B, N, N)``.

    Returns
    -------
    np.ndarray
        Real surfaces ``(B, N, N)``, ``fftshift``-ed so that zero shift
        sits at ``(N/2, N/2)``.
    """
    window = hann_window(reference.shape[-1])
    f = np.fft.fft2(reference * window)
    g = np.fft.fft2(target * window)
    cross = np.conj(f) * g
    mag_sq = cross.real ** 2 + cross.imag ** 2
    safe = mag_sq > MAGNITUDE_EPSILON
    normalized = np.zeros_like(cross)
    normalized[safe] = cross[safe] / np.sqrt(mag_sq[safe])
    surface = np.fft.ifft2(normalized).real
    return np.fft.fftshift(surface, axes=(-2, -1))


def locate_peaks(surfaces: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Row and column of each surface maximum.

    Ties are resolved toward the centre of the surface.

    Parameters
    ----------
    surfaces : np.ndarray
        Shape ``(B, N, N)``.

    Returns
    -------
    rows, cols : np.ndarray
        int64 arrays of shape ``(B,)``.
    """
    b, n, m = surfaces.shape
    flat = surfaces.reshape(b, -1)
    peak = flat.max(axis=1, keepdims=True)
    yy, xx = np.mgrid[0:n, 0:m]
    dist = ((yy - n // 2) ** 2 + (xx - m // 2) ** 2).ravel().astype(np.float64)
    score = np.where(flat == peak, dist[np.newaxis, :], np.inf)
    idx = np.argmin(score, axis=1)
    return idx // m, idx % m


def gaussian_peak_offsets(
    center: np.ndarray,
    north: np.ndarray,
    south: np.ndarray,
    west: np.ndarray,
    east: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """Sub-pixel offsets from a Gaussian fit on log neighbour values.

    ``dy = (ln N - ln S) / (2 (ln N + ln S - 2 ln C))`` and the same for
    ``dx`` with west/east. Each value is floored at ``LOG_FLOOR`` before
    the log, so a non-positive neighbour on the far side of the peak still
    yields an offset toward the higher side. Axes with a vanishing
    denominator get offset 0 and offsets are clamped to ``[-1, 1]``.

    Returns
    -------
    dy, dx : np.ndarray
        Offsets to add to the integer peak row and column.
    """
    log_c = np.log(np.maximum(center, LOG_FLOOR))
    log_n = np.log(np.maximum(north, LOG_FLOOR))
    log_s = np.log(np.maximum(south, LOG_FLOOR))
    log_w = np.log(np.maximum(west, LOG_FLOOR))
    log_e = np.log(np.maximum(east, LOG_FLOOR))

    den_y = 2.0 * (log_n + log_s - 2.0 * log_c)
    den_x = 2.0 * (log_w + log_e - 2.0 * log_c)
    ok_y = np.abs(den_y) > DENOMINATOR_EPSILON
    ok_x = np.abs(den_x) > DENOMINATOR_EPSILON
    dy = np.where(ok_y, (log_n - log_s) / np.where(ok_y, den_y, 1.0), 0.0)
    dx = np.where(ok_x, (log_w - log_e) / np.where(ok_x, den_x, 1.0), 0.0)
    return np.clip(dy, -1.0, 1.0), np.clip(dx, -1.0, 1.0)


def parabolic_axis_offset(
    center: np.ndarray,
    before: np.ndarray,
    after: np.ndarray,
) -> np.ndarray:
    """Sub-pixel offset along one axis from a three-point parabola.

    ``(B - A) / (2 (B + A - 2 C))`` with ``B`` the neighbour before the
    peak and ``A`` the one after. Vanishing denominators give 0 and the
    offset is clamped to ``[-1, 1]``.
    """
    den = 2.0 * (before + after - 2.0 * center)
    ok = np.abs(den) > DENOMINATOR_EPSILON
    offset = np.where(ok, (before - after) / np.where(ok, den, 1.0), 0.0)
    return np.clip(offset, -1.0, 1.0)


def refine_peaks(
    surfaces: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Sub-pixel refinement of integer peaks, with integer fallback.

    See :func:`refine_from_neighbours`.

    Returns
    -------
    dy, dx : np.ndarray
        float64 offsets, shape ``(B,)``.
    refined : np.ndarray
        bool mask of peaks that were refined.
    """
    b, n, m = surfaces.shape
    batch = np.arange(b)
    r_n = np.clip(rows - 1, 0, n - 1)
    r_s = np.clip(rows + 1, 0, n - 1)
    c_w = np.clip(cols - 1, 0, m - 1)
    c_e = np.clip(cols + 1, 0, m - 1)
    neighbours = np.stack([
        surfaces[batch, rows, cols],
        surfaces[batch, r_n, cols],
        surfaces[batch, r_s, cols],
        surfaces[batch, rows, c_w],
        surfaces[batch, rows, c_e],
    ])
    return refine_from_neighbours(neighbours, rows, cols, n)


def refine_from_neighbours(
    neighbours: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray,
    size: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Sub-pixel refinement from gathered peak neighbourhoods.

    Each axis uses the log Gaussian fit when both of its neighbours reach
    ``GAUSSIAN_MIN_RATIO`` of the peak value, and a parabolic fit
    otherwise. Border peaks and non-positive peak values keep offset 0.

    Parameters
    ----------
    neighbours : np.ndarray
        ``(5, B)`` surface values at the peak and its north, south, west
        and east neighbours, with border indices clamped.
    rows, cols : np.ndarray
        Integer peak positions, shape ``(B,)``.
    size : int
        Surface edge length.

    Returns
    -------
    dy, dx : np.ndarray
        float64 offsets, shape ``(B,)``.
    refined : np.ndarray
        bool mask of peaks that were refined.
    """
    neighbours = np.asarray(neighbours, dtype=np.float64)
    rows = np.asarray(rows)
    cols = np.asarray(cols)
    b = rows.size
    inner = (rows > 0) & (rows < size - 1) & (cols > 0) & (cols < size - 1)
    refined = inner & (neighbours[0] > 0)

    dy = np.zeros(b, dtype=np.float64)
    dx = np.zeros(b, dtype=np.float64)
    if np.any(refined):
        c, n, s, w, e = neighbours[:, refined]
        floor = GAUSSIAN_MIN_RATIO * c
        gauss_y = (n >= floor) & (s >= floor)
        gauss_x = (w >= floor) & (e >= floor)
        g_dy, g_dx = gaussian_peak_offsets(c, n, s, w, e)
        dy[refined] = np.where(gauss_y, g_dy, parabolic_axis_offset(c, n, s))
        dx[refined] = np.where(gauss_x, g_dx, parabolic_axis_offset(c, w, e))
        parabolic = int(np.count_nonzero(~(gauss_y & gauss_x)))
        if parabolic:
            logger.debug(
                "%d of %d correlation peaks used a parabolic fit on at "
                "least one axis", parabolic, b,
            )
    degenerate = int(b - np.count_nonzero(refined))
    if degenerate:
        logger.debug(
            "%d of %d correlation peaks kept integer precision "
            "(border peak or non-positive peak value)", degenerate, b,
        )
    return dy, dx, refined


def peak_confidence(
    surfaces: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray,
) -> np.ndarray:
    """Peak sharpness in ``[0, 1]`` from the peak-to-sidelobe ratio.

    The sidelobe is the highest value outside the 3x3 block around the
    peak; ``psr = (peak - mean) / (sidelobe - mean)`` maps to
    ``1 - 1 / (1 + psr / 2)``.
    """
    b, n, m = surfaces.shape
    batch = np.arange(b)
    peak = surfaces[batch, rows, cols].astype(np.float64)
    mean = surfaces.reshape(b, -1).mean(axis=1)
    yy, xx = np.mgrid[0:n, 0:m]
    near = (
        (np.abs(yy[np.newaxis] - rows[:, np.newaxis, np.newaxis]) <= 1)
        & (np.abs(xx[np.newaxis] - cols[:, np.newaxis, np.newaxis]) <= 1)
    )
    sidelobe = np.where(near, -np.inf, surfaces).reshape(b, -1).max(axis=1)
    psr = (peak - mean) / (sidelobe - mean + 1e-10)
    return np.clip(1.0 - 1.0 / (1.0 + 0.5 * psr), 0.0, 1.0)


# ===================================================================
# PhaseCorrelator
# ===================================================================

@algorithm_version('1.0.0')
class PhaseCorrelator:
    """FFT phase correlation with Gaussian sub-pixel refinement.

    Stateless apart from the shared Hann window cache, so one instance can
    be used from many worker threads.

    Examples
    --------
    >>> correlator = PhaseCorrelator()
    >>> vec = correlator.correlate(ref_tile, target_tile)
    >>> vec.dx, vec.dy
    """

    @staticmethod
    def _check_tiles(reference: np.ndarray, target: np.ndarray) -> None:
        if reference.shape != target.shape:
            raise ValidationError(
                f"Tiles must have the same shape, got {reference.shape} "
                f"and {target.shape}"
            )
        if reference.ndim < 2 or reference.shape[-1] != reference.shape[-2]:
            raise ValidationError(
                f"Tiles must be square, got shape {reference.shape}"
            )
        if reference.shape[-1] < 3:
            raise ValidationError(
                f"Tiles must be at least 3x3, got {reference.shape[-1]}"
            )

    def correlate_batch(
        self,
        reference: np.ndarray,
        target: np.ndarray,
    ) -> np.ndarray:
        """Displacements of a stack of tile pairs.

        Parameters
        ----------
        reference, target : np.ndarray
            Tile stacks of shape ``(B, N, N)``.

        Returns
        -------
        np.ndarray
            ``(B, 2)`` float64 array of ``(dx, dy)``.
        """
        self._check_tiles(reference, target)
        surfaces = cross_power_surfaces(
            np.asarray(reference, dtype=np.float64),
            np.asarray(target, dtype=np.float64),
        )
        rows, cols = locate_peaks(surfaces)
        dy, dx, _ = refine_peaks(surfaces, rows, cols)
        half = reference.shape[-1] / 2.0
        return np.stack([half - (cols + dx), half - (rows + dy)], axis=1)

    def correlate(
        self,
        reference_tile: np.ndarray,
        target_tile: np.ndarray,
    ) -> DisplacementVector:
        """Displacement of ``target_tile`` relative to ``reference_tile``.

        Parameters
        ----------
        reference_tile, target_tile : np.ndarray
            Square tiles of equal size ``(N, N)``.

        Returns
        -------
        DisplacementVector
            ``(dx, dy)`` moving the target onto the reference.

        Raises
        ------
        ValidationError
            If the tiles differ in shape or are not square.
        """
        result = self.correlate_with_confidence(reference_tile, target_tile)
        return DisplacementVector(result.dx, result.dy)

    def correlate_with_confidence(
        self,
        reference_tile: np.ndarray,
        target_tile: np.ndarray,
    ) -> CorrelationResult:
        """Like :meth:`correlate`, also reporting peak confidence."""
        reference_tile = np.asarray(reference_tile, dtype=np.float64)
        target_tile = np.asarray(target_tile, dtype=np.float64)
        self._check_tiles(reference_tile, target_tile)
        surfaces = cross_power_surfaces(
            reference_tile[np.newaxis], target_tile[np.newaxis],
        )
        rows, cols = locate_peaks(surfaces)
        dy, dx, refined = refine_peaks(surfaces, rows, cols)
        confidence = peak_confidence(surfaces, rows, cols)
        half = reference_tile.shape[-1] / 2.0
        return CorrelationResult(
            dx=float(half - (cols[0] + dx[0])),
            dy=float(half - (rows[0] + dy[0])),
            confidence=float(confidence[0]),
            refined=bool(refined[0]),
        )


def correlate(
    reference_tile: np.ndarray,
    target_tile: np.ndarray,
) -> DisplacementVector:
    """Convenience wrapper around :meth:`PhaseCorrelator.correlate`."""
    return PhaseCorrelator().correlate(reference_tile, target_tile)
