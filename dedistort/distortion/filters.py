# -*- coding: utf-8 -*-
"""
Distortion Grid Filters - Outlier rejection, gap filling and smoothing.

Operates on 2D node arrays ``(grid_height, grid_width)`` of a distortion
grid. Each stage is a plain function so it can be tested in isolation;
``DistortionGrid.filter_and_smooth`` runs them in order:

1. Global MAD rejection on displacement magnitude.
2. Local MAD rejection per component over a node neighbourhood.
3. Inverse-squared-distance gap filling of unsampled nodes.
4. Separable Gaussian smoothing with edge renormalization.

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
2026-03-05

Modified
--------
2026-03-12
"""

# Standard library
import math
from typing import Tuple

# Third-party
import numpy as np
from scipy.ndimage import correlate1d

# Scales a MAD to a Gaussian standard deviation.
MAD_SCALE = 1.4826

# Smallest scaled MAD; keeps near-uniform fields from flagging noise.
MAD_FLOOR = 0.1

DEFAULT_MAD_THRESHOLD = 3.0
DEFAULT_HALF_WINDOW = 2
DEFAULT_SEARCH_RADIUS = 3
MIN_LOCAL_NEIGHBOURS = 3


def scaled_mad(values: np.ndarray, median: float) -> float:
    """``max(MAD_FLOOR, 1.4826 * median(|values - median|))``."""
    if values.size == 0:
        return MAD_FLOOR
    return max(MAD_FLOOR, MAD_SCALE * float(np.median(np.abs(values - median))))


def reject_global_outliers(
    dx: np.ndarray,
    dy: np.ndarray,
    sampled: np.ndarray,
    threshold: float = DEFAULT_MAD_THRESHOLD,
) -> np.ndarray:
    """Sampled nodes whose magnitude is far from the global median.

    Parameters
    ----------
    dx, dy : np.ndarray
        Node displacements.
    sampled : np.ndarray
        bool mask of measured nodes.
    threshold : float
        Rejection distance in scaled MADs.

    Returns
    -------
    np.ndarray
        bool mask of outliers (a subset of ``sampled``).
    """
    outliers = np.zeros(sampled.shape, dtype=bool)
    if np.count_nonzero(sampled) < MIN_LOCAL_NEIGHBOURS:
        return outliers
    magnitude = np.hypot(dx, dy)
    values = magnitude[sampled]
    median = float(np.median(values))
    mad = scaled_mad(values, median)
    outliers[sampled] = np.abs(values - median) > threshold * mad
    return outliers


def _neighbourhood(
    values: np.ndarray,
    half_window: int,
) -> np.ndarray:
    """Stack of shifted copies over a square window, centre excluded.

    Out-of-grid positions hold NaN. Shape ``(K, H, W)`` with
    ``K = (2 * half_window + 1) ** 2 - 1``.
    """
    h, w = values.shape
    padded = np.full((h + 2 * half_window, w + 2 * half_window), np.nan)
    padded[half_window:half_window + h, half_window:half_window + w] = values
    layers = []
    for oy in range(-half_window, half_window + 1):
        for ox in range(-half_window, half_window + 1):
            if oy == 0 and ox == 0:
                continue
            layers.append(padded[
                half_window + oy:half_window + oy + h,
                half_window + ox:half_window + ox + w,
            ])
    return np.stack(layers)


def reject_local_outliers(
    dx: np.ndarray,
    dy: np.ndarray,
    sampled: np.ndarray,
    half_window: int = DEFAULT_HALF_WINDOW,
    threshold: float = DEFAULT_MAD_THRESHOLD,
) -> np.ndarray:
    """Sampled nodes that disagree with their sampled neighbours.

    For every sampled node with at least ``MIN_LOCAL_NEIGHBOURS`` sampled
    neighbours in the ``(2*half_window+1)^2`` window, the median and scaled
    MAD of each component are computed over the neighbours; the node is
    an outlier when either component deviates by more than
    ``threshold * MAD``.

    Returns
    -------
    np.ndarray
        bool mask of local outliers.
    """
    masked_dx = np.where(sampled, dx, np.nan)
    masked_dy = np.where(sampled, dy, np.nan)
    outliers = np.zeros(sampled.shape, dtype=bool)

    for component, masked in ((dx, masked_dx), (dy, masked_dy)):
        stack = _neighbourhood(masked, half_window)
        count = np.count_nonzero(~np.isnan(stack), axis=0)
        usable = sampled & (count >= MIN_LOCAL_NEIGHBOURS)
        if not np.any(usable):
            continue
        local = stack[:, usable]
        median = np.nanmedian(local, axis=0)
        mad = np.maximum(
            MAD_FLOOR,
            MAD_SCALE * np.nanmedian(np.abs(local - median), axis=0),
        )
        flagged = np.abs(component[usable] - median) > threshold * mad
        outliers[usable] |= flagged

    return outliers


def fill_gaps(
    dx: np.ndarray,
    dy: np.ndarray,
    sampled: np.ndarray,
    radius: int = DEFAULT_SEARCH_RADIUS,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Fill unsampled nodes from sampled nodes within *radius* cells.

    Each unsampled node becomes the inverse-squared-distance weighted mean
    of sampled nodes at Euclidean distance ``<= radius``. Sampled nodes
    are unchanged. The result is a convex combination of the neighbours.

    Returns
    -------
    dx, dy : np.ndarray
        Filled arrays (new arrays).
    uninterpolated : np.ndarray
        bool mask of unsampled nodes without any sampled neighbour; these
        are set to zero displacement.
    """
    h, w = sampled.shape
    r = int(radius)
    weight_sum = np.zeros((h, w))
    acc_dx = np.zeros((h, w))
    acc_dy = np.zeros((h, w))

    pad_s = np.zeros((h + 2 * r, w + 2 * r))
    pad_s[r:r + h, r:r + w] = sampled
    pad_dx = np.zeros_like(pad_s)
    pad_dx[r:r + h, r:r + w] = np.where(sampled, dx, 0.0)
    pad_dy = np.zeros_like(pad_s)
    pad_dy[r:r + h, r:r + w] = np.where(sampled, dy, 0.0)

    for oy in range(-r, r + 1):
        for ox in range(-r, r + 1):
            d2 = oy * oy + ox * ox
            if d2 == 0 or d2 > r * r:
                continue
            window = (slice(r + oy, r + oy + h), slice(r + ox, r + ox + w))
            wgt = pad_s[window] / d2
            weight_sum += wgt
            acc_dx += wgt * pad_dx[window]
            acc_dy += wgt * pad_dy[window]

    missing = ~sampled
    has_support = weight_sum > 0
    fill = missing & has_support
    out_dx = np.where(sampled, dx, 0.0).astype(np.float64)
    out_dy = np.where(sampled, dy, 0.0).astype(np.float64)
    out_dx[fill] = acc_dx[fill] / weight_sum[fill]
    out_dy[fill] = acc_dy[fill] / weight_sum[fill]
    return out_dx, out_dy, missing & ~has_support


def gaussian_kernel_1d(sigma: float) -> np.ndarray:
    """Unnormalized Gaussian taps over radius ``ceil(3 * sigma)``."""
    radius = int(math.ceil(3.0 * sigma))
    k = np.arange(-radius, radius + 1, dtype=np.float64)
    return np.exp(-(k * k) / (2.0 * sigma * sigma))


def gaussian_smooth(
    dx: np.ndarray,
    dy: np.ndarray,
    sigma: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Separable Gaussian smoothing, rows first, then columns.

    Taps falling outside the grid are dropped and the remaining weights
    renormalized, so a constant field is left unchanged up to the edges.
    ``sigma <= 0`` returns copies of the input.
    """
    if sigma <= 0:
        return dx.astype(np.float64), dy.astype(np.float64)
    kernel = gaussian_kernel_1d(sigma)
    ones = np.ones(dx.shape)

    def _pass(values: np.ndarray, axis: int) -> np.ndarray:
        num = correlate1d(values, kernel, axis=axis, mode='constant', cval=0.0)
        den = correlate1d(ones, kernel, axis=axis, mode='constant', cval=0.0)
        return num / den

    out = []
    for values in (dx, dy):
        values = values.astype(np.float64)
        out.append(_pass(_pass(values, axis=1), axis=0))
    return out[0], out[1]
