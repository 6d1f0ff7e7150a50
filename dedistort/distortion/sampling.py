# -*- coding: utf-8 -*-
"""
Sampling Strategies - Where to measure local displacements.

A strategy picks tile centres (and tile sizes) on the reference image:

- ``GridSamplingStrategy`` lays tiles on a regular lattice with spacing
  ``step`` and drops tiles that fail the signal test.
- ``InterestPointSamplingStrategy`` places tiles on local maxima of the
  gradient magnitude, which is where phase correlation has texture to lock
  onto. With ``multiscale`` it adds a coarse layer (``2 * tile``) and a
  detail layer (``tile / 2``, floor 32) around the main layer.

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
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, NamedTuple, Tuple, Union

# Third-party
import numpy as np
from scipy import ndimage

# dedistort internal
from dedistort.exceptions import ValidationError
from dedistort.params import MIN_TILE_SIZE
from dedistort.signal.evaluator import SignalEvaluator
from dedistort.vocabulary import SamplingStrategyKind

logger = logging.getLogger(__name__)

# Candidates below this fraction of the strongest gradient are ignored.
GRADIENT_THRESHOLD_RATIO = 0.15

# Minimum centre spacing, as a fraction of the tile size.
MIN_SAMPLE_SPACING_RATIO = 0.5

# Upper bound on samples kept across all layers.
MAX_SAMPLES = 8192


class SamplePositions(NamedTuple):
    """Tile centres and sizes chosen by a strategy.

    Attributes
    ----------
    x, y : np.ndarray
        Tile centres in pixels (int64).
    sizes : np.ndarray
        Tile edge per sample (int64).
    """

    x: np.ndarray
    y: np.ndarray
    sizes: np.ndarray

    @property
    def count(self) -> int:
        return int(self.x.size)

    def corners(self) -> Tuple[np.ndarray, np.ndarray]:
        """Top-left corners ``(x - size // 2, y - size // 2)``."""
        half = self.sizes // 2
        return self.x - half, self.y - half

    def by_size(self) -> Iterator[Tuple[int, np.ndarray]]:
        """Yield ``(tile_size, indices)`` for each distinct tile size."""
        for size in np.unique(self.sizes):
            yield int(size), np.flatnonzero(self.sizes == size)

    @classmethod
    def empty(cls) -> 'SamplePositions':
        z = np.zeros(0, dtype=np.int64)
        return cls(z, z.copy(), z.copy())


class SamplingStrategy(ABC):
    """Chooses where tiles are correlated."""

    @abstractmethod
    def select_positions(
        self,
        reference: np.ndarray,
        tile_size: int,
        step: int,
        evaluator: SignalEvaluator,
        threshold: float,
    ) -> SamplePositions:
        """Tile centres for one grid build.

        Parameters
        ----------
        reference : np.ndarray
            Reference image.
        tile_size : int
            Main tile edge.
        step : int
            Grid node spacing.
        evaluator : SignalEvaluator
            Signal test for candidate tiles.
        threshold : float
            Signal cutoff.

        Returns
        -------
        SamplePositions
        """
        ...


class GridSamplingStrategy(SamplingStrategy):
    """Regular lattice of tiles at ``x, y in range(0, size - tile + 1, step)``.

    Tiles failing the signal test are dropped; their grid nodes stay
    unsampled and are resolved later by gap filling.
    """

    def select_positions(
        self,
        reference: np.ndarray,
        tile_size: int,
        step: int,
        evaluator: SignalEvaluator,
        threshold: float,
    ) -> SamplePositions:
        height, width = reference.shape
        xs = np.arange(0, width - tile_size + 1, step, dtype=np.int64)
        ys = np.arange(0, height - tile_size + 1, step, dtype=np.int64)
        if xs.size == 0 or ys.size == 0:
            return SamplePositions.empty()
        cy, cx = np.meshgrid(ys, xs, indexing='ij')
        cx = cx.ravel()
        cy = cy.ravel()
        keep = evaluator.passing_mask(cx, cy, tile_size, threshold)
        half = tile_size // 2
        logger.debug(
            "Grid sampling: %d of %d tiles of size %d pass the signal test",
            int(np.count_nonzero(keep)), keep.size, tile_size,
        )
        return SamplePositions(
            cx[keep] + half,
            cy[keep] + half,
            np.full(int(np.count_nonzero(keep)), tile_size, dtype=np.int64),
        )


class InterestPointSamplingStrategy(SamplingStrategy):
    """Tiles centred on gradient-magnitude local maxima.

    Parameters
    ----------
    multiscale : bool
        Add coarse (``2 * tile``) and detail (``tile / 2``) layers.
    max_samples : int
        Keep at most this many samples, strongest gradients first.
    """

    def __init__(self, multiscale: bool = True, max_samples: int = MAX_SAMPLES) -> None:
        self.multiscale = multiscale
        self.max_samples = max_samples

    @staticmethod
    def gradient_magnitude(image: np.ndarray) -> np.ndarray:
        """Sobel gradient magnitude."""
        image = np.asarray(image, dtype=np.float64)
        gx = ndimage.sobel(image, axis=1, mode='nearest')
        gy = ndimage.sobel(image, axis=0, mode='nearest')
        return np.hypot(gx, gy)

    def _layer(
        self,
        gradient: np.ndarray,
        tile_size: int,
        evaluator: SignalEvaluator,
        threshold: float,
        taken: List[Tuple[int, int]],
    ) -> List[Tuple[int, int, int, float]]:
        height, width = gradient.shape
        half = tile_size // 2
        if width - 2 * half <= 2 or height - 2 * half <= 2:
            return []
        spacing = int(tile_size * MIN_SAMPLE_SPACING_RATIO)

        interior = np.zeros(gradient.shape, dtype=bool)
        interior[max(half, 1):height - max(half, 1),
                 max(half, 1):width - max(half, 1)] = True
        peak = float(gradient[interior].max()) if np.any(interior) else 0.0
        if peak <= 0:
            return []

        footprint = np.ones((3, 3), dtype=bool)
        footprint[1, 1] = False
        neighbour_max = ndimage.maximum_filter(
            gradient, footprint=footprint, mode='nearest',
        )
        candidates = (
            interior
            & (gradient >= GRADIENT_THRESHOLD_RATIO * peak)
            & (gradient > neighbour_max)
        )
        cy, cx = np.nonzero(candidates)
        passing = evaluator.passing_mask(cx - half, cy - half, tile_size,
                                         threshold)
        cx, cy = cx[passing], cy[passing]
        scores = gradient[cy, cx]
        order = np.argsort(-scores, kind='stable')

        # Greedy non-maximum suppression on a bucket grid of ``spacing``.
        cell = max(spacing, 1)
        buckets: Dict[Tuple[int, int], List[Tuple[int, int]]] = {}
        for px, py in taken:
            buckets.setdefault((px // cell, py // cell), []).append((px, py))
        limit = spacing * spacing
        selected = []
        for i in order:
            px, py = int(cx[i]), int(cy[i])
            bx, by = px // cell, py // cell
            close = False
            for nx in (bx - 1, bx, bx + 1):
                for ny in (by - 1, by, by + 1):
                    for qx, qy in buckets.get((nx, ny), ()):
                        if (px - qx) ** 2 + (py - qy) ** 2 < limit:
                            close = True
                            break
                    if close:
                        break
                if close:
                    break
            if close:
                continue
            buckets.setdefault((bx, by), []).append((px, py))
            taken.append((px, py))
            selected.append((px, py, tile_size, float(scores[i])))

        logger.debug(
            "Interest layer %d: %d candidates, %d kept (spacing %d)",
            tile_size, cx.size, len(selected), spacing,
        )
        return selected

    def select_positions(
        self,
        reference: np.ndarray,
        tile_size: int,
        step: int,
        evaluator: SignalEvaluator,
        threshold: float,
    ) -> SamplePositions:
        gradient = self.gradient_magnitude(reference)
        if self.multiscale:
            sizes = [tile_size * 2, tile_size]
            small = max(MIN_TILE_SIZE, tile_size // 2)
            if small < tile_size:
                sizes.append(small)
        else:
            sizes = [tile_size]

        taken: List[Tuple[int, int]] = []
        points: List[Tuple[int, int, int, float]] = []
        for size in sizes:
            points.extend(
                self._layer(gradient, size, evaluator, threshold, taken)
            )

        if len(points) > self.max_samples:
            points.sort(key=lambda p: -p[3])
            points = points[:self.max_samples]
        if not points:
            return SamplePositions.empty()
        arr = np.asarray([p[:3] for p in points], dtype=np.int64)
        return SamplePositions(arr[:, 0], arr[:, 1], arr[:, 2])


def get_sampling_strategy(
    kind: Union[str, SamplingStrategyKind] = SamplingStrategyKind.GRID,
) -> SamplingStrategy:
    """Strategy instance for *kind* (``'grid'`` or ``'interest_points'``).

    Raises
    ------
    ValidationError
        If *kind* is unknown.
    """
    try:
        kind = SamplingStrategyKind(
            kind.value if isinstance(kind, SamplingStrategyKind) else kind
        )
    except ValueError:
        raise ValidationError(f"Unknown sampling strategy {kind!r}") from None
    if kind is SamplingStrategyKind.INTEREST_POINTS:
        return InterestPointSamplingStrategy()
    return GridSamplingStrategy()
