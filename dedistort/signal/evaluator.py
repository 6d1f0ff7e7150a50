# -*- coding: utf-8 -*-
"""
Signal Evaluator - Decide whether a tile carries enough signal to correlate.

Tiles over sky background or outside the imaged disk hold little more than
noise; correlating them injects garbage samples into the distortion grid.
The evaluator rejects a tile whose mean intensity does not exceed a cutoff.

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
2026-03-08
"""

# Standard library
from typing import Optional

# Third-party
import numpy as np

# dedistort internal
from dedistort.signal.integral import IntegralImage


class SignalEvaluator:
    """Mean-intensity test over tiles of one or two images.

    Parameters
    ----------
    reference : np.ndarray or IntegralImage
        Reference image, or its prebuilt integral image.
    target : np.ndarray or IntegralImage, optional
        Second image. When given, a tile passes only if it passes in both
        images; consensus mode uses this symmetric check.
    """

    def __init__(self, reference, target=None) -> None:
        self.reference = self._integral(reference)
        self.target: Optional[IntegralImage] = (
            None if target is None else self._integral(target)
        )

    @staticmethod
    def _integral(image) -> IntegralImage:
        if isinstance(image, IntegralImage):
            return image
        return IntegralImage(image)

    def passes_threshold(
        self,
        x: int,
        y: int,
        w: int,
        h: int,
        threshold: float,
    ) -> bool:
        """Whether the rectangle's mean exceeds *threshold*.

        Parameters
        ----------
        x, y : int
            Top-left corner.
        w, h : int
            Rectangle size.
        threshold : float
            Strict lower bound on the mean intensity.

        Returns
        -------
        bool
        """
        if not self.reference.area_average(x, y, w, h) > threshold:
            return False
        if self.target is not None:
            return self.target.area_average(x, y, w, h) > threshold
        return True

    def passing_mask(
        self,
        xs: np.ndarray,
        ys: np.ndarray,
        size: int,
        threshold: float,
    ) -> np.ndarray:
        """Vectorized :meth:`passes_threshold` over square tiles."""
        mask = self.reference.area_averages(xs, ys, size) > threshold
        if self.target is not None:
            mask &= self.target.area_averages(xs, ys, size) > threshold
        return mask
