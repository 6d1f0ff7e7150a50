# -*- coding: utf-8 -*-
"""
Warper - Resample a target image through a distortion grid.

The corrected image at ``(x, y)`` is the target sampled at
``(x + dx, y + dy)``, where ``(dx, dy)`` is the grid's bicubic
displacement at that pixel. Sample coordinates are clamped to the image,
so anything pulled from outside repeats the nearest edge pixel.

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
2026-03-12
"""

# Standard library
import logging
from typing import Sequence, Tuple, Union

# Third-party
import numpy as np

# dedistort internal
from dedistort.distortion.grid import DistortionGrid
from dedistort.exceptions import ValidationError
from dedistort.image import as_image
from dedistort.interpolation import get_resampler, interpolation_method
from dedistort.vocabulary import InterpolationMethod

logger = logging.getLogger(__name__)


def sample_coordinates(
    grid: DistortionGrid,
) -> Tuple[np.ndarray, np.ndarray]:
    """Clamped source coordinates ``(x + dx, y + dy)`` for every pixel."""
    dx, dy = grid.dense_field()
    yy, xx = np.mgrid[0:grid.height, 0:grid.width]
    sx = np.clip(xx + dx, 0.0, grid.width - 1.0)
    sy = np.clip(yy + dy, 0.0, grid.height - 1.0)
    return sx, sy


class Warper:
    """CPU image warper.

    Parameters
    ----------
    interpolation : str or InterpolationMethod
        ``'bicubic'`` (default), ``'lanczos'`` or ``'bilinear'``.

    Examples
    --------
    >>> corrected = Warper().warp(target, grid)
    """

    def __init__(
        self,
        interpolation: Union[str, InterpolationMethod] = (
            InterpolationMethod.BICUBIC
        ),
    ) -> None:
        self.interpolation = interpolation_method(interpolation)
        self._resampler = get_resampler(self.interpolation)

    def warp(self, target: np.ndarray, grid: DistortionGrid) -> np.ndarray:
        """Corrected copy of *target*.

        Parameters
        ----------
        target : np.ndarray
            2D image, same size as the grid's image.
        grid : DistortionGrid
            Sampling offsets.

        Returns
        -------
        np.ndarray
            New array with the dtype of *target* (float32 for integer
            input).

        Raises
        ------
        ValidationError
            If the image and grid sizes differ.
        """
        target = as_image(target, 'target')
        if target.shape != (grid.height, grid.width):
            raise ValidationError(
                f"Image shape {target.shape} does not match grid image size "
                f"{(grid.height, grid.width)}"
            )
        sx, sy = sample_coordinates(grid)
        out = self._resampler(target, sx, sy)
        return out.astype(target.dtype, copy=False)


def warp_image(
    target: np.ndarray,
    grid: DistortionGrid,
    interpolation: Union[str, InterpolationMethod] = InterpolationMethod.BICUBIC,
) -> np.ndarray:
    """Functional form of :meth:`Warper.warp`."""
    return Warper(interpolation).warp(target, grid)


def apply_distortion_maps(
    image: np.ndarray,
    grids: Sequence[DistortionGrid],
    interpolation: Union[str, InterpolationMethod] = InterpolationMethod.BICUBIC,
) -> np.ndarray:
    """Apply previously computed grids to an image in a single resampling.

    The grids are summed on the finest step among them (as refinement
    levels are) and the image is warped once.

    Parameters
    ----------
    image : np.ndarray
        2D image matching the grids' image size.
    grids : sequence of DistortionGrid
        Correction fields, e.g. ``RegistrationResult.levels`` grids or a
        consensus correction.
    interpolation : str or InterpolationMethod
        Warp kernel.

    Returns
    -------
    np.ndarray
    """
    image = as_image(image)
    if not grids:
        return image.copy()
    combined = DistortionGrid.synthesize(list(grids))
    logger.debug("Applying %d distortion maps as %r", len(grids), combined)
    return Warper(interpolation).warp(image, combined)
