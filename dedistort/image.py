# -*- coding: utf-8 -*-
"""
Image Values - Validation of in-memory image buffers and displacement vectors.

Images are plain 2D ``numpy.ndarray`` buffers indexed ``[row, col]``
(``[y, x]``). The engine never writes into caller arrays.

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
2026-03-02

Modified
--------
2026-03-06
"""

# Standard library
from typing import NamedTuple, Sequence, Tuple

# Third-party
import numpy as np

# dedistort internal
from dedistort.exceptions import ValidationError


class DisplacementVector(NamedTuple):
    """Sub-pixel displacement ``(dx, dy)`` in pixels."""

    dx: float
    dy: float

    @property
    def magnitude(self) -> float:
        """Euclidean length of the vector."""
        return float(np.hypot(self.dx, self.dy))

    def __neg__(self) -> 'DisplacementVector':
        return DisplacementVector(-self.dx, -self.dy)


def as_image(image: np.ndarray, name: str = 'image') -> np.ndarray:
    """Validate *image* and return it as a 2D float array.

    The returned array shares memory with the input when it already has a
    floating-point dtype.

    Parameters
    ----------
    image : np.ndarray
        2D array of real samples, shape ``(height, width)``.
    name : str
        Name used in error messages.

    Returns
    -------
    np.ndarray
        2D ``float32`` or ``float64`` array.

    Raises
    ------
    ValidationError
        If *image* is not a non-empty 2D real array.
    """
    if not isinstance(image, np.ndarray):
        raise ValidationError(
            f"{name} must be a numpy ndarray, got {type(image).__name__}"
        )
    if image.ndim != 2:
        raise ValidationError(
            f"{name} must be 2D (height, width), got shape {image.shape}"
        )
    if image.size == 0:
        raise ValidationError(f"{name} must not be empty")
    if np.iscomplexobj(image):
        raise ValidationError(f"{name} must be real-valued")
    if not np.issubdtype(image.dtype, np.floating):
        image = image.astype(np.float32)
    return image


def check_same_shape(images: Sequence[np.ndarray]) -> Tuple[int, int]:
    """Return the common ``(height, width)`` of *images*.

    Raises
    ------
    ValidationError
        If the images differ in shape.
    """
    shape = images[0].shape
    for i, img in enumerate(images[1:], start=1):
        if img.shape != shape:
            raise ValidationError(
                f"Image shapes differ: image 0 is {shape}, "
                f"image {i} is {img.shape}"
            )
    return shape
