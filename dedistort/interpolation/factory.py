# -*- coding: utf-8 -*-
"""
Resampler Factory - Map interpolation method names to resampler instances.

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
2026-03-03
"""

# Standard library
from typing import Union

# dedistort internal
from dedistort.exceptions import ValidationError
from dedistort.interpolation.base import KernelResampler
from dedistort.interpolation.bicubic import BicubicResampler
from dedistort.interpolation.bilinear import BilinearResampler
from dedistort.interpolation.lanczos import LanczosResampler
from dedistort.vocabulary import InterpolationMethod


def interpolation_method(
    method: Union[str, InterpolationMethod],
) -> InterpolationMethod:
    """Normalize *method* to an ``InterpolationMethod`` member.

    Raises
    ------
    ValidationError
        If *method* names no known kernel.
    """
    if isinstance(method, InterpolationMethod):
        return method
    try:
        return InterpolationMethod(str(method).lower())
    except ValueError:
        valid = ', '.join(m.value for m in InterpolationMethod)
        raise ValidationError(
            f"Unknown interpolation method {method!r}; expected one of {valid}"
        ) from None


def get_resampler(
    method: Union[str, InterpolationMethod] = InterpolationMethod.BICUBIC,
) -> KernelResampler:
    """Create the resampler for *method*.

    Parameters
    ----------
    method : str or InterpolationMethod
        ``'bicubic'``, ``'lanczos'`` or ``'bilinear'``.

    Returns
    -------
    KernelResampler
    """
    method = interpolation_method(method)
    if method is InterpolationMethod.LANCZOS:
        return LanczosResampler(a=3)
    if method is InterpolationMethod.BILINEAR:
        return BilinearResampler()
    return BicubicResampler()
