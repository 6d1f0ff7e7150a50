# -*- coding: utf-8 -*-
"""
Local Distortion Co-Registration - Public entry points.

``LocalDistortionCoRegistration`` aligns a target to a reference through a
dense, spatially varying displacement field built from tile-wise phase
correlation, optionally over several refinement levels.
``ConsensusCoRegistration`` aligns a set of images to their common
consensus frame without a designated reference.

Both validate their inputs and parameters before any computation and pick
the execution path (device or CPU) per call.

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
2026-03-11

Modified
--------
2026-03-13
"""

# Standard library
import logging
from typing import Any, Optional, Sequence

# Third-party
import numpy as np

# dedistort internal
from dedistort.backends.coordinator import BackendCoordinator
from dedistort.backends.device import ComputeDevice
from dedistort.context import RegistrationContext, ensure_context
from dedistort.coregistration.base import (
    CoRegistration,
    ConsensusResult,
    RegistrationResult,
)
from dedistort.coregistration.consensus import ConsensusReferenceBuilder
from dedistort.coregistration.refinement import IterativeRefiner
from dedistort.distortion.grid import DistortionGrid
from dedistort.exceptions import ValidationError
from dedistort.image import as_image, check_same_shape
from dedistort.params import RegistrationParameters
from dedistort.warp import Warper

logger = logging.getLogger(__name__)


def _resolve_params(
    params: Optional[RegistrationParameters],
    overrides: Any,
) -> RegistrationParameters:
    params = params if params is not None else RegistrationParameters()
    if overrides:
        params = params.with_overrides(**overrides)
    return params


class LocalDistortionCoRegistration(CoRegistration):
    """Registration of a target onto a reference by local distortion.

    Parameters
    ----------
    params : RegistrationParameters, optional
        Configuration. Defaults are used when omitted.
    device : ComputeDevice, optional
        Device for the device path, instead of a ``TorchDevice`` built
        from ``params.device``.
    **overrides
        Parameter values replacing those of *params*.

    Examples
    --------
    >>> reg = LocalDistortionCoRegistration(tile_size=64, refine=True)
    >>> result = reg.estimate(reference, target)
    >>> result.corrected, result.state
    """

    def __init__(
        self,
        params: Optional[RegistrationParameters] = None,
        device: Optional[ComputeDevice] = None,
        **overrides: Any,
    ) -> None:
        self.params = _resolve_params(params, overrides)
        self.device = device

    def estimate(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        context: Optional[RegistrationContext] = None,
    ) -> RegistrationResult:
        reference = as_image(reference, 'reference')
        target = as_image(target, 'target')
        height, width = check_same_shape([reference, target])
        self.params.validate_images(width, height)
        context = ensure_context(context)

        logger.debug(
            "Registering %dx%d target with %r", width, height, self.params,
        )
        with BackendCoordinator(self.params, self.device) as coordinator:
            refiner = IterativeRefiner(self.params, coordinator)
            return refiner.run(reference, target, context)

    def register(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        context: Optional[RegistrationContext] = None,
    ) -> np.ndarray:
        """Corrected target only; see :meth:`estimate`."""
        return self.estimate(reference, target, context).corrected

    def apply(
        self,
        image: np.ndarray,
        result: RegistrationResult,
    ) -> np.ndarray:
        return Warper(self.params.interpolation).warp(image, result.grid)


class ConsensusCoRegistration:
    """Reference-free registration of an image set.

    Parameters
    ----------
    params : RegistrationParameters, optional
        Configuration; ``consensus_iterations`` sets the number of passes.
    device : ComputeDevice, optional
        Device for the device path.
    **overrides
        Parameter values replacing those of *params*.

    Examples
    --------
    >>> result = ConsensusCoRegistration(tile_size=64).register(frames)
    >>> stacked = np.mean(result.corrected, axis=0)
    """

    def __init__(
        self,
        params: Optional[RegistrationParameters] = None,
        device: Optional[ComputeDevice] = None,
        **overrides: Any,
    ) -> None:
        self.params = _resolve_params(params, overrides)
        self.device = device

    def register(
        self,
        images: Sequence[np.ndarray],
        context: Optional[RegistrationContext] = None,
    ) -> ConsensusResult:
        """Correct every image toward the consensus frame.

        Parameters
        ----------
        images : sequence of np.ndarray
            Two-dimensional images of identical shape.
        context : RegistrationContext, optional
            Cancellation and progress.

        Returns
        -------
        ConsensusResult

        Raises
        ------
        ValidationError
            If *images* is empty, shapes differ, or no tile fits.
        """
        if len(images) == 0:
            raise ValidationError("Consensus registration needs at least one image")
        images = [as_image(image, f'images[{i}]') for i, image in enumerate(images)]
        height, width = check_same_shape(images)
        self.params.validate_images(width, height)
        context = ensure_context(context)

        with BackendCoordinator(self.params, self.device) as coordinator:
            builder = ConsensusReferenceBuilder(self.params, coordinator)
            return builder.run(images, context)

    def apply(self, image: np.ndarray, correction: DistortionGrid) -> np.ndarray:
        """Warp *image* with one of the ``ConsensusResult.corrections``."""
        return Warper(self.params.interpolation).warp(image, correction)
