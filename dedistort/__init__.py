# -*- coding: utf-8 -*-
"""
dedistort - Local distortion registration and correction.

Aligns 2D image frames that differ by small, spatially varying geometric
distortions (atmospheric turbulence, optical flexure) before stacking.
Tile-wise FFT phase correlation feeds a filtered distortion grid, which is
refined over several tile sizes and applied with a single resampling.
Image sets can be aligned to their consensus frame, and the heavy stages
can run on a torch device with transparent CPU fallback.

Dependencies
------------
numpy
scipy
torch (optional, for the device path)

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
2026-03-13
"""

__version__ = "0.1.0"
__author__ = "Duane Smalley"

from dedistort.exceptions import (
    DedistortError,
    ValidationError,
    ProcessorError,
    DependencyError,
    DeviceError,
    CancelledError,
)
from dedistort.vocabulary import (
    BackendKind,
    InterpolationMethod,
    RefinementState,
    SamplingStrategyKind,
    SparseInterpolationMethod,
)
from dedistort.params import RegistrationParameters
from dedistort.context import RegistrationContext
from dedistort.image import DisplacementVector
from dedistort.signal import IntegralImage, SignalEvaluator
from dedistort.correlation import PhaseCorrelator, correlate
from dedistort.distortion import DistortionGrid, SparseDistortionField
from dedistort.warp import Warper, apply_distortion_maps, warp_image
from dedistort.diagnostics import displacement_panels
from dedistort.coregistration import (
    CoRegistration,
    ConsensusCoRegistration,
    ConsensusResult,
    LocalDistortionCoRegistration,
    RegistrationResult,
)

__all__ = [
    'DedistortError',
    'ValidationError',
    'ProcessorError',
    'DependencyError',
    'DeviceError',
    'CancelledError',
    'BackendKind',
    'InterpolationMethod',
    'RefinementState',
    'SamplingStrategyKind',
    'SparseInterpolationMethod',
    'RegistrationParameters',
    'RegistrationContext',
    'DisplacementVector',
    'IntegralImage',
    'SignalEvaluator',
    'PhaseCorrelator',
    'correlate',
    'DistortionGrid',
    'SparseDistortionField',
    'Warper',
    'apply_distortion_maps',
    'warp_image',
    'displacement_panels',
    'CoRegistration',
    'ConsensusCoRegistration',
    'ConsensusResult',
    'LocalDistortionCoRegistration',
    'RegistrationResult',
]
