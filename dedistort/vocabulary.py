# -*- coding: utf-8 -*-
"""
Vocabulary - Canonical enums for the dedistort engine.

Single source of truth for the controlled vocabularies used across the
package: resampling kernels, refinement states, backend kinds, sampling
strategies and scattered-field interpolation methods. Parameters accept
either the enum member or its string value.

Author
------
Steven Siebert

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
2026-03-11
"""

from enum import Enum


class InterpolationMethod(Enum):
    """Resampling kernel used when warping an image through a grid.

    ``BICUBIC`` is the CPU default. All three kernels are implemented by
    every backend so that results agree regardless of where they ran.
    """

    BICUBIC = "bicubic"
    LANCZOS = "lanczos"
    BILINEAR = "bilinear"


class RefinementState(Enum):
    """States of the iterative refinement loop."""

    INIT = "init"
    LEVEL = "level"
    CONVERGED = "converged"
    MAX_ITER = "max_iter"
    DIVERGED = "diverged"

    @property
    def is_terminal(self) -> bool:
        """Whether the refinement loop stops in this state."""
        return self in (
            RefinementState.CONVERGED,
            RefinementState.MAX_ITER,
            RefinementState.DIVERGED,
        )


class BackendKind(Enum):
    """Execution path that produced a result."""

    CPU = "cpu"
    GPU = "gpu"


class SamplingStrategyKind(Enum):
    """How tile positions are chosen when measuring a distortion field."""

    GRID = "grid"
    INTEREST_POINTS = "interest_points"


class SparseInterpolationMethod(Enum):
    """Weighting used to query a scattered displacement field."""

    IDW = "idw"
    GAUSSIAN_RBF = "gaussian_rbf"
    THIN_PLATE = "thin_plate"
