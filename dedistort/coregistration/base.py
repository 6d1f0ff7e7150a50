# -*- coding: utf-8 -*-
"""
Co-Registration Base Classes - Abstract interface and result types.

Defines the ``CoRegistration`` ABC and the result objects produced by
local-distortion registration. Registration estimates a per-pixel
sampling offset field (a ``DistortionGrid``) that, applied to the target,
aligns it with the reference.

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
from abc import ABC, abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

# Third-party
import numpy as np

# dedistort internal
from dedistort.context import RegistrationContext
from dedistort.distortion.grid import DistortionGrid, FilterReport
from dedistort.vocabulary import BackendKind, RefinementState


class RefinementLevel(NamedTuple):
    """One level of iterative refinement.

    Attributes
    ----------
    index : int
        Zero-based level number.
    tile_size : int
        Tile edge used at this level.
    grid : DistortionGrid
        Residual distortion measured on the partially corrected target.
    total_distortion : float
        ``grid.total_distortion()``.
    mean_distortion : float
        ``grid.mean_distortion()``, the value compared between levels.
    report : FilterReport
        Filter pipeline counts of this level.
    backend : BackendKind
        Backend that built the grid.
    kept : bool
        False for a diverging level that was discarded.
    """

    index: int
    tile_size: int
    grid: DistortionGrid
    total_distortion: float
    mean_distortion: float
    report: FilterReport
    backend: BackendKind
    kept: bool = True


class RegistrationResult:
    """Result of a local-distortion registration.

    Parameters
    ----------
    corrected : np.ndarray
        Target warped onto the reference.
    grid : DistortionGrid
        Combined sampling offsets of all kept levels.
    levels : list of RefinementLevel
        Per-level trace, including a discarded diverging level.
    state : RefinementState
        Terminal refinement state.
    gpu_fallback : bool
        The device path was requested but some stage ran on the CPU.
    backend : BackendKind
        GPU when any stage completed on the device.
    metadata : Dict[str, Any], optional
        Extra diagnostics.

    Attributes
    ----------
    total_distortion_before : float
        Distortion measured at the first level, on the uncorrected target.
    total_distortion_after : float
        Total distortion of the level with the smallest mean residual.
    """

    def __init__(
        self,
        corrected: np.ndarray,
        grid: DistortionGrid,
        levels: List[RefinementLevel],
        state: RefinementState,
        gpu_fallback: bool = False,
        backend: BackendKind = BackendKind.CPU,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.corrected = corrected
        self.grid = grid
        self.levels = levels
        self.state = state
        self.gpu_fallback = gpu_fallback
        self.backend = backend
        self.metadata = metadata or {}
        if levels:
            best = min(levels, key=lambda level: level.mean_distortion)
            self.total_distortion_before = levels[0].total_distortion
            self.total_distortion_after = best.total_distortion
        else:
            self.total_distortion_before = 0.0
            self.total_distortion_after = 0.0

    @property
    def converged(self) -> bool:
        """Whether refinement stopped on the convergence criterion."""
        return self.state is RefinementState.CONVERGED

    @property
    def early_stopped(self) -> bool:
        """Whether a diverging level was discarded."""
        return self.state is RefinementState.DIVERGED

    @property
    def kept_levels(self) -> List[RefinementLevel]:
        """Levels whose grids make up :attr:`grid`."""
        return [level for level in self.levels if level.kept]

    @property
    def distortion_trace(self) -> List[float]:
        """Total distortion of every evaluated level, in order."""
        return [level.total_distortion for level in self.levels]

    @property
    def mean_distortion_trace(self) -> List[float]:
        """Mean per-node distortion of every evaluated level, in order."""
        return [level.mean_distortion for level in self.levels]

    @property
    def grids(self) -> List[DistortionGrid]:
        """Grids of the kept levels."""
        return [level.grid for level in self.kept_levels]

    def __repr__(self) -> str:
        return (
            f"RegistrationResult({self.state.value}, "
            f"levels={len(self.levels)}, "
            f"distortion={self.total_distortion_before:.3f}"
            f"->{self.total_distortion_after:.3f}, "
            f"backend={self.backend.value}"
            f"{', gpu_fallback' if self.gpu_fallback else ''})"
        )


class ConsensusResult:
    """Result of consensus registration of an image set.

    Parameters
    ----------
    corrected : list of np.ndarray
        Every input warped toward the consensus frame, in input order.
    corrections : list of DistortionGrid
        Accumulated correction grid of each image.
    pair_maps : Dict[Tuple[int, int], DistortionGrid]
        Pairwise maps of the last evaluated pass, keyed ``(i, j)``. Both
        directions are present for every measured pair.
    diagnostics : Dict[str, Any], optional
        ``passes``, ``pass_distortions``, ``early_stopped``,
        ``comparisons``, ``gpu_fallback`` and ``backend``.
    """

    def __init__(
        self,
        corrected: List[np.ndarray],
        corrections: List[DistortionGrid],
        pair_maps: Dict[Tuple[int, int], DistortionGrid],
        diagnostics: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.corrected = corrected
        self.corrections = corrections
        self.pair_maps = pair_maps
        self.diagnostics = diagnostics or {}

    @property
    def image_count(self) -> int:
        return len(self.corrected)

    @property
    def gpu_fallback(self) -> bool:
        return bool(self.diagnostics.get('gpu_fallback', False))

    def __repr__(self) -> str:
        return (
            f"ConsensusResult(images={self.image_count}, "
            f"pairs={len(self.pair_maps) // 2}, "
            f"passes={self.diagnostics.get('passes', 0)})"
        )


class CoRegistration(ABC):
    """Abstract base class for reference-based co-registration.

    Estimation (``estimate``) is separate from application (``apply``), so
    a field measured on one band can be applied to others.
    """

    @abstractmethod
    def estimate(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        context: Optional[RegistrationContext] = None,
    ) -> RegistrationResult:
        """Measure the distortion of *target* relative to *reference*.

        Parameters
        ----------
        reference : np.ndarray
            Reference image, shape ``(rows, cols)``.
        target : np.ndarray
            Image to align, same shape.
        context : RegistrationContext, optional
            Cancellation and progress.

        Returns
        -------
        RegistrationResult

        Raises
        ------
        ValidationError
            If the images or parameters are unusable.
        CancelledError
            If the context was cancelled.
        """
        ...

    @abstractmethod
    def apply(
        self,
        image: np.ndarray,
        result: RegistrationResult,
    ) -> np.ndarray:
        """Warp *image* with the field of a previous ``estimate`` call.

        Parameters
        ----------
        image : np.ndarray
            Image of the registered size.
        result : RegistrationResult

        Returns
        -------
        np.ndarray
            Corrected copy of *image*.
        """
        ...
