# -*- coding: utf-8 -*-
"""
Registration Backend Base - Abstract interface of an execution backend.

A backend builds distortion grids and warps images. The grid build is a
fixed sequence of stages, implemented once here:

1. signal evaluator over reference (and target, in symmetric mode),
2. tile placement by the configured sampling strategy,
3. per-tile displacement measurement (backend specific),
4. shared grid assembly, outlier rejection, gap filling and smoothing.

Backends only provide stage 3 and the warp, so two backends fed the same
measurements produce the same grid.

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
2026-03-10

Modified
--------
2026-03-13
"""

# Standard library
import logging
from abc import ABC, abstractmethod
from typing import NamedTuple

# Third-party
import numpy as np

# dedistort internal
from dedistort.context import RegistrationContext
from dedistort.distortion.builder import assemble_grid
from dedistort.distortion.grid import DistortionGrid, FilterReport
from dedistort.distortion.sampling import SamplePositions, get_sampling_strategy
from dedistort.params import RegistrationParameters
from dedistort.signal.evaluator import SignalEvaluator
from dedistort.vocabulary import BackendKind, SamplingStrategyKind

logger = logging.getLogger(__name__)


class GridBuild(NamedTuple):
    """Output of one grid build.

    Attributes
    ----------
    grid : DistortionGrid
        Filtered and smoothed sampling offsets.
    report : FilterReport
        Node counts of each filter stage.
    positions : SamplePositions
        Tile centres that were measured.
    backend : BackendKind
        Backend that measured the tiles.
    """

    grid: DistortionGrid
    report: FilterReport
    positions: SamplePositions
    backend: BackendKind


class RegistrationBackend(ABC):
    """Abstract execution backend.

    Subclasses implement ``measure`` and ``warp``. ``signal_evaluator``
    may be overridden to build integral images elsewhere.
    """

    kind: BackendKind = BackendKind.CPU

    def supports(self, tile_size: int) -> bool:
        """Whether this backend can measure tiles of *tile_size*."""
        return True

    def signal_evaluator(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        symmetric: bool,
    ) -> SignalEvaluator:
        """Signal test over the reference, and the target when *symmetric*."""
        return SignalEvaluator(reference, target if symmetric else None)

    @abstractmethod
    def measure(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        x0: np.ndarray,
        y0: np.ndarray,
        tile_size: int,
        context: RegistrationContext,
    ) -> np.ndarray:
        """Correlate tiles of one size.

        Parameters
        ----------
        reference, target : np.ndarray
            Images of identical shape.
        x0, y0 : np.ndarray
            Top-left tile corners, shape ``(S,)``.
        tile_size : int
            Tile edge.
        context : RegistrationContext
            Cancellation and progress.

        Returns
        -------
        np.ndarray
            ``(S, 2)`` correlator ``(dx, dy)`` per tile.

        Raises
        ------
        CancelledError
            If cancellation was observed.
        """
        ...

    @abstractmethod
    def warp(
        self,
        image: np.ndarray,
        grid: DistortionGrid,
        interpolation: str,
    ) -> np.ndarray:
        """Resample *image* at ``pixel + grid displacement``."""
        ...

    def build_grid(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        tile_size: int,
        params: RegistrationParameters,
        context: RegistrationContext,
        symmetric: bool = False,
    ) -> GridBuild:
        """Measure and assemble the distortion grid of one level.

        Parameters
        ----------
        reference, target : np.ndarray
            Images of identical shape.
        tile_size : int
            Tile edge of this level.
        params : RegistrationParameters
            Sampling density, signal threshold, strategy and smoothing.
        context : RegistrationContext
            Cancellation and progress.
        symmetric : bool
            Apply the signal test to both images.

        Returns
        -------
        GridBuild
        """
        height, width = reference.shape
        step = params.step_for(tile_size, params.sampling)
        strategy_kind = SamplingStrategyKind(params.sampling_strategy)

        context.check_cancelled('signal evaluation')
        evaluator = self.signal_evaluator(reference, target, symmetric)
        strategy = get_sampling_strategy(strategy_kind)
        positions = strategy.select_positions(
            reference, tile_size, step, evaluator, params.threshold,
        )

        displacements = np.zeros((positions.count, 2), dtype=np.float64)
        x0, y0 = positions.corners()
        for size, idx in positions.by_size():
            context.check_cancelled('tile correlation')
            displacements[idx] = self.measure(
                reference, target, x0[idx], y0[idx], size, context,
            )

        context.check_cancelled('grid assembly')
        grid, report = assemble_grid(
            width, height, step, positions, displacements,
            strategy_kind, params.smoothing_sigma,
        )
        logger.debug(
            "%s backend built level tile=%d step=%d from %d tiles",
            self.kind.value, tile_size, step, positions.count,
        )
        return GridBuild(grid, report, positions, self.kind)

    def close(self) -> None:
        """Release backend resources."""
