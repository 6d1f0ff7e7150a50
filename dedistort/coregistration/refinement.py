# -*- coding: utf-8 -*-
"""
Iterative Refinement - Multi-level distortion estimation.

Each level measures the residual distortion of the target after the
corrections of the previous levels, starting from the largest tile size
and halving toward ``MIN_TILE_SIZE``. Levels are compared on their mean
residual per grid node, since finer levels carry more nodes. The loop
stops when a level brings less than 1% improvement (converged), when
distortion grows (diverged, the level is discarded), or when the level
budget is used up. The kept levels are summed into one field and the
original target is resampled once.

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
from typing import List, Optional

# Third-party
import numpy as np

# dedistort internal
from dedistort.backends.coordinator import BackendCoordinator
from dedistort.context import RegistrationContext
from dedistort.coregistration.base import RefinementLevel, RegistrationResult
from dedistort.distortion.grid import DistortionGrid
from dedistort.exceptions import ProcessorError
from dedistort.params import CONVERGENCE_THRESHOLD, RegistrationParameters
from dedistort.versioning import algorithm_version, version_of
from dedistort.vocabulary import RefinementState

logger = logging.getLogger(__name__)


@algorithm_version('1.0.0')
class IterativeRefiner:
    """Refinement state machine over a ``BackendCoordinator``.

    Parameters
    ----------
    params : RegistrationParameters
        Tile schedule, interpolation and grid parameters.
    coordinator : BackendCoordinator
        Executes grid builds and warps.
    convergence_threshold : float
        Relative improvement below which refinement has converged.

    Attributes
    ----------
    state : RefinementState
        Current state; terminal after :meth:`run`.
    history : list of RefinementState
        Every state entered, in order.
    """

    def __init__(
        self,
        params: RegistrationParameters,
        coordinator: BackendCoordinator,
        convergence_threshold: float = CONVERGENCE_THRESHOLD,
    ) -> None:
        self.params = params
        self.coordinator = coordinator
        self.convergence_threshold = convergence_threshold
        self.state = RefinementState.INIT
        self.history: List[RefinementState] = [RefinementState.INIT]

    def _enter(self, state: RefinementState) -> None:
        self.state = state
        self.history.append(state)

    def _evaluate(
        self,
        previous: Optional[float],
        current: float,
    ) -> Optional[RefinementState]:
        """Terminal state implied by a new level's mean distortion, if any."""
        if previous is None:
            return None
        if current > previous:
            return RefinementState.DIVERGED
        if previous <= 0.0:
            return RefinementState.CONVERGED
        if (previous - current) / previous < self.convergence_threshold:
            return RefinementState.CONVERGED
        return None

    def run(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        context: RegistrationContext,
    ) -> RegistrationResult:
        """Register *target* onto *reference*.

        Parameters
        ----------
        reference, target : np.ndarray
            Validated images of identical shape.
        context : RegistrationContext
            Checked between levels.

        Returns
        -------
        RegistrationResult

        Raises
        ------
        CancelledError
            If the context was cancelled.
        ProcessorError
            If a level produced a non-finite field.
        """
        height, width = reference.shape
        schedule = self.params.tile_schedule(width, height)
        interpolation = self.params.interpolation
        levels: List[RefinementLevel] = []
        kept: List[DistortionGrid] = []
        current = target
        previous: Optional[float] = None
        terminal = RefinementState.MAX_ITER

        for index, tile_size in enumerate(schedule):
            context.check_cancelled(f'refinement level {index}')
            self._enter(RefinementState.LEVEL)
            build = self.coordinator.build_grid(
                reference, current, tile_size, self.params, context,
            )
            distortion = build.grid.total_distortion()
            mean = build.grid.mean_distortion()
            if not np.isfinite(distortion):
                raise ProcessorError(
                    f"Level {index} produced a non-finite distortion field; "
                    f"check the inputs for NaN or infinite samples"
                )
            outcome = self._evaluate(previous, mean)
            level = RefinementLevel(
                index=index,
                tile_size=tile_size,
                grid=build.grid,
                total_distortion=distortion,
                mean_distortion=mean,
                report=build.report,
                backend=build.backend,
                kept=outcome is not RefinementState.DIVERGED,
            )
            levels.append(level)
            logger.debug(
                "Level %d: tile=%d distortion=%.4f mean=%.4f samples=%d%s",
                index, tile_size, distortion, mean, build.positions.count,
                '' if outcome is None else f' -> {outcome.value}',
            )
            context.report('refine', (index + 1) / len(schedule))

            if outcome is RefinementState.DIVERGED:
                terminal = outcome
                break
            kept.append(build.grid)
            if outcome is RefinementState.CONVERGED:
                terminal = outcome
                break
            previous = mean
            if index + 1 < len(schedule):
                current = self.coordinator.warp(
                    target, DistortionGrid.synthesize(kept), interpolation,
                )

        self._enter(terminal)
        combined = DistortionGrid.synthesize(kept, width, height)
        context.check_cancelled('final warp')
        corrected = self.coordinator.warp(target, combined, interpolation)
        logger.info(
            "Refinement %s after %d level(s), mean distortion %.4f -> %.4f",
            terminal.value, len(levels), levels[0].mean_distortion,
            min(level.mean_distortion for level in levels),
        )
        return RegistrationResult(
            corrected=corrected,
            grid=combined,
            levels=levels,
            state=terminal,
            gpu_fallback=self.coordinator.gpu_fallback,
            backend=self.coordinator.backend,
            metadata={
                'schedule': list(schedule),
                'history': [state.value for state in self.history],
                'fallback_reason': self.coordinator.fallback_reason,
                'algorithm_version': version_of(self),
            },
        )
