# -*- coding: utf-8 -*-
"""
Consensus Reference - Registration of an image set without a reference.

Every image is compared with its partners; the mean of its pairwise maps
says where the image sits relative to the set, and its negation moves it
to the consensus frame. Each unordered pair is measured once with the
symmetric signal test; the reverse map is taken as the negated forward
map, which is exact for translations and a first-order approximation for
general fields.

With more than ``MAX_CONSENSUS_COMPARISONS + 1`` images each image draws
that many partners from a generator seeded by image index and pass, so
the number of measured pairs grows linearly with the set.

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
import warnings
from typing import Dict, List, Sequence, Set, Tuple

# Third-party
import numpy as np

# dedistort internal
from dedistort.backends.coordinator import BackendCoordinator
from dedistort.context import RegistrationContext
from dedistort.coregistration.base import ConsensusResult
from dedistort.distortion.grid import DistortionGrid
from dedistort.params import MAX_CONSENSUS_COMPARISONS, RegistrationParameters
from dedistort.versioning import algorithm_version

logger = logging.getLogger(__name__)

# Below this many images the consensus frame is poorly constrained.
MIN_RECOMMENDED_IMAGES = 5

PARTNER_SEED = 42

PairMaps = Dict[Tuple[int, int], DistortionGrid]


@algorithm_version('1.0.0')
class ConsensusReferenceBuilder:
    """Pairwise consensus correction of an image set.

    Parameters
    ----------
    params : RegistrationParameters
        ``tile_size``, grid and interpolation settings, and
        ``consensus_iterations``.
    coordinator : BackendCoordinator
        Executes grid builds and warps.
    max_comparisons : int
        Partners per image before subsampling kicks in.
    """

    def __init__(
        self,
        params: RegistrationParameters,
        coordinator: BackendCoordinator,
        max_comparisons: int = MAX_CONSENSUS_COMPARISONS,
    ) -> None:
        self.params = params
        self.coordinator = coordinator
        self.max_comparisons = max_comparisons

    def partners(self, index: int, count: int, iteration: int = 0) -> np.ndarray:
        """Images compared with image *index* in pass *iteration*.

        All other images when there are at most ``max_comparisons`` of
        them, else a seeded random subset of that size.
        """
        others = np.array([j for j in range(count) if j != index],
                          dtype=np.int64)
        if others.size <= self.max_comparisons:
            return others
        rng = np.random.default_rng(PARTNER_SEED + index + iteration * count)
        chosen = rng.choice(others, size=self.max_comparisons, replace=False)
        return np.sort(chosen)

    def pair_maps(
        self,
        images: Sequence[np.ndarray],
        partners: Sequence[np.ndarray],
        context: RegistrationContext,
    ) -> PairMaps:
        """Measure every needed unordered pair once.

        Returns
        -------
        dict
            ``{(i, j): map}`` for both directions of each measured pair,
            where ``map[(i, j)]`` warps image ``j`` onto image ``i``.
        """
        needed: Set[Tuple[int, int]] = set()
        for i, chosen in enumerate(partners):
            for j in chosen:
                j = int(j)
                needed.add((min(i, j), max(i, j)))

        maps: PairMaps = {}
        tile_size = self.params.tile_size
        for done, (i, j) in enumerate(sorted(needed)):
            context.check_cancelled(f'consensus pair ({i}, {j})')
            build = self.coordinator.build_grid(
                images[i], images[j], tile_size, self.params, context,
                symmetric=True,
            )
            maps[(i, j)] = build.grid
            maps[(j, i)] = build.grid.negate()
            context.report('consensus', (done + 1) / len(needed))
        logger.debug("Measured %d consensus pairs", len(needed))
        return maps

    def corrections(
        self,
        images: Sequence[np.ndarray],
        iteration: int,
        context: RegistrationContext,
    ) -> Tuple[List[DistortionGrid], List[DistortionGrid], PairMaps]:
        """Average maps and corrections of one pass.

        Returns
        -------
        average_maps : list of DistortionGrid
            Mean pairwise map of each image.
        corrections : list of DistortionGrid
            Negated average maps.
        pair_maps : dict
            The measured pairwise maps.
        """
        count = len(images)
        partners = [self.partners(i, count, iteration) for i in range(count)]
        maps = self.pair_maps(images, partners, context)
        average_maps = [
            DistortionGrid.average([maps[(i, int(j))] for j in partners[i]])
            for i in range(count)
        ]
        return average_maps, [m.negate() for m in average_maps], maps

    def run(
        self,
        images: Sequence[np.ndarray],
        context: RegistrationContext,
    ) -> ConsensusResult:
        """Move every image of the set to the consensus frame.

        Parameters
        ----------
        images : sequence of np.ndarray
            Validated images of identical shape.
        context : RegistrationContext
            Cancellation and progress.

        Returns
        -------
        ConsensusResult
        """
        count = len(images)
        height, width = images[0].shape
        step = self.params.step
        interpolation = self.params.interpolation

        if count < MIN_RECOMMENDED_IMAGES:
            warnings.warn(
                f"Consensus registration of {count} image(s) is poorly "
                f"constrained; {MIN_RECOMMENDED_IMAGES} or more are "
                f"recommended",
                UserWarning,
                stacklevel=3,
            )
        if count == 1:
            return ConsensusResult(
                corrected=[images[0].copy()],
                corrections=[DistortionGrid(width, height, step)],
                pair_maps={},
                diagnostics={
                    'passes': 0, 'pass_distortions': [],
                    'early_stopped': False, 'comparisons': [0],
                    'gpu_fallback': self.coordinator.gpu_fallback,
                    'backend': self.coordinator.backend,
                },
            )

        totals = [DistortionGrid(width, height, step) for _ in range(count)]
        current = list(images)
        pair_maps: PairMaps = {}
        pass_distortions: List[float] = []
        early_stopped = False

        for iteration in range(self.params.consensus_iterations):
            context.check_cancelled(f'consensus pass {iteration}')
            average_maps, corrections, maps = self.corrections(
                current, iteration, context,
            )
            distortion = float(np.mean(
                [m.total_distortion() for m in average_maps]
            ))
            logger.debug(
                "Consensus pass %d: mean distortion %.4f", iteration, distortion,
            )
            if pass_distortions and distortion > pass_distortions[-1]:
                pass_distortions.append(distortion)
                early_stopped = True
                break
            pass_distortions.append(distortion)
            pair_maps = maps
            totals = [
                DistortionGrid.synthesize([total, correction])
                for total, correction in zip(totals, corrections)
            ]
            current = [
                self.coordinator.warp(image, total, interpolation)
                for image, total in zip(images, totals)
            ]

        logger.info(
            "Consensus of %d images after %d pass(es)%s",
            count, len(pass_distortions),
            ' (stopped early)' if early_stopped else '',
        )
        return ConsensusResult(
            corrected=current,
            corrections=totals,
            pair_maps=pair_maps,
            diagnostics={
                'passes': len(pass_distortions),
                'pass_distortions': pass_distortions,
                'early_stopped': early_stopped,
                'comparisons': [
                    int(self.partners(i, count).size) for i in range(count)
                ],
                'gpu_fallback': self.coordinator.gpu_fallback,
                'backend': self.coordinator.backend,
            },
        )
