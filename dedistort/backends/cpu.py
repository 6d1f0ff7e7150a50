# -*- coding: utf-8 -*-
"""
CPU Backend - Thread-pool tile correlation and numpy warping.

Tiles are split into disjoint chunks; each worker extracts its chunk's
tiles, correlates them as one batch and hands the result back. Results
are written into the output array by the submitting thread only, so no
locking is needed. numpy FFTs release the GIL, which is what makes
threads pay off here.

Cancellation is observed before each chunk starts; chunks already
running are allowed to finish.

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
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional

# Third-party
import numpy as np

# dedistort internal
from dedistort.backends.base import RegistrationBackend
from dedistort.context import RegistrationContext
from dedistort.correlation.phase import PhaseCorrelator
from dedistort.distortion.builder import chunk_indices, extract_tiles
from dedistort.distortion.grid import DistortionGrid
from dedistort.vocabulary import BackendKind
from dedistort.warp import Warper

logger = logging.getLogger(__name__)

# Chunks handed to each worker, on average.
CHUNKS_PER_WORKER = 4

# Smallest number of tiles worth a separate task.
MIN_CHUNK = 8


class CpuBackend(RegistrationBackend):
    """Multi-threaded CPU backend.

    Parameters
    ----------
    max_workers : int, optional
        Worker threads. ``None`` uses ``os.cpu_count()``.
    correlator : PhaseCorrelator, optional
        Correlator shared by all workers.
    """

    kind = BackendKind.CPU

    def __init__(
        self,
        max_workers: Optional[int] = None,
        correlator: Optional[PhaseCorrelator] = None,
    ) -> None:
        self.max_workers = max_workers or os.cpu_count() or 1
        self.correlator = correlator or PhaseCorrelator()

    def _chunk_size(self, count: int) -> int:
        per_chunk = -(-count // (self.max_workers * CHUNKS_PER_WORKER))
        return max(MIN_CHUNK, per_chunk)

    def measure(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        x0: np.ndarray,
        y0: np.ndarray,
        tile_size: int,
        context: RegistrationContext,
    ) -> np.ndarray:
        count = int(np.asarray(x0).size)
        out = np.zeros((count, 2), dtype=np.float64)
        if count == 0:
            return out

        def do_correlate(idx):
            if context.cancelled:
                return idx, None
            ref_tiles = extract_tiles(reference, x0[idx], y0[idx], tile_size)
            tgt_tiles = extract_tiles(target, x0[idx], y0[idx], tile_size)
            return idx, self.correlator.correlate_batch(ref_tiles, tgt_tiles)

        chunks = chunk_indices(np.arange(count), self._chunk_size(count))
        if len(chunks) == 1 or self.max_workers == 1:
            for i, idx in enumerate(chunks):
                context.check_cancelled('tile correlation')
                out[idx] = do_correlate(idx)[1]
                context.report('correlate', (i + 1) / len(chunks))
            return out

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(do_correlate, idx) for idx in chunks]
            for i, future in enumerate(as_completed(futures)):
                idx, values = future.result()
                if values is not None:
                    out[idx] = values
                context.report('correlate', (i + 1) / len(futures))

        context.check_cancelled('tile correlation')
        logger.debug(
            "Correlated %d tiles of size %d in %d chunks on %d threads",
            count, tile_size, len(chunks), self.max_workers,
        )
        return out

    def warp(
        self,
        image: np.ndarray,
        grid: DistortionGrid,
        interpolation: str,
    ) -> np.ndarray:
        return Warper(interpolation).warp(image, grid)
