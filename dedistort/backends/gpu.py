# -*- coding: utf-8 -*-
"""
GPU Backend - Batched device correlation and device warping.

Runs the data-parallel stages on a ``ComputeDevice``: integral images,
tile extraction, phase correlation and peak search happen on the device
in batches sized from free device memory. Only the five-value peak
neighbourhoods are downloaded; sub-pixel refinement then uses the same
host routine as the CPU backend, and grid filtering is the shared host
pipeline in ``distortion.builder``.

Only tile sizes in ``GPU_TILE_SIZES`` run on the device. Other sizes are
measured by the wrapped ``CpuBackend``.

Uploaded images are kept resident while the same host array is passed
again, so the reference crosses the bus once per registration.

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
from typing import Dict, Optional, Tuple

# Third-party
import numpy as np

# dedistort internal
from dedistort.backends.base import RegistrationBackend
from dedistort.backends.cpu import CpuBackend
from dedistort.backends.device import (
    ComputeDevice,
    DeviceBuffer,
    compute_batch_size,
)
from dedistort.context import RegistrationContext
from dedistort.correlation.phase import refine_from_neighbours
from dedistort.distortion.grid import DistortionGrid
from dedistort.exceptions import ValidationError
from dedistort.image import as_image
from dedistort.interpolation import interpolation_method
from dedistort.params import GPU_TILE_SIZES
from dedistort.signal.evaluator import SignalEvaluator
from dedistort.signal.integral import IntegralImage
from dedistort.vocabulary import BackendKind

logger = logging.getLogger(__name__)


class GpuBackend(RegistrationBackend):
    """Device backend.

    Parameters
    ----------
    device : ComputeDevice
        Device running the kernels.
    cpu : CpuBackend, optional
        Backend for tile sizes the device path does not support.
    """

    kind = BackendKind.GPU

    def __init__(
        self,
        device: ComputeDevice,
        cpu: Optional[CpuBackend] = None,
    ) -> None:
        self.device = device
        self.cpu = cpu or CpuBackend()
        self._resident: Dict[str, Tuple[np.ndarray, DeviceBuffer]] = {}

    def supports(self, tile_size: int) -> bool:
        return int(tile_size) in GPU_TILE_SIZES

    def _buffer(self, slot: str, array: np.ndarray) -> DeviceBuffer:
        cached = self._resident.get(slot)
        if cached is not None and cached[0] is array:
            return cached[1]
        if cached is not None:
            cached[1].release()
        buffer = self.device.upload(array)
        self._resident[slot] = (array, buffer)
        return buffer

    def signal_evaluator(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        symmetric: bool,
    ) -> SignalEvaluator:
        with self.device.lock:
            ref_table = self.device.integral_image(
                self._buffer('reference', reference),
            )
            tgt_table = None
            if symmetric:
                tgt_table = self.device.integral_image(
                    self._buffer('target', target),
                )
        return SignalEvaluator(
            IntegralImage.from_table(ref_table),
            None if tgt_table is None else IntegralImage.from_table(tgt_table),
        )

    def measure(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        x0: np.ndarray,
        y0: np.ndarray,
        tile_size: int,
        context: RegistrationContext,
    ) -> np.ndarray:
        if not self.supports(tile_size):
            logger.debug(
                "Tile size %d not supported on %s, measuring on CPU",
                tile_size, self.device.name,
            )
            return self.cpu.measure(
                reference, target, x0, y0, tile_size, context,
            )

        count = int(np.asarray(x0).size)
        out = np.zeros((count, 2), dtype=np.float64)
        if count == 0:
            return out
        half = tile_size / 2.0

        with self.device.lock:
            ref_buf = self._buffer('reference', reference)
            tgt_buf = self._buffer('target', target)
            batch = compute_batch_size(self.device.available_memory(),
                                       tile_size)
            for start in range(0, count, batch):
                if context.cancelled:
                    break
                stop = min(start + batch, count)
                scratch = []
                try:
                    ref_tiles = self.device.extract_tiles(
                        ref_buf, x0[start:stop], y0[start:stop], tile_size,
                    )
                    scratch.append(ref_tiles)
                    tgt_tiles = self.device.extract_tiles(
                        tgt_buf, x0[start:stop], y0[start:stop], tile_size,
                    )
                    scratch.append(tgt_tiles)
                    surfaces = self.device.phase_correlate(ref_tiles,
                                                           tgt_tiles)
                    scratch.append(surfaces)
                    rows, cols, neighbours = self.device.find_peaks(surfaces)
                finally:
                    for buffer in scratch:
                        buffer.release()
                dy, dx, _ = refine_from_neighbours(
                    neighbours, rows, cols, tile_size,
                )
                out[start:stop, 0] = half - (cols + dx)
                out[start:stop, 1] = half - (rows + dy)
                context.report('correlate', stop / count)
            self.device.synchronize()

        context.check_cancelled('tile correlation')
        logger.debug(
            "Correlated %d tiles of size %d on %s in batches of %d",
            count, tile_size, self.device.name, batch,
        )
        return out

    def warp(
        self,
        image: np.ndarray,
        grid: DistortionGrid,
        interpolation: str,
    ) -> np.ndarray:
        image = as_image(image, 'target')
        if image.shape != (grid.height, grid.width):
            raise ValidationError(
                f"Image shape {image.shape} does not match grid image size "
                f"{(grid.height, grid.width)}"
            )
        method = interpolation_method(interpolation)
        wy, wx = grid.weight_matrices()
        with self.device.lock:
            buffer = self.device.upload(image)
            try:
                out = self.device.warp(
                    buffer, wy, wx, grid.dx_2d, grid.dy_2d, method.value,
                )
            finally:
                buffer.release()
        return out.astype(image.dtype, copy=False)

    def close(self) -> None:
        for _, buffer in self._resident.values():
            buffer.release()
        self._resident.clear()
