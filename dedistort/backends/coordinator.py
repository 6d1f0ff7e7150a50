# -*- coding: utf-8 -*-
"""
Backend Coordinator - Chooses the execution path of each stage.

The device backend is tried first when it was requested and could be
initialized. A ``DeviceError`` from any device stage is logged, the
coordinator switches to the CPU backend for the rest of the call and the
failed stage is rerun on the CPU. Callers always get a result; the
``gpu_fallback`` flag tells them a fallback happened.

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
from typing import Optional, Set

# Third-party
import numpy as np

# dedistort internal
from dedistort.backends.base import GridBuild, RegistrationBackend
from dedistort.backends.cpu import CpuBackend
from dedistort.backends.device import ComputeDevice
from dedistort.backends.gpu import GpuBackend
from dedistort.backends.torch_device import TorchDevice
from dedistort.context import RegistrationContext
from dedistort.distortion.grid import DistortionGrid
from dedistort.exceptions import DependencyError, DeviceError
from dedistort.params import RegistrationParameters
from dedistort.vocabulary import BackendKind

logger = logging.getLogger(__name__)


class BackendCoordinator:
    """Routes grid builds and warps to the device or CPU backend.

    Parameters
    ----------
    params : RegistrationParameters
        ``use_gpu``, ``device`` and ``max_workers`` are consulted.
    device : ComputeDevice, optional
        Device to use instead of creating a ``TorchDevice``. Implies a
        device request.

    Attributes
    ----------
    gpu_fallback : bool
        True when the device was requested but some or all stages ran on
        the CPU because the device was unavailable or failed.
    fallback_reason : str or None
        Message of the error that caused the fallback.
    """

    def __init__(
        self,
        params: RegistrationParameters,
        device: Optional[ComputeDevice] = None,
    ) -> None:
        self.cpu = CpuBackend(max_workers=params.max_workers)
        self.gpu: Optional[GpuBackend] = None
        self.gpu_fallback = False
        self.fallback_reason: Optional[str] = None
        self._used: Set[BackendKind] = set()

        if device is None and params.use_gpu:
            try:
                device = TorchDevice(params.device)
            except (DependencyError, DeviceError) as exc:
                logger.warning(
                    "Device path unavailable, using CPU: %s", exc,
                )
                self.gpu_fallback = True
                self.fallback_reason = str(exc)
        if device is not None:
            self.gpu = GpuBackend(device, cpu=self.cpu)

    @property
    def gpu_active(self) -> bool:
        """Whether device stages are still being attempted."""
        return self.gpu is not None

    @property
    def backends_used(self) -> Set[BackendKind]:
        """Backends that completed at least one stage."""
        return set(self._used)

    @property
    def backend(self) -> BackendKind:
        """GPU if any stage completed on the device, else CPU."""
        return BackendKind.GPU if BackendKind.GPU in self._used else BackendKind.CPU

    def _fallback(self, stage: str, exc: Exception) -> None:
        logger.warning(
            "Device failure during %s, continuing on CPU: %s", stage, exc,
        )
        self.gpu_fallback = True
        self.fallback_reason = str(exc)
        if self.gpu is not None:
            try:
                self.gpu.close()
            except DeviceError:
                logger.debug("Releasing device buffers failed", exc_info=True)
        self.gpu = None

    def _select(self, tile_size: Optional[int] = None) -> RegistrationBackend:
        if self.gpu is None:
            return self.cpu
        if tile_size is not None and not self.gpu.supports(tile_size):
            logger.debug(
                "Tile size %d unsupported on device, using CPU", tile_size,
            )
            return self.cpu
        return self.gpu

    def build_grid(
        self,
        reference: np.ndarray,
        target: np.ndarray,
        tile_size: int,
        params: RegistrationParameters,
        context: RegistrationContext,
        symmetric: bool = False,
    ) -> GridBuild:
        """Grid build on the selected backend, rerun on CPU on device failure."""
        backend = self._select(tile_size)
        if backend is not self.cpu:
            try:
                build = backend.build_grid(
                    reference, target, tile_size, params, context, symmetric,
                )
                self._used.add(build.backend)
                return build
            except DeviceError as exc:
                self._fallback('grid build', exc)
        build = self.cpu.build_grid(
            reference, target, tile_size, params, context, symmetric,
        )
        self._used.add(build.backend)
        return build

    def warp(
        self,
        image: np.ndarray,
        grid: DistortionGrid,
        interpolation: str,
    ) -> np.ndarray:
        """Warp on the selected backend, rerun on CPU on device failure."""
        backend = self._select()
        if backend is not self.cpu:
            try:
                out = backend.warp(image, grid, interpolation)
                self._used.add(BackendKind.GPU)
                return out
            except DeviceError as exc:
                self._fallback('warp', exc)
        out = self.cpu.warp(image, grid, interpolation)
        self._used.add(BackendKind.CPU)
        return out

    def close(self) -> None:
        """Release device resources."""
        if self.gpu is not None:
            self.gpu.close()

    def __enter__(self) -> 'BackendCoordinator':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
