# -*- coding: utf-8 -*-
"""
Compute Device - Abstract accelerator used by the device backend.

A ``ComputeDevice`` owns memory and runs the data-parallel kernels of a
grid build: integral image, tile extraction, batched phase correlation,
peak search and warping. Buffers stay resident on the device between
kernel calls; only peak neighbourhoods and final images cross back to the
host.

Devices are shared process-wide resources. ``device_lock`` hands out one
lock per device key so concurrent registrations targeting the same device
are serialized.

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
import threading
from abc import ABC, abstractmethod
from typing import Dict, Tuple

# Third-party
import numpy as np

# Per tile in a batch: reference, target and complex spectra, with slack.
BYTES_PER_TILE_PIXEL = 36

# Fraction of free device memory one batch may claim.
MEMORY_FRACTION = 0.5

_DEVICE_LOCKS: Dict[str, threading.Lock] = {}
_REGISTRY_LOCK = threading.Lock()


def device_lock(key: str) -> threading.Lock:
    """Lock serializing work on the device identified by *key*."""
    with _REGISTRY_LOCK:
        lock = _DEVICE_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _DEVICE_LOCKS[key] = lock
        return lock


def compute_batch_size(available_memory: int, tile_size: int) -> int:
    """Tiles per correlation batch.

    ``max(1, floor(0.5 * memory / (36 * tile_size ** 2)))``.

    Parameters
    ----------
    available_memory : int
        Free device memory in bytes.
    tile_size : int
        Tile edge in pixels.

    Returns
    -------
    int
    """
    per_tile = BYTES_PER_TILE_PIXEL * tile_size * tile_size
    return max(1, int(MEMORY_FRACTION * available_memory // per_tile))


class DeviceBuffer(ABC):
    """Array resident on a compute device."""

    @property
    @abstractmethod
    def shape(self) -> Tuple[int, ...]:
        ...

    @abstractmethod
    def download(self) -> np.ndarray:
        """Copy the buffer to a host array."""
        ...

    @abstractmethod
    def release(self) -> None:
        """Free device memory held by the buffer."""
        ...


class ComputeDevice(ABC):
    """Accelerator running the kernels of a device grid build.

    Kernel failures are reported as ``DeviceError`` so callers can fall
    back to the CPU path.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable device key, e.g. ``'cuda:0'``."""
        ...

    @property
    def lock(self) -> threading.Lock:
        """Process-wide lock for this device."""
        return device_lock(self.name)

    @abstractmethod
    def available_memory(self) -> int:
        """Free memory in bytes."""
        ...

    @abstractmethod
    def upload(self, array: np.ndarray) -> DeviceBuffer:
        """Copy a host array to the device."""
        ...

    @abstractmethod
    def synchronize(self) -> None:
        """Block until queued kernels have finished."""
        ...

    @abstractmethod
    def integral_image(self, image: DeviceBuffer) -> np.ndarray:
        """Padded summed-area table of *image*, returned to the host."""
        ...

    @abstractmethod
    def extract_tiles(
        self,
        image: DeviceBuffer,
        x0: np.ndarray,
        y0: np.ndarray,
        size: int,
    ) -> DeviceBuffer:
        """Stack of ``(B, size, size)`` tiles with top-left corners ``x0, y0``."""
        ...

    @abstractmethod
    def phase_correlate(
        self,
        reference_tiles: DeviceBuffer,
        target_tiles: DeviceBuffer,
    ) -> DeviceBuffer:
        """Centred phase-correlation surfaces of two tile stacks."""
        ...

    @abstractmethod
    def find_peaks(
        self,
        surfaces: DeviceBuffer,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Integer peaks and their neighbourhoods.

        Returns
        -------
        rows, cols : np.ndarray
            Peak positions, shape ``(B,)``.
        neighbours : np.ndarray
            ``(5, B)`` values at the peak and its N, S, W, E neighbours.
        """
        ...

    @abstractmethod
    def warp(
        self,
        image: DeviceBuffer,
        wy: np.ndarray,
        wx: np.ndarray,
        node_dx: np.ndarray,
        node_dy: np.ndarray,
        interpolation: str,
    ) -> np.ndarray:
        """Resample *image* at ``pixel + displacement``.

        The dense displacement is ``wy @ node @ wx.T``; sampling positions
        are clamped to the image before interpolation.

        Returns
        -------
        np.ndarray
            float64 host image.
        """
        ...
