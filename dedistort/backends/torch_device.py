# -*- coding: utf-8 -*-
"""
Torch Device - ``ComputeDevice`` implemented with PyTorch tensors.

Runs on CUDA when available. Any torch device string is accepted, so the
same kernels can be exercised on ``'cpu'`` for testing. Correlation runs
in float32 on CUDA and float64 elsewhere unless ``dtype`` is given;
integral images are always accumulated in float64.

Every kernel converts torch ``RuntimeError`` (including CUDA
out-of-memory) to ``DeviceError``.

Dependencies
------------
torch (optional)

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
import functools
import logging
from typing import Optional, Tuple

# Third-party
import numpy as np

try:
    import torch
    _HAS_TORCH = True
except ImportError:
    _HAS_TORCH = False

# dedistort internal
from dedistort.backends.device import ComputeDevice, DeviceBuffer
from dedistort.correlation.phase import MAGNITUDE_EPSILON, hann_window
from dedistort.exceptions import DedistortError, DependencyError, DeviceError
from dedistort.interpolation.bicubic import CATMULL_ROM_A

logger = logging.getLogger(__name__)

# Memory budget reported for non-CUDA torch devices.
HOST_MEMORY_BUDGET = 1 << 30

_WARP_CHUNK_ELEMENTS = 1 << 20


def _device_call(method):
    """Report torch runtime failures of a kernel as ``DeviceError``."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except DedistortError:
            raise
        except RuntimeError as exc:
            raise DeviceError(
                f"{method.__name__} failed on {self.name}: {exc}"
            ) from exc

    return wrapper


def _cubic(t: 'torch.Tensor') -> 'torch.Tensor':
    a = CATMULL_ROM_A
    t = t.abs()
    t2 = t * t
    t3 = t2 * t
    near = (a + 2.0) * t3 - (a + 3.0) * t2 + 1.0
    far = a * t3 - 5.0 * a * t2 + 8.0 * a * t - 4.0 * a
    return torch.where(
        t <= 1.0, near, torch.where(t < 2.0, far, torch.zeros_like(t)),
    )


def _lanczos(t: 'torch.Tensor') -> 'torch.Tensor':
    weights = torch.sinc(t) * torch.sinc(t / 3.0)
    return torch.where(t.abs() >= 3.0, torch.zeros_like(t), weights)


def _triangle(t: 'torch.Tensor') -> 'torch.Tensor':
    return (1.0 - t.abs()).clamp(min=0.0)


# interpolation name -> (taps per axis, kernel)
_KERNELS = {
    'bicubic': (4, _cubic),
    'lanczos': (6, _lanczos),
    'bilinear': (2, _triangle),
}


class TorchBuffer(DeviceBuffer):
    """``DeviceBuffer`` holding a torch tensor."""

    def __init__(self, tensor: 'torch.Tensor') -> None:
        self.tensor = tensor

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self.tensor.shape)

    def download(self) -> np.ndarray:
        return self.tensor.detach().cpu().numpy()

    def release(self) -> None:
        self.tensor = None


class TorchDevice(ComputeDevice):
    """PyTorch compute device.

    Parameters
    ----------
    device : str, optional
        Torch device string. ``None`` selects CUDA and fails when no CUDA
        device is present.
    dtype : torch.dtype, optional
        Real dtype of correlation and warping.

    Raises
    ------
    DependencyError
        If torch is not installed.
    DeviceError
        If the requested device cannot be used.
    """

    def __init__(self, device: Optional[str] = None, dtype=None) -> None:
        if not _HAS_TORCH:
            raise DependencyError(
                "torch is not installed. Install PyTorch "
                "(pip install dedistort[gpu]) to use the device path."
            )
        if device is None:
            if not torch.cuda.is_available():
                raise DeviceError("No CUDA device is available")
            device = 'cuda'
        try:
            self._device = torch.device(device)
        except RuntimeError as exc:
            raise DeviceError(f"Invalid torch device {device!r}: {exc}") from exc
        if self._device.type == 'cuda':
            if not torch.cuda.is_available():
                raise DeviceError(f"CUDA device {device!r} is not available")
            if self._device.index is None:
                self._device = torch.device('cuda', torch.cuda.current_device())

        if dtype is None:
            dtype = (
                torch.float32 if self._device.type == 'cuda' else torch.float64
            )
        self._dtype = dtype
        logger.debug("Torch device %s ready (%s)", self.name, dtype)

    @property
    def name(self) -> str:
        return str(self._device)

    @property
    def dtype(self):
        """Real dtype of device buffers."""
        return self._dtype

    @_device_call
    def available_memory(self) -> int:
        if self._device.type == 'cuda':
            free, _ = torch.cuda.mem_get_info(self._device)
            return int(free)
        return HOST_MEMORY_BUDGET

    @_device_call
    def upload(self, array: np.ndarray) -> TorchBuffer:
        return TorchBuffer(torch.as_tensor(
            np.ascontiguousarray(array), dtype=self._dtype,
            device=self._device,
        ))

    @_device_call
    def synchronize(self) -> None:
        if self._device.type == 'cuda':
            torch.cuda.synchronize(self._device)

    def _index(self, values: np.ndarray) -> 'torch.Tensor':
        return torch.as_tensor(
            np.asarray(values, dtype=np.int64), device=self._device,
        )

    @_device_call
    def integral_image(self, image: TorchBuffer) -> np.ndarray:
        data = image.tensor.to(torch.float64)
        h, w = data.shape
        table = torch.zeros(
            (h + 1, w + 1), dtype=torch.float64, device=self._device,
        )
        table[1:, 1:] = data.cumsum(dim=0).cumsum(dim=1)
        return table.cpu().numpy()

    @_device_call
    def extract_tiles(
        self,
        image: TorchBuffer,
        x0: np.ndarray,
        y0: np.ndarray,
        size: int,
    ) -> TorchBuffer:
        offsets = torch.arange(size, device=self._device)
        rows = self._index(y0)[:, None] + offsets
        cols = self._index(x0)[:, None] + offsets
        return TorchBuffer(image.tensor[rows[:, :, None], cols[:, None, :]])

    @_device_call
    def phase_correlate(
        self,
        reference_tiles: TorchBuffer,
        target_tiles: TorchBuffer,
    ) -> TorchBuffer:
        ref = reference_tiles.tensor
        tgt = target_tiles.tensor
        window = torch.as_tensor(
            np.array(hann_window(ref.shape[-1])),
            dtype=self._dtype, device=self._device,
        )
        f = torch.fft.fft2(ref * window)
        g = torch.fft.fft2(tgt * window)
        cross = torch.conj(f) * g
        mag_sq = cross.real ** 2 + cross.imag ** 2
        safe = mag_sq > MAGNITUDE_EPSILON
        magnitude = torch.sqrt(torch.where(safe, mag_sq, torch.ones_like(mag_sq)))
        normalized = torch.where(safe, cross / magnitude, torch.zeros_like(cross))
        surface = torch.fft.ifft2(normalized).real
        return TorchBuffer(torch.fft.fftshift(surface, dim=(-2, -1)))

    @_device_call
    def find_peaks(
        self,
        surfaces: TorchBuffer,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        s = surfaces.tensor
        b, n, m = s.shape
        flat = s.reshape(b, -1)
        peak = flat.max(dim=1, keepdim=True).values
        yy, xx = torch.meshgrid(
            torch.arange(n, device=self._device),
            torch.arange(m, device=self._device),
            indexing='ij',
        )
        dist = ((yy - n // 2) ** 2 + (xx - m // 2) ** 2).reshape(1, -1)
        score = torch.where(
            flat == peak, dist.to(torch.float64),
            torch.full_like(flat, float('inf'), dtype=torch.float64),
        )
        idx = score.argmin(dim=1)
        rows = torch.div(idx, m, rounding_mode='floor')
        cols = idx % m

        batch = torch.arange(b, device=self._device)
        neighbours = torch.stack([
            s[batch, rows, cols],
            s[batch, (rows - 1).clamp(0, n - 1), cols],
            s[batch, (rows + 1).clamp(0, n - 1), cols],
            s[batch, rows, (cols - 1).clamp(0, m - 1)],
            s[batch, rows, (cols + 1).clamp(0, m - 1)],
        ])
        return (
            rows.cpu().numpy(),
            cols.cpu().numpy(),
            neighbours.to(torch.float64).cpu().numpy(),
        )

    def _axis_weights(
        self,
        coord: 'torch.Tensor',
        offsets: 'torch.Tensor',
        kernel,
    ) -> Tuple['torch.Tensor', 'torch.Tensor']:
        base = torch.floor(coord)
        t = (coord - base)[:, None] - offsets[None, :]
        weights = kernel(t)
        sums = weights.sum(dim=1, keepdim=True)
        sums = torch.where(sums.abs() < 1e-15, torch.ones_like(sums), sums)
        return base.to(torch.int64), weights / sums

    @_device_call
    def warp(
        self,
        image: TorchBuffer,
        wy: np.ndarray,
        wx: np.ndarray,
        node_dx: np.ndarray,
        node_dy: np.ndarray,
        interpolation: str,
    ) -> np.ndarray:
        taps, kernel = _KERNELS[interpolation]
        img = image.tensor
        h, w = img.shape

        def tensor(a):
            return torch.as_tensor(
                np.ascontiguousarray(a), dtype=self._dtype, device=self._device,
            )

        wy_t = tensor(wy)
        wx_t = tensor(wx)
        dx = wy_t @ tensor(node_dx) @ wx_t.T
        dy = wy_t @ tensor(node_dy) @ wx_t.T
        yy, xx = torch.meshgrid(
            torch.arange(h, device=self._device, dtype=self._dtype),
            torch.arange(w, device=self._device, dtype=self._dtype),
            indexing='ij',
        )
        sx = (xx + dx).clamp(0.0, w - 1.0).reshape(-1)
        sy = (yy + dy).clamp(0.0, h - 1.0).reshape(-1)

        half = taps // 2
        offsets_i = torch.arange(-half + 1, half + 1, device=self._device)
        offsets_f = offsets_i.to(self._dtype)
        out = torch.empty(h * w, dtype=self._dtype, device=self._device)
        chunk = max(1, _WARP_CHUNK_ELEMENTS // (taps * taps))
        for start in range(0, h * w, chunk):
            stop = min(start + chunk, h * w)
            bx, kx = self._axis_weights(sx[start:stop], offsets_f, kernel)
            by, ky = self._axis_weights(sy[start:stop], offsets_f, kernel)
            ix = (bx[:, None] + offsets_i).clamp(0, w - 1)
            iy = (by[:, None] + offsets_i).clamp(0, h - 1)
            values = img[iy[:, :, None], ix[:, None, :]]
            out[start:stop] = torch.einsum('mi,mij,mj->m', ky, values, kx)
        return out.reshape(h, w).to(torch.float64).cpu().numpy()
