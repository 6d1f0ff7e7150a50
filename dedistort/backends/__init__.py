# -*- coding: utf-8 -*-
"""
Backends - CPU and device execution paths for grid builds and warping.

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

from dedistort.backends.base import GridBuild, RegistrationBackend
from dedistort.backends.coordinator import BackendCoordinator
from dedistort.backends.cpu import CpuBackend
from dedistort.backends.device import (
    ComputeDevice,
    DeviceBuffer,
    compute_batch_size,
    device_lock,
)
from dedistort.backends.gpu import GpuBackend
from dedistort.backends.torch_device import TorchBuffer, TorchDevice

__all__ = [
    'BackendCoordinator',
    'ComputeDevice',
    'CpuBackend',
    'DeviceBuffer',
    'GpuBackend',
    'GridBuild',
    'RegistrationBackend',
    'TorchBuffer',
    'TorchDevice',
    'compute_batch_size',
    'device_lock',
]
