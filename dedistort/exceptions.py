# -*- coding: utf-8 -*-
"""
Dedistort Exception Hierarchy - Domain-specific exceptions for registration.

Lets callers catch dedistort failures distinctly from Python built-in
exceptions. Every exception subclasses both ``DedistortError`` and the
closest built-in exception, so ``except ValueError`` keeps working for
parameter errors.

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
2026-03-02

Modified
--------
2026-03-09
"""


class DedistortError(Exception):
    """Base exception for all dedistort errors."""


class ValidationError(DedistortError, ValueError):
    """Invalid input image, parameters, or configuration.

    Raised before any computation starts: tile sizes below the minimum,
    non-positive sampling, degenerate grids, shape mismatches between
    reference and target, and unknown interpolation names.
    """


class ProcessorError(DedistortError, RuntimeError):
    """Non-recoverable failure while building or applying a distortion field."""


class DependencyError(DedistortError, ImportError):
    """Missing optional dependency required for a specific backend.

    Raised when the torch device backend is requested explicitly but
    PyTorch is not installed.
    """


class DeviceError(DedistortError, RuntimeError):
    """Compute-device failure (allocation, kernel launch, driver error).

    Caught by the backend coordinator, which switches the remainder of
    the call to the CPU path.
    """


class CancelledError(DedistortError):
    """The caller cancelled a registration through its context."""
