# -*- coding: utf-8 -*-
"""
Tests for LocalDistortionCoRegistration and the iterative refiner.

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

import numpy as np
import pytest
from scipy import ndimage

from dedistort import (
    BackendKind,
    CancelledError,
    LocalDistortionCoRegistration,
    RefinementState,
    RegistrationContext,
    RegistrationParameters,
    ValidationError,
    apply_distortion_maps,
)
from dedistort.backends import BackendCoordinator
from dedistort.backends.base import GridBuild
from dedistort.coregistration import IterativeRefiner
from dedistort.distortion import DistortionGrid, SamplePositions
from dedistort.distortion.grid import FilterReport
from dedistort.exceptions import DependencyError


# ===================================================================
# Helpers
# ===================================================================

SHIFT = (1.5, -0.8)


def _shifted_pair(shape=(256, 256), shift=SHIFT, seed=0):
    """Reference and a copy whose content moved by ``shift``."""
    rng = np.random.default_rng(seed)
    noise = ndimage.gaussian_filter(rng.normal(size=shape), 1.5)
    image = 100.0 + 40.0 * noise / noise.std()
    spectrum = ndimage.fourier_shift(np.fft.fft2(image), shift[::-1])
    moved = np.fft.ifft2(spectrum).real
    return (image + rng.normal(size=shape),
            moved + rng.normal(size=shape))


def _interior_error(a, b, margin=16):
    inner = (slice(margin, -margin), slice(margin, -margin))
    return float(np.mean(np.abs(a[inner] - b[inner])))


@pytest.fixture(scope='module')
def pair():
    return _shifted_pair()


@pytest.fixture(scope='module')
def refined(pair):
    ref, tgt = pair
    reg = LocalDistortionCoRegistration(refine=True, tile_size=32,
                                        max_tile_size=128, iterations=3)
    return reg, reg.estimate(ref, tgt)


# ===================================================================
# Multi-level refinement
# ===================================================================

class TestRefinement:
    """Recovery of a global translation through the refinement loop."""

    def test_recovers_shift(self, refined):
        _, result = refined
        assert abs(np.median(result.grid.dx) - SHIFT[0]) < 0.2
        assert abs(np.median(result.grid.dy) - SHIFT[1]) < 0.2

    def test_corrected_closer_to_reference(self, pair, refined):
        ref, tgt = pair
        _, result = refined
        before = _interior_error(ref, tgt)
        after = _interior_error(ref, result.corrected)
        assert after < 0.5 * before

    def test_terminal_state(self, refined):
        _, result = refined
        assert result.state.is_terminal
        assert result.converged == (result.state is RefinementState.CONVERGED)
        assert result.early_stopped == (
            result.state is RefinementState.DIVERGED
        )
        history = result.metadata['history']
        assert history[0] == 'init'
        assert history[-1] == result.state.value

    def test_schedule_and_trace(self, refined):
        _, result = refined
        assert result.metadata['schedule'] == [128, 64, 32]
        assert [lvl.tile_size for lvl in result.levels] == \
            result.metadata['schedule'][:len(result.levels)]
        kept = [lvl.mean_distortion for lvl in result.kept_levels]
        assert all(b <= a for a, b in zip(kept, kept[1:]))
        assert len(result.levels) >= 2
        means = result.mean_distortion_trace
        assert means[1] < means[0]
        assert len(result.distortion_trace) == len(result.levels)

    def test_distortion_summary(self, refined):
        _, result = refined
        best = min(result.levels, key=lambda lvl: lvl.mean_distortion)
        assert result.total_distortion_before == result.distortion_trace[0]
        assert result.total_distortion_after == best.total_distortion
        assert best.mean_distortion < result.levels[0].mean_distortion

    def test_discarded_level_not_in_grid(self, refined):
        _, result = refined
        if result.state is RefinementState.DIVERGED:
            assert not result.levels[-1].kept
            assert len(result.grids) == len(result.levels) - 1
        else:
            assert len(result.grids) == len(result.levels)

    def test_grid_on_finest_kept_step(self, refined):
        reg, result = refined
        steps = [
            reg.params.step_for(lvl.tile_size, reg.params.sampling)
            for lvl in result.kept_levels
        ]
        assert result.grid.step == min(steps)

    def test_apply_reproduces_correction(self, pair, refined):
        _, tgt = pair
        reg, result = refined
        np.testing.assert_allclose(reg.apply(tgt, result), result.corrected,
                                   atol=1e-9)
        np.testing.assert_allclose(
            apply_distortion_maps(tgt, result.grids), result.corrected,
            atol=1e-6,
        )

    def test_metadata(self, refined):
        _, result = refined
        assert result.metadata['algorithm_version'] == '1.0.0'
        assert result.backend is BackendKind.CPU
        assert not result.gpu_fallback
        assert 'RegistrationResult(' in repr(result)


# ===================================================================
# Spatially varying field
# ===================================================================

def _sine_warped_pair(shape=(320, 320), seed=1):
    """Reference and a copy resampled through a smooth half-sine field.

    Content moves by up to 2 px in x (varying along y) and 1.5 px in y
    (varying along x).
    """
    rng = np.random.default_rng(seed)
    noise = ndimage.gaussian_filter(rng.normal(size=shape), 1.5)
    image = 100.0 + 40.0 * noise / noise.std()
    h, w = shape
    yy, xx = np.mgrid[0:h, 0:w].astype(np.float64)
    u = 2.0 * np.sin(np.pi * yy / h)
    v = 1.5 * np.sin(np.pi * xx / w)
    moved = ndimage.map_coordinates(image, [yy - v, xx - u], order=3,
                                    mode='nearest')
    return (image + rng.normal(size=shape),
            moved + rng.normal(size=shape))


@pytest.fixture(scope='module')
def field_pair():
    return _sine_warped_pair()


@pytest.fixture(scope='module')
def field_refined(field_pair):
    ref, tgt = field_pair
    return LocalDistortionCoRegistration(
        refine=True, tile_size=32, max_tile_size=128, iterations=3,
    ).estimate(ref, tgt)


class TestVaryingField:
    """Multi-level refinement of a non-uniform distortion."""

    def test_finer_level_kept(self, field_refined):
        result = field_refined
        assert result.metadata['schedule'] == [128, 64, 32]
        assert len(result.levels) >= 2
        assert result.levels[1].kept
        assert len(result.kept_levels) >= 2

    def test_kept_means_non_increasing(self, field_refined):
        kept = [lvl.mean_distortion for lvl in field_refined.kept_levels]
        assert all(b <= a for a, b in zip(kept, kept[1:]))
        assert kept[-1] < 0.5 * kept[0]

    def test_beats_coarse_level_alone(self, field_pair, field_refined):
        ref, tgt = field_pair
        coarse = LocalDistortionCoRegistration(
            refine=True, tile_size=32, max_tile_size=128, iterations=1,
        ).estimate(ref, tgt)
        assert coarse.metadata['schedule'] == [128]
        before = _interior_error(ref, tgt, margin=32)
        coarse_error = _interior_error(ref, coarse.corrected, margin=32)
        refined_error = _interior_error(ref, field_refined.corrected,
                                        margin=32)
        assert refined_error < coarse_error < before


class _ScriptedCoordinator:
    """Coordinator stand-in returning constant grids, one per level."""

    def __init__(self, levels):
        self.levels = list(levels)
        self.gpu_fallback = False
        self.fallback_reason = None
        self.backend = BackendKind.CPU

    def build_grid(self, reference, target, tile_size, params, context):
        step, value = self.levels.pop(0)
        h, w = reference.shape
        grid = DistortionGrid(w, h, step)
        grid.dx[:] = value
        return GridBuild(grid, FilterReport(grid.dx.size, 0, 0, 0, 0),
                         SamplePositions.empty(), BackendKind.CPU)

    def warp(self, image, grid, interpolation):
        return image.copy()


class TestLevelComparison:
    """Levels are compared per node, not by their node-count-bound sums."""

    @pytest.fixture
    def params(self):
        return RegistrationParameters(refine=True, max_tile_size=128,
                                      iterations=3)

    def test_finer_level_with_larger_sum_is_kept(self, params):
        image = np.zeros((128, 128))
        # 9, 25 and 81 nodes: sums 9.0, 12.5, 24.3 while means fall.
        coordinator = _ScriptedCoordinator([(64, 1.0), (32, 0.5), (16, 0.3)])
        result = IterativeRefiner(params, coordinator).run(
            image, image, RegistrationContext(),
        )
        assert result.distortion_trace == pytest.approx([9.0, 12.5, 24.3])
        assert result.mean_distortion_trace == pytest.approx([1.0, 0.5, 0.3])
        assert result.state is RefinementState.MAX_ITER
        assert all(lvl.kept for lvl in result.levels)
        assert result.total_distortion_after == pytest.approx(24.3)

    def test_larger_mean_diverges(self, params):
        image = np.zeros((128, 128))
        coordinator = _ScriptedCoordinator([(64, 1.0), (32, 1.2)])
        result = IterativeRefiner(params, coordinator).run(
            image, image, RegistrationContext(),
        )
        assert result.state is RefinementState.DIVERGED
        assert [lvl.kept for lvl in result.levels] == [True, False]
        assert result.grid.step == 64
        np.testing.assert_allclose(result.grid.dx, 1.0)


# ===================================================================
# Single tile size
# ===================================================================

class TestSingleLevel:
    """Non-refining mode and result types."""

    def test_repeats_tile_size(self, pair):
        ref, tgt = pair
        result = LocalDistortionCoRegistration(tile_size=64, iterations=2) \
            .estimate(ref, tgt)
        assert result.metadata['schedule'] == [64, 64]
        assert abs(np.median(result.grid.dx) - SHIFT[0]) < 0.2

    def test_register_preserves_dtype(self, pair):
        ref, tgt = pair
        out = LocalDistortionCoRegistration(tile_size=64, iterations=1) \
            .register(ref.astype(np.float32), tgt.astype(np.float32))
        assert out.dtype == np.float32
        assert out.shape == tgt.shape

    def test_identical_images(self, pair):
        ref, _ = pair
        result = LocalDistortionCoRegistration(tile_size=64, iterations=2) \
            .estimate(ref, ref.copy())
        assert result.grid.max_displacement() < 0.1
        assert result.state.is_terminal

    def test_progress_reported(self, pair):
        ref, tgt = pair
        stages = set()
        ctx = RegistrationContext(progress=lambda s, f: stages.add(s))
        LocalDistortionCoRegistration(tile_size=64, iterations=1) \
            .estimate(ref, tgt, ctx)
        assert {'correlate', 'refine'} <= stages

    def test_refiner_state_machine(self, pair):
        ref, tgt = pair
        params = RegistrationParameters(tile_size=64, iterations=1)
        with BackendCoordinator(params) as coordinator:
            refiner = IterativeRefiner(params, coordinator)
            assert refiner.state is RefinementState.INIT
            result = refiner.run(ref, tgt, RegistrationContext())
        assert refiner.state is RefinementState.MAX_ITER
        assert result.state is RefinementState.MAX_ITER
        assert [s.value for s in refiner.history] == \
            ['init', 'level', 'max_iter']


# ===================================================================
# Errors and fallback
# ===================================================================

class TestErrors:

    def test_cancelled(self, pair):
        ref, tgt = pair
        ctx = RegistrationContext()
        ctx.cancel()
        with pytest.raises(CancelledError):
            LocalDistortionCoRegistration().estimate(ref, tgt, ctx)

    def test_image_too_small(self):
        small = np.ones((20, 20))
        with pytest.raises(ValidationError, match="cannot hold"):
            LocalDistortionCoRegistration().estimate(small, small)

    def test_shape_mismatch(self):
        with pytest.raises(ValidationError, match="shapes differ"):
            LocalDistortionCoRegistration().estimate(np.ones((64, 64)),
                                                     np.ones((64, 96)))

    def test_non_2d_input(self):
        with pytest.raises(ValidationError, match="must be 2D"):
            LocalDistortionCoRegistration().estimate(np.ones((64, 64, 3)),
                                                     np.ones((64, 64, 3)))

    def test_complex_input(self):
        cplx = np.ones((64, 64), dtype=np.complex64)
        with pytest.raises(ValidationError, match="real-valued"):
            LocalDistortionCoRegistration().estimate(cplx, cplx)

    def test_invalid_override(self):
        with pytest.raises(ValidationError):
            LocalDistortionCoRegistration(tile_size=16)

    def test_gpu_request_without_device(self, pair, monkeypatch):
        def unavailable(device=None):
            raise DependencyError("torch is not installed")

        monkeypatch.setattr(
            'dedistort.backends.coordinator.TorchDevice', unavailable,
        )
        ref, tgt = pair
        result = LocalDistortionCoRegistration(
            tile_size=64, iterations=1, use_gpu=True,
        ).estimate(ref, tgt)
        assert result.gpu_fallback
        assert result.backend is BackendKind.CPU
        assert 'torch' in result.metadata['fallback_reason']
        assert abs(np.median(result.grid.dx) - SHIFT[0]) < 0.2
