# -*- coding: utf-8 -*-
"""
Tests for reference-free consensus registration.

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
2026-03-12

Modified
--------
2026-03-13
"""

import numpy as np
import pytest
from scipy import ndimage

from dedistort import (
    CancelledError,
    ConsensusCoRegistration,
    RegistrationContext,
    RegistrationParameters,
    ValidationError,
)
from dedistort.backends import BackendCoordinator
from dedistort.coregistration import ConsensusReferenceBuilder


# ===================================================================
# Helpers
# ===================================================================

SHIFTS = [(0.0, 0.0), (1.2, 0.0), (-1.0, 0.6), (0.4, -1.1), (-0.6, 0.5)]


def _frames(shifts=SHIFTS, shape=(192, 192), seed=0):
    """Copies of one texture translated by each shift, with sensor noise."""
    rng = np.random.default_rng(seed)
    noise = ndimage.gaussian_filter(rng.normal(size=shape), 1.5)
    image = 100.0 + 40.0 * noise / noise.std()
    spectrum = np.fft.fft2(image)
    frames = []
    for dx, dy in shifts:
        moved = np.fft.ifft2(ndimage.fourier_shift(spectrum, (dy, dx))).real
        frames.append(moved + rng.normal(size=shape))
    return frames


def _spread(frames, margin=16):
    """Mean absolute deviation of the stack from its mean, inside a margin."""
    stack = np.stack(frames)[:, margin:-margin, margin:-margin]
    return float(np.mean(np.abs(stack - stack.mean(axis=0))))


@pytest.fixture(scope='module')
def frames():
    return _frames()


@pytest.fixture(scope='module')
def result(frames):
    return ConsensusCoRegistration(tile_size=64).register(frames)


@pytest.fixture
def builder():
    params = RegistrationParameters()
    return ConsensusReferenceBuilder(params, BackendCoordinator(params))


# ===================================================================
# Consensus frame
# ===================================================================

class TestConsensus:
    """Five translated frames pulled toward their common frame."""

    def test_spread_reduced(self, frames, result):
        assert result.image_count == len(frames)
        assert _spread(result.corrected) < 0.5 * _spread(frames)

    def test_pair_maps_antisymmetric(self, result):
        assert len(result.pair_maps) == 2 * 10
        for (i, j), grid in result.pair_maps.items():
            np.testing.assert_array_equal(grid.dx,
                                          -result.pair_maps[(j, i)].dx)
            np.testing.assert_array_equal(grid.dy,
                                          -result.pair_maps[(j, i)].dy)

    def test_pair_map_measures_relative_shift(self, result):
        grid = result.pair_maps[(0, 1)]
        assert abs(np.median(grid.dx) - 1.2) < 0.2
        assert abs(np.median(grid.dy)) < 0.2

    def test_corrections_follow_shifts(self, result):
        dx = [np.median(c.dx) for c in result.corrections]
        assert np.argmax(dx) == 1
        assert np.argmin(dx) == 2

    def test_diagnostics(self, result):
        diag = result.diagnostics
        assert diag['passes'] == 1
        assert len(diag['pass_distortions']) == 1
        assert not diag['early_stopped']
        assert diag['comparisons'] == [4] * 5
        assert not result.gpu_fallback
        assert 'ConsensusResult(images=5' in repr(result)

    def test_apply_correction(self, frames, result):
        reg = ConsensusCoRegistration(tile_size=64)
        np.testing.assert_allclose(
            reg.apply(frames[3], result.corrections[3]), result.corrected[3],
            atol=1e-9,
        )

    def test_multiple_passes(self, frames):
        out = ConsensusCoRegistration(tile_size=64, consensus_iterations=2) \
            .register(frames)
        diag = out.diagnostics
        assert 1 <= diag['passes'] <= 2
        assert len(diag['pass_distortions']) == diag['passes']
        assert _spread(out.corrected) < 0.5 * _spread(frames)


# ===================================================================
# Partner selection
# ===================================================================

class TestPartners:

    def test_all_others_when_few(self, builder):
        np.testing.assert_array_equal(builder.partners(2, 6), [0, 1, 3, 4, 5])

    def test_subsampled_when_many(self, builder):
        chosen = builder.partners(7, 50)
        assert chosen.size == 30
        assert 7 not in chosen
        assert np.all(np.diff(chosen) > 0)
        np.testing.assert_array_equal(chosen, builder.partners(7, 50))

    def test_subset_changes_with_iteration(self, builder):
        first = builder.partners(7, 50, iteration=0)
        second = builder.partners(7, 50, iteration=1)
        assert not np.array_equal(first, second)


# ===================================================================
# Small sets and errors
# ===================================================================

class TestEdgeCases:

    def test_single_image(self, frames):
        with pytest.warns(UserWarning, match="poorly constrained"):
            out = ConsensusCoRegistration(tile_size=64).register(frames[:1])
        np.testing.assert_array_equal(out.corrected[0], frames[0])
        assert out.corrected[0] is not frames[0]
        assert out.corrections[0].total_distortion() == 0.0
        assert out.pair_maps == {}
        assert out.diagnostics['passes'] == 0

    def test_few_images_warn(self, frames):
        with pytest.warns(UserWarning, match="5 or more"):
            out = ConsensusCoRegistration(tile_size=64).register(frames[:2])
        assert set(out.pair_maps) == {(0, 1), (1, 0)}

    def test_empty(self):
        with pytest.raises(ValidationError, match="at least one image"):
            ConsensusCoRegistration().register([])

    def test_shape_mismatch(self, frames):
        with pytest.raises(ValidationError, match="shapes differ"):
            ConsensusCoRegistration().register(
                [frames[0], frames[1][:, :128]] + frames[2:],
            )

    def test_cancelled(self, frames):
        ctx = RegistrationContext()
        ctx.cancel()
        with pytest.raises(CancelledError):
            ConsensusCoRegistration(tile_size=64).register(frames, ctx)
