# -*- coding: utf-8 -*-
"""
Tests for RegistrationParameters validation and the tile schedule.

Author
------
Steven Siebert

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
2026-03-12
"""

import pytest

from dedistort.exceptions import ValidationError
from dedistort.params import (
    MIN_STEP,
    MIN_TILE_SIZE,
    Options,
    Range,
    RegistrationParameters,
)
from dedistort.vocabulary import InterpolationMethod


# ---------------------------------------------------------------------------
# Construction and validation
# ---------------------------------------------------------------------------

class TestConstruction:

    def test_defaults(self):
        p = RegistrationParameters()
        assert p.tile_size == 32
        assert p.sampling == 0.5
        assert p.threshold == 1.0
        assert p.iterations == 3
        assert p.refine is False
        assert p.use_gpu is False
        assert p.interpolation == 'bicubic'
        assert p.step == 16

    def test_tile_size_below_minimum(self):
        with pytest.raises(ValidationError, match="below minimum"):
            RegistrationParameters(tile_size=MIN_TILE_SIZE - 1)

    @pytest.mark.parametrize("sampling", [0.0, -0.5])
    def test_sampling_must_be_positive(self, sampling):
        with pytest.raises(ValidationError, match="sampling"):
            RegistrationParameters(sampling=sampling)

    def test_bool_not_accepted_as_int(self):
        with pytest.raises(ValidationError, match="got bool"):
            RegistrationParameters(tile_size=True)

    def test_int_accepted_as_float(self):
        p = RegistrationParameters(threshold=5)
        assert p.threshold == 5.0
        assert isinstance(p.threshold, float)

    def test_options_enforced(self):
        with pytest.raises(ValidationError, match="allowed choices"):
            RegistrationParameters(interpolation='nearest')
        with pytest.raises(ValidationError, match="allowed choices"):
            RegistrationParameters(sampling_strategy='random')

    def test_enum_member_coerced(self):
        p = RegistrationParameters(interpolation=InterpolationMethod.LANCZOS)
        assert p.interpolation == 'lanczos'

    def test_unknown_keyword(self):
        with pytest.raises(TypeError, match="unexpected"):
            RegistrationParameters(tilesize=64)

    def test_optional_fields_accept_none(self):
        p = RegistrationParameters(max_workers=None, device=None)
        assert p.max_workers is None
        with pytest.raises(ValidationError):
            RegistrationParameters(max_workers=0)

    def test_with_overrides_validates(self):
        base = RegistrationParameters()
        other = base.with_overrides(tile_size=64, use_gpu=True)
        assert other.tile_size == 64 and other.use_gpu
        assert base.tile_size == 32
        assert other != base
        with pytest.raises(ValidationError):
            base.with_overrides(iterations=0)

    def test_param_specs(self):
        specs = {s.name: s for s in RegistrationParameters.param_specs()}
        assert specs['tile_size'].min_value == MIN_TILE_SIZE
        assert specs['interpolation'].choices == (
            'bicubic', 'lanczos', 'bilinear',
        )
        assert specs['device'].optional

    def test_markers_repr(self):
        assert repr(Range(min=1)) == "Range(min=1)"
        assert repr(Options('a', 'b')) == "Options('a', 'b')"
        with pytest.raises(ValueError):
            Options()


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------

class TestSchedule:

    def test_step_floor(self):
        assert RegistrationParameters.step_for(32, 0.1) == MIN_STEP
        assert RegistrationParameters.step_for(128, 0.5) == 64

    def test_non_refine_repeats_tile_size(self):
        p = RegistrationParameters(tile_size=64, iterations=3)
        assert p.tile_schedule(512, 512) == (64, 64, 64)

    def test_refine_halves_to_floor(self):
        p = RegistrationParameters(refine=True, iterations=4)
        assert p.initial_tile_size == 128
        assert p.tile_schedule(512, 512) == (128, 64, 32, 32)

    def test_refine_ignores_tile_size(self):
        p = RegistrationParameters(refine=True, tile_size=64, iterations=3)
        assert p.tile_schedule(512, 512) == (128, 64, 32)

    def test_refine_starts_at_fitting_size(self):
        p = RegistrationParameters(refine=True, iterations=2)
        assert p.tile_schedule(300, 100) == (64, 32)

    def test_validate_images(self):
        p = RegistrationParameters(tile_size=64)
        p.validate_images(64, 64)
        with pytest.raises(ValidationError, match="cannot hold"):
            p.validate_images(63, 200)
