# -*- coding: utf-8 -*-
"""
Tests for RegistrationContext cancellation and progress reporting.

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
2026-03-04

Modified
--------
2026-03-04
"""

import threading

import pytest

from dedistort.context import RegistrationContext, ensure_context
from dedistort.exceptions import CancelledError, DedistortError


class TestRegistrationContext:

    def test_not_cancelled_by_default(self):
        ctx = RegistrationContext()
        assert not ctx.cancelled
        ctx.check_cancelled('anywhere')

    def test_cancel_raises_at_checkpoint(self):
        ctx = RegistrationContext()
        ctx.cancel()
        assert ctx.cancelled
        with pytest.raises(CancelledError, match="during level 2"):
            ctx.check_cancelled('level 2')

    def test_cancelled_error_is_library_error(self):
        assert issubclass(CancelledError, DedistortError)

    def test_shared_event(self):
        event = threading.Event()
        ctx = RegistrationContext(cancel_event=event)
        event.set()
        assert ctx.cancelled

    def test_progress_clamped(self):
        seen = []
        ctx = RegistrationContext(progress=lambda s, f: seen.append((s, f)))
        ctx.report('correlate', 0.5)
        ctx.report('correlate', 1.5)
        ctx.report('warp', -1.0)
        assert seen == [('correlate', 0.5), ('correlate', 1.0), ('warp', 0.0)]

    def test_ensure_context(self):
        ctx = RegistrationContext()
        assert ensure_context(ctx) is ctx
        assert isinstance(ensure_context(None), RegistrationContext)
