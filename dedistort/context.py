# -*- coding: utf-8 -*-
"""
Registration Context - Per-call cancellation and progress reporting.

A ``RegistrationContext`` is created by the caller (or implicitly by the
entry points) and threaded explicitly through every stage of a single
registration call. It holds no global state, so concurrent calls each own
their own context.

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

# Standard library
import logging
import threading
from typing import Callable, Optional

# dedistort internal
from dedistort.exceptions import CancelledError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]


class RegistrationContext:
    """Cancellation token and progress sink for one registration call.

    Parameters
    ----------
    progress : callable, optional
        Called as ``progress(stage, fraction)`` with ``fraction`` in
        ``[0, 1]``. Exceptions raised by the callback propagate.
    cancel_event : threading.Event, optional
        Event shared with the caller. A new one is created when omitted.

    Examples
    --------
    >>> ctx = RegistrationContext()
    >>> ctx.cancel()
    >>> ctx.cancelled
    True
    """

    def __init__(
        self,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._progress = progress
        self._cancel_event = cancel_event or threading.Event()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation; observed at the next checkpoint."""
        self._cancel_event.set()

    def check_cancelled(self, where: str = '') -> None:
        """Raise ``CancelledError`` if cancellation was requested."""
        if self._cancel_event.is_set():
            logger.debug("Registration cancelled at %s", where or 'checkpoint')
            raise CancelledError(
                f"Registration cancelled{' during ' + where if where else ''}"
            )

    def report(self, stage: str, fraction: float) -> None:
        """Forward a progress update to the callback, if any."""
        if self._progress is not None:
            self._progress(stage, min(1.0, max(0.0, float(fraction))))


def ensure_context(
    context: Optional[RegistrationContext],
) -> RegistrationContext:
    """Return *context*, or a fresh context when ``None``."""
    return context if context is not None else RegistrationContext()
