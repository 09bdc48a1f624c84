"""Graceful handling of Ctrl-C while a solve is running."""

from __future__ import annotations

import signal
import threading
from types import FrameType, TracebackType
from typing import Any, Optional


class InterruptListener:
    """Context manager that records SIGINT instead of raising.

    While active, an interrupt only sets a flag that the solver polls via
    ``is_interrupted``. The previous handler is restored on exit. Outside the
    main thread no handler can be installed and the flag never gets set.
    """

    def __init__(self) -> None:
        self._detected = False
        self._previous: Any = None
        self._installed = False

    def _handle(self, signum: int, frame: Optional[FrameType]) -> None:
        self._detected = True

    def __enter__(self) -> "InterruptListener":
        self._detected = False
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.signal(signal.SIGINT, self._handle)
            self._installed = True
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if self._installed:
            previous = self._previous
            if previous is None:
                previous = signal.SIG_DFL
            signal.signal(signal.SIGINT, previous)
            self._installed = False
            self._previous = None

    def is_interrupted(self) -> bool:
        """Whether SIGINT arrived since the listener was entered."""
        return self._detected