from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from .errors import OperationCancelledError

logger = logging.getLogger(__name__)


class CancelScope:
    """Caller-held cancellation handle shared by every call of one operation.

    A scope is cancelled explicitly with ``cancel()`` or implicitly once
    ``timeout`` seconds have passed since it was created. Store calls already
    in flight complete; nothing after them is started.
    """

    def __init__(self, timeout: float | None = None, *, now: Callable[[], float] | None = None) -> None:
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be >= 0")
        self._now = now or time.monotonic
        self._deadline = None if timeout is None else self._now() + timeout
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._now() >= self._deadline:
            self._event.set()
            return True
        return False

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._now())

    def check(self, operation: str) -> None:
        if self.cancelled:
            logger.warning(f"{operation}: cancelled before the next store call")
            raise OperationCancelledError(f"{operation}: cancelled")

    def sleep(self, seconds: float) -> None:
        """Wait up to ``seconds``, returning early if the scope is cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._event.wait(seconds)
