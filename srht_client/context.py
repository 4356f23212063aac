"""
Cancellation context shared by every blocking operation of one invocation.

A single OperationContext is created by the CLI and passed down through the
driver, exporters, fetcher and subprocess boundary. Cancelling it (signal
handler, deadline) makes the next check() raise OperationCancelled.
"""

from __future__ import annotations

import threading
import time


class OperationCancelled(Exception):
    """Raised when the shared context was cancelled or its deadline passed."""

    def __init__(self, reason: str = "operation cancelled"):
        super().__init__(reason)
        self.reason = reason


class OperationContext:
    """
    Cancellation signal with an optional deadline.

    Usage:
        ctx = OperationContext(timeout=3600)
        ctx.check()          # raises OperationCancelled once cancelled
        ctx.wait(1.0)        # interruptible sleep
    """

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._reason = "operation cancelled"
        self.deadline: float | None = None
        if timeout is not None:
            self.deadline = time.monotonic() + timeout

    def cancel(self, reason: str = "operation cancelled") -> None:
        """Cancel every operation observing this context."""
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self._reason = "deadline exceeded"
            return True
        return False

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise OperationCancelled if the context is no longer live."""
        if self.cancelled:
            raise OperationCancelled(self._reason)

    def wait(self, seconds: float) -> None:
        """
        Sleep for up to `seconds`, returning early with OperationCancelled
        as soon as the context is cancelled.
        """
        self.check()
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if self._event.wait(seconds):
            raise OperationCancelled(self._reason)
        self.check()
