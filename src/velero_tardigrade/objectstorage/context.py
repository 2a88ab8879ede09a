"""Cancellation signal checked around every storage network call."""

import threading
import time
from typing import Optional

from velero_tardigrade.core.exceptions import OperationCancelledError


class Context:
    """Cancellation and deadline carrier for one operation.

    The network client calls are blocking, so a context is checked before
    each call, between listed items and between stream chunks. It can be
    cancelled from another thread.

    Example:
        ctx = Context(timeout=30)
        store.put_object("bucket", "key", body, ctx=ctx)
    """

    def __init__(self, timeout: Optional[float] = None):
        self._cancelled = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        """Raise OperationCancelledError if the operation should stop."""
        if self.cancelled:
            raise OperationCancelledError("operation cancelled")
        if self.expired:
            raise OperationCancelledError("operation deadline exceeded")


def background() -> Context:
    """Context that is never cancelled and has no deadline."""
    return Context()
