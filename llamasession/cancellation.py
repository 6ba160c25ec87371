"""
Thread-safe cancellation flag shared between a caller and a running session.

The flag can be set from any thread while generation runs on another. The
session only looks at it at fixed checkpoints (before heavy loads, before
prompt evaluation and once per generated token), so cancellation is
cooperative and never interrupts a native call that is already running.

Example:
    >>> token = CancellationToken()
    >>> threading.Timer(5.0, token.cancel).start()
    >>> result = session.generate_response(conversation, cancellation_token=token)
    >>> result.code if result.is_error else None
    <ErrorCode.OPERATION_CANCELLED: 16>
"""

from __future__ import annotations

import threading
from typing import Optional


class CancellationToken:
    """
    A boolean flag with atomic set, clear and read.

    Backed by :class:`threading.Event`, so a ``cancel()`` on one thread is
    observed by every later ``is_cancelled()`` on any other thread.
    """

    __slots__ = ("_event",)

    def __init__(self, cancelled: bool = False):
        self._event = threading.Event()
        if cancelled:
            self._event.set()

    def cancel(self) -> None:
        """Set the flag. Idempotent."""
        self._event.set()

    def is_cancelled(self) -> bool:
        """Non-blocking read of the flag."""
        return self._event.is_set()

    def reset(self) -> None:
        """Clear the flag so the token can be reused for another call."""
        self._event.clear()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the token is cancelled or ``timeout`` elapses."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled()})"


def is_cancelled(token: Optional[CancellationToken]) -> bool:
    """Return True if ``token`` is set. ``None`` never cancels."""
    return token is not None and token.is_cancelled()
