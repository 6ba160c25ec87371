"""
Bridges that let the generation loop call user callbacks safely.

A bridge is created for one public call and released when that call returns.
It may be invoked from whichever thread runs the loop (the caller's thread, an
executor worker, or a native thread calling back through ctypes). Each
invocation runs inside a fresh copy of the ``contextvars`` context captured
when the bridge was registered, so context-local state of the caller (request
ids, log correlation, asyncio task context) is visible to the callback no
matter which thread fires it.

Callback failures never reach the native loop: they are logged and swallowed
and generation continues.
"""

from __future__ import annotations

import contextvars
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]
TokenCallback = Callable[[str], None]


class CallbackBridge:
    """
    Capability object wrapping one user callback.

    The bridge holds the only reference it takes to the callback and drops it
    in :meth:`release`, which runs its effect exactly once even when called
    concurrently. Invoking a released bridge (or one built around ``None``)
    does nothing.
    """

    kind = "callback"

    def __init__(self, callback: Optional[Callable[..., None]]):
        self._lock = threading.Lock()
        self._callback = callback
        self._context: Optional[contextvars.Context] = (
            contextvars.copy_context() if callback is not None else None
        )
        self._released = False
        self.invocations = 0
        self.failures = 0

    @property
    def active(self) -> bool:
        """True while a callback is registered and not yet released."""
        return self._callback is not None

    @property
    def released(self) -> bool:
        return self._released

    def _invoke(self, *args) -> None:
        with self._lock:
            callback = self._callback
            context = self._context
        if callback is None or context is None:
            return

        # A Context can only be entered by one thread at a time.
        invocation_context = context.copy()
        try:
            invocation_context.run(callback, *args)
        except Exception:
            with self._lock:
                self.failures += 1
            logger.exception(
                "%s callback raised on thread %s; ignoring",
                self.kind,
                threading.current_thread().name,
            )
        finally:
            with self._lock:
                self.invocations += 1

    def release(self) -> bool:
        """
        Drop the callback reference.

        Returns:
            True for the call that actually released, False afterwards.
        """
        with self._lock:
            if self._released:
                return False
            self._released = True
            self._callback = None
            self._context = None
        return True

    def __enter__(self) -> CallbackBridge:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else ("active" if self.active else "empty")
        return f"{self.__class__.__name__}({state}, invocations={self.invocations})"


class ProgressBridge(CallbackBridge):
    """Bridge for ``(progress, stage)`` callbacks. Progress is clamped to [0, 1]."""

    kind = "progress"

    def __call__(self, progress: float, stage: str) -> None:
        self._invoke(min(1.0, max(0.0, float(progress))), stage)

    def scaled(self, start: float, end: float, stage: str) -> Callable[[float], None]:
        """
        Return a one-argument hook mapping a native 0..1 progress into ``[start, end]``.

        Example:
            >>> hook = bridge.scaled(0.1, 0.4, "Loading model")
            >>> hook(0.5)  # reports 0.25, "Loading model"
        """

        def report(fraction: float) -> None:
            fraction = min(1.0, max(0.0, float(fraction)))
            self(start + (end - start) * fraction, stage)

        return report


class TokenBridge(CallbackBridge):
    """Bridge for ``(token)`` streaming callbacks."""

    kind = "token"

    def __call__(self, token: str) -> None:
        self._invoke(token)
