"""
Native handle lifetime management.

A :class:`NativeHandle` groups every native resource a session owns (batch
buffer, sampler chain, inference context, model, vision context) and frees
them in strict reverse-acquisition order. The :class:`HandleManager` binds a
session to at most one live handle. Release is idempotent and lock guarded,
so ``close()``, initialization-failure cleanup and the destructor path can all
call it without double-freeing.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable, NamedTuple, Optional

logger = logging.getLogger(__name__)

# Resource kinds held by a handle
BATCH = "batch"
MODEL = "model"
CONTEXT = "context"
VISION = "vision"
SAMPLER = "sampler"

_token_counter = itertools.count(1)


class _Resource(NamedTuple):
    kind: str
    value: Any
    free: Callable[[Any], None]


class NativeHandle:
    """
    Opaque owner of one loaded model, its context and its sampler chain.

    Callers only ever see :attr:`token`, a process-unique positive integer.
    """

    def __init__(self) -> None:
        self.token = next(_token_counter)
        self._lock = threading.RLock()
        self._resources: list[_Resource] = []
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def kinds(self) -> list[str]:
        """Resource kinds in acquisition order."""
        with self._lock:
            return [r.kind for r in self._resources]

    def attach(self, kind: str, value: Any, free: Callable[[Any], None]) -> Any:
        """
        Take ownership of a native resource.

        Raises:
            RuntimeError: If the handle was already released or already holds ``kind``
        """
        with self._lock:
            if self._released:
                raise RuntimeError(f"Cannot attach {kind} to released handle {self.token}")
            if any(r.kind == kind for r in self._resources):
                raise RuntimeError(f"Handle {self.token} already owns a {kind}")
            self._resources.append(_Resource(kind, value, free))
        logger.debug("Handle %d acquired %s", self.token, kind)
        return value

    def get(self, kind: str) -> Optional[Any]:
        with self._lock:
            for resource in self._resources:
                if resource.kind == kind:
                    return resource.value
        return None

    def has(self, kind: str) -> bool:
        return self.get(kind) is not None

    def replace(self, kind: str, value: Any, free: Callable[[Any], None]) -> Any:
        """Free the current resource of ``kind`` (if any) and attach ``value``."""
        with self._lock:
            for index, resource in enumerate(self._resources):
                if resource.kind == kind:
                    del self._resources[index]
                    self._free(resource)
                    break
            return self.attach(kind, value, free)

    def release(self) -> bool:
        """
        Free every resource, newest first.

        Returns:
            True for the call that performed the teardown, False afterwards.
        """
        with self._lock:
            if self._released:
                return False
            self._released = True
            resources, self._resources = self._resources, []

        for resource in reversed(resources):
            self._free(resource)
        logger.debug("Handle %d released", self.token)
        return True

    def _free(self, resource: _Resource) -> None:
        try:
            resource.free(resource.value)
        except Exception:
            logger.exception("Failed to free %s of handle %d", resource.kind, self.token)

    def __repr__(self) -> str:
        status = "released" if self._released else "live"
        return f"NativeHandle(token={self.token}, status={status}, resources={self.kinds})"


class HandleManager:
    """Guarantees at most one live :class:`NativeHandle` per session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handle: Optional[NativeHandle] = None

    @property
    def current(self) -> Optional[NativeHandle]:
        return self._handle

    @property
    def is_live(self) -> bool:
        handle = self._handle
        return handle is not None and not handle.released

    @property
    def token(self) -> int:
        """Token of the live handle, 0 when there is none."""
        handle = self._handle
        return handle.token if handle is not None and not handle.released else 0

    def acquire(self) -> NativeHandle:
        """
        Create a fresh handle, freeing the previous one first.

        Two handles are never alive at the same time.
        """
        with self._lock:
            previous, self._handle = self._handle, None
        if previous is not None and previous.release():
            logger.warning("Released previous native handle %d before acquiring a new one", previous.token)

        handle = NativeHandle()
        with self._lock:
            self._handle = handle
        return handle

    def release(self) -> bool:
        """Free the live handle if there is one. Safe to call repeatedly."""
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is None:
            return False
        return handle.release()
