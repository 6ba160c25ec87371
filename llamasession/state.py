"""
Generation state machine.

The session owns exactly one :class:`GenerationStateMachine`. All state
changes go through :meth:`GenerationStateMachine.transition`, which rejects
transitions that are not in the table below, so every change is auditable::

    IDLE --initialize()/generate_response()--> INITIALIZING
    INITIALIZING --init ok--> IDLE
    INITIALIZING --> TOKENIZING_PROMPT --> [PROCESSING_IMAGES] --> GENERATING --> FINISHED
    any active state --cancel--> CANCELLED
    any active state --failure--> ERROR
    FINISHED / CANCELLED / ERROR --next call--> INITIALIZING
    any state --close()--> IDLE
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class GenerationState(Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    TOKENIZING_PROMPT = "tokenizing_prompt"
    PROCESSING_IMAGES = "processing_images"
    GENERATING = "generating"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationState.FINISHED, GenerationState.CANCELLED, GenerationState.ERROR)

    @property
    def accepts_new_call(self) -> bool:
        """True when a new generation may start from this state."""
        return self is GenerationState.IDLE or self.is_terminal


_ABORT = {GenerationState.CANCELLED, GenerationState.ERROR, GenerationState.IDLE}

TRANSITIONS: dict[GenerationState, frozenset[GenerationState]] = {
    GenerationState.IDLE: frozenset({GenerationState.INITIALIZING}),
    GenerationState.INITIALIZING: frozenset({GenerationState.TOKENIZING_PROMPT} | _ABORT),
    GenerationState.TOKENIZING_PROMPT: frozenset(
        {GenerationState.PROCESSING_IMAGES, GenerationState.GENERATING} | _ABORT
    ),
    GenerationState.PROCESSING_IMAGES: frozenset({GenerationState.GENERATING} | _ABORT),
    GenerationState.GENERATING: frozenset({GenerationState.FINISHED} | _ABORT),
    GenerationState.FINISHED: frozenset({GenerationState.INITIALIZING, GenerationState.IDLE}),
    GenerationState.CANCELLED: frozenset({GenerationState.INITIALIZING, GenerationState.IDLE}),
    GenerationState.ERROR: frozenset({GenerationState.INITIALIZING, GenerationState.IDLE}),
}

StateListener = Callable[[GenerationState, GenerationState], None]


class IllegalStateTransition(RuntimeError):
    """Raised when a transition is not allowed from the current state."""

    def __init__(self, current: GenerationState, target: GenerationState):
        super().__init__(f"Illegal generation state transition: {current.name} -> {target.name}")
        self.current = current
        self.target = target


class GenerationStateMachine:
    """
    Single source of truth for what the engine is doing.

    The internal lock only protects the state value itself; callers still
    must not run two operations on one session concurrently.
    """

    def __init__(self, history_size: int = 64):
        self._state = GenerationState.IDLE
        self._lock = threading.Lock()
        self._listeners: list[StateListener] = []
        self._history: deque[tuple[GenerationState, GenerationState]] = deque(
            maxlen=history_size
        )

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def history(self) -> list[tuple[GenerationState, GenerationState]]:
        """Recent ``(from, to)`` transitions, oldest first."""
        with self._lock:
            return list(self._history)

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def can_transition(self, target: GenerationState) -> bool:
        return target is self._state or target in TRANSITIONS[self._state]

    def transition(self, target: GenerationState) -> GenerationState:
        """
        Move to ``target``.

        Returns:
            The previous state

        Raises:
            IllegalStateTransition: If the table does not allow the move
        """
        with self._lock:
            previous = self._state
            if target is previous:
                return previous
            if target not in TRANSITIONS[previous]:
                raise IllegalStateTransition(previous, target)
            self._state = target
            self._history.append((previous, target))
        logger.debug("Generation state %s -> %s", previous.name, target.name)
        for listener in self._listeners:
            listener(previous, target)
        return previous

    def begin(self) -> bool:
        """
        Atomically enter INITIALIZING if no operation is in flight.

        Returns:
            False when another operation is already running
        """
        with self._lock:
            previous = self._state
            if not previous.accepts_new_call:
                return False
            self._state = GenerationState.INITIALIZING
            self._history.append((previous, GenerationState.INITIALIZING))
        logger.debug("Generation state %s -> INITIALIZING", previous.name)
        for listener in self._listeners:
            listener(previous, GenerationState.INITIALIZING)
        return True

    def __repr__(self) -> str:
        return f"GenerationStateMachine(state={self._state.name})"
