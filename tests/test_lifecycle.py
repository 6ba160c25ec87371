"""
Tests for the generation state machine and native handle ownership.
"""

import threading
from unittest.mock import MagicMock

import pytest

from llamasession.handle import BATCH, CONTEXT, MODEL, SAMPLER, HandleManager, NativeHandle
from llamasession.info import GenerationStats
from llamasession.state import (
    GenerationState,
    GenerationStateMachine,
    IllegalStateTransition,
)


class TestGenerationStateMachine:
    """Test transitions, re-entrancy and listeners."""

    def test_starts_idle(self):
        assert GenerationStateMachine().state is GenerationState.IDLE

    def test_happy_path(self):
        machine = GenerationStateMachine()

        assert machine.begin()
        for state in (
            GenerationState.TOKENIZING_PROMPT,
            GenerationState.PROCESSING_IMAGES,
            GenerationState.GENERATING,
            GenerationState.FINISHED,
        ):
            machine.transition(state)

        assert machine.state is GenerationState.FINISHED
        assert len(machine.history) == 5

    @pytest.mark.parametrize(
        "current, target",
        [
            (GenerationState.IDLE, GenerationState.GENERATING),
            (GenerationState.IDLE, GenerationState.FINISHED),
            (GenerationState.IDLE, GenerationState.CANCELLED),
            (GenerationState.FINISHED, GenerationState.GENERATING),
            (GenerationState.PROCESSING_IMAGES, GenerationState.TOKENIZING_PROMPT),
        ],
    )
    def test_illegal_transitions_raise(self, current, target):
        machine = GenerationStateMachine()
        machine._state = current

        with pytest.raises(IllegalStateTransition):
            machine.transition(target)

        assert machine.state is current

    def test_same_state_is_noop(self):
        machine = GenerationStateMachine()
        listener = MagicMock()
        machine.add_listener(listener)

        machine.transition(GenerationState.IDLE)

        listener.assert_not_called()
        assert machine.history == []

    @pytest.mark.parametrize(
        "active",
        [
            GenerationState.INITIALIZING,
            GenerationState.TOKENIZING_PROMPT,
            GenerationState.PROCESSING_IMAGES,
            GenerationState.GENERATING,
        ],
    )
    def test_any_active_state_can_abort(self, active):
        for target in (GenerationState.CANCELLED, GenerationState.ERROR, GenerationState.IDLE):
            machine = GenerationStateMachine()
            machine._state = active
            machine.transition(target)
            assert machine.state is target

    @pytest.mark.parametrize(
        "state, accepted",
        [
            (GenerationState.IDLE, True),
            (GenerationState.FINISHED, True),
            (GenerationState.CANCELLED, True),
            (GenerationState.ERROR, True),
            (GenerationState.INITIALIZING, False),
            (GenerationState.TOKENIZING_PROMPT, False),
            (GenerationState.PROCESSING_IMAGES, False),
            (GenerationState.GENERATING, False),
        ],
    )
    def test_begin_respects_reentrancy(self, state, accepted):
        machine = GenerationStateMachine()
        machine._state = state

        assert machine.begin() is accepted
        if accepted:
            assert machine.state is GenerationState.INITIALIZING
        else:
            assert machine.state is state

    def test_only_one_concurrent_begin_wins(self):
        machine = GenerationStateMachine()
        barrier = threading.Barrier(8)
        results = []

        def attempt():
            barrier.wait()
            results.append(machine.begin())

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1

    def test_listeners_see_every_transition(self):
        machine = GenerationStateMachine()
        seen = []
        machine.add_listener(lambda prev, cur: seen.append((prev, cur)))

        machine.begin()
        machine.transition(GenerationState.IDLE)

        assert seen == [
            (GenerationState.IDLE, GenerationState.INITIALIZING),
            (GenerationState.INITIALIZING, GenerationState.IDLE),
        ]

    def test_history_is_bounded(self):
        machine = GenerationStateMachine(history_size=4)
        for _ in range(5):
            machine.begin()
            machine.transition(GenerationState.IDLE)

        assert len(machine.history) == 4


class TestGenerationStats:
    def test_zero_elapsed_means_zero_rate(self):
        stats = GenerationStats.measure(10, 0.0, GenerationState.GENERATING, None)

        assert stats.tokens_per_second == 0.0

    def test_rate(self):
        stats = GenerationStats.measure(50, 2.0, GenerationState.FINISHED, None)

        assert stats.tokens_per_second == 25.0
        assert stats.time_elapsed == 2.0

    def test_negative_elapsed_is_clamped(self):
        stats = GenerationStats.measure(5, -1.0, GenerationState.GENERATING, None)

        assert stats.tokens_per_second == 0.0
        assert stats.time_elapsed == 0.0


class TestNativeHandle:
    """Test ordered ownership and idempotent release."""

    def test_tokens_are_unique(self):
        assert NativeHandle().token != NativeHandle().token

    def test_release_in_reverse_order(self):
        handle = NativeHandle()
        freed = []
        for kind in (BATCH, MODEL, CONTEXT, SAMPLER):
            handle.attach(kind, kind.upper(), freed.append)

        assert handle.release() is True
        assert freed == ["SAMPLER", "CONTEXT", "MODEL", "BATCH"]

    def test_release_is_idempotent(self):
        handle = NativeHandle()
        free = MagicMock()
        handle.attach(MODEL, object(), free)

        handle.release()
        assert handle.release() is False

        free.assert_called_once()

    def test_failing_free_does_not_stop_teardown(self, caplog):
        handle = NativeHandle()
        freed = []

        def broken(value):
            raise RuntimeError("driver error")

        handle.attach(BATCH, "batch", freed.append)
        handle.attach(MODEL, "model", broken)
        handle.attach(CONTEXT, "ctx", freed.append)

        handle.release()

        assert freed == ["ctx", "batch"]
        assert "Failed to free model" in caplog.text

    def test_attach_after_release_raises(self):
        handle = NativeHandle()
        handle.release()

        with pytest.raises(RuntimeError):
            handle.attach(MODEL, object(), lambda v: None)

    def test_duplicate_kind_raises(self):
        handle = NativeHandle()
        handle.attach(MODEL, "a", lambda v: None)

        with pytest.raises(RuntimeError):
            handle.attach(MODEL, "b", lambda v: None)

    def test_replace_frees_previous(self):
        handle = NativeHandle()
        freed = []
        handle.attach(SAMPLER, "old", freed.append)

        handle.replace(SAMPLER, "new", freed.append)

        assert freed == ["old"]
        assert handle.get(SAMPLER) == "new"
        assert handle.kinds == [SAMPLER]

    def test_get_and_has(self):
        handle = NativeHandle()
        handle.attach(MODEL, "model", lambda v: None)

        assert handle.get(MODEL) == "model"
        assert handle.has(MODEL)
        assert handle.get(CONTEXT) is None
        assert not handle.has(CONTEXT)

    def test_concurrent_release_frees_once(self):
        handle = NativeHandle()
        free = MagicMock()
        handle.attach(MODEL, object(), free)
        barrier = threading.Barrier(8)

        def release():
            barrier.wait()
            handle.release()

        threads = [threading.Thread(target=release) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        free.assert_called_once()


class TestHandleManager:
    def test_empty_manager(self):
        manager = HandleManager()

        assert manager.current is None
        assert manager.token == 0
        assert not manager.is_live
        assert manager.release() is False

    def test_acquire_frees_previous_handle(self):
        manager = HandleManager()
        free = MagicMock()
        first = manager.acquire()
        first.attach(MODEL, object(), free)

        second = manager.acquire()

        free.assert_called_once()
        assert first.released
        assert manager.current is second
        assert manager.token == second.token

    def test_release_is_idempotent(self):
        manager = HandleManager()
        free = MagicMock()
        manager.acquire().attach(MODEL, object(), free)

        assert manager.release() is True
        assert manager.release() is False
        free.assert_called_once()
        assert manager.token == 0
