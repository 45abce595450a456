"""Tests for CompletionBarrier."""

from __future__ import annotations

import threading
import time

import pytest

from affected_tests.errors import WaitInterruptedError
from affected_tests.execution.barrier import CompletionBarrier


class TestCompletionBarrier:
    """Tests for the single-use barrier."""

    def test_release_then_wait(self):
        """A barrier released before the wait does not block."""
        barrier = CompletionBarrier()
        assert barrier.release("done")
        assert barrier.wait(timeout=0.1)
        assert barrier.reason == "done"

    def test_only_first_release_counts(self):
        """Later releases are ignored."""
        barrier = CompletionBarrier()
        assert barrier.release("first")
        assert not barrier.release("second")
        assert barrier.reason == "first"

    def test_wait_times_out(self):
        """An unreleased barrier times out."""
        assert not CompletionBarrier().wait(timeout=0.05)

    def test_release_from_other_thread(self):
        """A waiter is woken by a release on another thread."""
        barrier = CompletionBarrier()
        timer = threading.Timer(0.05, barrier.release)
        timer.start()
        try:
            assert barrier.wait(timeout=5)
        finally:
            timer.cancel()

    def test_interrupt_raises_and_flag_stays(self):
        """Interrupting the waiter raises and leaves the flag set."""
        barrier = CompletionBarrier()
        errors: list[Exception] = []

        def waiter() -> None:
            try:
                barrier.wait(timeout=5)
            except WaitInterruptedError as e:
                errors.append(e)

        thread = threading.Thread(target=waiter)
        thread.start()
        time.sleep(0.05)
        barrier.interrupt()
        thread.join(timeout=5)

        assert len(errors) == 1
        assert barrier.interrupted
        assert not barrier.released

    def test_release_wins_over_later_interrupt(self):
        """Once released, an interrupt does not fail the wait."""
        barrier = CompletionBarrier()
        barrier.release()
        barrier.interrupt()
        assert barrier.wait(timeout=0.1)
        assert barrier.interrupted

    def test_interrupted_before_wait(self):
        """An interrupt that precedes the wait still raises."""
        barrier = CompletionBarrier()
        barrier.interrupt()
        with pytest.raises(WaitInterruptedError):
            barrier.wait(timeout=0.1)
