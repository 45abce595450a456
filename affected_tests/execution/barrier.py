"""Single-use completion barrier between the phase-1 run and restoration."""

from __future__ import annotations

import logging
import threading

from affected_tests.errors import WaitInterruptedError

logger = logging.getLogger(__name__)


class CompletionBarrier:
    """Releases exactly one waiter after exactly one completion signal.

    The phase-1 run (or its immediate skip) is the only writer; the
    orchestrator is the only waiter. Releases after the first are ignored,
    so every completion path may release without double counting.
    Interrupting a waiter leaves the ``interrupted`` flag set afterwards.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._released = False
        self._interrupted = False
        self.reason: str | None = None

    @property
    def released(self) -> bool:
        with self._cond:
            return self._released

    @property
    def interrupted(self) -> bool:
        with self._cond:
            return self._interrupted

    def release(self, reason: str = "completed") -> bool:
        """Signal completion.

        Args:
            reason: Why the barrier was released (for logs and reports).

        Returns:
            True for the releasing call, False for any later call.
        """
        with self._cond:
            if self._released:
                logger.debug(f"Barrier already released ({self.reason}); ignoring '{reason}'")
                return False
            self._released = True
            self.reason = reason
            self._cond.notify_all()
        logger.debug(f"Barrier released: {reason}")
        return True

    def interrupt(self) -> None:
        """Wake the waiter with WaitInterruptedError unless already released."""
        with self._cond:
            self._interrupted = True
            self._cond.notify_all()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until released.

        Args:
            timeout: Seconds to wait (None = forever).

        Returns:
            True once released, False if the timeout expired first.

        Raises:
            WaitInterruptedError: If interrupted before the release.
        """
        with self._cond:
            self._cond.wait_for(lambda: self._released or self._interrupted, timeout)
            if self._released:
                return True
            if self._interrupted:
                raise WaitInterruptedError("Await interrupted while the head-state run was in progress")
            return False
