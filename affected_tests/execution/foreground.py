"""Foreground (UI-affinity) task queue.

Work that must not run concurrently with the user's view of the session
(notifications, dialogs, working-tree mutation) is enqueued here from any
thread and executed by the thread that owns the queue.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable

logger = logging.getLogger(__name__)


class ForegroundQueue:
    """Tasks executed in order on the owning thread."""

    def __init__(self, poll_interval: float = 0.05) -> None:
        self._tasks: queue.Queue[tuple[Callable[..., Any], tuple, dict, Future]] = queue.Queue()
        self._owner = threading.current_thread()
        self.poll_interval = poll_interval

    def is_foreground_thread(self) -> bool:
        return threading.current_thread() is self._owner

    def invoke_later(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Schedule ``fn`` on the foreground thread and return its future."""
        future: Future = Future()
        self._tasks.put((fn, args, kwargs, future))
        return future

    def invoke_and_wait(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``fn`` on the foreground thread and return its result.

        Called from the foreground thread itself, ``fn`` runs inline.
        """
        if self.is_foreground_thread():
            return fn(*args, **kwargs)
        return self.invoke_later(fn, *args, **kwargs).result()

    def process_pending(self) -> int:
        """Run every task queued so far without blocking.

        Returns:
            Number of tasks executed.
        """
        count = 0
        while True:
            try:
                task = self._tasks.get_nowait()
            except queue.Empty:
                return count
            self._run(task)
            count += 1

    def run_until(self, done: threading.Event, timeout: float | None = None) -> bool:
        """Drain tasks until ``done`` is set and nothing is left queued.

        Args:
            done: Event signalling the end of the session.
            timeout: Give up after this many seconds (None = never).

        Returns:
            True if ``done`` was reached, False on timeout.
        """
        remaining = timeout
        while not (done.is_set() and self._tasks.empty()):
            if remaining is not None and remaining <= 0:
                return False
            try:
                task = self._tasks.get(timeout=self.poll_interval)
            except queue.Empty:
                if remaining is not None:
                    remaining -= self.poll_interval
                continue
            self._run(task)
        return True

    def _run(self, task: tuple[Callable[..., Any], tuple, dict, Future]) -> None:
        fn, args, kwargs, future = task
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            logger.exception(f"Foreground task {getattr(fn, '__name__', fn)} failed")
            future.set_exception(e)
        except BaseException as e:
            # Wake the waiting worker, then let Ctrl-C reach the main loop
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
