"""Two-phase execution: head-state run, restore, current-state run.

The orchestrator owns the session state machine. Impact computation runs
on the calling (foreground) thread; the phase sequence runs on a single
background worker. Working-tree mutations (stash, restore, report file)
are routed to the foreground queue. The barrier between the phase-1 run
and the restoration is the only blocking wait on the worker. When that
wait is interrupted, the head-state run is terminated before the working
tree is restored; a run that outlives HEAD_STOP_TIMEOUT is left to finish
against the restored tree and its results are discarded.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path

from affected_tests.errors import AffectedTestsError, WaitInterruptedError
from affected_tests.execution.adapter import PHASE_CURRENT, PHASE_HEAD
from affected_tests.execution.barrier import CompletionBarrier
from affected_tests.execution.engine import PhaseResult, ProcessHandle
from affected_tests.execution.foreground import ForegroundQueue
from affected_tests.reporting.comparison import build_report, compare_outcomes, format_summary, parse_junit_xml, write_report
from affected_tests.selection.session import RunSession
from affected_tests.vcs.git import GitError
from affected_tests.vcs.snapshot import SnapshotCoordinator

logger = logging.getLogger(__name__)

# Seconds to wait for an interrupted head-state run to exit before restoring
HEAD_STOP_TIMEOUT = 10.0


class State(str, Enum):
    IDLE = "idle"
    IMPACT_COMPUTED = "impact_computed"
    PHASE1_RUNNING = "phase1_running"
    PHASE1_SKIPPED = "phase1_skipped"
    AWAITING_BARRIER = "awaiting_barrier"
    RESTORING = "restoring"
    PHASE2_RUNNING = "phase2_running"
    DONE = "done"
    ABORTED = "aborted"
    ERROR = "error"


class ExecutionOrchestrator:
    """Runs one affected-tests session through its phases.

    Args:
        impact_engine: Provides ``track_changes_and_tests``,
            ``run_tests_on_head_files`` and ``run_tests_on_current_state``.
        snapshot: Stashes and restores the working changes.
        session: Session state, reset at every start.
        foreground: Queue drained by the thread that owns the working tree.
        notifier: User-facing notifications.
        report_path: Where the comparison report is written (None = skip).
    """

    def __init__(
        self,
        impact_engine,
        snapshot: SnapshotCoordinator,
        session: RunSession,
        foreground: ForegroundQueue,
        notifier,
        report_path: Path | None = None,
    ) -> None:
        self.impact_engine = impact_engine
        self.snapshot = snapshot
        self.session = session
        self.foreground = foreground
        self.notifier = notifier
        self.report_path = report_path
        self.barrier: CompletionBarrier | None = None
        self.state = State.IDLE
        self.history: list[State] = [State.IDLE]
        self.restore_attempts = 0
        self._lock = threading.Lock()
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="affected-tests-worker")
        self._future: Future | None = None

    def _transition(self, state: State) -> None:
        with self._lock:
            logger.info(f"{self.state.value} -> {state.value}")
            self.state = state
            self.history.append(state)

    def start(self, depth: int, check_previous: bool) -> bool:
        """Compute the impact and schedule the phases on the worker.

        Returns:
            True if the phases were scheduled, False if the session ended
            (no impact or an error) before any run.
        """
        self.session.reset()
        self.session.check_previous = check_previous
        self.barrier = CompletionBarrier()
        self.restore_attempts = 0
        with self._lock:
            self.state = State.IDLE
            self.history = [State.IDLE]

        try:
            found = self.impact_engine.track_changes_and_tests(depth)
        except Exception as e:
            self._fail(e)
            return False

        if not found:
            self._transition(State.ABORTED)
            self.session.finish()
            return False

        self._transition(State.IMPACT_COMPUTED)
        self._future = self._worker.submit(self._run_phases, check_previous)
        return True

    def interrupt(self) -> None:
        """Interrupt the wait on the phase-1 barrier, if any."""
        if self.barrier is not None:
            self.barrier.interrupt()

    def wait(self, timeout: float | None = None) -> None:
        """Block until the scheduled phase sequence has left the worker."""
        if self._future is not None:
            self._future.result(timeout)

    def shutdown(self) -> None:
        self._worker.shutdown(wait=False)

    def _run_phases(self, check_previous: bool) -> None:
        barrier = self.barrier
        assert barrier is not None
        stashed = False
        head_handle: ProcessHandle | None = None
        try:
            run_head = check_previous
            if run_head:
                outcome = self._stash()
                run_head = outcome is not None
                stashed = bool(outcome)
            if run_head:
                self._transition(State.PHASE1_RUNNING)
                head_handle = self.impact_engine.run_tests_on_head_files(barrier)
            else:
                self._transition(State.PHASE1_SKIPPED)
                barrier.release("head-state run skipped")

            self._transition(State.AWAITING_BARRIER)
            try:
                barrier.wait()
            except WaitInterruptedError as e:
                logger.warning(f"{e}")
                self.notifier.error("Interrupted", f"{e}; the current-state run is cancelled")
                self._stop_head_run(head_handle)
                if stashed:
                    stashed = False
                    self._restore(True)
                self._transition(State.ERROR)
                self.session.finish()
                return

            self._transition(State.RESTORING)
            if stashed:
                stashed = False
                self._restore(True)

            self._transition(State.PHASE2_RUNNING)
            handle = self.impact_engine.run_tests_on_current_state()
            if handle is None:
                self.foreground.invoke_later(self._complete, None)
                return
            handle.add_termination_listener(self._on_phase2_terminated)
        except KeyboardInterrupt:
            # Ctrl-C landed in a foreground task (stash or restore)
            logger.warning("Interrupted during a working-tree operation")
            barrier.release("interrupted")
            self._stop_head_run(head_handle)
            self.notifier.error(
                "Interrupted",
                "Interrupted while stashing or restoring; check `git stash list` for your changes",
            )
            self._transition(State.ERROR)
            self.session.finish()
        except Exception as e:
            barrier.release("orchestrator error")
            if stashed:
                self._restore(True)
            self._fail(e)

    def _stop_head_run(self, handle: ProcessHandle | None) -> None:
        if handle is None or handle.result is not None:
            return
        handle.terminate()
        if handle.wait(HEAD_STOP_TIMEOUT) is None:
            logger.warning("Head-state run still running; restoring the working tree anyway")

    def _stash(self) -> bool | None:
        """Stash on the foreground thread; None if git refused."""
        try:
            stashed = self.foreground.invoke_and_wait(self.snapshot.stash_current_changes)
        except GitError as e:
            logger.error(f"Stash failed: {e}")
            self.notifier.error("Stash Error", f"{e}\nRunning only against the current state.")
            return None
        self.session.stashed = stashed
        return stashed

    def _restore(self, should_restore: bool) -> bool:
        """Apply the stash on the foreground thread and wait for it."""
        self.restore_attempts += 1
        return self.foreground.invoke_and_wait(self.snapshot.restore_stashed_changes, should_restore)

    def _on_phase2_terminated(self, result: PhaseResult) -> None:
        self.foreground.invoke_later(self._complete, result)

    def _complete(self, result: PhaseResult | None) -> None:
        """Report and finish; runs on the foreground thread."""
        try:
            head_result = self.session.phase_results.get(PHASE_HEAD)
            current_result = self.session.phase_results.get(PHASE_CURRENT, result)
            head = parse_junit_xml(head_result.junit_xml) if head_result is not None else None
            current = parse_junit_xml(current_result.junit_xml) if current_result is not None else {}
            rows = compare_outcomes(self.session.patterns, head, current)
            if self.report_path is not None:
                write_report(self.report_path, build_report(self.session, rows))
                logger.info(f"Report written to {self.report_path}")
            self.notifier.notify("Affected Tests Summary", format_summary(rows))
        except (OSError, ValueError) as e:
            logger.exception("Writing the comparison report failed")
            self.notifier.error("Report Error", f"{e}")
        finally:
            self._transition(State.DONE)
            self.session.finish()

    def _fail(self, error: Exception) -> None:
        if isinstance(error, AffectedTestsError):
            logger.error(f"{type(error).__name__}: {error}")
        else:
            logger.exception("Unexpected failure in affected-tests session")
        self.notifier.error("Error", f"{error}")
        self._transition(State.ERROR)
        self.session.finish()
